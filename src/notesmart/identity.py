"""Seam to the external identity provider.

The core never looks up a "current user" on its own. The request-handling
layer asks an ``IdentityProvider`` for the acting user's id and passes it
explicitly into every call.
"""
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from notesmart.exceptions import UnauthenticatedError

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityProvider(Protocol):
    """Anything that can resolve an authenticated request context to a user id."""

    def get_current_user_id(self, context: Any) -> Optional[str]:
        """Return the user id for ``context``, or None when unauthenticated."""
        ...


class MappingIdentityProvider:
    """Resolves the user id from a key in a mapping-like request context.

    Suitable for contexts that already carry verified claims, e.g. a decoded
    token payload or a framework session dict.
    """

    def __init__(self, key: str = "sub"):
        self.key = key

    def get_current_user_id(self, context: Optional[Dict[str, Any]]) -> Optional[str]:
        if not context:
            return None
        value = context.get(self.key)
        return str(value) if value is not None else None


def resolve_user_id(provider: IdentityProvider, context: Any) -> str:
    """Resolve the acting user's id or fail.

    Raises:
        UnauthenticatedError: If the provider returns no id or a blank one.
    """
    user_id = provider.get_current_user_id(context)
    if user_id is None or not str(user_id).strip():
        logger.debug("Identity lookup returned no user")
        raise UnauthenticatedError()
    return user_id
