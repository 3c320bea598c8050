"""Repository for the users handed over by the identity provider."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from notesmart.exceptions import ErrorCode
from notesmart.models.db_models import DBUser, get_session_factory, init_db
from notesmart.models.schema import User, ensure_timezone_aware, utc_now
from notesmart.storage.base import require_user_id, storage_errors

logger = logging.getLogger(__name__)


def _user_to_model(db_user: DBUser) -> User:
    return User(
        id=db_user.id,
        display_name=db_user.display_name,
        created_at=ensure_timezone_aware(db_user.created_at),
    )


class UserRepository:
    """Stores user rows so notebooks and tags have an owner to point at.

    Credentials and sessions stay with the identity provider; this only keeps
    the id, display name and creation time.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    def get(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""
        require_user_id(user_id)
        with storage_errors("get_user"):
            with self.session_factory() as session:
                db_user = session.get(DBUser, user_id)
                return _user_to_model(db_user) if db_user else None

    def ensure(self, user: User) -> User:
        """Register a user unless one with the same id already exists.

        The stored record wins: an existing user keeps its display name and
        creation time.
        """
        with storage_errors("ensure_user", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_user = session.get(DBUser, user.id)
                if db_user:
                    return _user_to_model(db_user)

                db_user = DBUser(
                    id=user.id, display_name=user.display_name, created_at=utc_now()
                )
                session.add(db_user)
                try:
                    session.commit()
                    logger.info(f"Registered user {user.id}")
                except IntegrityError:
                    session.rollback()
                    db_user = session.get(DBUser, user.id)
                    if db_user is None:
                        raise
                return _user_to_model(db_user)
