"""Base repository and shared ownership helpers for the storage layer."""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Generic, Iterator, Optional, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notesmart.exceptions import ErrorCode, StorageError, ValidationError
from notesmart.models.db_models import (DBNote, DBNotebook, DBTag,
                                        get_session_factory, init_db)
from notesmart.models.schema import (Note, Notebook, Tag,
                                     ensure_timezone_aware)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def require_user_id(user_id: Any) -> str:
    """Validate the acting user id every scoped operation receives.

    Raises:
        ValidationError: If the id is not a non-empty string.
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError(
            "A non-empty user id is required",
            field="user_id",
            value=user_id,
            code=ErrorCode.INVALID_USER_ID,
        )
    return user_id


def owned_notes(user_id: str) -> Select:
    """SELECT over the notes whose notebook belongs to ``user_id``."""
    return (
        select(DBNote)
        .join(DBNotebook, DBNote.notebook_id == DBNotebook.id)
        .where(DBNotebook.user_id == user_id)
    )


def get_owned_note(session: Session, note_id: int, user_id: str) -> Optional[DBNote]:
    """Load a note only if its notebook belongs to ``user_id``."""
    return session.scalar(owned_notes(user_id).where(DBNote.id == note_id))


def get_owned_notebook(
    session: Session, notebook_id: int, user_id: str
) -> Optional[DBNotebook]:
    """Load a notebook only if it belongs to ``user_id``."""
    return session.scalar(
        select(DBNotebook).where(
            DBNotebook.id == notebook_id, DBNotebook.user_id == user_id
        )
    )


def get_owned_tag(session: Session, tag_id: int, user_id: str) -> Optional[DBTag]:
    """Load a tag only if it lives in ``user_id``'s scope."""
    return session.scalar(
        select(DBTag).where(DBTag.id == tag_id, DBTag.user_id == user_id)
    )


def tag_to_model(db_tag: DBTag) -> Tag:
    """Convert DBTag to Tag model."""
    return Tag(id=db_tag.id, name=db_tag.name, user_id=db_tag.user_id)


def notebook_to_model(
    db_notebook: DBNotebook, note_count: Optional[int] = None
) -> Notebook:
    """Convert DBNotebook to Notebook model."""
    return Notebook(
        id=db_notebook.id,
        title=db_notebook.title,
        user_id=db_notebook.user_id,
        created_at=ensure_timezone_aware(db_notebook.created_at),
        note_count=note_count,
    )


def note_to_model(db_note: DBNote, resolve: bool = False) -> Note:
    """Convert DBNote to Note model.

    Args:
        db_note: The ORM row, still attached to its session.
        resolve: Also load the owning notebook and the tags.
    """
    note = Note(
        id=db_note.id,
        title=db_note.title,
        content=db_note.content or "",
        notebook_id=db_note.notebook_id,
        created_at=ensure_timezone_aware(db_note.created_at),
        updated_at=ensure_timezone_aware(db_note.updated_at),
    )
    if resolve:
        note.notebook = notebook_to_model(db_note.notebook)
        note.tags = [tag_to_model(t) for t in db_note.tags]
    return note


@contextmanager
def storage_errors(
    operation: str, code: ErrorCode = ErrorCode.STORAGE_READ_FAILED
) -> Iterator[None]:
    """Wrap unexpected SQLAlchemy failures in an opaque StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Storage failure during {operation}: {e}")
        raise StorageError(
            f"Storage operation '{operation}' failed",
            operation=operation,
            code=code,
            original_error=e,
        ) from e


class Repository(ABC, Generic[T]):
    """Base class for repositories whose every call is scoped by a user id.

    Each public operation opens its own short-lived session; a session that
    performs several mutations commits them together or not at all.
    """

    def __init__(self, engine: Optional[Engine] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    @abstractmethod
    def get(self, entity_id: int, user_id: str) -> Optional[T]:
        """Return the entity if ``user_id`` owns it, else None."""

    @abstractmethod
    def delete(self, entity_id: int, user_id: str) -> bool:
        """Delete the entity if ``user_id`` owns it; False when nothing matched."""
