"""Service layer: the entry point the request-handling layer calls.

Every method takes the acting user's id first, followed by plain values. The
service builds validated records, delegates to the repositories and performs
the ownership checks that the scope-agnostic tag helpers leave to callers.
"""

import logging
from typing import Any, List, Optional, Type, TypeVar

import pydantic
from sqlalchemy.engine import Engine

from notesmart.exceptions import (NoteNotFoundError, OwnershipViolationError,
                                  ValidationError)
from notesmart.models.db_models import init_db
from notesmart.models.schema import (Note, Notebook, Tag, TagUsage, User,
                                     UserStatistics)
from notesmart.observability import traced
from notesmart.services.statistics_service import StatisticsService
from notesmart.storage.note_repository import NoteRepository
from notesmart.storage.notebook_repository import NotebookRepository
from notesmart.storage.tag_repository import TagRepository
from notesmart.storage.user_repository import UserRepository

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)


def _build(model: Type[M], **fields: Any) -> M:
    """Construct a record, turning pydantic errors into our ValidationError."""
    try:
        return model(**fields)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(
            f"Invalid {model.__name__.lower()}: {first['msg']}",
            field=field,
            value=first.get("input"),
        ) from e


class NotesService:
    """Service for notebooks, notes, tags and statistics of individual users."""

    def __init__(self, engine: Optional[Engine] = None):
        """Initialize the service.

        Args:
            engine: Pre-configured SQLAlchemy engine shared by every
                repository. Created from config when None.
        """
        self.engine = engine or init_db()
        self.users = UserRepository(engine=self.engine)
        self.notebooks = NotebookRepository(engine=self.engine)
        self.notes = NoteRepository(engine=self.engine)
        self.tags = TagRepository(engine=self.engine)
        self.statistics = StatisticsService(engine=self.engine)

    # =========================================================================
    # Users
    # =========================================================================

    @traced("register_user")
    def register_user(self, user_id: str, display_name: str) -> User:
        """Record a user the identity provider has authenticated."""
        return self.users.ensure(_build(User, id=user_id, display_name=display_name))

    # =========================================================================
    # Notebooks
    # =========================================================================

    @traced("create_notebook")
    def create_notebook(self, user_id: str, title: str) -> Notebook:
        return self.notebooks.create(_build(Notebook, title=title), user_id)

    @traced("get_notebook")
    def get_notebook(
        self, user_id: str, notebook_id: int, with_notes: bool = False
    ) -> Optional[Notebook]:
        if with_notes:
            return self.notebooks.get_with_notes(notebook_id, user_id)
        return self.notebooks.get(notebook_id, user_id)

    @traced("list_notebooks")
    def list_notebooks(self, user_id: str, with_notes: bool = False) -> List[Notebook]:
        if with_notes:
            return self.notebooks.get_all_with_notes(user_id)
        return self.notebooks.get_all(user_id)

    @traced("rename_notebook")
    def rename_notebook(
        self, user_id: str, notebook_id: int, title: str
    ) -> Optional[Notebook]:
        notebook = _build(Notebook, id=notebook_id, title=title)
        return self.notebooks.update(notebook, user_id)

    @traced("delete_notebook")
    def delete_notebook(self, user_id: str, notebook_id: int) -> bool:
        """Delete a notebook with all its notes. False if nothing matched."""
        return self.notebooks.delete(notebook_id, user_id)

    @traced("clear_notebook")
    def clear_notebook(self, user_id: str, notebook_id: int) -> int:
        """Delete every note in a notebook but keep the notebook itself."""
        return self.notes.delete_by_notebook(notebook_id, user_id)

    # =========================================================================
    # Notes
    # =========================================================================

    @traced("create_note")
    def create_note(
        self, user_id: str, notebook_id: int, title: str, content: str = ""
    ) -> Note:
        note = _build(Note, notebook_id=notebook_id, title=title, content=content)
        return self.notes.create(note, user_id)

    @traced("get_note")
    def get_note(self, user_id: str, note_id: int) -> Optional[Note]:
        return self.notes.get(note_id, user_id)

    def require_note(self, user_id: str, note_id: int) -> Note:
        """Get a note the user owns.

        Raises:
            NoteNotFoundError: If the note is missing or owned by someone else.
        """
        note = self.notes.get(note_id, user_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    @traced("list_notes")
    def list_notes(self, user_id: str, notebook_id: Optional[int] = None) -> List[Note]:
        if notebook_id is None:
            return self.notes.get_all(user_id)
        return self.notes.get_by_notebook(notebook_id, user_id)

    @traced("update_note")
    def update_note(
        self,
        user_id: str,
        note_id: int,
        title: str,
        content: str,
        notebook_id: Optional[int] = None,
    ) -> Optional[Note]:
        """Replace a note's title and content, optionally moving it.

        Returns None without writing anything when the user owns no such note.
        """
        if notebook_id is None:
            existing = self.notes.get(note_id, user_id)
            if existing is None:
                logger.debug(f"Note {note_id} not found for user {user_id}, update skipped")
                return None
            notebook_id = existing.notebook_id
        note = _build(
            Note, id=note_id, notebook_id=notebook_id, title=title, content=content
        )
        return self.notes.update(note, user_id)

    @traced("autosave_note")
    def autosave(self, user_id: str, note_id: int, content: str) -> bool:
        """Save editor content on the low-overhead path."""
        return self.notes.quick_update_content(note_id, content, user_id)

    @traced("delete_note")
    def delete_note(self, user_id: str, note_id: int) -> bool:
        return self.notes.delete(note_id, user_id)

    @traced("search_notes")
    def search_notes(self, user_id: str, term: str) -> List[Note]:
        return self.notes.search(term, user_id)

    @traced("search_notes_by_tag")
    def search_notes_by_tag(self, user_id: str, tag_name: str) -> List[Note]:
        return self.notes.search_by_tag_name(tag_name, user_id)

    # =========================================================================
    # Tags
    # =========================================================================

    @traced("add_tag")
    def add_tag(self, user_id: str, note_id: int, tag_name: str) -> Tag:
        """Attach a tag to a note by name, creating the tag if needed.

        If the note is deleted between the ownership check and the attach,
        a newly created tag is left without notes until ``prune_tags`` runs.

        Raises:
            NoteNotFoundError: If the user owns no such note. The tag is not
                created when the note is already missing.
        """
        self.require_note(user_id, note_id)
        tag = self.tags.get_or_create(tag_name, user_id)
        try:
            self.tags.associate(note_id, tag.id, user_id)
        except OwnershipViolationError as e:
            raise NoteNotFoundError(note_id) from e
        return tag

    @traced("remove_tag")
    def remove_tag(self, user_id: str, note_id: int, tag_id: int) -> bool:
        """Detach a tag from one of the user's notes.

        Raises:
            NoteNotFoundError: If the user owns no such note.
        """
        self.require_note(user_id, note_id)
        return self.tags.remove_from_note(note_id, tag_id)

    @traced("get_note_tags")
    def get_note_tags(self, user_id: str, note_id: int) -> List[Tag]:
        """Tags on one of the user's notes.

        Raises:
            NoteNotFoundError: If the user owns no such note.
        """
        self.require_note(user_id, note_id)
        return self.tags.get_for_note(note_id)

    @traced("list_tags")
    def list_tags(self, user_id: str) -> List[Tag]:
        return self.tags.get_all(user_id)

    @traced("popular_tags")
    def popular_tags(self, user_id: str, limit: Optional[int] = None) -> List[TagUsage]:
        return self.tags.get_popular(user_id, limit)

    @traced("rename_tag")
    def rename_tag(self, user_id: str, tag_id: int, new_name: str) -> Tag:
        return self.tags.update(tag_id, new_name, user_id)

    @traced("delete_tag")
    def delete_tag(self, user_id: str, tag_id: int) -> bool:
        return self.tags.delete(tag_id, user_id)

    @traced("prune_tags")
    def prune_tags(self, user_id: str) -> int:
        """Delete the user's tags that no note uses any more."""
        return self.tags.delete_unused(user_id)

    # =========================================================================
    # Statistics
    # =========================================================================

    @traced("get_user_statistics")
    def get_user_statistics(self, user_id: str) -> UserStatistics:
        return self.statistics.get_user_statistics(user_id)
