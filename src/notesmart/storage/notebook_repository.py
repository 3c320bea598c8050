"""Repository for notebook storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from notesmart.exceptions import ErrorCode, ValidationError
from notesmart.models.db_models import DBNote, DBNotebook, DBUser
from notesmart.models.schema import Notebook, NotebookWithNotes, utc_now
from notesmart.storage.base import (Repository, get_owned_notebook,
                                    note_to_model, notebook_to_model,
                                    require_user_id, storage_errors,
                                    tag_to_model)

logger = logging.getLogger(__name__)


class NotebookRepository(Repository[Notebook]):
    """Repository for notebooks, always scoped by the owning user.

    Deleting a notebook removes its notes and, through them, their tag
    associations in the same transaction.
    """

    def create(self, notebook: Notebook, user_id: str) -> Notebook:
        """Create a notebook owned by ``user_id``.

        The owner and creation time are stamped here; whatever the caller put
        in ``notebook.user_id`` or ``notebook.created_at`` is ignored.

        Raises:
            ValidationError: If ``user_id`` is blank or not a registered user.
        """
        require_user_id(user_id)
        with storage_errors("create_notebook", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                if session.get(DBUser, user_id) is None:
                    raise ValidationError(
                        f"User '{user_id}' is not registered",
                        field="user_id",
                        value=user_id,
                        code=ErrorCode.INVALID_USER_ID,
                    )
                db_notebook = DBNotebook(
                    title=notebook.title,
                    user_id=user_id,
                    created_at=utc_now(),
                )
                session.add(db_notebook)
                session.commit()

                logger.info(f"Created notebook {db_notebook.id} for user {user_id}")
                return notebook_to_model(db_notebook, note_count=0)

    def get(self, notebook_id: int, user_id: str) -> Optional[Notebook]:
        """Get a notebook by ID, or None if missing or owned by someone else."""
        require_user_id(user_id)
        with storage_errors("get_notebook"):
            with self.session_factory() as session:
                db_notebook = get_owned_notebook(session, notebook_id, user_id)
                if not db_notebook:
                    return None
                return notebook_to_model(db_notebook, note_count=len(db_notebook.notes))

    def get_with_notes(
        self, notebook_id: int, user_id: str
    ) -> Optional[NotebookWithNotes]:
        """Get a notebook with its notes (and their tags), newest note first."""
        require_user_id(user_id)
        with storage_errors("get_notebook_with_notes"):
            with self.session_factory() as session:
                db_notebook = get_owned_notebook(session, notebook_id, user_id)
                if not db_notebook:
                    return None
                return self._with_notes(db_notebook)

    def get_all(self, user_id: str) -> List[Notebook]:
        """Get all of a user's notebooks ordered by title, with note counts."""
        require_user_id(user_id)
        with storage_errors("get_all_notebooks"):
            with self.session_factory() as session:
                rows = session.execute(
                    select(DBNotebook, func.count(DBNote.id))
                    .outerjoin(DBNote, DBNote.notebook_id == DBNotebook.id)
                    .where(DBNotebook.user_id == user_id)
                    .group_by(DBNotebook.id)
                    .order_by(DBNotebook.title, DBNotebook.id)
                ).all()
                return [notebook_to_model(nb, note_count=count) for nb, count in rows]

    def get_all_with_notes(self, user_id: str) -> List[NotebookWithNotes]:
        """Get all of a user's notebooks ordered by title, each with its notes.

        Notes inside a notebook are newest first and carry their tags. Every
        row is loaded in a fixed number of queries, not one per notebook.
        """
        require_user_id(user_id)
        with storage_errors("get_all_notebooks_with_notes"):
            with self.session_factory() as session:
                db_notebooks = session.scalars(
                    select(DBNotebook)
                    .where(DBNotebook.user_id == user_id)
                    .options(selectinload(DBNotebook.notes).selectinload(DBNote.tags))
                    .order_by(DBNotebook.title, DBNotebook.id)
                ).all()
                return [self._with_notes(db_notebook) for db_notebook in db_notebooks]

    def update(self, notebook: Notebook, user_id: str) -> Optional[Notebook]:
        """Rename a notebook.

        A notebook that is missing or not owned by ``user_id`` is left alone
        and None is returned; callers that must report failure check first.
        """
        require_user_id(user_id)
        if notebook.id is None:
            raise ValidationError("Notebook ID is required for update", field="id")
        with storage_errors("update_notebook", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_notebook = get_owned_notebook(session, notebook.id, user_id)
                if not db_notebook:
                    logger.debug(
                        f"Notebook {notebook.id} not found for user {user_id}, update skipped"
                    )
                    return None
                db_notebook.title = notebook.title
                session.commit()
                logger.info(f"Updated notebook {notebook.id}")
                return notebook_to_model(db_notebook, note_count=len(db_notebook.notes))

    def delete(self, notebook_id: int, user_id: str) -> bool:
        """Delete a notebook together with its notes and their tag associations.

        Returns:
            True if deleted, False when no notebook owned by ``user_id`` matched.
        """
        require_user_id(user_id)
        with storage_errors("delete_notebook", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                db_notebook = get_owned_notebook(session, notebook_id, user_id)
                if not db_notebook:
                    logger.debug(
                        f"Notebook {notebook_id} not found for user {user_id}, delete skipped"
                    )
                    return False
                note_count = len(db_notebook.notes)
                session.delete(db_notebook)
                session.commit()
                logger.info(f"Deleted notebook {notebook_id} and {note_count} notes")
                return True

    @staticmethod
    def _with_notes(db_notebook: DBNotebook) -> NotebookWithNotes:
        notes = []
        for db_note in db_notebook.notes:
            note = note_to_model(db_note)
            note.tags = [tag_to_model(t) for t in db_note.tags]
            notes.append(note)
        base = notebook_to_model(db_notebook, note_count=len(notes))
        return NotebookWithNotes(**base.model_dump(), notes=notes)
