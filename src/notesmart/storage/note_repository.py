"""Repository for note storage and retrieval."""
import logging
from typing import List, Optional

from sqlalchemy import literal, or_, select, update
from sqlalchemy.orm import selectinload

from notesmart.exceptions import (ErrorCode, OwnershipViolationError,
                                  ValidationError)
from notesmart.models.db_models import (DBNote, DBNotebook, DBTag, casefold,
                                        note_tags)
from notesmart.models.schema import Note, utc_now
from notesmart.storage.base import (Repository, get_owned_note,
                                    get_owned_notebook, note_to_model,
                                    owned_notes, require_user_id,
                                    storage_errors)
from notesmart.utils import escape_like_pattern, normalize_tag_name

logger = logging.getLogger(__name__)


class NoteRepository(Repository[Note]):
    """Repository for notes.

    A note belongs to whoever owns its notebook. Reads for a note the caller
    does not own behave exactly like reads for a note that does not exist;
    updates and deletes of such notes are silent no-ops.
    """

    def create(self, note: Note, user_id: str) -> Note:
        """Create a note in one of the user's notebooks.

        ``created_at`` and ``updated_at`` are set to the current UTC time,
        overriding anything the caller supplied.

        Args:
            note: Note to create; ``note.notebook_id`` selects the notebook.
            user_id: The acting user.

        Returns:
            The persisted note with its assigned id.

        Raises:
            OwnershipViolationError: If the notebook is missing or belongs to
                another user. Nothing is written in that case.
        """
        require_user_id(user_id)
        with storage_errors("create_note", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                if get_owned_notebook(session, note.notebook_id, user_id) is None:
                    raise OwnershipViolationError("Notebook", note.notebook_id, user_id)

                now = utc_now()
                db_note = DBNote(
                    title=note.title,
                    content=note.content,
                    notebook_id=note.notebook_id,
                    created_at=now,
                    updated_at=now,
                )
                session.add(db_note)
                session.commit()

                logger.info(f"Created note {db_note.id} in notebook {note.notebook_id}")
                return note_to_model(db_note, resolve=True)

    def get(self, note_id: int, user_id: str) -> Optional[Note]:
        """Get a note with its notebook and tags resolved.

        Returns:
            The note, or None if it does not exist or is not owned by
            ``user_id``. The two cases are deliberately indistinguishable.
        """
        require_user_id(user_id)
        with storage_errors("get_note"):
            with self.session_factory() as session:
                db_note = get_owned_note(session, note_id, user_id)
                if not db_note:
                    return None
                return note_to_model(db_note, resolve=True)

    def get_all(self, user_id: str) -> List[Note]:
        """Get every note the user owns, most recently updated first."""
        require_user_id(user_id)
        with storage_errors("get_all_notes"):
            with self.session_factory() as session:
                return self._fetch(session, owned_notes(user_id))

    def get_by_notebook(self, notebook_id: int, user_id: str) -> List[Note]:
        """Get the notes of one of the user's notebooks, newest first."""
        require_user_id(user_id)
        with storage_errors("get_notes_by_notebook"):
            with self.session_factory() as session:
                return self._fetch(
                    session,
                    owned_notes(user_id).where(DBNote.notebook_id == notebook_id),
                )

    def update(self, note: Note, user_id: str) -> Optional[Note]:
        """Apply the note's title, content and notebook to the stored note.

        A note that is missing or owned by someone else is left untouched and
        None is returned. This is an intentional idempotence choice: callers
        that need to report a failed update must check existence themselves.

        Raises:
            ValidationError: If ``note.id`` is not set.
            OwnershipViolationError: If the note is moved to a notebook the
                user does not own.
        """
        require_user_id(user_id)
        if note.id is None:
            raise ValidationError("Note ID is required for update", field="id")
        with storage_errors("update_note", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_note = get_owned_note(session, note.id, user_id)
                if not db_note:
                    logger.debug(f"Note {note.id} not found for user {user_id}, update skipped")
                    return None

                if note.notebook_id != db_note.notebook_id:
                    if get_owned_notebook(session, note.notebook_id, user_id) is None:
                        raise OwnershipViolationError(
                            "Notebook", note.notebook_id, user_id
                        )
                    db_note.notebook_id = note.notebook_id

                db_note.title = note.title
                db_note.content = note.content
                db_note.updated_at = utc_now()
                session.commit()

                logger.info(f"Updated note {note.id}")
                return note_to_model(db_note, resolve=True)

    def quick_update_content(self, note_id: int, content: str, user_id: str) -> bool:
        """Overwrite only the content of a note (the auto-save path).

        Runs as one scoped UPDATE statement without loading the note or
        re-validating its other fields.

        Returns:
            True if a note owned by ``user_id`` was updated.
        """
        require_user_id(user_id)
        if not isinstance(content, str):
            raise ValidationError("Content must be a string", field="content", value=content)
        owned_notebook_ids = select(DBNotebook.id).where(DBNotebook.user_id == user_id)
        with storage_errors("quick_update_content", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                result = session.execute(
                    update(DBNote)
                    .where(
                        DBNote.id == note_id,
                        DBNote.notebook_id.in_(owned_notebook_ids),
                    )
                    .values(content=content, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                session.commit()
                return result.rowcount > 0

    def delete(self, note_id: int, user_id: str) -> bool:
        """Delete a note and its tag associations.

        Returns:
            True if deleted, False when no note owned by ``user_id`` matched.
        """
        require_user_id(user_id)
        with storage_errors("delete_note", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                db_note = get_owned_note(session, note_id, user_id)
                if not db_note:
                    logger.debug(f"Note {note_id} not found for user {user_id}, delete skipped")
                    return False
                session.delete(db_note)
                session.commit()
                logger.info(f"Deleted note {note_id}")
                return True

    def delete_by_notebook(self, notebook_id: int, user_id: str) -> int:
        """Delete every note in one of the user's notebooks, keeping the notebook.

        Returns:
            Number of notes deleted.
        """
        require_user_id(user_id)
        with storage_errors("delete_notes_by_notebook", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                db_notes = session.scalars(
                    owned_notes(user_id).where(DBNote.notebook_id == notebook_id)
                ).all()
                for db_note in db_notes:
                    session.delete(db_note)
                session.commit()
                if db_notes:
                    logger.info(f"Deleted {len(db_notes)} notes from notebook {notebook_id}")
                return len(db_notes)

    def search(self, term: str, user_id: str) -> List[Note]:
        """Find the user's notes whose title or content contains ``term``.

        Matching is case-insensitive substring containment; LIKE wildcards in
        the term are matched literally. A blank term matches every note.
        """
        require_user_id(user_id)
        if not isinstance(term, str):
            raise ValidationError("Search term must be a string", field="term", value=term)
        pattern = casefold(literal(f"%{escape_like_pattern(term)}%"))
        with storage_errors("search_notes"):
            with self.session_factory() as session:
                return self._fetch(
                    session,
                    owned_notes(user_id).where(
                        or_(
                            casefold(DBNote.title).like(pattern, escape="\\"),
                            casefold(DBNote.content).like(pattern, escape="\\"),
                        )
                    ),
                )

    def search_by_tag_name(self, tag_name: str, user_id: str) -> List[Note]:
        """Find the user's notes carrying a tag, matched case-insensitively."""
        require_user_id(user_id)
        name = normalize_tag_name(tag_name)
        if not name:
            return []
        with storage_errors("search_notes_by_tag"):
            with self.session_factory() as session:
                return self._fetch(
                    session,
                    owned_notes(user_id)
                    .join(note_tags, note_tags.c.note_id == DBNote.id)
                    .join(DBTag, DBTag.id == note_tags.c.tag_id)
                    .where(
                        DBTag.user_id == user_id,
                        casefold(DBTag.name) == casefold(literal(name)),
                    )
                    .distinct(),
                )

    def _fetch(self, session, query) -> List[Note]:
        """Run a note query newest-first and convert rows with tags resolved."""
        db_notes = session.scalars(
            query.options(selectinload(DBNote.notebook), selectinload(DBNote.tags))
            .order_by(DBNote.updated_at.desc(), DBNote.id.desc())
        ).all()
        return [note_to_model(db_note, resolve=True) for db_note in db_notes]
