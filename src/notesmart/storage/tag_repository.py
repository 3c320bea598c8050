"""Repository for tags and their associations with notes."""
import logging
from typing import List, Optional

import pydantic
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from notesmart.config import config
from notesmart.exceptions import (DuplicateNameError, ErrorCode,
                                  OwnershipViolationError, StorageError,
                                  TagNotFoundError, ValidationError)
from notesmart.models.db_models import DBNote, DBTag, DBUser, note_tags
from notesmart.models.schema import Tag, TagUsage, utc_now
from notesmart.storage.base import (Repository, get_owned_note,
                                    get_owned_tag, require_user_id,
                                    storage_errors, tag_to_model)

logger = logging.getLogger(__name__)


def _validated_tag_name(name: str) -> str:
    """Normalize a tag name through the Tag model's rules."""
    try:
        return Tag(name=name).name
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid tag name: {e.errors()[0]['msg']}", field="name", value=name
        ) from e


class TagRepository(Repository[Tag]):
    """Repository for managing tags.

    Tags are scoped per user: the name is unique within one user's tags, and
    two users may each own a tag with the same name. The association helpers
    ``remove_from_note`` and ``get_for_note`` do not check ownership; callers
    verify the note belongs to the acting user first.
    """

    def _find_by_name(self, session, name: str, user_id: str) -> Optional[DBTag]:
        return session.scalar(
            select(DBTag).where(DBTag.user_id == user_id, DBTag.name == name)
        )

    def get_or_create(self, name: str, user_id: str) -> Tag:
        """Get an existing tag or create a new one.

        Concurrent calls with the same name converge on a single row: when the
        insert loses the race against another writer, the unique constraint
        rejects it and the row that won is fetched instead.

        Args:
            name: The tag name (surrounding whitespace is stripped).
            user_id: Owner of the tag scope.

        Returns:
            The Tag object.
        """
        require_user_id(user_id)
        tag_name = _validated_tag_name(name)
        with storage_errors("get_or_create_tag", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_tag = self._find_by_name(session, tag_name, user_id)
                if db_tag:
                    return tag_to_model(db_tag)

                if session.get(DBUser, user_id) is None:
                    raise ValidationError(
                        f"User '{user_id}' is not registered",
                        field="user_id",
                        value=user_id,
                        code=ErrorCode.INVALID_USER_ID,
                    )

                db_tag = DBTag(name=tag_name, user_id=user_id)
                session.add(db_tag)
                try:
                    session.commit()
                    logger.info(f"Created tag '{tag_name}' for user {user_id}")
                    return tag_to_model(db_tag)
                except IntegrityError:
                    session.rollback()
                    logger.debug(f"Tag '{tag_name}' created concurrently, re-fetching")

                db_tag = self._find_by_name(session, tag_name, user_id)
                if db_tag is None:
                    raise StorageError(
                        f"Tag '{tag_name}' could not be created or found",
                        operation="get_or_create_tag",
                        code=ErrorCode.STORAGE_WRITE_FAILED,
                    )
                return tag_to_model(db_tag)

    def get(self, tag_id: int, user_id: str) -> Optional[Tag]:
        """Get a tag by ID within the user's scope."""
        require_user_id(user_id)
        with storage_errors("get_tag"):
            with self.session_factory() as session:
                db_tag = get_owned_tag(session, tag_id, user_id)
                return tag_to_model(db_tag) if db_tag else None

    def get_all(self, user_id: str) -> List[Tag]:
        """Get all of a user's tags ordered by name."""
        require_user_id(user_id)
        with storage_errors("get_all_tags"):
            with self.session_factory() as session:
                db_tags = session.scalars(
                    select(DBTag).where(DBTag.user_id == user_id).order_by(DBTag.name)
                ).all()
                return [tag_to_model(t) for t in db_tags]

    def get_popular(self, user_id: str, limit: Optional[int] = None) -> List[TagUsage]:
        """Get the user's most used tags.

        Args:
            user_id: Owner of the tag scope.
            limit: Maximum number of tags. Defaults to config.popular_tags_limit.

        Returns:
            TagUsage records, highest count first, ties broken by name.
        """
        require_user_id(user_id)
        limit = limit or config.popular_tags_limit
        usage = func.count(note_tags.c.note_id).label("usage")
        with storage_errors("get_popular_tags"):
            with self.session_factory() as session:
                rows = session.execute(
                    select(DBTag.id, DBTag.name, usage)
                    .outerjoin(note_tags, DBTag.id == note_tags.c.tag_id)
                    .where(DBTag.user_id == user_id)
                    .group_by(DBTag.id, DBTag.name)
                    .order_by(usage.desc(), DBTag.name)
                    .limit(limit)
                ).all()
                return [TagUsage(id=tag_id, name=name, count=count) for tag_id, name, count in rows]

    def get_for_note(self, note_id: int) -> List[Tag]:
        """Get all tags on a note. Does not check who owns the note.

        Args:
            note_id: The note ID.

        Returns:
            List of Tag objects ordered by name.
        """
        with storage_errors("get_tags_for_note"):
            with self.session_factory() as session:
                db_tags = session.scalars(
                    select(DBTag)
                    .join(note_tags, DBTag.id == note_tags.c.tag_id)
                    .where(note_tags.c.note_id == note_id)
                    .order_by(DBTag.name)
                ).all()
                return [tag_to_model(t) for t in db_tags]

    def associate(self, note_id: int, tag_id: int, user_id: str) -> bool:
        """Attach a tag to one of the user's notes.

        Attaching a tag that is already on the note is not an error; it is
        reported by the return value instead. The same holds when another
        writer inserts the association between our check and our insert.

        Returns:
            True if the association was created, False if it already existed.

        Raises:
            OwnershipViolationError: If the note does not belong to ``user_id``.
            TagNotFoundError: If the tag is not in ``user_id``'s scope.
        """
        require_user_id(user_id)
        with storage_errors("associate_tag", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_note = get_owned_note(session, note_id, user_id)
                if not db_note:
                    raise OwnershipViolationError("Note", note_id, user_id)
                if get_owned_tag(session, tag_id, user_id) is None:
                    raise TagNotFoundError(tag_id)

                if self._association_exists(session, note_id, tag_id):
                    return False

                try:
                    session.execute(insert(note_tags).values(note_id=note_id, tag_id=tag_id))
                    db_note.updated_at = utc_now()
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    if self._association_exists(session, note_id, tag_id):
                        logger.debug(f"Tag {tag_id} attached to note {note_id} concurrently")
                        return False
                    raise

                logger.info(f"Tagged note {note_id} with tag {tag_id}")
                return True

    def remove_from_note(self, note_id: int, tag_id: int) -> bool:
        """Detach a tag from a note. Does not check who owns the note.

        Returns:
            True if the tag was removed, False if it wasn't present.
        """
        with storage_errors("remove_tag_from_note", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                result = session.execute(
                    delete(note_tags).where(
                        note_tags.c.note_id == note_id, note_tags.c.tag_id == tag_id
                    )
                )
                if result.rowcount == 0:
                    logger.debug(f"Tag {tag_id} not on note {note_id}, nothing removed")
                    return False
                session.execute(
                    update(DBNote).where(DBNote.id == note_id).values(updated_at=utc_now())
                )
                session.commit()
                logger.info(f"Removed tag {tag_id} from note {note_id}")
                return True

    def update(self, tag_id: int, new_name: str, user_id: str) -> Tag:
        """Rename a tag.

        The uniqueness check and the write share one transaction, and the
        (user_id, name) constraint rejects a concurrent rename that slipped
        past the check.

        Raises:
            TagNotFoundError: If the tag is not in ``user_id``'s scope.
            DuplicateNameError: If another of the user's tags has ``new_name``.
        """
        require_user_id(user_id)
        tag_name = _validated_tag_name(new_name)
        with storage_errors("update_tag", ErrorCode.STORAGE_WRITE_FAILED):
            with self.session_factory() as session:
                db_tag = get_owned_tag(session, tag_id, user_id)
                if not db_tag:
                    raise TagNotFoundError(tag_id)
                if db_tag.name == tag_name:
                    return tag_to_model(db_tag)

                clash = session.scalar(
                    select(DBTag.id).where(
                        DBTag.user_id == user_id,
                        DBTag.name == tag_name,
                        DBTag.id != tag_id,
                    )
                )
                if clash is not None:
                    raise DuplicateNameError(tag_name, user_id)

                old_name = db_tag.name
                db_tag.name = tag_name
                try:
                    session.commit()
                except IntegrityError as e:
                    session.rollback()
                    raise DuplicateNameError(tag_name, user_id) from e

                logger.info(f"Renamed tag {tag_id} from '{old_name}' to '{tag_name}'")
                return tag_to_model(db_tag)

    def delete(self, tag_id: int, user_id: str) -> bool:
        """Delete a tag and every association it has.

        Returns:
            True if deleted, False when no tag in ``user_id``'s scope matched.
        """
        require_user_id(user_id)
        with storage_errors("delete_tag", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                db_tag = get_owned_tag(session, tag_id, user_id)
                if not db_tag:
                    logger.debug(f"Tag {tag_id} not found for user {user_id}, delete skipped")
                    return False
                session.delete(db_tag)
                session.commit()
                logger.info(f"Deleted tag {tag_id}")
                return True

    def delete_unused(self, user_id: str) -> int:
        """Delete the user's tags that are not attached to any note.

        Returns:
            Number of tags deleted.
        """
        require_user_id(user_id)
        with storage_errors("delete_unused_tags", ErrorCode.STORAGE_DELETE_FAILED):
            with self.session_factory() as session:
                unused_tags = session.scalars(
                    select(DBTag)
                    .outerjoin(note_tags, DBTag.id == note_tags.c.tag_id)
                    .where(DBTag.user_id == user_id, note_tags.c.note_id.is_(None))
                ).all()

                for tag in unused_tags:
                    session.delete(tag)
                session.commit()
                return len(unused_tags)

    @staticmethod
    def _association_exists(session, note_id: int, tag_id: int) -> bool:
        return session.scalar(
            select(note_tags.c.note_id).where(
                note_tags.c.note_id == note_id, note_tags.c.tag_id == tag_id
            )
        ) is not None
