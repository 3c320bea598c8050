"""Per-user statistics over notebooks, notes and tags."""
import logging
from collections import Counter
from typing import Optional

from sqlalchemy import func, literal, select, union_all
from sqlalchemy.engine import Engine

from notesmart.models.db_models import (DBNote, DBNotebook, DBTag,
                                        get_session_factory, init_db,
                                        note_tags)
from notesmart.models.schema import UserStatistics
from notesmart.observability import timed_operation
from notesmart.storage.base import require_user_id, storage_errors

logger = logging.getLogger(__name__)

_NOTEBOOK = "notebook"
_TAG = "tag"


class StatisticsService:
    """Computes the figures behind a user's statistics page.

    Notes counted per notebook and associations counted per tag are fetched
    as one compound statement, so both halves come from the same snapshot of
    the store. The totals are derived from those same rows rather than counted
    separately: ``total_notes`` always equals the sum of ``notes_per_notebook``
    and ``total_tags`` always equals the number of entries in
    ``tag_usage_frequency``.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)

    def _counts(self, user_id: str):
        notebook_counts = (
            select(
                literal(_NOTEBOOK).label("kind"),
                DBNotebook.title.label("name"),
                func.count(DBNote.id).label("total"),
            )
            .outerjoin(DBNote, DBNote.notebook_id == DBNotebook.id)
            .where(DBNotebook.user_id == user_id)
            .group_by(DBNotebook.id, DBNotebook.title)
        )
        tag_counts = (
            select(
                literal(_TAG).label("kind"),
                DBTag.name.label("name"),
                func.count(note_tags.c.note_id).label("total"),
            )
            .select_from(note_tags)
            .join(DBTag, DBTag.id == note_tags.c.tag_id)
            .join(DBNote, DBNote.id == note_tags.c.note_id)
            .join(DBNotebook, DBNotebook.id == DBNote.notebook_id)
            .where(DBNotebook.user_id == user_id)
            .group_by(DBTag.id, DBTag.name)
        )
        return union_all(notebook_counts, tag_counts)

    def get_user_statistics(self, user_id: str) -> UserStatistics:
        """Compute statistics for a user; zeros and empty maps when they have no data.

        Notebooks that share a title are reported under that title with their
        note counts added together. Tags attached to no note are not counted.
        """
        require_user_id(user_id)
        with timed_operation("get_user_statistics", user_id=user_id) as op:
            with storage_errors("get_user_statistics"):
                with self.session_factory() as session:
                    rows = session.execute(self._counts(user_id)).all()

            notebook_rows = [(name, total) for kind, name, total in rows if kind == _NOTEBOOK]
            notes_per_notebook: Counter = Counter()
            for title, count in notebook_rows:
                notes_per_notebook[title] += count
            tag_usage = {name: total for kind, name, total in rows if kind == _TAG}

            stats = UserStatistics(
                total_notes=sum(count for _, count in notebook_rows),
                total_notebooks=len(notebook_rows),
                total_tags=len(tag_usage),
                notes_per_notebook=dict(notes_per_notebook),
                tag_usage_frequency=tag_usage,
            )
            op["total_notes"] = stats.total_notes
            return stats
