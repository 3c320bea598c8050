"""Tests for NotebookRepository."""
import pytest
from sqlalchemy import func, select

from notesmart.exceptions import ErrorCode, ValidationError
from notesmart.models.db_models import DBNote, get_session_factory, note_tags
from notesmart.models.schema import Note, Notebook

U1 = "user-one"
U2 = "user-two"


def count_rows(engine, statement):
    with get_session_factory(engine)() as session:
        return session.scalar(statement)


class TestNotebookCreate:
    """Tests for NotebookRepository.create()."""

    def test_create_notebook(self, notebook_repository):
        created = notebook_repository.create(Notebook(title="Work"), U1)

        assert created.id is not None
        assert created.title == "Work"
        assert created.user_id == U1
        assert created.note_count == 0
        assert created.created_at.tzinfo is not None

    def test_owner_is_stamped(self, notebook_repository):
        """The acting user wins over any user_id on the record."""
        created = notebook_repository.create(Notebook(title="Work", user_id=U2), U1)
        assert created.user_id == U1
        assert notebook_repository.get(created.id, U2) is None

    def test_unregistered_user_rejected(self, notebook_repository):
        with pytest.raises(ValidationError) as exc_info:
            notebook_repository.create(Notebook(title="Work"), "nobody")
        assert exc_info.value.code == ErrorCode.INVALID_USER_ID

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_blank_user_rejected(self, notebook_repository, user_id):
        with pytest.raises(ValidationError) as exc_info:
            notebook_repository.create(Notebook(title="Work"), user_id)
        assert exc_info.value.code == ErrorCode.INVALID_USER_ID


class TestNotebookGet:
    """Tests for get(), get_with_notes() and get_all()."""

    def test_get_counts_notes(self, notebook_repository, note_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)
        note_repository.create(Note(title="A", notebook_id=nb.id), U1)
        note_repository.create(Note(title="B", notebook_id=nb.id), U1)

        fetched = notebook_repository.get(nb.id, U1)
        assert fetched.note_count == 2

    def test_get_missing(self, notebook_repository):
        assert notebook_repository.get(9999, U1) is None

    def test_get_with_notes_newest_first(self, notebook_repository, note_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)
        first = note_repository.create(Note(title="First", notebook_id=nb.id), U1)
        second = note_repository.create(Note(title="Second", notebook_id=nb.id), U1)
        note_repository.quick_update_content(first.id, "touched", U1)

        view = notebook_repository.get_with_notes(nb.id, U1)
        assert [n.id for n in view.notes] == [first.id, second.id]
        assert view.note_count == 2

    def test_get_with_notes_other_user(self, notebook_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)
        assert notebook_repository.get_with_notes(nb.id, U2) is None

    def test_get_all_sorted_with_counts(self, notebook_repository, note_repository):
        work = notebook_repository.create(Notebook(title="Work"), U1)
        notebook_repository.create(Notebook(title="Archive"), U1)
        notebook_repository.create(Notebook(title="Other"), U2)
        note_repository.create(Note(title="Plan", notebook_id=work.id), U1)

        notebooks = notebook_repository.get_all(U1)
        assert [(nb.title, nb.note_count) for nb in notebooks] == [
            ("Archive", 0),
            ("Work", 1),
        ]

    def test_get_all_empty(self, notebook_repository):
        assert notebook_repository.get_all(U1) == []

    def test_get_all_with_notes(self, notebook_repository, note_repository, tag_repository):
        work = notebook_repository.create(Notebook(title="Work"), U1)
        notebook_repository.create(Notebook(title="Archive"), U1)
        notebook_repository.create(Notebook(title="Other"), U2)
        first = note_repository.create(Note(title="First", notebook_id=work.id), U1)
        second = note_repository.create(Note(title="Second", notebook_id=work.id), U1)
        tag = tag_repository.get_or_create("urgent", U1)
        tag_repository.associate(first.id, tag.id, U1)

        views = notebook_repository.get_all_with_notes(U1)
        assert [(v.title, v.note_count) for v in views] == [("Archive", 0), ("Work", 2)]
        assert views[0].notes == []
        assert [n.id for n in views[1].notes] == [first.id, second.id]
        assert views[1].notes[0].tag_names == ["urgent"]

    def test_get_all_with_notes_empty(self, notebook_repository):
        assert notebook_repository.get_all_with_notes(U1) == []


class TestNotebookUpdate:
    """Tests for NotebookRepository.update()."""

    def test_rename(self, notebook_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)
        updated = notebook_repository.update(Notebook(id=nb.id, title="Job"), U1)

        assert updated.title == "Job"
        assert notebook_repository.get(nb.id, U1).title == "Job"

    def test_rename_other_users_notebook_is_noop(self, notebook_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)

        assert notebook_repository.update(Notebook(id=nb.id, title="Hijacked"), U2) is None
        assert notebook_repository.get(nb.id, U1).title == "Work"

    def test_update_requires_id(self, notebook_repository):
        with pytest.raises(ValidationError):
            notebook_repository.update(Notebook(title="Work"), U1)


class TestNotebookDelete:
    """Tests for NotebookRepository.delete()."""

    def test_delete_cascades(self, engine, notebook_repository, note_repository,
                             tag_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)
        keep = notebook_repository.create(Notebook(title="Keep"), U1)
        tag = tag_repository.get_or_create("urgent", U1)
        for i in range(3):
            note = note_repository.create(Note(title=f"N{i}", notebook_id=nb.id), U1)
            tag_repository.associate(note.id, tag.id, U1)
        kept = note_repository.create(Note(title="Kept", notebook_id=keep.id), U1)
        tag_repository.associate(kept.id, tag.id, U1)

        assert notebook_repository.delete(nb.id, U1) is True

        assert notebook_repository.get(nb.id, U1) is None
        assert count_rows(engine, select(func.count()).select_from(DBNote)) == 1
        assert count_rows(engine, select(func.count()).select_from(note_tags)) == 1
        # The tag survives; it still tags the note in the other notebook
        assert tag_repository.get(tag.id, U1) is not None

    def test_delete_other_users_notebook(self, notebook_repository):
        nb = notebook_repository.create(Notebook(title="Work"), U1)

        assert notebook_repository.delete(nb.id, U2) is False
        assert notebook_repository.get(nb.id, U1) is not None

    def test_delete_missing(self, notebook_repository):
        assert notebook_repository.delete(9999, U1) is False
