"""Tests for concurrent access to a shared SQLite database.

Each worker builds its own repository on the shared engine, the way
independent request handlers would, and the results are compared afterwards.
"""
import threading
from typing import List

from sqlalchemy import func, select

from notesmart.exceptions import DuplicateNameError
from notesmart.models.db_models import DBTag, get_session_factory, note_tags
from notesmart.models.schema import Note, Notebook, Tag
from notesmart.storage.note_repository import NoteRepository
from notesmart.storage.tag_repository import TagRepository

U1 = "user-one"
WORKERS = 8


def run_concurrently(target, count: int = WORKERS):
    barrier = threading.Barrier(count)

    def worker(index: int):
        barrier.wait()
        target(index)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)


class TestConcurrentTags:
    """Races on tag creation, association and renaming."""

    def test_get_or_create_converges(self, engine, users):
        results: List[Tag] = []
        errors: List[Exception] = []
        lock = threading.Lock()

        def create(index: int):
            try:
                tag = TagRepository(engine=engine).get_or_create("urgent", U1)
                with lock:
                    results.append(tag)
            except Exception as e:
                with lock:
                    errors.append(e)

        run_concurrently(create)

        assert errors == []
        assert len(results) == WORKERS
        assert len({tag.id for tag in results}) == 1
        with get_session_factory(engine)() as session:
            assert session.scalar(
                select(func.count()).select_from(DBTag).where(DBTag.name == "urgent")
            ) == 1

    def test_associate_converges(self, engine, notebook_repository, note_repository,
                                 tag_repository):
        notebook = notebook_repository.create(Notebook(title="Work"), U1)
        note = note_repository.create(Note(title="Plan", notebook_id=notebook.id), U1)
        tag = tag_repository.get_or_create("urgent", U1)
        inserted: List[bool] = []
        errors: List[Exception] = []
        lock = threading.Lock()

        def associate(index: int):
            try:
                created = TagRepository(engine=engine).associate(note.id, tag.id, U1)
                with lock:
                    inserted.append(created)
            except Exception as e:
                with lock:
                    errors.append(e)

        run_concurrently(associate)

        assert errors == []
        assert inserted.count(True) == 1
        with get_session_factory(engine)() as session:
            assert session.scalar(select(func.count()).select_from(note_tags)) == 1

    def test_concurrent_renames_to_same_name(self, engine, tag_repository):
        tags = [tag_repository.get_or_create(f"tag-{i}", U1) for i in range(WORKERS)]
        renamed: List[Tag] = []
        duplicates: List[DuplicateNameError] = []
        errors: List[Exception] = []
        lock = threading.Lock()

        def rename(index: int):
            try:
                tag = TagRepository(engine=engine).update(tags[index].id, "winner", U1)
                with lock:
                    renamed.append(tag)
            except DuplicateNameError as e:
                with lock:
                    duplicates.append(e)
            except Exception as e:
                with lock:
                    errors.append(e)

        run_concurrently(rename)

        assert errors == []
        assert len(renamed) == 1
        assert len(duplicates) == WORKERS - 1
        names = [t.name for t in tag_repository.get_all(U1)]
        assert names.count("winner") == 1
        assert len(names) == WORKERS


class TestConcurrentNotes:
    def test_concurrent_autosaves(self, engine, notebook_repository, note_repository):
        notebook = notebook_repository.create(Notebook(title="Work"), U1)
        note = note_repository.create(Note(title="Draft", notebook_id=notebook.id), U1)
        outcomes: List[bool] = []
        errors: List[Exception] = []
        lock = threading.Lock()

        def autosave(index: int):
            try:
                ok = NoteRepository(engine=engine).quick_update_content(
                    note.id, f"revision {index}", U1
                )
                with lock:
                    outcomes.append(ok)
            except Exception as e:
                with lock:
                    errors.append(e)

        run_concurrently(autosave)

        assert errors == []
        assert outcomes == [True] * WORKERS
        final = note_repository.get(note.id, U1).content
        assert final in {f"revision {i}" for i in range(WORKERS)}
