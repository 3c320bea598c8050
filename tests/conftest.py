"""Common test fixtures for notesmart."""

import tempfile
from pathlib import Path

import pytest

from notesmart.config import config
from notesmart.models.schema import User
from notesmart.models.db_models import init_db
from notesmart.observability import metrics
from notesmart.services.notes_service import NotesService
from notesmart.services.statistics_service import StatisticsService
from notesmart.storage.note_repository import NoteRepository
from notesmart.storage.notebook_repository import NotebookRepository
from notesmart.storage.tag_repository import TagRepository
from notesmart.storage.user_repository import UserRepository

U1 = "user-one"
U2 = "user-two"


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        with tempfile.TemporaryDirectory() as log_dir:
            yield Path(db_dir), Path(log_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Point config at temporary paths (auto-restored even on crash)."""
    db_dir, log_dir = temp_dirs
    monkeypatch.setattr(config, "database_path", db_dir / "test_notesmart.db")
    monkeypatch.setattr(config, "database_url", None)
    monkeypatch.setattr(config, "log_dir", log_dir)
    yield config


@pytest.fixture
def engine(test_config):
    """File-backed SQLite engine with the full schema."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def user_repository(engine):
    return UserRepository(engine=engine)


@pytest.fixture
def users(user_repository):
    """Register the two users most tests act as."""
    return (
        user_repository.ensure(User(id=U1, display_name="Alice")),
        user_repository.ensure(User(id=U2, display_name="Bob")),
    )


@pytest.fixture
def notebook_repository(engine, users):
    return NotebookRepository(engine=engine)


@pytest.fixture
def note_repository(engine, users):
    return NoteRepository(engine=engine)


@pytest.fixture
def tag_repository(engine, users):
    return TagRepository(engine=engine)


@pytest.fixture
def statistics_service(engine, users):
    return StatisticsService(engine=engine)


@pytest.fixture
def notes_service(engine, users):
    """Create a test NotesService sharing the test engine."""
    return NotesService(engine=engine)
