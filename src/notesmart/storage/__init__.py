"""Storage layer for notesmart."""

from notesmart.storage.base import Repository
from notesmart.storage.note_repository import NoteRepository
from notesmart.storage.notebook_repository import NotebookRepository
from notesmart.storage.tag_repository import TagRepository
from notesmart.storage.user_repository import UserRepository

__all__ = [
    "Repository",
    "NoteRepository",
    "NotebookRepository",
    "TagRepository",
    "UserRepository",
]
