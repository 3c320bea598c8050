"""
notesmart - ownership-scoped data core for a personal note-taking application.

Users own notebooks, notebooks own notes, and notes are tagged for retrieval.
Every read and write goes through repositories that take the acting user's id
explicitly, so the core never depends on an ambient "current user".
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notesmart")
except PackageNotFoundError:
    __version__ = "0.3.0"
