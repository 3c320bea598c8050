"""Data models for notesmart.

These are the plain records handed across the library boundary. None of them
holds a back-reference: a Note knows its notebook by id (plus an optional
resolved summary without notes), and a Notebook only lists notes in the
explicit ``NotebookWithNotes`` view.
"""

import datetime
from datetime import timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

USER_ID_MAX_LENGTH = 450
DISPLAY_NAME_MIN_LENGTH = 3
DISPLAY_NAME_MAX_LENGTH = 50
NOTEBOOK_TITLE_MAX_LENGTH = 100
NOTE_TITLE_MAX_LENGTH = 200
TAG_NAME_MAX_LENGTH = 50


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands DateTime columns back without tzinfo; every value the
    repositories write is UTC, so naive values are tagged as such.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def _not_blank(value: str, label: str) -> str:
    if not value.strip():
        raise ValueError(f"{label} cannot be empty")
    return value


class User(BaseModel):
    """An application user, as registered by the identity provider."""

    id: str = Field(..., min_length=1, max_length=USER_ID_MAX_LENGTH)
    display_name: str = Field(
        ..., min_length=DISPLAY_NAME_MIN_LENGTH, max_length=DISPLAY_NAME_MAX_LENGTH
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the user was created (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _not_blank(v, "User ID")


class Tag(BaseModel):
    """A tag for categorizing notes, scoped to the user that owns it."""

    id: Optional[int] = Field(default=None, description="Database ID")
    name: str = Field(..., max_length=TAG_NAME_MAX_LENGTH, description="Tag name")
    user_id: Optional[str] = Field(default=None, description="Owning user (scope)")

    model_config = {"validate_assignment": True, "frozen": True}

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Strip surrounding whitespace and reject empty names."""
        if not isinstance(v, str):
            raise ValueError("Tag name must be a string")
        v = v.strip()
        if not v:
            raise ValueError("Tag name cannot be empty")
        return v

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class TagUsage(BaseModel):
    """A tag together with the number of the owner's notes carrying it."""

    id: int
    name: str
    count: int = Field(default=0, ge=0)


class Notebook(BaseModel):
    """A notebook grouping notes for one user."""

    id: Optional[int] = Field(default=None, description="Database ID")
    title: str = Field(..., min_length=1, max_length=NOTEBOOK_TITLE_MAX_LENGTH)
    user_id: Optional[str] = Field(
        default=None, description="Owning user; stamped by the repository"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the notebook was created (UTC)"
    )
    note_count: Optional[int] = Field(
        default=None, ge=0, description="Notes in this notebook, when counted"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        return _not_blank(v, "Title")


class Note(BaseModel):
    """A note inside a notebook."""

    id: Optional[int] = Field(default=None, description="Database ID")
    title: str = Field(..., min_length=1, max_length=NOTE_TITLE_MAX_LENGTH)
    content: str = Field(default="", description="Free-text body of the note")
    notebook_id: int = Field(..., description="ID of the owning notebook")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )
    notebook: Optional[Notebook] = Field(
        default=None, description="Resolved owning notebook (single-note reads only)"
    )
    tags: List[Tag] = Field(default_factory=list, description="Tags on this note")

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate that the title is not empty."""
        return _not_blank(v, "Title")

    @field_validator("content", mode="before")
    @classmethod
    def validate_content(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    @property
    def tag_names(self) -> List[str]:
        return [tag.name for tag in self.tags]


class NotebookWithNotes(Notebook):
    """A notebook together with its notes, newest first."""

    notes: List[Note] = Field(default_factory=list)


class UserStatistics(BaseModel):
    """Aggregate figures for one user's notebooks, notes and tags."""

    total_notes: int = 0
    total_notebooks: int = 0
    total_tags: int = 0
    notes_per_notebook: Dict[str, int] = Field(default_factory=dict)
    tag_usage_frequency: Dict[str, int] = Field(default_factory=dict)
