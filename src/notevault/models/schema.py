"""Data models for the note vault."""

import datetime
import uuid
from datetime import timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

DEFAULT_TITLE = "Untitled"
DEFAULT_COLOR = "default"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Files written by other tools may carry timestamps without an offset;
    those are assumed to be UTC.

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


def generate_id() -> str:
    """Generate an opaque, globally unique note ID (a random UUID4 string)."""
    return str(uuid.uuid4())


def _dedupe(values: List[str]) -> List[str]:
    """Drop empty strings and repeats, keeping first-seen order."""
    return list(dict.fromkeys(v for v in values if v))


class Note(BaseModel):
    """A single note in the vault."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(default=DEFAULT_TITLE, description="Display title of the note")
    content: str = Field(default="", description="Markdown body below the frontmatter")
    tags: List[str] = Field(default_factory=list, description="Tags (set semantics)")
    path: Optional[str] = Field(
        default=None,
        description="Vault-relative file path; derived from the title when unset",
    )
    created: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    modified: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last modified (UTC)"
    )
    is_pinned: bool = Field(default=False, description="Pinned to the top of lists")
    is_archived: bool = Field(default=False, description="Hidden from active lists")
    color: str = Field(default=DEFAULT_COLOR, description="Free-form color label")
    links: List[str] = Field(
        default_factory=list, description="Outbound references to other notes"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Fall back to the default title instead of storing an empty one."""
        if not v.strip():
            return DEFAULT_TITLE
        return v

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        return v.strip() or DEFAULT_COLOR

    @field_validator("tags", "links")
    @classmethod
    def validate_unique(cls, v: List[str]) -> List[str]:
        """Tags and links behave as sets: no duplicates, no empty entries."""
        return _dedupe(v)

    @field_validator("created")
    @classmethod
    def validate_created(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @field_validator("modified")
    @classmethod
    def validate_modified(
        cls, v: datetime.datetime, info: ValidationInfo
    ) -> datetime.datetime:
        """Keep ``modified >= created``."""
        v = ensure_timezone_aware(v)
        created = info.data.get("created")
        if created is not None and v < created:
            return created
        return v

    def touch(self) -> None:
        """Mark the note as modified now."""
        self.modified = utc_now()

    def add_tag(self, tag: str) -> None:
        """Add a tag to the note. Adding a tag that is already present is a no-op."""
        if tag not in self.tags:
            self.tags = self.tags + [tag]
            self.touch()

    def remove_tag(self, tag: str) -> None:
        """Remove a tag from the note.

        ``modified`` is refreshed even when the tag was not present.
        """
        self.tags = [t for t in self.tags if t != tag]
        self.touch()

    def add_link(self, target: str) -> None:
        """Add an outbound reference. Targets are not checked for existence."""
        if target not in self.links:
            self.links = self.links + [target]
            self.touch()

    def remove_link(self, target: str) -> None:
        """Remove an outbound reference."""
        self.links = [link for link in self.links if link != target]
        self.touch()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the note to a JSON-ready dictionary."""
        return self.model_dump(mode="json")
