"""Data models for tagnotes."""

import datetime
import os
import threading
from datetime import timezone
from enum import Enum
from typing import Iterable, Tuple

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(utc_now().timestamp() * 1000)


def dedupe_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    """Drop repeated tag names, keeping each name at its earliest position.

    Example:
        dedupe_tags(["b", "x", "b"]) == ("b", "x")
    """
    seen = set()
    result = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return tuple(result)


def validate_tag_name(value: str) -> str:
    """Validate a tag name.

    Tag names are case-sensitive and may contain any characters, but the
    empty string is reserved as the "no tag filter" value and is rejected.

    Raises:
        ValueError: If the name is not a non-empty string
    """
    if not isinstance(value, str):
        raise ValueError(f"Tag name must be a string, got {type(value).__name__}")
    if not value:
        raise ValueError("Tag name cannot be empty")
    return value


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a timestamp-based note ID with guaranteed uniqueness.

    Returns:
        A string in format "YYYYMMDDTHHMMSSsssssscccccc" where:
        - YYYYMMDD is the date
        - T is the ISO 8601 date/time separator
        - HHMMSS is the time (hours, minutes, seconds)
        - ssssss is the 6-digit microsecond component
        - cccccc is a 6-digit counter for same-microsecond uniqueness
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        # If multiple IDs generated in same microsecond, increment counter
        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        date_time = now.strftime("%Y%m%dT%H%M%S")
        return f"{date_time}{now.microsecond:06d}{_counter:06d}"


class Note(BaseModel):
    """A single user-authored note.

    Notes are immutable: the store replaces a note with an updated copy
    (``model_copy(update=...)``) instead of editing it in place, so a note
    handed to a caller never changes underneath them.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    text: str = Field(..., description="Text of the note")
    tags: Tuple[str, ...] = Field(
        default_factory=tuple, description="Tag names, in the order they were set"
    )
    last_update: int = Field(
        default_factory=now_ms,
        description="Last modification time in milliseconds since the epoch",
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        """Accept numeric IDs from persisted data and normalise them to strings."""
        if isinstance(v, bool):
            raise ValueError("Note ID must be a string or integer")
        if isinstance(v, int):
            v = str(v)
        if isinstance(v, str) and not v.strip():
            raise ValueError("Note ID cannot be empty")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Validate tag names and drop duplicates."""
        for tag in v:
            validate_tag_name(tag)
        return dedupe_tags(v)

    def has_tag(self, tag: str) -> bool:
        """Check whether the note carries the exact tag name."""
        return tag in self.tags


class SortOrder(str, Enum):
    """Direction of the last_update ordering."""

    ASCENDING = "ascending"  # Oldest first
    DESCENDING = "descending"  # Newest first


class FilterSpec(BaseModel):
    """Which notes to show, and in which order.

    An empty ``includes`` or ``tag`` matches every note.
    """

    sort: SortOrder = Field(default=SortOrder.DESCENDING, description="Sort direction")
    includes: str = Field(default="", description="Case-insensitive regex over note text")
    tag: str = Field(default="", description="Exact tag the note must carry")

    model_config = {"frozen": True, "extra": "forbid"}
