"""Data models for the Noted engine."""

import datetime
import threading
from datetime import timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# Largest id the boundary can carry (64-bit unsigned)
MAX_NOTE_ID = 2**64 - 1

# Largest INTEGER SQLite can store; no row id can exceed it
MAX_ROWID = 2**63 - 1

PREVIEW_LENGTH = 100


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite stores datetimes without zone information, so every value read
    back from the database passes through here.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class NoteClock:
    """Strictly increasing UTC clock for note timestamps.

    Two readings never compare equal: when the wall clock has not moved
    past the previous reading (same microsecond, or the clock stepped
    backwards) the previous reading plus one microsecond is returned.
    """

    _TICK = datetime.timedelta(microseconds=1)

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Optional[datetime.datetime] = None

    def seed(self, last: Optional[datetime.datetime]) -> None:
        """Make later readings come after ``last`` (e.g. newest stored timestamp)."""
        if last is None:
            return
        last = ensure_timezone_aware(last)
        with self._lock:
            if self._last is None or last > self._last:
                self._last = last

    def now(self) -> datetime.datetime:
        with self._lock:
            current = utc_now()
            if self._last is not None and current <= self._last:
                current = self._last + self._TICK
            self._last = current
            return current


class Note(BaseModel):
    """A stored note."""

    id: int = Field(..., gt=0, le=MAX_NOTE_ID, description="Store-assigned id")
    title: str = Field(default="", description="Title of the note")
    content: str = Field(default="", description="Content of the note")
    tags: List[str] = Field(default_factory=list, description="Ordered tags")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last updated (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamp(cls, v: datetime.datetime) -> datetime.datetime:
        """Store every timestamp as timezone-aware UTC."""
        return ensure_timezone_aware(v)

    @property
    def preview(self) -> str:
        """Content truncated for list display."""
        if len(self.content) > PREVIEW_LENGTH:
            return self.content[:PREVIEW_LENGTH] + "..."
        return self.content

    @property
    def is_empty(self) -> bool:
        """True when both title and content are blank."""
        return not self.title.strip() and not self.content.strip()


class SearchResult(BaseModel):
    """A ranked reference to a note matching a query.

    The note may have been deleted since the search ran; callers must
    tolerate a miss when resolving ``note_id``.
    """

    note_id: int = Field(..., gt=0, le=MAX_NOTE_ID)
    rank: float = Field(..., ge=0.0, description="Relevance, higher is better")
    snippet: str = Field(default="", description="Highlighted excerpt")
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="Note timestamp used for tie-breaks"
    )

    model_config = {"frozen": True}
