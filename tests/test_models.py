"""Tests for the pydantic data models and the note clock."""
import datetime
from datetime import timezone

import pytest
from pydantic import ValidationError

from noted.models.schema import (
    MAX_NOTE_ID,
    PREVIEW_LENGTH,
    Note,
    NoteClock,
    SearchResult,
    ensure_timezone_aware,
)


class TestNote:
    """Note model validation and helpers."""

    def test_defaults(self):
        note = Note(id=1)
        assert note.title == ""
        assert note.content == ""
        assert note.tags == []
        assert note.created_at.tzinfo is not None

    @pytest.mark.parametrize("bad_id", [0, -3, MAX_NOTE_ID + 1])
    def test_id_range(self, bad_id):
        with pytest.raises(ValidationError):
            Note(id=bad_id)

    def test_extra_fields_are_forbidden(self):
        with pytest.raises(ValidationError):
            Note(id=1, colour="red")

    def test_naive_timestamps_become_utc(self):
        naive = datetime.datetime(2024, 5, 1, 12, 0, 0)
        note = Note(id=1, created_at=naive, updated_at=naive)
        assert note.created_at.tzinfo == timezone.utc
        assert note.updated_at.replace(tzinfo=None) == naive

    def test_preview_truncates_long_content(self):
        note = Note(id=1, content="x" * (PREVIEW_LENGTH + 20))
        assert note.preview == "x" * PREVIEW_LENGTH + "..."

    def test_preview_keeps_short_content(self):
        assert Note(id=1, content="short").preview == "short"

    def test_is_empty(self):
        assert Note(id=1, title="  ", content="\n").is_empty
        assert not Note(id=1, title="t").is_empty
        assert not Note(id=1, content="c").is_empty


class TestSearchResult:
    """SearchResult model."""

    def test_rank_cannot_be_negative(self):
        with pytest.raises(ValidationError):
            SearchResult(note_id=1, rank=-0.5)

    def test_is_frozen(self):
        result = SearchResult(note_id=1, rank=1.0, snippet="s")
        with pytest.raises(ValidationError):
            result.rank = 2.0


class TestNoteClock:
    """Strictly increasing timestamps."""

    def test_readings_strictly_increase(self):
        clock = NoteClock()
        readings = [clock.now() for _ in range(200)]
        assert all(a < b for a, b in zip(readings, readings[1:]))

    def test_seed_in_the_future_is_respected(self):
        clock = NoteClock()
        future = datetime.datetime.now(timezone.utc) + datetime.timedelta(hours=1)
        clock.seed(future)
        assert clock.now() > future

    def test_seed_with_naive_value(self):
        clock = NoteClock()
        future = datetime.datetime.now(timezone.utc).replace(tzinfo=None) + datetime.timedelta(hours=1)
        clock.seed(future)
        assert clock.now() > ensure_timezone_aware(future)

    def test_seed_none_is_ignored(self):
        clock = NoteClock()
        clock.seed(None)
        assert clock.now().tzinfo is not None

    def test_older_seed_does_not_move_clock_back(self):
        clock = NoteClock()
        first = clock.now()
        clock.seed(first - datetime.timedelta(days=1))
        assert clock.now() > first
