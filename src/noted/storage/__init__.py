"""Storage layer for the Noted engine."""

from noted.storage.fts_index import FtsIndex
from noted.storage.locking import ReadWriteLock
from noted.storage.note_repository import NoteRepository

__all__ = [
    "FtsIndex",
    "NoteRepository",
    "ReadWriteLock",
]
