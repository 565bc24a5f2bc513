"""Client-side wrappers that turn engine payloads into plain lists.

Each helper releases the payload it receives on every exit path and
raises the matching :class:`~noted.exceptions.NotedError` when the engine
reports a failure.
"""
from typing import List

from noted.engine import NotesEngine
from noted.models.schema import Note, SearchResult


def fetch_notes(engine: NotesEngine) -> List[Note]:
    """All notes, most recently updated first."""
    with engine.get_all().unwrap() as payload:
        return list(payload)


def fetch_search(engine: NotesEngine, query: str, limit: int) -> List[SearchResult]:
    """Ranked search results for ``query``."""
    with engine.search(query, limit).unwrap() as payload:
        return list(payload)
