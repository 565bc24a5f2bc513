"""Repository for note storage and retrieval."""

import logging
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from noted.config import NotedConfig, config as default_config
from noted.exceptions import InvalidParamError, StorageError
from noted.models.db_models import DBNote, get_session_factory, init_db
from noted.models.schema import (
    MAX_NOTE_ID,
    MAX_ROWID,
    Note,
    NoteClock,
    SearchResult,
    ensure_timezone_aware,
)
from noted.storage.fts_index import FtsIndex
from noted.storage.locking import ReadWriteLock

logger = logging.getLogger(__name__)

_DB_ERRORS = (sqlite3.Error, SQLAlchemyError, OSError, OverflowError)


def _require_text(value: Optional[str], field: str) -> str:
    if value is None:
        raise InvalidParamError(f"{field} is required", field=field)
    if not isinstance(value, str):
        raise InvalidParamError(f"{field} must be text", field=field, value=value)
    return value


def _require_tags(tags: Optional[Sequence[str]]) -> List[str]:
    if tags is None or isinstance(tags, str):
        raise InvalidParamError("tags must be a sequence of strings", field="tags")
    result = list(tags)
    for tag in result:
        if not isinstance(tag, str):
            raise InvalidParamError("tags must be strings", field="tags", value=tag)
    return result


class NoteRepository:
    """Durable note store with a transactionally maintained search index.

    Notes live in a single SQLite file. The FTS5 index is maintained by
    triggers inside the same transaction as every write, and a
    single-writer, multiple-reader lock makes each mutation (storage plus
    index) appear atomic to concurrent readers.
    """

    def __init__(
        self,
        database_path: Path,
        settings: Optional[NotedConfig] = None,
    ):
        """Open or create the store at ``database_path``.

        Args:
            database_path: Path of the SQLite file. Parent directories are
                created when missing.
            settings: Search/snippet settings. Defaults to the global config.

        Raises:
            InvalidParamError: If the path is empty.
            StorageError: If the store cannot be created or opened.
        """
        if database_path is None or not str(database_path).strip():
            raise InvalidParamError("Database path is required", field="path")

        self.settings = settings or default_config
        self.database_path = Path(database_path).expanduser()
        self._lock = ReadWriteLock()
        self._clock = NoteClock()
        self._closed = False

        try:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = init_db(self.database_path)
        except _DB_ERRORS as e:
            raise StorageError(
                "Failed to open note store",
                operation="open",
                path=str(self.database_path),
                original_error=e,
            ) from e

        self.session_factory = get_session_factory(self.engine)
        self._fts = FtsIndex(
            self.engine,
            self.session_factory,
            title_weight=self.settings.title_weight,
            content_weight=self.settings.content_weight,
            tags_weight=self.settings.tags_weight,
            prefix_last_term=self.settings.search_prefix_last_term,
            snippet_length=self.settings.snippet_length,
            highlight_start=self.settings.highlight_start,
            highlight_end=self.settings.highlight_end,
        )

        # Later timestamps must sort after everything already stored
        try:
            with self.session_factory() as session:
                newest = session.scalar(select(func.max(DBNote.updated_at)))
        except _DB_ERRORS as e:
            self.engine.dispose()
            raise StorageError(
                "Failed to read note store",
                operation="open",
                path=str(self.database_path),
                original_error=e,
            ) from e
        self._clock.seed(newest)

        logger.info(f"NoteRepository opened: {self.database_path}")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    def close(self) -> None:
        """Wait for in-flight calls, then release the database engine.

        Safe to call more than once.
        """
        with self._lock.write_locked():
            if self._closed:
                return
            self._closed = True
            self.engine.dispose()
        logger.info(f"NoteRepository closed: {self.database_path}")

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidParamError("Note store is closed")

    @staticmethod
    def _check_id(note_id: Any) -> int:
        if isinstance(note_id, bool) or not isinstance(note_id, int):
            raise InvalidParamError("Note id must be an integer", field="id", value=note_id)
        if note_id <= 0 or note_id > MAX_NOTE_ID:
            raise InvalidParamError("Note id is out of range", field="id", value=note_id)
        return note_id

    @staticmethod
    def _db_note_to_model(db_note: DBNote) -> Note:
        """Convert a SQLAlchemy DBNote to a domain Note."""
        return Note(
            id=db_note.id,
            title=db_note.title or "",
            content=db_note.content or "",
            tags=list(db_note.tags or []),
            created_at=ensure_timezone_aware(db_note.created_at),
            updated_at=ensure_timezone_aware(db_note.updated_at),
        )

    def _mutate(self, note_id: int, operation: str, apply) -> bool:
        """Run ``apply(db_note, now)`` on an existing note in one transaction.

        Returns False without writing when the note does not exist.
        """
        with self._lock.write_locked():
            self._check_open()
            if note_id > MAX_ROWID:
                return False
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, note_id)
                    if db_note is None:
                        return False
                    apply(db_note, self._clock.now())
                    session.commit()
            except _DB_ERRORS as e:
                logger.error(f"Failed to {operation} note {note_id}: {e}")
                raise StorageError(
                    f"Failed to {operation} note {note_id}",
                    operation=operation,
                    original_error=e,
                ) from e
        return True

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, title: str, content: str) -> int:
        """Create a note and index it before returning its id."""
        title = _require_text(title, "title")
        content = _require_text(content, "content")

        with self._lock.write_locked():
            self._check_open()
            now = self._clock.now()
            try:
                with self.session_factory() as session:
                    db_note = DBNote(
                        title=title,
                        content=content,
                        tags=[],
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(db_note)
                    session.commit()
                    note_id = db_note.id
            except _DB_ERRORS as e:
                logger.error(f"Failed to create note: {e}")
                raise StorageError(
                    "Failed to create note", operation="create", original_error=e
                ) from e

        logger.debug(f"Created note {note_id}")
        return note_id

    def get(self, note_id: int) -> Optional[Note]:
        """Get a note by id, or None if it does not exist."""
        note_id = self._check_id(note_id)
        with self._lock.read_locked():
            self._check_open()
            if note_id > MAX_ROWID:
                return None
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, note_id)
                    return self._db_note_to_model(db_note) if db_note else None
            except _DB_ERRORS as e:
                raise StorageError(
                    f"Failed to read note {note_id}", operation="read", original_error=e
                ) from e

    def get_all(self) -> List[Note]:
        """Get every live note, most recently updated first."""
        with self._lock.read_locked():
            self._check_open()
            try:
                with self.session_factory() as session:
                    query = select(DBNote).order_by(
                        DBNote.updated_at.desc(), DBNote.id.desc()
                    )
                    db_notes = session.execute(query).scalars().all()
                    return [self._db_note_to_model(n) for n in db_notes]
            except _DB_ERRORS as e:
                raise StorageError(
                    "Failed to read notes", operation="get_all", original_error=e
                ) from e

    def count(self) -> int:
        """Number of live notes."""
        with self._lock.read_locked():
            self._check_open()
            try:
                with self.session_factory() as session:
                    return session.scalar(select(func.count()).select_from(DBNote))
            except _DB_ERRORS as e:
                raise StorageError(
                    "Failed to count notes", operation="count", original_error=e
                ) from e

    def update(self, note_id: int, title: str, content: str) -> bool:
        """Replace a note's title and content and reindex it.

        Returns:
            False (and changes nothing) if the note does not exist.
        """
        note_id = self._check_id(note_id)
        title = _require_text(title, "title")
        content = _require_text(content, "content")

        def apply(db_note: DBNote, now) -> None:
            db_note.title = title
            db_note.content = content
            db_note.updated_at = now

        return self._mutate(note_id, "update", apply)

    def set_tags(self, note_id: int, tags: Sequence[str]) -> bool:
        """Replace a note's tags (order kept, duplicates allowed) and reindex it."""
        note_id = self._check_id(note_id)
        tags = _require_tags(tags)

        def apply(db_note: DBNote, now) -> None:
            db_note.tags = tags
            db_note.updated_at = now

        return self._mutate(note_id, "set_tags", apply)

    def delete(self, note_id: int) -> bool:
        """Delete a note and its index entries.

        Returns:
            False if the note does not exist.
        """
        note_id = self._check_id(note_id)
        with self._lock.write_locked():
            self._check_open()
            if note_id > MAX_ROWID:
                return False
            try:
                with self.session_factory() as session:
                    db_note = session.get(DBNote, note_id)
                    if db_note is None:
                        return False
                    session.delete(db_note)
                    session.commit()
            except _DB_ERRORS as e:
                logger.error(f"Failed to delete note {note_id}: {e}")
                raise StorageError(
                    f"Failed to delete note {note_id}",
                    operation="delete",
                    original_error=e,
                ) from e
        logger.debug(f"Deleted note {note_id}")
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int) -> List[SearchResult]:
        """Ranked full-text search (delegates to the FTS index)."""
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidParamError("Search limit must be an integer", field="limit")
        with self._lock.read_locked():
            self._check_open()
            return self._fts.search(query, limit)

    def rebuild_index(self) -> int:
        """Rebuild the search index from stored notes."""
        with self._lock.write_locked():
            self._check_open()
            try:
                count = self._fts.rebuild()
            except _DB_ERRORS as e:
                raise StorageError(
                    "Failed to rebuild search index",
                    operation="rebuild_index",
                    original_error=e,
                ) from e
        logger.info(f"Rebuilt search index with {count} notes")
        return count

    def check_integrity(self) -> bool:
        """Whether the search index is consistent with stored notes."""
        with self._lock.read_locked():
            self._check_open()
            return self._fts.check_integrity()
