"""Synchronous engine boundary for the Noted core.

Every call returns an :class:`EngineResult` instead of raising. Results
that carry sequences (notes, search hits) hand out a :class:`Payload`
owned by the engine: the caller must release each payload exactly once,
either with :meth:`NotesEngine.release` or by using the payload as a
context manager::

    result = engine.search("alpha", 10)
    if result.ok:
        with result.value as hits:
            for hit in hits:
                ...

Failed calls never allocate a payload.
"""
import itertools
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterator,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from noted.config import NotedConfig
from noted.exceptions import (
    ErrorCode,
    InvalidParamError,
    NotedError,
    PayloadReleasedError,
    error_from_code,
)
from noted.models.schema import Note, SearchResult
from noted.observability import traced
from noted.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Payload(Generic[T]):
    """Engine-allocated result sequence with an explicit release.

    Reading a payload after it was released raises
    :class:`PayloadReleasedError`, as does releasing it twice.
    """

    def __init__(self, engine: "NotesEngine", handle: int, items: Tuple[T, ...]):
        self._engine = engine
        self._handle = handle
        self._items: Optional[Tuple[T, ...]] = items

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def released(self) -> bool:
        return self._items is None

    @property
    def items(self) -> Tuple[T, ...]:
        if self._items is None:
            raise PayloadReleasedError(self._handle)
        return self._items

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]

    def release(self) -> None:
        self._engine.release(self)

    def _drop(self) -> None:
        self._items = None

    def __enter__(self) -> "Payload[T]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.released:
            self.release()

    def __repr__(self) -> str:
        state = "released" if self.released else f"{len(self._items)} items"
        return f"<Payload(handle={self._handle}, {state})>"


@dataclass(frozen=True)
class EngineResult(Generic[T]):
    """Discriminated outcome of a boundary call.

    Attributes:
        code: ``ErrorCode.OK`` or the failure kind
        value: Payload, id or flag; the failure value for failed calls
        message: Human-readable failure description
        details: Machine-readable failure context
    """

    code: ErrorCode
    value: Any = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.code is ErrorCode.OK

    def unwrap(self) -> T:
        """Return the value, raising the matching NotedError on failure."""
        if not self.ok:
            raise error_from_code(self.code, self.message, self.details)
        return self.value

    @classmethod
    def success(cls, value: Any) -> "EngineResult":
        return cls(ErrorCode.OK, value)

    @classmethod
    def failure(cls, error: NotedError, value: Any = None) -> "EngineResult":
        return cls(error.code, value, error.message, dict(error.details))


class NotesEngine:
    """The call surface over one open note store.

    Calls may arrive from several threads. Reads run in parallel; writes
    are serialised by the repository's read/write lock. ``close`` waits
    for in-flight calls before releasing the store.
    """

    def __init__(self, repository: NoteRepository):
        self._repository = repository
        self._payload_lock = threading.Lock()
        self._handles = itertools.count(1)
        self._live: Dict[int, Payload] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    @traced("open")
    def open(
        cls,
        path: Union[str, Path, None],
        settings: Optional[NotedConfig] = None,
    ) -> "EngineResult[NotesEngine]":
        """Open or create the store at ``path``.

        Fails with INVALID_PARAM for an empty path and DATABASE when the
        location cannot be created or opened.
        """
        if path is None or not str(path).strip():
            return EngineResult.failure(
                InvalidParamError("Database path is required", field="path")
            )
        try:
            repository = NoteRepository(Path(path), settings=settings)
        except NotedError as e:
            logger.error(f"Failed to open note store: {e}")
            return EngineResult.failure(e)
        return EngineResult.success(cls(repository))

    def close(self) -> None:
        """Drain in-flight calls, flush and release the store."""
        self._repository.close()
        with self._payload_lock:
            outstanding = len(self._live)
        if outstanding:
            logger.warning(f"Engine closed with {outstanding} unreleased payload(s)")

    @property
    def closed(self) -> bool:
        return self._repository.closed

    @property
    def repository(self) -> NoteRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Payload ownership
    # ------------------------------------------------------------------

    def _allocate(self, items: Sequence[T]) -> Payload[T]:
        with self._payload_lock:
            payload = Payload(self, next(self._handles), tuple(items))
            self._live[payload.handle] = payload
        return payload

    def release(self, payload: Payload) -> None:
        """Release a payload returned by this engine.

        Raises:
            PayloadReleasedError: If the payload was already released or
                was not allocated by this engine.
        """
        with self._payload_lock:
            owned = self._live.pop(payload.handle, None)
            if owned is not payload:
                if owned is not None:
                    self._live[payload.handle] = owned
                raise PayloadReleasedError(payload.handle)
            payload._drop()

    @property
    def live_payloads(self) -> int:
        """Number of payloads handed out and not yet released."""
        with self._payload_lock:
            return len(self._live)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _call(self, operation: str, func: Callable[[], Any], failure_value: Any) -> EngineResult:
        try:
            return EngineResult.success(func())
        except NotedError as e:
            logger.warning(f"{operation} failed: {e}")
            return EngineResult.failure(e, failure_value)
        except MemoryError:
            logger.error(f"{operation} failed: out of memory assembling result")
            return EngineResult(
                ErrorCode.MEMORY,
                failure_value,
                "Out of memory while assembling result",
                {"operation": operation},
            )

    def _not_found(self, note_id: int, found: bool) -> EngineResult:
        if found:
            return EngineResult.success(True)
        return EngineResult(
            ErrorCode.NOT_FOUND,
            False,
            f"Note with ID {note_id} not found",
            {"note_id": note_id},
        )

    @traced("create")
    def create(self, title: str, content: str) -> "EngineResult[int]":
        """Create a note. The value is the new id, or 0 on failure."""
        return self._call("create", lambda: self._repository.create(title, content), 0)

    @traced("get_all")
    def get_all(self) -> "EngineResult[Payload[Note]]":
        """All notes, most recently updated first, as a payload."""
        return self._call(
            "get_all", lambda: self._allocate(self._repository.get_all()), None
        )

    @traced("update")
    def update(self, note_id: int, title: str, content: str) -> "EngineResult[bool]":
        """Replace title and content. NOT_FOUND (value False) for unknown ids."""
        result = self._call(
            "update", lambda: self._repository.update(note_id, title, content), False
        )
        return self._not_found(note_id, result.value) if result.ok else result

    @traced("set_tags")
    def set_tags(self, note_id: int, tags: Sequence[str]) -> "EngineResult[bool]":
        """Replace a note's tags. NOT_FOUND (value False) for unknown ids."""
        result = self._call(
            "set_tags", lambda: self._repository.set_tags(note_id, tags), False
        )
        return self._not_found(note_id, result.value) if result.ok else result

    @traced("delete")
    def delete(self, note_id: int) -> "EngineResult[bool]":
        """Delete a note. NOT_FOUND (value False) for unknown ids."""
        result = self._call("delete", lambda: self._repository.delete(note_id), False)
        return self._not_found(note_id, result.value) if result.ok else result

    @traced("search")
    def search(self, query: str, limit: int) -> "EngineResult[Payload[SearchResult]]":
        """Ranked search as a payload; an empty query yields an empty payload."""
        return self._call(
            "search", lambda: self._allocate(self._repository.search(query, limit)), None
        )
