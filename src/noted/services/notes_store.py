"""Observable list of notes backed by the engine boundary.

Heavy calls run on an executor; their outcome is applied on the
interactive context through ``deliver``. Failures never raise into the
caller: they set a dismissible error and leave the current list alone.
"""
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from noted.engine import NotesEngine
from noted.models.schema import Note
from noted.services.client import fetch_notes
from noted.services.dispatch import Deliver, deliver_inline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotesSnapshot:
    notes: Tuple[Note, ...]
    is_loading: bool
    error: Optional[str]


Listener = Callable[[NotesSnapshot], None]


class NotesStore:
    """In-memory view of all notes, most recently updated first.

    Every mutation reloads the list once it succeeds, so ``notes`` always
    reflects what the store holds. Responses that finish after a newer
    load has been applied are ignored.
    """

    def __init__(
        self,
        engine: NotesEngine,
        executor: Executor,
        deliver: Deliver = deliver_inline,
    ) -> None:
        self._engine = engine
        self._executor = executor
        self._deliver = deliver

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._notes: Tuple[Note, ...] = ()
        self._error: Optional[str] = None
        self._pending = 0
        self._seq = 0
        self._applied_seq = 0

    @property
    def notes(self) -> Tuple[Note, ...]:
        return self._notes

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def error(self) -> Optional[str]:
        return self._error

    def snapshot(self) -> NotesSnapshot:
        with self._lock:
            return NotesSnapshot(self._notes, self._pending > 0, self._error)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def dismiss_error(self) -> None:
        with self._lock:
            if self._error is None:
                return
            self._error = None
            self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Notes listener failed")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def load_notes(self) -> Optional[Future]:
        """Reload every note from the store."""
        return self._submit("load_notes", lambda: (None, fetch_notes(self._engine)))

    def create_note(self, title: str, content: str) -> Optional[Future]:
        """Create a note; the future resolves to ``(new_id, notes)``."""
        return self._submit(
            "create_note",
            lambda: self._then_reload(self._engine.create(title, content).unwrap()),
        )

    def update_note(self, note_id: int, title: str, content: str) -> Optional[Future]:
        return self._submit(
            "update_note",
            lambda: self._then_reload(
                self._engine.update(note_id, title, content).unwrap()
            ),
        )

    def delete_note(self, note_id: int) -> Optional[Future]:
        return self._submit(
            "delete_note",
            lambda: self._then_reload(self._engine.delete(note_id).unwrap()),
        )

    def set_tags(self, note_id: int, tags: Sequence[str]) -> Optional[Future]:
        return self._submit(
            "set_tags",
            lambda: self._then_reload(self._engine.set_tags(note_id, list(tags)).unwrap()),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _then_reload(self, value: Any) -> Tuple[Any, List[Note]]:
        return value, fetch_notes(self._engine)

    def _submit(
        self, operation: str, job: Callable[[], Tuple[Any, List[Note]]]
    ) -> Optional[Future]:
        with self._lock:
            self._seq += 1
            seq = self._seq
            self._pending += 1
            self._notify()
            try:
                future = self._executor.submit(job)
            except RuntimeError as e:
                # Executor already shut down
                self._pending -= 1
                self._error = f"{operation} could not be started: {e}"
                self._notify()
                return None

        future.add_done_callback(
            lambda f: self._deliver(lambda: self._complete(operation, seq, f))
        )
        return future

    def _complete(self, operation: str, seq: int, future: Future) -> None:
        with self._lock:
            self._pending -= 1
            error = None if future.cancelled() else future.exception()
            if future.cancelled():
                self._error = f"{operation} was cancelled"
            elif error is not None:
                logger.warning(f"{operation} failed: {error}")
                self._error = str(error)
            elif seq > self._applied_seq:
                _, notes = future.result()
                self._notes = tuple(notes)
                self._applied_seq = seq
                self._error = None
            else:
                logger.debug(f"Ignoring stale note list from {operation} #{seq}")
            self._notify()
