"""Interactive search pipeline: debounce, coalesce, dispatch, deliver in order.

Every keystroke updates the query text and restarts a quiet-window timer.
Only the timer firing dispatches a search, and only if the text differs
from the last dispatched one. Searches run on an executor; completions come
back through ``deliver`` onto the interactive context. Each dispatch gets a
sequence number and only the response to the latest one is applied, so a
slow response to an older query can never overwrite newer results.
"""
import functools
import logging
import threading
from collections import deque
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

from noted.config import config
from noted.engine import NotesEngine
from noted.models.schema import SearchResult
from noted.services.client import fetch_search
from noted.services.dispatch import (
    Deliver,
    Scheduler,
    ThreadingScheduler,
    TimerHandle,
    deliver_inline,
)

logger = logging.getLogger(__name__)

SearchFunction = Callable[[str, int], Sequence[SearchResult]]


class PipelineState(str, Enum):
    """Lifecycle of the live query and of each dispatched request."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    IN_FLIGHT = "in_flight"
    DELIVERED = "delivered"
    SUPERSEDED = "superseded"
    CANCELLED = "cancelled"


@dataclass
class QueryTicket:
    """One dispatched search request."""

    seq: int
    query: str
    status: PipelineState = PipelineState.IN_FLIGHT


@dataclass(frozen=True)
class SearchSnapshot:
    """What listeners see after every state change."""

    query: str
    state: PipelineState
    results: Tuple[SearchResult, ...]
    results_query: Optional[str]
    error: Optional[str]

    @property
    def is_searching(self) -> bool:
        return self.state is PipelineState.IN_FLIGHT


Listener = Callable[[SearchSnapshot], None]


class QueryPipeline:
    """Debounced, race-free search for one interactive caller.

    Args:
        search: Blocking search callable ``(query, limit) -> results``.
        executor: Runs searches off the interactive context.
        deliver: Runs completions and timer firings on the interactive
            context. Defaults to running them inline.
        scheduler: Source of quiet-window timers.
        quiet_window: Debounce interval in seconds.
        limit: Maximum results per search.

    Listeners are called with the pipeline lock held and must not block.
    """

    def __init__(
        self,
        search: SearchFunction,
        executor: Executor,
        deliver: Deliver = deliver_inline,
        scheduler: Optional[Scheduler] = None,
        quiet_window: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> None:
        self._search = search
        self._executor = executor
        self._deliver = deliver
        self._scheduler = scheduler or ThreadingScheduler()
        self.quiet_window = (
            quiet_window if quiet_window is not None else config.search_debounce_ms / 1000.0
        )
        self.limit = limit if limit is not None else config.search_limit

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._closed = False

        self._query = ""
        self._state = PipelineState.IDLE
        self._results: Tuple[SearchResult, ...] = ()
        self._results_query: Optional[str] = None
        self._error: Optional[str] = None

        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._seq = 0
        self._cancelled_through = 0
        self._last_dispatched: Optional[str] = None
        self._in_flight: Dict[int, QueryTicket] = {}
        self._tickets: Deque[QueryTicket] = deque(maxlen=32)
        self.dispatch_count = 0
        self.discarded_count = 0

    @classmethod
    def for_engine(
        cls, engine: NotesEngine, executor: Executor, **kwargs
    ) -> "QueryPipeline":
        """Build a pipeline that searches through the engine boundary."""
        return cls(functools.partial(fetch_search, engine), executor, **kwargs)

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> Tuple[SearchResult, ...]:
        return self._results

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_searching(self) -> bool:
        return self._state is PipelineState.IN_FLIGHT

    @property
    def tickets(self) -> List[QueryTicket]:
        """Recently dispatched requests, oldest first."""
        with self._lock:
            return list(self._tickets)

    def snapshot(self) -> SearchSnapshot:
        with self._lock:
            return SearchSnapshot(
                query=self._query,
                state=self._state,
                results=self._results,
                results_query=self._results_query,
                error=self._error,
            )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Search listener failed")

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def set_query(self, text: str) -> None:
        """Record keystroke-level input and restart the quiet window."""
        text = text or ""
        with self._lock:
            if self._closed:
                logger.debug("set_query() on a closed pipeline ignored")
                return
            self._query = text
            self._restart_generation()

            if not text.strip():
                self._cancel_in_flight()
                self._last_dispatched = None
                self._apply_results((), text, None)
                self._state = PipelineState.DELIVERED
            else:
                self._state = PipelineState.DEBOUNCING
                generation = self._generation
                self._timer = self._scheduler.call_later(
                    self.quiet_window,
                    lambda: self._deliver(lambda: self._on_quiet(generation)),
                )
            self._notify()

    def clear(self) -> None:
        """Empty the query and the results."""
        self.set_query("")

    def cancel(self) -> None:
        """Drop the pending timer and ignore any response still in flight."""
        with self._lock:
            if self._closed:
                return
            self._restart_generation()
            self._cancel_in_flight()
            self._last_dispatched = None
            self._state = PipelineState.CANCELLED
            self._notify()

    def close(self) -> None:
        """Cancel outstanding work and detach all listeners."""
        with self._lock:
            if self._closed:
                return
            self._restart_generation()
            self._cancel_in_flight()
            self._closed = True
            self._listeners.clear()

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _restart_generation(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_in_flight(self) -> None:
        self._cancelled_through = self._seq
        for ticket in self._in_flight.values():
            ticket.status = PipelineState.CANCELLED

    def _apply_results(
        self, results: Tuple[SearchResult, ...], query: Optional[str], error: Optional[str]
    ) -> None:
        self._results = results
        self._results_query = query
        self._error = error

    def _on_quiet(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return  # a later keystroke restarted the window
            self._timer = None
            text = self._query

            if text == self._last_dispatched:
                current = self._in_flight.get(self._seq)
                self._state = (
                    PipelineState.IN_FLIGHT
                    if current is not None and current.status is PipelineState.IN_FLIGHT
                    else PipelineState.DELIVERED
                )
                logger.debug(f"Query '{text}' coalesced with the last dispatch")
                self._notify()
                return

            self._dispatch(text)

    def _dispatch(self, text: str) -> None:
        self._seq += 1
        ticket = QueryTicket(self._seq, text)
        # Older requests can no longer be applied
        for older in self._in_flight.values():
            older.status = PipelineState.CANCELLED
        self._in_flight[ticket.seq] = ticket
        self._tickets.append(ticket)
        self._last_dispatched = text
        self._state = PipelineState.IN_FLIGHT
        self.dispatch_count += 1
        logger.debug(f"Dispatching query #{ticket.seq}: '{text}'")
        self._notify()

        try:
            future = self._executor.submit(self._search, text, self.limit)
        except RuntimeError as e:
            # Executor already shut down
            self._in_flight.pop(ticket.seq, None)
            ticket.status = PipelineState.CANCELLED
            self._last_dispatched = None
            self._apply_results((), text, f"Search could not be started: {e}")
            self._state = PipelineState.DELIVERED
            self._notify()
            return

        future.add_done_callback(
            lambda f: self._deliver(lambda: self._complete(ticket, f))
        )

    def _complete(self, ticket: QueryTicket, future: Future) -> None:
        with self._lock:
            self._in_flight.pop(ticket.seq, None)
            if ticket.seq != self._seq or ticket.seq <= self._cancelled_through:
                ticket.status = (
                    PipelineState.SUPERSEDED
                    if ticket.seq < self._seq
                    else PipelineState.CANCELLED
                )
                self.discarded_count += 1
                logger.debug(
                    f"Discarded response #{ticket.seq} for '{ticket.query}' "
                    f"({ticket.status.value})"
                )
                return

            ticket.status = PipelineState.DELIVERED
            if future.cancelled():
                self._apply_results((), ticket.query, "Search was cancelled")
            elif future.exception() is not None:
                error = future.exception()
                logger.warning(f"Search for '{ticket.query}' failed: {error}")
                self._apply_results((), ticket.query, str(error))
            else:
                self._apply_results(tuple(future.result()), ticket.query, None)

            # Typing may already have started the next quiet window
            if self._state is PipelineState.IN_FLIGHT:
                self._state = PipelineState.DELIVERED
            self._notify()
