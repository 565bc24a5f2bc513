"""Timers and delivery helpers shared by the client services.

Services never touch a UI toolkit directly. They schedule quiet-window
timers through a scheduler and hand completed work to a ``deliver``
callable that runs it on the interactive context.
"""
import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Protocol

from noted.config import config

logger = logging.getLogger(__name__)

Deliver = Callable[[Callable[[], None]], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Runs callbacks after a delay on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True  # Don't block process exit
        timer.start()
        return timer


def make_executor(workers: Optional[int] = None) -> ThreadPoolExecutor:
    """Worker pool for searches and note loads (``worker_threads`` by default)."""
    return ThreadPoolExecutor(
        max_workers=workers or config.worker_threads, thread_name_prefix="noted"
    )


def deliver_inline(callback: Callable[[], None]) -> None:
    """Run the callback immediately on whatever thread completed the work."""
    callback()


class QueueDispatcher:
    """Posts callbacks to a queue drained by the interactive thread.

    Use the instance as the ``deliver`` callable of a service and call
    :meth:`run_pending` from the interactive loop.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()

    def __call__(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """Run queued callbacks on the calling thread.

        Args:
            timeout: Wait up to this many seconds for the first callback.
                None runs only what is already queued.

        Returns:
            Number of callbacks run.
        """
        ran = 0
        if timeout is not None:
            try:
                callback = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            callback()
            ran += 1
        while True:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                return ran
            callback()
            ran += 1
