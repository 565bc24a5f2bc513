"""Manual scheduler and executor for driving the client services in tests.

Both fakes are deterministic and inspectable:
- ManualScheduler only fires timers when a test advances its clock.
- ManualExecutor holds submitted work until a test resolves it, in any
  order, so out-of-order completions can be reproduced exactly.
"""
from concurrent.futures import Future
from typing import Any, Callable, List, Tuple


class ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when ``advance`` is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self.timers if not t.cancelled and not t.fired)

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire every timer that came due."""
        self.now += seconds
        fired = 0
        while True:
            due = [
                t for t in self.timers
                if not t.cancelled and not t.fired and t.due <= self.now
            ]
            if not due:
                return fired
            timer = min(due, key=lambda t: t.due)
            timer.fired = True
            timer.callback()
            fired += 1


class ManualExecutor:
    """Executor that runs nothing until a test resolves a submission."""

    def __init__(self) -> None:
        self.submissions: List[Tuple[Future, Callable[..., Any], tuple]] = []
        self.shutdown_called = False

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        if self.shutdown_called:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future = Future()
        self.submissions.append((future, fn, args))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self.shutdown_called = True

    @property
    def pending(self) -> List[int]:
        """Indexes of submissions that have not been resolved yet."""
        return [i for i, (f, _, _) in enumerate(self.submissions) if not f.done()]

    def args_of(self, index: int) -> tuple:
        return self.submissions[index][2]

    def run(self, index: int) -> Future:
        """Run submission ``index`` now and complete its future."""
        future, fn, args = self.submissions[index]
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future

    def run_all(self) -> None:
        for index in self.pending:
            self.run(index)


class ImmediateExecutor(ManualExecutor):
    """Executor that runs work synchronously at submission time."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future = super().submit(fn, *args)
        self.run(len(self.submissions) - 1)
        return future


class StubSearch:
    """Search callable that records calls and answers from a table."""

    def __init__(self, answers=None) -> None:
        self.answers = answers or {}
        self.calls: List[Tuple[str, int]] = []

    def __call__(self, query: str, limit: int):
        self.calls.append((query, limit))
        answer = self.answers.get(query, [])
        if isinstance(answer, Exception):
            raise answer
        return list(answer)[:limit]
