"""Recurring purge scheduling.

PurgeScheduler owns the single purge timer of one aggregation instance.
Timers are created by a ScheduledExecutor shared across aggregations; the
default ThreadScheduledExecutor keeps every timer on one timer thread and
runs the firings on a thread pool.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from types import TracebackType
from typing import Protocol

from sluice.core.logging import get_logger

logger = get_logger(__name__)


class CancellableHandle(Protocol):
    """Handle to a scheduled recurring task."""

    def cancel(self, interrupt_if_running: bool) -> bool:
        """Stop future firings. Returns False if already cancelled."""
        ...

    @property
    def cancelled(self) -> bool:
        ...


class ScheduledExecutor(Protocol):
    """Executor able to run a task repeatedly with a fixed delay."""

    def schedule_with_fixed_delay(
        self,
        task: Callable[[], None],
        initial_delay_ms: int,
        period_ms: int,
    ) -> CancellableHandle:
        """Run `task` after `initial_delay_ms`, then `period_ms` after each run ends."""
        ...


class PurgeTask(Protocol):
    """What PurgeScheduler needs from a purge task."""

    @property
    def interval_ms(self) -> int:
        ...

    def run(self) -> None:
        ...


class FixedDelayHandle:
    """Cancellation handle for a ThreadScheduledExecutor timer.

    Python threads cannot be interrupted, so cancelling with
    interrupt_if_running=True lets an in-flight run finish and only
    prevents further firings.
    """

    def __init__(
        self,
        task: Callable[[], None],
        period_ms: int,
        on_cancel: Callable[[FixedDelayHandle], None],
    ) -> None:
        self._task = task
        self._period_ms = period_ms
        self._on_cancel = on_cancel
        self._cancelled = threading.Event()
        # Cleared while a firing is running on the pool
        self._idle = threading.Event()
        self._idle.set()

    def cancel(self, interrupt_if_running: bool = False) -> bool:
        if self._cancelled.is_set():
            return False
        self._cancelled.set()
        self._on_cancel(self)
        return True

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        """Whether the timer is cancelled and no firing is in flight."""
        return self._cancelled.is_set() and self._idle.is_set()


class ThreadScheduledExecutor:
    """ScheduledExecutor backed by one timer thread and a ThreadPoolExecutor.

    The timer thread keeps a heap of due times and submits each firing to
    the pool. When a firing finishes, its timer is re-armed one period
    later, so firings of one timer never overlap. Workers are only held
    while a task runs; max_workers bounds concurrent firings, not the
    number of timers.

    A task that raises is logged and keeps its schedule: the next firing
    happens one period later, as usual.

    Example:
        with ThreadScheduledExecutor(max_workers=2) as executor:
            handle = executor.schedule_with_fixed_delay(task.run, 60_000, 60_000)
            ...
            handle.cancel(True)
    """

    def __init__(self, max_workers: int = 4, thread_name_prefix: str = "sluice-purge") -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._condition = threading.Condition()
        # (due monotonic seconds, sequence, handle)
        self._queue: list[tuple[float, int, FixedDelayHandle]] = []
        self._sequence = itertools.count()
        self._handles: set[FixedDelayHandle] = set()
        self._shutdown = False
        self._timer = threading.Thread(
            target=self._timer_loop, name=f"{thread_name_prefix}-timer", daemon=True
        )
        self._timer.start()

    def schedule_with_fixed_delay(
        self,
        task: Callable[[], None],
        initial_delay_ms: int,
        period_ms: int,
    ) -> FixedDelayHandle:
        """Schedule `task`; see ScheduledExecutor.

        Raises:
            ValueError: If period_ms is not positive or initial_delay_ms is negative
            RuntimeError: If the executor has been shut down
        """
        if period_ms <= 0:
            raise ValueError(f"period_ms must be positive, got {period_ms}")
        if initial_delay_ms < 0:
            raise ValueError(f"initial_delay_ms must not be negative, got {initial_delay_ms}")

        handle = FixedDelayHandle(task, period_ms, self._release)
        with self._condition:
            if self._shutdown:
                raise RuntimeError("Cannot schedule on a shut down executor")
            self._handles.add(handle)
            self._arm(handle, initial_delay_ms)
        return handle

    @property
    def active_count(self) -> int:
        """Number of scheduled tasks that have not been cancelled."""
        with self._condition:
            return sum(1 for h in self._handles if not h.cancelled)

    def _arm(self, handle: FixedDelayHandle, delay_ms: int) -> None:
        # Caller holds self._condition
        due = time.monotonic() + delay_ms / 1000
        heapq.heappush(self._queue, (due, next(self._sequence), handle))
        self._condition.notify()

    def _release(self, handle: FixedDelayHandle) -> None:
        """Forget a cancelled timer; an in-flight firing releases it when done."""
        with self._condition:
            self._queue = [entry for entry in self._queue if entry[2] is not handle]
            heapq.heapify(self._queue)
            if handle._idle.is_set():
                self._handles.discard(handle)
            self._condition.notify()

    def _timer_loop(self) -> None:
        with self._condition:
            while not self._shutdown:
                if not self._queue:
                    self._condition.wait()
                    continue
                due, _, handle = self._queue[0]
                remaining = due - time.monotonic()
                if remaining > 0:
                    self._condition.wait(remaining)
                    continue
                heapq.heappop(self._queue)
                handle._idle.clear()
                self._pool.submit(self._fire, handle)

    def _fire(self, handle: FixedDelayHandle) -> None:
        try:
            if not handle.cancelled:
                handle._task()
        except Exception:
            # Keep the schedule: the next firing re-attempts everything
            logger.exception("scheduler.task_failed", task=_task_name(handle._task))
        finally:
            with self._condition:
                handle._idle.set()
                if handle.cancelled or self._shutdown:
                    self._handles.discard(handle)
                else:
                    self._arm(handle, handle._period_ms)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every scheduled task and stop the timer thread and pool.

        Args:
            wait: If True, wait for in-flight runs to finish
        """
        with self._condition:
            self._shutdown = True
            handles = list(self._handles)
            self._condition.notify_all()
        for handle in handles:
            handle.cancel(True)
        if wait:
            self._timer.join()
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> ThreadScheduledExecutor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()


class PurgeScheduler:
    """Owns at most one recurring purge timer for one aggregation instance.

    The handle is instance state, so aggregations purge independently and
    tearing one down never cancels another's timer. Replacement is
    cancel-then-create under a lock: after install_or_replace() returns,
    exactly one timer is active even with concurrent callers.
    """

    def __init__(self, executor: ScheduledExecutor, *, name: str = "") -> None:
        """Initialize scheduler.

        Args:
            executor: Shared executor that runs the timers
            name: Label used in log events (typically the aggregation name)
        """
        self._executor = executor
        self._name = name
        self._handle: CancellableHandle | None = None
        self._lock = threading.Lock()

    @property
    def is_scheduled(self) -> bool:
        with self._lock:
            return self._handle is not None and not self._handle.cancelled

    def install_or_replace(self, task: PurgeTask) -> None:
        """Schedule `task.run` every `task.interval_ms`, replacing any active timer.

        The first firing happens one interval after installation.
        """
        with self._lock:
            replaced = self._handle is not None and not self._handle.cancelled
            if self._handle is not None:
                self._handle.cancel(True)
            self._handle = self._executor.schedule_with_fixed_delay(
                task.run, task.interval_ms, task.interval_ms
            )
        logger.info(
            "scheduler.replaced" if replaced else "scheduler.installed",
            aggregation=self._name,
            interval_ms=task.interval_ms,
        )

    def cancel(self) -> bool:
        """Cancel the active timer, if any. Returns True if one was cancelled."""
        with self._lock:
            handle, self._handle = self._handle, None
            cancelled = handle is not None and handle.cancel(True)
        if cancelled:
            logger.info("scheduler.cancelled", aggregation=self._name)
        return cancelled


def _task_name(task: Callable[[], None]) -> str:
    owner = getattr(task, "__self__", None)
    if owner is not None:
        return type(owner).__name__
    return getattr(task, "__qualname__", repr(task))
