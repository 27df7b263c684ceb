"""
Scheduler - Cancellable delayed tasks.

The engine never calls ``time.sleep`` or raw timers. Deferred notification
delivery and lifecycle recovery go through a ``Scheduler`` so production code
runs on the asyncio loop while tests advance a virtual clock.
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a callback scheduled on a ``Scheduler``."""

    def __init__(self, due: float, callback: Callable[..., Any], args: Tuple[Any, ...] = ()):
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.done = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        """Cancel the task. Safe to call more than once or after it ran."""
        if self.done or self.cancelled:
            return
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()

    @property
    def pending(self) -> bool:
        return not (self.done or self.cancelled)

    def _run(self) -> None:
        if not self.pending:
            return
        self.done = True
        self.callback(*self.args)


class Scheduler(ABC):
    """Clock plus delayed-callback facility."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledTask:
        """Run ``callback(*args)`` after ``delay`` seconds."""
        pass

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> ScheduledTask:
        """Run ``callback`` on the next tick."""
        return self.call_later(0, callback, *args)


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by the running asyncio event loop.

    The loop is looked up on every call, so one scheduler outlives several
    ``asyncio.run`` invocations. Outside a running loop, ``call_soon``
    callbacks run inline and delayed tasks wait on an internal queue. They
    run once they fall due and the scheduler is used again, or move onto
    the loop the next time it is used from inside one.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._waiting: List[Tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()
        self._flushing = False

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        """The loop callbacks go to, or None when no usable loop is running."""
        if self._loop is not None and not self._loop.is_closed():
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    @property
    def waiting_count(self) -> int:
        return sum(1 for _, _, task in self._waiting if task.pending)

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledTask:
        self.run_due()
        task = ScheduledTask(self.now() + max(delay, 0), callback, args)
        loop = self.loop
        if loop is not None:
            task._handle = loop.call_later(max(delay, 0), task._run)
        elif delay <= 0:
            self._run_task(task)
        else:
            heapq.heappush(self._waiting, (task.due, next(self._counter), task))
        return task

    def run_due(self) -> int:
        """
        Run queued tasks that have fallen due.

        Inside a running loop the remaining tasks are handed to the loop.
        """
        if self._flushing or not self._waiting:
            return 0
        self._flushing = True
        ran = 0
        try:
            now = self.now()
            while self._waiting and self._waiting[0][0] <= now:
                _, _, task = heapq.heappop(self._waiting)
                if task.pending:
                    self._run_task(task)
                    ran += 1
            loop = self.loop
            if loop is not None:
                while self._waiting:
                    due, _, task = heapq.heappop(self._waiting)
                    if task.pending:
                        task._handle = loop.call_later(max(due - now, 0), task._run)
        finally:
            self._flushing = False
        return ran

    def _run_task(self, task: ScheduledTask) -> None:
        try:
            task._run()
        except Exception:
            logger.exception(f"[AsyncioScheduler] Task {task.callback!r} raised")


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by an explicit virtual clock.

    Example:
        >>> scheduler = VirtualScheduler()
        >>> task = scheduler.call_later(1.0, print, "fired")
        >>> scheduler.advance(0.5)   # nothing happens
        >>> scheduler.advance(0.5)   # prints "fired"
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledTask:
        task = ScheduledTask(self._now + max(delay, 0), callback, args)
        heapq.heappush(self._queue, (task.due, next(self._counter), task))
        return task

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, task in self._queue if task.pending)

    def run_pending(self) -> int:
        """Run every task due at the current virtual time."""
        return self._run_until(self._now)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running due tasks in order."""
        return self._run_until(self._now + seconds)

    def _run_until(self, target: float) -> int:
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if not task.pending:
                continue
            self._now = max(self._now, due)
            try:
                task._run()
            except Exception:
                logger.exception(f"[VirtualScheduler] Task {task.callback!r} raised")
            ran += 1
        self._now = max(self._now, target)
        return ran
