"""Debounced autosave as an explicit, cancellable scheduled task."""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import Any, Callable, Protocol

__all__ = [
    "Cancellable",
    "Scheduler",
    "AutosaveTimer",
    "ManualScheduler",
    "ManualHandle",
]

LOGGER = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> Any:  # pragma: no cover - protocol stub
        ...


class Scheduler(Protocol):
    """Anything that can run ``callback`` after ``delay`` seconds.

    :class:`asyncio.AbstractEventLoop` satisfies this protocol directly.
    """

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Cancellable:  # pragma: no cover - protocol stub
        ...


class AutosaveTimer:
    """Fire ``callback`` once ``delay`` seconds have passed since the last :meth:`touch`.

    At most one task is pending at any time: every touch cancels the previous
    task before arming a new one, and a task that fires after being replaced
    is ignored.
    """

    def __init__(
        self,
        callback: Callable[[], Any],
        delay: float,
        scheduler: Scheduler,
        *,
        enabled: bool = True,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be non-negative")
        self._callback = callback
        self._delay = float(delay)
        self._scheduler = scheduler
        self._enabled = enabled
        self._handle: Cancellable | None = None
        self._generation = 0
        self._fire_count = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if not enabled:
            self.cancel()

    def touch(self) -> None:
        """Restart the countdown."""

        if not self._enabled:
            return
        self.cancel()
        self._generation += 1
        generation = self._generation
        self._handle = self._scheduler.call_later(self._delay, lambda: self._on_timer(generation))

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Run the pending task now; returns ``False`` when nothing was pending."""

        if self._handle is None:
            return False
        self.cancel()
        self._fire()
        return True

    def _on_timer(self, generation: int) -> None:
        if generation != self._generation or self._handle is None:
            LOGGER.debug("Ignoring stale autosave timer (generation %s)", generation)
            return
        self._handle = None
        self._fire()

    def _fire(self) -> None:
        self._fire_count += 1
        try:
            self._callback()
        except Exception:
            LOGGER.exception("Autosave callback raised")


class ManualHandle:
    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback: Callable[[], Any]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler: nothing runs until :meth:`advance` is called.

    Used by tests and by headless hosts that drive time themselves.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, ManualHandle]] = []
        self._counter = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualHandle:
        handle = ManualHandle(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def pending_count(self) -> int:
        return sum(1 for _when, _seq, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due.

        Callbacks scheduled while advancing run too when they fall inside the
        window. Returns the number of callbacks run.
        """

        if seconds < 0:
            raise ValueError("Cannot move virtual time backwards")
        deadline = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= deadline:
            when, _seq, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if handle.cancelled:
                continue
            handle.callback()
            ran += 1
        self._now = deadline
        return ran
