from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field

from .clock import Clock


@dataclass(slots=True)
class DeferredTask:
    """Handle for a callback queued on a TimerQueue."""

    due_at_s: float
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False
    fired: bool = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        self.cancelled = True


class TimerQueue:
    """Clock-driven deferred callbacks, fired from ``pump()``.

    Nothing runs on its own: the owning loop calls ``pump()`` (once per frame
    in the UI, explicitly in tests) and every due task fires there, in due
    order, on the caller's thread.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock
        self._heap: list[tuple[float, int, DeferredTask]] = []
        self._seq = itertools.count()

    @property
    def clock(self) -> Clock:
        return self._clock

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> DeferredTask:
        if delay_s < 0.0:
            raise ValueError("delay_s must be >= 0")
        task = DeferredTask(due_at_s=self._clock.now() + float(delay_s), callback=callback)
        heapq.heappush(self._heap, (task.due_at_s, next(self._seq), task))
        return task

    def pending_count(self) -> int:
        return sum(1 for _, _, task in self._heap if task.pending)

    def pump(self) -> int:
        """Fire every task due at the current clock reading. Returns how many fired."""

        now = self._clock.now()
        fired = 0
        while self._heap and self._heap[0][0] <= now:
            _, _, task = heapq.heappop(self._heap)
            if not task.pending:
                continue
            task.fired = True
            task.callback()
            fired += 1
        return fired

    def cancel_all(self) -> None:
        for _, _, task in self._heap:
            task.cancel()
        self._heap.clear()
