from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from .rhythm_core import Tap, cue_offsets_ms
from .timers import DeferredTask, TimerQueue

logger = logging.getLogger(__name__)


class PlaybackAdapter(Protocol):
    """Plays a rhythm and reports when it has finished."""

    @property
    def cues_emitted(self) -> int: ...

    @property
    def cues_total(self) -> int: ...

    def schedule(
        self,
        intervals_ms: Sequence[float],
        on_complete: Callable[[], None],
        *,
        trailing_ms: float,
    ) -> None:
        """Emit one cue per offset in cue_offsets_ms(intervals_ms), then call
        ``on_complete`` once at sum(intervals_ms) + trailing_ms."""
        ...

    def cancel(self) -> None: ...


class TapFeedback(Protocol):
    def acknowledge_tap(self, tap: Tap) -> None: ...


class TimedPlayback:
    """Clock-driven playback with no audio device.

    Cues and completion are queued on a shared TimerQueue; ``on_cue`` (if
    given) is called with the cue index as each one falls due. Subclasses
    override ``_emit_cue`` / ``_on_start`` / ``_on_stop`` to make noise.
    """

    def __init__(
        self,
        *,
        timers: TimerQueue,
        on_cue: Callable[[int], None] | None = None,
    ) -> None:
        self._timers = timers
        self._on_cue = on_cue
        self._tasks: list[DeferredTask] = []
        self._cues_total = 0
        self._cues_emitted = 0

    @property
    def cues_emitted(self) -> int:
        return self._cues_emitted

    @property
    def cues_total(self) -> int:
        return self._cues_total

    @property
    def active(self) -> bool:
        return any(task.pending for task in self._tasks)

    def schedule(
        self,
        intervals_ms: Sequence[float],
        on_complete: Callable[[], None],
        *,
        trailing_ms: float,
    ) -> None:
        if trailing_ms < 0.0:
            raise ValueError("trailing_ms must be >= 0")
        self.cancel()

        offsets = cue_offsets_ms(intervals_ms)
        self._cues_total = len(offsets)
        self._cues_emitted = 0
        self._on_start()

        for index, offset in enumerate(offsets):
            self._tasks.append(
                self._timers.call_later(offset / 1000.0, lambda i=index: self._fire_cue(i))
            )

        complete_at_s = (float(sum(intervals_ms)) + float(trailing_ms)) / 1000.0
        self._tasks.append(
            self._timers.call_later(complete_at_s, lambda: self._finish(on_complete))
        )
        logger.debug("Scheduled %d cues, completion in %.3fs", len(offsets), complete_at_s)

    def cancel(self) -> None:
        was_active = self.active
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        if was_active:
            self._on_stop()

    def _fire_cue(self, index: int) -> None:
        self._cues_emitted += 1
        self._emit_cue(index)
        if self._on_cue is not None:
            self._on_cue(index)

    def _finish(self, on_complete: Callable[[], None]) -> None:
        self._tasks = []
        self._on_stop()
        on_complete()

    def _emit_cue(self, index: int) -> None:
        _ = index

    def _on_start(self) -> None:
        pass

    def _on_stop(self) -> None:
        pass
