from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    The challenge core never reads real time directly; taps, playback cues
    and verification delays are all stamped from an injected Clock.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


def now_ms(clock: Clock) -> int:
    """Current clock reading as integer milliseconds (tap timestamp resolution)."""

    return int(round(clock.now() * 1000.0))
