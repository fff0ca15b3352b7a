from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class RandomSource(Protocol):
    """The subset of random.Random the pattern generators draw from."""

    def random(self) -> float: ...

    def randint(self, a: int, b: int) -> int: ...

    def choice(self, seq: Sequence[int]) -> int: ...


class ChallengePhase(StrEnum):
    IDLE = "idle"
    PLAYING = "playing"
    AWAITING_TAPS = "awaiting-taps"
    VERIFYING = "verifying"
    PASSED = "passed"
    FAILED = "failed"


RESOLVED_PHASES: tuple[ChallengePhase, ...] = (ChallengePhase.PASSED, ChallengePhase.FAILED)


@dataclass(frozen=True, slots=True)
class Tap:
    timestamp_ms: int
    interval_ms: int | None = None  # None for the first tap of an attempt

    @classmethod
    def following(cls, previous: Tap | None, timestamp_ms: int) -> Tap:
        """Build the next tap of an attempt, deriving its interval from ``previous``."""

        ts = int(timestamp_ms)
        interval = None if previous is None else ts - previous.timestamp_ms
        return cls(timestamp_ms=ts, interval_ms=interval)


@dataclass(frozen=True, slots=True)
class Pattern:
    """Target rhythm: the ordered gaps (ms) between consecutive cues."""

    intervals_ms: tuple[float, ...]

    def __len__(self) -> int:
        return len(self.intervals_ms)

    @property
    def total_ms(self) -> float:
        return float(sum(self.intervals_ms))

    @property
    def tap_count(self) -> int:
        # One tap per cue, including the leading downbeat.
        return len(self.intervals_ms) + 1


def cue_offsets_ms(intervals_ms: Sequence[float]) -> tuple[float, ...]:
    """Cue times relative to playback start.

    A downbeat at 0 is followed by one cue at each cumulative interval, so
    N intervals are heard as N + 1 cues.
    """

    offsets = [0.0]
    elapsed = 0.0
    for interval in intervals_ms:
        elapsed += float(interval)
        offsets.append(elapsed)
    return tuple(offsets)


@dataclass(frozen=True, slots=True)
class ChallengeSnapshot:
    """View model for the UI (pure data)."""

    title: str
    phase: ChallengePhase
    prompt: str
    input_hint: str
    tap_count: int
    expected_taps: int | None
    cues_total: int
    cues_emitted: int
    last_result: bool | None
    time_remaining_s: float | None


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[int]) -> int:
        return self._rng.choice(seq)
