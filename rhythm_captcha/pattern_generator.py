from __future__ import annotations

from enum import StrEnum

from .rhythm_core import Pattern, RandomSource, SeededRng

MIN_INTERVAL_MS = 50.0


class PatternProfile(StrEnum):
    SIMPLE = "simple"
    RICH = "rich"


class SimplePatternGenerator:
    """Fixed four-beat shape with +/-50 ms of jitter per interval."""

    BASE_INTERVALS_MS: tuple[int, ...] = (400, 600, 400, 600)
    JITTER_WIDTH_MS = 100.0

    def __init__(self, *, rng: RandomSource, min_interval_ms: float = MIN_INTERVAL_MS) -> None:
        self._rng = rng
        self._min_interval_ms = float(min_interval_ms)

    def generate(self) -> Pattern:
        intervals = []
        for base in self.BASE_INTERVALS_MS:
            jitter = (self._rng.random() - 0.5) * self.JITTER_WIDTH_MS
            intervals.append(_clamp_interval(base + jitter, self._min_interval_ms))
        return Pattern(intervals_ms=tuple(intervals))


class RichPatternGenerator:
    """Variable-length rhythm: 3-6 beats drawn from four base gaps, +/-100 ms jitter."""

    BASE_INTERVALS_MS: tuple[int, ...] = (400, 600, 800, 1000)
    JITTER_WIDTH_MS = 200.0
    MIN_LENGTH = 3
    MAX_LENGTH = 6

    def __init__(self, *, rng: RandomSource, min_interval_ms: float = MIN_INTERVAL_MS) -> None:
        self._rng = rng
        self._min_interval_ms = float(min_interval_ms)

    def generate(self) -> Pattern:
        length = self._rng.randint(self.MIN_LENGTH, self.MAX_LENGTH)
        intervals = []
        for _ in range(length):
            base = self._rng.choice(self.BASE_INTERVALS_MS)
            jitter = (self._rng.random() - 0.5) * self.JITTER_WIDTH_MS
            intervals.append(_clamp_interval(base + jitter, self._min_interval_ms))
        return Pattern(intervals_ms=tuple(intervals))


PatternGenerator = SimplePatternGenerator | RichPatternGenerator


def build_pattern_generator(
    *,
    profile: PatternProfile,
    seed: int | None = None,
    rng: RandomSource | None = None,
    min_interval_ms: float = MIN_INTERVAL_MS,
) -> PatternGenerator:
    """Factory: pick the generator for ``profile``, seeding a private RNG unless one is given."""

    if rng is None:
        if seed is None:
            raise ValueError("either seed or rng is required")
        rng = SeededRng(seed)
    if min_interval_ms <= 0.0:
        raise ValueError("min_interval_ms must be > 0")

    if profile is PatternProfile.SIMPLE:
        return SimplePatternGenerator(rng=rng, min_interval_ms=min_interval_ms)
    return RichPatternGenerator(rng=rng, min_interval_ms=min_interval_ms)


def _clamp_interval(value: float, floor_ms: float) -> float:
    # Non-positive draws land on the floor instead of being re-rolled.
    return max(float(floor_ms), float(value))
