"""Rhythm verification.

Compares the shape of a user's tap rhythm against the target pattern:

- Both interval sequences are normalized by their own sum, so tempo does not
  matter, only the relative spacing of beats.
- Every pattern position must be matched within ``SHAPE_TOLERANCE``.
- Raw tap intervals that are identical to sub-millisecond precision are
  treated as scripted input and rejected.

Everything here is pure and never raises on bad input; degenerate sequences
simply fail.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from .rhythm_core import Pattern, Tap

SHAPE_TOLERANCE = 0.2
MECHANICAL_VARIANCE_MS2 = 0.001


class RejectReason(StrEnum):
    NONE = "none"
    INSUFFICIENT_TAPS = "insufficient_taps"
    DEGENERATE = "degenerate"
    OUT_OF_TOLERANCE = "out_of_tolerance"
    MECHANICAL = "mechanical"


@dataclass(frozen=True, slots=True)
class RhythmReport:
    passed: bool
    reason: RejectReason
    user_intervals_ms: tuple[float, ...] = ()
    normalized_user: tuple[float, ...] = ()
    normalized_pattern: tuple[float, ...] = ()
    deviations: tuple[float, ...] = ()  # per compared pattern position
    variance_ms2: float | None = None

    @property
    def worst_deviation(self) -> float | None:
        return None if not self.deviations else max(self.deviations)


def user_intervals(taps: Sequence[Tap]) -> tuple[float, ...]:
    """Gaps between consecutive tap timestamps (len(taps) - 1 values)."""

    return tuple(
        float(taps[i].timestamp_ms - taps[i - 1].timestamp_ms) for i in range(1, len(taps))
    )


def normalize_intervals(intervals: Sequence[float]) -> tuple[float, ...] | None:
    """Divide each interval by the sequence total.

    Returns None when the total is not a positive finite number.
    """

    total = float(sum(intervals))
    if not math.isfinite(total) or total <= 0.0:
        return None
    return tuple(float(v) / total for v in intervals)


def interval_variance(intervals: Sequence[float]) -> float:
    """Population variance (ms^2) of raw intervals; 0.0 for an empty sequence."""

    if not intervals:
        return 0.0
    n = float(len(intervals))
    mean = sum(intervals) / n
    return sum((float(v) - mean) ** 2 for v in intervals) / n


def score_rhythm(taps: Sequence[Tap], pattern: Pattern) -> RhythmReport:
    """Full verdict with the intermediate values that produced it."""

    target = tuple(float(v) for v in pattern.intervals_ms)
    if len(taps) < len(target):
        return RhythmReport(passed=False, reason=RejectReason.INSUFFICIENT_TAPS)

    raw = user_intervals(taps)
    if not target or not all(math.isfinite(v) and v >= 0.0 for v in raw + target):
        return RhythmReport(passed=False, reason=RejectReason.DEGENERATE, user_intervals_ms=raw)

    norm_user = normalize_intervals(raw)
    norm_pattern = normalize_intervals(target)
    if norm_user is None or norm_pattern is None:
        return RhythmReport(passed=False, reason=RejectReason.DEGENERATE, user_intervals_ms=raw)

    variance = interval_variance(raw)

    # Extra trailing taps are ignored; they still count towards normalization.
    deviations = tuple(abs(u - p) for u, p in zip(norm_user, norm_pattern))
    report_fields = dict(
        user_intervals_ms=raw,
        normalized_user=norm_user,
        normalized_pattern=norm_pattern,
        deviations=deviations,
        variance_ms2=variance,
    )

    if variance < MECHANICAL_VARIANCE_MS2:
        return RhythmReport(passed=False, reason=RejectReason.MECHANICAL, **report_fields)
    if len(deviations) < len(norm_pattern):
        return RhythmReport(passed=False, reason=RejectReason.INSUFFICIENT_TAPS, **report_fields)
    if any(d > SHAPE_TOLERANCE for d in deviations):
        return RhythmReport(passed=False, reason=RejectReason.OUT_OF_TOLERANCE, **report_fields)
    return RhythmReport(passed=True, reason=RejectReason.NONE, **report_fields)


def validate(taps: Sequence[Tap], pattern: Pattern) -> bool:
    """True only if the taps reproduce the pattern's shape and look human."""

    return score_rhythm(taps, pattern).passed
