from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .rhythm_core import Pattern, Tap
from .rhythm_validator import RejectReason, RhythmReport


@dataclass(frozen=True, slots=True)
class ChallengeResult:
    """Summary of one resolved attempt, for the results panel and logs.

    Held in memory only; challenge history is never written anywhere.
    """

    generation: int
    passed: bool
    reason: RejectReason
    pattern_ms: tuple[float, ...]
    tap_count: int
    expected_taps: int
    user_intervals_ms: tuple[float, ...]
    worst_deviation: float | None
    variance_ms2: float | None
    mean_interval_ms: float | None
    tempo_ratio: float | None  # user duration / pattern duration over compared beats


def result_from_report(
    *,
    generation: int,
    pattern: Pattern,
    taps: Sequence[Tap],
    report: RhythmReport,
) -> ChallengeResult:
    intervals = report.user_intervals_ms
    mean_ms: float | None
    tempo: float | None
    if not intervals:
        mean_ms = None
        tempo = None
    else:
        mean_ms = float(sum(intervals)) / float(len(intervals))
        compared = intervals[: len(pattern)]
        tempo = None if pattern.total_ms <= 0.0 else float(sum(compared)) / pattern.total_ms

    return ChallengeResult(
        generation=int(generation),
        passed=bool(report.passed),
        reason=report.reason,
        pattern_ms=tuple(float(v) for v in pattern.intervals_ms),
        tap_count=len(taps),
        expected_taps=pattern.tap_count,
        user_intervals_ms=tuple(intervals),
        worst_deviation=report.worst_deviation,
        variance_ms2=report.variance_ms2,
        mean_interval_ms=mean_ms,
        tempo_ratio=tempo,
    )


def describe_result(result: ChallengeResult) -> list[str]:
    """Human-readable result lines for the UI."""

    verdict = "Verification Successful" if result.passed else "Verification Failed"
    lines = [verdict]
    reasons = {
        RejectReason.INSUFFICIENT_TAPS: (
            f"Not enough taps: {result.tap_count} of {result.expected_taps}."
        ),
        RejectReason.DEGENERATE: "Tap timing could not be measured.",
        RejectReason.OUT_OF_TOLERANCE: "The rhythm shape did not match closely enough.",
        RejectReason.MECHANICAL: "Timing was too perfect to be human.",
    }
    if result.reason in reasons:
        lines.append(reasons[result.reason])
    lines.append(f"Taps: {result.tap_count} (expected {result.expected_taps})")
    if result.worst_deviation is not None:
        lines.append(f"Worst beat deviation: {result.worst_deviation * 100.0:.1f}%")
    if result.tempo_ratio is not None:
        lines.append(f"Tempo: {result.tempo_ratio * 100.0:.0f}% of target")
    return lines
