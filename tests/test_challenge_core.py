from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import pytest

from rhythm_captcha.challenge import RhythmChallenge, build_rhythm_challenge
from rhythm_captcha.config import RhythmChallengeConfig
from rhythm_captcha.playback import TimedPlayback
from rhythm_captcha.rhythm_core import ChallengePhase, Pattern, Tap
from rhythm_captcha.rhythm_validator import RejectReason, RhythmReport, score_rhythm
from rhythm_captcha.timers import TimerQueue


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


@dataclass
class FixedAuthority:
    pattern: Pattern = field(default_factory=lambda: Pattern(intervals_ms=(400.0, 600.0, 400.0, 600.0)))
    issued: int = 0

    def issue_pattern(self) -> Pattern:
        self.issued += 1
        return self.pattern

    def judge(self, *, taps: Sequence[Tap], pattern: Pattern) -> RhythmReport:
        return score_rhythm(taps, pattern)


@dataclass
class ManualPlayback:
    """Playback that only completes when the test says so, and ignores cancel()."""

    completions: list[Callable[[], None]] = field(default_factory=list)
    cancels: int = 0

    @property
    def cues_emitted(self) -> int:
        return 0

    @property
    def cues_total(self) -> int:
        return 0

    def schedule(
        self,
        intervals_ms: Sequence[float],
        on_complete: Callable[[], None],
        *,
        trailing_ms: float,
    ) -> None:
        self.completions.append(on_complete)

    def cancel(self) -> None:
        self.cancels += 1


@dataclass
class RecordingFeedback:
    taps: list[Tap] = field(default_factory=list)

    def acknowledge_tap(self, tap: Tap) -> None:
        self.taps.append(tap)


# Playback of (400, 600, 400, 600) + 1000 ms trailing buffer.
PLAYBACK_S = 3.0
VERIFY_S = 1.0


def _build(clock: FakeClock, **kwargs: object) -> RhythmChallenge:
    kwargs.setdefault("authority", FixedAuthority())
    return build_rhythm_challenge(
        clock=clock,
        config=RhythmChallengeConfig(trailing_buffer_ms=1000.0, verify_delay_ms=1000.0),
        **kwargs,  # type: ignore[arg-type]
    )


def _assert_invariants(ch: RhythmChallenge) -> None:
    if ch.taps:
        assert ch.phase in (
            ChallengePhase.AWAITING_TAPS,
            ChallengePhase.VERIFYING,
            ChallengePhase.PASSED,
            ChallengePhase.FAILED,
        )
    if ch.phase is ChallengePhase.IDLE:
        assert ch.pattern is None
    else:
        assert ch.pattern is not None


def _play_to_awaiting(clock: FakeClock, ch: RhythmChallenge) -> None:
    assert ch.start_playback() is True
    clock.advance(PLAYBACK_S)
    ch.update()
    assert ch.phase is ChallengePhase.AWAITING_TAPS


def _tap_at(clock: FakeClock, ch: RhythmChallenge, offsets_s: Sequence[float]) -> None:
    base = clock.t
    for off in offsets_s:
        clock.t = base + off
        assert ch.record_tap() is True


def test_initial_state_is_idle_and_empty() -> None:
    ch = _build(FakeClock())
    assert ch.phase is ChallengePhase.IDLE
    assert ch.pattern is None
    assert ch.taps == ()
    assert ch.last_result is None
    _assert_invariants(ch)


def test_tap_while_idle_is_ignored() -> None:
    ch = _build(FakeClock())
    assert ch.record_tap() is False
    assert ch.taps == ()
    assert ch.phase is ChallengePhase.IDLE


def test_playback_then_awaiting_taps_after_pattern_plus_buffer() -> None:
    clock = FakeClock()
    ch = _build(clock)

    assert ch.start_playback() is True
    assert ch.phase is ChallengePhase.PLAYING
    assert ch.pattern == Pattern(intervals_ms=(400.0, 600.0, 400.0, 600.0))
    assert ch.time_remaining_s() == pytest.approx(PLAYBACK_S)
    _assert_invariants(ch)

    clock.advance(PLAYBACK_S - 0.01)
    ch.update()
    assert ch.phase is ChallengePhase.PLAYING
    assert ch.record_tap() is False
    assert ch.taps == ()

    clock.advance(0.02)
    ch.update()
    assert ch.phase is ChallengePhase.AWAITING_TAPS
    assert ch.time_remaining_s() is None


def test_playback_emits_one_cue_per_offset() -> None:
    clock = FakeClock()
    timers = TimerQueue(clock=clock)
    heard: list[tuple[int, float]] = []
    playback = TimedPlayback(timers=timers, on_cue=lambda i: heard.append((i, clock.t)))
    ch = _build(clock, timers=timers, playback=playback)

    ch.start_playback()
    for _ in range(300):
        clock.advance(0.01)
        ch.update()

    assert [i for i, _ in heard] == [0, 1, 2, 3, 4]
    assert [t for _, t in heard] == pytest.approx([0.01, 0.40, 1.00, 1.40, 2.00], abs=0.011)
    assert ch.snapshot().cues_emitted == 5
    assert ch.snapshot().cues_total == 5


def test_full_attempt_passes_and_records_intervals() -> None:
    clock = FakeClock()
    feedback = RecordingFeedback()
    ch = _build(clock, feedback=feedback)
    _play_to_awaiting(clock, ch)

    _tap_at(clock, ch, [0.0, 0.41, 1.0, 1.39, 2.01])
    assert [t.interval_ms for t in ch.taps] == [None, 410, 590, 390, 620]
    assert feedback.taps == list(ch.taps)
    _assert_invariants(ch)

    assert ch.verify() is True
    assert ch.phase is ChallengePhase.VERIFYING
    assert ch.record_tap() is False

    clock.advance(VERIFY_S - 0.01)
    ch.update()
    assert ch.phase is ChallengePhase.VERIFYING

    clock.advance(0.02)
    ch.update()
    assert ch.phase is ChallengePhase.PASSED
    assert ch.last_result is True
    assert ch.report is not None and ch.report.reason is RejectReason.NONE
    assert ch.result is not None and ch.result.passed is True
    assert ch.record_tap() is False
    assert len(ch.taps) == 5


def test_mechanical_taps_fail() -> None:
    clock = FakeClock()
    ch = _build(clock, authority=FixedAuthority(Pattern(intervals_ms=(500.0, 500.0, 500.0))))
    ch.start_playback()
    clock.advance(2.5)
    ch.update()

    _tap_at(clock, ch, [0.0, 0.5, 1.0, 1.5])
    ch.verify()
    clock.advance(VERIFY_S)
    ch.update()

    assert ch.phase is ChallengePhase.FAILED
    assert ch.last_result is False
    assert ch.report is not None and ch.report.reason is RejectReason.MECHANICAL


def test_verify_requires_awaiting_taps_and_at_least_one_tap() -> None:
    clock = FakeClock()
    ch = _build(clock)
    assert ch.verify() is False

    ch.start_playback()
    assert ch.verify() is False

    clock.advance(PLAYBACK_S)
    ch.update()
    assert ch.verify() is False
    assert ch.phase is ChallengePhase.AWAITING_TAPS

    ch.record_tap()
    assert ch.verify() is True


def test_single_tap_verifies_to_failure() -> None:
    clock = FakeClock()
    ch = _build(clock)
    _play_to_awaiting(clock, ch)
    ch.record_tap()
    ch.verify()
    clock.advance(VERIFY_S)
    ch.update()
    assert ch.phase is ChallengePhase.FAILED
    assert ch.report is not None and ch.report.reason is RejectReason.INSUFFICIENT_TAPS


def test_start_playback_rejected_while_busy() -> None:
    clock = FakeClock()
    authority = FixedAuthority()
    ch = _build(clock, authority=authority)

    ch.start_playback()
    assert ch.start_playback() is False

    clock.advance(PLAYBACK_S)
    ch.update()
    assert ch.start_playback() is False

    ch.record_tap()
    ch.verify()
    assert ch.start_playback() is False
    assert authority.issued == 1


def test_new_playback_after_result_discards_previous_attempt() -> None:
    clock = FakeClock()
    authority = FixedAuthority()
    ch = _build(clock, authority=authority)
    _play_to_awaiting(clock, ch)
    _tap_at(clock, ch, [0.0, 0.4, 1.0, 1.4, 2.0])
    ch.verify()
    clock.advance(VERIFY_S)
    ch.update()
    assert ch.phase is ChallengePhase.PASSED
    generation = ch.generation

    assert ch.start_playback() is True
    assert ch.phase is ChallengePhase.PLAYING
    assert ch.taps == ()
    assert ch.last_result is None
    assert ch.report is None
    assert ch.result is None
    assert ch.generation > generation
    assert authority.issued == 2


@pytest.mark.parametrize("stage", ["idle", "playing", "awaiting", "verifying", "resolved"])
def test_reset_clears_everything_from_any_phase(stage: str) -> None:
    clock = FakeClock()
    ch = _build(clock)
    if stage != "idle":
        ch.start_playback()
    if stage in ("awaiting", "verifying", "resolved"):
        clock.advance(PLAYBACK_S)
        ch.update()
        _tap_at(clock, ch, [0.0, 0.4, 1.0])
    if stage in ("verifying", "resolved"):
        ch.verify()
    if stage == "resolved":
        clock.advance(VERIFY_S)
        ch.update()

    ch.reset()

    assert ch.phase is ChallengePhase.IDLE
    assert ch.taps == ()
    assert ch.pattern is None
    assert ch.last_result is None

    # Nothing scheduled before the reset may land afterwards.
    clock.advance(10.0)
    ch.update()
    assert ch.phase is ChallengePhase.IDLE
    _assert_invariants(ch)


def test_reset_during_playback_then_restart_ignores_first_schedule() -> None:
    clock = FakeClock()
    ch = _build(clock)

    ch.start_playback()
    clock.advance(0.5)
    ch.reset()
    ch.start_playback()

    clock.advance(PLAYBACK_S - 0.5)
    ch.update()
    assert ch.phase is ChallengePhase.PLAYING

    clock.advance(0.5)
    ch.update()
    assert ch.phase is ChallengePhase.AWAITING_TAPS


def test_stale_completion_from_previous_generation_is_dropped() -> None:
    clock = FakeClock()
    playback = ManualPlayback()
    ch = _build(clock, playback=playback)

    ch.start_playback()
    ch.reset()
    ch.start_playback()
    assert len(playback.completions) == 2
    assert playback.cancels >= 1

    stale, current = playback.completions
    stale()
    assert ch.phase is ChallengePhase.PLAYING

    current()
    assert ch.phase is ChallengePhase.AWAITING_TAPS

    # A second delivery of the same signal changes nothing.
    current()
    assert ch.phase is ChallengePhase.AWAITING_TAPS


def test_snapshot_reflects_progress() -> None:
    clock = FakeClock()
    ch = _build(clock)
    snap = ch.snapshot()
    assert snap.phase is ChallengePhase.IDLE
    assert snap.expected_taps is None
    assert snap.title == "Rhythm Verification"

    _play_to_awaiting(clock, ch)
    ch.record_tap()
    snap = ch.snapshot()
    assert snap.phase is ChallengePhase.AWAITING_TAPS
    assert snap.tap_count == 1
    assert snap.expected_taps == 5
    assert "1 of 5" in snap.prompt


def test_config_rejects_negative_delays() -> None:
    with pytest.raises(ValueError):
        RhythmChallengeConfig(trailing_buffer_ms=-1.0)
    with pytest.raises(ValueError):
        RhythmChallengeConfig(verify_delay_ms=-1.0)
