from __future__ import annotations

import logging
import random

from .authority import ChallengeAuthority, LocalChallengeAuthority
from .clock import Clock, now_ms
from .config import RhythmChallengeConfig
from .pattern_generator import build_pattern_generator
from .playback import PlaybackAdapter, TapFeedback, TimedPlayback
from .results import ChallengeResult, result_from_report
from .rhythm_core import RESOLVED_PHASES, ChallengePhase, ChallengeSnapshot, Pattern, Tap
from .rhythm_validator import RhythmReport
from .timers import DeferredTask, TimerQueue

logger = logging.getLogger(__name__)


class RhythmChallenge:
    """State machine for one rhythm verification challenge.

    idle -> playing -> awaiting-taps -> verifying -> passed | failed,
    with reset() returning to idle from anywhere.

    - Sole owner of the pattern, taps and verdict; adapters only call back in.
    - Requests made from the wrong phase are ignored and return False.
    - Deferred work (playback completion, verify delay) is bound to the
      generation it was scheduled in; a reset or new playback bumps the
      generation so late callbacks are dropped.
    - Time comes only from the injected Clock and fires from update().
    """

    TITLE = "Rhythm Verification"

    def __init__(
        self,
        *,
        clock: Clock,
        authority: ChallengeAuthority,
        playback: PlaybackAdapter,
        timers: TimerQueue,
        config: RhythmChallengeConfig | None = None,
        feedback: TapFeedback | None = None,
    ) -> None:
        self._clock = clock
        self._authority = authority
        self._playback = playback
        self._timers = timers
        self._cfg = config or RhythmChallengeConfig()
        self._feedback = feedback

        self._phase = ChallengePhase.IDLE
        self._generation = 0
        self._pattern: Pattern | None = None
        self._taps: list[Tap] = []
        self._report: RhythmReport | None = None
        self._result: ChallengeResult | None = None

        self._verify_task: DeferredTask | None = None
        self._suspended_until_s: float | None = None

    @property
    def phase(self) -> ChallengePhase:
        return self._phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pattern(self) -> Pattern | None:
        return self._pattern

    @property
    def taps(self) -> tuple[Tap, ...]:
        return tuple(self._taps)

    @property
    def last_result(self) -> bool | None:
        return None if self._report is None else self._report.passed

    @property
    def report(self) -> RhythmReport | None:
        return self._report

    @property
    def result(self) -> ChallengeResult | None:
        return self._result

    @property
    def config(self) -> RhythmChallengeConfig:
        return self._cfg

    def can_start(self) -> bool:
        return self._phase is ChallengePhase.IDLE or self._phase in RESOLVED_PHASES

    def can_verify(self) -> bool:
        return self._phase is ChallengePhase.AWAITING_TAPS and len(self._taps) > 0

    def start_playback(self) -> bool:
        if not self.can_start():
            logger.debug("start_playback ignored in phase %s", self._phase.value)
            return False

        self._discard_attempt()
        self._pattern = self._authority.issue_pattern()
        self._phase = ChallengePhase.PLAYING

        generation = self._generation
        trailing_ms = self._cfg.trailing_buffer_ms
        self._suspended_until_s = self._clock.now() + (self._pattern.total_ms + trailing_ms) / 1000.0
        logger.info(
            "Challenge %d playing %d-beat pattern (%.0f ms)",
            generation,
            len(self._pattern),
            self._pattern.total_ms,
        )
        self._playback.schedule(
            self._pattern.intervals_ms,
            lambda: self._on_playback_complete(generation),
            trailing_ms=trailing_ms,
        )
        return True

    def record_tap(self) -> bool:
        if self._phase is not ChallengePhase.AWAITING_TAPS:
            logger.debug("Tap ignored in phase %s", self._phase.value)
            return False

        previous = self._taps[-1] if self._taps else None
        tap = Tap.following(previous, now_ms(self._clock))
        self._taps.append(tap)
        if self._feedback is not None:
            self._feedback.acknowledge_tap(tap)
        return True

    def verify(self) -> bool:
        if not self.can_verify():
            logger.debug(
                "verify ignored in phase %s with %d taps", self._phase.value, len(self._taps)
            )
            return False

        self._phase = ChallengePhase.VERIFYING
        generation = self._generation
        delay_s = self._cfg.verify_delay_ms / 1000.0
        self._suspended_until_s = self._clock.now() + delay_s
        self._verify_task = self._timers.call_later(
            delay_s, lambda: self._finish_verify(generation)
        )
        logger.info("Challenge %d verifying %d taps", generation, len(self._taps))
        return True

    def reset(self) -> None:
        self._discard_attempt()
        self._phase = ChallengePhase.IDLE
        logger.info("Challenge reset (generation %d)", self._generation)

    def update(self) -> None:
        self._timers.pump()

    def time_remaining_s(self) -> float | None:
        if self._phase not in (ChallengePhase.PLAYING, ChallengePhase.VERIFYING):
            return None
        if self._suspended_until_s is None:
            return None
        return max(0.0, self._suspended_until_s - self._clock.now())

    def current_prompt(self) -> str:
        phase = self._phase
        if phase is ChallengePhase.IDLE:
            return "Press Enter to hear the rhythm."
        if phase is ChallengePhase.PLAYING:
            return "Listen to the rhythm..."
        if phase is ChallengePhase.AWAITING_TAPS:
            expected = 0 if self._pattern is None else self._pattern.tap_count
            return f"Tap the rhythm back: {len(self._taps)} of {expected} taps."
        if phase is ChallengePhase.VERIFYING:
            return "Verifying..."
        if phase is ChallengePhase.PASSED:
            return "Verification Successful"
        return "Verification Failed"

    def input_hint(self) -> str:
        phase = self._phase
        if phase is ChallengePhase.AWAITING_TAPS:
            return "Space/Click: Tap  |  V: Verify  |  R: Reset"
        if phase in RESOLVED_PHASES:
            return "Enter: New rhythm  |  R: Reset  |  Esc: Back"
        if phase is ChallengePhase.IDLE:
            return "Enter: Play  |  Esc: Back"
        return "R: Reset"

    def snapshot(self) -> ChallengeSnapshot:
        return ChallengeSnapshot(
            title=self.TITLE,
            phase=self._phase,
            prompt=self.current_prompt(),
            input_hint=self.input_hint(),
            tap_count=len(self._taps),
            expected_taps=None if self._pattern is None else self._pattern.tap_count,
            cues_total=self._playback.cues_total if self._pattern is not None else 0,
            cues_emitted=self._playback.cues_emitted if self._pattern is not None else 0,
            last_result=self.last_result,
            time_remaining_s=self.time_remaining_s(),
        )

    def _discard_attempt(self) -> None:
        self._generation += 1
        if self._verify_task is not None:
            self._verify_task.cancel()
            self._verify_task = None
        self._playback.cancel()
        self._pattern = None
        self._taps = []
        self._report = None
        self._result = None
        self._suspended_until_s = None

    def _on_playback_complete(self, generation: int) -> None:
        if generation != self._generation or self._phase is not ChallengePhase.PLAYING:
            logger.debug("Dropping stale playback completion for generation %d", generation)
            return
        self._phase = ChallengePhase.AWAITING_TAPS
        self._suspended_until_s = None
        logger.info("Challenge %d awaiting taps", generation)

    def _finish_verify(self, generation: int) -> None:
        if generation != self._generation or self._phase is not ChallengePhase.VERIFYING:
            logger.debug("Dropping stale verification for generation %d", generation)
            return
        assert self._pattern is not None

        self._verify_task = None
        self._suspended_until_s = None
        taps = tuple(self._taps)
        self._report = self._authority.judge(taps=taps, pattern=self._pattern)
        self._result = result_from_report(
            generation=generation,
            pattern=self._pattern,
            taps=taps,
            report=self._report,
        )
        self._phase = ChallengePhase.PASSED if self._report.passed else ChallengePhase.FAILED
        logger.info(
            "Challenge %d %s (reason=%s, taps=%d)",
            generation,
            self._phase.value,
            self._report.reason.value,
            len(taps),
        )


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def build_rhythm_challenge(
    *,
    clock: Clock,
    seed: int | None = None,
    config: RhythmChallengeConfig | None = None,
    timers: TimerQueue | None = None,
    playback: PlaybackAdapter | None = None,
    feedback: TapFeedback | None = None,
    authority: ChallengeAuthority | None = None,
) -> RhythmChallenge:
    """Factory wiring a challenge to a local authority and clock-driven playback.

    Pass ``timers`` when a custom ``playback`` shares the challenge's queue.
    """

    cfg = config or RhythmChallengeConfig()
    queue = timers or TimerQueue(clock=clock)

    if authority is None:
        if seed is None:
            seed = cfg.seed if cfg.seed is not None else _new_seed()
        generator = build_pattern_generator(
            profile=cfg.profile,
            seed=seed,
            min_interval_ms=cfg.min_interval_ms,
        )
        authority = LocalChallengeAuthority(generator=generator)

    return RhythmChallenge(
        clock=clock,
        authority=authority,
        playback=playback or TimedPlayback(timers=queue),
        timers=queue,
        config=cfg,
        feedback=feedback,
    )
