from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .pattern_generator import PatternGenerator
from .rhythm_core import Pattern, Tap
from .rhythm_validator import RhythmReport, score_rhythm


class ChallengeAuthority(Protocol):
    """Issues target patterns and judges reproductions of them.

    The challenge state machine only talks to this seam, so issuing and
    judging can move to a trusted process without touching the core.
    """

    def issue_pattern(self) -> Pattern: ...

    def judge(self, *, taps: Sequence[Tap], pattern: Pattern) -> RhythmReport: ...


class LocalChallengeAuthority:
    """In-process authority: the pattern lives in the same process as the client.

    A scripted client can read and replay the pattern; this is a known gap.
    """

    def __init__(self, *, generator: PatternGenerator) -> None:
        self._generator = generator

    def issue_pattern(self) -> Pattern:
        return self._generator.generate()

    def judge(self, *, taps: Sequence[Tap], pattern: Pattern) -> RhythmReport:
        return score_rhythm(taps, pattern)
