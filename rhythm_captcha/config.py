from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .pattern_generator import MIN_INTERVAL_MS, PatternProfile

PROFILE_ENV = "RHYTHM_CAPTCHA_PROFILE"
TRAILING_MS_ENV = "RHYTHM_CAPTCHA_TRAILING_MS"
VERIFY_DELAY_MS_ENV = "RHYTHM_CAPTCHA_VERIFY_DELAY_MS"
SEED_ENV = "RHYTHM_CAPTCHA_SEED"
LOG_LEVEL_ENV = "RHYTHM_CAPTCHA_LOG_LEVEL"


@dataclass(frozen=True, slots=True)
class RhythmChallengeConfig:
    profile: PatternProfile = PatternProfile.RICH
    # Silence after the last cue before taps are accepted.
    trailing_buffer_ms: float = 1000.0
    # Presentational wait standing in for a server round trip.
    verify_delay_ms: float = 1000.0
    min_interval_ms: float = MIN_INTERVAL_MS
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.trailing_buffer_ms < 0.0:
            raise ValueError("trailing_buffer_ms must be >= 0")
        if self.verify_delay_ms < 0.0:
            raise ValueError("verify_delay_ms must be >= 0")
        if self.min_interval_ms <= 0.0:
            raise ValueError("min_interval_ms must be > 0")


def config_from_env(environ: Mapping[str, str] | None = None) -> RhythmChallengeConfig:
    """Build a config from ``RHYTHM_CAPTCHA_*`` variables; unset ones keep defaults."""

    env = os.environ if environ is None else environ
    defaults = RhythmChallengeConfig()

    raw_profile = env.get(PROFILE_ENV, "").strip().lower()
    try:
        profile = PatternProfile(raw_profile) if raw_profile else defaults.profile
    except ValueError:
        raise ValueError(f"{PROFILE_ENV} must be one of: rich, simple") from None

    raw_seed = env.get(SEED_ENV, "").strip()
    return RhythmChallengeConfig(
        profile=profile,
        trailing_buffer_ms=_float_env(env, TRAILING_MS_ENV, defaults.trailing_buffer_ms),
        verify_delay_ms=_float_env(env, VERIFY_DELAY_MS_ENV, defaults.verify_delay_ms),
        seed=_int_value(SEED_ENV, raw_seed) if raw_seed else None,
    )


def log_level_from_env(environ: Mapping[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    name = env.get(LOG_LEVEL_ENV, "WARNING").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def _float_env(env: Mapping[str, str], key: str, fallback: float) -> float:
    raw = env.get(key, "").strip()
    if raw == "":
        return fallback
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _int_value(key: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
