from __future__ import annotations

import logging
import math
import random
from array import array

import pygame

from .rhythm_core import Tap
from .timers import TimerQueue
from .playback import TimedPlayback

logger = logging.getLogger(__name__)


class PygameCuePlayback(TimedPlayback):
    """Audible rhythm playback and tap acknowledgement through pygame.mixer.

    Timing stays with the TimerQueue; this class only turns cue callbacks
    into sounds. If the mixer cannot be opened it stays silent and the
    challenge runs exactly as it would headless.
    """

    _sample_rate = 22050
    _amp = 32767

    CUE_HZ = 261.63  # C4
    CUE_DURATION_S = 0.18
    TAP_HZ = 329.63  # E4
    TAP_DURATION_S = 0.05
    NOISE_VOLUME = 0.10  # roughly -20 dB

    def __init__(self, *, timers: TimerQueue) -> None:
        super().__init__(timers=timers)
        self._available = False
        self._cue_sound: pygame.mixer.Sound | None = None
        self._tap_sound: pygame.mixer.Sound | None = None
        self._noise_sound: pygame.mixer.Sound | None = None

        self._noise_channel: pygame.mixer.Channel | None = None
        self._cue_channel: pygame.mixer.Channel | None = None
        self._tap_channel: pygame.mixer.Channel | None = None

        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            pygame.mixer.set_num_channels(max(4, int(pygame.mixer.get_num_channels())))

            self._cue_sound = self._build_tone_sound(self.CUE_HZ, self.CUE_DURATION_S, gain=0.55)
            self._tap_sound = self._build_tone_sound(self.TAP_HZ, self.TAP_DURATION_S, gain=0.35)
            self._noise_sound = self._build_brown_noise_sound(duration_s=2.0, seed=0xB20)

            self._noise_channel = pygame.mixer.Channel(0)
            self._cue_channel = pygame.mixer.Channel(1)
            self._tap_channel = pygame.mixer.Channel(2)

            self._available = True
        except pygame.error:
            logger.warning("Audio unavailable; rhythm playback will be silent", exc_info=True)
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    def acknowledge_tap(self, tap: Tap) -> None:
        _ = tap
        if not self._available:
            return
        assert self._tap_channel is not None and self._tap_sound is not None
        self._tap_channel.play(self._tap_sound)

    def shutdown(self) -> None:
        self.cancel()
        if self._available:
            for channel in (self._noise_channel, self._cue_channel, self._tap_channel):
                if channel is not None:
                    channel.stop()

    def _emit_cue(self, index: int) -> None:
        if not self._available:
            return
        assert self._cue_channel is not None and self._cue_sound is not None
        self._cue_channel.play(self._cue_sound)

    def _on_start(self) -> None:
        # Masking noise under the cues for the whole playback window.
        if not self._available:
            return
        assert self._noise_channel is not None and self._noise_sound is not None
        self._noise_channel.set_volume(self.NOISE_VOLUME)
        self._noise_channel.play(self._noise_sound, loops=-1)

    def _on_stop(self) -> None:
        if not self._available:
            return
        assert self._noise_channel is not None
        self._noise_channel.stop()

    def _build_tone_sound(self, frequency_hz: float, duration_s: float, *, gain: float) -> pygame.mixer.Sound:
        pcm = self._render_tone_pcm(frequency_hz, duration_s, gain=gain)
        return pygame.mixer.Sound(buffer=pcm.tobytes())

    def _build_brown_noise_sound(self, *, duration_s: float, seed: int) -> pygame.mixer.Sound:
        rng = random.Random(int(seed))
        sample_count = max(1, int(self._sample_rate * duration_s))
        out = array("h")
        level = 0.0
        for _ in range(sample_count):
            # Leaky integration of white noise.
            level = (level * 0.998) + rng.uniform(-1.0, 1.0) * 0.04
            level = max(-1.0, min(1.0, level))
            out.append(int(level * 0.8 * self._amp))
        return pygame.mixer.Sound(buffer=out.tobytes())

    def _render_tone_pcm(self, frequency_hz: float, duration_s: float, *, gain: float) -> array[int]:
        sample_count = max(1, int(self._sample_rate * duration_s))
        fade_n = max(1, int(self._sample_rate * 0.008))
        out = array("h")
        for idx in range(sample_count):
            envelope = 1.0
            if idx < fade_n:
                envelope = idx / float(fade_n)
            tail = sample_count - idx - 1
            if tail < fade_n:
                envelope = min(envelope, tail / float(fade_n))
            phase = (2.0 * math.pi * float(frequency_hz) * idx) / float(self._sample_rate)
            sample = math.sin(phase) * gain * max(0.0, envelope)
            out.append(int(max(-1.0, min(1.0, sample)) * self._amp))
        return out
