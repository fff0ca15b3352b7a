"""Pygame UI shell for the Rhythm Captcha.

A main menu opens the rhythm verification screen. The screen is the input
adapter (Space / left click / joystick button 0 deliver taps) and renders
the challenge snapshot; audio comes from PygameCuePlayback.

Deterministic timing/scoring/RNG/state lives in rhythm_captcha/* (core modules).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import pygame

from .audio import PygameCuePlayback
from .challenge import RhythmChallenge, build_rhythm_challenge
from .clock import RealClock
from .config import RhythmChallengeConfig, config_from_env, log_level_from_env
from .results import describe_result
from .rhythm_core import RESOLVED_PHASES, ChallengePhase, ChallengeSnapshot
from .timers import TimerQueue

logger = logging.getLogger(__name__)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


WINDOW_SIZE = (960, 540)
TARGET_FPS = 60


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
            return

        if event.type == pygame.JOYHATMOTION:
            _, y = event.value
            if y == 1:
                self._move(-1)
            elif y == -1:
                self._move(1)
            return

        if event.type == pygame.JOYBUTTONDOWN:
            # Common mapping: 0 = select, 1 = back/cancel.
            if event.button == 0:
                self._activate()
            elif event.button == 1:
                self._back()

    def _handle_key(self, key: int) -> None:
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        bg = (3, 9, 78)
        panel_bg = (8, 18, 104)
        header_bg = (18, 30, 118)
        border = (226, 236, 255)
        text_main = (238, 245, 255)
        text_muted = (186, 200, 224)
        active_bg = (244, 248, 255)
        active_text = (14, 26, 74)

        surface.fill(bg)

        frame = _frame_rect(w, h)
        pygame.draw.rect(surface, panel_bg, frame)
        pygame.draw.rect(surface, border, frame, 2)

        header = _header_rect(frame, h)
        pygame.draw.rect(surface, header_bg, header)
        pygame.draw.line(surface, border, (header.x, header.bottom), (header.right, header.bottom), 1)

        title = self._title_font.render(self._title, True, text_main)
        surface.blit(title, title.get_rect(center=(frame.centerx, header.centery)))

        row_h = 44
        gap = 10
        total_h = row_h * len(self._items) + gap * max(0, len(self._items) - 1)
        y = header.bottom + max(24, (frame.bottom - header.bottom - total_h) // 2)

        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.x + frame.w // 4, y, frame.w // 2, row_h)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, active_bg, row)
                pygame.draw.rect(surface, (120, 142, 196), row, 2)
            else:
                pygame.draw.rect(surface, (9, 20, 106), row)
                pygame.draw.rect(surface, (62, 84, 152), row, 1)

            color = active_text if selected else text_main
            text = self._item_font.render(item.label, True, color)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h + gap

        footer = "Enter/Space: Select  |  Esc/Backspace: Back"
        foot = self._hint_font.render(footer, True, text_muted)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class RhythmChallengeScreen:
    """Input adapter and renderer for one RhythmChallenge."""

    _bg = (3, 9, 78)
    _panel_bg = (8, 18, 104)
    _header_bg = (18, 30, 118)
    _border = (226, 236, 255)
    _text_main = (238, 245, 255)
    _text_muted = (186, 200, 224)
    _pass_color = (96, 214, 128)
    _fail_color = (236, 96, 96)
    _beat_off = (62, 84, 152)
    _beat_on = (244, 248, 255)

    def __init__(
        self,
        app: App,
        *,
        challenge: RhythmChallenge,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._app = app
        self._challenge = challenge
        self._on_close = on_close
        self._title_font = pygame.font.Font(None, 42)
        self._prompt_font = pygame.font.Font(None, 36)
        self._small_font = pygame.font.Font(None, 24)
        self._hint_font = pygame.font.Font(None, 22)

    @property
    def challenge(self) -> RhythmChallenge:
        return self._challenge

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
            return
        if event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            self._challenge.record_tap()
            return
        if event.type == pygame.JOYBUTTONDOWN:
            if event.button == 0:
                self._challenge.record_tap()
            elif event.button == 1:
                self._close()

    def _handle_key(self, key: int) -> None:
        challenge = self._challenge
        if key == pygame.K_SPACE:
            challenge.record_tap()
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            if challenge.can_verify():
                challenge.verify()
            else:
                challenge.start_playback()
        elif key == pygame.K_p:
            challenge.start_playback()
        elif key == pygame.K_v:
            challenge.verify()
        elif key == pygame.K_r:
            challenge.reset()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._close()

    def _close(self) -> None:
        self._challenge.reset()
        if self._on_close is not None:
            self._on_close()
        self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        self._challenge.update()
        snap = self._challenge.snapshot()

        w, h = surface.get_size()
        surface.fill(self._bg)
        frame = _frame_rect(w, h)
        pygame.draw.rect(surface, self._panel_bg, frame)
        pygame.draw.rect(surface, self._border, frame, 2)

        header = _header_rect(frame, h)
        pygame.draw.rect(surface, self._header_bg, header)
        pygame.draw.line(surface, self._border, (header.x, header.bottom), (header.right, header.bottom), 1)
        title = self._title_font.render(snap.title, True, self._text_main)
        surface.blit(title, title.get_rect(center=(frame.centerx, header.centery)))

        tag = self._hint_font.render(snap.phase.value.upper(), True, self._text_muted)
        surface.blit(tag, (header.x + 12, header.y + (header.h - tag.get_height()) // 2))

        prompt_color = self._text_main
        if snap.phase is ChallengePhase.PASSED:
            prompt_color = self._pass_color
        elif snap.phase is ChallengePhase.FAILED:
            prompt_color = self._fail_color
        prompt = self._prompt_font.render(snap.prompt, True, prompt_color)
        surface.blit(prompt, prompt.get_rect(midtop=(frame.centerx, header.bottom + 24)))

        y = header.bottom + 80
        if snap.cues_total > 0:
            self._draw_beats(surface, frame, y, snap)
            y += 56

        if snap.time_remaining_s is not None:
            rem = self._small_font.render(f"{snap.time_remaining_s:0.1f}s", True, self._text_muted)
            surface.blit(rem, rem.get_rect(midtop=(frame.centerx, y)))
            y += 32

        if snap.phase in RESOLVED_PHASES:
            result = self._challenge.result
            if result is not None:
                for line in describe_result(result)[1:]:
                    txt = self._small_font.render(line, True, self._text_muted)
                    surface.blit(txt, txt.get_rect(midtop=(frame.centerx, y)))
                    y += 26

        foot = self._hint_font.render(snap.input_hint, True, self._text_muted)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))

    def _draw_beats(self, surface: pygame.Surface, frame: pygame.Rect, y: int, snap: ChallengeSnapshot) -> None:
        # Top row: cues heard. Bottom row: taps recorded so far.
        count = snap.cues_total
        spacing = 44
        x0 = frame.centerx - (spacing * (count - 1)) // 2
        for idx in range(count):
            cx = x0 + idx * spacing
            heard = idx < snap.cues_emitted
            pygame.draw.circle(surface, self._beat_on if heard else self._beat_off, (cx, y + 10), 12)
            tapped = idx < snap.tap_count
            pygame.draw.circle(surface, self._beat_on if tapped else self._beat_off, (cx, y + 40), 8, 0 if tapped else 2)


def _frame_rect(w: int, h: int) -> pygame.Rect:
    frame_margin = max(10, min(26, w // 34))
    return pygame.Rect(
        frame_margin,
        frame_margin,
        max(260, w - frame_margin * 2),
        max(220, h - frame_margin * 2),
    )


def _header_rect(frame: pygame.Rect, h: int) -> pygame.Rect:
    header_h = max(34, min(52, h // 8))
    return pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: RhythmChallengeConfig | None = None,
) -> int:
    logging.basicConfig(
        level=log_level_from_env(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = config or config_from_env()

    pygame.init()
    pygame.display.set_caption("Rhythm Captcha")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()

    def open_challenge() -> None:
        timers = TimerQueue(clock=real_clock)
        audio = PygameCuePlayback(timers=timers)
        challenge = build_rhythm_challenge(
            clock=real_clock,
            config=cfg,
            timers=timers,
            playback=audio,
            feedback=audio,
        )
        logger.info("Opening challenge (profile=%s)", cfg.profile.value)
        app.push(RhythmChallengeScreen(app, challenge=challenge, on_close=audio.shutdown))

    main_items = [
        MenuItem("Rhythm Verification", open_challenge),
        MenuItem("Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Rhythm Captcha", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
