"""Fullscreen acquisition.

Tactics run strictly in priority order and the engine stops at the first
verified success; later tactics assume whatever state the earlier (failed)
ones left behind. Theater mode is a video-site-only fallback that is accepted
only because every true-fullscreen tactic failed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .cdp import CdpError
from .config import Timings
from .locators import CssLocator, MediaLocator
from .page import Page
from .playback import resume_playback
from .targets import GUIDE_CHANNEL, VIDEO_SITE

logger = logging.getLogger("channel_remote.fullscreen")

IS_FULLSCREEN_JS = "!!(document.fullscreenElement || document.webkitFullscreenElement || document.mozFullScreenElement)"

WINDOW_VS_SCREEN_JS = r"""({
  screenWidth: screen.width,
  screenHeight: screen.height,
  innerWidth: window.innerWidth,
  innerHeight: window.innerHeight,
  outerWidth: window.outerWidth,
  outerHeight: window.outerHeight,
})"""

CLEAR_OVERLAYS_JS = r"""(() => {
  const selectors = [
    '.ytp-tooltip', '.ytp-preview', '.ytp-storyboard-framepreview',
    '.ytp-progress-bar-hover', '.ytp-scrubber-hover', '.vjs-mouse-display', '[role="tooltip"]',
  ];
  let hidden = 0;
  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      el.style.display = 'none';
      hidden += 1;
    }
  }
  const v = document.querySelector('video');
  if (v) {
    v.dispatchEvent(new MouseEvent('mouseleave', { bubbles: true }));
    if (v.tabIndex < 0) v.tabIndex = -1;
    v.focus();
  }
  return hidden;
})()"""

REQUEST_FULLSCREEN_JS = r"""(async () => {
  const v = Array.from(document.querySelectorAll('video'))
    .sort((a, b) => (b.clientWidth * b.clientHeight) - (a.clientWidth * a.clientHeight))[0];
  if (!v) return 'no-media';
  const fn = v.requestFullscreen || v.webkitRequestFullscreen || v.webkitEnterFullscreen || v.mozRequestFullScreen;
  if (!fn) return 'unsupported';
  try {
    await fn.call(v);
    return 'requested';
  } catch (e) {
    return 'rejected: ' + (e && e.message ? e.message : String(e));
  }
})()"""

THEATER_STATE_JS = r"""(() => {
  const flexy = document.querySelector('ytd-watch-flexy');
  if (flexy && (flexy.hasAttribute('theater') || flexy.hasAttribute('theater-requested_'))) return true;
  const player = document.querySelector('#player-theater-container video, #full-bleed-container video');
  return !!player;
})()"""

NATIVE_FULLSCREEN_SELECTORS = [
    "button.ytp-fullscreen-button",
    ".ytp-fullscreen-button",
    ".vjs-fullscreen-control",
    'button[aria-label="Fullscreen"]',
    'button[aria-label="Fullscreen (f)"]',
    'button[title="Fullscreen"]',
    'button[title="Fullscreen (f)"]',
    'button[aria-label*="fullscreen" i]',
    'button[title*="fullscreen" i]',
    '[role="button"][aria-label*="fullscreen" i]',
]

THEATER_SELECTORS = [
    "button.ytp-size-button",
    'button[aria-label*="theater" i]',
    'button[title*="theater" i]',
]


@dataclass(frozen=True)
class FullscreenAttemptResult:
    tactic: str
    applied: bool
    verified: bool
    error: str | None = None


@dataclass
class FullscreenOutcome:
    success: bool
    tactic: str | None
    attempts: list[FullscreenAttemptResult] = field(default_factory=list)
    resumed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "tactic": self.tactic,
            "attempts": [
                {"tactic": a.tactic, "applied": a.applied, "verified": a.verified, "error": a.error}
                for a in self.attempts
            ],
            "resumed": self.resumed,
        }


@dataclass
class FullscreenContext:
    page: Page
    target_kind: str
    timings: Timings = field(default_factory=Timings)
    sleep: Callable[[float], None] = time.sleep

    def is_fullscreen(self) -> bool:
        return bool(self.page.eval_js(IS_FULLSCREEN_JS))

    def window_fills_screen(self) -> bool:
        dims = self.page.eval_js(WINDOW_VS_SCREEN_JS) or {}
        sw, sh = int(dims.get("screenWidth") or 0), int(dims.get("screenHeight") or 0)
        if not sw or not sh:
            return False
        return int(dims.get("innerWidth") or 0) >= sw - 2 and int(dims.get("innerHeight") or 0) >= sh - 2

    def media_center(self) -> tuple[float, float] | None:
        return MediaLocator().locate(self.page).center


class FullscreenTactic(Protocol):
    name: str

    def applies_to(self, target_kind: str) -> bool: ...

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult: ...


class _Tactic:
    name = "tactic"
    targets = (GUIDE_CHANNEL, VIDEO_SITE)

    def applies_to(self, target_kind: str) -> bool:
        return target_kind in self.targets

    def _verified(self, ctx: FullscreenContext, settle: float | None = None) -> FullscreenAttemptResult:
        ctx.sleep(ctx.timings.fullscreen_settle if settle is None else settle)
        return FullscreenAttemptResult(self.name, True, ctx.is_fullscreen())

    def _not_applied(self, reason: str) -> FullscreenAttemptResult:
        return FullscreenAttemptResult(self.name, False, False, reason)


class NativeButtonTactic(_Tactic):
    """Click the player's own fullscreen control (hovering first so it is shown)."""

    name = "native-button"

    def __init__(self, selectors: list[str] | None = None) -> None:
        self.locator = CssLocator(self.name, selectors or NATIVE_FULLSCREEN_SELECTORS, require_enabled=True)

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        center = ctx.media_center()
        if center is not None:
            ctx.page.move_mouse(*center)
            ctx.sleep(ctx.timings.fullscreen_hover)
        found = self.locator.locate(ctx.page)
        if not found.found or found.center is None:
            return self._not_applied("no visible fullscreen control")
        logger.info("Clicking fullscreen control %s", found.selector)
        ctx.page.click(*found.center)
        return self._verified(ctx)


class DoubleClickTactic(_Tactic):
    name = "double-click"

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        center = ctx.media_center()
        if center is None:
            return self._not_applied("no media element")
        ctx.page.double_click(*center)
        return self._verified(ctx)


class HardenedDoubleClickTactic(_Tactic):
    """Double-click after clearing hover overlays, parking the pointer and focusing the media."""

    name = "hardened-double-click"

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        ctx.page.eval_js(CLEAR_OVERLAYS_JS)
        ctx.page.move_mouse(0, 0)
        ctx.sleep(0.3)
        center = ctx.media_center()
        if center is None:
            return self._not_applied("no media element")
        ctx.page.move_mouse(*center)
        ctx.sleep(0.2)
        ctx.page.double_click(*center)
        return self._verified(ctx)


class FullscreenApiTactic(_Tactic):
    name = "fullscreen-api"

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        status = str(ctx.page.eval_js(REQUEST_FULLSCREEN_JS, user_gesture=True))
        if status != "requested":
            if ctx.is_fullscreen():
                return FullscreenAttemptResult(self.name, True, True)
            return self._not_applied(status)
        return self._verified(ctx)


class OsFullscreenTactic(_Tactic):
    """F11, verified by comparing the viewport to the screen size."""

    name = "os-fullscreen"

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        ctx.page.press_key("F11")
        ctx.sleep(ctx.timings.os_fullscreen_settle)
        verified = ctx.window_fills_screen() or ctx.is_fullscreen()
        return FullscreenAttemptResult(self.name, True, verified)


class TheaterModeTactic(_Tactic):
    name = "theater-mode"
    targets = (VIDEO_SITE,)

    def __init__(self) -> None:
        self.locator = CssLocator(self.name, THEATER_SELECTORS)

    def attempt(self, ctx: FullscreenContext) -> FullscreenAttemptResult:
        if ctx.page.eval_js(THEATER_STATE_JS):
            return FullscreenAttemptResult(self.name, True, True)
        clicked = self.locator.click(ctx.page)
        if not clicked.found:
            ctx.page.press_key("t")
        ctx.sleep(ctx.timings.fullscreen_settle)
        return FullscreenAttemptResult(self.name, True, bool(ctx.page.eval_js(THEATER_STATE_JS)))


def default_tactics() -> list[FullscreenTactic]:
    return [
        NativeButtonTactic(),
        DoubleClickTactic(),
        HardenedDoubleClickTactic(),
        FullscreenApiTactic(),
        OsFullscreenTactic(),
        TheaterModeTactic(),
    ]


class FullscreenEngine:
    def __init__(
        self,
        tactics: list[FullscreenTactic] | None = None,
        *,
        timings: Timings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.tactics = tactics if tactics is not None else default_tactics()
        self.timings = timings or Timings()
        self._sleep = sleep

    def attempt_fullscreen(self, page: Page, target_kind: str) -> FullscreenOutcome:
        """Try tactics in order; never raises."""
        ctx = FullscreenContext(page, target_kind, self.timings, self._sleep)
        outcome = FullscreenOutcome(False, None)

        try:
            if ctx.is_fullscreen():
                logger.info("Already fullscreen")
                outcome.success, outcome.tactic = True, "already-fullscreen"
        except CdpError as exc:
            logger.debug("Fullscreen pre-check failed: %s", exc)

        if not outcome.success:
            for tactic in self.tactics:
                if not tactic.applies_to(target_kind):
                    continue
                try:
                    result = tactic.attempt(ctx)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Fullscreen tactic %s failed: %s", tactic.name, exc)
                    result = FullscreenAttemptResult(tactic.name, False, False, str(exc))
                outcome.attempts.append(result)
                logger.info(
                    "Fullscreen tactic %s: applied=%s verified=%s", result.tactic, result.applied, result.verified
                )
                if result.verified:
                    outcome.success, outcome.tactic = True, result.tactic
                    break

        if not outcome.success:
            logger.warning("All fullscreen tactics failed")
            return outcome

        try:
            outcome.resumed = resume_playback(
                page,
                click_delay=self.timings.resume_click_delay,
                key_delay=self.timings.resume_key_delay,
                sleep=self._sleep,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Resume after fullscreen failed: %s", exc)
        return outcome

    def capabilities(self, page: Page) -> dict[str, Any]:
        """Fullscreen capability flags for debug snapshots."""
        flags = page.eval_js(
            r"""(() => {
              const v = document.querySelector('video');
              return {
                fullscreenEnabled: !!(document.fullscreenEnabled || document.webkitFullscreenEnabled),
                fullscreenElement: !!(document.fullscreenElement || document.webkitFullscreenElement),
                videoRequestFullscreen: !!(v && (v.requestFullscreen || v.webkitRequestFullscreen)),
                nativeButton: !!document.querySelector('.ytp-fullscreen-button, .vjs-fullscreen-control, button[aria-label*="fullscreen" i]'),
                theaterButton: !!document.querySelector('button.ytp-size-button'),
              };
            })()"""
        )
        return flags if isinstance(flags, dict) else {}


__all__ = [
    "DoubleClickTactic",
    "FullscreenApiTactic",
    "FullscreenAttemptResult",
    "FullscreenContext",
    "FullscreenEngine",
    "FullscreenOutcome",
    "FullscreenTactic",
    "HardenedDoubleClickTactic",
    "NativeButtonTactic",
    "OsFullscreenTactic",
    "TheaterModeTactic",
    "default_tactics",
]
