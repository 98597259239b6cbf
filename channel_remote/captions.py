"""Caption/subtitle control for the embedded video player.

Observed visibility comes from the rendered caption text, never from a toggle
button's pressed-looking state (the two disagree often enough to matter).
The only mutation path relied on is the player's ``c`` accelerator; clicking a
located captions button is a fallback for when the accelerator did not reach
the target state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from .cdp import CdpError
from .errors import BrowserFrozenError
from .health import HealthMonitor
from .locators import CssLocator, LocatorResult, locate_first
from .page import Page
from .recovery import FOCUS_MEDIA_JS, RecoveryEngine

logger = logging.getLogger("channel_remote.captions")

OBSERVATION_MAX_AGE = 30.0

CAPTION_TEXT_SELECTORS = [
    ".ytp-caption-window-container .ytp-caption-segment",
    ".captions-text",
    ".ytp-caption-segment",
    ".caption-window .caption-text",
    '[class*="caption-segment"]',
    '[class*="caption-text"]',
    ".ytp-caption-window-bottom",
    ".ytp-caption-window-rollup",
]

CAPTION_CONTAINER_SELECTORS = [
    ".ytp-caption-window-container",
    ".caption-window-container",
    ".ytp-caption-window",
]

CAPTION_BUTTON_SELECTORS = [
    "button.ytp-subtitles-button",
    ".ytp-subtitles-button",
    'button[aria-label*="subtitle" i]',
    'button[aria-label*="caption" i]',
    'button[title*="subtitle" i]',
    'button[title*="caption" i]',
]

CAPTION_VISIBILITY_JS = r"""(textSelectors, containerSelectors) => {
  const shown = (el) => {
    if (!el || el.getClientRects().length === 0) return false;
    for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
      const style = getComputedStyle(node);
      if (style.display === 'none' || style.visibility === 'hidden') return false;
      if (Number(style.opacity || '1') === 0) return false;
    }
    return true;
  };
  for (const selector of textSelectors) {
    for (const el of document.querySelectorAll(selector)) {
      const text = (el.textContent || '').trim();
      if (text && shown(el)) return { visible: true, source: 'text', text: text.slice(0, 80) };
    }
  }
  for (const selector of containerSelectors) {
    for (const el of document.querySelectorAll(selector)) {
      if (!shown(el)) continue;
      for (const child of el.children) {
        // innerText skips descendants that are not rendered.
        const text = (child.innerText || '').trim();
        if (text && shown(child)) return { visible: true, source: 'container', text: text.slice(0, 80) };
      }
    }
  }
  return { visible: false, source: null, text: null };
}"""


class CaptionPreference(str, Enum):
    UNSET = "unset"
    FORCED_ON = "forced-on"
    FORCED_OFF = "forced-off"

    @classmethod
    def from_bool(cls, value: bool | None) -> CaptionPreference:
        if value is None:
            return cls.UNSET
        return cls.FORCED_ON if value else cls.FORCED_OFF

    def as_bool(self) -> bool | None:
        if self is CaptionPreference.UNSET:
            return None
        return self is CaptionPreference.FORCED_ON


@dataclass(frozen=True)
class ObservedCaptions:
    visible: bool
    observed_at: float
    source: str | None = None

    def is_stale(self, now: float, max_age: float = OBSERVATION_MAX_AGE) -> bool:
        return now - self.observed_at > max_age


@dataclass(frozen=True)
class ToggleResult:
    before: bool
    after: bool

    @property
    def toggled(self) -> bool:
        return self.before != self.after


@dataclass
class CaptionResult:
    action: str
    success: bool
    before: bool | None = None
    after: bool | None = None
    method: str | None = None
    was_frozen: bool = False
    recovery_attempted: bool = False
    message: str = ""
    preference: str = CaptionPreference.UNSET.value
    button: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CaptionController:
    def __init__(
        self,
        monitor: HealthMonitor,
        recovery: RecoveryEngine,
        *,
        settle: float = 1.5,
        focus_pause: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.monitor = monitor
        self.recovery = recovery
        self.settle = settle
        self.focus_pause = focus_pause
        self._sleep = sleep
        self._clock = clock
        self.preference = CaptionPreference.UNSET
        self._observed: ObservedCaptions | None = None
        self.button_locators = [
            CssLocator("captions-button", CAPTION_BUTTON_SELECTORS, require_enabled=True),
            CssLocator("captions-button-shadow", CAPTION_BUTTON_SELECTORS, require_enabled=True, deep=True),
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Observation
    # ─────────────────────────────────────────────────────────────────────────

    def is_visible(self, page: Page) -> bool:
        info = page.call_js(CAPTION_VISIBILITY_JS, CAPTION_TEXT_SELECTORS, CAPTION_CONTAINER_SELECTORS) or {}
        visible = bool(info.get("visible"))
        self._observed = ObservedCaptions(visible, self._clock(), info.get("source"))
        return visible

    def last_observed(self) -> ObservedCaptions | None:
        """Most recent observation, or None once it has gone stale."""
        observed = self._observed
        if observed is None or observed.is_stale(self._clock()):
            return None
        return observed

    def effective_preference(self, default: bool | None) -> bool | None:
        """Session override first, static default otherwise."""
        override = self.preference.as_bool()
        return default if override is None else override

    # ─────────────────────────────────────────────────────────────────────────
    # Mutation
    # ─────────────────────────────────────────────────────────────────────────

    def _ensure_responsive(self, page: Page) -> tuple[bool, bool]:
        """Return (was_frozen, recovery_attempted); raise when recovery fails."""
        sample = self.monitor.probe(page)
        if sample.responded:
            return False, False
        logger.warning("Page frozen before caption operation; attempting recovery")
        report = self.recovery.recover(page)
        if not report.recovered:
            raise BrowserFrozenError(
                "Browser is frozen and recovery failed",
                suggestion="Restart the browser session",
                details=report.to_dict(),
            )
        return True, True

    def toggle_via_accelerator(self, page: Page) -> ToggleResult:
        try:
            page.eval_js(FOCUS_MEDIA_JS)
        except CdpError as exc:
            logger.debug("Focusing media before accelerator failed: %s", exc)
        self._sleep(self.focus_pause)
        before = self.is_visible(page)
        page.press_key("c")
        self._sleep(self.settle)
        after = self.is_visible(page)
        logger.info("Caption accelerator: %s -> %s", before, after)
        return ToggleResult(before, after)

    def locate_button(self, page: Page) -> LocatorResult:
        return locate_first(page, self.button_locators)

    def _click_button(self, page: Page) -> bool:
        clicked = locate_first(page, self.button_locators, action="click")
        if not clicked.found:
            return False
        logger.info("Clicked captions button via %s (%s)", clicked.strategy, clicked.selector)
        self._sleep(self.settle)
        return True

    def _result(
        self,
        action: str,
        success: bool,
        before: bool | None = None,
        after: bool | None = None,
        method: str | None = None,
        **kwargs: Any,
    ) -> CaptionResult:
        return CaptionResult(action, success, before, after, method, preference=self.preference.value, **kwargs)

    def apply(self, page: Page, target: bool) -> CaptionResult:
        """Reach ``target`` visibility without touching the session preference."""
        action = "on" if target else "off"
        before = self.is_visible(page)
        if before == target:
            return self._result(action, True, before, before, "none", message=f"Captions already {action}")

        toggle = self.toggle_via_accelerator(page)
        if toggle.after == target:
            return self._result(action, True, toggle.before, toggle.after, "accelerator", message=f"Captions turned {action}")

        if self._click_button(page):
            after = self.is_visible(page)
            return self._result(
                action,
                after == target,
                before,
                after,
                "button",
                message=f"Captions turned {action} via button" if after == target else "Captions button clicked but state unchanged",
            )
        return self._result(action, False, before, toggle.after, "accelerator", message=f"Could not turn captions {action}")

    def enforce(self, page: Page, target: bool) -> CaptionResult:
        """Reach ``target`` for a policy decision; the session preference is left alone."""
        was_frozen, attempted = self._ensure_responsive(page)
        result = self.apply(page, target)
        result.was_frozen, result.recovery_attempted = was_frozen, attempted
        return result

    def set_state(self, page: Page, target: bool) -> CaptionResult:
        self.preference = CaptionPreference.from_bool(target)
        was_frozen, attempted = self._ensure_responsive(page)
        result = self.apply(page, target)
        result.was_frozen, result.recovery_attempted = was_frozen, attempted
        return result

    def toggle(self, page: Page) -> CaptionResult:
        was_frozen, attempted = self._ensure_responsive(page)
        toggle = self.toggle_via_accelerator(page)
        method = "accelerator"
        after = toggle.after
        if not toggle.toggled and self._click_button(page):
            method = "button"
            after = self.is_visible(page)
        self.preference = CaptionPreference.from_bool(after)
        return self._result(
            "toggle",
            after != toggle.before,
            toggle.before,
            after,
            method,
            was_frozen=was_frozen,
            recovery_attempted=attempted,
            message=f"Captions {'on' if after else 'off'}",
        )

    def get_status(self, page: Page, *, check_responsive: bool = True) -> CaptionResult:
        was_frozen, attempted = self._ensure_responsive(page) if check_responsive else (False, False)
        visible = self.is_visible(page)
        button = self.locate_button(page)
        return self._result(
            "status",
            True,
            visible,
            visible,
            None,
            was_frozen=was_frozen,
            recovery_attempted=attempted,
            message=f"Captions {'visible' if visible else 'not visible'}",
            button=button.to_dict(),
        )

    def reset(self, default: bool | None) -> CaptionResult:
        self.preference = CaptionPreference.UNSET
        label = "player default" if default is None else ("on" if default else "off")
        return self._result("reset", True, message=f"Caption preference reset; default is {label}")


__all__ = [
    "CAPTION_BUTTON_SELECTORS",
    "CAPTION_TEXT_SELECTORS",
    "CaptionController",
    "CaptionPreference",
    "CaptionResult",
    "ObservedCaptions",
    "ToggleResult",
]
