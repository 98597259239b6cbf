"""Best-effort unfreeze tactics.

No tactic is guaranteed to help; the engine applies all of them in order and
reports what the follow-up probe observed. `recover()` never raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .health import HealthMonitor, HealthSample
from .page import Page

logger = logging.getLogger("channel_remote.recovery")


@dataclass(frozen=True)
class TacticOutcome:
    tactic: str
    applied: bool
    error: str | None = None


@dataclass(frozen=True)
class RecoveryReport:
    recovered: bool
    outcomes: tuple[TacticOutcome, ...]
    probe: HealthSample

    def to_dict(self) -> dict[str, Any]:
        return {
            "recovered": self.recovered,
            "tactics": [{"tactic": o.tactic, "applied": o.applied, "error": o.error} for o in self.outcomes],
            "probe": self.probe.to_dict(),
        }


class RecoveryTactic(Protocol):
    name: str

    def attempt(self, page: Page) -> TacticOutcome: ...


class ViewportJiggle:
    """Grow the viewport a few pixels and restore it to force a relayout."""

    name = "viewport-jiggle"

    def __init__(self, delta: int = 10, settle: float = 0.5, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delta = delta
        self.settle = settle
        self._sleep = sleep

    def attempt(self, page: Page) -> TacticOutcome:
        window_id, bounds = page.get_window()
        width, height = bounds.get("width"), bounds.get("height")
        if bounds.get("windowState", "normal") == "normal" and width and height:
            page.set_window_bounds(window_id, {"width": width + self.delta, "height": height + self.delta})
            try:
                self._sleep(self.settle)
            finally:
                page.set_window_bounds(window_id, {"width": width, "height": height})
            self._sleep(self.settle)
            return TacticOutcome(self.name, True)

        # Maximized/fullscreen windows reject explicit bounds; jiggle the emulated viewport instead.
        size = page.eval_js("({w: window.innerWidth, h: window.innerHeight})") or {}
        w, h = int(size.get("w") or 1280), int(size.get("h") or 720)
        page.set_viewport_override(w + self.delta, h + self.delta)
        try:
            self._sleep(self.settle)
        finally:
            page.clear_viewport_override()
        self._sleep(self.settle)
        return TacticOutcome(self.name, True)


FOCUS_MEDIA_JS = r"""(() => {
  const videos = Array.from(document.querySelectorAll('video'));
  const v = videos.sort((a, b) => (b.clientWidth * b.clientHeight) - (a.clientWidth * a.clientHeight))[0];
  if (!v) return false;
  const wasPlaying = !v.paused;
  if (v.tabIndex < 0) v.tabIndex = -1;
  v.focus();
  v.click();
  v.dispatchEvent(new FocusEvent('focus', { bubbles: false }));
  if (wasPlaying && v.paused) v.play().catch(() => {});
  return true;
})()"""


class FocusRestore:
    name = "focus-restore"

    def attempt(self, page: Page) -> TacticOutcome:
        found = bool(page.eval_js(FOCUS_MEDIA_JS))
        return TacticOutcome(self.name, found, None if found else "no media element")


class KeyWakeup:
    """Escape then Tab to perturb input routing."""

    name = "key-wakeup"

    def __init__(self, pause: float = 0.2, sleep: Callable[[float], None] = time.sleep) -> None:
        self.pause = pause
        self._sleep = sleep

    def attempt(self, page: Page) -> TacticOutcome:
        page.press_key("Escape")
        self._sleep(self.pause)
        page.press_key("Tab")
        return TacticOutcome(self.name, True)


class RecoveryEngine:
    def __init__(self, monitor: HealthMonitor, tactics: list[RecoveryTactic] | None = None) -> None:
        self.monitor = monitor
        self.tactics: list[RecoveryTactic] = tactics if tactics is not None else [ViewportJiggle(), FocusRestore(), KeyWakeup()]

    def recover(self, page: Page | None) -> RecoveryReport:
        outcomes: list[TacticOutcome] = []
        if page is not None:
            for tactic in self.tactics:
                try:
                    outcome = tactic.attempt(page)
                except Exception as exc:  # noqa: BLE001
                    logger.warning("Recovery tactic %s failed: %s", tactic.name, exc)
                    outcome = TacticOutcome(tactic.name, False, str(exc))
                outcomes.append(outcome)
        probe = self.monitor.probe(page)
        if probe.responded:
            logger.info("Recovery succeeded (%s)", ", ".join(o.tactic for o in outcomes if o.applied) or "no tactic applied")
        else:
            logger.error("Recovery failed; page still unresponsive")
        return RecoveryReport(probe.responded, tuple(outcomes), probe)

    def detect_and_recover(self, page: Page | None) -> tuple[HealthSample, RecoveryReport | None]:
        """Probe first; run the tactic sequence only when frozen."""
        sample = self.monitor.probe(page)
        if sample.responded:
            return sample, None
        logger.warning("Page frozen (%s); attempting recovery", sample.error or "no response")
        return sample, self.recover(page)


__all__ = [
    "FocusRestore",
    "KeyWakeup",
    "RecoveryEngine",
    "RecoveryReport",
    "RecoveryTactic",
    "TacticOutcome",
    "ViewportJiggle",
]
