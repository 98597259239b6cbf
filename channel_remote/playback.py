"""Playback helpers shared by the fullscreen engine and the navigation pipeline."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from .cdp import CdpError
from .page import Page

logger = logging.getLogger("channel_remote.playback")

MEDIA_STATE_JS = r"""(() => {
  const v = Array.from(document.querySelectorAll('video'))
    .sort((a, b) => (b.clientWidth * b.clientHeight) - (a.clientWidth * a.clientHeight))[0];
  if (!v) return null;
  return {
    readyState: v.readyState,
    paused: v.paused,
    ended: v.ended,
    muted: v.muted,
    currentTime: v.currentTime,
    duration: Number.isFinite(v.duration) ? v.duration : null,
    width: v.clientWidth,
    height: v.clientHeight,
    src: (v.currentSrc || '').slice(0, 300),
  };
})()"""

PLAY_JS = r"""(() => {
  const v = document.querySelector('video');
  if (!v) return false;
  if (!v.paused) return true;
  const p = v.play();
  if (p && p.catch) p.catch(() => {});
  return true;
})()"""

CLICK_PLAY_CONTROL_JS = r"""(() => {
  const v = document.querySelector('video');
  if (!v || !v.paused) return null;
  const selectors = [
    '.ytp-play-button',
    '.ytp-large-play-button',
    '.vjs-play-control',
    '.vjs-big-play-button',
    'button[aria-label*="play" i]',
    'button[title*="play" i]',
  ];
  for (const selector of selectors) {
    const btn = document.querySelector(selector);
    if (btn && btn.offsetParent !== null && getComputedStyle(btn).display !== 'none') {
      btn.click();
      return selector;
    }
  }
  return null;
})()"""

IS_PAUSED_JS = "(() => { const v = document.querySelector('video'); return !!(v && v.paused); })()"

# Player chrome is hidden; caption nodes are explicitly kept visible.
HIDE_CONTROLS_CSS = """
.ytp-chrome-bottom, .ytp-chrome-top, .ytp-gradient-bottom, .ytp-gradient-top,
.ytp-progress-bar-container, .ytp-title, .ytp-show-cards-title, .ytp-watermark,
.ytp-chrome-controls, .ytp-cards-teaser, .ytp-pause-overlay, .ytp-tooltip, .ytp-preview,
.ytp-endscreen-element, .ytp-ce-element, .ytp-suggested-action, .ytp-upnext,
.ytp-cards-button, .ytp-overflow-button, .ytp-ad-overlay-container, .ytp-ad-text,
.ytp-subscribe-card, .ytp-videowall-still, .ytp-suggestion-set,
.vjs-control-bar, .vjs-big-play-button, .vjs-loading-spinner {
  opacity: 0 !important;
  visibility: hidden !important;
  pointer-events: none !important;
}
.ytp-caption-window-container, .ytp-caption-segment, .captions-text,
.ytp-caption-window-bottom, .ytp-caption-window-rollup,
[class*="caption-window"], [class*="caption-text"], [class*="caption-segment"],
.vjs-text-track-display {
  opacity: 1 !important;
  visibility: visible !important;
  display: block !important;
}
html, body, video { cursor: none !important; }
"""

HIDE_CONTROLS_STYLE_ID = "channel-remote-hide-controls"


def media_state(page: Page) -> dict[str, Any] | None:
    state = page.eval_js(MEDIA_STATE_JS)
    return state if isinstance(state, dict) else None


def resume_playback(
    page: Page,
    *,
    click_delay: float = 0.5,
    key_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Multi-method resume: play(), then a play-control click, then a Space keypress.

    Every step runs; each one only acts while the media is still paused, since
    Space and play-control clicks toggle playback.
    """
    applied: list[str] = []
    try:
        if page.eval_js(PLAY_JS, user_gesture=True):
            applied.append("play")
    except CdpError as exc:
        logger.debug("play() failed: %s", exc)

    sleep(click_delay)
    try:
        selector = page.eval_js(CLICK_PLAY_CONTROL_JS, user_gesture=True)
        if selector:
            applied.append(f"click:{selector}")
    except CdpError as exc:
        logger.debug("Play control click failed: %s", exc)

    sleep(key_delay)
    try:
        if page.eval_js(IS_PAUSED_JS):
            page.press_key(" ")
            applied.append("space")
    except CdpError as exc:
        logger.debug("Space keypress failed: %s", exc)

    logger.info("Resume playback: %s", ", ".join(applied) or "already playing")
    return applied


def hide_controls(page: Page, *, delay: float = 2.0, sleep: Callable[[float], None] = time.sleep) -> bool:
    """Park the pointer in a corner and hide player chrome (captions stay visible)."""
    try:
        page.move_mouse(0, 0)
        sleep(delay)
        page.add_style(HIDE_CONTROLS_CSS, HIDE_CONTROLS_STYLE_ID)
        return True
    except CdpError as exc:
        logger.warning("Hiding player controls failed: %s", exc)
        return False


__all__ = [
    "HIDE_CONTROLS_CSS",
    "MEDIA_STATE_JS",
    "hide_controls",
    "media_state",
    "resume_playback",
]
