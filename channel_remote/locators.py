"""Ranked DOM locator strategies.

A locator chain is evaluated in order and stops at the first strategy that
finds a visible element; the result records which strategy matched so
callers can log and test the path that was actually taken.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .cdp import CdpError
from .page import Page

logger = logging.getLogger("channel_remote.locators")

# Traverses open shadow roots and same-origin iframes (cross-origin frames throw and are skipped).
DEEP_ROOTS_JS = r"""
const __crCollectRoots = (start) => {
  const roots = [];
  const queue = [{ root: start, depth: 0 }];
  const MAX_ROOTS = 60;
  const MAX_DEPTH = 6;
  const MAX_SCAN = 4000;
  while (queue.length && roots.length < MAX_ROOTS) {
    const { root, depth } = queue.shift();
    if (!root || roots.includes(root)) continue;
    roots.push(root);
    if (depth >= MAX_DEPTH || !root.querySelectorAll) continue;
    let scanned = 0;
    for (const el of root.querySelectorAll('*')) {
      if (++scanned > MAX_SCAN) break;
      if (el.shadowRoot) queue.push({ root: el.shadowRoot, depth: depth + 1 });
      if (el.tagName === 'IFRAME' || el.tagName === 'FRAME') {
        try {
          const doc = el.contentDocument;
          if (doc) queue.push({ root: doc, depth: depth + 1 });
        } catch (e) {
          // cross-origin
        }
      }
    }
  }
  return roots;
};
"""

VISIBLE_JS = r"""
const __crIsVisible = (el) => {
  if (!el || !el.getBoundingClientRect) return false;
  const r = el.getBoundingClientRect();
  if (r.width <= 0 || r.height <= 0) return false;
  const style = getComputedStyle(el);
  if (style.display === 'none' || style.visibility === 'hidden') return false;
  if (Number(style.opacity || '1') === 0) return false;
  return true;
};
const __crBox = (el, selector) => {
  const r = el.getBoundingClientRect();
  return {
    selector,
    x: r.left + r.width / 2,
    y: r.top + r.height / 2,
    width: r.width,
    height: r.height,
    disabled: !!el.disabled || el.getAttribute('aria-disabled') === 'true',
  };
};
"""

_CSS_LOCATE_JS = (
    "(selectors, requireEnabled, deep, text) => {"
    + VISIBLE_JS
    + DEEP_ROOTS_JS
    + r"""
  const roots = deep ? __crCollectRoots(document) : [document];
  const needle = text ? String(text).toLowerCase() : null;
  for (const selector of selectors) {
    for (const root of roots) {
      let found = [];
      try {
        found = Array.from(root.querySelectorAll(selector));
      } catch (e) {
        continue;
      }
      for (const el of found) {
        if (!__crIsVisible(el)) continue;
        if (requireEnabled && (el.disabled || el.getAttribute('aria-disabled') === 'true')) continue;
        if (needle && !(el.textContent || '').trim().toLowerCase().includes(needle)) continue;
        return __crBox(el, selector);
      }
    }
  }
  return null;
}"""
)

_CSS_CLICK_JS = (
    "(selectors, deep, text) => {"
    + VISIBLE_JS
    + DEEP_ROOTS_JS
    + r"""
  const roots = deep ? __crCollectRoots(document) : [document];
  const needle = text ? String(text).toLowerCase() : null;
  for (const selector of selectors) {
    for (const root of roots) {
      let found = [];
      try {
        found = Array.from(root.querySelectorAll(selector));
      } catch (e) {
        continue;
      }
      for (const el of found) {
        if (!__crIsVisible(el)) continue;
        if (needle && !(el.textContent || '').trim().toLowerCase().includes(needle)) continue;
        el.click();
        return selector;
      }
    }
  }
  return null;
}"""
)

# Largest visible media element wins; players often keep hidden preview <video> nodes around.
MEDIA_BOX_JS = r"""(() => {
  const videos = Array.from(document.querySelectorAll('video'));
  let best = null;
  let bestArea = -1;
  for (const v of videos) {
    const r = v.getBoundingClientRect();
    const area = r.width * r.height;
    if (area > bestArea) {
      best = { selector: 'video', x: r.left + r.width / 2, y: r.top + r.height / 2, width: r.width, height: r.height };
      bestArea = area;
    }
  }
  return best;
})()"""


@dataclass(frozen=True)
class LocatorResult:
    found: bool
    strategy: str | None = None
    selector: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def center(self) -> tuple[float, float] | None:
        if not self.found or "x" not in self.details:
            return None
        return float(self.details["x"]), float(self.details["y"])

    def to_dict(self) -> dict[str, Any]:
        return {"found": self.found, "strategy": self.strategy, "selector": self.selector}


NOT_FOUND = LocatorResult(False)


class CssLocator:
    """First visible element matching a ranked selector list."""

    def __init__(
        self,
        name: str,
        selectors: list[str],
        *,
        require_enabled: bool = False,
        deep: bool = False,
        text: str | None = None,
    ) -> None:
        self.name = name
        self.selectors = list(selectors)
        self.require_enabled = require_enabled
        self.deep = deep
        self.text = text

    def locate(self, page: Page) -> LocatorResult:
        box = page.call_js(_CSS_LOCATE_JS, self.selectors, self.require_enabled, self.deep, self.text)
        if not isinstance(box, dict):
            return NOT_FOUND
        return LocatorResult(True, self.name, box.get("selector"), box)

    def click(self, page: Page) -> LocatorResult:
        """Locate and click via the DOM (no pointer movement)."""
        selector = page.call_js(_CSS_CLICK_JS, self.selectors, self.deep, self.text)
        if not selector:
            return NOT_FOUND
        return LocatorResult(True, self.name, selector)


class MediaLocator:
    name = "media-element"

    def locate(self, page: Page) -> LocatorResult:
        box = page.eval_js(MEDIA_BOX_JS)
        if not isinstance(box, dict) or float(box.get("width") or 0) <= 0:
            return NOT_FOUND
        return LocatorResult(True, self.name, "video", box)


def locate_first(page: Page, strategies: list[CssLocator], *, action: str = "locate") -> LocatorResult:
    """Evaluate strategies in order with early exit; a failing strategy is skipped."""
    for strategy in strategies:
        try:
            result = strategy.click(page) if action == "click" else strategy.locate(page)
        except CdpError as exc:
            logger.debug("Locator %s failed: %s", strategy.name, exc)
            continue
        if result.found:
            return result
    return NOT_FOUND


__all__ = [
    "CssLocator",
    "DEEP_ROOTS_JS",
    "LocatorResult",
    "MEDIA_BOX_JS",
    "MediaLocator",
    "NOT_FOUND",
    "VISIBLE_JS",
    "locate_first",
]
