"""High-level wrapper around one attached browser tab."""

from __future__ import annotations

import json
import time
from typing import Any

from .cdp import CdpConnection, CdpError, CdpTimeoutError

# key -> (code, windowsVirtualKeyCode, text)
_KEYS: dict[str, tuple[str, int, str]] = {
    "Enter": ("Enter", 13, "\r"),
    "Tab": ("Tab", 9, ""),
    "Escape": ("Escape", 27, ""),
    " ": ("Space", 32, " "),
    "Space": ("Space", 32, " "),
    "F11": ("F11", 122, ""),
    "ArrowLeft": ("ArrowLeft", 37, ""),
    "ArrowRight": ("ArrowRight", 39, ""),
}

# Events after which the tab handle is unusable.
DETACH_EVENTS = ("Inspector.detached", "Inspector.targetCrashed", "Target.detachedFromTarget")


def _key_spec(key: str) -> tuple[str, str, int, str]:
    if key in _KEYS:
        code, vk, text = _KEYS[key]
        return (" " if key == "Space" else key), code, vk, text
    if len(key) == 1 and key.isalpha():
        return key, f"Key{key.upper()}", ord(key.upper()), key
    raise ValueError(f"Unsupported key: {key!r}")


class Page:
    """One tab: JS evaluation, navigation, synthetic input and window control.

    All calls are bounded by the connection timeout unless a call-specific
    timeout is given.
    """

    def __init__(self, connection: CdpConnection, target_id: str, url: str = ""):
        self.conn = connection
        self.target_id = target_id
        self.url_hint = url
        self._detached = False
        self._closed = False
        self._page_enabled = False
        self._runtime_enabled = False

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def mark_detached(self) -> None:
        self._detached = True

    def is_closed(self) -> bool:
        return self._closed or bool(getattr(self.conn, "closed", False))

    def is_detached(self) -> bool:
        if self._detached:
            return True
        has_event = getattr(self.conn, "has_event", None)
        if has_event is not None and any(has_event(name) for name in DETACH_EVENTS):
            self._detached = True
        return self._detached

    def is_alive(self) -> bool:
        return not (self.is_closed() or self.is_detached())

    def close(self) -> None:
        self._closed = True
        self.conn.close()

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        if timeout is None:
            return self.conn.send(method, params)
        return self.conn.send(method, params, timeout=timeout)

    def enable_domains(self) -> None:
        """Enable Page and Runtime once per connection."""
        if not self._page_enabled:
            self.send("Page.enable")
            self._page_enabled = True
        if not self._runtime_enabled:
            self.send("Runtime.enable")
            self._runtime_enabled = True

    # ─────────────────────────────────────────────────────────────────────────
    # Evaluation & navigation
    # ─────────────────────────────────────────────────────────────────────────

    def eval_js(self, expression: str, *, timeout: float | None = None, user_gesture: bool = False) -> Any:
        """Evaluate JavaScript and return its JSON value.

        undefined and null map to None; script exceptions raise CdpError.
        ``user_gesture`` runs the script with transient activation (needed by
        requestFullscreen and play()).
        """
        params: dict[str, Any] = {"expression": expression, "returnByValue": True, "awaitPromise": True}
        if user_gesture:
            params["userGesture"] = True
        result = self.send("Runtime.evaluate", params, timeout=timeout)
        if result.get("exceptionDetails"):
            details = result["exceptionDetails"]
            text = (details.get("exception") or {}).get("description") or details.get("text") or "script error"
            raise CdpError(f"Evaluation failed: {text}")
        value = result.get("result")
        if not isinstance(value, dict):
            return None
        if value.get("type") == "undefined":
            return None
        if value.get("type") == "object" and value.get("subtype") == "null":
            return None
        return value.get("value")

    def call_js(self, function_source: str, *args: Any, timeout: float | None = None, user_gesture: bool = False) -> Any:
        """Invoke ``(function_source)(...args)`` with JSON-encoded arguments."""
        encoded = ", ".join(json.dumps(a) for a in args)
        return self.eval_js(f"({function_source})({encoded})", timeout=timeout, user_gesture=user_gesture)

    def navigate(self, url: str, *, timeout: float = 30.0) -> str:
        """Navigate and wait for DOMContentLoaded only (heavy pages rarely reach load)."""
        self.enable_domains()
        while self.conn.pop_event("Page.domContentEventFired") is not None:
            pass
        result = self.send("Page.navigate", {"url": url}, timeout=min(timeout, 10.0))
        error_text = result.get("errorText")
        if error_text:
            raise CdpError(f"Navigation to {url} failed: {error_text}")

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CdpTimeoutError(f"Navigation to {url} timed out after {timeout:.0f}s")
            # Short slices keep the connection available to health probes.
            if self.conn.wait_for_event("Page.domContentEventFired", timeout=min(0.5, remaining)) is not None:
                break
        self.url_hint = url
        return url

    def url(self, *, timeout: float | None = None) -> str:
        return self.eval_js("window.location.href", timeout=timeout) or ""

    def add_style(self, css: str, style_id: str) -> None:
        self.call_js(
            """(css, id) => {
                let el = document.getElementById(id);
                if (!el) {
                    el = document.createElement('style');
                    el.id = id;
                    (document.head || document.documentElement).appendChild(el);
                }
                el.textContent = css;
                return true;
            }""",
            css,
            style_id,
        )

    def set_user_agent(self, user_agent: str) -> None:
        self.send("Network.setUserAgentOverride", {"userAgent": user_agent})

    def bring_to_front(self) -> None:
        self.send("Page.bringToFront")

    # ─────────────────────────────────────────────────────────────────────────
    # Mouse input
    # ─────────────────────────────────────────────────────────────────────────

    def _mouse_event(self, event_type: str, x: float, y: float, button: str = "none", click_count: int = 0) -> None:
        self.send(
            "Input.dispatchMouseEvent",
            {"type": event_type, "x": x, "y": y, "button": button, "clickCount": click_count},
        )

    def move_mouse(self, x: float, y: float) -> None:
        self._mouse_event("mouseMoved", x, y)

    def click(self, x: float, y: float, click_count: int = 1) -> None:
        self._mouse_event("mousePressed", x, y, "left", click_count)
        self._mouse_event("mouseReleased", x, y, "left", click_count)

    def double_click(self, x: float, y: float) -> None:
        """Two press/release pairs, the second with clickCount=2 so dblclick fires."""
        self.move_mouse(x, y)
        self.click(x, y, click_count=1)
        self.click(x, y, click_count=2)

    # ─────────────────────────────────────────────────────────────────────────
    # Keyboard input
    # ─────────────────────────────────────────────────────────────────────────

    def press_key(self, key: str) -> None:
        key_name, code, vk, text = _key_spec(key)
        down: dict[str, Any] = {
            "type": "keyDown",
            "key": key_name,
            "code": code,
            "windowsVirtualKeyCode": vk,
            "nativeVirtualKeyCode": vk,
        }
        if text:
            down["text"] = text
        self.send("Input.dispatchKeyEvent", down)
        self.send(
            "Input.dispatchKeyEvent",
            {"type": "keyUp", "key": key_name, "code": code, "windowsVirtualKeyCode": vk, "nativeVirtualKeyCode": vk},
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Window
    # ─────────────────────────────────────────────────────────────────────────

    def get_window(self) -> tuple[int, dict[str, Any]]:
        """Return (windowId, bounds) of the browser window hosting this tab."""
        result = self.send("Browser.getWindowForTarget", {"targetId": self.target_id})
        return int(result["windowId"]), dict(result.get("bounds") or {})

    def set_window_bounds(self, window_id: int, bounds: dict[str, Any]) -> None:
        self.send("Browser.setWindowBounds", {"windowId": window_id, "bounds": bounds})

    def set_viewport_override(self, width: int, height: int) -> None:
        self.send(
            "Emulation.setDeviceMetricsOverride",
            {"width": width, "height": height, "deviceScaleFactor": 0, "mobile": False},
        )

    def clear_viewport_override(self) -> None:
        self.send("Emulation.clearDeviceMetricsOverride")


__all__ = ["DETACH_EVENTS", "Page"]
