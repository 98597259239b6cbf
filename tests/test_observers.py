from __future__ import annotations

import time
from typing import Any

from channel_remote.observers import PageObserver


def test_main_frame_navigation_is_reported() -> None:
    seen: list[str] = []
    observer = PageObserver(ws_url="ws://x", on_navigate=seen.append)
    observer.handle_event({"method": "Page.frameNavigated", "params": {"frame": {"id": "f", "url": "https://a/"}}})
    observer.handle_event({"method": "Page.frameNavigated", "params": {"frame": {"id": "c", "parentId": "f", "url": "https://ad/"}}})
    assert seen == ["https://a/"]


def test_detach_event_invokes_callback() -> None:
    detached: list[bool] = []
    observer = PageObserver(ws_url="ws://x", on_detach=lambda: detached.append(True))
    observer.handle_event({"method": "Inspector.targetCrashed", "params": {}})
    assert detached == [True]


def test_dialog_is_auto_accepted_on_fresh_connection() -> None:
    sent: list[tuple[str, Any]] = []

    class DummyConn:
        def __init__(self, ws_url: str, timeout: float) -> None:  # noqa: ARG002
            pass

        def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
            sent.append((method, params))
            return {}

        def close(self) -> None:
            pass

    observer = PageObserver(ws_url="ws://x", connect=DummyConn)
    observer.handle_event({"method": "Page.javascriptDialogOpening", "params": {"type": "beforeunload", "message": "Leave?"}})
    # Storms within the throttle window are ignored.
    observer.handle_event({"method": "Page.javascriptDialogOpening", "params": {"type": "beforeunload"}})

    deadline = time.time() + 2.0
    while observer.dialogs_handled < 1 and time.time() < deadline:
        time.sleep(0.01)
    assert observer.dialogs_handled == 1
    assert ("Page.handleJavaScriptDialog", {"accept": True}) in sent


def test_console_and_network_noise_does_not_raise() -> None:
    observer = PageObserver(ws_url="ws://x")
    observer.handle_event({"method": "Runtime.exceptionThrown", "params": {"exceptionDetails": {"text": "Uncaught"}}})
    observer.handle_event({"method": "Network.responseReceived", "params": {"response": {"status": 503, "url": "https://a/"}}})
    observer.handle_event({"method": "Network.loadingFailed", "params": {"errorText": "net::ERR_ABORTED"}})
    observer.handle_event({"method": "Unknown.event"})
