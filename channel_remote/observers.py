"""Standing page event observers.

A second websocket to the active tab is read on a daemon thread so dialogs,
page errors, failed responses and navigations are seen even while the main
connection is blocked in a long evaluation.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from .cdp import CdpConnection, CdpError
from .page import DETACH_EVENTS

logger = logging.getLogger("channel_remote.observers")


class PageObserver:
    """Background CDP event reader for one tab (reconnects with backoff)."""

    def __init__(
        self,
        *,
        ws_url: str,
        on_navigate: Callable[[str], None] | None = None,
        on_detach: Callable[[], None] | None = None,
        name: str = "channel-remote-observer",
        connect: Callable[[str, float], CdpConnection] = CdpConnection,
    ) -> None:
        self.ws_url = ws_url
        self._on_navigate = on_navigate
        self._on_detach = on_detach
        self._connect = connect
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._conn: CdpConnection | None = None
        self._last_dialog_ms = 0
        self.dialogs_handled = 0

    def start(self) -> None:
        if self._thread.is_alive():
            return
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        conn = self._conn
        if conn is not None:
            conn.close()

    def handle_event(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        params = event.get("params") or {}
        if method == "Page.javascriptDialogOpening":
            logger.info("Auto-accepting %s dialog: %s", params.get("type", "js"), str(params.get("message", ""))[:120])
            self._schedule_dialog_accept()
        elif method == "Runtime.exceptionThrown":
            details = params.get("exceptionDetails") or {}
            text = (details.get("exception") or {}).get("description") or details.get("text") or ""
            logger.warning("Page error: %s", str(text).splitlines()[0][:300] if text else "unknown")
        elif method == "Network.responseReceived":
            response = params.get("response") or {}
            status = int(response.get("status") or 0)
            if status >= 400:
                logger.warning("Failed response %s %s", status, str(response.get("url", ""))[:300])
        elif method == "Network.loadingFailed":
            if not params.get("canceled"):
                logger.debug("Request failed: %s", params.get("errorText"))
        elif method == "Page.frameNavigated":
            frame = params.get("frame") or {}
            if not frame.get("parentId") and self._on_navigate is not None:
                url = str(frame.get("url") or "")
                logger.info("Navigated: %s", url)
                self._on_navigate(url)
        elif method in DETACH_EVENTS:
            logger.warning("Page detached (%s)", method)
            if self._on_detach is not None:
                self._on_detach()

    def _schedule_dialog_accept(self) -> None:
        # Throttle to avoid storms on repeated events.
        now_ms = int(time.time() * 1000)
        if self._last_dialog_ms and (now_ms - self._last_dialog_ms) < 500:
            return
        self._last_dialog_ms = now_ms

        def _worker() -> None:
            conn = None
            try:
                conn = self._connect(self.ws_url, 1.5)
                with suppress(CdpError):
                    conn.send("Page.enable")
                conn.send("Page.handleJavaScriptDialog", {"accept": True})
                self.dialogs_handled += 1
            except CdpError as exc:
                logger.debug("Dialog auto-accept failed: %s", exc)
            finally:
                if conn is not None:
                    conn.close()

        threading.Thread(target=_worker, name="channel-remote-dialog", daemon=True).start()

    def _run(self) -> None:
        backoff = 0.2
        while not self._stop.is_set():
            conn: CdpConnection | None = None
            try:
                conn = self._connect(self.ws_url, 5.0)
                self._conn = conn
                for method in ("Page.enable", "Runtime.enable", "Network.enable", "Inspector.enable"):
                    with suppress(CdpError):
                        conn.send(method)
                backoff = 0.2

                while not self._stop.is_set():
                    try:
                        conn.ws.settimeout(0.5)
                        raw = conn.ws.recv()
                    except Exception as exc:  # noqa: BLE001
                        msg = str(exc).lower()
                        if isinstance(exc, TimeoutError) or "timed out" in msg:
                            continue
                        raise CdpError(str(exc)) from exc
                    try:
                        data = json.loads(raw)
                    except (TypeError, ValueError):
                        continue
                    if isinstance(data, dict) and isinstance(data.get("method"), str) and "id" not in data:
                        try:
                            self.handle_event(data)
                        except Exception:  # noqa: BLE001
                            logger.exception("Observer handler failed for %s", data.get("method"))
            except CdpError as exc:
                if not self._stop.is_set():
                    logger.debug("Observer connection lost: %s", exc)
            finally:
                if conn is not None:
                    conn.close()
                self._conn = None

            if self._stop.is_set():
                break
            time.sleep(backoff)
            backoff = min(backoff * 1.5, 2.0)


__all__ = ["PageObserver"]
