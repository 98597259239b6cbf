"""Raw CDP websocket transport."""

from __future__ import annotations

import json
import socket
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket


class CdpError(Exception):
    """CDP transport or protocol failure."""


class CdpTimeoutError(CdpError):
    """No response arrived before the call deadline."""


def _is_timeout(exc: Exception) -> bool:
    msg = str(exc).lower()
    return isinstance(exc, (TimeoutError, websocket.WebSocketTimeoutException)) or "timed out" in msg


class CdpConnection:
    """Blocking JSON-RPC over one CDP websocket.

    Calls are serialized: a read loop belongs to exactly one caller at a time,
    and every call is bounded by its own deadline (including the wait for the
    lock), so a frozen renderer can never wedge the controller.
    """

    def __init__(self, ws_url: str, timeout: float = 5.0):
        try:
            self.ws = websocket.create_connection(ws_url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            raise CdpError(f"CDP connect failed for {ws_url}: {exc}") from exc
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._io_lock = threading.Lock()
        # Events read while waiting for responses are kept for later waits.
        self._event_queue: list[dict[str, Any]] = []
        self._max_event_queue = 2000
        self._event_sink: Callable[[dict[str, Any]], None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def set_event_sink(self, sink: Callable[[dict[str, Any]], None] | None) -> None:
        """Attach a best-effort sink called for every received CDP event."""
        self._event_sink = sink

    def _push_event(self, event: dict[str, Any]) -> None:
        sink = self._event_sink
        if sink is not None:
            with suppress(Exception):
                sink(event)

        self._event_queue.append(event)
        if len(self._event_queue) > self._max_event_queue:
            del self._event_queue[: len(self._event_queue) - self._max_event_queue]

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Pop the oldest queued event params for the given event name."""
        for i, ev in enumerate(self._event_queue):
            if ev.get("method") == event_name:
                self._event_queue.pop(i)
                params = ev.get("params")
                return params if isinstance(params, dict) else {}
        return None

    def has_event(self, event_name: str) -> bool:
        return any(ev.get("method") == event_name for ev in self._event_queue)

    def _acquire(self, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not self._io_lock.acquire(timeout=remaining):
            raise CdpTimeoutError("CDP connection busy")

    def _recv_message(self, deadline: float) -> dict[str, Any] | None:
        """Read one message; None when the short socket timeout elapsed."""
        remaining = deadline - time.monotonic()
        try:
            # Keep the socket timeout small so our own deadline is enforced.
            self.ws.settimeout(max(0.01, min(0.5, remaining)))
            raw = self.ws.recv()
        except Exception as exc:  # noqa: BLE001
            if _is_timeout(exc):
                return None
            self._closed = True
            raise CdpError(str(exc)) from exc
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:
        """Send a CDP command and wait for its response."""
        if self._closed:
            raise CdpError("CDP connection is closed")
        deadline = time.monotonic() + (self.timeout if timeout is None else timeout)
        self._acquire(deadline)
        try:
            msg_id = self._next_id
            self._next_id += 1
            msg: dict[str, Any] = {"id": msg_id, "method": method}
            if params:
                msg["params"] = params
            try:
                self.ws.settimeout(min(2.0, max(0.5, deadline - time.monotonic())))
                self.ws.send(json.dumps(msg))
            except Exception as exc:  # noqa: BLE001
                if not _is_timeout(exc):
                    self._closed = True
                raise CdpError(str(exc)) from exc

            while True:
                if time.monotonic() >= deadline:
                    raise CdpTimeoutError(f"CDP response timed out ({method})")
                data = self._recv_message(deadline)
                if data is None:
                    continue
                if isinstance(data.get("method"), str) and "id" not in data:
                    self._push_event(data)
                    continue
                if data.get("id") == msg_id:
                    if "error" in data:
                        raise CdpError(f"{method}: {data['error']}")
                    result = data.get("result")
                    return result if isinstance(result, dict) else {}
                # Late response to an earlier timed-out call; ignore.
        finally:
            self._io_lock.release()

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Wait for a specific CDP event; None on timeout."""
        queued = self.pop_event(event_name)
        if queued is not None:
            return queued

        deadline = time.monotonic() + timeout
        try:
            self._acquire(deadline)
        except CdpTimeoutError:
            return None
        try:
            while time.monotonic() < deadline:
                data = self._recv_message(deadline)
                if data is None:
                    continue
                if isinstance(data.get("method"), str) and "id" not in data:
                    if data["method"] == event_name:
                        sink = self._event_sink
                        if sink is not None:
                            with suppress(Exception):
                                sink(data)
                        params = data.get("params")
                        return params if isinstance(params, dict) else {}
                    self._push_event(data)
            return None
        finally:
            self._io_lock.release()

    def abort(self) -> None:
        """Hard break of the underlying socket.

        websocket-client ``close()`` may take internal locks and hang when the
        renderer is wedged; shutting down the raw socket always returns.
        """
        self._closed = True
        sock = getattr(self.ws, "sock", None)
        if sock is not None:
            with suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            with suppress(OSError):
                sock.close()

    def close(self) -> None:
        self.abort()


__all__ = ["CdpConnection", "CdpError", "CdpTimeoutError"]
