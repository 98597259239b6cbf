from __future__ import annotations

import contextlib
import json
import logging
import socket
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from http.client import HTTPException
from typing import Any
from urllib.error import URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from .cdp import CdpConnection, CdpError
from .config import RemoteConfig, expand_path

logger = logging.getLogger("channel_remote.launcher")


@dataclass
class LaunchResult:
    command: list[str]
    started: bool
    message: str
    log_path: str | None = None
    log_tail: str | None = None


def _tail_text(path: str | None, max_chars: int = 4000) -> str | None:
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        return None
    try:
        raw = p.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return raw[-max_chars:]


class BrowserLauncher:
    """Owns the Chrome process and the CDP HTTP endpoints of its debugging port."""

    def __init__(self, config: RemoteConfig) -> None:
        self.config = config
        self.port = config.cdp_port
        self.process: subprocess.Popen | None = None

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def owns_process(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def cdp_ready(self, timeout: float = 0.4) -> bool:
        """Return True if the CDP HTTP endpoint responds."""
        try:
            with urlopen(f"{self.endpoint}/json/version", timeout=timeout) as resp:
                return resp.status == 200
        except (OSError, TimeoutError, URLError, HTTPException):
            return False

    def _request(self, path: str, timeout: float = 2.0, method: str = "GET") -> str:
        req = Request(f"{self.endpoint}{path}", headers={"User-Agent": "channel-remote"}, method=method)
        try:
            with urlopen(req, timeout=timeout) as resp:
                return resp.read().decode(errors="replace")
        except (OSError, URLError, HTTPException) as exc:
            raise CdpError(f"CDP endpoint {path} failed on port {self.port}: {exc}") from exc

    def _get_json(self, path: str, timeout: float = 2.0, method: str = "GET") -> Any:
        raw = self._request(path, timeout=timeout, method=method)
        try:
            return json.loads(raw or "null")
        except ValueError as exc:
            raise CdpError(f"CDP endpoint {path} returned invalid JSON") from exc

    def cdp_version(self, timeout: float = 0.8) -> dict[str, Any]:
        payload = self._get_json("/json/version", timeout=timeout)
        return payload if isinstance(payload, dict) else {}

    def list_targets(self, timeout: float = 2.0) -> list[dict[str, Any]]:
        payload = self._get_json("/json/list", timeout=timeout)
        return [t for t in payload if isinstance(t, dict)] if isinstance(payload, list) else []

    def list_pages(self, timeout: float = 2.0) -> list[dict[str, Any]]:
        return [t for t in self.list_targets(timeout=timeout) if t.get("type") == "page" and t.get("webSocketDebuggerUrl")]

    def browser_ws_url(self) -> str:
        ws_url = self.cdp_version().get("webSocketDebuggerUrl")
        if not ws_url:
            raise CdpError("CDP browser WebSocket URL not found")
        return ws_url

    def _browser_call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        conn = CdpConnection(self.browser_ws_url(), timeout=5.0)
        try:
            return conn.send(method, params)
        finally:
            conn.close()

    def create_target(self, url: str = "about:blank") -> dict[str, Any]:
        """Open a new page in the running browser and return its target entry."""
        try:
            target_id = self._browser_call("Target.createTarget", {"url": url}).get("targetId")
        except CdpError:
            # Older builds only expose the HTTP variant.
            created = self._get_json(f"/json/new?{quote(url, safe=':/?&=')}", method="PUT")
            target_id = created.get("id") if isinstance(created, dict) else None
        if not target_id:
            raise CdpError("Failed to create browser tab")
        for target in self.list_targets():
            if target.get("id") == target_id:
                return target
        raise CdpError(f"Created tab {target_id} is not listed")

    def activate_target(self, target_id: str) -> None:
        self._request(f"/json/activate/{target_id}")

    def build_launch_command(self, profile_dir: str, port: int, extra: list[str] | None = None) -> list[str]:
        flags = [
            f"--remote-debugging-port={port}",
            f"--user-data-dir={expand_path(profile_dir)}",
            "--remote-allow-origins=*",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-infobars",
            "--disable-session-crashed-bubble",
            "--disable-features=TranslateUI",
            "--autoplay-policy=no-user-gesture-required",
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-backgrounding-occluded-windows",
            "--start-maximized",
            f"--user-agent={self.config.user_agent}",
        ]
        if self.config.app_mode:
            flags.append(f"--app={self.config.guide_app_url}")
        flags.extend(self.config.extra_flags)
        if extra:
            flags.extend(extra)
        return [self.config.binary_path, *flags]

    @staticmethod
    def find_free_port() -> int:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]

    @staticmethod
    def temporary_profile_dir() -> str:
        return tempfile.mkdtemp(prefix=f"channel-remote-profile-{int(time.time())}-")

    def _make_log_path(self, prefix: str) -> str:
        log_dir = Path(self.config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / f"{prefix}_{int(time.time() * 1000)}.log")

    def launch(self, profile_dir: str, *, port: int | None = None, timeout: float = 15.0) -> LaunchResult:
        """Start Chrome on ``profile_dir`` and wait for its debugging port."""
        self.port = port or self.config.cdp_port
        Path(expand_path(profile_dir)).mkdir(parents=True, exist_ok=True)
        cmd = self.build_launch_command(profile_dir, self.port)
        log_path: str | None = None
        try:
            log_path = self._make_log_path("chrome_launch")
            with open(log_path, "ab", buffering=0) as log_fh:
                self.process = subprocess.Popen(
                    cmd,
                    stdout=log_fh,
                    stderr=log_fh,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
        except OSError as exc:
            return LaunchResult(cmd, False, str(exc), log_path=log_path, log_tail=_tail_text(log_path))

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.cdp_ready():
                return LaunchResult(cmd, True, "Chrome launched", log_path=log_path)
            if self.process.poll() is not None:
                return LaunchResult(
                    cmd,
                    False,
                    f"Chrome exited early with code {self.process.returncode}",
                    log_path=log_path,
                    log_tail=_tail_text(log_path),
                )
            time.sleep(0.1)
        return LaunchResult(cmd, False, "Chrome launch timed out", log_path=log_path, log_tail=_tail_text(log_path))

    def stop(self, *, timeout: float = 2.0) -> bool:
        """Best-effort stop of the launcher-owned Chrome process."""
        proc = self.process
        self.process = None
        if proc is None:
            return False
        if proc.poll() is not None:
            return True

        with contextlib.suppress(OSError):
            proc.terminate()
        try:
            proc.wait(timeout=max(0.1, float(timeout)))
        except subprocess.TimeoutExpired:
            # Escalate to kill.
            with contextlib.suppress(OSError):
                proc.kill()
        return True

    def close_browser(self, *, timeout: float = 5.0) -> bool:
        """Ask a browser this launcher did not start to exit; True once its port goes quiet."""
        try:
            self._browser_call("Browser.close", {})
        except CdpError as exc:
            # The browser may drop the socket before it answers.
            logger.debug("Browser.close on port %s: %s", self.port, exc)
        deadline = time.time() + timeout
        while time.time() < deadline:
            if not self.cdp_ready():
                return True
            time.sleep(0.1)
        logger.warning("Browser on port %s still answering after Browser.close", self.port)
        return False


__all__ = ["BrowserLauncher", "LaunchResult"]
