"""Browser process and active-page lifecycle.

`BrowserSessionManager` owns exactly one browser process handle (or an
attachment to an external one) and at most one active `Page`. Every
navigation-driving operation goes through `get_or_recreate_page()` so a
closed or detached tab is replaced before use.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from .cdp import CdpConnection, CdpError
from .config import RemoteConfig
from .errors import PageLostError, SessionInitError
from .launcher import BrowserLauncher
from .observers import PageObserver
from .page import Page

logger = logging.getLogger("channel_remote.session")


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


def _origin(url: str) -> str:
    parts = urlsplit(url or "")
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}".lower()


def pick_best_page(pages: list[dict[str, Any]], preferred_origins: list[str]) -> dict[str, Any] | None:
    """Prefer a page on one of the preferred origins, then any http(s) page, then the first."""
    if not pages:
        return None
    origins = [o for o in (_origin(p) for p in preferred_origins) if o]
    for origin in origins:
        for page in pages:
            if _origin(str(page.get("url", ""))) == origin:
                return page
    for page in pages:
        if str(page.get("url", "")).lower().startswith(("http://", "https://")):
            return page
    return pages[0]


class BrowserSessionManager:
    def __init__(
        self,
        config: RemoteConfig,
        launcher: BrowserLauncher | None = None,
        *,
        connect: Callable[[str, float], CdpConnection] = CdpConnection,
        observer_factory: Callable[..., PageObserver] = PageObserver,
    ) -> None:
        self.config = config
        self.launcher = launcher or BrowserLauncher(config)
        self._connect = connect
        self._observer_factory = observer_factory
        self._lock = threading.RLock()
        self.state = SessionState.UNINITIALIZED
        self.page: Page | None = None
        self.observer: PageObserver | None = None
        self.current_url: str | None = None
        self.last_target: str | None = None
        self.profile_dir: str | None = None
        self.attached = False
        self.last_error: str | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Acquisition
    # ─────────────────────────────────────────────────────────────────────────

    def ensure_session(self) -> Page:
        """Return a live page, initializing the browser session if needed."""
        with self._lock:
            page = self.page
            if page is not None and page.is_alive():
                self.state = SessionState.CONNECTED
                return page
            if page is not None:
                return self.get_or_recreate_page()
            return self._initialize()

    def get_or_recreate_page(self) -> Page:
        """Return a live page; replaces a closed/detached one or escalates to full reinit."""
        with self._lock:
            try:
                return self._checked_page()
            except PageLostError as exc:
                logger.warning("Page lost (%s); re-acquiring", exc.reason)
                self.state = SessionState.DEGRADED

            self._discard_page()
            try:
                page = self._reacquire_in_process()
            except (CdpError, OSError) as exc:
                logger.warning("Re-acquiring a page in the running browser failed: %s", exc)
                page = None
            if page is not None:
                return page

            logger.warning("No usable page in the running browser; reinitializing session")
            self.close_safely()
            return self._initialize()

    def _checked_page(self) -> Page:
        page = self.page
        if page is None:
            if self.state == SessionState.UNINITIALIZED:
                return self._initialize()
            raise PageLostError("no active page")
        if page.is_closed():
            raise PageLostError("page closed")
        if page.is_detached():
            raise PageLostError("main frame detached")
        return page

    def _reacquire_in_process(self) -> Page | None:
        if not self.launcher.cdp_ready(timeout=self.config.timings.attach_probe):
            return None
        pages = self.launcher.list_pages()
        target = pick_best_page(pages, self._preferred_origins())
        if target is None:
            logger.info("Opening a new page in the running browser")
            target = self.launcher.create_target(self.current_url or self.config.guide_app_url)
        return self._adopt(target)

    def _initialize(self) -> Page:
        self.state = SessionState.CONNECTING
        failures: list[str] = []
        timings = self.config.timings

        # (a) attach to an instance that already exposes the debugging port
        if self.launcher.cdp_ready(timeout=timings.attach_probe):
            try:
                page = self._open_best_page()
                self.attached = not self.launcher.owns_process()
                logger.info("Attached to running browser on port %s", self.launcher.port)
                return page
            except (CdpError, OSError) as exc:
                failures.append(f"attach: {exc}")
                logger.warning("Attach to running browser failed: %s", exc)
        else:
            failures.append(f"attach: no browser on port {self.launcher.port}")

        if self.config.mode == "attach":
            return self._fail_init(failures)

        # (b) persistent profile, then (c) one retry on a fresh temporary profile
        for attempt in range(2):
            if attempt == 0:
                profile_dir, port = self.config.profile_path, self.config.cdp_port
            else:
                # A lock held by an orphaned process usually blocks the persistent profile.
                profile_dir, port = self.launcher.temporary_profile_dir(), self.launcher.find_free_port()
            logger.info("Launching browser with profile %s on port %s", profile_dir, port)
            result = self.launcher.launch(profile_dir, port=port, timeout=timings.launch)
            if not result.started:
                failures.append(f"launch({profile_dir}): {result.message}")
                logger.warning("Browser launch failed: %s", result.message)
                if result.log_tail:
                    logger.debug("Browser log tail:\n%s", result.log_tail)
                self.launcher.stop()
                continue
            try:
                page = self._open_best_page()
            except (CdpError, OSError) as exc:
                failures.append(f"connect({profile_dir}): {exc}")
                logger.warning("Connecting to launched browser failed: %s", exc)
                self.launcher.stop()
                continue
            self.profile_dir = profile_dir
            self.attached = False
            return page

        return self._fail_init(failures)

    def _fail_init(self, failures: list[str]) -> Page:
        self.state = SessionState.UNINITIALIZED
        self.last_error = "; ".join(failures)
        raise SessionInitError(
            "Could not attach to or launch a browser",
            suggestion="Check that Chrome is installed and the profile directory is not locked",
            details={"attempts": failures},
        )

    def _open_best_page(self) -> Page:
        pages = self.launcher.list_pages()
        target = pick_best_page(pages, self._preferred_origins())
        if target is None:
            target = self.launcher.create_target(self.config.guide_app_url)
        return self._adopt(target)

    def _preferred_origins(self) -> list[str]:
        return [u for u in (self.last_target, self.current_url, self.config.guide_base_url) if u]

    def _adopt(self, target: dict[str, Any]) -> Page:
        ws_url = target.get("webSocketDebuggerUrl")
        if not ws_url:
            raise CdpError(f"Target {target.get('id')} has no debugger URL")
        conn = self._connect(ws_url, self.config.timings.cdp_command)
        page = Page(conn, str(target.get("id") or ""), str(target.get("url") or ""))
        try:
            page.enable_domains()
            if self.attached or not self.launcher.owns_process():
                page.set_user_agent(self.config.user_agent)
        except CdpError:
            page.close()
            raise
        try:
            self.launcher.activate_target(page.target_id)
        except CdpError as exc:
            logger.debug("Could not activate target %s: %s", page.target_id, exc)

        self.page = page
        self.current_url = page.url_hint or self.current_url
        self._install_observer(ws_url, page)
        self.state = SessionState.CONNECTED
        return page

    def _install_observer(self, ws_url: str, page: Page) -> None:
        # Never accumulate observers across re-acquisitions.
        previous = self.observer
        self.observer = None
        if previous is not None:
            previous.stop()
        observer = self._observer_factory(
            ws_url=ws_url,
            on_navigate=self._note_navigation,
            on_detach=page.mark_detached,
        )
        observer.start()
        self.observer = observer

    def _note_navigation(self, url: str) -> None:
        self.current_url = url

    def _discard_page(self) -> None:
        page = self.page
        self.page = None
        if page is not None:
            try:
                page.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Closing stale page failed: %s", exc)

    # ─────────────────────────────────────────────────────────────────────────
    # Teardown
    # ─────────────────────────────────────────────────────────────────────────

    def close_safely(self, *, close_attached: bool = False) -> None:
        """Best-effort teardown; always leaves the session uninitialized.

        An attached browser is left running unless ``close_attached`` is set.
        """
        with self._lock:
            steps: list[tuple[str, Callable[[], Any]]] = []
            if self.observer is not None:
                steps.append(("observer", self.observer.stop))
            if self.page is not None:
                steps.append(("page", self.page.close))
            if not self.attached:
                steps.append(("browser", self.launcher.stop))
            elif close_attached:
                steps.append(("browser", self.launcher.close_browser))
            try:
                for name, step in steps:
                    try:
                        step()
                    except Exception as exc:  # noqa: BLE001
                        logger.warning("Error while closing %s: %s", name, exc)
            finally:
                self.observer = None
                self.page = None
                self.attached = False
                self.state = SessionState.UNINITIALIZED

    def restart(self) -> Page:
        with self._lock:
            logger.info("Restarting browser session")
            # In attach mode the browser belongs to someone else.
            self.close_safely(close_attached=self.config.mode != "attach")
            return self.ensure_session()

    def note_target(self, url: str) -> None:
        self.last_target = url

    def is_connected(self) -> bool:
        page = self.page
        return self.state == SessionState.CONNECTED and page is not None and page.is_alive()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "connected": self.is_connected(),
            "attached": self.attached,
            "currentUrl": self.current_url,
            "lastTarget": self.last_target,
            "profileDir": self.profile_dir,
            "cdpPort": self.launcher.port,
            "lastError": self.last_error,
        }


__all__ = ["BrowserSessionManager", "SessionState", "pick_best_page"]
