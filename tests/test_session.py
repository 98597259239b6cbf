from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from channel_remote.config import RemoteConfig
from channel_remote.errors import SessionInitError
from channel_remote.launcher import LaunchResult
from channel_remote.session import BrowserSessionManager, SessionState, pick_best_page

GUIDE_PAGE = {"id": "p1", "type": "page", "url": "http://localhost:8000/web/guide", "webSocketDebuggerUrl": "ws://p1"}


class FakeLauncher:
    def __init__(self, *, running: bool = False, launch_results: list[bool] | None = None) -> None:
        self.port = 9222
        self.running = running
        self.owned = False
        self.launch_results = list(launch_results if launch_results is not None else [True])
        self.launches: list[tuple[str, int | None]] = []
        self.pages: list[dict[str, Any]] = [dict(GUIDE_PAGE)]
        self.created: list[str] = []
        self.stops = 0
        self.browser_closes = 0

    def cdp_ready(self, timeout: float = 0.4) -> bool:  # noqa: ARG002
        return self.running

    def owns_process(self) -> bool:
        return self.owned

    def list_pages(self, timeout: float = 2.0) -> list[dict[str, Any]]:  # noqa: ARG002
        return list(self.pages)

    def create_target(self, url: str) -> dict[str, Any]:
        self.created.append(url)
        target = {"id": f"new{len(self.created)}", "type": "page", "url": url, "webSocketDebuggerUrl": f"ws://new{len(self.created)}"}
        self.pages.append(target)
        return target

    def activate_target(self, target_id: str) -> None:  # noqa: ARG002
        return None

    def launch(self, profile_dir: str, *, port: int | None = None, timeout: float = 15.0) -> LaunchResult:  # noqa: ARG002
        time.sleep(0.05)
        self.launches.append((profile_dir, port))
        ok = self.launch_results.pop(0) if self.launch_results else False
        if ok:
            self.running = self.owned = True
            self.port = port or self.port
            return LaunchResult([], True, "Chrome launched")
        return LaunchResult([], False, "profile locked")

    def stop(self, *, timeout: float = 2.0) -> bool:  # noqa: ARG002
        self.stops += 1
        if self.owned:
            self.running = self.owned = False
        return True

    def close_browser(self, *, timeout: float = 5.0) -> bool:  # noqa: ARG002
        self.browser_closes += 1
        self.running = False
        return True

    def temporary_profile_dir(self) -> str:
        return "/tmp/channel-remote-profile-test"

    def find_free_port(self) -> int:
        return 45555


class FakeConn:
    def __init__(self, ws_url: str, timeout: float) -> None:  # noqa: ARG002
        self.ws_url = ws_url
        self.closed = False
        self.events: list[str] = []

    def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> dict[str, Any]:  # noqa: ARG002
        return {}

    def has_event(self, name: str) -> bool:
        return name in self.events

    def close(self) -> None:
        self.closed = True


class FakeObserver:
    instances: list[FakeObserver] = []

    def __init__(self, *, ws_url: str, on_navigate: Any, on_detach: Any) -> None:
        self.ws_url = ws_url
        self.on_navigate = on_navigate
        self.on_detach = on_detach
        self.started = False
        self.stopped = False
        FakeObserver.instances.append(self)

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True


@pytest.fixture(autouse=True)
def _reset_observers() -> None:
    FakeObserver.instances = []


def _manager(launcher: FakeLauncher, *, mode: str = "launch") -> BrowserSessionManager:
    config = RemoteConfig(binary_path="chrome", profile_path="/data/profile", mode=mode)
    return BrowserSessionManager(config, launcher, connect=FakeConn, observer_factory=FakeObserver)  # type: ignore[arg-type]


def test_concurrent_callers_share_one_launch() -> None:
    launcher = FakeLauncher()
    manager = _manager(launcher)
    pages: list[Any] = []
    threads = [threading.Thread(target=lambda: pages.append(manager.ensure_session())) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(launcher.launches) == 1
    assert len({id(p) for p in pages}) == 1
    assert manager.state == SessionState.CONNECTED
    assert manager.profile_dir == "/data/profile"


def test_attaches_to_running_browser_without_launching() -> None:
    launcher = FakeLauncher(running=True)
    manager = _manager(launcher)
    page = manager.ensure_session()
    assert launcher.launches == []
    assert manager.attached is True
    assert page.target_id == "p1"


def test_locked_profile_falls_back_to_temporary_profile() -> None:
    launcher = FakeLauncher(launch_results=[False, True])
    manager = _manager(launcher)
    manager.ensure_session()
    assert launcher.launches == [("/data/profile", 9222), ("/tmp/channel-remote-profile-test", 45555)]
    assert launcher.stops == 1
    assert manager.profile_dir == "/tmp/channel-remote-profile-test"


def test_all_strategies_failing_raises_session_init_error() -> None:
    launcher = FakeLauncher(launch_results=[False, False])
    manager = _manager(launcher)
    with pytest.raises(SessionInitError) as excinfo:
        manager.ensure_session()
    assert len(excinfo.value.details["attempts"]) == 3
    assert manager.state == SessionState.UNINITIALIZED


def test_attach_mode_never_launches() -> None:
    launcher = FakeLauncher()
    manager = _manager(launcher, mode="attach")
    with pytest.raises(SessionInitError):
        manager.ensure_session()
    assert launcher.launches == []


def test_detached_page_is_replaced_and_observer_not_duplicated() -> None:
    launcher = FakeLauncher()
    manager = _manager(launcher)
    first = manager.ensure_session()
    first.conn.events.append("Inspector.detached")

    second = manager.get_or_recreate_page()
    assert second is not first
    assert second.is_alive()
    assert first.conn.closed
    assert len(launcher.launches) == 1
    assert len(FakeObserver.instances) == 2
    assert FakeObserver.instances[0].stopped is True
    assert [o for o in FakeObserver.instances if o.started and not o.stopped] == [FakeObserver.instances[1]]


def test_reacquire_opens_a_page_when_none_is_left() -> None:
    launcher = FakeLauncher()
    manager = _manager(launcher)
    first = manager.ensure_session()
    manager.note_target("http://localhost:8000/web/channels/abc")
    launcher.pages = []
    first.mark_detached()
    page = manager.get_or_recreate_page()
    assert page.is_alive()
    assert launcher.created == ["http://localhost:8000/web/guide"]


def test_browser_gone_escalates_to_full_reinit() -> None:
    launcher = FakeLauncher(launch_results=[True, True])
    manager = _manager(launcher)
    first = manager.ensure_session()
    launcher.running = launcher.owned = False
    first.mark_detached()
    page = manager.get_or_recreate_page()
    assert page.is_alive()
    assert len(launcher.launches) == 2


def test_observer_navigation_updates_current_url() -> None:
    manager = _manager(FakeLauncher())
    manager.ensure_session()
    FakeObserver.instances[-1].on_navigate("https://www.youtube.com/watch?v=1")
    assert manager.current_url == "https://www.youtube.com/watch?v=1"
    FakeObserver.instances[-1].on_detach()
    assert manager.page is not None and not manager.page.is_alive()


def test_close_safely_clears_handles_even_when_steps_fail() -> None:
    launcher = FakeLauncher()
    manager = _manager(launcher)
    page = manager.ensure_session()

    def explode() -> None:
        raise RuntimeError("observer wedged")

    manager.observer.stop = explode  # type: ignore[union-attr,method-assign]
    page.conn.close = explode  # type: ignore[method-assign]
    manager.close_safely()
    assert manager.page is None
    assert manager.observer is None
    assert manager.state == SessionState.UNINITIALIZED
    assert launcher.stops == 1


def test_restart_relaunches() -> None:
    launcher = FakeLauncher(launch_results=[True, True])
    manager = _manager(launcher)
    first = manager.ensure_session()
    second = manager.restart()
    assert second is not first
    assert len(launcher.launches) == 2
    assert manager.snapshot()["connected"] is True


def test_restart_closes_attached_browser_and_relaunches() -> None:
    launcher = FakeLauncher(running=True)
    manager = _manager(launcher)
    manager.ensure_session()
    assert manager.attached is True

    manager.restart()
    assert launcher.browser_closes == 1
    assert launcher.launches == [("/data/profile", 9222)]
    assert manager.attached is False
    assert manager.snapshot()["connected"] is True


def test_restart_in_attach_mode_leaves_browser_running() -> None:
    launcher = FakeLauncher(running=True)
    manager = _manager(launcher, mode="attach")
    manager.ensure_session()

    manager.restart()
    assert launcher.browser_closes == 0
    assert launcher.stops == 0
    assert launcher.launches == []
    assert manager.attached is True


def test_pick_best_page_prefers_known_origins() -> None:
    pages = [
        {"id": "a", "url": "chrome://newtab/"},
        {"id": "b", "url": "https://example.com/"},
        {"id": "c", "url": "http://localhost:8000/web/guide"},
    ]
    assert pick_best_page(pages, ["http://localhost:8000/web/channels/x"])["id"] == "c"
    assert pick_best_page(pages, [])["id"] == "b"
    assert pick_best_page(pages[:1], [])["id"] == "a"
    assert pick_best_page([], ["http://x"]) is None
