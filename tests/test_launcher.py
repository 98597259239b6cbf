from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from channel_remote import launcher as launcher_mod
from channel_remote.cdp import CdpError
from channel_remote.config import RemoteConfig
from channel_remote.launcher import BrowserLauncher


def _config(tmp_path: Path, **overrides: Any) -> RemoteConfig:
    values: dict[str, Any] = {
        "binary_path": "/usr/bin/google-chrome",
        "profile_path": str(tmp_path / "profile"),
        "log_dir": str(tmp_path / "logs"),
    }
    values.update(overrides)
    return RemoteConfig(**values)


def test_launch_command_opens_guide_app_with_playback_flags(tmp_path: Path) -> None:
    cfg = _config(tmp_path, guide_base_url="http://guide.local:8000", extra_flags=["--kiosk"])
    cmd = BrowserLauncher(cfg).build_launch_command(str(tmp_path / "p"), 9333)
    assert cmd[0] == "/usr/bin/google-chrome"
    assert "--remote-debugging-port=9333" in cmd
    assert f"--user-data-dir={tmp_path / 'p'}" in cmd
    assert "--autoplay-policy=no-user-gesture-required" in cmd
    assert "--app=http://guide.local:8000/web/guide" in cmd
    assert cmd[-1] == "--kiosk"


def test_launch_command_without_app_mode(tmp_path: Path) -> None:
    cmd = BrowserLauncher(_config(tmp_path, app_mode=False)).build_launch_command("p", 9222)
    assert not any(flag.startswith("--app=") for flag in cmd)


def test_list_pages_keeps_debuggable_pages_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    launcher = BrowserLauncher(_config(tmp_path))
    targets = [
        {"id": "1", "type": "page", "url": "http://localhost:8000/web/guide", "webSocketDebuggerUrl": "ws://a"},
        {"id": "2", "type": "service_worker", "url": "x", "webSocketDebuggerUrl": "ws://b"},
        {"id": "3", "type": "page", "url": "about:blank"},
    ]
    monkeypatch.setattr(launcher, "_get_json", lambda path, timeout=2.0, method="GET": targets)
    assert [t["id"] for t in launcher.list_pages()] == ["1"]


def test_create_target_falls_back_to_http_endpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    launcher = BrowserLauncher(_config(tmp_path))
    paths: list[tuple[str, str]] = []

    def fail_browser_call(method: str, params: dict[str, Any]) -> dict[str, Any]:
        raise CdpError("no browser websocket")

    def fake_get_json(path: str, timeout: float = 2.0, method: str = "GET") -> Any:
        paths.append((method, path))
        if path.startswith("/json/new"):
            return {"id": "new-1"}
        return [{"id": "new-1", "type": "page", "url": "about:blank", "webSocketDebuggerUrl": "ws://n"}]

    monkeypatch.setattr(launcher, "_browser_call", fail_browser_call)
    monkeypatch.setattr(launcher, "_get_json", fake_get_json)
    target = launcher.create_target("about:blank")
    assert target["id"] == "new-1"
    assert paths[0] == ("PUT", "/json/new?about:blank")


def test_launch_reports_early_exit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class DeadProcess:
        returncode = 21

        def __init__(self, cmd: list[str], **kwargs: Any) -> None:  # noqa: ARG002
            pass

        def poll(self) -> int:
            return self.returncode

    monkeypatch.setattr(launcher_mod.subprocess, "Popen", DeadProcess)
    launcher = BrowserLauncher(_config(tmp_path))
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: False)
    result = launcher.launch(str(tmp_path / "profile"), port=9444, timeout=1.0)
    assert result.started is False
    assert "code 21" in result.message
    assert launcher.port == 9444
    assert Path(result.log_path or "").parent == tmp_path / "logs"


def test_launch_succeeds_when_port_answers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    class LiveProcess:
        returncode = None

        def __init__(self, cmd: list[str], **kwargs: Any) -> None:  # noqa: ARG002
            self.terminated = False

        def poll(self) -> int | None:
            return None

        def terminate(self) -> None:
            self.terminated = True

        def wait(self, timeout: float) -> int:  # noqa: ARG002
            return 0

    monkeypatch.setattr(launcher_mod.subprocess, "Popen", LiveProcess)
    launcher = BrowserLauncher(_config(tmp_path))
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: True)
    result = launcher.launch(str(tmp_path / "profile"))
    assert result.started
    assert launcher.owns_process()
    proc = launcher.process
    assert launcher.stop() is True
    assert proc.terminated
    assert launcher.process is None


def test_stop_without_process_is_noop(tmp_path: Path) -> None:
    assert BrowserLauncher(_config(tmp_path)).stop() is False


def test_free_port_and_temporary_profile(tmp_path: Path) -> None:  # noqa: ARG001
    port = BrowserLauncher.find_free_port()
    assert 0 < port < 65536
    profile = BrowserLauncher.temporary_profile_dir()
    assert Path(profile).is_dir()
    Path(profile).rmdir()


def test_close_browser_sends_browser_close_and_waits_for_port(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    launcher = BrowserLauncher(_config(tmp_path))
    calls: list[str] = []
    answers = iter([True, False])

    def dropped_socket(method: str, params: dict[str, Any]) -> dict[str, Any]:  # noqa: ARG001
        calls.append(method)
        raise CdpError("connection closed")

    monkeypatch.setattr(launcher, "_browser_call", dropped_socket)
    monkeypatch.setattr(launcher, "cdp_ready", lambda timeout=0.4: next(answers))
    monkeypatch.setattr(launcher_mod.time, "sleep", lambda s: None)
    assert launcher.close_browser(timeout=5.0) is True
    assert calls == ["Browser.close"]


def test_bad_http_status_line_is_cdp_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def bad_status(*args: Any, **kwargs: Any) -> Any:  # noqa: ARG001
        raise launcher_mod.HTTPException("bad status line")

    monkeypatch.setattr(launcher_mod, "urlopen", bad_status)
    launcher = BrowserLauncher(_config(tmp_path))
    assert launcher.cdp_ready() is False
    with pytest.raises(CdpError):
        launcher.list_pages()
