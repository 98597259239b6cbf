from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from channel_remote.captions import ObservedCaptions
from channel_remote.config import RemoteConfig
from channel_remote.controller import RemoteController
from channel_remote.errors import InvalidRequestError, InvalidTargetError, NavigationError
from channel_remote.health import HealthSample
from channel_remote.navigation import NavigationReport
from channel_remote.recovery import RecoveryReport
from channel_remote.targets import VIDEO_SITE, VideoSiteTarget


class InlineExecutor:
    def submit(self, fn: Any, *args: Any) -> None:
        fn(*args)

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:  # noqa: ARG002
        return None


class FakeSession:
    def __init__(self) -> None:
        self.page: Any = None
        self.current_url: str | None = None
        self.last_target: str | None = None
        self.restarts = 0
        self.closed = 0

    def snapshot(self) -> dict[str, Any]:
        return {"state": "connected" if self.page else "uninitialized"}

    def restart(self) -> Any:
        self.restarts += 1
        return self.page

    def ensure_session(self) -> Any:
        return self.page

    def get_or_recreate_page(self) -> Any:
        return self.page

    def close_safely(self) -> None:
        self.closed += 1


class StubPipeline:
    def __init__(self, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.runs: list[str] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def run(self, target: Any) -> NavigationReport:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            self.runs.append(target.navigate_url)
            if self.error is not None:
                raise self.error
            return NavigationReport(target.kind, target.navigate_url, fullscreen={"success": True})
        finally:
            with self._lock:
                self.active -= 1


class StubMonitor:
    def __init__(self, responded: bool) -> None:
        self.responded = responded

    def probe(self, page: Any, timeout_ms: float | None = None) -> HealthSample:  # noqa: ARG002
        return HealthSample(0.0, self.responded, 1.0)


class GateWatchingRecovery:
    """Records whether the mutation gate was held whenever recovery ran."""

    def __init__(self, controller: RemoteController) -> None:
        self.controller = controller
        self.gate_held: list[bool] = []

    def detect_and_recover(self, page: Any) -> tuple[HealthSample, RecoveryReport]:  # noqa: ARG002
        self.gate_held.append(self.controller.busy)
        probe = HealthSample(0.0, True, 1.0)
        return HealthSample(0.0, False, 3000.0), RecoveryReport(True, (), probe)


def _controller(pipeline: StubPipeline | None = None) -> tuple[RemoteController, FakeSession]:
    session = FakeSession()
    config = RemoteConfig(binary_path="chrome", profile_path="profile")
    controller = RemoteController(config, session, sleep=lambda _s: None, executor=InlineExecutor())  # type: ignore[arg-type]
    controller.pipeline = pipeline or StubPipeline()  # type: ignore[assignment]
    return controller, session


def test_video_submission_is_rejected_before_touching_the_browser() -> None:
    controller, session = _controller()
    with pytest.raises(InvalidTargetError):
        controller.submit_video("https://evil.com/watch?v=1")
    assert controller.pipeline.runs == []  # type: ignore[attr-defined]
    assert session.restarts == 0


def test_video_submission_runs_as_job() -> None:
    controller, _ = _controller()
    job = controller.submit_video("https://youtu.be/abc?t=45")
    assert job.status == "succeeded"
    assert controller.pipeline.runs == ["https://youtu.be/abc?t=0s"]  # type: ignore[attr-defined]
    assert isinstance(controller.active_target, VideoSiteTarget)
    assert controller.job(job.id) is job
    assert job.to_dict()["result"]["success"] is True


def test_failed_job_keeps_structured_error() -> None:
    controller, _ = _controller(StubPipeline(error=NavigationError("Navigation failed", suggestion="Restart")))
    job = controller.submit_video("https://www.youtube.com/watch?v=1")
    assert job.status == "failed"
    assert job.error is not None and job.error["error"] == "navigation_failed"
    assert job.finished_at is not None
    assert controller.active_target is None


def test_change_target_reports_channel() -> None:
    controller, _ = _controller()
    result = controller.change_target("http://localhost:8000/web/channels/abc123", "7")
    assert result["success"] is True
    assert result["message"] == "Changed channel to 7"
    assert controller.active_target is not None and controller.active_target.kind != VIDEO_SITE


def test_mutating_operations_never_overlap() -> None:
    pipeline = StubPipeline(delay=0.05)
    controller, _ = _controller(pipeline)
    threads = [
        threading.Thread(target=controller.change_target, args=(f"http://localhost:8000/web/channels/c{i}",))
        for i in range(4)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(pipeline.runs) == 4
    assert pipeline.max_active == 1


def test_captions_require_video_site() -> None:
    controller, session = _controller()
    session.current_url = "http://localhost:8000/web/channels/abc"
    with pytest.raises(InvalidRequestError):
        controller.captions_action("on")
    with pytest.raises(InvalidRequestError):
        controller.captions_action("sideways")
    assert controller.captions_action("reset")["success"] is True


def test_video_site_detected_from_current_url() -> None:
    controller, session = _controller()
    session.current_url = "https://m.youtube.com/watch?v=1"
    assert controller.on_video_site() is True
    assert controller.current()["onVideoSite"] is True


def test_page_health_without_session() -> None:
    controller, _ = _controller()
    assert controller.page_health()["status"] == "no-session"
    assert controller.debug()["connected"] is False
    assert controller.current_video_info() is None


def test_restart_clears_target_and_shutdown_is_idempotent() -> None:
    controller, session = _controller()
    controller.submit_video("https://youtu.be/abc")
    controller.restart_session()
    assert session.restarts == 1
    assert controller.active_target is None
    controller.shutdown()
    controller.shutdown()
    assert session.closed == 1


def test_health_reports_log_file() -> None:
    controller, _ = _controller()
    controller.log_path = "/var/log/channel-remote.log"
    health = controller.health()
    assert health["status"] == "ok"
    assert health["logFile"] == "/var/log/channel-remote.log"
    assert health["captionPreference"] == "unset"


def test_page_health_recovers_only_under_the_gate() -> None:
    controller, session = _controller()
    session.page = object()
    recovery = GateWatchingRecovery(controller)
    controller.recovery = recovery  # type: ignore[assignment]

    controller.monitor = StubMonitor(responded=True)  # type: ignore[assignment]
    assert controller.page_health()["status"] == "responsive"
    assert recovery.gate_held == []

    controller.monitor = StubMonitor(responded=False)  # type: ignore[assignment]
    result = controller.page_health()
    assert result["status"] == "responsive"
    assert result["recovery"]["recovered"] is True
    assert recovery.gate_held == [True]
    assert controller.busy is False


def test_caption_status_recovery_waits_for_the_gate() -> None:
    class GateWatchingCaptions:
        def __init__(self) -> None:
            self.calls: list[tuple[bool, bool]] = []

        def get_status(self, page: Any, *, check_responsive: bool = True) -> Any:  # noqa: ARG002
            self.calls.append((check_responsive, controller.busy))

            class Result:
                def to_dict(self) -> dict[str, Any]:
                    return {"action": "status"}

            return Result()

    controller, session = _controller()
    session.page = object()
    session.current_url = "https://www.youtube.com/watch?v=1"
    captions = GateWatchingCaptions()
    controller.captions = captions  # type: ignore[assignment]

    controller.monitor = StubMonitor(responded=True)  # type: ignore[assignment]
    controller.captions_action("status")
    controller.monitor = StubMonitor(responded=False)  # type: ignore[assignment]
    controller.captions_action("status")
    assert captions.calls == [(False, False), (True, True)]


def test_health_reports_fresh_caption_observation() -> None:
    controller, _ = _controller()
    assert controller.health()["captionsVisible"] is None
    controller.captions._observed = ObservedCaptions(True, time.monotonic())
    assert controller.health()["captionsVisible"] is True
