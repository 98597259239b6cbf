"""Controller facade used by the control API.

All page-mutating operations pass through a single gate, so at most one of
them drives the browser at a time. Read-only operations (health, page health,
caption status, debug snapshots) skip the gate and may observe intermediate
state.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from .captions import CaptionController
from .cdp import CdpError
from .config import RemoteConfig
from .errors import InvalidRequestError, RemoteError
from .fullscreen import FullscreenEngine
from .health import HealthMonitor
from .navigation import NavigationPipeline
from .playback import media_state
from .recovery import FocusRestore, KeyWakeup, RecoveryEngine, ViewportJiggle
from .session import BrowserSessionManager
from .targets import PlaybackTarget, VideoSiteTarget, guide_channel_target, is_allowed_video_url, video_site_target
from .video_info import VideoInfoCache

logger = logging.getLogger("channel_remote.controller")

CAPTION_ACTIONS = ("on", "off", "toggle", "status", "reset")
MAX_JOBS = 100


@dataclass
class Job:
    id: str
    kind: str
    status: str = "pending"
    created_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "kind": self.kind,
            "status": self.status,
            "createdAt": self.created_at,
            "finishedAt": self.finished_at,
            "result": self.result,
            "error": self.error,
        }


class RemoteController:
    def __init__(
        self,
        config: RemoteConfig,
        session: BrowserSessionManager | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.config = config
        self.session = session or BrowserSessionManager(config)
        t = config.timings
        self.monitor = HealthMonitor(t.health_probe)
        self.recovery = RecoveryEngine(
            self.monitor,
            [ViewportJiggle(settle=t.recovery_jiggle_settle, sleep=sleep), FocusRestore(), KeyWakeup(t.recovery_key_pause, sleep)],
        )
        self.fullscreen = FullscreenEngine(timings=t, sleep=sleep)
        self.captions = CaptionController(self.monitor, self.recovery, settle=t.caption_settle, sleep=sleep)
        self.video_info = VideoInfoCache()
        self.pipeline = NavigationPipeline(
            self.session,
            config,
            recovery=self.recovery,
            fullscreen=self.fullscreen,
            captions=self.captions,
            video_info=self.video_info,
            sleep=sleep,
        )
        self.active_target: PlaybackTarget | None = None
        self.log_path: str | None = None
        self.started_at = time.time()
        self._gate = threading.Lock()
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="channel-remote-job")
        self._jobs: OrderedDict[str, Job] = OrderedDict()
        self._jobs_lock = threading.Lock()
        self._closed = False

    @contextmanager
    def _mutation(self, name: str) -> Generator[None, None, None]:
        if not self._gate.acquire(blocking=False):
            logger.info("%s waiting for the running operation to finish", name)
            self._gate.acquire()
        try:
            yield
        finally:
            self._gate.release()

    @property
    def busy(self) -> bool:
        return self._gate.locked()

    # ─────────────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────────────

    def change_target(self, url: str, target_id: str | None = None) -> dict[str, Any]:
        target = guide_channel_target(url, target_id)
        with self._mutation("change-target"):
            report = self.pipeline.run(target)
            self.active_target = target
            self.video_info.clear()
        label = target.target_id or target.channel_id or url
        message = f"Changed channel to {label}"
        if not report.fullscreen_ok:
            message += " (fullscreen not acquired)"
        return {"success": True, "message": message, "report": report.to_dict()}

    def submit_video(self, url: str) -> Job:
        """Validate now, navigate in the background; poll the returned job for the outcome."""
        target = video_site_target(
            url,
            self.config.video_domains,
            start_from_beginning=self.config.always_start_from_beginning,
        )
        job = self._new_job("navigate-video")
        self._executor.submit(self._run_job, job, lambda: self._navigate_video(target))
        return job

    def navigate_video(self, url: str) -> dict[str, Any]:
        target = video_site_target(
            url,
            self.config.video_domains,
            start_from_beginning=self.config.always_start_from_beginning,
        )
        return self._navigate_video(target)

    def _navigate_video(self, target: VideoSiteTarget) -> dict[str, Any]:
        with self._mutation("navigate-video"):
            report = self.pipeline.run(target)
            self.active_target = target
        info = self.video_info.current
        return {
            "success": True,
            "message": f"Playing {info.title}" if info else f"Playing {target.url}",
            "report": report.to_dict(),
            "videoInfo": info.to_dict() if info else None,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Jobs
    # ─────────────────────────────────────────────────────────────────────────

    def _new_job(self, kind: str) -> Job:
        job = Job(uuid.uuid4().hex[:12], kind)
        with self._jobs_lock:
            self._jobs[job.id] = job
            while len(self._jobs) > MAX_JOBS:
                self._jobs.popitem(last=False)
        return job

    def _run_job(self, job: Job, work: Callable[[], dict[str, Any]]) -> None:
        job.status = "running"
        try:
            job.result = work()
            job.status = "succeeded"
            logger.info("Job %s (%s) succeeded", job.id, job.kind)
        except RemoteError as exc:
            job.status, job.error = "failed", exc.to_dict()
            logger.error("Job %s (%s) failed: %s", job.id, job.kind, exc)
        except Exception as exc:  # noqa: BLE001
            job.status, job.error = "failed", {"error": "internal_error", "reason": str(exc)}
            logger.exception("Job %s (%s) crashed", job.id, job.kind)
        finally:
            job.finished_at = time.time()

    def job(self, job_id: str) -> Job | None:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Captions
    # ─────────────────────────────────────────────────────────────────────────

    def on_video_site(self) -> bool:
        if isinstance(self.active_target, VideoSiteTarget):
            return True
        return is_allowed_video_url(self.session.current_url or "", self.config.video_domains)

    def captions_action(self, action: str) -> dict[str, Any]:
        action = (action or "").strip().lower()
        if action not in CAPTION_ACTIONS:
            raise InvalidRequestError(f"Unknown caption action: {action!r}", suggestion=f"Use one of {', '.join(CAPTION_ACTIONS)}")
        if action == "reset":
            return self.captions.reset(self.config.captions_default).to_dict()
        if not self.on_video_site():
            raise InvalidRequestError("Captions are only available while a video is playing", suggestion="Start a video first")

        if action == "status":
            page = self.session.ensure_session()
            if self.monitor.probe(page).responded:
                return self.captions.get_status(page, check_responsive=False).to_dict()
            # Recovery presses keys and resizes the window, so it waits for the gate.
            with self._mutation("captions-status"):
                page = self.session.get_or_recreate_page()
                return self.captions.get_status(page).to_dict()

        with self._mutation(f"captions-{action}"):
            page = self.session.get_or_recreate_page()
            if action == "toggle":
                result = self.captions.toggle(page)
            else:
                result = self.captions.set_state(page, action == "on")
        return result.to_dict()

    # ─────────────────────────────────────────────────────────────────────────
    # Health & diagnostics
    # ─────────────────────────────────────────────────────────────────────────

    def health(self) -> dict[str, Any]:
        target = self.active_target
        observed = self.captions.last_observed()
        return {
            "status": "ok",
            "browser": self.session.snapshot(),
            "lastTarget": self.session.last_target,
            "activeTarget": {"kind": target.kind, "url": target.url} if target else None,
            "busy": self.busy,
            "captionPreference": self.captions.preference.value,
            "captionsVisible": observed.visible if observed else None,
            "logFile": self.log_path,
            "uptimeSeconds": round(time.time() - self.started_at, 1),
        }

    def page_health(self) -> dict[str, Any]:
        """Probe the current page; on freeze, attempt recovery and report the outcome.

        The probe itself never waits. Recovery runs under the mutation gate, after
        any in-flight operation, and only if the page is still frozen by then.
        """
        page = self.session.page
        if page is None:
            return {"status": "no-session", "responsive": False, "recovery": None}
        sample = self.monitor.probe(page)
        report = None
        if not sample.responded:
            with self._mutation("page-health-recovery"):
                page = self.session.page
                if page is None:
                    return {"status": "no-session", "responsive": False, "recovery": None}
                sample, report = self.recovery.detect_and_recover(page)
        responsive = sample.responded or bool(report and report.recovered)
        return {
            "status": "responsive" if responsive else "frozen",
            "responsive": responsive,
            "probe": sample.to_dict(),
            "recovery": report.to_dict() if report else None,
        }

    def debug(self) -> dict[str, Any]:
        page = self.session.page
        if page is None or not page.is_alive():
            return {"connected": False, "browser": self.session.snapshot()}
        snapshot: dict[str, Any] = {"connected": True, "browser": self.session.snapshot()}
        try:
            snapshot["url"] = page.url(timeout=self.config.timings.health_probe)
            snapshot["media"] = media_state(page)
            snapshot["fullscreen"] = self.fullscreen.capabilities(page)
        except CdpError as exc:
            snapshot["error"] = str(exc)
        return snapshot

    def current(self) -> dict[str, Any]:
        target = self.active_target
        info = self.video_info.current
        return {
            "url": self.session.current_url,
            "lastTarget": self.session.last_target,
            "kind": target.kind if target else None,
            "onVideoSite": self.on_video_site(),
            "videoInfo": info.to_dict() if info else None,
        }

    def current_video_info(self) -> dict[str, Any] | None:
        if not self.on_video_site():
            return None
        page = self.session.ensure_session()
        return self.video_info.get(page, self.session.current_url).to_dict()

    # ─────────────────────────────────────────────────────────────────────────
    # Session & account
    # ─────────────────────────────────────────────────────────────────────────

    def restart_session(self) -> dict[str, Any]:
        with self._mutation("restart-session"):
            self.session.restart()
            self.active_target = None
            self.video_info.clear()
        return {"success": True, "message": "Browser session restarted", "browser": self.session.snapshot()}

    def open_login(self) -> dict[str, Any]:
        with self._mutation("video-login"):
            url = self.pipeline.open_login()
            self.active_target = None
        return {"success": True, "message": "Sign in in the browser window; the login is kept in the profile", "url": url}

    def login_status(self) -> dict[str, Any]:
        with self._mutation("video-status"):
            status = self.pipeline.login_status()
            self.active_target = None
        return status

    def warm_up(self) -> None:
        try:
            self.session.ensure_session()
        except RemoteError as exc:
            logger.warning("Browser warm-up failed; will retry on the next request: %s", exc)

    def shutdown(self) -> None:
        with self._jobs_lock:
            if self._closed:
                return
            self._closed = True
        logger.info("Shutting down controller")
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.session.close_safely()


__all__ = ["CAPTION_ACTIONS", "Job", "RemoteController"]
