"""Navigation & readiness pipeline.

navigation -> readiness wait -> start policy -> popup suppression ->
caption policy -> fullscreen -> control hiding -> freeze-watch.

Only navigation itself gates success; everything after it is best-effort and
logged. A failure anywhere triggers exactly one reinitialization of the
session followed by a bare navigation to the same canonical URL.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .captions import CaptionController
from .cdp import CdpError
from .config import RemoteConfig, Timings
from .errors import BrowserFrozenError, NavigationError, PageLostError, SessionInitError
from .fullscreen import FullscreenEngine
from .locators import CssLocator, locate_first
from .page import Page
from .playback import hide_controls
from .popups import install_popup_filter
from .recovery import RecoveryEngine
from .session import BrowserSessionManager
from .targets import GUIDE_CHANNEL, VIDEO_SITE, GuideChannelTarget, PlaybackTarget, VideoSiteTarget
from .video_info import VideoInfoCache

logger = logging.getLogger("channel_remote.navigation")

# Seconds into the media after which a video-site page counts as resumed.
RESUME_THRESHOLD = 5.0

LOGIN_URL = "https://accounts.google.com/signin/v2/identifier?service=youtube"
VIDEO_HOME_URL = "https://www.youtube.com"

MEDIA_READY_JS = r"""(() => {
  const v = document.querySelector('video');
  if (!v) return { present: false };
  return { present: true, readyState: v.readyState, paused: v.paused, currentTime: v.currentTime };
})()"""

START_POLICY_JS = r"""((threshold) => {
  const v = document.querySelector('video');
  if (!v) return { seeked: false, reason: 'no-media' };
  const from = v.currentTime;
  if (from > threshold) {
    v.currentTime = 0;
    return { seeked: true, from };
  }
  return { seeked: false, from };
})"""

LOGIN_STATUS_JS = r"""(() => {
  const avatar = document.querySelector('button#avatar-btn, #avatar-btn, [aria-label*="account" i]');
  const signIn = document.querySelector('a[aria-label*="sign in" i], ytd-button-renderer a[href*="accounts.google.com"]');
  return { loggedIn: !!avatar && !signIn, hasAvatar: !!avatar, hasSignIn: !!signIn, url: location.href };
})()"""

LEAVE_DIALOG_LOCATORS = [
    CssLocator("leave-button", ['button[data-testid*="leave" i]', ".leave-button", 'button[aria-label*="leave" i]']),
    CssLocator("leave-button-text", ["button", '[role="button"]'], text="leave"),
]


@dataclass
class NavigationReport:
    target: str
    url: str
    final_url: str | None = None
    media_ready: bool = False
    start_policy: dict[str, Any] | None = None
    popups: str | None = None
    captions: dict[str, Any] | None = None
    fullscreen: dict[str, Any] | None = None
    controls_hidden: bool = False
    freeze: dict[str, Any] | None = None
    retried_after_reinit: bool = False
    channel_retry: bool = False
    leave_dialog: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def fullscreen_ok(self) -> bool:
        return bool(self.fullscreen and self.fullscreen.get("success"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "url": self.url,
            "finalUrl": self.final_url,
            "mediaReady": self.media_ready,
            "startPolicy": self.start_policy,
            "popups": self.popups,
            "captions": self.captions,
            "fullscreen": self.fullscreen,
            "controlsHidden": self.controls_hidden,
            "freeze": self.freeze,
            "retriedAfterReinit": self.retried_after_reinit,
            "channelRetry": self.channel_retry,
            "leaveDialog": self.leave_dialog,
            "errors": self.errors,
        }


class NavigationPipeline:
    def __init__(
        self,
        session: BrowserSessionManager,
        config: RemoteConfig,
        *,
        recovery: RecoveryEngine,
        fullscreen: FullscreenEngine,
        captions: CaptionController,
        video_info: VideoInfoCache,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.config = config
        self.recovery = recovery
        self.fullscreen = fullscreen
        self.captions = captions
        self.video_info = video_info
        self._sleep = sleep
        self._clock = clock

    @property
    def timings(self) -> Timings:
        return self.config.timings

    # ─────────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────────

    def run(self, target: PlaybackTarget) -> NavigationReport:
        url = target.navigate_url
        report = NavigationReport(target.kind, url)
        try:
            self._run_once(target, report)
        except NavigationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Navigation to %s failed (%s); reinitializing session and retrying once", url, exc)
            report.errors.append(str(exc))
            report.retried_after_reinit = True
            try:
                self.session.restart()
                page = self.navigate(target)
            except (CdpError, OSError, PageLostError, SessionInitError) as retry_exc:
                logger.error("Retry after reinitialization failed: %s", retry_exc)
                raise NavigationError(
                    f"Navigation to {url} failed after reinitializing the browser",
                    suggestion="Open the URL manually or restart the session",
                    details={"url": url, "errors": [str(exc), str(retry_exc)]},
                ) from retry_exc
            report.final_url = self._current_url(page)
            logger.info("Recovered navigation to %s", url)
        return report

    def _run_once(self, target: PlaybackTarget, report: NavigationReport) -> None:
        page = self.navigate(target)
        if isinstance(target, GuideChannelTarget):
            page = self.verify_channel_switch(page, target, report)
            report.leave_dialog = self.dismiss_leave_dialog(page)
        report.media_ready = self.wait_for_media_ready(page, target.kind)

        if isinstance(target, VideoSiteTarget):
            report.start_policy = self.apply_start_policy(page, target)
            if self.config.block_popups:
                report.popups = self.apply_popup_suppression(page)

        caption_target = self.caption_target(target)
        if caption_target is True:
            report.captions = self.apply_caption_policy(page, True)

        self.request_fullscreen(page, target, report)

        if caption_target is False:
            # The player may re-enable captions on the fullscreen transition.
            self._sleep(self.timings.post_fullscreen_caption_settle)
            report.captions = self.apply_caption_policy(page, False)

        if isinstance(target, VideoSiteTarget):
            self.video_info.extract(page, target.url)

        report.freeze = self.freeze_watch(page)
        report.final_url = self._current_url(page)

    # ─────────────────────────────────────────────────────────────────────────
    # Steps
    # ─────────────────────────────────────────────────────────────────────────

    def navigate(self, target: PlaybackTarget) -> Page:
        page = self.session.get_or_recreate_page()
        url = target.navigate_url
        logger.info("Navigating to %s (%s)", url, target.kind)
        page.navigate(url, timeout=self.timings.navigation)
        self.session.note_target(url)
        return page

    def verify_channel_switch(self, page: Page, target: GuideChannelTarget, report: NavigationReport) -> Page:
        """The guide can silently ignore same-origin navigations; re-issue once on mismatch."""
        channel_id = target.channel_id
        if not channel_id:
            return page
        landed = self._current_url(page)
        if channel_id in landed:
            return page

        logger.warning("Navigation did not switch channels: expected %s, at %s", channel_id, landed)
        report.channel_retry = True
        page.bring_to_front()
        page.navigate(target.url, timeout=self.timings.navigation)
        landed = self._current_url(page)
        if channel_id not in landed:
            raise NavigationError(
                f"Navigation did not switch to channel {channel_id}",
                suggestion="Restart the session or open the channel manually",
                details={"expected": channel_id, "url": landed},
            )
        return page

    def dismiss_leave_dialog(self, page: Page) -> str | None:
        self._sleep(self.timings.leave_dialog_wait)
        result = locate_first(page, LEAVE_DIALOG_LOCATORS, action="click")
        if result.found:
            logger.info("Dismissed leave-site prompt via %s", result.strategy)
            return result.strategy
        return None

    def request_fullscreen(self, page: Page, target: PlaybackTarget, report: NavigationReport) -> bool:
        outcome = self.fullscreen.attempt_fullscreen(page, target.kind)
        report.fullscreen = outcome.to_dict()
        if not outcome.success:
            logger.warning("Continuing without fullscreen for %s", target.navigate_url)
            return False
        logger.info("Fullscreen acquired via %s", outcome.tactic)
        report.controls_hidden = hide_controls(page, delay=self.timings.controls_hide_delay, sleep=self._sleep)
        return True

    def wait_for_media_ready(self, page: Page, target_kind: str) -> bool:
        """Poll for a media element with enough data buffered; a timeout is non-fatal."""
        deadline = self._clock() + self.timings.media_ready
        state: dict[str, Any] = {}
        while self._clock() < deadline:
            try:
                state = page.eval_js(MEDIA_READY_JS, timeout=self.timings.health_probe) or {}
            except CdpError as exc:
                logger.debug("Media readiness poll failed: %s", exc)
                state = {}
            if self._is_ready(state, target_kind):
                buffer_wait = self.timings.guide_buffer_wait if target_kind == GUIDE_CHANNEL else self.timings.video_buffer_wait
                logger.info("Media ready (readyState=%s); buffering %.1fs", state.get("readyState"), buffer_wait)
                self._sleep(buffer_wait)
                return True
            self._sleep(self.timings.media_poll_interval)
        logger.warning("Media not ready after %.0fs (last state %s); continuing", self.timings.media_ready, state)
        return False

    @staticmethod
    def _is_ready(state: dict[str, Any], target_kind: str) -> bool:
        if not state.get("present") or int(state.get("readyState") or 0) < 3:
            return False
        if target_kind == GUIDE_CHANNEL:
            return not state.get("paused") and float(state.get("currentTime") or 0) > 0
        return True

    def apply_start_policy(self, page: Page, target: PlaybackTarget) -> dict[str, Any] | None:
        if target.kind != VIDEO_SITE or not self.config.always_start_from_beginning:
            return None
        try:
            result = page.call_js(START_POLICY_JS, RESUME_THRESHOLD) or {}
        except CdpError as exc:
            logger.warning("Start policy failed: %s", exc)
            return {"seeked": False, "error": str(exc)}
        if result.get("seeked"):
            logger.info("Seeked to start (was at %.1fs)", float(result.get("from") or 0))
        return result

    def apply_popup_suppression(self, page: Page) -> str | None:
        try:
            return install_popup_filter(page)
        except CdpError as exc:
            logger.warning("Popup suppression failed: %s", exc)
            return None

    def caption_target(self, target: PlaybackTarget) -> bool | None:
        if target.kind != VIDEO_SITE:
            return None
        return self.captions.effective_preference(self.config.captions_default)

    def apply_caption_policy(self, page: Page, on: bool) -> dict[str, Any] | None:
        try:
            return self.captions.enforce(page, on).to_dict()
        except (BrowserFrozenError, CdpError) as exc:
            logger.warning("Caption policy (%s) failed: %s", "on" if on else "off", exc)
            return {"success": False, "error": str(exc)}

    def freeze_watch(self, page: Page) -> dict[str, Any]:
        sample, report = self.recovery.detect_and_recover(page)
        if report is not None and not report.recovered:
            logger.error("Page frozen after navigation and recovery failed")
        return {"probe": sample.to_dict(), "recovery": report.to_dict() if report else None}

    @staticmethod
    def _current_url(page: Page) -> str:
        try:
            return page.url()
        except CdpError:
            return page.url_hint

    # ─────────────────────────────────────────────────────────────────────────
    # Video-site account helpers
    # ─────────────────────────────────────────────────────────────────────────

    def open_login(self) -> str:
        page = self.session.get_or_recreate_page()
        page.navigate(LOGIN_URL, timeout=self.timings.navigation)
        logger.info("Sign-in page loaded; the session is kept in the browser profile")
        return LOGIN_URL

    def login_status(self) -> dict[str, Any]:
        page = self.session.get_or_recreate_page()
        page.navigate(VIDEO_HOME_URL, timeout=self.timings.navigation)
        self._sleep(self.timings.login_settle)
        status = page.eval_js(LOGIN_STATUS_JS) or {}
        if status.get("loggedIn"):
            logger.info("Video site login detected")
        else:
            logger.warning("Video site login not detected")
        return status


__all__ = ["NavigationPipeline", "NavigationReport", "RESUME_THRESHOLD"]
