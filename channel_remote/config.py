from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Avoid snap builds where possible: they ignore --user-data-dir.
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]

DEFAULT_VIDEO_DOMAINS: list[str] = [
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "youtu.be",
    "youtube-nocookie.com",
]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ENV_PREFIX = "CHANNEL_REMOTE_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def parse_bool(raw: str | None, default: bool) -> bool:
    value = (raw or "").strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


def _split_csv(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


@dataclass
class Timings:
    """Timeouts and settle delays, in seconds.

    These are empirically tuned; every field can be overridden with
    ``CHANNEL_REMOTE_<FIELD_NAME_UPPER>``.
    """

    attach_probe: float = 1.5
    launch: float = 15.0
    cdp_command: float = 10.0
    health_probe: float = 3.0
    navigation: float = 30.0
    media_ready: float = 15.0
    media_poll_interval: float = 0.25
    guide_buffer_wait: float = 15.0
    video_buffer_wait: float = 3.0
    fullscreen_settle: float = 1.5
    fullscreen_hover: float = 1.0
    os_fullscreen_settle: float = 2.5
    resume_click_delay: float = 0.5
    resume_key_delay: float = 1.0
    caption_settle: float = 1.5
    post_fullscreen_caption_settle: float = 2.0
    controls_hide_delay: float = 2.0
    recovery_jiggle_settle: float = 0.5
    recovery_key_pause: float = 0.2
    leave_dialog_wait: float = 0.5
    login_settle: float = 2.0

    @classmethod
    def from_env(cls) -> Timings:
        values: dict[str, float] = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or not raw.strip():
                continue
            values[f.name] = max(0.0, float(raw))
        return cls(**values)


@dataclass
class RemoteConfig:
    binary_path: str
    profile_path: str
    cdp_port: int = 9222
    mode: str = "launch"
    extra_flags: list[str] = field(default_factory=list)
    app_mode: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    guide_base_url: str = "http://localhost:8000"
    video_domains: list[str] = field(default_factory=lambda: list(DEFAULT_VIDEO_DOMAINS))
    always_start_from_beginning: bool = True
    captions_default: bool | None = False
    block_popups: bool = True
    bind_host: str = "127.0.0.1"
    port: int = 3001
    api_key: str | None = None
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_retention_days: int = 7
    timings: Timings = field(default_factory=Timings)

    @staticmethod
    def normalize_mode(raw: str | None) -> str:
        mode = (raw or "").strip().lower()
        if mode in {"attach", "connect", "external"}:
            return "attach"
        return "launch"

    @staticmethod
    def parse_captions_default(raw: str | None) -> bool | None:
        value = (raw or "").strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        if value in {"unset", "default", "none"}:
            return None
        return False

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get(ENV_PREFIX + "BROWSER_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @classmethod
    def from_env(cls) -> RemoteConfig:
        env = os.environ.get
        domains = [d.lower() for d in _split_csv(env(ENV_PREFIX + "VIDEO_DOMAINS"))]
        return cls(
            binary_path=cls.detect_binary(),
            profile_path=expand_path(env(ENV_PREFIX + "PROFILE", "chrome-profile-data")),
            cdp_port=int(env(ENV_PREFIX + "CDP_PORT", "9222")),
            mode=cls.normalize_mode(env(ENV_PREFIX + "MODE")),
            extra_flags=_split_csv(env(ENV_PREFIX + "BROWSER_FLAGS")),
            app_mode=parse_bool(env(ENV_PREFIX + "APP_MODE"), True),
            user_agent=env(ENV_PREFIX + "USER_AGENT") or DEFAULT_USER_AGENT,
            guide_base_url=(env("GUIDE_BASE_URL") or "http://localhost:8000").rstrip("/"),
            video_domains=domains or list(DEFAULT_VIDEO_DOMAINS),
            always_start_from_beginning=parse_bool(env(ENV_PREFIX + "ALWAYS_START_FROM_BEGINNING"), True),
            captions_default=cls.parse_captions_default(env(ENV_PREFIX + "CAPTIONS_DEFAULT")),
            block_popups=parse_bool(env(ENV_PREFIX + "BLOCK_POPUPS"), True),
            bind_host=env(ENV_PREFIX + "BIND_HOST", "127.0.0.1"),
            port=int(env(ENV_PREFIX + "PORT", "3001")),
            api_key=(env(ENV_PREFIX + "API_KEY") or "").strip() or None,
            log_dir=expand_path(env(ENV_PREFIX + "LOG_DIR", "logs")),
            log_level=(env(ENV_PREFIX + "LOG_LEVEL") or "INFO").upper(),
            log_retention_days=int(env(ENV_PREFIX + "LOG_RETENTION_DAYS", "7")),
            timings=Timings.from_env(),
        )

    @property
    def guide_app_url(self) -> str:
        return f"{self.guide_base_url}/web/guide"

