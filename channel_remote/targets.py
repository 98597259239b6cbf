"""Playback targets: validation and URL canonicalization."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import InvalidTargetError

GUIDE_CHANNEL = "guide-channel"
VIDEO_SITE = "video-site"

CHANNEL_ID_RE = re.compile(r"/web/channels/([^/?#]+)")

_TIME_PARAMS = {"t", "start"}


@dataclass(frozen=True)
class GuideChannelTarget:
    url: str
    channel_id: str | None = None
    target_id: str | None = None

    kind: ClassVar[str] = GUIDE_CHANNEL

    @property
    def navigate_url(self) -> str:
        return self.url


@dataclass(frozen=True)
class VideoSiteTarget:
    url: str
    start_url: str

    kind: ClassVar[str] = VIDEO_SITE

    @property
    def navigate_url(self) -> str:
        return self.start_url


PlaybackTarget = GuideChannelTarget | VideoSiteTarget


def host_matches(host: str, domains: list[str]) -> bool:
    host = (host or "").strip().lower().rstrip(".")
    if not host:
        return False
    for raw in domains:
        allowed = (raw or "").strip().lower().strip(".")
        if allowed and (host == allowed or host.endswith("." + allowed)):
            return True
    return False


def is_allowed_video_url(url: str, domains: list[str]) -> bool:
    """Only http(s) URLs whose host is, or is a subdomain of, an allowed domain."""
    try:
        parts = urlsplit((url or "").strip())
        host = parts.hostname or ""
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    return host_matches(host, domains)


def canonicalize_start(url: str) -> str:
    """Rewrite the URL to start at zero: drop ``t``/``start`` and append ``t=0s``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in _TIME_PARAMS]
    query.append(("t", "0s"))
    fragment = "" if parts.fragment.startswith("t=") else parts.fragment
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), fragment))


def extract_channel_id(url: str) -> str | None:
    match = CHANNEL_ID_RE.search(url or "")
    return match.group(1) if match else None


def guide_channel_target(url: str, target_id: str | None = None) -> GuideChannelTarget:
    url = (url or "").strip()
    try:
        scheme = urlsplit(url).scheme
    except ValueError:
        scheme = ""
    if scheme not in ("http", "https"):
        raise InvalidTargetError(f"Invalid channel URL: {url!r}", suggestion="Pass an http(s) URL of the guide web app")
    return GuideChannelTarget(url=url, channel_id=extract_channel_id(url), target_id=target_id)


def video_site_target(url: str, domains: list[str], *, start_from_beginning: bool = True) -> VideoSiteTarget:
    url = (url or "").strip()
    if not is_allowed_video_url(url, domains):
        raise InvalidTargetError(
            f"URL is not on an allowed video domain: {url!r}",
            suggestion="Use a youtube.com or youtu.be link",
            details={"allowedDomains": list(domains)},
        )
    start_url = canonicalize_start(url) if start_from_beginning else url
    return VideoSiteTarget(url=url, start_url=start_url)


__all__ = [
    "CHANNEL_ID_RE",
    "GUIDE_CHANNEL",
    "GuideChannelTarget",
    "PlaybackTarget",
    "VIDEO_SITE",
    "VideoSiteTarget",
    "canonicalize_start",
    "extract_channel_id",
    "guide_channel_target",
    "host_matches",
    "is_allowed_video_url",
    "video_site_target",
]
