from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from .cdp import CdpError
from .page import Page

logger = logging.getLogger("channel_remote.video_info")

VIDEO_INFO_MAX_AGE = 30.0

EXTRACT_VIDEO_INFO_JS = r"""(() => {
  const clean = (text) => (text || '').trim().replace(/\s+/g, ' ').slice(0, 200);
  const first = (selectors, accept) => {
    for (const selector of selectors) {
      const el = document.querySelector(selector);
      if (!el) continue;
      const text = el.getAttribute('content') || el.textContent || '';
      if (accept(text.trim())) return clean(text);
    }
    return null;
  };
  const title = first([
    'h1.ytd-watch-metadata yt-formatted-string',
    'h1.style-scope.ytd-video-primary-info-renderer',
    'h1[class*="video-title"]',
    'h1.title',
    'meta[property="og:title"]',
    'meta[name="title"]',
  ], (t) => t.length > 3);
  const channel = first([
    'ytd-watch-metadata ytd-channel-name a',
    'ytd-channel-name .ytd-channel-name a',
    '#owner-text a',
    '.ytd-video-owner-renderer a',
    'link[itemprop="name"]',
  ], (t) => t.length > 1);
  const viewCount = first([
    'ytd-watch-info-text #info span',
    '#info-text #count .view-count',
    '.view-count',
    'span.view-count',
  ], (t) => /view/i.test(t));
  const uploadDate = first([
    '#info-strings yt-formatted-string',
    'ytd-watch-info-text #info span:nth-child(3)',
    'meta[itemprop="uploadDate"]',
    '.date',
  ], (t) => /ago|Premiered|Published|Streamed|\d{4}/.test(t));
  const descEl = document.querySelector('#description-inline-expander, #meta-contents #description, meta[name="description"]');
  const descText = descEl ? (descEl.getAttribute('content') || descEl.textContent || '') : '';
  const v = document.querySelector('video');
  return {
    title,
    channel,
    viewCount,
    uploadDate,
    description: descText.trim() ? clean(descText.slice(0, 150)) : null,
    url: location.href,
    media: v ? { duration: Number.isFinite(v.duration) ? v.duration : null, currentTime: v.currentTime, paused: v.paused, readyState: v.readyState } : null,
  };
})()"""


@dataclass
class VideoInfo:
    title: str = "Unknown Video"
    channel: str = "Unknown Channel"
    view_count: str | None = None
    upload_date: str | None = None
    description: str | None = None
    url: str | None = None
    media: dict[str, Any] | None = None
    extracted_at: float = field(default_factory=time.time)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class VideoInfoCache:
    """Session-scoped cache; re-extracts once the entry is older than the freshness window."""

    def __init__(self, *, max_age: float = VIDEO_INFO_MAX_AGE, clock: Callable[[], float] = time.time) -> None:
        self.max_age = max_age
        self._clock = clock
        self.current: VideoInfo | None = None

    def clear(self) -> None:
        self.current = None

    def extract(self, page: Page, fallback_url: str | None = None) -> VideoInfo:
        try:
            raw = page.eval_js(EXTRACT_VIDEO_INFO_JS) or {}
            info = VideoInfo(
                title=raw.get("title") or "Unknown Video",
                channel=raw.get("channel") or "Unknown Channel",
                view_count=raw.get("viewCount"),
                upload_date=raw.get("uploadDate"),
                description=raw.get("description"),
                url=raw.get("url") or fallback_url,
                media=raw.get("media"),
                extracted_at=self._clock(),
            )
            logger.info('Video info: "%s" by "%s"', info.title, info.channel)
        except CdpError as exc:
            logger.warning("Video info extraction failed: %s", exc)
            info = VideoInfo(url=fallback_url, extracted_at=self._clock(), error=str(exc))
        self.current = info
        return info

    def get(self, page: Page, fallback_url: str | None = None) -> VideoInfo:
        current = self.current
        if current is not None and self._clock() - current.extracted_at < self.max_age:
            return current
        return self.extract(page, fallback_url)


__all__ = ["VideoInfo", "VideoInfoCache"]
