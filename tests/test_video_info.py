from __future__ import annotations

from typing import Any

from channel_remote.cdp import CdpTimeoutError
from channel_remote.video_info import VideoInfoCache


class DummyPage:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls = 0

    def eval_js(self, expression: str, **kwargs: Any) -> Any:  # noqa: ARG002
        self.calls += 1
        if self.fail:
            raise CdpTimeoutError("Runtime.evaluate timed out")
        return {"title": "Lecture 1", "channel": "", "viewCount": "1,024 views", "url": "https://www.youtube.com/watch?v=1"}


def test_cached_info_is_reused_within_freshness_window() -> None:
    now = {"t": 1000.0}
    cache = VideoInfoCache(clock=lambda: now["t"])
    page = DummyPage()
    first = cache.get(page)
    assert first.title == "Lecture 1"
    assert first.channel == "Unknown Channel"
    now["t"] += 10
    assert cache.get(page) is first
    now["t"] += 25
    cache.get(page)
    assert page.calls == 2


def test_extraction_failure_returns_placeholder() -> None:
    cache = VideoInfoCache()
    info = cache.extract(DummyPage(fail=True), "https://youtu.be/abc")
    assert info.title == "Unknown Video"
    assert info.url == "https://youtu.be/abc"
    assert "timed out" in (info.error or "")
    cache.clear()
    assert cache.current is None
