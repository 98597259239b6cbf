from __future__ import annotations

import pytest

from channel_remote.config import DEFAULT_VIDEO_DOMAINS, RemoteConfig, Timings, parse_bool


def test_defaults_from_empty_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("GUIDE_BASE_URL", "CHANNEL_REMOTE_API_KEY", "CHANNEL_REMOTE_MODE", "CHANNEL_REMOTE_VIDEO_DOMAINS"):
        monkeypatch.delenv(key, raising=False)
    cfg = RemoteConfig.from_env()
    assert cfg.cdp_port == 9222
    assert cfg.mode == "launch"
    assert cfg.bind_host == "127.0.0.1"
    assert cfg.port == 3001
    assert cfg.api_key is None
    assert cfg.video_domains == DEFAULT_VIDEO_DOMAINS
    assert cfg.captions_default is False
    assert cfg.guide_app_url == "http://localhost:8000/web/guide"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GUIDE_BASE_URL", "http://guide.lan:9000/")
    monkeypatch.setenv("CHANNEL_REMOTE_MODE", "attach")
    monkeypatch.setenv("CHANNEL_REMOTE_VIDEO_DOMAINS", "YouTube.com, vimeo.com")
    monkeypatch.setenv("CHANNEL_REMOTE_CAPTIONS_DEFAULT", "unset")
    monkeypatch.setenv("CHANNEL_REMOTE_API_KEY", " secret ")
    monkeypatch.setenv("CHANNEL_REMOTE_BLOCK_POPUPS", "no")
    monkeypatch.setenv("CHANNEL_REMOTE_HEALTH_PROBE", "2")
    cfg = RemoteConfig.from_env()
    assert cfg.guide_base_url == "http://guide.lan:9000"
    assert cfg.mode == "attach"
    assert cfg.video_domains == ["youtube.com", "vimeo.com"]
    assert cfg.captions_default is None
    assert cfg.api_key == "secret"
    assert cfg.block_popups is False
    assert cfg.timings.health_probe == 2.0


def test_timings_ignore_blank_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHANNEL_REMOTE_NAVIGATION", " ")
    monkeypatch.setenv("CHANNEL_REMOTE_MEDIA_READY", "-4")
    timings = Timings.from_env()
    assert timings.navigation == 30.0
    assert timings.media_ready == 0.0


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("Yes", True), ("off", False), ("maybe", True), (None, True)])
def test_parse_bool(raw: str | None, expected: bool) -> None:
    assert parse_bool(raw, True) is expected


def test_captions_default_values() -> None:
    assert RemoteConfig.parse_captions_default("on") is True
    assert RemoteConfig.parse_captions_default("false") is False
    assert RemoteConfig.parse_captions_default("default") is None
    assert RemoteConfig.parse_captions_default(None) is False
