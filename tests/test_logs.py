from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from channel_remote.config import RemoteConfig
from channel_remote.logs import configure_logging


def test_configure_logging_writes_rotating_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        cfg = RemoteConfig(binary_path="chrome", profile_path="p", log_dir=str(tmp_path / "logs"), log_level="debug", log_retention_days=3)
        path = configure_logging(cfg)
        assert Path(path).parent == tmp_path / "logs"
        rotating = [h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]
        assert len(rotating) == 1
        assert rotating[0].backupCount == 3
        assert root.level == logging.DEBUG

        logging.getLogger("channel_remote.test").info("hello from test")
        rotating[0].flush()
        text = Path(path).read_text(encoding="utf-8")
        assert "INFO channel_remote.test hello from test" in text

        # Reconfiguring replaces handlers instead of stacking them.
        configure_logging(cfg)
        assert len([h for h in root.handlers if isinstance(h, TimedRotatingFileHandler)]) == 1
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
