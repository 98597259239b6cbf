from __future__ import annotations

import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

from .config import RemoteConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_FILE_PREFIX = "channel-remote"


def configure_logging(config: RemoteConfig) -> str:
    """Console plus a daily-rotated file under ``config.log_dir``; returns the file path."""
    os.makedirs(config.log_dir, exist_ok=True)
    log_path = os.path.join(config.log_dir, f"{LOG_FILE_PREFIX}-{time.strftime('%Y%m%d')}.log")
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    file_handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        backupCount=max(config.log_retention_days, 1),
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    root.addHandler(file_handler)
    root.setLevel(level)

    # websocket-client logs every frame error at ERROR; the session manager reports these itself.
    logging.getLogger("websocket").setLevel(logging.CRITICAL)
    logging.getLogger("channel_remote").info("Logging to %s", log_path)
    return log_path


__all__ = ["LOG_FORMAT", "configure_logging"]
