"""Logging setup for the uploader CLI and for services embedding the pipeline."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# attempts run on worker threads, so the thread name identifies the server
_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_NOISY_LOGGERS = ("urllib3", "requests")
_HANDLER_MARK = "_video_uploader_handler"


def _log_directory(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return Path(log_dir).expanduser()
    env_dir = os.getenv("VIDEO_UPLOADER_LOG_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.cwd() / "logs"


def _mark(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_MARK, True)
    return handler


def configure_logging(
    prefix: str = "video-uploader",
    *,
    log_dir: Optional[Path] = None,
    level: int = logging.INFO,
    to_file: bool = True,
) -> Optional[Path]:
    """Send uploader logs to stderr and, optionally, a timestamped file.

    Calling it again replaces the handlers it installed earlier and leaves
    any handlers owned by the host application alone. Returns the log file
    path, or ``None`` when file output is disabled.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)
    console_handler = _mark(logging.StreamHandler(sys.stderr))
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    log_file: Optional[Path] = None
    if to_file:
        directory = _log_directory(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_file = directory / f"{prefix}-{stamp}.log"
        file_handler = _mark(logging.FileHandler(log_file, encoding="utf-8"))
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # connection pool chatter drowns out attempt logs at DEBUG
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if log_file is not None:
        root.info("Logging to %s", log_file)
    return log_file


__all__ = ["configure_logging"]
