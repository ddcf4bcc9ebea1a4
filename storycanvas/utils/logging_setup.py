"""Logging configuration shared by the application and its workers."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from storycanvas.utils.config import get_data_dir

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_configured = False


def get_log_path() -> Path:
    log_dir = get_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / "storycanvas.log"


def setup_logging(level: int = logging.INFO, log_path: Path | None = None) -> None:
    """Attach a rotating file handler and a console handler to the package logger.

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    if _configured:
        return

    root = logging.getLogger("storycanvas")
    root.setLevel(level)

    formatter = logging.Formatter(_FORMAT)

    fh = RotatingFileHandler(
        log_path or get_log_path(), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    fh.setFormatter(formatter)
    root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setFormatter(formatter)
    root.addHandler(ch)

    _configured = True
