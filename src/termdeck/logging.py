"""Application logging helpers."""

from __future__ import annotations

import logging as py_logging
import os
import sys
from pathlib import Path
from typing import TextIO

LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
LOG_LEVEL_ENV = "TERMDECK_LOG_LEVEL"
ROOT_LOGGER_NAME = "termdeck"
DEFAULT_LOG_PATH = Path("~/.config/termdeck/logs/termdeck.log")
_FALLBACK_LOG_PATH = Path(".termdeck/logs/termdeck.log")
_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s:%(lineno)d %(message)s"


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    else:
        if not resolved.is_absolute():
            resolved = resolved.resolve()
    return resolved


def resolve_level(level: str | None) -> int:
    """Map a user supplied level name to a logging level, env override first."""
    raw = os.getenv(LOG_LEVEL_ENV, "").strip() or (level or "INFO")
    normalized = raw.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    return LOG_LEVELS.get(normalized, py_logging.INFO)


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    resolved = resolve_level(level)

    logger = py_logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(resolved)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    formatter = py_logging.Formatter(_FORMAT)

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(resolved)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        _attach_file_handler(logger, log_file, formatter)

    logger.propagate = False
    return logger


def _attach_file_handler(
    logger: py_logging.Logger,
    log_file: str | Path,
    formatter: py_logging.Formatter,
) -> None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = log_path.resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        # Console logging still works when the log directory is read-only.
        return
    # File output always records debug detail; the logger level gates it.
    file_handler.setLevel(py_logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
