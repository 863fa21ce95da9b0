# src/classsync/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "classsync.log"
_LOG_FILE_MAX_BYTES = 2_000_000
_LOG_FILE_BACKUPS = 3

# Supabase client stack; every request is logged at INFO.
_HTTP_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "gotrue", "supabase_auth", "realtime")

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def level_from_name(name: str | int | None, default: int = logging.INFO) -> int:
    """'debug' / 'WARNING' / 20 -> logging level; unknown names give `default`."""
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name or "").strip().upper())
    return level if isinstance(level, int) else default


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console shares the terminal with the REPL prompt, so only a little gets through:
    - classsync logs pass, except the console connector itself (WARNING+)
    - the Supabase HTTP stack and captured warnings: ERROR+
    - any other third-party logger: ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("classsync."):
            if name.startswith("classsync.connectors."):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def _console_handler(level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_ConsoleNoiseFilter())
    return handler


def _file_handler(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler = RotatingFileHandler(
        str(path),
        maxBytes=_LOG_FILE_MAX_BYTES,
        backupCount=_LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    *,
    log_dir: str | Path = ".local/classsync",
    console_level: str | int = logging.INFO,
    file_level: str | int = logging.DEBUG,
) -> Path:
    """
    Install the console and file handlers on the root logger and return the log file path.

    Replaces any handlers already installed, so calling it twice does not duplicate output.
    The file keeps everything from classsync; HTTP request lines stay out of it below WARNING.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    root.addHandler(_console_handler(level_from_name(console_level), formatter))
    root.addHandler(_file_handler(log_file, level_from_name(file_level, logging.DEBUG), formatter))

    logging.captureWarnings(True)
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
