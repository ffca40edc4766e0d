"""
Logging utilities shared by every module of the capture service.

Each logger writes to the console and to one size-rotated file per process run,
stored under logs/<date>/. Old run directories are pruned on setup.
"""

import datetime
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE_BASENAME = "daylight"

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MAX_LOG_SIZE_BYTES = 5 * 1024 * 1024
MAX_BACKUP_COUNT = 10
LOG_RETENTION_DAYS = 7

_started_at = datetime.datetime.now()
_run_dir = LOG_DIR / _started_at.strftime("%Y-%m-%d")
_run_dir.mkdir(exist_ok=True)

# All loggers of one process share a single file
RUN_LOG_FILE = (
    _run_dir / f"{LOG_FILE_BASENAME}_{_started_at.strftime('%Y-%m-%d_%H-%M-%S')}.log"
)

_shared_file_handler: logging.Handler | None = None


class SafeRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation that keeps writing to the current file if rollover fails."""

    def doRollover(self):
        try:
            super().doRollover()
        except OSError as e:
            sys.stderr.write(
                f"Log rotation failed: {e}. Continuing with current log file.\n"
            )
            sys.stderr.flush()


def _get_log_level(level_str: str) -> int:
    level = logging.getLevelName(level_str.upper())
    return level if isinstance(level, int) else logging.INFO


def _get_file_handler() -> logging.Handler:
    global _shared_file_handler
    if _shared_file_handler is None:
        handler = SafeRotatingFileHandler(
            RUN_LOG_FILE,
            maxBytes=MAX_LOG_SIZE_BYTES,
            backupCount=MAX_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        _shared_file_handler = handler
        cleanup_old_logs(keep_days=LOG_RETENTION_DAYS)
    return _shared_file_handler


def setup_logger(name: str, level: str = None) -> logging.Logger:
    """Set up logger with both console and file handlers."""
    logger = logging.getLogger(name)
    log_level = _get_log_level(level or DEFAULT_LOG_LEVEL)
    logger.setLevel(log_level)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))

    logger.addHandler(console_handler)
    logger.addHandler(_get_file_handler())
    logger.propagate = False

    return logger


def cleanup_old_logs(keep_days: int = LOG_RETENTION_DAYS) -> int:
    """Delete run directories older than keep_days. Returns the number of files removed."""
    cutoff = datetime.datetime.now() - datetime.timedelta(days=keep_days)
    deleted = 0

    for date_dir in LOG_DIR.iterdir():
        if not date_dir.is_dir():
            continue
        try:
            dir_date = datetime.datetime.strptime(date_dir.name, "%Y-%m-%d")
        except ValueError:
            # Not one of ours
            continue
        if dir_date >= cutoff:
            continue

        for log_file in date_dir.glob(f"{LOG_FILE_BASENAME}_*.log*"):
            try:
                log_file.unlink()
                deleted += 1
            except OSError as e:
                sys.stderr.write(f"Could not delete log file {log_file}: {e}\n")
        try:
            date_dir.rmdir()
        except OSError:
            pass  # still holds foreign files

    return deleted
