"""
Log file and retention helpers.
"""
from __future__ import annotations

from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from datetime import datetime, timedelta
import logging


_FILE_HANDLER_TAG = "ttb_file_handler"
LOG_FILE_NAME = "ttb-signals.log"


def configure_file_logging(
    log_directory: str,
    retention_days: int = 30,
    formatter: logging.Formatter | None = None,
) -> Path:
    """Attach a daily-rotating log file handler, replacing one attached earlier."""
    log_dir = Path(log_directory).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    existing = next((h for h in root_logger.handlers if getattr(h, "name", "") == _FILE_HANDLER_TAG), None)
    if existing:
        root_logger.removeHandler(existing)
        existing.close()

    file_handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=max(1, retention_days),
        encoding="utf-8",
    )
    file_handler.name = _FILE_HANDLER_TAG
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter or logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root_logger.addHandler(file_handler)
    if root_logger.level > logging.INFO:
        root_logger.setLevel(logging.INFO)
    return log_file


def prune_log_files(log_directory: str, retention_days: int) -> int:
    """Delete rotated log files older than retention_days. Returns deleted file count."""
    log_dir = Path(log_directory).expanduser().resolve()
    if not log_dir.is_dir():
        return 0

    cutoff = datetime.now() - timedelta(days=retention_days)
    deleted = 0
    for path in log_dir.glob(f"{LOG_FILE_NAME}*"):
        if not path.is_file():
            continue
        try:
            if datetime.fromtimestamp(path.stat().st_mtime) < cutoff:
                path.unlink(missing_ok=True)
                deleted += 1
        except OSError:
            logging.getLogger(__name__).warning("Could not prune log file %s", path, exc_info=True)
    return deleted
