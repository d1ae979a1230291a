from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


# Log rotation settings (configurable via environment)
MAX_LOG_BYTES = int(os.getenv("ORDERS_LOG_MAX_BYTES", 10 * 1024 * 1024))  # 10MB default
LOG_BACKUP_COUNT = int(os.getenv("ORDERS_LOG_BACKUP_COUNT", 5))  # Keep 5 backups

_event_logger = logging.getLogger("orders.events")

_log_file: Optional[Path] = None
_file_handler: RotatingFileHandler | None = None
_handler_lock = threading.Lock()


def configure_event_log(path: str | Path | None) -> None:
    """
    Point the JSON event log at a file, or disable file output with None.

    The console echo through the ``orders.events`` logger is always on.
    """
    global _log_file, _file_handler
    with _handler_lock:
        if _file_handler is not None:
            _file_handler.close()
            _file_handler = None
        if path:
            _log_file = Path(path)
            _log_file.parent.mkdir(parents=True, exist_ok=True)
        else:
            _log_file = None


def get_event_log_path() -> Optional[Path]:
    return _log_file


def _get_file_handler() -> Optional[RotatingFileHandler]:
    """Get or create the rotating file handler."""
    global _file_handler
    if _log_file is None:
        return None
    if _file_handler is None:
        _file_handler = RotatingFileHandler(
            str(_log_file),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    return _file_handler


def jlog(event: str, level: str = "INFO", **fields: Any) -> None:
    """
    Write a structured JSON log entry with automatic rotation.

    Args:
        event: Event name/type
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **fields: Additional fields to include in the log entry
    """
    rec: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        **fields,
    }
    line = json.dumps(rec, default=str)

    with _handler_lock:
        handler = _get_file_handler()
        if handler is not None:
            record = logging.LogRecord(
                name="orders.events", level=logging.INFO, pathname="", lineno=0,
                msg=line, args=(), exc_info=None,
            )
            # Rotation is checked against the line about to be written
            if handler.shouldRollover(record):
                handler.doRollover()
            handler.stream.write(line + "\n")
            handler.stream.flush()

    # Also echo concise line through stdlib logging
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO
    _event_logger.log(lvl, "%s | %s", event, fields)


def read_recent_logs(count: int = 100, level: str | None = None) -> list[Dict[str, Any]]:
    """
    Read the most recent log entries.

    Args:
        count: Maximum number of entries to return
        level: Optional filter by log level

    Returns:
        List of log entries (most recent last)
    """
    entries: list[Dict[str, Any]] = []

    if _log_file is None or not _log_file.exists():
        return entries

    with _log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    # Read from end for efficiency
    for line in reversed(lines):
        if len(entries) >= count:
            break
        try:
            entry = json.loads(line.strip())
        except json.JSONDecodeError:
            continue
        if level is None or entry.get("level") == level:
            entries.append(entry)

    # Return in chronological order
    return list(reversed(entries))
