"""
JSONL file handler for the WAU log channels.

Every record becomes one JSON object per line. Records whose message is
already a JSON object (log entries call .to_json()) are written unchanged
apart from the writer's pid; anything else is wrapped.
"""

import json
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any


class JSONLRotatingHandler(RotatingFileHandler):
    """Size-rotated JSONL file shared by every supervisor process."""

    def __init__(self, filename: str | Path, max_bytes: int = 10_000_000, backup_count: int = 5):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")

    def to_mapping(self, record: logging.LogRecord) -> dict[str, Any]:
        message = record.getMessage()
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            data = None

        if not isinstance(data, dict):
            data = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": message,
            }
        # Several projects may be supervised at once, each in its own process
        data.setdefault("pid", os.getpid())
        return data

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self.to_mapping(record), default=str)
            if self.shouldRollover(record):
                self.doRollover()
            self.stream.write(line + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Build a non-propagating logger that writes only to a JSONL file.

    Calling it again for the same name replaces (and closes) the old handler,
    which is how a changed LogConfig takes effect.
    """
    channel = logging.getLogger(name)
    channel.setLevel(getattr(logging, level.upper(), logging.INFO))

    for old in list(channel.handlers):
        channel.removeHandler(old)
        old.close()

    channel.addHandler(JSONLRotatingHandler(filepath, max_bytes=max_bytes, backup_count=backup_count))
    channel.propagate = False
    return channel
