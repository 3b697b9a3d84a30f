"""
WAU Logging System.

Structured JSONL channels, written under LogConfig.log_dir (~/.wau/logs):
- supervisor.jsonl: lifecycle events, state transitions, cycle outcomes
- actions.jsonl: one entry per executed recommendation

Usage:
    from wau.logging import supervisor_logger, SupervisorLogEntry, now_iso

    entry = SupervisorLogEntry(
        timestamp=now_iso(),
        project_path="/path/to/project",
        event_type="start",
    )
    supervisor_logger.info(entry.to_json())

Diagnostics that are not structured entries go through the usual
logging.getLogger(__name__) loggers instead.
"""

import logging
import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import ActionLogEntry, SupervisorLogEntry, now_iso
from .handlers import create_jsonl_logger

# channel -> logger name; files and levels come from LogConfig
CHANNELS = {
    "supervisor": "wau.supervisor_events",
    "actions": "wau.actions",
}

# Created on first write so importing never touches the filesystem
_channels: dict[str, logging.Logger] = {}
_init_lock = threading.Lock()


def _channel(name: str) -> logging.Logger:
    channel = _channels.get(name)
    if channel is not None:
        return channel

    with _init_lock:
        if name not in _channels:
            config = get_config()
            _channels[name] = create_jsonl_logger(
                CHANNELS[name],
                config.channel_path(name),
                level=config.channel_level(name),
                max_bytes=config.max_file_size_bytes,
                backup_count=config.backup_count,
            )
        return _channels[name]


def reset_loggers() -> None:
    """Forget the channel loggers so the next write picks up a new LogConfig."""
    with _init_lock:
        for channel in _channels.values():
            for handler in list(channel.handlers):
                channel.removeHandler(handler)
                handler.close()
        _channels.clear()


class _LazyLogger:
    """Stands in for a channel logger until the first write."""

    def __init__(self, channel: str):
        self._channel = channel

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel(self._channel).debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel(self._channel).info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel(self._channel).warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel(self._channel).error(msg, *args, **kwargs)


supervisor_logger = _LazyLogger("supervisor")
action_logger = _LazyLogger("actions")


__all__ = [
    "supervisor_logger",
    "action_logger",
    "reset_loggers",
    "SupervisorLogEntry",
    "ActionLogEntry",
    "now_iso",
    "LogConfig",
    "get_config",
    "set_config",
]
