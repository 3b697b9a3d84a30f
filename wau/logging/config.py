"""
Logging Configuration for WAU.

Where the JSONL channels live, how large they grow and how verbose they are.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class LogConfig:
    """Settings shared by every WAU log channel."""

    log_dir: Path = field(default_factory=lambda: Path.home() / ".wau" / "logs")

    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    # DEBUG, INFO, WARNING or ERROR
    supervisor_level: str = "INFO"
    action_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Defaults, overridden by WAU_LOG_LEVEL, WAU_LOG_DIR and WAU_LOG_MAX_SIZE_MB."""
        config = cls()

        if level := os.environ.get("WAU_LOG_LEVEL"):
            config.supervisor_level = level
            config.action_level = level

        if log_dir := os.environ.get("WAU_LOG_DIR"):
            config.log_dir = Path(log_dir)

        if max_size := os.environ.get("WAU_LOG_MAX_SIZE_MB"):
            try:
                config.max_file_size_bytes = int(max_size) * 1024 * 1024
            except ValueError:
                pass

        return config

    def ensure_log_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def supervisor_log_path(self) -> Path:
        return self.log_dir / "supervisor.jsonl"

    @property
    def action_log_path(self) -> Path:
        return self.log_dir / "actions.jsonl"

    def channel_path(self, channel: str) -> Path:
        return self.action_log_path if channel == "actions" else self.supervisor_log_path

    def channel_level(self, channel: str) -> str:
        return self.action_level if channel == "actions" else self.supervisor_level


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Active log config, read from the environment on first use."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Replace the active log config (tests, embedding)."""
    global _config
    _config = config
    _config.ensure_log_dir()
