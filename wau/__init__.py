"""
WAU (WorkaroundUltra) - project setup autopilot.

Watches a project, keeps its developer-tooling posture current and
applies recommended tooling setup with backups.
"""

__version__ = "2.0.0"

from wau.exceptions import (
    WauError,
    ConfigError,
    AnalysisError,
    ActionError,
    BackupError,
    WatchError,
    AlreadyRunningError,
    AlreadyStoppedError,
)

__all__ = [
    "__version__",
    "WauError",
    "ConfigError",
    "AnalysisError",
    "ActionError",
    "BackupError",
    "WatchError",
    "AlreadyRunningError",
    "AlreadyStoppedError",
]
