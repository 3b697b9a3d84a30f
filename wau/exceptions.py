"""
WAU - Exception Hierarchy

All WAU-specific exceptions inherit from WauError. Collaborator and
per-file failures are recorded where they happen; only watcher failures,
invalid supervisor commands and configuration errors reach the caller.
"""

from typing import Any


class WauError(Exception):
    """Base exception for all WAU errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(WauError):
    """Raised when configuration is invalid or missing."""

    pass


# Analysis Errors
class AnalysisError(WauError):
    """Raised when the analyzer or a plugin fails for a project.

    The supervisor logs it, aborts the cycle and keeps the previous snapshot.
    """

    def __init__(self, message: str, project_path: str | None = None):
        super().__init__(message, {"project_path": project_path} if project_path else None)
        self.project_path = project_path


# Action Errors
class ActionError(WauError):
    """Raised when applying a single recommendation fails."""

    def __init__(self, message: str, tool: str, details: dict[str, Any] | None = None):
        super().__init__(message, {"tool": tool, **(details or {})})
        self.tool = tool


class BackupError(WauError):
    """Raised when a file could not be backed up before mutation.

    The file it guards is skipped, never written.
    """

    def __init__(self, message: str, path: str):
        super().__init__(message, {"path": path})
        self.path = path


class RollbackError(WauError):
    """Raised when restoring a tool's backups is impossible."""

    def __init__(self, message: str, tool: str):
        super().__init__(message, {"tool": tool})
        self.tool = tool


# Watcher Errors
class WatchError(WauError):
    """Raised when the filesystem watcher fails to start or dies.

    Fatal to the supervisor.
    """

    pass


# Supervisor Errors
class SupervisorError(WauError):
    """Base exception for invalid supervisor commands."""

    pass


class AlreadyRunningError(SupervisorError):
    """Raised when start() is called on a supervisor that is not stopped."""

    def __init__(self, message: str, pid: int | None = None):
        super().__init__(message, {"pid": pid} if pid else None)
        self.pid = pid


class AlreadyStoppedError(SupervisorError):
    """Raised when stop() is called on a supervisor that is already stopped."""

    pass


class StateTransitionError(WauError):
    """Raised when an invalid state transition is attempted.

    Includes the current state and the attempted target state for debugging.
    """

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state
