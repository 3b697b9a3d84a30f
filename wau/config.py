"""
WAU - Configuration Management

Handles the per-project settings file (.wau/config.json), environment
variables, and the options a supervisor is started with.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from wau.exceptions import ConfigError


# Paths inside a monitored project
STATE_DIR_NAME = ".wau"
STATE_FILE_NAME = "state.json"
SETTINGS_FILE_NAME = "config.json"
BACKUP_MANIFEST_NAME = "backups.json"
PID_FILE_NAME = "supervisor.pid"

# Marker embedded in every backup file name: <file>.wau-backup-<timestamp>
BACKUP_MARKER = ".wau-backup-"

DEFAULT_WATCH_PATTERNS = ["**/*"]

# Directories that never trigger analysis: our own state and dependency installs
DEFAULT_IGNORE_DIRS = [
    STATE_DIR_NAME,
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    "dist",
    "build",
    ".next",
    "coverage",
]

DEFAULT_DEBOUNCE_SECONDS = 1.0


def with_default_ignores(patterns: list[str] | None) -> list[str]:
    """
    Configured ignore patterns plus the built-in ones.

    The state directory and dependency installs are always ignored.
    """
    merged = list(DEFAULT_IGNORE_DIRS)
    for pattern in patterns or []:
        if pattern not in merged:
            merged.append(pattern)
    return merged


def state_dir(project_path: str | Path) -> Path:
    """Get the hidden supervisor directory for a project."""
    return Path(project_path) / STATE_DIR_NAME


def state_file_path(project_path: str | Path) -> Path:
    """Get full path to the persisted state file."""
    return state_dir(project_path) / STATE_FILE_NAME


def settings_file_path(project_path: str | Path) -> Path:
    """Get full path to the per-project settings file."""
    return state_dir(project_path) / SETTINGS_FILE_NAME


def backup_manifest_path(project_path: str | Path) -> Path:
    """Get full path to the backup manifest."""
    return state_dir(project_path) / BACKUP_MANIFEST_NAME


def pid_file_path(project_path: str | Path) -> Path:
    """Get full path to the running-supervisor marker."""
    return state_dir(project_path) / PID_FILE_NAME


@dataclass
class NotificationConfig:
    """Which notification channels receive supervisor events."""

    terminal: bool = True
    desktop: bool = True
    webhook_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "terminal": self.terminal,
            "desktop": self.desktop,
            "webhookUrl": self.webhook_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationConfig":
        """Create NotificationConfig from dictionary."""
        return cls(
            terminal=data.get("terminal", True),
            desktop=data.get("desktop", True),
            webhook_url=data.get("webhookUrl") or data.get("webhook"),
        )


@dataclass
class SupervisorConfig:
    """
    Options a supervisor is started with.

    auto_fix / auto_setup gate the automatic move into the ACTING state,
    dashboard only affects presentation in the CLI.
    """

    auto_fix: bool = False
    auto_setup: bool = False
    dashboard: bool = False
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    ignore_tools: list[str] = field(default_factory=list)
    watch_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_WATCH_PATTERNS))
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_DIRS))
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    run_setup_commands: bool = False

    def __post_init__(self) -> None:
        if self.debounce_seconds < 0:
            raise ConfigError(
                "debounce_seconds must not be negative",
                {"debounce_seconds": self.debounce_seconds},
            )
        if not self.watch_patterns:
            raise ConfigError("At least one watch pattern is required")

    @property
    def acts_automatically(self) -> bool:
        """Whether completed analyses may move the supervisor into ACTING."""
        return self.auto_fix or self.auto_setup

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "autoFix": self.auto_fix,
            "autoSetup": self.auto_setup,
            "dashboard": self.dashboard,
            "notifications": self.notifications.to_dict(),
            "ignoreTools": self.ignore_tools,
            "watchPatterns": self.watch_patterns,
            "ignorePatterns": self.ignore_patterns,
            "debounceSeconds": self.debounce_seconds,
            "runSetupCommands": self.run_setup_commands,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SupervisorConfig":
        """Create SupervisorConfig from dictionary."""
        try:
            return cls(
                auto_fix=bool(data.get("autoFix", False)),
                auto_setup=bool(data.get("autoSetup", False)),
                dashboard=bool(data.get("dashboard", False)),
                notifications=NotificationConfig.from_dict(data.get("notifications", {})),
                ignore_tools=list(data.get("ignoreTools", [])),
                watch_patterns=list(data.get("watchPatterns", DEFAULT_WATCH_PATTERNS)),
                ignore_patterns=list(data.get("ignorePatterns", DEFAULT_IGNORE_DIRS)),
                debounce_seconds=float(data.get("debounceSeconds", DEFAULT_DEBOUNCE_SECONDS)),
                run_setup_commands=bool(data.get("runSetupCommands", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError("Invalid supervisor configuration", {"error": str(e)})


def load_settings(project_path: str | Path) -> dict[str, Any]:
    """
    Load the raw per-project settings file.

    Returns:
        Parsed settings, or an empty dict if the file does not exist

    Raises:
        ConfigError: If the file is not a valid JSON object
    """
    path = settings_file_path(project_path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}", {"error": str(e)})
    if not isinstance(data, dict):
        raise ConfigError(f"Settings in {path} must be a JSON object")
    return data


def save_settings(project_path: str | Path, data: dict[str, Any]) -> None:
    """Write the per-project settings file."""
    path = settings_file_path(project_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_supervisor_config(project_path: str | Path, **overrides: Any) -> SupervisorConfig:
    """
    Build the supervisor configuration for a project.

    Precedence: explicit overrides (CLI flags) > settings file > environment
    > defaults. Overrides whose value is None are ignored.

    Args:
        project_path: Project root
        **overrides: SupervisorConfig field values

    Returns:
        SupervisorConfig with all settings loaded

    Raises:
        ConfigError: If configuration is invalid
    """
    data: dict[str, Any] = {}

    if webhook := os.environ.get("WAU_WEBHOOK_URL"):
        data["notifications"] = {"webhookUrl": webhook}
    if debounce := os.environ.get("WAU_DEBOUNCE_SECONDS"):
        data["debounceSeconds"] = debounce

    settings = load_settings(project_path)
    if "notifications" in settings:
        merged = dict(data.get("notifications", {}))
        merged.update(settings["notifications"])
        settings = {**settings, "notifications": merged}
    data.update(settings)

    config = SupervisorConfig.from_dict(data)

    known = {f.name for f in fields(SupervisorConfig)}
    applied: dict[str, Any] = {}
    for name, value in overrides.items():
        if value is None:
            continue
        if name not in known:
            raise ConfigError(f"Unknown configuration option '{name}'")
        applied[name] = value

    # replace() re-runs __post_init__ validation
    return replace(config, **applied)


def save_ignored_tool(project_path: str | Path, tool: str) -> bool:
    """
    Persist a tool to the project's ignore list.

    Returns:
        True if the tool was added, False if it was already ignored
    """
    settings = load_settings(project_path)
    ignored = list(settings.get("ignoreTools", []))
    if tool in ignored:
        return False
    ignored.append(tool)
    settings["ignoreTools"] = ignored
    save_settings(project_path, settings)
    return True
