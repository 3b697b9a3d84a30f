"""
Log Entry Data Structures for WAU.

Structured entries for supervisor lifecycle events and executed actions.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class SupervisorLogEntry:
    """Log entry for supervisor lifecycle events."""

    timestamp: str  # ISO 8601
    project_path: str
    event_type: str  # "start", "state_change", "analysis_completed", "stopped", "error"

    # State changes
    from_state: str | None = None
    to_state: str | None = None

    # Cycle outcome
    language: str = ""
    health_score: int | None = None
    detected_tools: list[str] = field(default_factory=list)
    missing_tools: list[str] = field(default_factory=list)
    recommendation_count: int = 0
    duration_ms: int = 0

    # Error info (populated on "error" event)
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SupervisorLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class ActionLogEntry:
    """Log entry for one executed recommendation."""

    timestamp: str  # ISO 8601
    project_path: str
    tool: str
    status: str  # "applied", "skipped", "failed"

    reason: str = ""
    dry_run: bool = False
    files_changed: list[str] = field(default_factory=list)
    backups: list[str] = field(default_factory=list)
    duration_ms: int = 0

    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ActionLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()
