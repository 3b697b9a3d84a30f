"""Structured events emitted by the supervisor for external observers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventType(Enum):
    """Supervisor event kinds."""

    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_COMPLETED = "analysis_completed"
    ANALYSIS_FAILED = "analysis_failed"
    ACTION_STARTED = "action_started"
    ACTION_COMPLETED = "action_completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SupervisorEvent:
    """One event, with a JSON-friendly payload."""

    type: EventType
    project_path: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "projectPath": self.project_path,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
