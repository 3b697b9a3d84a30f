"""
WAU - Supervisor State Machine and Project State

Tracks the lifecycle of a supervisor and holds the immutable snapshot of
what is known about the monitored project.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any

from wau.config import state_file_path

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    """
    Possible states for a supervisor.

    State transitions:
    STOPPED -> STARTING (start requested)
    STARTING -> IDLE (watcher running, first cycle done)
    IDLE -> ANALYZING (filesystem trigger or explicit command)
    ANALYZING -> ACTING (auto-fix/auto-setup with unresolved recommendations)
    ANALYZING -> IDLE (nothing to act on)
    ACTING -> IDLE (execution finished)
    Any -> STOPPING (stop requested)
    STOPPING -> STOPPED (final state persisted)
    """

    STOPPED = auto()  # Not running, no watch handle
    STARTING = auto()  # Hydrating state, starting watcher, first cycle
    IDLE = auto()  # Resting between cycles
    ANALYZING = auto()  # Analyzer, plugins and ranker running
    ACTING = auto()  # Executor applying recommendations
    STOPPING = auto()  # Waiting for the in-flight cycle, then persisting


# Valid state transitions
VALID_TRANSITIONS: dict[SupervisorState, set[SupervisorState]] = {
    SupervisorState.STOPPED: {SupervisorState.STARTING},
    SupervisorState.STARTING: {
        SupervisorState.ANALYZING,
        SupervisorState.IDLE,
        SupervisorState.STOPPING,
        SupervisorState.STOPPED,  # watcher failed to start
    },
    SupervisorState.IDLE: {SupervisorState.ANALYZING, SupervisorState.STOPPING},
    SupervisorState.ANALYZING: {
        SupervisorState.ACTING,
        SupervisorState.IDLE,
        SupervisorState.STOPPING,
    },
    SupervisorState.ACTING: {SupervisorState.IDLE, SupervisorState.STOPPING},
    SupervisorState.STOPPING: {SupervisorState.STOPPED},
}


class Priority(Enum):
    """Recommendation priority, highest first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Numeric rank; larger is more urgent."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.CRITICAL: 3,
    Priority.HIGH: 2,
    Priority.MEDIUM: 1,
    Priority.LOW: 0,
}


@dataclass(frozen=True)
class Recommendation:
    """One suggested tool setup. Never mutated, only superseded."""

    tool: str
    category: str
    reason: str
    priority: Priority = Priority.MEDIUM
    setup_command: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "tool": self.tool,
            "category": self.category,
            "reason": self.reason,
            "priority": self.priority.value,
            "setupCommand": self.setup_command,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recommendation":
        """Create Recommendation from dictionary."""
        return cls(
            tool=data["tool"],
            category=data.get("category", ""),
            reason=data.get("reason", ""),
            priority=Priority(data.get("priority", "medium")),
            setup_command=data.get("setupCommand"),
        )


@dataclass(frozen=True)
class RefactorSuggestion:
    """A code-level improvement proposed by a plugin."""

    filename: str
    suggestion: str


@dataclass(frozen=True)
class ProjectState:
    """
    Immutable snapshot of the monitored project.

    The supervisor replaces the whole snapshot at the end of each cycle,
    so readers never observe a half-updated state.
    """

    project_path: str
    language: str = ""
    frameworks: tuple[str, ...] = ()
    health_score: int = 0
    detected_tools: frozenset[str] = frozenset()
    missing_tools: frozenset[str] = frozenset()
    ignored_tools: frozenset[str] = frozenset()
    last_analysis: datetime | None = None

    def __post_init__(self) -> None:
        overlap = self.detected_tools & self.missing_tools
        if overlap:
            raise ValueError(f"Tools both detected and missing: {sorted(overlap)}")
        if not 0 <= self.health_score <= 100:
            raise ValueError(f"Health score out of range: {self.health_score}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted state-file shape."""
        return {
            "projectPath": self.project_path,
            "language": self.language,
            "frameworks": list(self.frameworks),
            "healthScore": self.health_score,
            "detectedTools": sorted(self.detected_tools),
            "missingTools": sorted(self.missing_tools),
            "ignoredTools": sorted(self.ignored_tools),
            "lastAnalysis": self.last_analysis.isoformat() if self.last_analysis else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectState":
        """Create ProjectState from the persisted state-file shape."""
        last_analysis = data.get("lastAnalysis")
        detected = frozenset(data.get("detectedTools", []))
        return cls(
            project_path=str(data["projectPath"]),
            language=data.get("language", ""),
            frameworks=tuple(data.get("frameworks", [])),
            health_score=int(data.get("healthScore", 0)),
            detected_tools=detected,
            missing_tools=frozenset(data.get("missingTools", [])) - detected,
            ignored_tools=frozenset(data.get("ignoredTools", [])),
            last_analysis=datetime.fromisoformat(last_analysis) if last_analysis else None,
        )


@dataclass
class SupervisorLifecycle:
    """Current lifecycle state of a supervisor and when it last changed."""

    state: SupervisorState = SupervisorState.STOPPED
    changed_at: datetime = field(default_factory=datetime.now)

    def transition_to(self, new_state: SupervisorState) -> bool:
        """
        Attempt to transition to a new state.

        Args:
            new_state: The target state

        Returns:
            True if transition was valid and performed, False otherwise
        """
        if new_state in VALID_TRANSITIONS.get(self.state, set()):
            self.state = new_state
            self.changed_at = datetime.now()
            return True
        return False

    def require_transition(self, new_state: SupervisorState) -> None:
        """
        Transition to a new state, raising an exception if invalid.

        Raises:
            StateTransitionError: If the transition is not valid
        """
        from wau.exceptions import StateTransitionError

        if not self.transition_to(new_state):
            valid_targets = VALID_TRANSITIONS.get(self.state, set())
            valid_names = ", ".join(s.name for s in valid_targets) or "none"
            raise StateTransitionError(
                f"Invalid state transition: {self.state.name} -> {new_state.name}. "
                f"Valid transitions from {self.state.name}: {valid_names}",
                from_state=self.state.name,
                to_state=new_state.name,
            )

    def can_transition_to(self, new_state: SupervisorState) -> bool:
        """Check if transition to new_state is valid from current state."""
        return new_state in VALID_TRANSITIONS.get(self.state, set())


def compute_health_score(
    detected_tools: frozenset[str] | set[str],
    missing: list[Recommendation],
    refactor_count: int,
) -> int:
    """
    Compute the 0-100 tooling health score for one analysis cycle.

    score = 100
            - 15 per missing critical tool
            - 5 per missing high-priority tool
            - 2 per refactor suggestion (at most 20)
            - up to 20 for incomplete tool coverage
    """
    total = len(detected_tools) + len(missing)
    coverage = len(detected_tools) / total if total else 1.0

    critical = sum(1 for r in missing if r.priority is Priority.CRITICAL)
    high = sum(1 for r in missing if r.priority is Priority.HIGH)

    score = 100
    score -= 15 * critical
    score -= 5 * high
    score -= min(20, 2 * refactor_count)
    score -= round(20 * (1 - coverage))
    return max(0, min(100, score))


def load_project_state(project_path: str | Path) -> ProjectState | None:
    """
    Load the persisted snapshot for a project, if any.

    A corrupt state file is logged and ignored rather than raised, so a
    supervisor can always start fresh.
    """
    path = state_file_path(project_path)
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return ProjectState.from_dict(data)
    except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return None


def save_project_state(state: ProjectState) -> Path:
    """Write the snapshot to the project's state file, replacing it atomically."""
    path = state_file_path(state.project_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(state.to_dict(), f, indent=2)
    os.replace(tmp_path, path)
    return path
