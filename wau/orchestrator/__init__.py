"""
Supervision loop components.

- ranker.py: RecommendationRanker
- executor.py: ActionExecutor (backup-before-mutate)
- backup.py: backups, backup manifest, restore
- watcher.py: FileWatchCoordinator (debounced triggers)
- notifications.py: NotificationDispatcher and sinks
- supervisor.py: Supervisor state machine
"""

from wau.orchestrator.events import EventType, SupervisorEvent
from wau.orchestrator.executor import (
    ActionExecutor,
    ActionOutcome,
    ActionResult,
    ActionStatus,
    ExecutionOptions,
)
from wau.orchestrator.notifications import NotificationDispatcher
from wau.orchestrator.ranker import rank_recommendations
from wau.orchestrator.supervisor import Supervisor, SupervisorStatus, start_supervisor
from wau.orchestrator.watcher import FileWatchCoordinator

__all__ = [
    "EventType",
    "SupervisorEvent",
    "ActionExecutor",
    "ActionOutcome",
    "ActionResult",
    "ActionStatus",
    "ExecutionOptions",
    "NotificationDispatcher",
    "rank_recommendations",
    "Supervisor",
    "SupervisorStatus",
    "start_supervisor",
    "FileWatchCoordinator",
]
