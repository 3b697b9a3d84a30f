"""
WAU Supervisor - the continuous supervision loop for one project.

Owns the canonical ProjectState and drives each cycle:
1. A debounced filesystem trigger (or an explicit command) starts a cycle
2. The analyzer and plugins inspect the project (in a worker thread)
3. The ranker filters, deduplicates and orders recommendations
4. A new immutable snapshot replaces the old one and is persisted
5. With auto-fix/auto-setup, the executor applies the recommendations
6. Events go out to subscribers (notifications, dashboard)

Only one cycle runs at a time. Triggers that arrive mid-cycle collapse into
a single rerun once the cycle finishes. Readers (get_status,
get_current_recommendations) always see the last committed snapshot.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from wau.analysis import PluginManager, ProjectAnalyzer, detect_installed_tools
from wau.config import SupervisorConfig, load_settings, pid_file_path
from wau.exceptions import (
    AlreadyRunningError,
    AlreadyStoppedError,
    ConfigError,
    WatchError,
)
from wau.logging import SupervisorLogEntry, now_iso, supervisor_logger
from wau.orchestrator.events import EventType, SupervisorEvent
from wau.orchestrator.executor import ActionExecutor, ActionResult, ExecutionOptions
from wau.orchestrator.ranker import missing_tool_names, rank_recommendations
from wau.orchestrator.watcher import FileWatchCoordinator
from wau.state import (
    ProjectState,
    Recommendation,
    RefactorSuggestion,
    SupervisorLifecycle,
    SupervisorState,
    compute_health_score,
    load_project_state,
    save_project_state,
)

logger = logging.getLogger(__name__)

# How often wait_until_stopped() checks that the watcher is still alive
WATCHER_POLL_SECONDS = 1.0

# Project roots supervised by this process
_claimed_roots: set[str] = set()

Listener = Callable[[SupervisorEvent], Any]


def read_pid_marker(project_path: str | Path) -> int | None:
    """Pid recorded by the supervisor running for a project, if any."""
    path = pid_file_path(project_path)
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def pid_is_alive(pid: int) -> bool:
    """Whether a process with this pid exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@dataclass(frozen=True)
class SupervisorStatus:
    """Point-in-time view of a supervisor, safe to hand to any reader."""

    state: ProjectState
    supervisor_state: SupervisorState
    watched_files: int = 0
    cycle_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "supervisorState": self.supervisor_state.name.lower(),
            "watchedFiles": self.watched_files,
            "cycleCount": self.cycle_count,
            "lastError": self.last_error,
        }


@dataclass
class _CycleResult:
    snapshot: ProjectState
    recommendations: list[Recommendation]
    refactor_suggestions: list[RefactorSuggestion] = field(default_factory=list)
    specific_packages: list[str] = field(default_factory=list)


class Supervisor:
    """
    Long-lived supervisor for one project root.

    Collaborators are injected so tests can substitute fakes:
    - analyzer: ProjectAnalyzer-like (analyze_project)
    - plugin_manager: PluginManager-like (get_all_* methods)
    - executor: ActionExecutor
    - watcher_factory: builds the FileWatchCoordinator
    """

    def __init__(
        self,
        project_path: str | Path,
        config: SupervisorConfig | None = None,
        analyzer: Any = None,
        plugin_manager: Any = None,
        executor: ActionExecutor | None = None,
        watcher_factory: Callable[..., FileWatchCoordinator] | None = None,
    ):
        self.project_path = str(Path(project_path).resolve())
        self.config = config or SupervisorConfig()
        self.analyzer = analyzer or ProjectAnalyzer(ignore_dirs=self.config.ignore_patterns)
        self.plugin_manager = plugin_manager or PluginManager()
        self.executor = executor or ActionExecutor()
        self._watcher_factory = watcher_factory or FileWatchCoordinator

        self.lifecycle = SupervisorLifecycle()
        self.watcher: FileWatchCoordinator | None = None

        self._snapshot = ProjectState(project_path=self.project_path)
        self._recommendations: tuple[Recommendation, ...] = ()
        self._refactor_suggestions: tuple[RefactorSuggestion, ...] = ()
        self._specific_packages: tuple[str, ...] = ()
        self._ignored: set[str] = set(self.config.ignore_tools)

        self._listeners: list[Listener] = []
        self._listener_tasks: set[asyncio.Future] = set()
        self._cycle_lock = asyncio.Lock()
        self._cycle_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None
        self._stopped = asyncio.Event()
        self._rerun_requested = False
        self._stop_requested = False

        self.cycle_count = 0
        self.last_error: str | None = None
        self.last_action_result: ActionResult | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        return self.lifecycle.state

    @property
    def is_running(self) -> bool:
        return self.lifecycle.state is not SupervisorState.STOPPED

    def get_status(self) -> SupervisorStatus:
        """Last committed snapshot plus watcher info. Never blocks."""
        return SupervisorStatus(
            state=self._snapshot,
            supervisor_state=self.lifecycle.state,
            watched_files=self.watcher.watched_files if self.watcher else 0,
            cycle_count=self.cycle_count,
            last_error=self.last_error,
        )

    def get_current_recommendations(self) -> list[Recommendation]:
        """Most recently ranked recommendations, without running a cycle."""
        return list(self._recommendations)

    def get_refactor_suggestions(self) -> list[RefactorSuggestion]:
        return list(self._refactor_suggestions)

    def get_specific_packages(self) -> list[str]:
        return list(self._specific_packages)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register an event listener.

        Listeners run on the event loop after the supervisor has moved on;
        coroutine listeners become tasks. Failures are logged and dropped.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_ignored_tool(self, tool: str) -> bool:
        """
        Suppress recommendations for a tool from the next cycle on.

        The current snapshot is left untouched.

        Returns:
            True if the tool was not ignored before
        """
        if tool in self._ignored:
            return False
        self._ignored.add(tool)
        logger.info(f"Ignoring {tool} from the next analysis on")
        return True

    async def start(self) -> SupervisorStatus:
        """
        Hydrate state, start watching and run the first analysis cycle.

        A failing first cycle is logged, not raised; the next trigger
        retries it.

        Raises:
            AlreadyRunningError: If this handle or another process already
                supervises the project
            WatchError: If the file watcher cannot start
        """
        if self.lifecycle.state is not SupervisorState.STOPPED:
            raise AlreadyRunningError(
                f"Supervisor for {self.project_path} is already {self.lifecycle.state.name.lower()}"
            )

        self._claim_pid_marker()
        self._stop_requested = False
        self._rerun_requested = False
        self._stopped = asyncio.Event()
        self._transition(SupervisorState.STARTING)
        self._log_event("start")

        try:
            self._hydrate()
            self.watcher = self._watcher_factory(
                self.project_path,
                on_trigger=self.trigger_analysis,
                watch_patterns=self.config.watch_patterns,
                ignore_patterns=self.config.ignore_patterns,
                debounce_seconds=self.config.debounce_seconds,
            )
            self.watcher.start()
        except Exception as e:
            # Back to STOPPED without a marker so the handle can start again
            self.watcher = None
            self._release_pid_marker()
            self._transition(SupervisorState.STOPPED)
            self._log_event("error", error=str(e), error_type=type(e).__name__)
            raise

        if self.executor.on_write is None:
            self.executor.on_write = self.watcher.ignore_own_writes

        self._cycle_task = asyncio.get_running_loop().create_task(self._cycle_loop())
        await asyncio.shield(self._cycle_task)

        if self.lifecycle.state is SupervisorState.STARTING:
            self._transition(SupervisorState.IDLE)
        return self.get_status()

    def trigger_analysis(self) -> bool:
        """
        Request an analysis cycle (watcher callback or explicit command).

        A request during a running cycle is folded into one rerun.

        Returns:
            False if the supervisor is not accepting work
        """
        if self._stop_requested or self.lifecycle.state in (
            SupervisorState.STOPPED,
            SupervisorState.STOPPING,
        ):
            return False

        if self._cycle_task is not None and not self._cycle_task.done():
            self._rerun_requested = True
            return True

        self._cycle_task = asyncio.get_running_loop().create_task(self._cycle_loop())
        return True

    async def analyze_now(self) -> ProjectState:
        """Run (or join) an analysis cycle and return the resulting snapshot."""
        if not self.trigger_analysis():
            raise AlreadyStoppedError(f"Supervisor for {self.project_path} is not running")
        if self._cycle_task is not None:
            await asyncio.shield(self._cycle_task)
        return self._snapshot

    async def stop(self) -> bool:
        """
        Stop supervising.

        Cancels any pending debounce trigger at once, lets an in-flight
        cycle reach its next safe boundary, persists the final state and
        emits a stopped event.

        Returns:
            True if this call stopped the supervisor, False if a stop was
            already in progress (the call waits for it to finish)

        Raises:
            AlreadyStoppedError: If the supervisor is already stopped
        """
        state = self.lifecycle.state
        if state is SupervisorState.STOPPED:
            raise AlreadyStoppedError(f"Supervisor for {self.project_path} is not running")
        if state is SupervisorState.STOPPING:
            if self._stop_task is not None:
                await asyncio.shield(self._stop_task)
            return False

        self._stop_requested = True
        self._transition(SupervisorState.STOPPING)
        self._stop_task = asyncio.get_running_loop().create_task(self._shutdown())
        await asyncio.shield(self._stop_task)
        return True

    async def wait_until_stopped(self, poll_seconds: float = WATCHER_POLL_SECONDS) -> None:
        """
        Block until the supervisor stops.

        Raises:
            WatchError: If the file watcher dies while running (the
                supervisor is stopped first)
        """
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=poll_seconds)
                return
            except TimeoutError:
                pass

            if (
                self.lifecycle.state not in (SupervisorState.STOPPING, SupervisorState.STOPPED)
                and self.watcher is not None
                and not self.watcher.is_alive
            ):
                logger.error(f"File watcher for {self.project_path} died, stopping supervisor")
                await self.stop()
                raise WatchError("File watcher stopped unexpectedly", {"root": self.project_path})

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _cycle_loop(self) -> None:
        allow_actions = True
        while True:
            self._rerun_requested = False
            try:
                applied = await self._run_cycle(allow_actions)
            except Exception:
                logger.exception("Unexpected error in analysis cycle")
                applied = False

            if self._stop_requested:
                return
            if self._rerun_requested:
                allow_actions = True
                continue
            if applied:
                # Refresh the snapshot after our own changes, without acting again
                allow_actions = False
                continue
            return

    async def _run_cycle(self, allow_actions: bool = True) -> bool:
        """
        One analyze -> rank -> commit -> (act) pass.

        Returns:
            True if the executor applied any change
        """
        async with self._cycle_lock:
            self._advance(SupervisorState.ANALYZING)
            ignored = self._ignored_for_cycle()
            self._emit(EventType.ANALYSIS_STARTED)
            started = time.monotonic()

            try:
                result = await asyncio.to_thread(self._analyze, ignored)
            except Exception as e:
                # Keep the previous snapshot; the next trigger retries
                self.last_error = str(e)
                logger.error(f"Analysis of {self.project_path} failed: {e}")
                self._log_event(
                    "analysis_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
                self._emit(EventType.ANALYSIS_FAILED, {"error": str(e), "errorType": type(e).__name__})
                self._advance(SupervisorState.IDLE)
                return False

            self._commit(result)
            duration_ms = int((time.monotonic() - started) * 1000)
            self._log_event(
                "analysis_completed",
                language=result.snapshot.language,
                health_score=result.snapshot.health_score,
                detected_tools=sorted(result.snapshot.detected_tools),
                missing_tools=sorted(result.snapshot.missing_tools),
                recommendation_count=len(result.recommendations),
                duration_ms=duration_ms,
            )
            self._emit(
                EventType.ANALYSIS_COMPLETED,
                {
                    **result.snapshot.to_dict(),
                    "recommendations": [r.to_dict() for r in result.recommendations],
                    "refactorSuggestions": len(result.refactor_suggestions),
                    "durationMs": duration_ms,
                },
            )

            if self.watcher is not None:
                await asyncio.to_thread(self.watcher.refresh_watched_files)

            applied = False
            if (
                allow_actions
                and self.config.acts_automatically
                and result.recommendations
                and not self._stop_requested
            ):
                applied = await self._act(result.recommendations)

            self._advance(SupervisorState.IDLE)
            return applied

    def _analyze(self, ignored: frozenset[str]) -> _CycleResult:
        """Run the collaborators and build the next snapshot. Worker thread."""
        analysis = self.analyzer.analyze_project(self.project_path)
        raw = self.plugin_manager.get_all_recommendations(analysis)
        refactors = self.plugin_manager.get_all_refactor_suggestions(analysis)
        packages = self.plugin_manager.get_all_specific_packages(analysis)

        detected = frozenset(detect_installed_tools(analysis))
        ranked = rank_recommendations(raw, ignored_tools=ignored, detected_tools=detected)

        snapshot = ProjectState(
            project_path=self.project_path,
            language=analysis.language,
            frameworks=tuple(analysis.frameworks),
            health_score=compute_health_score(detected, ranked, len(refactors)),
            detected_tools=detected,
            missing_tools=missing_tool_names(ranked),
            ignored_tools=ignored,
            last_analysis=datetime.now(),
        )
        return _CycleResult(snapshot, ranked, list(refactors), list(packages))

    def _commit(self, result: _CycleResult) -> None:
        """Replace the snapshot in one step and persist it."""
        self._snapshot = result.snapshot
        self._recommendations = tuple(result.recommendations)
        self._refactor_suggestions = tuple(result.refactor_suggestions)
        self._specific_packages = tuple(result.specific_packages)
        self.cycle_count += 1
        self.last_error = None
        self._persist()

    async def _act(self, recommendations: list[Recommendation]) -> bool:
        self._advance(SupervisorState.ACTING)
        tools = [r.tool for r in recommendations]
        self._emit(EventType.ACTION_STARTED, {"tools": tools})

        options = ExecutionOptions(run_setup_commands=self.config.run_setup_commands)
        try:
            result = await self.executor.execute_recommendations(
                self.project_path, recommendations, options
            )
        except Exception as e:
            logger.exception(f"Action execution for {self.project_path} failed")
            self._emit(
                EventType.ACTION_COMPLETED,
                {"success": False, "applied": [], "failed": tools, "error": str(e)},
            )
            return False

        self.last_action_result = result
        self._emit(
            EventType.ACTION_COMPLETED,
            {
                "success": result.success,
                "applied": [o.tool for o in result.applied],
                "skipped": [o.tool for o in result.skipped],
                "failed": [o.tool for o in result.failed],
                "backups": result.backup_paths,
            },
        )
        return bool(result.applied)

    def _ignored_for_cycle(self) -> frozenset[str]:
        """Ignore set for this cycle, including the settings file's list."""
        try:
            from_file = load_settings(self.project_path).get("ignoreTools", [])
        except ConfigError as e:
            logger.warning(f"Could not read ignore list: {e}")
            from_file = []
        self._ignored.update(str(tool) for tool in from_file)
        return frozenset(self._ignored)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    async def _shutdown(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
            if self.executor.on_write == self.watcher.ignore_own_writes:
                self.executor.on_write = None

        if self._cycle_task is not None and not self._cycle_task.done():
            await self._cycle_task
        # A cycle started outside _cycle_loop still holds the lock
        async with self._cycle_lock:
            pass

        self._persist()
        self._release_pid_marker()
        self._transition(SupervisorState.STOPPED)
        self._log_event("stopped")
        self._emit(EventType.STOPPED, {"healthScore": self._snapshot.health_score})
        self.watcher = None
        self._stopped.set()
        logger.info(f"Supervisor for {self.project_path} stopped")

    def _hydrate(self) -> None:
        loaded = load_project_state(self.project_path)
        if loaded is None:
            return
        if Path(loaded.project_path).resolve() != Path(self.project_path):
            logger.warning(f"State file belongs to {loaded.project_path}, starting fresh")
            return
        self._snapshot = loaded
        self._ignored.update(loaded.ignored_tools)
        logger.info(f"Hydrated state for {self.project_path} (health {loaded.health_score})")

    def _persist(self) -> None:
        if self._snapshot.last_analysis is None:
            return
        try:
            save_project_state(self._snapshot)
        except OSError as e:
            logger.error(f"Could not persist state for {self.project_path}: {e}")

    def _transition(self, new_state: SupervisorState) -> None:
        old_state = self.lifecycle.state
        self.lifecycle.require_transition(new_state)
        self._log_event("state_change", from_state=old_state.name, to_state=new_state.name)

    def _advance(self, new_state: SupervisorState) -> None:
        """Cycle-internal transition; a pending stop owns the state instead."""
        if self.lifecycle.state is SupervisorState.STOPPING:
            return
        if self.lifecycle.state is not new_state:
            self._transition(new_state)

    def _claim_pid_marker(self) -> None:
        existing = read_pid_marker(self.project_path)
        own_pid = os.getpid()
        if existing is not None and pid_is_alive(existing):
            if existing != own_pid or self.project_path in _claimed_roots:
                raise AlreadyRunningError(
                    f"A supervisor is already running for {self.project_path}", pid=existing
                )

        path = pid_file_path(self.project_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(own_pid), encoding="utf-8")
        _claimed_roots.add(self.project_path)

    def _release_pid_marker(self) -> None:
        _claimed_roots.discard(self.project_path)
        path = pid_file_path(self.project_path)
        try:
            if read_pid_marker(self.project_path) == os.getpid():
                path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove pid marker {path}: {e}")

    # ------------------------------------------------------------------
    # Events and logging
    # ------------------------------------------------------------------

    def _emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        """Fire-and-forget delivery to every listener."""
        event = SupervisorEvent(type=event_type, project_path=self.project_path, data=data or {})
        loop = asyncio.get_running_loop()
        for listener in list(self._listeners):
            loop.call_soon(self._deliver, listener, event)

    def _deliver(self, listener: Listener, event: SupervisorEvent) -> None:
        try:
            result = listener(event)
        except Exception:
            logger.exception(f"Listener failed on {event.type.value}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._listener_tasks.add(task)
            task.add_done_callback(self._listener_tasks.discard)
            task.add_done_callback(self._report_listener_failure)

    @staticmethod
    def _report_listener_failure(task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async listener failed: {task.exception()}")

    def _log_event(self, event_type: str, **fields: Any) -> None:
        try:
            entry = SupervisorLogEntry(
                timestamp=now_iso(),
                project_path=self.project_path,
                event_type=event_type,
                **fields,
            )
            supervisor_logger.info(entry.to_json())
        except Exception as e:
            logger.debug(f"Could not write supervisor log: {e}")


async def start_supervisor(
    project_path: str | Path,
    config: SupervisorConfig | None = None,
    **collaborators: Any,
) -> Supervisor:
    """
    Start supervising a project and return the running handle.

    Stopping, status queries and restarts all go through the handle.
    """
    supervisor = Supervisor(project_path, config=config, **collaborators)
    await supervisor.start()
    return supervisor
