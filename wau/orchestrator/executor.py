"""
Action Executor - applies ranked recommendations to a project.

Transactional discipline per file:
1. Back up every existing file the tool will touch
2. Skip any file whose backup failed (never write without a backup)
3. Write the new content
4. Record created files and backups in the manifest for later restore

Each recommendation is attempted independently; one failure does not
stop the others. Dry runs write nothing at all.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import stat
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from wau.exceptions import ActionError, BackupError
from wau.logging import ActionLogEntry, action_logger, now_iso
from wau.orchestrator.backup import BackupManifest, BackupRecord, backup_timestamp, create_backup
from wau.orchestrator.installers import (
    PACKAGE_MANIFEST,
    ToolSetup,
    get_tool_setup,
    read_manifest,
    render_manifest,
)
from wau.state import Recommendation

logger = logging.getLogger(__name__)

# Setup commands (npm install, pip install) can be slow
SETUP_COMMAND_TIMEOUT = 300.0


class ActionStatus(Enum):
    """Outcome of one recommendation."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ExecutionOptions:
    """How an execution run may touch the project."""

    dry_run: bool = False
    force: bool = False  # Overwrite tools that are already (partially) configured
    skip_backup: bool = False  # Caller guarantees the tree is version controlled
    interactive: bool = False  # Ask the confirm callback before each tool
    run_setup_commands: bool = False


@dataclass
class ActionOutcome:
    """Result of applying a single recommendation."""

    tool: str
    status: ActionStatus
    reason: str = ""
    files_changed: list[str] = field(default_factory=list)
    created_files: list[str] = field(default_factory=list)
    backups: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "tool": self.tool,
            "status": self.status.value,
            "reason": self.reason,
            "filesChanged": self.files_changed,
            "createdFiles": self.created_files,
            "backups": self.backups,
            "error": self.error,
        }


@dataclass
class ActionResult:
    """Aggregate result of one execution run."""

    outcomes: list[ActionOutcome] = field(default_factory=list)
    dry_run: bool = False
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True unless some recommendation failed; intentional skips are fine."""
        return all(o.status is not ActionStatus.FAILED for o in self.outcomes)

    @property
    def backup_paths(self) -> list[str]:
        return [b for o in self.outcomes for b in o.backups]

    @property
    def applied(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status is ActionStatus.APPLIED]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status is ActionStatus.FAILED]

    @property
    def skipped(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status is ActionStatus.SKIPPED]

    def outcome_for(self, tool: str) -> ActionOutcome | None:
        for outcome in self.outcomes:
            if outcome.tool == tool:
                return outcome
        return None

    def summary(self) -> str:
        """Generate a human-readable summary."""
        if self.dry_run:
            return f"Dry run: {len(self.outcomes)} recommendation(s) would be applied."
        status = "completed" if self.success else "completed with failures"
        parts = [
            f"Setup {status}.",
            f"Applied: {len(self.applied)}, skipped: {len(self.skipped)}, failed: {len(self.failed)}.",
        ]
        if self.backup_paths:
            parts.append(f"Backups written: {len(self.backup_paths)}")
        return " ".join(parts)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "dryRun": self.dry_run,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "backups": self.backup_paths,
        }


@dataclass
class _PlannedWrite:
    rel_path: str
    content: str
    executable: bool = False


class ActionExecutor:
    """
    Applies recommendations to the project filesystem.

    At most one execution run is in flight per executor; concurrent
    callers wait their turn.
    """

    def __init__(
        self,
        confirm: Callable[[Recommendation], bool] | None = None,
        on_write: Callable[[list[Path]], None] | None = None,
        command_timeout: float = SETUP_COMMAND_TIMEOUT,
    ):
        """
        Initialize executor.

        Args:
            confirm: Asked per recommendation when options.interactive is set
            on_write: Called with absolute paths just before they are written
                (the supervisor uses it to ignore its own filesystem events)
            command_timeout: Seconds to allow each setup command
        """
        self.confirm = confirm
        self.on_write = on_write
        self.command_timeout = command_timeout
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def execute_recommendations(
        self,
        project_path: str | Path,
        recommendations: list[Recommendation],
        options: ExecutionOptions | None = None,
    ) -> ActionResult:
        """
        Apply recommendations in order.

        Args:
            project_path: Project root
            recommendations: Ranked recommendations to apply
            options: Execution options (defaults: real run, no force, with backups)

        Returns:
            ActionResult with one outcome per recommendation
        """
        options = options or ExecutionOptions()
        root = Path(project_path)

        async with self._lock:
            start = time.monotonic()
            result = ActionResult(dry_run=options.dry_run)

            for rec in recommendations:
                rec_start = time.monotonic()
                if options.dry_run:
                    outcome = self._plan_only(rec)
                else:
                    outcome = await self._apply_one(root, rec, options)
                result.outcomes.append(outcome)
                self._log_outcome(root, outcome, options, rec_start)

            result.duration_seconds = time.monotonic() - start
            logger.info(result.summary())
            return result

    def _plan_only(self, rec: Recommendation) -> ActionOutcome:
        """Describe what would be written without touching the filesystem."""
        setup = get_tool_setup(rec.tool)
        would_touch = setup.touched_paths() if setup else []
        return ActionOutcome(
            tool=rec.tool,
            status=ActionStatus.SKIPPED,
            reason="dry run",
            files_changed=would_touch,
        )

    async def _apply_one(
        self, root: Path, rec: Recommendation, options: ExecutionOptions
    ) -> ActionOutcome:
        setup = get_tool_setup(rec.tool)

        if options.interactive and self.confirm is not None and not self.confirm(rec):
            return ActionOutcome(tool=rec.tool, status=ActionStatus.SKIPPED, reason="declined")

        if setup is None:
            if options.run_setup_commands and rec.setup_command:
                return await self._run_command_only(root, rec)
            return ActionOutcome(
                tool=rec.tool,
                status=ActionStatus.SKIPPED,
                reason="no automated setup available",
            )

        try:
            if not options.force and setup.is_configured(root):
                return ActionOutcome(
                    tool=rec.tool, status=ActionStatus.SKIPPED, reason="already configured"
                )
            planned = self._plan_writes(root, setup, options.force)
        except (OSError, ValueError) as e:
            return ActionOutcome(
                tool=rec.tool,
                status=ActionStatus.FAILED,
                reason="could not read project files",
                error=str(ActionError(str(e), rec.tool)),
            )

        if not planned:
            return ActionOutcome(tool=rec.tool, status=ActionStatus.SKIPPED, reason="nothing to change")

        if self.on_write is not None:
            self.on_write([root / w.rel_path for w in planned])

        outcome = await asyncio.to_thread(self._write_with_backups, root, rec.tool, planned, options)

        if (
            outcome.status is ActionStatus.APPLIED
            and options.run_setup_commands
            and rec.setup_command
        ):
            try:
                await self._run_setup_command(root, rec)
            except ActionError as e:
                outcome.status = ActionStatus.FAILED
                outcome.reason = "setup command failed"
                outcome.error = str(e)

        return outcome

    def _plan_writes(self, root: Path, setup: ToolSetup, force: bool) -> list[_PlannedWrite]:
        planned: list[_PlannedWrite] = []
        for config_file in setup.files:
            target = root / config_file.path
            if target.exists() and not force:
                continue
            if target.exists() and target.read_text(encoding="utf-8") == config_file.content:
                continue
            planned.append(
                _PlannedWrite(config_file.path, config_file.content, config_file.executable)
            )

        if setup.uses_manifest:
            try:
                manifest = read_manifest(root)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid {PACKAGE_MANIFEST}: {e}") from e
            current = manifest if manifest is not None else {"name": root.name, "private": True}
            updated = setup.updated_manifest(current, force=force)
            if manifest is None or updated != manifest:
                planned.append(_PlannedWrite(PACKAGE_MANIFEST, render_manifest(updated)))

        return planned

    def _write_with_backups(
        self,
        root: Path,
        tool: str,
        planned: list[_PlannedWrite],
        options: ExecutionOptions,
    ) -> ActionOutcome:
        """Back up, then write. Runs in a worker thread."""
        outcome = ActionOutcome(tool=tool, status=ActionStatus.APPLIED)
        record = BackupRecord(tool=tool, timestamp=backup_timestamp())
        skipped: list[str] = []

        for write in planned:
            target = root / write.rel_path
            existed = target.exists()

            if existed and not options.skip_backup:
                try:
                    backup = create_backup(target)
                except BackupError as e:
                    logger.warning(f"Skipping {write.rel_path}: {e}")
                    skipped.append(write.rel_path)
                    continue
                backup_rel = backup.relative_to(root).as_posix()
                record.backups[write.rel_path] = backup_rel
                outcome.backups.append(backup_rel)

            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(write.content, encoding="utf-8")
                if write.executable:
                    mode = target.stat().st_mode
                    os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            except OSError as e:
                outcome.status = ActionStatus.FAILED
                outcome.reason = f"could not write {write.rel_path}"
                outcome.error = str(ActionError(str(e), tool, {"path": write.rel_path}))
                break

            outcome.files_changed.append(write.rel_path)
            if not existed:
                record.created.append(write.rel_path)
                outcome.created_files.append(write.rel_path)

        if skipped and outcome.status is ActionStatus.APPLIED:
            outcome.status = ActionStatus.FAILED
            outcome.reason = "backup failed"
            outcome.error = f"Backup failed, not written: {', '.join(skipped)}"

        if outcome.files_changed:
            try:
                BackupManifest(root).record(record)
            except OSError as e:
                logger.error(f"Could not update backup manifest for {tool}: {e}")

        return outcome

    async def _run_command_only(self, root: Path, rec: Recommendation) -> ActionOutcome:
        try:
            await self._run_setup_command(root, rec)
        except ActionError as e:
            return ActionOutcome(
                tool=rec.tool,
                status=ActionStatus.FAILED,
                reason="setup command failed",
                error=str(e),
            )
        return ActionOutcome(tool=rec.tool, status=ActionStatus.APPLIED, reason="setup command ran")

    async def _run_setup_command(self, root: Path, rec: Recommendation) -> None:
        """
        Run a recommendation's setup command in the project root.

        Raises:
            ActionError: If the command fails or times out
        """
        if not rec.setup_command:
            raise ActionError("No setup command to run", rec.tool)
        proc = await asyncio.create_subprocess_shell(
            rec.setup_command,
            cwd=str(root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.command_timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise ActionError(
                f"Setup command timed out after {self.command_timeout}s",
                rec.tool,
                {"command": rec.setup_command},
            )

        if proc.returncode != 0:
            error_output = stderr.decode("utf-8", errors="replace")[:500]
            raise ActionError(
                f"Setup command exited with {proc.returncode}",
                rec.tool,
                {"command": rec.setup_command, "stderr": error_output},
            )

    def _log_outcome(
        self,
        root: Path,
        outcome: ActionOutcome,
        options: ExecutionOptions,
        started: float,
    ) -> None:
        try:
            entry = ActionLogEntry(
                timestamp=now_iso(),
                project_path=str(root),
                tool=outcome.tool,
                status=outcome.status.value,
                reason=outcome.reason,
                dry_run=options.dry_run,
                files_changed=outcome.files_changed,
                backups=outcome.backups,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=outcome.error,
            )
            action_logger.info(entry.to_json())
        except Exception as e:
            logger.debug(f"Could not write action log: {e}")
