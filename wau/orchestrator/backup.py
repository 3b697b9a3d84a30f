"""
Backups and rollback-by-restore.

Every file the executor overwrites is first copied alongside the original
as <name>.wau-backup-<timestamp>. Backups are never deleted here; they are
the only way back. The manifest in .wau/backups.json records, per tool,
which backups were written and which files were newly created, so a
tool's changes can be restored later.
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from wau.config import BACKUP_MARKER, DEFAULT_IGNORE_DIRS, backup_manifest_path
from wau.exceptions import BackupError, RollbackError

logger = logging.getLogger(__name__)


def backup_timestamp() -> str:
    """Timestamp embedded in backup names (microsecond resolution)."""
    return datetime.now().strftime("%Y%m%dT%H%M%S%f")


def backup_path_for(path: Path, timestamp: str | None = None) -> Path:
    """
    Pick an unused backup path for a file.

    Appends a counter if a backup with the same timestamp already exists.
    """
    stamp = timestamp or backup_timestamp()
    candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}{BACKUP_MARKER}{stamp}-{counter}")
        counter += 1
    return candidate


def create_backup(path: Path) -> Path:
    """
    Copy a file to a fresh backup path next to it.

    Returns:
        Path of the backup file

    Raises:
        BackupError: If the copy could not be written
    """
    backup = backup_path_for(path)
    try:
        shutil.copy2(path, backup)
    except OSError as e:
        raise BackupError(f"Could not back up {path.name}: {e}", str(path)) from e
    return backup


def is_backup_file(path: str | Path) -> bool:
    """Whether a path is a backup written by the executor."""
    return BACKUP_MARKER in Path(path).name


@dataclass
class BackupRecord:
    """What one tool application changed."""

    tool: str
    timestamp: str
    created: list[str] = field(default_factory=list)
    backups: dict[str, str] = field(default_factory=dict)  # original -> backup

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "timestamp": self.timestamp,
            "created": self.created,
            "backups": self.backups,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupRecord":
        return cls(
            tool=data["tool"],
            timestamp=data.get("timestamp", ""),
            created=list(data.get("created", [])),
            backups=dict(data.get("backups", {})),
        )


@dataclass
class RestoreResult:
    """Outcome of restoring a tool's changes."""

    tool: str
    restored: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class BackupManifest:
    """Per-project record of executor changes, stored in .wau/backups.json."""

    def __init__(self, project_path: str | Path):
        self.project_root = Path(project_path)
        self.path = backup_manifest_path(project_path)

    def load(self) -> list[BackupRecord]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return [BackupRecord.from_dict(r) for r in data.get("records", [])]
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Unreadable backup manifest {self.path}: {e}")
            return []

    def save(self, records: list[BackupRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"records": [r.to_dict() for r in records]}, f, indent=2)
        os.replace(tmp_path, self.path)

    def record(self, record: BackupRecord) -> None:
        """Append one tool application to the manifest."""
        records = self.load()
        records.append(record)
        self.save(records)

    def records_for(self, tool: str) -> list[BackupRecord]:
        return [r for r in self.load() if r.tool == tool]

    def tools(self) -> list[str]:
        return sorted({r.tool for r in self.load()})


def restore_tool(project_path: str | Path, tool: str) -> RestoreResult:
    """
    Undo a tool's recorded changes by restoring its backups.

    Records are replayed newest first, so after restoring, every file holds
    its content from before the tool was first applied. Files the tool
    created are deleted. Backup files themselves are left in place.

    Raises:
        RollbackError: If no changes are recorded for the tool
    """
    root = Path(project_path)
    manifest = BackupManifest(root)
    records = manifest.load()
    tool_records = [r for r in records if r.tool == tool]
    if not tool_records:
        raise RollbackError(f"No recorded changes for '{tool}'", tool)

    result = RestoreResult(tool=tool)
    for record in reversed(tool_records):
        for original, backup in record.backups.items():
            try:
                shutil.copy2(root / backup, root / original)
                if original not in result.restored:
                    result.restored.append(original)
            except OSError as e:
                result.errors.append(f"{original}: {e}")

        for created in record.created:
            target = root / created
            try:
                if target.exists():
                    target.unlink()
                    result.removed.append(created)
            except OSError as e:
                result.errors.append(f"{created}: {e}")

    if result.success:
        manifest.save([r for r in records if r.tool != tool])
        logger.info(f"Restored {tool}: {len(result.restored)} restored, {len(result.removed)} removed")
    else:
        logger.error(f"Restore of {tool} incomplete: {result.errors}")
    return result


def find_backup_files(project_path: str | Path) -> list[Path]:
    """All backup files under a project, oldest name first."""
    root = Path(project_path)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in DEFAULT_IGNORE_DIRS]
        for filename in filenames:
            if BACKUP_MARKER in filename:
                found.append(Path(dirpath) / filename)
    return sorted(found)
