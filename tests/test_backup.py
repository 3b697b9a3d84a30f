"""Tests for backups and rollback-by-restore."""

import json

import pytest

from wau.config import BACKUP_MARKER, backup_manifest_path
from wau.exceptions import BackupError, RollbackError
from wau.orchestrator.backup import (
    BackupManifest,
    BackupRecord,
    backup_path_for,
    create_backup,
    find_backup_files,
    is_backup_file,
    restore_tool,
)
from wau.orchestrator.executor import ActionExecutor
from wau.state import Priority, Recommendation


def rec(tool):
    return Recommendation(tool=tool, category="test", reason="because", priority=Priority.HIGH)


class TestBackupFiles:
    """Tests for backup naming and copying."""

    def test_backup_name_has_marker_and_timestamp(self, tmp_path):
        path = backup_path_for(tmp_path / "package.json", "20260101T000000000000")
        assert path.name == f"package.json{BACKUP_MARKER}20260101T000000000000"

    def test_collision_adds_counter(self, tmp_path):
        stamp = "20260101T000000000000"
        first = backup_path_for(tmp_path / "a.txt", stamp)
        first.write_text("x")
        second = backup_path_for(tmp_path / "a.txt", stamp)
        assert second != first
        assert second.name.endswith("-1")

    def test_create_backup_copies_content(self, tmp_path):
        original = tmp_path / "config.json"
        original.write_text('{"a": 1}')
        backup = create_backup(original)
        assert backup.read_text() == '{"a": 1}'
        assert original.exists()

    def test_create_backup_missing_file(self, tmp_path):
        with pytest.raises(BackupError) as exc_info:
            create_backup(tmp_path / "missing.json")
        assert exc_info.value.path.endswith("missing.json")

    def test_is_backup_file(self):
        assert is_backup_file(f"src/app.js{BACKUP_MARKER}20260101T000000000000")
        assert not is_backup_file("src/app.js")

    def test_find_backup_files(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / f"a.json{BACKUP_MARKER}1").write_text("")
        (tmp_path / "sub" / f"b.json{BACKUP_MARKER}2").write_text("")
        (tmp_path / "c.json").write_text("")
        names = [p.name for p in find_backup_files(tmp_path)]
        assert names == [f"a.json{BACKUP_MARKER}1", f"b.json{BACKUP_MARKER}2"]


class TestBackupManifest:
    """Tests for the per-project manifest."""

    def test_record_and_load(self, tmp_path):
        manifest = BackupManifest(tmp_path)
        manifest.record(BackupRecord("eslint", "t1", created=["eslint.config.mjs"]))
        manifest.record(BackupRecord("prettier", "t2", backups={"package.json": "package.json.bak"}))
        assert manifest.tools() == ["eslint", "prettier"]
        assert manifest.records_for("prettier")[0].backups == {"package.json": "package.json.bak"}

    def test_unreadable_manifest(self, tmp_path):
        path = backup_manifest_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("nope")
        assert BackupManifest(tmp_path).load() == []


class TestRestoreTool:
    """Rollback restores backups and removes created files."""

    @pytest.mark.asyncio
    async def test_restore_after_setup(self, js_project):
        original = (js_project / "package.json").read_text()
        await ActionExecutor().execute_recommendations(js_project, [rec("eslint")])
        assert (js_project / "eslint.config.mjs").exists()

        result = restore_tool(js_project, "eslint")

        assert result.success
        assert result.restored == ["package.json"]
        assert result.removed == ["eslint.config.mjs"]
        assert (js_project / "package.json").read_text() == original
        assert not (js_project / "eslint.config.mjs").exists()
        assert BackupManifest(js_project).records_for("eslint") == []

    @pytest.mark.asyncio
    async def test_backups_survive_restore(self, js_project):
        await ActionExecutor().execute_recommendations(js_project, [rec("eslint")])
        restore_tool(js_project, "eslint")
        assert len(find_backup_files(js_project)) == 1

    @pytest.mark.asyncio
    async def test_restore_one_tool_keeps_others(self, js_project):
        await ActionExecutor().execute_recommendations(js_project, [rec("eslint"), rec("prettier")])
        restore_tool(js_project, "prettier")

        assert (js_project / "eslint.config.mjs").exists()
        assert not (js_project / ".prettierrc.json").exists()
        manifest = json.loads((js_project / "package.json").read_text())
        assert "eslint" in manifest["devDependencies"]
        assert "prettier" not in manifest["devDependencies"]
        assert BackupManifest(js_project).tools() == ["eslint"]

    def test_nothing_recorded(self, tmp_path):
        with pytest.raises(RollbackError):
            restore_tool(tmp_path, "eslint")

    def test_missing_backup_reports_error(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        BackupManifest(tmp_path).record(
            BackupRecord("eslint", "t1", backups={"package.json": "package.json.gone"})
        )
        result = restore_tool(tmp_path, "eslint")
        assert not result.success
        assert BackupManifest(tmp_path).tools() == ["eslint"]
