"""Tests for the JSONL logging channels and the log viewer."""

import json
from datetime import datetime, timedelta

import pytest
from typer.testing import CliRunner

from wau.cli import app
from wau.logging import (
    ActionLogEntry,
    LogConfig,
    SupervisorLogEntry,
    action_logger,
    get_config,
    now_iso,
    supervisor_logger,
)
from wau.logging.viewer import (
    calculate_stats,
    format_entry_line,
    parse_since,
    query_logs,
    read_jsonl,
)


def write_supervisor(event_type, project="/work/webapp", **fields):
    entry = SupervisorLogEntry(timestamp=now_iso(), project_path=project, event_type=event_type, **fields)
    supervisor_logger.info(entry.to_json())


def write_action(tool, status, project="/work/webapp", **fields):
    entry = ActionLogEntry(timestamp=now_iso(), project_path=project, tool=tool, status=status, **fields)
    action_logger.info(entry.to_json())


class TestLogConfig:
    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WAU_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("WAU_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("WAU_LOG_MAX_SIZE_MB", "2")
        config = LogConfig.from_env()
        assert config.supervisor_level == "DEBUG"
        assert config.action_level == "DEBUG"
        assert config.log_dir == tmp_path
        assert config.max_file_size_bytes == 2 * 1024 * 1024

    def test_bad_size_keeps_default(self, monkeypatch):
        monkeypatch.setenv("WAU_LOG_MAX_SIZE_MB", "lots")
        assert LogConfig.from_env().max_file_size_bytes == 10 * 1024 * 1024


class TestChannels:
    """Entries land one JSON object per line in their own file."""

    def test_supervisor_channel(self):
        write_supervisor("start")
        write_supervisor("state_change", from_state="STOPPED", to_state="STARTING")
        lines = get_config().supervisor_log_path.read_text().splitlines()
        assert len(lines) == 2
        second = SupervisorLogEntry.from_dict(json.loads(lines[1]))
        assert second.event_type == "state_change"
        assert second.to_state == "STARTING"

    def test_action_channel(self):
        write_action("eslint", "applied", files_changed=["eslint.config.mjs"])
        data = json.loads(get_config().action_log_path.read_text())
        assert data["tool"] == "eslint"
        assert data["files_changed"] == ["eslint.config.mjs"]

    def test_plain_text_is_wrapped(self):
        supervisor_logger.warning("not json")
        data = json.loads(get_config().supervisor_log_path.read_text())
        assert data["message"] == "not json"
        assert data["level"] == "WARNING"


class TestViewer:
    def test_parse_since_relative(self):
        parsed = parse_since("2h")
        assert abs(datetime.now() - parsed - timedelta(hours=2)) < timedelta(seconds=5)

    def test_parse_since_iso(self):
        assert parse_since("2026-01-11T10:00:00") == datetime(2026, 1, 11, 10, 0)

    def test_parse_since_invalid(self):
        with pytest.raises(ValueError):
            parse_since("yesterday")

    def test_read_jsonl_skips_garbage(self, tmp_path):
        path = tmp_path / "mixed.jsonl"
        path.write_text('{"a": 1}\n\nnot json\n{"a": 2}\n')
        assert [e["a"] for e in read_jsonl(path)] == [1, 2]

    def test_read_jsonl_missing_file(self, tmp_path):
        assert list(read_jsonl(tmp_path / "absent.jsonl")) == []

    def test_query_filters(self):
        write_supervisor("start")
        write_action("eslint", "applied")
        write_action("prettier", "failed", error="disk full")
        write_action("eslint", "applied", project="/work/other")

        assert len(query_logs()) == 4
        assert [e["_source"] for e in query_logs("supervisor")] == ["supervisor"]
        assert len(query_logs("actions", tool="eslint")) == 2
        assert len(query_logs("actions", project="/work/other")) == 1
        assert len(query_logs(limit=2)) == 2

    def test_query_since_future_is_empty(self):
        write_supervisor("start")
        future = (datetime.now() + timedelta(hours=1)).isoformat()
        assert query_logs(since=future) == []

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            query_logs("session")

    def test_stats(self):
        write_supervisor("analysis_completed", health_score=60, duration_ms=100)
        write_supervisor("analysis_completed", health_score=85, duration_ms=300)
        write_supervisor("analysis_failed", error="bad package.json")
        write_action("eslint", "applied")
        write_action("husky", "skipped")

        stats = calculate_stats(query_logs())
        assert stats["analyses"] == 2
        assert stats["analysis_failures"] == 1
        assert stats["avg_analysis_ms"] == 200
        assert stats["max_analysis_ms"] == 300
        assert stats["actions"] == {"applied": 1, "skipped": 1}
        assert stats["errors"] == ["bad package.json"]

    def test_format_lines(self):
        line = format_entry_line(
            {
                "_source": "supervisor",
                "timestamp": "2026-03-01T12:00:00.123",
                "project_path": "/work/webapp",
                "event_type": "analysis_completed",
                "health_score": 70,
                "missing_tools": ["eslint"],
                "duration_ms": 12,
            }
        )
        assert line == "[2026-03-01T12:00:00] analysis_completed webapp: health 70 missing eslint (12ms)"

        line = format_entry_line(
            {"_source": "actions", "timestamp": "2026-03-01T12:00:00", "project_path": "/w/app",
             "tool": "ruff", "status": "applied", "files_changed": ["ruff.toml"]}
        )
        assert "ACTION" in line and "APPLIED" in line and "ruff.toml" in line


class TestLogsCommand:
    def test_lists_entries(self):
        write_supervisor("start")
        write_action("eslint", "applied")
        result = CliRunner().invoke(app, ["logs"])
        assert result.exit_code == 0, result.output
        assert "start" in result.output
        assert "eslint" in result.output

    def test_empty(self):
        result = CliRunner().invoke(app, ["logs"])
        assert "No log entries found" in result.output

    def test_bad_since(self):
        write_supervisor("start")
        result = CliRunner().invoke(app, ["logs", "--since", "soon"])
        assert result.exit_code == 1
