"""
Log Viewer for WAU.

Queries and formats the JSONL channels for the `wau logs` command.
"""

import json
import re
from collections.abc import Iterator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from .config import get_config

LOG_TYPES = ("supervisor", "actions", "all")

_RELATIVE = re.compile(r"^(\d+)([mhdw])$")


def parse_since(since: str) -> datetime:
    """
    Parse a time filter.

    Accepts ISO timestamps ("2026-01-11T10:00:00") or relative offsets
    ("30m", "1h", "2d", "1w").

    Raises:
        ValueError: If the string matches neither form
    """
    try:
        return datetime.fromisoformat(since)
    except ValueError:
        pass

    match = _RELATIVE.match(since.lower())
    if not match:
        raise ValueError(f"Invalid time format: {since}. Use ISO format or relative (1h, 30m, 2d)")

    value, unit = int(match.group(1)), match.group(2)
    units = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}
    return datetime.now() - timedelta(**{units[unit]: value})


def read_jsonl(filepath: Path, since: datetime | None = None) -> Iterator[dict[str, Any]]:
    """Yield parsed entries from a JSONL file, skipping unreadable lines."""
    if not filepath.exists():
        return

    with open(filepath, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue

            if since is not None:
                try:
                    if datetime.fromisoformat(entry.get("timestamp", "")) < since:
                        continue
                except (ValueError, TypeError):
                    continue

            yield entry


def query_logs(
    log_type: str = "all",
    since: str | None = None,
    project: str | None = None,
    tool: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """
    Collect matching entries, newest first.

    Each entry gets a "_source" key naming its channel.

    Raises:
        ValueError: For an unknown log type or time filter
    """
    if log_type not in LOG_TYPES:
        raise ValueError(f"Unknown log type '{log_type}'. Use one of: {', '.join(LOG_TYPES)}")

    config = get_config()
    since_dt = parse_since(since) if since else None

    files: list[tuple[str, Path]] = []
    if log_type in ("supervisor", "all"):
        files.append(("supervisor", config.supervisor_log_path))
    if log_type in ("actions", "all"):
        files.append(("actions", config.action_log_path))

    results: list[dict[str, Any]] = []
    for source, filepath in files:
        for entry in read_jsonl(filepath, since=since_dt):
            if project and entry.get("project_path") != project:
                continue
            if tool and entry.get("tool") != tool:
                continue
            entry["_source"] = source
            results.append(entry)

    results.sort(key=lambda e: e.get("timestamp", ""), reverse=True)
    return results[:limit]


def calculate_stats(entries: list[dict[str, Any]]) -> dict[str, Any]:
    """Summarize analysis cycles and executed actions."""
    cycles = [e for e in entries if e.get("event_type") == "analysis_completed"]
    failures = [e for e in entries if e.get("event_type") == "analysis_failed"]
    actions = [e for e in entries if e.get("_source") == "actions"]

    durations = sorted(e.get("duration_ms", 0) for e in cycles)
    by_status: dict[str, int] = {}
    for e in actions:
        status = e.get("status", "unknown")
        by_status[status] = by_status.get(status, 0) + 1

    scores = [e["health_score"] for e in cycles if e.get("health_score") is not None]

    return {
        "analyses": len(cycles),
        "analysis_failures": len(failures),
        "avg_analysis_ms": int(sum(durations) / len(durations)) if durations else 0,
        "max_analysis_ms": durations[-1] if durations else 0,
        # Entries are newest first
        "latest_health": scores[0] if scores else None,
        "actions": by_status,
        "errors": [e["error"][:100] for e in entries if e.get("error")][:10],
    }


def format_entry_line(entry: dict[str, Any]) -> str:
    """Render one entry as a single display line."""
    source = entry.get("_source", "?")
    ts = entry.get("timestamp", "")[:19]
    project = Path(entry.get("project_path", "")).name

    if source == "actions":
        tool = entry.get("tool", "?")
        status = entry.get("status", "?").upper()
        files = ", ".join(entry.get("files_changed", [])) or "-"
        prefix = "DRY " if entry.get("dry_run") else ""
        return f"[{ts}] ACTION {prefix}{tool:12s} {status:8s} {project}: {files}"

    event = entry.get("event_type", "?")
    if event == "state_change":
        return f"[{ts}] {event:18s} {project}: {entry.get('from_state')} -> {entry.get('to_state')}"
    if event == "analysis_completed":
        missing = ", ".join(entry.get("missing_tools", [])) or "none"
        return (
            f"[{ts}] {event:18s} {project}: health {entry.get('health_score')} "
            f"missing {missing} ({entry.get('duration_ms', 0)}ms)"
        )
    if entry.get("error"):
        return f"[{ts}] {event:18s} {project}: {entry['error'][:80]}"
    return f"[{ts}] {event:18s} {project}"


def format_stats(stats: dict[str, Any]) -> str:
    lines = [
        "[bold]Analyses[/bold]",
        f"  Completed: {stats['analyses']}  Failed: {stats['analysis_failures']}",
        f"  Duration: avg {stats['avg_analysis_ms']}ms, max {stats['max_analysis_ms']}ms",
    ]
    if stats["latest_health"] is not None:
        lines.append(f"  Latest health: {stats['latest_health']}/100")

    lines.append("[bold]Actions[/bold]")
    if stats["actions"]:
        for status, count in sorted(stats["actions"].items()):
            lines.append(f"  {status}: {count}")
    else:
        lines.append("  none")

    if stats["errors"]:
        lines.append("[bold]Recent errors[/bold]")
        lines.extend(f"  [red]{error}[/red]" for error in stats["errors"])
    return "\n".join(lines)
