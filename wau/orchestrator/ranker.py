"""
Recommendation Ranker - turns raw plugin output into an ordered action list.

Steps:
1. Drop recommendations for ignored or already-detected tools
2. Deduplicate by tool name, keeping the highest priority seen
   (equal priority keeps the first one seen)
3. Sort by priority (critical first), then tool name

Pure and deterministic: identical inputs always give identical output.
"""

from collections.abc import Iterable

from wau.state import Recommendation


def rank_recommendations(
    recommendations: Iterable[Recommendation],
    ignored_tools: Iterable[str] = (),
    detected_tools: Iterable[str] = (),
) -> list[Recommendation]:
    """
    Filter, deduplicate and order recommendations.

    Args:
        recommendations: Raw plugin recommendations, in plugin order
        ignored_tools: Tools the operator has suppressed
        detected_tools: Tools already present in the project

    Returns:
        One recommendation per tool, sorted priority-desc then name-asc
    """
    excluded = set(ignored_tools) | set(detected_tools)

    best: dict[str, Recommendation] = {}
    for rec in recommendations:
        if rec.tool in excluded:
            continue
        current = best.get(rec.tool)
        if current is None or rec.priority.rank > current.priority.rank:
            best[rec.tool] = rec

    return sorted(best.values(), key=lambda r: (-r.priority.rank, r.tool))


def missing_tool_names(ranked: Iterable[Recommendation]) -> frozenset[str]:
    """Tool names still recommended after ranking."""
    return frozenset(r.tool for r in ranked)
