"""
WAU CLI - One-shot analysis

Runs the analyzer, plugins and ranker once, without a supervisor.
Used by analyze, setup and recommendations.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wau.analysis import (
    PluginManager,
    ProjectAnalysis,
    ProjectAnalyzer,
    ProjectMetadata,
    detect_installed_tools,
    generate_automation_ideas,
)
from wau.config import load_settings
from wau.orchestrator.ranker import rank_recommendations
from wau.state import Recommendation, RefactorSuggestion, compute_health_score


@dataclass
class AnalysisReport:
    """Everything a one-shot analysis found."""

    project_path: str
    metadata: ProjectMetadata
    analysis: ProjectAnalysis
    recommendations: list[Recommendation] = field(default_factory=list)
    refactor_suggestions: list[RefactorSuggestion] = field(default_factory=list)
    specific_packages: list[str] = field(default_factory=list)
    installed_tools: list[str] = field(default_factory=list)
    ignored_tools: list[str] = field(default_factory=list)
    automation_ideas: list[str] = field(default_factory=list)
    health_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectPath": self.project_path,
            "name": self.metadata.name,
            "version": self.metadata.version,
            "language": self.analysis.language,
            "frameworks": self.analysis.frameworks,
            "healthScore": self.health_score,
            "installedTools": self.installed_tools,
            "ignoredTools": self.ignored_tools,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "specificPackages": self.specific_packages,
            "refactorSuggestions": [
                {"filename": s.filename, "suggestion": s.suggestion}
                for s in self.refactor_suggestions
            ],
            "automationIdeas": self.automation_ideas,
        }


def build_report(
    project_path: str | Path,
    analyzer: ProjectAnalyzer | None = None,
    plugin_manager: PluginManager | None = None,
) -> AnalysisReport:
    """
    Analyze a project once.

    Ignored tools come from the project's settings file.

    Raises:
        AnalysisError: If the project cannot be analyzed
        ConfigError: If the settings file is invalid
    """
    root = Path(project_path).resolve()
    analyzer = analyzer or ProjectAnalyzer()
    plugin_manager = plugin_manager or PluginManager()

    analysis = analyzer.analyze_project(root)
    metadata = analyzer.get_project_metadata(root)
    installed = detect_installed_tools(analysis)
    ignored = list(load_settings(root).get("ignoreTools", []))

    ranked = rank_recommendations(
        plugin_manager.get_all_recommendations(analysis),
        ignored_tools=ignored,
        detected_tools=installed,
    )
    refactors = plugin_manager.get_all_refactor_suggestions(analysis)

    return AnalysisReport(
        project_path=str(root),
        metadata=metadata,
        analysis=analysis,
        recommendations=ranked,
        refactor_suggestions=refactors,
        specific_packages=plugin_manager.get_all_specific_packages(analysis),
        installed_tools=sorted(installed),
        ignored_tools=ignored,
        automation_ideas=generate_automation_ideas(analysis),
        health_score=compute_health_score(installed, ranked, len(refactors)),
    )
