"""
Project analysis collaborators.

- analyzer.py: ProjectAnalyzer classifies a project root
- plugins.py: PluginManager turns an analysis into recommendations
"""

from wau.analysis.analyzer import (
    ProjectAnalysis,
    ProjectAnalyzer,
    ProjectMetadata,
    detect_installed_tools,
    generate_automation_ideas,
)
from wau.analysis.plugins import Plugin, PluginManager

__all__ = [
    "ProjectAnalysis",
    "ProjectAnalyzer",
    "ProjectMetadata",
    "detect_installed_tools",
    "generate_automation_ideas",
    "Plugin",
    "PluginManager",
]
