"""
Plugin Manager - maps a project analysis to tool recommendations.

Each plugin covers one language or framework and proposes tools,
framework-specific packages and refactor suggestions. Plugins propose
everything they know about; filtering against what is already installed
or ignored happens in the ranker.
"""

import logging

from wau.analysis.analyzer import ProjectAnalysis
from wau.state import Priority, Recommendation, RefactorSuggestion

logger = logging.getLogger(__name__)

# Source files longer than this get a split suggestion
LARGE_FILE_LINES = 400


class Plugin:
    """Base plugin. Subclasses override the hooks they care about."""

    name = "base"

    def applies_to(self, analysis: ProjectAnalysis) -> bool:
        return False

    def get_recommendations(self, analysis: ProjectAnalysis) -> list[Recommendation]:
        return []

    def get_refactor_suggestions(self, analysis: ProjectAnalysis) -> list[RefactorSuggestion]:
        return []

    def get_specific_packages(self, analysis: ProjectAnalysis) -> list[str]:
        return []


class JavaScriptPlugin(Plugin):
    """Linting, formatting, git hooks and tests for JavaScript/TypeScript."""

    name = "javascript"

    def applies_to(self, analysis: ProjectAnalysis) -> bool:
        return analysis.language in ("JavaScript", "TypeScript")

    def get_recommendations(self, analysis: ProjectAnalysis) -> list[Recommendation]:
        recommendations = [
            Recommendation(
                tool="eslint",
                category="linting",
                reason="Catch bugs and enforce consistent code style",
                priority=Priority.HIGH,
                setup_command="npm install --save-dev eslint",
            ),
            Recommendation(
                tool="prettier",
                category="formatting",
                reason="Format code automatically and end style debates",
                priority=Priority.HIGH,
                setup_command="npm install --save-dev prettier",
            ),
            Recommendation(
                tool="husky",
                category="git-hooks",
                reason="Run linters and tests before every commit",
                priority=Priority.MEDIUM,
                setup_command="npm install --save-dev husky",
            ),
        ]

        deps = set(analysis.all_dependencies)
        if not deps & {"jest", "vitest", "mocha", "ava"}:
            recommendations.append(
                Recommendation(
                    tool="jest",
                    category="testing",
                    reason="No test framework detected",
                    priority=Priority.MEDIUM,
                    setup_command="npm install --save-dev jest",
                )
            )
        return recommendations

    def get_refactor_suggestions(self, analysis: ProjectAnalysis) -> list[RefactorSuggestion]:
        return _large_file_suggestions(analysis, (".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx"))


class TypeScriptPlugin(Plugin):
    """Type-aware tooling for TypeScript projects."""

    name = "typescript"

    def applies_to(self, analysis: ProjectAnalysis) -> bool:
        return analysis.language == "TypeScript"

    def get_recommendations(self, analysis: ProjectAnalysis) -> list[Recommendation]:
        return [
            Recommendation(
                tool="typescript",
                category="type-checking",
                reason="Pin the compiler as a dev dependency for reproducible builds",
                priority=Priority.LOW,
                setup_command="npm install --save-dev typescript",
            )
        ]

    def get_specific_packages(self, analysis: ProjectAnalysis) -> list[str]:
        return ["typescript-eslint", "@types/node"]


class ReactPlugin(Plugin):
    """Packages for React and Next.js projects."""

    name = "react"

    def applies_to(self, analysis: ProjectAnalysis) -> bool:
        return bool({"react", "nextjs"} & set(analysis.frameworks))

    def get_specific_packages(self, analysis: ProjectAnalysis) -> list[str]:
        packages = ["eslint-plugin-react", "eslint-plugin-react-hooks", "@testing-library/react"]
        if "nextjs" in analysis.frameworks:
            packages.append("@next/eslint-plugin-next")
        return packages


class PythonPlugin(Plugin):
    """Linting, hooks, tests and type checking for Python."""

    name = "python"

    def applies_to(self, analysis: ProjectAnalysis) -> bool:
        return analysis.language == "Python"

    def get_recommendations(self, analysis: ProjectAnalysis) -> list[Recommendation]:
        return [
            Recommendation(
                tool="ruff",
                category="linting",
                reason="Fast linter and formatter in one tool",
                priority=Priority.HIGH,
                setup_command="pip install ruff",
            ),
            Recommendation(
                tool="pre-commit",
                category="git-hooks",
                reason="Run checks automatically before every commit",
                priority=Priority.MEDIUM,
                setup_command="pip install pre-commit && pre-commit install",
            ),
            Recommendation(
                tool="pytest",
                category="testing",
                reason="Standard test runner with fixtures and plugins",
                priority=Priority.MEDIUM,
                setup_command="pip install pytest",
            ),
            Recommendation(
                tool="mypy",
                category="type-checking",
                reason="Catch type errors before runtime",
                priority=Priority.LOW,
                setup_command="pip install mypy",
            ),
        ]

    def get_refactor_suggestions(self, analysis: ProjectAnalysis) -> list[RefactorSuggestion]:
        return _large_file_suggestions(analysis, (".py",))

    def get_specific_packages(self, analysis: ProjectAnalysis) -> list[str]:
        packages = []
        if "django" in analysis.frameworks:
            packages.extend(["django-stubs", "pytest-django"])
        if "fastapi" in analysis.frameworks:
            packages.extend(["httpx", "pytest-asyncio"])
        if "flask" in analysis.frameworks:
            packages.append("pytest-flask")
        return packages


DEFAULT_PLUGINS: list[type[Plugin]] = [
    JavaScriptPlugin,
    TypeScriptPlugin,
    ReactPlugin,
    PythonPlugin,
]


class PluginManager:
    """Fans an analysis out to every applicable plugin."""

    def __init__(self, plugins: list[Plugin] | None = None):
        self.plugins = plugins if plugins is not None else [cls() for cls in DEFAULT_PLUGINS]

    def _applicable(self, analysis: ProjectAnalysis) -> list[Plugin]:
        return [p for p in self.plugins if p.applies_to(analysis)]

    def get_all_recommendations(self, analysis: ProjectAnalysis) -> list[Recommendation]:
        recommendations: list[Recommendation] = []
        for plugin in self._applicable(analysis):
            recommendations.extend(plugin.get_recommendations(analysis))
        return recommendations

    def get_all_refactor_suggestions(self, analysis: ProjectAnalysis) -> list[RefactorSuggestion]:
        suggestions: list[RefactorSuggestion] = []
        for plugin in self._applicable(analysis):
            suggestions.extend(plugin.get_refactor_suggestions(analysis))
        return list(dict.fromkeys(suggestions))

    def get_all_specific_packages(self, analysis: ProjectAnalysis) -> list[str]:
        packages: list[str] = []
        for plugin in self._applicable(analysis):
            packages.extend(plugin.get_specific_packages(analysis))
        return list(dict.fromkeys(packages))


def _large_file_suggestions(
    analysis: ProjectAnalysis, extensions: tuple[str, ...]
) -> list[RefactorSuggestion]:
    return [
        RefactorSuggestion(
            filename=rel_path,
            suggestion=f"Consider splitting this file ({lines} lines) into smaller modules",
        )
        for rel_path, lines in sorted(analysis.source_line_counts.items())
        if rel_path.endswith(extensions) and lines > LARGE_FILE_LINES
    ]
