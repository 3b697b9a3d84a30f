"""Tests for the project analyzer and plugins."""

import json

import pytest

from wau.analysis import (
    PluginManager,
    ProjectAnalysis,
    ProjectAnalyzer,
    detect_installed_tools,
    generate_automation_ideas,
)
from wau.analysis.plugins import LARGE_FILE_LINES
from wau.exceptions import AnalysisError
from wau.state import Priority


class TestProjectAnalyzer:
    """Tests for ProjectAnalyzer.analyze_project."""

    def test_javascript_project(self, js_project):
        analysis = ProjectAnalyzer().analyze_project(js_project)
        assert analysis.language == "JavaScript"
        assert analysis.frameworks == ["express"]
        assert analysis.dependencies == ["express"]
        assert "package.json" in analysis.config_files

    def test_typescript_by_tsconfig(self, js_project):
        (js_project / "tsconfig.json").write_text("{}")
        assert ProjectAnalyzer().analyze_project(js_project).language == "TypeScript"

    def test_framework_priority_order(self, tmp_path):
        (tmp_path / "package.json").write_text(
            json.dumps({"dependencies": {"react": "18", "next": "14"}})
        )
        assert ProjectAnalyzer().analyze_project(tmp_path).frameworks == ["nextjs", "react"]

    def test_python_project(self, py_project):
        analysis = ProjectAnalyzer().analyze_project(py_project)
        assert analysis.language == "Python"
        assert analysis.frameworks == ["fastapi"]
        assert analysis.dependencies == ["fastapi"]
        assert analysis.dev_dependencies == ["pytest"]

    def test_requirements_files(self, tmp_path):
        (tmp_path / "requirements.txt").write_text("flask==3.0\n# comment\n-r base.txt\n")
        (tmp_path / "requirements-dev.txt").write_text("ruff\n")
        analysis = ProjectAnalyzer().analyze_project(tmp_path)
        assert analysis.dependencies == ["flask"]
        assert analysis.dev_dependencies == ["ruff"]

    def test_extension_fallback(self, tmp_path):
        (tmp_path / "main.ts").write_text("let a = 1;\nlet b = 2;\n")
        (tmp_path / "tool.py").write_text("x = 1\n")
        assert ProjectAnalyzer().analyze_project(tmp_path).language == "TypeScript"

    def test_ignored_dirs_not_counted(self, js_project):
        vendor = js_project / "node_modules" / "lib"
        vendor.mkdir(parents=True)
        (vendor / "big.js").write_text("x\n" * 10)
        analysis = ProjectAnalyzer().analyze_project(js_project)
        assert all(not path.startswith("node_modules") for path in analysis.source_line_counts)

    def test_extra_ignored_dirs_keep_defaults(self, js_project):
        for name in ("node_modules", "generated"):
            (js_project / name).mkdir()
            (js_project / name / "big.js").write_text("x\n" * 10)
        analysis = ProjectAnalyzer(ignore_dirs=["generated"]).analyze_project(js_project)
        assert list(analysis.source_line_counts) == ["index.js"]

    def test_empty_directory(self, tmp_path):
        with pytest.raises(AnalysisError):
            ProjectAnalyzer().analyze_project(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(AnalysisError):
            ProjectAnalyzer().analyze_project(tmp_path / "nope")

    def test_invalid_package_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{oops")
        with pytest.raises(AnalysisError):
            ProjectAnalyzer().analyze_project(tmp_path)

    def test_metadata(self, js_project, py_project, tmp_path):
        analyzer = ProjectAnalyzer()
        assert analyzer.get_project_metadata(js_project).version == "1.2.0"
        assert analyzer.get_project_metadata(py_project).name == "service"
        assert analyzer.get_project_metadata(tmp_path).name == tmp_path.name


class TestDetectInstalledTools:
    """Tests for installed-tool detection."""

    def test_from_dependencies(self):
        analysis = ProjectAnalysis(
            language="JavaScript",
            dev_dependencies=["eslint", "@babel/core", "vite", "tailwindcss"],
        )
        assert detect_installed_tools(analysis) == {"eslint", "babel", "vite", "tailwindcss"}

    def test_from_config_files(self):
        analysis = ProjectAnalysis(
            language="JavaScript", config_files=[".prettierrc.json", ".husky", "README.md"]
        )
        assert detect_installed_tools(analysis) == {"prettier", "husky"}

    def test_nothing_installed(self):
        assert detect_installed_tools(ProjectAnalysis(language="JavaScript")) == set()


class TestPluginManager:
    """Tests for the default plugins."""

    def test_javascript_recommendations(self):
        recs = PluginManager().get_all_recommendations(ProjectAnalysis(language="JavaScript"))
        by_tool = {r.tool: r for r in recs}
        assert by_tool["eslint"].priority is Priority.HIGH
        assert by_tool["prettier"].priority is Priority.HIGH
        assert "jest" in by_tool
        assert "typescript" not in by_tool

    def test_no_jest_when_tests_exist(self):
        analysis = ProjectAnalysis(language="JavaScript", dev_dependencies=["vitest"])
        tools = {r.tool for r in PluginManager().get_all_recommendations(analysis)}
        assert "jest" not in tools

    def test_typescript_adds_plugin(self):
        analysis = ProjectAnalysis(language="TypeScript")
        manager = PluginManager()
        tools = {r.tool for r in manager.get_all_recommendations(analysis)}
        assert {"eslint", "typescript"} <= tools
        assert "@types/node" in manager.get_all_specific_packages(analysis)

    def test_react_packages(self):
        analysis = ProjectAnalysis(language="JavaScript", frameworks=["nextjs", "react"])
        packages = PluginManager().get_all_specific_packages(analysis)
        assert "eslint-plugin-react" in packages
        assert "@next/eslint-plugin-next" in packages

    def test_python_recommendations(self):
        recs = PluginManager().get_all_recommendations(ProjectAnalysis(language="Python"))
        assert [r.tool for r in recs] == ["ruff", "pre-commit", "pytest", "mypy"]

    def test_large_file_suggestion(self):
        analysis = ProjectAnalysis(
            language="Python",
            source_line_counts={"big.py": LARGE_FILE_LINES + 1, "small.py": 10},
        )
        suggestions = PluginManager().get_all_refactor_suggestions(analysis)
        assert [s.filename for s in suggestions] == ["big.py"]

    def test_unknown_language(self):
        assert PluginManager().get_all_recommendations(ProjectAnalysis(language="Go")) == []


class TestAutomationIdeas:
    def test_typescript_react_ideas(self):
        analysis = ProjectAnalysis(language="TypeScript", frameworks=["react"])
        ideas = generate_automation_ideas(analysis)
        assert any("hooks" in idea for idea in ideas)
        assert any("TypeScript interfaces" in idea for idea in ideas)
        assert any("testing framework" in idea for idea in ideas)
