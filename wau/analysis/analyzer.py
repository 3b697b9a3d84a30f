"""
Project Analyzer - language, framework and dependency detection.

Scans a project root and classifies it. Pure function of the filesystem
contents at call time; the supervisor re-runs it on every cycle.
"""

import json
import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wau.config import with_default_ignores
from wau.exceptions import AnalysisError

logger = logging.getLogger(__name__)

# Frameworks in detection-priority order: (framework, package that proves it)
JS_FRAMEWORK_PACKAGES: list[tuple[str, str]] = [
    ("nextjs", "next"),
    ("nuxt", "nuxt"),
    ("react", "react"),
    ("vue", "vue"),
    ("svelte", "svelte"),
    ("angular", "@angular/core"),
    ("nestjs", "@nestjs/core"),
    ("express", "express"),
]

PY_FRAMEWORK_PACKAGES: list[tuple[str, str]] = [
    ("django", "django"),
    ("fastapi", "fastapi"),
    ("flask", "flask"),
]

SOURCE_EXTENSIONS = {
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".py": "Python",
}

# Files larger than this are not line-counted
MAX_COUNTED_FILE_BYTES = 1024 * 1024
MAX_COUNTED_FILES = 5000

# Tools confirmed by dependency names
TOOL_PACKAGES: dict[str, list[str]] = {
    "eslint": ["eslint"],
    "prettier": ["prettier"],
    "husky": ["husky"],
    "jest": ["jest"],
    "vitest": ["vitest"],
    "typescript": ["typescript"],
    "tailwindcss": ["tailwindcss"],
    "webpack": ["webpack"],
    "vite": ["vite"],
    "rollup": ["rollup"],
    "babel": ["@babel/core", "babel-core"],
    "ruff": ["ruff"],
    "black": ["black"],
    "mypy": ["mypy"],
    "pytest": ["pytest"],
    "pre-commit": ["pre-commit"],
}

# Tools confirmed by config files in the project root
TOOL_CONFIG_FILES: dict[str, list[str]] = {
    "eslint": [
        ".eslintrc",
        ".eslintrc.js",
        ".eslintrc.cjs",
        ".eslintrc.json",
        ".eslintrc.yml",
        ".eslintrc.yaml",
        "eslint.config.js",
        "eslint.config.mjs",
        "eslint.config.cjs",
    ],
    "prettier": [
        ".prettierrc",
        ".prettierrc.json",
        ".prettierrc.js",
        ".prettierrc.yml",
        ".prettierrc.yaml",
        "prettier.config.js",
    ],
    "husky": [".husky"],
    "jest": ["jest.config.js", "jest.config.ts", "jest.config.cjs", "jest.config.mjs"],
    "vitest": ["vitest.config.ts", "vitest.config.js"],
    "typescript": ["tsconfig.json"],
    "ruff": ["ruff.toml", ".ruff.toml"],
    "mypy": ["mypy.ini", ".mypy.ini"],
    "pytest": ["pytest.ini"],
    "pre-commit": [".pre-commit-config.yaml"],
}

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


@dataclass
class ProjectAnalysis:
    """What the analyzer learned about a project."""

    language: str
    frameworks: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    dev_dependencies: list[str] = field(default_factory=list)
    config_files: list[str] = field(default_factory=list)
    source_line_counts: dict[str, int] = field(default_factory=dict)

    @property
    def all_dependencies(self) -> list[str]:
        """Runtime and development dependencies together."""
        return [*self.dependencies, *self.dev_dependencies]


@dataclass
class ProjectMetadata:
    """Name and version declared by the project manifest."""

    name: str
    version: str = "0.0.0"


class ProjectAnalyzer:
    """
    Classifies a project by inspecting its manifest and source files.

    Supports JavaScript/TypeScript (package.json) and Python (pyproject.toml,
    requirements*.txt, setup.py) projects, with a source-extension fallback.
    """

    def __init__(self, ignore_dirs: list[str] | None = None):
        self.ignore_dirs = set(with_default_ignores(ignore_dirs))

    def analyze_project(self, project_path: str | Path) -> ProjectAnalysis:
        """
        Analyze a project root.

        Raises:
            AnalysisError: If the path is unreadable or not a recognizable project
        """
        root = Path(project_path)
        if not root.is_dir():
            raise AnalysisError(f"Project path is not a directory: {root}", str(root))

        try:
            config_files = sorted(entry.name for entry in root.iterdir())
            line_counts = self._count_source_lines(root)
        except OSError as e:
            raise AnalysisError(f"Cannot read project: {e}", str(root)) from e

        package_json = root / "package.json"
        if package_json.exists():
            analysis = self._analyze_node(root, self._read_json(package_json))
        elif self._is_python_project(root):
            analysis = self._analyze_python(root)
        else:
            language = self._dominant_language(line_counts)
            if language is None:
                raise AnalysisError("No recognizable project found", str(root))
            analysis = ProjectAnalysis(language=language)

        analysis.config_files = config_files
        analysis.source_line_counts = line_counts
        return analysis

    def get_project_metadata(self, project_path: str | Path) -> ProjectMetadata:
        """Read name and version from the project manifest."""
        root = Path(project_path)
        package_json = root / "package.json"
        if package_json.exists():
            data = self._read_json(package_json)
            return ProjectMetadata(
                name=data.get("name") or root.name,
                version=data.get("version") or "0.0.0",
            )

        pyproject = root / "pyproject.toml"
        if pyproject.exists():
            project = self._read_toml(pyproject).get("project", {})
            return ProjectMetadata(
                name=project.get("name") or root.name,
                version=project.get("version") or "0.0.0",
            )

        return ProjectMetadata(name=root.name)

    def _analyze_node(self, root: Path, package: dict[str, Any]) -> ProjectAnalysis:
        dependencies = list(package.get("dependencies", {}) or {})
        dev_dependencies = list(package.get("devDependencies", {}) or {})
        all_deps = set(dependencies) | set(dev_dependencies)

        if "typescript" in all_deps or (root / "tsconfig.json").exists():
            language = "TypeScript"
        else:
            language = "JavaScript"

        frameworks = [name for name, pkg in JS_FRAMEWORK_PACKAGES if pkg in all_deps]
        return ProjectAnalysis(
            language=language,
            frameworks=frameworks,
            dependencies=dependencies,
            dev_dependencies=dev_dependencies,
        )

    def _analyze_python(self, root: Path) -> ProjectAnalysis:
        dependencies: list[str] = []
        dev_dependencies: list[str] = []

        pyproject = root / "pyproject.toml"
        if pyproject.exists():
            data = self._read_toml(pyproject)
            project = data.get("project", {})
            dependencies.extend(_requirement_names(project.get("dependencies", [])))
            for extra in project.get("optional-dependencies", {}).values():
                dev_dependencies.extend(_requirement_names(extra))
            for group in data.get("dependency-groups", {}).values():
                dev_dependencies.extend(_requirement_names(g for g in group if isinstance(g, str)))

        for req_file in sorted(root.glob("requirements*.txt")):
            try:
                lines = req_file.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                logger.warning(f"Could not read {req_file.name}: {e}")
                continue
            names = _requirement_names(
                line for line in lines if line.strip() and not line.lstrip().startswith(("#", "-"))
            )
            if "dev" in req_file.stem or "test" in req_file.stem:
                dev_dependencies.extend(names)
            else:
                dependencies.extend(names)

        all_deps = set(dependencies) | set(dev_dependencies)
        frameworks = [name for name, pkg in PY_FRAMEWORK_PACKAGES if pkg in all_deps]
        return ProjectAnalysis(
            language="Python",
            frameworks=frameworks,
            dependencies=_unique(dependencies),
            dev_dependencies=_unique(dev_dependencies),
        )

    def _is_python_project(self, root: Path) -> bool:
        markers = ["pyproject.toml", "setup.py", "setup.cfg"]
        return any((root / m).exists() for m in markers) or any(root.glob("requirements*.txt"))

    def _count_source_lines(self, root: Path) -> dict[str, int]:
        counts: dict[str, int] = {}
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in self.ignore_dirs]
            for filename in filenames:
                if Path(filename).suffix not in SOURCE_EXTENSIONS:
                    continue
                path = Path(dirpath) / filename
                try:
                    if path.stat().st_size > MAX_COUNTED_FILE_BYTES:
                        continue
                    with open(path, encoding="utf-8", errors="replace") as f:
                        counts[path.relative_to(root).as_posix()] = sum(1 for _ in f)
                except OSError:
                    continue
                if len(counts) >= MAX_COUNTED_FILES:
                    return counts
        return counts

    def _dominant_language(self, line_counts: dict[str, int]) -> str | None:
        totals: dict[str, int] = {}
        for rel_path, lines in line_counts.items():
            language = SOURCE_EXTENSIONS[Path(rel_path).suffix]
            totals[language] = totals.get(language, 0) + max(lines, 1)
        if not totals:
            return None
        return max(totals, key=lambda lang: totals[lang])

    def _read_json(self, path: Path) -> dict[str, Any]:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise AnalysisError(f"Cannot parse {path.name}: {e}", str(path.parent)) from e
        if not isinstance(data, dict):
            raise AnalysisError(f"{path.name} is not a JSON object", str(path.parent))
        return data

    def _read_toml(self, path: Path) -> dict[str, Any]:
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise AnalysisError(f"Cannot parse {path.name}: {e}", str(path.parent)) from e


def detect_installed_tools(analysis: ProjectAnalysis) -> set[str]:
    """
    Tools confirmed present in the project's dependencies or config files.

    Args:
        analysis: Result of ProjectAnalyzer.analyze_project

    Returns:
        Set of tool names
    """
    deps = set(analysis.all_dependencies)
    config_files = set(analysis.config_files)
    installed: set[str] = set()

    for tool, packages in TOOL_PACKAGES.items():
        if any(pkg in deps for pkg in packages):
            installed.add(tool)

    for tool, files in TOOL_CONFIG_FILES.items():
        if any(name in config_files for name in files):
            installed.add(tool)

    return installed


def generate_automation_ideas(analysis: ProjectAnalysis) -> list[str]:
    """Suggest follow-up automations worth handing to a coding assistant."""
    ideas: list[str] = []

    if "nextjs" in analysis.frameworks:
        ideas.append("Generate Next.js API routes with proper TypeScript types")
        ideas.append("Setup Next.js middleware for authentication")

    if "react" in analysis.frameworks:
        ideas.append("Refactor class components to functional components with hooks")
        ideas.append("Generate custom hooks for common functionality")

    if analysis.language == "TypeScript":
        ideas.append("Generate TypeScript interfaces from API responses")
        ideas.append("Add strict typing to existing JavaScript functions")

    if analysis.language == "Python":
        ideas.append("Add type hints to public functions")

    test_tools = {"jest", "vitest", "mocha", "pytest"}
    if not test_tools & set(analysis.all_dependencies):
        ideas.append("Setup testing framework with example tests")

    ideas.append("Generate README.md with project setup instructions")
    ideas.append("Create CONTRIBUTING.md with development guidelines")
    return ideas


def _requirement_names(requirements: Any) -> list[str]:
    names = []
    for requirement in requirements:
        match = _REQUIREMENT_NAME.match(requirement)
        if match:
            names.append(match.group(1).lower())
    return names


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))
