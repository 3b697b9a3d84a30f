"""
Tool setup plans consumed by the ActionExecutor.

A plan lists the config files a tool needs and, for Node tools, the
devDependencies and npm scripts it adds to package.json. Plans only say
what to write; the executor owns backups and the actual writes.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

PACKAGE_MANIFEST = "package.json"


@dataclass(frozen=True)
class ConfigFile:
    """A config file a tool setup writes, relative to the project root."""

    path: str
    content: str
    executable: bool = False


@dataclass(frozen=True)
class ToolSetup:
    """Everything the executor writes to configure one tool."""

    tool: str
    files: tuple[ConfigFile, ...] = ()
    dev_dependencies: dict[str, str] = field(default_factory=dict)
    scripts: dict[str, str] = field(default_factory=dict)

    @property
    def uses_manifest(self) -> bool:
        return bool(self.dev_dependencies or self.scripts)

    def touched_paths(self) -> list[str]:
        """Relative paths this setup may write."""
        paths = [f.path for f in self.files]
        if self.uses_manifest:
            paths.append(PACKAGE_MANIFEST)
        return paths

    def is_configured(self, project_root: Path) -> bool:
        """
        Whether the tool is already (even partially) set up.

        True when any of its config files exists or package.json already
        lists one of its dev dependencies.
        """
        if any((project_root / f.path).exists() for f in self.files):
            return True
        if self.dev_dependencies:
            manifest = read_manifest(project_root)
            if manifest is not None:
                declared = set(manifest.get("dependencies", {}) or {})
                declared |= set(manifest.get("devDependencies", {}) or {})
                return any(dep in declared for dep in self.dev_dependencies)
        return False

    def updated_manifest(self, manifest: dict[str, Any], force: bool = False) -> dict[str, Any]:
        """
        Return a copy of package.json data with this tool's entries added.

        Existing scripts are kept unless force is set.
        """
        updated = dict(manifest)
        dev_deps = dict(updated.get("devDependencies", {}) or {})
        for name, version in self.dev_dependencies.items():
            if force or name not in dev_deps:
                dev_deps[name] = version
        if dev_deps:
            updated["devDependencies"] = dict(sorted(dev_deps.items()))

        scripts = dict(updated.get("scripts", {}) or {})
        for name, command in self.scripts.items():
            if force or name not in scripts:
                scripts[name] = command
        if scripts:
            updated["scripts"] = scripts
        return updated


def read_manifest(project_root: Path) -> dict[str, Any] | None:
    """Read package.json, or None if it does not exist."""
    path = project_root / PACKAGE_MANIFEST
    if not path.exists():
        return None
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{PACKAGE_MANIFEST} is not a JSON object")
    return data


def render_manifest(data: dict[str, Any]) -> str:
    """Serialize package.json the way npm writes it."""
    return json.dumps(data, indent=2) + "\n"


_PRETTIER_IGNORE = "node_modules\ndist\nbuild\ncoverage\n.wau\n"

TOOL_SETUPS: dict[str, ToolSetup] = {
    "eslint": ToolSetup(
        tool="eslint",
        files=(
            ConfigFile(
                "eslint.config.mjs",
                'import js from "@eslint/js";\n\nexport default [js.configs.recommended];\n',
            ),
        ),
        dev_dependencies={"eslint": "^9.0.0", "@eslint/js": "^9.0.0"},
        scripts={"lint": "eslint ."},
    ),
    "prettier": ToolSetup(
        tool="prettier",
        files=(
            ConfigFile(".prettierrc.json", '{\n  "semi": true,\n  "printWidth": 100\n}\n'),
            ConfigFile(".prettierignore", _PRETTIER_IGNORE),
        ),
        dev_dependencies={"prettier": "^3.0.0"},
        scripts={"format": "prettier --write ."},
    ),
    "husky": ToolSetup(
        tool="husky",
        files=(
            ConfigFile(
                ".husky/pre-commit",
                "npm run lint --if-present\nnpm test --if-present\n",
                executable=True,
            ),
        ),
        dev_dependencies={"husky": "^9.0.0"},
        scripts={"prepare": "husky"},
    ),
    "jest": ToolSetup(
        tool="jest",
        files=(ConfigFile("jest.config.js", "module.exports = {\n  testEnvironment: \"node\",\n};\n"),),
        dev_dependencies={"jest": "^29.0.0"},
        scripts={"test": "jest"},
    ),
    "typescript": ToolSetup(
        tool="typescript",
        files=(
            ConfigFile(
                "tsconfig.json",
                '{\n  "compilerOptions": {\n    "strict": true,\n    "noEmit": true\n  }\n}\n',
            ),
        ),
        dev_dependencies={"typescript": "^5.0.0"},
        scripts={"typecheck": "tsc --noEmit"},
    ),
    "ruff": ToolSetup(
        tool="ruff",
        files=(ConfigFile("ruff.toml", 'line-length = 100\n\n[lint]\nselect = ["E", "F", "I"]\n'),),
    ),
    "pre-commit": ToolSetup(
        tool="pre-commit",
        files=(
            ConfigFile(
                ".pre-commit-config.yaml",
                "repos:\n"
                "  - repo: https://github.com/astral-sh/ruff-pre-commit\n"
                "    rev: v0.6.9\n"
                "    hooks:\n"
                "      - id: ruff\n"
                "      - id: ruff-format\n",
            ),
        ),
    ),
    "pytest": ToolSetup(
        tool="pytest",
        files=(ConfigFile("pytest.ini", "[pytest]\ntestpaths = tests\n"),),
    ),
    "mypy": ToolSetup(
        tool="mypy",
        files=(ConfigFile("mypy.ini", "[mypy]\nignore_missing_imports = True\n"),),
    ),
}


def get_tool_setup(tool: str) -> ToolSetup | None:
    """Setup plan for a tool, or None if it has no automated setup."""
    return TOOL_SETUPS.get(tool)
