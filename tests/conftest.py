"""Shared fixtures."""

import json

import pytest

from wau.logging import LogConfig, reset_loggers, set_config


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path_factory, monkeypatch):
    """Send JSONL logs to a temp dir and keep WAU_* env vars out of tests."""
    for name in ("WAU_WEBHOOK_URL", "WAU_DEBOUNCE_SECONDS", "WAU_LOG_LEVEL", "WAU_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    set_config(LogConfig(log_dir=tmp_path_factory.mktemp("logs")))
    reset_loggers()
    yield
    reset_loggers()


@pytest.fixture
def js_project(tmp_path):
    """A fresh JavaScript project with no tooling."""
    project = tmp_path / "webapp"
    project.mkdir()
    (project / "package.json").write_text(
        json.dumps({"name": "webapp", "version": "1.2.0", "dependencies": {"express": "^4.0.0"}})
    )
    (project / "index.js").write_text("console.log('hi');\n")
    return project


@pytest.fixture
def py_project(tmp_path):
    """A Python project declaring pytest as a test dependency."""
    project = tmp_path / "service"
    project.mkdir()
    (project / "pyproject.toml").write_text(
        '[project]\nname = "service"\nversion = "0.3.0"\n'
        'dependencies = ["fastapi>=0.100"]\n\n'
        '[project.optional-dependencies]\ntest = ["pytest>=8"]\n'
    )
    (project / "app.py").write_text("print('hi')\n")
    return project
