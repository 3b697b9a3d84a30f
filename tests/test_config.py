"""Tests for config module."""

import json

import pytest

from wau.config import (
    DEFAULT_IGNORE_DIRS,
    NotificationConfig,
    SupervisorConfig,
    load_settings,
    load_supervisor_config,
    save_ignored_tool,
    settings_file_path,
    state_file_path,
    with_default_ignores,
)
from wau.exceptions import ConfigError


def write_settings(project, data):
    path = settings_file_path(project)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestSupervisorConfig:
    """Tests for SupervisorConfig dataclass."""

    def test_defaults(self):
        config = SupervisorConfig()
        assert config.auto_fix is False
        assert config.auto_setup is False
        assert config.watch_patterns == ["**/*"]
        assert config.debounce_seconds == 1.0
        assert ".wau" in config.ignore_patterns
        assert "node_modules" in config.ignore_patterns
        assert config.run_setup_commands is False

    def test_acts_automatically(self):
        assert not SupervisorConfig().acts_automatically
        assert SupervisorConfig(auto_fix=True).acts_automatically
        assert SupervisorConfig(auto_setup=True).acts_automatically

    def test_negative_debounce_rejected(self):
        with pytest.raises(ConfigError):
            SupervisorConfig(debounce_seconds=-1)

    def test_empty_watch_patterns_rejected(self):
        with pytest.raises(ConfigError):
            SupervisorConfig(watch_patterns=[])

    def test_round_trip(self):
        config = SupervisorConfig(
            auto_setup=True,
            notifications=NotificationConfig(desktop=False, webhook_url="https://hooks.example/x"),
            ignore_tools=["husky"],
        )
        data = config.to_dict()
        assert data["autoSetup"] is True
        assert data["notifications"]["webhookUrl"] == "https://hooks.example/x"
        assert SupervisorConfig.from_dict(data) == config

    def test_from_dict_bad_value(self):
        with pytest.raises(ConfigError):
            SupervisorConfig.from_dict({"debounceSeconds": "soon"})


class TestNotificationConfig:
    """Tests for NotificationConfig."""

    def test_accepts_webhook_alias(self):
        config = NotificationConfig.from_dict({"webhook": "https://hooks.example/y"})
        assert config.webhook_url == "https://hooks.example/y"


class TestPaths:
    """State files live under the hidden .wau directory."""

    def test_state_file_path(self, tmp_path):
        assert state_file_path(tmp_path) == tmp_path / ".wau" / "state.json"

    def test_ignore_dirs_cover_state_dir(self):
        assert ".wau" in DEFAULT_IGNORE_DIRS

    def test_extra_ignores_keep_builtin_ones(self):
        merged = with_default_ignores(["dist", "node_modules"])
        assert merged[: len(DEFAULT_IGNORE_DIRS)] == list(DEFAULT_IGNORE_DIRS)
        assert merged.count("node_modules") == 1
        assert merged[-1] == "dist"

    def test_no_extra_ignores(self):
        assert with_default_ignores(None) == list(DEFAULT_IGNORE_DIRS)


class TestLoadSupervisorConfig:
    """Tests for layered config loading."""

    def test_no_settings_file(self, tmp_path):
        config = load_supervisor_config(tmp_path)
        assert config == SupervisorConfig()

    def test_settings_file(self, tmp_path):
        write_settings(tmp_path, {"autoFix": True, "ignoreTools": ["jest"]})
        config = load_supervisor_config(tmp_path)
        assert config.auto_fix is True
        assert config.ignore_tools == ["jest"]

    def test_env_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WAU_WEBHOOK_URL", "https://env.example/hook")
        monkeypatch.setenv("WAU_DEBOUNCE_SECONDS", "0.25")
        config = load_supervisor_config(tmp_path)
        assert config.notifications.webhook_url == "https://env.example/hook"
        assert config.debounce_seconds == 0.25

    def test_settings_override_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WAU_DEBOUNCE_SECONDS", "0.25")
        write_settings(tmp_path, {"debounceSeconds": 2})
        assert load_supervisor_config(tmp_path).debounce_seconds == 2.0

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        write_settings(tmp_path, {"autoSetup": True, "dashboard": True})
        config = load_supervisor_config(tmp_path, auto_setup=False, dashboard=None)
        assert config.auto_setup is False
        assert config.dashboard is True

    def test_unknown_override(self, tmp_path):
        with pytest.raises(ConfigError):
            load_supervisor_config(tmp_path, turbo=True)

    def test_invalid_override_value(self, tmp_path):
        with pytest.raises(ConfigError):
            load_supervisor_config(tmp_path, debounce_seconds=-5)

    def test_invalid_json(self, tmp_path):
        path = settings_file_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            load_settings(tmp_path)

    def test_non_object_settings(self, tmp_path):
        write_settings(tmp_path, ["autoFix"])
        with pytest.raises(ConfigError):
            load_settings(tmp_path)


class TestSaveIgnoredTool:
    """Tests for persisting ignore entries."""

    def test_adds_tool(self, tmp_path):
        assert save_ignored_tool(tmp_path, "prettier") is True
        assert load_settings(tmp_path)["ignoreTools"] == ["prettier"]

    def test_duplicate_is_noop(self, tmp_path):
        save_ignored_tool(tmp_path, "prettier")
        assert save_ignored_tool(tmp_path, "prettier") is False
        assert load_settings(tmp_path)["ignoreTools"] == ["prettier"]

    def test_keeps_other_settings(self, tmp_path):
        write_settings(tmp_path, {"autoFix": True})
        save_ignored_tool(tmp_path, "husky")
        settings = load_settings(tmp_path)
        assert settings["autoFix"] is True
        assert settings["ignoreTools"] == ["husky"]
