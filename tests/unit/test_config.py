"""
Tests for configuration system.
"""

import pytest

from flow_replay.config import (
    BrowserSettings,
    ConfigLoader,
    EngineSettings,
    ExecutionSettings,
    Settings,
    get_settings,
    load_config,
    reset_settings,
)
from flow_replay.exceptions import ConfigurationError


class TestSettings:
    """Test the Settings classes."""

    def test_default_settings(self):
        """Test default settings are created correctly."""
        settings = Settings()

        assert settings.execution.mode == "legacy"
        assert settings.execution.actions_allowlist is None
        assert settings.engine.max_iterations == 1000
        assert settings.engine.global_timeout_ms == 0
        assert settings.replay.tab_target == "current"
        assert settings.browser.headless is True
        assert settings.storage_dir is None

    def test_override_settings(self):
        """Test overriding settings."""
        settings = Settings(
            execution=ExecutionSettings(mode="hybrid", actions_allowlist=["fill"]),
            browser=BrowserSettings(browser_type="firefox", headless=False),
        )

        assert settings.execution.mode == "hybrid"
        assert settings.execution.actions_allowlist == ["fill"]
        assert settings.browser.browser_type == "firefox"

    def test_merge_with_overrides(self):
        """Test merging settings with overrides."""
        settings = Settings()
        new_settings = settings.merge_with({
            "engine": {"global_timeout_ms": 60000},
            "execution": {"mode": "actions"},
        })

        assert new_settings.engine.global_timeout_ms == 60000
        assert new_settings.execution.mode == "actions"
        # Untouched values keep their defaults
        assert new_settings.engine.max_iterations == 1000
        assert settings.execution.mode == "legacy"

    def test_engine_settings_validation(self):
        """Test validation of engine limits."""
        assert EngineSettings(max_iterations=50).max_iterations == 50

        with pytest.raises(ValueError):
            EngineSettings(max_iterations=0)

        with pytest.raises(ValueError):
            EngineSettings(navigation_poll_ms=1)

    def test_unknown_mode_rejected(self):
        """Test that the execution mode is constrained."""
        with pytest.raises(ValueError):
            ExecutionSettings(mode="turbo")

    def test_env_nested_delimiter(self, monkeypatch):
        """Test that nested settings come from prefixed environment variables."""
        monkeypatch.setenv("FLOW_REPLAY__EXECUTION__MODE", "hybrid")
        monkeypatch.setenv("FLOW_REPLAY__ENGINE__GLOBAL_TIMEOUT_MS", "5000")

        settings = Settings()
        assert settings.execution.mode == "hybrid"
        assert settings.engine.global_timeout_ms == 5000


class TestConfigLoader:
    """Test loading settings from files."""

    def test_load_yaml(self, tmp_path):
        """Test that YAML values are applied."""
        path = tmp_path / "config.yaml"
        path.write_text("execution:\n  mode: hybrid\nreplay:\n  refresh: true\n")

        settings = ConfigLoader(path).load()
        assert settings.execution.mode == "hybrid"
        assert settings.replay.refresh is True

    def test_overrides_beat_file(self, tmp_path):
        """Test that explicit overrides win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("execution:\n  mode: hybrid\n")

        settings = load_config(path, execution={"mode": "actions"})
        assert settings.execution.mode == "actions"

    def test_env_beats_file(self, tmp_path, monkeypatch):
        """Test that environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("execution:\n  mode: hybrid\nengine:\n  max_iterations: 50\n")
        monkeypatch.setenv("FLOW_REPLAY__EXECUTION__MODE", "actions")

        settings = ConfigLoader(path).load()
        assert settings.execution.mode == "actions"
        assert settings.engine.max_iterations == 50

    def test_config_env_var(self, tmp_path, monkeypatch):
        """Test that FLOW_REPLAY_CONFIG names the file to load."""
        path = tmp_path / "replay.yaml"
        path.write_text("replay:\n  capture_network: true\n")
        monkeypatch.setenv("FLOW_REPLAY_CONFIG", str(path))

        loader = ConfigLoader()
        assert loader.load().replay.capture_network is True
        assert loader.source == path

    def test_config_env_var_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FLOW_REPLAY_CONFIG", str(tmp_path / "gone.yaml"))
        with pytest.raises(ConfigurationError):
            ConfigLoader().load()

    def test_project_file_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("FLOW_REPLAY_CONFIG", raising=False)
        (tmp_path / "flow-replay.yaml").write_text("execution:\n  mode: actions\n")

        assert ConfigLoader().load().execution.mode == "actions"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert ConfigLoader(path).load().execution.mode == "legacy"

    def test_missing_file(self, tmp_path):
        """Test that an explicit missing path is an error."""
        with pytest.raises(ConfigurationError):
            ConfigLoader(tmp_path / "nope.yaml").load()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("execution: [unclosed\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(path).load()

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ConfigLoader(path).load()


class TestGlobalSettings:
    """Test the settings singleton."""

    def test_get_and_reset(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        reset_settings()
        first = get_settings()
        assert get_settings() is first
        reset_settings()
        assert get_settings() is not first
        reset_settings()
