"""Tests for configuration loading and validation."""

import pytest
import yaml

from src.config import (
    BackendConfig,
    DaemonConfig,
    InfraflowConfig,
    LoopConfig,
    load_config,
    resolve_env_vars,
)


class TestDefaults:
    """Tests for section defaults."""

    def test_daemon_defaults(self):
        """Daemon binds locally by default."""
        cfg = DaemonConfig()
        assert cfg.host == "127.0.0.1"
        assert cfg.port == 8000
        assert cfg.log_level == "info"

    def test_loop_defaults(self):
        """Loop budgets default to 10 iterations and 50,000 tokens."""
        cfg = LoopConfig()
        assert cfg.max_iterations == 10
        assert cfg.token_budget == 50000
        assert cfg.history_window == 5

    def test_delay_grows_then_caps(self):
        """Throttle delay grows by 200ms per iteration up to 3 seconds."""
        cfg = LoopConfig()
        assert cfg.delay_seconds(1) == 1.2
        assert cfg.delay_seconds(5) == 2.0
        assert cfg.delay_seconds(10) == 3.0
        assert cfg.delay_seconds(50) == 3.0

    def test_backend_has_no_key_by_default(self):
        """No service key is configured out of the box."""
        assert BackendConfig().api_key == ""


class TestResolveEnvVars:
    """Tests for ${VAR} resolution in config values."""

    def test_resolves_env_var(self, monkeypatch):
        """${VAR} syntax resolves from environment."""
        monkeypatch.setenv("TEST_SECRET", "my-secret-key")
        assert resolve_env_vars("${TEST_SECRET}") == "my-secret-key"

    def test_passthrough_no_vars(self):
        """Strings without ${} pass through unchanged."""
        assert resolve_env_vars("plain-value") == "plain-value"

    def test_missing_env_var_returns_empty(self):
        """Missing env vars resolve to empty string."""
        assert resolve_env_vars("${DEFINITELY_NOT_SET_XYZ}") == ""

    def test_mixed_content(self, monkeypatch):
        """${VAR} embedded in other text resolves correctly."""
        monkeypatch.setenv("MY_HOST", "localhost")
        assert resolve_env_vars("http://${MY_HOST}:9000") == "http://localhost:9000"


class TestLoadConfig:
    """Tests for YAML config file loading."""

    def test_load_from_explicit_path(self, tmp_path):
        """Load config from an explicit path."""
        config_file = tmp_path / "infraflow.yaml"
        config_file.write_text(yaml.dump({
            "daemon": {"port": 9000},
            "loop": {"max_iterations": 4},
        }))

        cfg = load_config(config_path=str(config_file))

        assert cfg.daemon.port == 9000
        assert cfg.loop.max_iterations == 4
        assert cfg.loop.token_budget == 50000

    def test_missing_explicit_path(self, tmp_path):
        """An explicit path that does not exist raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(config_path=str(tmp_path / "nope.yaml"))

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        """Defaults apply when no config file is found."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert load_config() == InfraflowConfig()

    def test_finds_file_in_working_directory(self, tmp_path, monkeypatch):
        """./infraflow.yaml is picked up automatically."""
        (tmp_path / "infraflow.yaml").write_text("recovery:\n  max_attempts: 5\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().recovery.max_attempts == 5

    def test_env_var_override(self, tmp_path, monkeypatch):
        """INFRAFLOW_<SECTION>_<KEY> env vars override YAML values."""
        config_file = tmp_path / "infraflow.yaml"
        config_file.write_text(yaml.dump({"loop": {"token_budget": 1000}}))
        monkeypatch.setenv("INFRAFLOW_LOOP_TOKEN_BUDGET", "2500")
        monkeypatch.setenv("INFRAFLOW_RECOVERY_BACKOFF_SECONDS", "0.5")
        monkeypatch.setenv("INFRAFLOW_RULES_PATH", "/etc/infraflow/rules.yaml")

        cfg = load_config(config_path=str(config_file))

        assert cfg.loop.token_budget == 2500
        assert cfg.recovery.backoff_seconds == 0.5
        assert cfg.rules_path == "/etc/infraflow/rules.yaml"

    def test_dollar_var_resolution(self, tmp_path, monkeypatch):
        """${VAR} in YAML values resolve from environment."""
        monkeypatch.setenv("BACKEND_SERVICE_KEY", "secret-123")
        config_file = tmp_path / "infraflow.yaml"
        config_file.write_text(yaml.dump({"backend": {"api_key": "${BACKEND_SERVICE_KEY}"}}))

        cfg = load_config(config_path=str(config_file))

        assert cfg.backend.api_key == "secret-123"

    def test_invalid_value_rejected(self, tmp_path):
        """Out-of-range values fail validation."""
        config_file = tmp_path / "infraflow.yaml"
        config_file.write_text(yaml.dump({"loop": {"max_iterations": 0}}))

        with pytest.raises(ValueError):
            load_config(config_path=str(config_file))
