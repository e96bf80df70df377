"""Integration tests for the CLI: end-to-end command execution."""

import json

import yaml
from typer.testing import CliRunner

from src.cli.main import app

runner = CliRunner()


class TestCLICommands:
    """Tests for CLI command invocation."""

    def test_version(self):
        """Version command prints version string."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Infraflow" in result.stdout

    def test_help(self):
        """Help shows available commands."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.stdout
        assert "chat" in result.stdout
        assert "rules" in result.stdout

    def test_config_show_masks_key(self, tmp_path, monkeypatch):
        """config show prints resolved values with the service key masked."""
        config_file = tmp_path / "infraflow.yaml"
        config_file.write_text(yaml.dump({
            "daemon": {"port": 9100},
            "backend": {"api_key": "very-secret-service-key"},
        }))

        result = runner.invoke(app, ["--config", str(config_file), "config", "show"])

        assert result.exit_code == 0
        assert "port: 9100" in result.stdout
        assert "api_key: ***" in result.stdout
        assert "very-secret-service-key" not in result.stdout

    def test_missing_config_file(self, tmp_path):
        """A missing --config path exits with status 1."""
        result = runner.invoke(
            app, ["--config", str(tmp_path / "nope.yaml"), "config", "show"]
        )
        assert result.exit_code == 1


class TestRulesCommands:
    """Tests for rules inspection."""

    def test_rules_show(self):
        """rules show prints the signal table and lexicons."""
        result = runner.invoke(app, ["rules", "show"])

        assert result.exit_code == 0
        assert "Loop Signal Table" in result.stdout
        assert "Lexicons" in result.stdout
        assert "Continuation prompts" in result.stdout

    def test_rules_show_json(self):
        """--json prints the signal table in evaluation order."""
        result = runner.invoke(app, ["rules", "show", "--json"])

        assert result.exit_code == 0
        table = json.loads(result.stdout)
        assert table[0]["name"] == "critical_failure"
        assert table[0]["outcome"] == "stop"

    def test_bad_rules_file(self, tmp_path, monkeypatch):
        """An unreadable rules file exits with status 1."""
        monkeypatch.setenv("INFRAFLOW_RULES_PATH", str(tmp_path / "missing.yaml"))

        result = runner.invoke(app, ["rules", "show"])

        assert result.exit_code == 1
        assert "Failed to load rules" in result.stdout
