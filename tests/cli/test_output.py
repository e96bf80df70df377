"""Tests for CLI output formatting."""

import json

from rich.console import Console

from src.cli import output
from src.cli.output import format_lexicons, format_signal_table, render_response
from src.orchestrator.models.backend import Usage
from src.orchestrator.models.response import AssistantResponse, SuggestedAction


def _render(renderable) -> str:
    console = Console(record=True, width=200)
    console.print(renderable)
    return console.export_text()


class TestSignalTable:
    """Tests for the loop signal table rendering."""

    def test_json_preserves_order(self, rules):
        """JSON output lists rules in evaluation order."""
        data = json.loads(format_signal_table(rules, as_json=True))

        assert [r["name"] for r in data] == [r.name for r in rules.loop.signal_table]

    def test_table_lists_every_rule(self, rules):
        """The Rich table has one row per rule."""
        text = _render(format_signal_table(rules))

        for rule in rules.loop.signal_table:
            assert rule.name in text
        assert "iterations:" in text


class TestLexicons:
    """Tests for the lexicon table."""

    def test_lists_approval_and_error_lexicons(self, rules):
        """Approval words and backend error categories appear."""
        text = _render(format_lexicons(rules))

        assert "approval.reject" in text
        assert "intent.execute_commands" in text
        assert "backend_errors.missing_credentials" in text


class TestRenderResponse:
    """Tests for assistant response rendering."""

    def test_renders_message_actions_and_usage(self, monkeypatch):
        """Message, token usage and suggested actions are printed."""
        console = Console(record=True, width=200)
        monkeypatch.setattr(output, "console", console)
        response = AssistantResponse(
            message="Add your API key to continue.",
            response_type="error",
            suggested_actions=[SuggestedAction(
                id="configure_credentials",
                text="Configure API Keys",
                action_type="settings",
                action_data={"section": "integrations"},
            )],
            usage=Usage(total_tokens=1234),
            recovery_id="rec-1",
        )

        render_response(response)

        text = console.export_text()
        assert "Add your API key to continue." in text
        assert "1,234 tokens" in text
        assert "Configure API Keys" in text
        assert "integrations" in text
        assert "Recovery: rec-1" in text
