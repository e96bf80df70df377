"""Tests for the conversational REPL loop."""

import pytest
from rich.console import Console

from src.cli import output, repl
from tests.helpers import ScriptedChatBackend, reply


class ScriptedInput:
    """Stands in for console.input: plays lines, then raises EOFError."""

    def __init__(self, lines: list[str]) -> None:
        self._lines = list(lines)

    def __call__(self, prompt: str = "") -> str:
        if not self._lines:
            raise EOFError
        return self._lines.pop(0)


@pytest.mark.asyncio
async def test_repl_sends_messages_until_eof(make_coordinator, monkeypatch):
    """Each non-blank line becomes one turn; EOF ends the session."""
    chat = ScriptedChatBackend(default=reply("Happy to help."))
    coordinator = make_coordinator(chat=chat)
    console = Console(record=True, width=120)
    monkeypatch.setattr(repl, "console", console)
    monkeypatch.setattr(output, "console", console)
    monkeypatch.setattr(console, "input", ScriptedInput(["What can you help me with?", "   "]))

    await repl.run_repl(coordinator, "ws-1", "user-1", credential="tok")

    text = console.export_text()
    assert "Happy to help." in text
    assert "Session ended." in text
    assert len(chat.calls) == 1
    assert chat.calls[0]["credential"] == "tok"
    conversation = coordinator.list_conversations(workspace_id="ws-1")[0]
    assert conversation.user_id == "user-1"
