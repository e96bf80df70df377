"""Tests for the autonomous loop controller."""

import pytest

from src.config import LoopConfig
from src.orchestrator.autonomous import AutonomousLoopController
from src.orchestrator.autonomous.controller import (
    MAX_ITERATIONS_REASON,
    TOKEN_LIMIT_REASON,
)
from src.orchestrator.models.conversation import Message, MessageRole
from tests.helpers import ScriptedChatBackend, reply

CONTINUING = "Configuring the next resource in the deployment sequence now."


def _controller(backend, emitter, rules, sleep, **settings) -> AutonomousLoopController:
    return AutonomousLoopController(
        backend, emitter, rules.loop, LoopConfig(**settings), sleep=sleep
    )


def _history(cid: str, count: int) -> list[Message]:
    return [
        Message(
            conversation_id=cid,
            role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
            content=f"message {i}",
        )
        for i in range(count)
    ]


class TestLoopTermination:
    """Tests for how and when the loop stops."""

    @pytest.mark.asyncio
    async def test_stops_on_completion(self, emitter, recorder, rules, instant_sleep):
        """A working reply followed by a completion reply ends after two iterations."""
        backend = ScriptedChatBackend([
            reply(
                "Provisioning the droplet now, the next step is DNS.",
                tokens=1000,
                tools=("atlas_provision_infrastructure",),
            ),
            reply(
                "Deployment completed successfully and all services are running.",
                tokens=500,
                tools=("neptune_configure_dns",),
            ),
        ])
        controller = _controller(backend, emitter, rules, instant_sleep)

        result = await controller.run("conv-1", "ws-1", "deploy my app", [], "tok")

        assert not result.failed
        assert result.iterations == 2
        assert result.total_tokens == 1500
        assert result.tools == ["atlas_provision_infrastructure", "neptune_configure_dns"]
        assert result.stopping_reason == "Task completed successfully"
        assert result.tone == "success"
        assert result.summary.startswith("✅ **Autonomous Execution Complete**")
        assert [m.content for m in result.messages][1].startswith("Deployment completed")
        assert instant_sleep.delays == [1.2]

    @pytest.mark.asyncio
    async def test_iteration_cap(self, emitter, recorder, rules, instant_sleep):
        """A backend that always signals work stops after max_iterations."""
        backend = ScriptedChatBackend(default=reply(CONTINUING))
        controller = _controller(backend, emitter, rules, instant_sleep)

        result = await controller.run("conv-1", "ws-1", "deploy", [], "tok")

        assert len(backend.calls) == 10
        assert result.iterations == 10
        assert result.stopping_reason == MAX_ITERATIONS_REASON
        assert len(instant_sleep.delays) == 9
        assert instant_sleep.delays[0] == 1.2
        assert instant_sleep.delays[-1] == 2.8
        notices = [e.data["content"] for e in recorder.of("conversation_message")]
        assert notices[-1].startswith("⚠️ **Maximum Iterations Reached**")

    @pytest.mark.asyncio
    async def test_token_budget_checked_before_each_call(
        self, emitter, recorder, rules, instant_sleep
    ):
        """Once usage reaches the budget no further backend call is made."""
        backend = ScriptedChatBackend(default=reply(CONTINUING, tokens=30000))
        controller = _controller(backend, emitter, rules, instant_sleep)

        result = await controller.run("conv-1", "ws-1", "deploy", [], "tok")

        assert len(backend.calls) == 2
        assert result.total_tokens == 60000
        assert result.stopping_reason == TOKEN_LIMIT_REASON
        assert result.tone == "budget"
        assert result.summary.startswith("🔄 **Autonomous Execution Finished**")
        assert "⚡ **Performance Note**" in result.summary

    @pytest.mark.asyncio
    async def test_custom_budgets(self, emitter, recorder, rules, instant_sleep):
        """Budgets come from settings."""
        backend = ScriptedChatBackend(default=reply(CONTINUING))
        controller = _controller(backend, emitter, rules, instant_sleep, max_iterations=3)

        result = await controller.run("conv-1", "ws-1", "deploy", [], "tok")

        assert result.iterations == 3
        assert len(instant_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_backend_failure_returns_failed_result(
        self, emitter, recorder, rules, instant_sleep
    ):
        """A backend exception ends the run with the error attached."""
        error = RuntimeError("connection reset")
        backend = ScriptedChatBackend([reply(CONTINUING, tokens=10), error])
        controller = _controller(backend, emitter, rules, instant_sleep)

        result = await controller.run("conv-1", "ws-1", "deploy", [], "tok")

        assert result.failed
        assert result.error is error
        assert result.iterations == 2
        assert result.stopping_reason == "Error encountered"
        assert result.summary.startswith("❌ **Autonomous Execution Failed**")
        assert "Completed 1 cycles before failure." in result.summary
        complete = recorder.of("autonomous_complete")
        assert len(complete) == 1
        assert complete[0].data["failed"] is True


class TestLoopEvents:
    """Tests for emitted notices and progress events."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, emitter, recorder, rules, instant_sleep):
        """Activation, progress, iteration notice and a single completion event."""
        backend = ScriptedChatBackend([
            reply(CONTINUING, tokens=100, tools=("atlas_create_droplet",)),
            reply("Infrastructure is ready for traffic now.", tokens=100),
        ])
        controller = _controller(backend, emitter, rules, instant_sleep)

        await controller.run("conv-1", "ws-1", "deploy api", [], "tok")

        assert recorder.types() == [
            "conversation_message",
            "autonomous_progress",
            "conversation_message",
            "autonomous_complete",
        ]
        activation, iteration_notice = recorder.of("conversation_message")
        assert activation.data["content"].startswith("🤖 **Autonomous Agent Activated**")
        assert "**Current Task**: deploy api" in activation.data["content"]
        assert iteration_notice.data["content"].startswith("🔄 **Iteration 2**")

        progress = recorder.of("autonomous_progress")[0].data
        assert progress["iteration"] == 1
        assert progress["total_tokens"] == 100
        assert progress["tools_executed"] == 1
        assert progress["recent_tools"] == ["atlas_create_droplet"]
        assert progress["continuing"] is True

        complete = recorder.of("autonomous_complete")[0].data
        assert complete["total_iterations"] == 2
        assert complete["stopping_reason"] == "Task completed successfully"
        assert complete["conversation_id"] == "conv-1"

    @pytest.mark.asyncio
    async def test_recent_tools_limited_to_five(self, emitter, recorder, rules, instant_sleep):
        """Progress events carry only the last five tools."""
        tools = tuple(f"atlas_tool_{i}" for i in range(7))
        backend = ScriptedChatBackend([
            reply(CONTINUING, tools=tools),
            reply("Task completed with every resource in place and verified ok."),
        ])
        controller = _controller(backend, emitter, rules, instant_sleep)

        await controller.run("conv-1", "ws-1", "deploy", [], "tok")

        progress = recorder.of("autonomous_progress")[0].data
        assert progress["recent_tools"] == list(tools[-5:])
        assert progress["tools_executed"] == 7


class TestBackendHistory:
    """Tests for what the controller sends to the backend."""

    @pytest.mark.asyncio
    async def test_history_window_and_continuation_prompt(
        self, emitter, rules, instant_sleep
    ):
        """Only the trailing window is sent; continuation prompts follow each reply."""
        backend = ScriptedChatBackend([
            reply(CONTINUING),
            reply("Deployment successful, every service answers health checks."),
        ])
        controller = _controller(backend, emitter, rules, instant_sleep)

        await controller.run("conv-1", "ws-1", "deploy", _history("conv-1", 8), "secret-tok")

        first = backend.calls[0]
        assert first["credential"] == "secret-tok"
        assert first["workspace_id"] == "ws-1"
        assert first["messages"][0].role == "system"
        assert [m.content for m in first["messages"][1:]] == [f"message {i}" for i in range(3, 8)]

        second = backend.calls[1]["messages"]
        assert second[-2].role == "assistant"
        assert second[-2].content == CONTINUING
        assert second[-1].role == "user"
        assert second[-1].content == controller.continuation_prompt(1)

    def test_continuation_prompts_cycle(self, emitter, rules, instant_sleep):
        """Prompts rotate through the configured list."""
        controller = _controller(ScriptedChatBackend(), emitter, rules, instant_sleep)
        count = len(rules.loop.continuation_prompts)

        assert controller.continuation_prompt(1) == rules.loop.continuation_prompts[0]
        assert controller.continuation_prompt(count + 1) == controller.continuation_prompt(1)
