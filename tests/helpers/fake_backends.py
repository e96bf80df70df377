"""Scripted stand-ins for the backend collaborators.

Each fake plays back a fixed script of replies or exceptions and
records every call, so tests can assert on what the orchestration core
sent without a network.
"""

from typing import Any

from src.orchestrator.events import ConversationEvent
from src.orchestrator.models.backend import (
    BackendReply,
    ChatMessage,
    ProvisioningResult,
    ToolCall,
    Usage,
)
from src.orchestrator.models.plan import ExecutionPlan, ExecutionStep, PlanStatus


def reply(message: str, tokens: int = 0, tools: tuple[str, ...] = ()) -> BackendReply:
    """Build a backend reply with optional usage and tool calls."""
    return BackendReply(
        message=message,
        tool_calls=[ToolCall(name=name) for name in tools],
        usage=Usage(total_tokens=tokens) if tokens else None,
    )


class ScriptedChatBackend:
    """ChatBackend that returns scripted replies in order.

    Script entries may be BackendReply, plain strings, or exceptions
    (raised instead of returned). Once the script runs out, ``default``
    is returned for every further call.
    """

    def __init__(self, script: list[Any] | None = None, default: Any = None) -> None:
        self._script = list(script or [])
        self._default = default if default is not None else reply("Done.")
        self.calls: list[dict[str, Any]] = []

    async def chat(
        self,
        messages: list[ChatMessage],
        credential: str | None,
        workspace_id: str,
        conversation_id: str,
    ) -> BackendReply:
        self.calls.append({
            "messages": list(messages),
            "credential": credential,
            "workspace_id": workspace_id,
            "conversation_id": conversation_id,
        })
        item = self._script.pop(0) if self._script else self._default
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return reply(item)
        return item


class ScriptedProvisioningBackend:
    """ProvisioningBackend returning scripted results (or raising)."""

    def __init__(self, script: list[Any] | None = None) -> None:
        self._script = list(script or [])
        self.calls: list[dict[str, Any]] = []

    async def invoke(
        self,
        provider: str,
        operation: str,
        parameters: dict[str, Any],
        credential: str | None,
    ) -> ProvisioningResult:
        self.calls.append({
            "provider": provider,
            "operation": operation,
            "parameters": dict(parameters),
            "credential": credential,
        })
        item = self._script.pop(0) if self._script else ProvisioningResult(
            success=False, error="droplet creation failed"
        )
        if isinstance(item, BaseException):
            raise item
        return item


class ScriptedToolBackend:
    """ToolExecutionBackend that returns a fixed executing plan."""

    def __init__(self, steps: int = 2, error: BaseException | None = None) -> None:
        self._steps = steps
        self._error = error
        self.calls: list[dict[str, Any]] = []

    async def execute_plan(
        self,
        conversation_id: str,
        user_id: str,
        workspace_id: str,
        credential: str,
        request_text: str,
    ) -> ExecutionPlan:
        self.calls.append({
            "conversation_id": conversation_id,
            "credential": credential,
            "request_text": request_text,
        })
        if self._error is not None:
            raise self._error
        return ExecutionPlan(
            conversation_id=conversation_id,
            user_id=user_id,
            workspace_id=workspace_id,
            objective=request_text,
            status=PlanStatus.EXECUTING,
            steps=[
                ExecutionStep(
                    service="atlas",
                    action=f"step_{index}",
                    description=f"Provision resource {index}",
                )
                for index in range(1, self._steps + 1)
            ],
        )


class EventRecorder:
    """Observer that keeps every emitted event, in order."""

    def __init__(self) -> None:
        self.events: list[ConversationEvent] = []

    async def on_event(self, event: ConversationEvent) -> None:
        self.events.append(event)

    def types(self, conversation_id: str | None = None) -> list[str]:
        """Event type values, optionally for one conversation."""
        return [
            e.type.value for e in self.events
            if conversation_id is None or e.conversation_id == conversation_id
        ]

    def of(self, event_type: str) -> list[ConversationEvent]:
        """Events of one type."""
        return [e for e in self.events if e.type.value == event_type]


class RecordingSleep:
    """Awaitable sleep replacement that returns at once and records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
