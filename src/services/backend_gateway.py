"""Backend collaborator protocols.

The orchestration core calls three external collaborators: the LLM chat
backend, the one-shot tool-execution backend, and the provisioning
backend used to re-invoke failed operations during recovery. The HTTP
implementation lives in ``src.services.backend_client``; tests supply
scripted fakes.

Implementations raise the ``src.errors.BackendError`` family so the
coordinator can choose remediation by tag.
"""

from typing import Any, Protocol, runtime_checkable

from src.orchestrator.models.backend import BackendReply, ChatMessage, ProvisioningResult
from src.orchestrator.models.plan import ExecutionPlan


@runtime_checkable
class ChatBackend(Protocol):
    """LLM/tool-calling chat backend."""

    async def chat(
        self,
        messages: list[ChatMessage],
        credential: str | None,
        workspace_id: str,
        conversation_id: str,
    ) -> BackendReply:
        """Run one chat turn over the given message history."""
        ...


@runtime_checkable
class ToolExecutionBackend(Protocol):
    """One-shot plan execution backend."""

    async def execute_plan(
        self,
        conversation_id: str,
        user_id: str,
        workspace_id: str,
        credential: str,
        request_text: str,
    ) -> ExecutionPlan:
        """Plan and execute a deployment request; returns the resulting plan."""
        ...


@runtime_checkable
class ProvisioningBackend(Protocol):
    """Direct invocation of a provisioning operation."""

    async def invoke(
        self,
        provider: str,
        operation: str,
        parameters: dict[str, Any],
        credential: str | None,
    ) -> ProvisioningResult:
        """Invoke one provisioning operation with the given parameters."""
        ...
