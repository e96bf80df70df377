"""Models for the LLM/tool backend contract.

These Pydantic models define what the orchestration core sends to and
receives from the external tool-calling backend.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """One entry in the message history sent to the backend."""

    role: Literal["system", "user", "assistant"]
    content: str


class ToolCall(BaseModel):
    """A tool the backend invoked while producing its reply."""

    model_config = ConfigDict(extra="ignore")

    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class Usage(BaseModel):
    """Token usage reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class BackendReply(BaseModel):
    """Reply from one backend chat call."""

    model_config = ConfigDict(extra="ignore")

    message: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage | None = None

    @property
    def tool_names(self) -> list[str]:
        """Names of tools invoked, in call order."""
        return [call.name for call in self.tool_calls]


class ProvisioningResult(BaseModel):
    """Result of re-invoking a provisioning operation."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    result: Any = None
    error: str | None = None
