"""Response model returned by the coordinator for every inbound message."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.orchestrator.models.backend import Usage

ResponseType = Literal["text", "error", "recovery_started"]


class SuggestedAction(BaseModel):
    """A follow-up action offered to the user."""

    id: str
    text: str
    action_type: str  # settings, link, quick_reply
    action_data: dict[str, Any] = Field(default_factory=dict)


class Attachment(BaseModel):
    """Structured content attached to a response."""

    type: str
    title: str
    data: Any = None
    format: str = "json"


class AssistantResponse(BaseModel):
    """Result of ``process_message``.

    Attributes:
        message: Text shown to the user.
        response_type: text, error, or recovery_started.
        attachments: Structured attachments (plan rendering, summaries).
        suggested_actions: Follow-up actions (settings links, billing links).
        usage: Token usage for the turn, when known.
        recovery_id: Recovery session ID when response_type is recovery_started.
    """

    message: str
    response_type: ResponseType = "text"
    attachments: list[Attachment] = Field(default_factory=list)
    suggested_actions: list[SuggestedAction] | None = None
    usage: Usage | None = None
    recovery_id: str | None = None
