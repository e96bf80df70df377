"""Conversation and message models.

A Conversation is created at session start and mutated only by the
coordinator. Messages are immutable once appended; the credential a
message arrived with is carried for the duration of the turn but is
excluded from ``to_dict`` and ``repr`` so it never reaches logs or
history payloads.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ConversationStatus(str, Enum):
    """Conversation status."""

    ACTIVE = "active"
    ERROR = "error"


class MessageRole(str, Enum):
    """Message author role."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """A single immutable conversation message."""

    conversation_id: str
    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: str = field(default_factory=utc_now)
    credential: str | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for history responses and events. Never includes the credential."""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }


@dataclass
class CostLimits:
    """Spending limits for a conversation's workspace."""

    daily_limit: float = 100
    monthly_limit: float = 1000
    alert_threshold: float = 80


@dataclass
class ConversationContext:
    """Infrastructure context accumulated over a conversation."""

    active_infrastructure: list[str] = field(default_factory=list)
    pending_operations: list[str] = field(default_factory=list)
    preferred_provider: str = "digitalocean"
    preferred_regions: list[str] = field(default_factory=lambda: ["nyc3"])
    cost_limits: CostLimits = field(default_factory=CostLimits)
    mentioned_technologies: list[str] = field(default_factory=list)
    deployment_requirements: list[dict[str, Any]] = field(default_factory=list)
    agent_states: dict[str, Any] = field(default_factory=dict)


@dataclass
class Conversation:
    """A conversation between one user and the orchestrator.

    Attributes:
        id: Conversation identifier.
        workspace_id: Owning workspace.
        user_id: Owning user.
        status: active, or error after an unclassified backend failure.
        messages: Append-only message sequence.
        active_workflows: IDs of plans and loops currently driving this conversation.
        context: Accumulated infrastructure context.
    """

    workspace_id: str
    user_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    status: ConversationStatus = ConversationStatus.ACTIVE
    messages: list[Message] = field(default_factory=list)
    active_workflows: set[str] = field(default_factory=set)
    context: ConversationContext = field(default_factory=ConversationContext)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    last_activity_at: str = field(default_factory=utc_now)

    def append(self, message: Message) -> None:
        """Append a message and bump activity timestamps."""
        self.messages.append(message)
        self.updated_at = message.timestamp
        if message.role is MessageRole.USER:
            self.last_activity_at = message.timestamp

    def recent(self, limit: int) -> list[Message]:
        """Return the trailing window of messages."""
        if limit <= 0:
            return []
        return list(self.messages[-limit:])

    def summary(self) -> dict[str, Any]:
        """Serialize conversation metadata (without messages)."""
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "message_count": len(self.messages),
            "active_workflows": sorted(self.active_workflows),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_activity_at": self.last_activity_at,
        }
