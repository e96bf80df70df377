"""Observer pattern for orchestration events.

Provides the ConversationEventObserver protocol and
ConversationEventEmitter class for notifying observers of conversation,
plan, autonomous loop, and recovery progress.

Observers are awaited one after another for each event, so events for
one conversation reach every observer in emission order. Delivery is
best-effort: a failing observer is logged and skipped.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from src.orchestrator.models.conversation import utc_now

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Outbound event names."""

    CONVERSATION_MESSAGE = "conversation_message"
    WORKFLOW_PROGRESS = "workflow_progress"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_STEP_STARTED = "execution_step_started"
    EXECUTION_STEP_COMPLETED = "execution_step_completed"
    EXECUTION_STEP_FAILED = "execution_step_failed"
    EXECUTION_COMPLETED = "execution_completed"
    AUTONOMOUS_PROGRESS = "autonomous_progress"
    AUTONOMOUS_COMPLETE = "autonomous_complete"
    RECOVERY_STARTED = "recovery_started"
    RECOVERY_PROGRESS = "recovery_progress"
    RECOVERY_SUCCESS = "recovery_success"
    RECOVERY_ESCALATED = "recovery_escalated"
    TYPING_STATUS = "typing_status"


@dataclass(frozen=True)
class ConversationEvent:
    """A single emitted event."""

    type: EventType
    conversation_id: str
    data: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for SSE delivery and history."""
        return {
            "id": self.id,
            "type": self.type.value,
            "conversation_id": self.conversation_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }


class ConversationEventObserver(Protocol):
    """Observer protocol for orchestration events.

    Implementations subscribe via ConversationEventEmitter to relay
    events to clients, record history, or log activity.
    """

    async def on_event(self, event: ConversationEvent) -> None:
        """Called for every emitted event.

        Args:
            event: The emitted event.
        """
        ...


class ConversationEventEmitter:
    """Emits orchestration events to registered observers.

    Implements the publisher side of the Observer pattern. Exceptions
    from individual observers are caught and logged to prevent one
    broken observer from stopping event delivery to others.
    """

    def __init__(self) -> None:
        """Initialize emitter with empty observer list."""
        self._observers: list[ConversationEventObserver] = []

    def add_observer(self, observer: ConversationEventObserver) -> None:
        """Register an observer to receive events.

        Args:
            observer: Observer implementing ConversationEventObserver.
        """
        self._observers.append(observer)

    def remove_observer(self, observer: ConversationEventObserver) -> None:
        """Unregister an observer.

        Args:
            observer: Observer to remove from notification list.
        """
        self._observers.remove(observer)

    async def emit(
        self,
        event_type: EventType,
        conversation_id: str,
        data: dict[str, Any] | None = None,
    ) -> ConversationEvent:
        """Emit an event to all observers, in registration order.

        Args:
            event_type: Event name.
            conversation_id: Conversation the event belongs to.
            data: Event payload.

        Returns:
            The emitted event.
        """
        event = ConversationEvent(
            type=event_type,
            conversation_id=conversation_id,
            data={"conversation_id": conversation_id, **(data or {})},
        )
        logger.debug("Emitting %s for conversation %s", event_type.value, conversation_id)
        for observer in self._observers:
            try:
                await observer.on_event(event)
            except Exception as e:
                logger.error(
                    "Observer %s failed on %s: %s",
                    type(observer).__name__,
                    event_type.value,
                    e,
                )
        return event
