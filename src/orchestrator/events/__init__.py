"""Ordered per-conversation event emission."""

from src.orchestrator.events.emitter import (
    ConversationEvent,
    ConversationEventEmitter,
    ConversationEventObserver,
    EventType,
)

__all__ = [
    "ConversationEvent",
    "ConversationEventEmitter",
    "ConversationEventObserver",
    "EventType",
]
