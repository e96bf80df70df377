"""Notification sink for orchestration events.

Registers itself as an observer on the ConversationEventEmitter, keeps a
bounded in-memory event history, and fans events out to per-subscriber
asyncio.Queue instances for SSE delivery. Delivery is best-effort with
no acknowledgement; events for one conversation reach each subscriber
in emission order.
"""

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator

from src.orchestrator.events import ConversationEvent, ConversationEventEmitter, EventType
from src.orchestrator.models.conversation import Message

logger = logging.getLogger(__name__)

MAX_HISTORY = 1000
DEFAULT_HISTORY_LIMIT = 50


class NotificationService:
    """Event history and subscriber fan-out.

    Attributes:
        _history: Most recent events across all conversations.
        _subscribers: Dict of conversation_id -> list of subscriber queues.
    """

    def __init__(self, emitter: ConversationEventEmitter, max_history: int = MAX_HISTORY) -> None:
        """Initialize and register with the emitter.

        Args:
            emitter: Emitter whose events this sink records and relays.
            max_history: Maximum events kept in history.
        """
        self._emitter = emitter
        self._history: deque[ConversationEvent] = deque(maxlen=max_history)
        self._subscribers: dict[str, list[asyncio.Queue[dict[str, Any]]]] = {}
        emitter.add_observer(self)

    # ConversationEventObserver protocol implementation

    async def on_event(self, event: ConversationEvent) -> None:
        """Record an event and relay it to the conversation's subscribers."""
        self._history.append(event)
        payload = event.to_dict()
        for queue in self._subscribers.get(event.conversation_id, []):
            await queue.put(payload)

    # Outbound helpers

    async def send_conversation_message(self, conversation_id: str, message: Message) -> None:
        """Publish a conversation message to subscribers."""
        await self._emitter.emit(
            EventType.CONVERSATION_MESSAGE, conversation_id, {"message": message.to_dict()}
        )

    async def send_workflow_progress(self, conversation_id: str, execution: dict[str, Any]) -> None:
        """Publish workflow progress (plan execution snapshot) to subscribers."""
        await self._emitter.emit(EventType.WORKFLOW_PROGRESS, conversation_id, {"execution": execution})

    async def send_typing_status(self, conversation_id: str, is_typing: bool) -> None:
        """Publish a typing indicator."""
        await self._emitter.emit(EventType.TYPING_STATUS, conversation_id, {"is_typing": is_typing})

    # Subscriptions

    def subscribe(self, conversation_id: str) -> asyncio.Queue[dict[str, Any]]:
        """Create a queue receiving this conversation's events.

        Each call creates a separate queue so multiple clients can watch
        the same conversation.
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._subscribers.setdefault(conversation_id, []).append(queue)
        logger.debug("Added subscriber for conversation %s", conversation_id)
        return queue

    def unsubscribe(self, conversation_id: str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        """Remove a subscriber queue. No-op if it is not registered."""
        queues = self._subscribers.get(conversation_id)
        if not queues:
            return
        try:
            queues.remove(queue)
        except ValueError:
            return
        if not queues:
            del self._subscribers[conversation_id]
        logger.debug("Removed subscriber for conversation %s", conversation_id)

    def has_subscribers(self, conversation_id: str) -> bool:
        """Check if a conversation has active subscribers."""
        return bool(self._subscribers.get(conversation_id))

    async def create_event_stream(self, conversation_id: str) -> AsyncIterator[dict[str, Any]]:
        """Yield this conversation's events until the consumer stops iterating."""
        queue = self.subscribe(conversation_id)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(conversation_id, queue)

    # Queries

    def get_conversation_history(
        self,
        conversation_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[dict[str, Any]]:
        """Return the most recent events for a conversation, oldest first."""
        events = [e.to_dict() for e in self._history if e.conversation_id == conversation_id]
        if limit <= 0:
            return []
        return events[-limit:]

    def stats(self) -> dict[str, int]:
        """Return history and subscriber counts."""
        return {
            "total_events": len(self._history),
            "conversations_with_subscribers": len(self._subscribers),
            "subscribers": sum(len(q) for q in self._subscribers.values()),
        }
