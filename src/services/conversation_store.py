"""In-memory conversation registry.

Holds every conversation for the lifetime of the process, keyed by ID,
plus one asyncio.Lock per conversation that serializes message
processing. Created at application startup and cleared at shutdown;
nothing is persisted.

Example:
    store = ConversationStore()
    conversation = store.create("ws-1", "user-1")
    async with store.lock(conversation.id):
        conversation.append(message)
"""

import asyncio
import logging

from src.errors import NotFoundError
from src.orchestrator.models.conversation import Conversation

logger = logging.getLogger(__name__)


class ConversationStore:
    """Registry of conversations owned by the coordinator.

    Thread-safe for single-process usage (FastAPI's async loop).
    Not designed for multi-process deployment.

    Attributes:
        _conversations: Dict of conversation_id -> Conversation.
        _locks: Dict of conversation_id -> asyncio.Lock.
    """

    def __init__(self) -> None:
        """Initialize with no conversations."""
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def create(self, workspace_id: str, user_id: str) -> Conversation:
        """Create and register a conversation with the default context.

        Args:
            workspace_id: Owning workspace.
            user_id: Owning user.

        Returns:
            The new Conversation.
        """
        conversation = Conversation(workspace_id=workspace_id, user_id=user_id)
        self._conversations[conversation.id] = conversation
        self._locks[conversation.id] = asyncio.Lock()
        logger.info(
            "Created conversation %s (workspace=%s, user=%s)",
            conversation.id,
            workspace_id,
            user_id,
        )
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation without raising. Returns None if not found."""
        return self._conversations.get(conversation_id)

    def require(self, conversation_id: str) -> Conversation:
        """Get a conversation or raise.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    def list_conversations(
        self,
        workspace_id: str | None = None,
        user_id: str | None = None,
    ) -> list[Conversation]:
        """List conversations, optionally filtered by workspace and user.

        Returns:
            Conversations ordered by most recent activity first.
        """
        conversations = [
            c for c in self._conversations.values()
            if (workspace_id is None or c.workspace_id == workspace_id)
            and (user_id is None or c.user_id == user_id)
        ]
        return sorted(conversations, key=lambda c: c.last_activity_at, reverse=True)

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Return the lock serializing work on one conversation.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        self.require(conversation_id)
        return self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._conversations)

    def clear(self) -> None:
        """Drop every conversation. Called at shutdown."""
        count = len(self._conversations)
        self._conversations.clear()
        self._locks.clear()
        logger.info("Cleared %d conversations", count)
