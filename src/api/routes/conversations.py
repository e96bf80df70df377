"""FastAPI routes for conversations.

Provides endpoints to start and inspect conversations, send messages
through the orchestration coordinator, propose execution plans, and
stream orchestration events over SSE.

Message handling is synchronous from the client's point of view: the
POST returns the assistant's response once the turn completes. Longer
work (plan execution, recovery) continues in the background and is
reported on the event stream.
"""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from src.api.dependencies import get_backend_credential, get_coordinator, http_error
from src.api.schemas import (
    ConversationListResponse,
    ConversationResponse,
    CreateConversationRequest,
    CreatePlanRequest,
    EventHistoryResponse,
    MessageHistoryResponse,
    MessageResponse,
    PlanResponse,
    SendMessageRequest,
)
from src.errors import DomainError
from src.orchestrator.models.response import AssistantResponse
from src.services.conversation_coordinator import OrchestrationCoordinator
from src.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

# Seconds between keepalive pings on an idle stream
SSE_PING_SECONDS = 15.0


def plan_response(coordinator: OrchestrationCoordinator, plan) -> PlanResponse:
    """Build the plan response with its current progress."""
    return PlanResponse(**plan.to_dict(), progress=coordinator.machine.get_progress(plan.id))


def _require_conversation(coordinator: OrchestrationCoordinator, conversation_id: str):
    conversation = coordinator.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.post("", response_model=ConversationResponse, status_code=201)
def create_conversation(
    payload: CreateConversationRequest,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> ConversationResponse:
    """Start a new conversation."""
    conversation = coordinator.create_conversation(payload.workspace_id, payload.user_id)
    return ConversationResponse(**conversation.summary())


@router.get("", response_model=ConversationListResponse)
def list_conversations(
    workspace_id: str | None = Query(None),
    user_id: str | None = Query(None),
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> ConversationListResponse:
    """List conversations, optionally filtered by workspace and user."""
    conversations = coordinator.list_conversations(workspace_id=workspace_id, user_id=user_id)
    return ConversationListResponse(
        conversations=[ConversationResponse(**c.summary()) for c in conversations],
        total=len(conversations),
    )


@router.get("/{conversation_id}", response_model=ConversationResponse)
def get_conversation(
    conversation_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> ConversationResponse:
    """Get conversation metadata."""
    conversation = _require_conversation(coordinator, conversation_id)
    return ConversationResponse(**conversation.summary())


@router.post("/{conversation_id}/messages", response_model=AssistantResponse)
async def send_message(
    conversation_id: str,
    payload: SendMessageRequest,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
    credential: str | None = Depends(get_backend_credential),
) -> AssistantResponse:
    """Send a user message and return the assistant's response.

    Backend failures do not surface as HTTP errors: they come back as an
    assistant response carrying remediation text and suggested actions.

    Raises:
        HTTPException: 404 if the conversation does not exist.
    """
    try:
        return await coordinator.process_message(conversation_id, payload.content, credential)
    except DomainError as e:
        raise http_error(e) from None


@router.get("/{conversation_id}/messages", response_model=MessageHistoryResponse)
def get_messages(
    conversation_id: str,
    limit: int | None = Query(None, ge=1, le=1000),
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> MessageHistoryResponse:
    """Get the conversation's messages, oldest first."""
    conversation = _require_conversation(coordinator, conversation_id)
    messages = conversation.recent(limit) if limit else conversation.messages
    return MessageHistoryResponse(
        conversation_id=conversation_id,
        messages=[MessageResponse(**m.to_dict()) for m in messages],
    )


@router.get("/{conversation_id}/events", response_model=EventHistoryResponse)
def get_events(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=1000),
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> EventHistoryResponse:
    """Get recent orchestration events (fallback for non-SSE clients)."""
    _require_conversation(coordinator, conversation_id)
    return EventHistoryResponse(
        conversation_id=conversation_id,
        events=coordinator.notifications.get_conversation_history(conversation_id, limit),
    )


@router.post("/{conversation_id}/plans", response_model=PlanResponse, status_code=201)
async def create_plan(
    conversation_id: str,
    payload: CreatePlanRequest,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
    credential: str | None = Depends(get_backend_credential),
) -> PlanResponse:
    """Propose an execution plan and put it up for approval.

    Approval happens in the conversation: the next user message is read
    as approve, reject or modify.

    Raises:
        HTTPException: 404 if the conversation does not exist, 409 if it
            already has an active plan, 400 for malformed steps.
    """
    try:
        if payload.steps is not None:
            plan = await coordinator.propose_plan(conversation_id, payload.objective, payload.steps)
        else:
            plan = await coordinator.draft_plan_for_request(
                conversation_id, payload.request, credential
            )
    except DomainError as e:
        raise http_error(e) from None
    return plan_response(coordinator, plan)


async def _event_generator(
    request: Request,
    conversation_id: str,
    notifications: NotificationService,
    queue: asyncio.Queue,
) -> AsyncGenerator[dict, None]:
    """Generate SSE events from the conversation's subscriber queue.

    Waits on the queue with a 15-second timeout and sends a ping event
    on each timeout so proxies keep the connection open.

    Args:
        request: FastAPI request object for disconnect detection.
        conversation_id: Conversation being watched.
        notifications: Notification service owning the queue.
        queue: Subscriber queue receiving serialized events.

    Yields:
        SSE dictionaries whose data is ``{"event": ..., "data": ...}`` JSON.
    """
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=SSE_PING_SECONDS)
                yield {
                    "data": json.dumps({
                        "event": event["type"],
                        "data": event,
                    }),
                }
            except asyncio.TimeoutError:
                yield {
                    "data": json.dumps({"event": "ping"}),
                }
    finally:
        notifications.unsubscribe(conversation_id, queue)


@router.get("/{conversation_id}/stream")
async def stream_events(
    request: Request,
    conversation_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> EventSourceResponse:
    """Stream the conversation's orchestration events via Server-Sent Events.

    Raises:
        HTTPException: 404 if the conversation does not exist.
    """
    _require_conversation(coordinator, conversation_id)
    notifications = coordinator.notifications
    queue = notifications.subscribe(conversation_id)
    logger.debug("SSE stream opened for conversation %s", conversation_id)
    return EventSourceResponse(
        _event_generator(request, conversation_id, notifications, queue),
        media_type="text/event-stream",
    )
