"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the Infraflow REST API:
conversations, inbound messages, execution plans and recovery sessions.
Assistant replies use ``AssistantResponse`` from the orchestration models
directly.
"""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from src.orchestrator.models.plan import StepSpec


# Conversation schemas


class CreateConversationRequest(BaseModel):
    """Request schema for starting a conversation."""

    workspace_id: str = Field(..., min_length=1, max_length=200)
    user_id: str = Field(..., min_length=1, max_length=200)


class ConversationResponse(BaseModel):
    """Conversation metadata without the message list."""

    id: str
    workspace_id: str
    user_id: str
    status: str
    message_count: int
    active_workflows: list[str]
    created_at: str
    updated_at: str
    last_activity_at: str


class ConversationListResponse(BaseModel):
    """Response schema for listing conversations."""

    conversations: list[ConversationResponse]
    total: int


class SendMessageRequest(BaseModel):
    """Request for sending a user message to the coordinator."""

    content: str = Field(..., min_length=1, description="User message text")


class MessageResponse(BaseModel):
    """A single message in conversation history."""

    id: str
    conversation_id: str
    role: str
    content: str
    timestamp: str


class MessageHistoryResponse(BaseModel):
    """Response for conversation message history."""

    conversation_id: str
    messages: list[MessageResponse]


class EventHistoryResponse(BaseModel):
    """Recent orchestration events for one conversation."""

    conversation_id: str
    events: list[dict[str, Any]]


# Plan schemas


class CreatePlanRequest(BaseModel):
    """Request for proposing an execution plan.

    Either explicit ``steps`` (with an ``objective``) or a free-text
    ``request`` that the backend drafts into a plan.
    """

    objective: str | None = Field(None, max_length=1000)
    steps: list[StepSpec] | None = None
    request: str | None = Field(None, max_length=4000)

    @model_validator(mode="after")
    def _steps_or_request(self) -> "CreatePlanRequest":
        if self.steps is None and not self.request:
            raise ValueError("Provide either steps or request")
        if self.steps is not None and not self.objective:
            raise ValueError("objective is required with explicit steps")
        return self


class PlanStepResponse(BaseModel):
    """Response schema for one plan step."""

    id: str
    service: str
    action: str
    description: str
    parameters: dict[str, Any]
    status: str
    estimated_time: str | None = None
    result: Any = None
    error: str | None = None


class PlanResponse(BaseModel):
    """Response schema for an execution plan."""

    id: str
    conversation_id: str
    user_id: str
    workspace_id: str
    objective: str
    status: str
    steps: list[PlanStepResponse]
    total_estimated_time: str | None = None
    created_at: str
    approved_at: str | None = None
    completed_at: str | None = None
    progress: dict[str, Any] = Field(default_factory=dict)


# Recovery schemas


class RecoveryStepResponse(BaseModel):
    """One logged step of a recovery session."""

    step: int
    action: str
    status: str
    timestamp: str
    details: str | None = None


class RecoveryResponse(BaseModel):
    """Response schema for a recovery session."""

    id: str
    conversation_id: str
    provider: str
    operation: str
    status: str
    attempt: int
    max_attempts: int
    last_error: str | None = None
    diagnosis: str | None = None
    proposed_fix: str | None = None
    steps: list[RecoveryStepResponse]
    started_at: str
    ended_at: str | None = None


class CancelResponse(BaseModel):
    """Response for cancel endpoints."""

    id: str
    cancelled: bool
    status: str
