"""Data models for the orchestration core.

This module exports models for conversations, execution plans,
recovery sessions, the backend contract, and coordinator responses.
"""

from src.orchestrator.models.backend import (
    BackendReply,
    ChatMessage,
    ProvisioningResult,
    ToolCall,
    Usage,
)
from src.orchestrator.models.conversation import (
    Conversation,
    ConversationContext,
    ConversationStatus,
    CostLimits,
    Message,
    MessageRole,
)
from src.orchestrator.models.plan import (
    EXCLUSIVE_PLAN_STATUSES,
    TERMINAL_PLAN_STATUSES,
    ExecutionPlan,
    ExecutionStep,
    PlanStatus,
    StepSpec,
    StepStatus,
)
from src.orchestrator.models.recovery import (
    RecoverySession,
    RecoveryStatus,
    RecoveryStep,
)
from src.orchestrator.models.response import (
    AssistantResponse,
    Attachment,
    SuggestedAction,
)

__all__ = [
    # Backend contract
    "BackendReply",
    "ChatMessage",
    "ProvisioningResult",
    "ToolCall",
    "Usage",
    # Conversation
    "Conversation",
    "ConversationContext",
    "ConversationStatus",
    "CostLimits",
    "Message",
    "MessageRole",
    # Plan
    "EXCLUSIVE_PLAN_STATUSES",
    "TERMINAL_PLAN_STATUSES",
    "ExecutionPlan",
    "ExecutionStep",
    "PlanStatus",
    "StepSpec",
    "StepStatus",
    # Recovery
    "RecoverySession",
    "RecoveryStatus",
    "RecoveryStep",
    # Response
    "AssistantResponse",
    "Attachment",
    "SuggestedAction",
]
