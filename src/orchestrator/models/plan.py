"""Execution plan and step models.

Plans and steps are plain dataclasses mutated only through
``ExecutionPlanMachine``; the transition tables below are the single
source of truth for which status changes are legal.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.orchestrator.models.conversation import utc_now


class PlanStatus(str, Enum):
    """Execution plan lifecycle status."""

    DRAFT = "draft"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    """Execution step status. Transitions are monotonic."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_PLAN_STATUSES = frozenset({
    PlanStatus.COMPLETED,
    PlanStatus.FAILED,
    PlanStatus.CANCELLED,
})

# Statuses of which a conversation may hold at most one plan at a time
EXCLUSIVE_PLAN_STATUSES = frozenset({
    PlanStatus.AWAITING_APPROVAL,
    PlanStatus.EXECUTING,
})

TERMINAL_STEP_STATUSES = frozenset({
    StepStatus.COMPLETED,
    StepStatus.FAILED,
    StepStatus.SKIPPED,
})

PLAN_TRANSITIONS: dict[PlanStatus, frozenset[PlanStatus]] = {
    PlanStatus.DRAFT: frozenset({PlanStatus.AWAITING_APPROVAL, PlanStatus.CANCELLED}),
    PlanStatus.AWAITING_APPROVAL: frozenset({PlanStatus.APPROVED, PlanStatus.CANCELLED}),
    PlanStatus.APPROVED: frozenset({PlanStatus.EXECUTING, PlanStatus.CANCELLED}),
    PlanStatus.EXECUTING: frozenset({
        PlanStatus.COMPLETED,
        PlanStatus.FAILED,
        PlanStatus.CANCELLED,
    }),
}

STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING}),
    StepStatus.RUNNING: TERMINAL_STEP_STATUSES,
}


class StepSpec(BaseModel):
    """Validated input for one plan step.

    Accepts the camelCase ``estimatedTime`` key that backends tend to
    produce when asked for a JSON plan.
    """

    model_config = ConfigDict(populate_by_name=True)

    service: str = Field(..., min_length=1, description="Backend service tag")
    action: str = Field(..., min_length=1, description="Action within the service")
    description: str = Field(..., min_length=1, description="Human-readable step summary")
    parameters: dict[str, Any] = Field(default_factory=dict)
    estimated_time: str | None = Field(default=None, alias="estimatedTime")


@dataclass
class ExecutionStep:
    """One atomic operation within a plan."""

    service: str
    action: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    estimated_time: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error: str | None = None

    @classmethod
    def from_spec(cls, spec: StepSpec) -> "ExecutionStep":
        """Build a pending step from validated input."""
        return cls(
            service=spec.service,
            action=spec.action,
            description=spec.description,
            parameters=dict(spec.parameters),
            estimated_time=spec.estimated_time,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for events and API responses."""
        return {
            "id": self.id,
            "service": self.service,
            "action": self.action,
            "description": self.description,
            "parameters": self.parameters,
            "estimated_time": self.estimated_time,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class ExecutionPlan:
    """An ordered sequence of steps for one objective."""

    conversation_id: str
    user_id: str
    workspace_id: str
    objective: str
    steps: list[ExecutionStep]
    id: str = field(default_factory=lambda: str(uuid4()))
    status: PlanStatus = PlanStatus.DRAFT
    total_estimated_time: str | None = None
    created_at: str = field(default_factory=utc_now)
    approved_at: str | None = None
    completed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        """True once the plan can no longer change status."""
        return self.status in TERMINAL_PLAN_STATUSES

    @property
    def all_steps_done(self) -> bool:
        """True if every step is completed or skipped."""
        return all(
            s.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)
            for s in self.steps
        )

    def find_step(self, step_id: str) -> ExecutionStep | None:
        """Return the step with this ID, or None."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for events and API responses."""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "workspace_id": self.workspace_id,
            "objective": self.objective,
            "status": self.status.value,
            "total_estimated_time": self.total_estimated_time,
            "created_at": self.created_at,
            "approved_at": self.approved_at,
            "completed_at": self.completed_at,
            "steps": [s.to_dict() for s in self.steps],
        }
