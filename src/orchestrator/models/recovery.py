"""Recovery session models.

Defines the state of one bounded retry workflow for a provisioning
failure, plus the per-step log shown to operators.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4


class RecoveryStatus(str, Enum):
    """Recovery session status.

    ANALYZING and RETRYING are active; SUCCEEDED, ESCALATED and
    CANCELLED are terminal.
    """

    ANALYZING = "analyzing"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    ESCALATED = "escalated"
    CANCELLED = "cancelled"


TERMINAL_RECOVERY_STATUSES = frozenset({
    RecoveryStatus.SUCCEEDED,
    RecoveryStatus.ESCALATED,
    RecoveryStatus.CANCELLED,
})


@dataclass
class RecoveryStep:
    """One logged action within a recovery session."""

    step: int
    action: str
    status: str = "in_progress"  # in_progress, completed, failed
    details: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class RecoverySession:
    """Bounded retry workflow for one provisioning failure.

    Attributes:
        conversation_id: Conversation the failure occurred in.
        provider: Cloud provider (digitalocean, aws, gcp, azure).
        operation: Provisioning operation being retried.
        parameters: Original parameters, updated with corrections between attempts.
        attempt: Number of retry attempts made so far (0..max_attempts).
        last_error: Most recent error text.
    """

    conversation_id: str
    provider: str
    operation: str
    parameters: dict[str, Any]
    max_attempts: int = 3
    id: str = field(default_factory=lambda: f"recovery-{uuid4().hex[:12]}")
    attempt: int = 0
    status: RecoveryStatus = RecoveryStatus.ANALYZING
    last_error: str = ""
    diagnosis: str | None = None
    proposed_fix: str | None = None
    steps: list[RecoveryStep] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """True once the session has succeeded, escalated, or been cancelled."""
        return self.status in TERMINAL_RECOVERY_STATUSES

    def log_step(self, action: str) -> RecoveryStep:
        """Start a new logged step."""
        step = RecoveryStep(step=len(self.steps) + 1, action=action)
        self.steps.append(step)
        return step

    def close_step(self, status: str, details: str | None = None) -> None:
        """Close the most recent logged step."""
        if self.steps:
            self.steps[-1].status = status
            self.steps[-1].details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the status endpoint."""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "provider": self.provider,
            "operation": self.operation,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "diagnosis": self.diagnosis,
            "proposed_fix": self.proposed_fix,
            "last_error": self.last_error,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "steps": [
                {
                    "step": s.step,
                    "action": s.action,
                    "status": s.status,
                    "details": s.details,
                    "timestamp": s.timestamp.isoformat(),
                }
                for s in self.steps
            ],
        }
