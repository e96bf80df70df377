"""Execution plan state machine and approval gate."""

from src.orchestrator.planning.state_machine import (
    ApprovalDecision,
    ExecutionPlanMachine,
    estimate_total_time,
)

__all__ = [
    "ApprovalDecision",
    "ExecutionPlanMachine",
    "estimate_total_time",
]
