"""Execution plan state machine with the human approval gate.

Owns plan and step lifecycle. Plans move
draft -> awaiting_approval -> approved -> executing -> completed, and
may be cancelled from any non-terminal status. Steps move
pending -> running -> completed | failed | skipped and never leave a
terminal status.

At most one plan per conversation may hold awaiting_approval or
executing at a time. The machine enforces this with an active-plan
index keyed by conversation ID; a plan is evicted from the index when
it reaches a terminal status.

Step failure does not touch the remaining steps. The caller decides
whether to keep going; a plan whose driver halted after a failure stays
in ``executing`` with its partial step record.

Example:
    machine = ExecutionPlanMachine(rules.approval)
    plan = machine.create_plan("conv-1", "user-1", "ws-1", "Deploy API", steps)
    machine.request_approval(plan)
    if machine.parse_approval_response("yes") is ApprovalDecision.APPROVE:
        machine.approve_plan(plan.id)
"""

import json
import logging
import re
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from src.errors import ConflictError, NotFoundError, ValidationError
from src.orchestrator.models.conversation import utc_now
from src.orchestrator.models.plan import (
    PLAN_TRANSITIONS,
    STEP_TRANSITIONS,
    ExecutionPlan,
    ExecutionStep,
    PlanStatus,
    StepSpec,
    StepStatus,
)
from src.orchestrator.rules.schema import ApprovalRules

logger = logging.getLogger(__name__)

SECONDS_PER_STEP = 30

_TOKEN_PATTERN = re.compile(r"[a-z0-9']+")

_STATUS_ICONS = {
    StepStatus.PENDING: "⏳",
    StepStatus.RUNNING: "🔄",
    StepStatus.COMPLETED: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.SKIPPED: "⏭️",
}


class ApprovalDecision(str, Enum):
    """Classification of a free-text reply to an approval request."""

    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"
    UNCLEAR = "unclear"


def estimate_total_time(step_count: int) -> str:
    """Estimate plan duration at a fixed cost per step.

    Args:
        step_count: Number of steps in the plan.

    Returns:
        Human-readable duration (seconds, minutes, or hours).
    """
    total_seconds = step_count * SECONDS_PER_STEP
    if total_seconds < 60:
        return f"{total_seconds} seconds"
    if total_seconds < 3600:
        return f"{-(-total_seconds // 60)} minutes"
    return f"{-(-total_seconds // 3600)} hours"


class ExecutionPlanMachine:
    """Owns execution plans and enforces their state transitions.

    Attributes:
        _plans: All plans created in this process, by plan ID.
        _active: Plan holding the conversation's approval/execution slot,
            by conversation ID.
    """

    def __init__(self, approval_rules: ApprovalRules) -> None:
        """Initialize with approval lexicons and no plans.

        Args:
            approval_rules: Token lexicons for parse_approval_response.
        """
        self._approval_rules = approval_rules
        self._plans: dict[str, ExecutionPlan] = {}
        self._active: dict[str, ExecutionPlan] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_plan(self, plan_id: str) -> ExecutionPlan | None:
        """Return a plan by ID, or None."""
        return self._plans.get(plan_id)

    def get_active_plan(self, conversation_id: str) -> ExecutionPlan | None:
        """Return the plan holding the conversation's active slot, or None."""
        return self._active.get(conversation_id)

    def list_plans(self, conversation_id: str | None = None) -> list[ExecutionPlan]:
        """List plans, optionally restricted to one conversation."""
        plans = list(self._plans.values())
        if conversation_id is not None:
            plans = [p for p in plans if p.conversation_id == conversation_id]
        return plans

    def _require_plan(self, plan_id: str) -> ExecutionPlan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan

    def _require_step(self, plan: ExecutionPlan, step_id: str) -> ExecutionStep:
        step = plan.find_step(step_id)
        if step is None:
            raise NotFoundError("Step", step_id)
        return step

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, plan: ExecutionPlan, target: PlanStatus) -> None:
        allowed = PLAN_TRANSITIONS.get(plan.status, frozenset())
        if target not in allowed:
            raise ConflictError(
                f"Plan {plan.id} cannot move from {plan.status.value} to {target.value}"
            )
        previous = plan.status
        plan.status = target
        if plan.is_terminal:
            if self._active.get(plan.conversation_id) is plan:
                del self._active[plan.conversation_id]
            if target is PlanStatus.COMPLETED:
                plan.completed_at = utc_now()
        logger.info(
            "Plan %s: %s -> %s (conversation %s)",
            plan.id,
            previous.value,
            target.value,
            plan.conversation_id,
        )

    def _transition_step(
        self,
        plan: ExecutionPlan,
        step: ExecutionStep,
        target: StepStatus,
    ) -> None:
        allowed = STEP_TRANSITIONS.get(step.status, frozenset())
        if target not in allowed:
            raise ConflictError(
                f"Step {step.id} cannot move from {step.status.value} to {target.value}"
            )
        step.status = target
        logger.debug("Plan %s step %s -> %s", plan.id, step.id, target.value)

    def _claim_slot(self, plan: ExecutionPlan) -> None:
        holder = self._active.get(plan.conversation_id)
        if holder is not None and holder is not plan:
            raise ConflictError(
                f"Conversation {plan.conversation_id} already has plan "
                f"{holder.id} in status {holder.status.value}"
            )
        self._active[plan.conversation_id] = plan

    # ------------------------------------------------------------------
    # Plan operations
    # ------------------------------------------------------------------

    def create_plan(
        self,
        conversation_id: str,
        user_id: str,
        workspace_id: str,
        objective: str,
        steps: list[StepSpec | dict[str, Any]],
    ) -> ExecutionPlan:
        """Create a plan in ``draft``.

        Args:
            conversation_id: Owning conversation.
            user_id: Requesting user.
            workspace_id: Target workspace.
            objective: What the plan achieves.
            steps: Step definitions (StepSpec or dicts with the same keys).

        Returns:
            The new draft plan.

        Raises:
            ValidationError: If steps is empty, the objective is blank,
                or a step is malformed.
        """
        if not objective or not objective.strip():
            raise ValidationError("Plan objective must not be empty")
        if not steps:
            raise ValidationError("Plan must contain at least one step")

        specs: list[StepSpec] = []
        for index, raw in enumerate(steps, start=1):
            if isinstance(raw, StepSpec):
                specs.append(raw)
                continue
            try:
                specs.append(StepSpec.model_validate(raw))
            except PydanticValidationError as e:
                raise ValidationError(f"Step {index} is invalid: {e}") from e

        plan = ExecutionPlan(
            conversation_id=conversation_id,
            user_id=user_id,
            workspace_id=workspace_id,
            objective=objective.strip(),
            steps=[ExecutionStep.from_spec(spec) for spec in specs],
            total_estimated_time=estimate_total_time(len(specs)),
        )
        self._plans[plan.id] = plan
        logger.info(
            "Created plan %s with %d steps for conversation %s",
            plan.id,
            len(plan.steps),
            conversation_id,
        )
        return plan

    def request_approval(self, plan: ExecutionPlan) -> ExecutionPlan:
        """Move a draft plan to ``awaiting_approval``.

        Raises:
            ConflictError: If another plan already holds the conversation's
                slot, or the plan is not a draft.
        """
        if plan.status is not PlanStatus.DRAFT:
            raise ConflictError(f"Plan {plan.id} is {plan.status.value}, not draft")
        self._claim_slot(plan)
        self._transition(plan, PlanStatus.AWAITING_APPROVAL)
        return plan

    def parse_approval_response(self, text: str) -> ApprovalDecision:
        """Classify a free-text reply to an approval request.

        Reject tokens win over modify tokens, which win over approve
        tokens, so "yes, but cancel" is a rejection.

        Args:
            text: The user's reply.

        Returns:
            ApprovalDecision; UNCLEAR when no lexicon matches.
        """
        normalized = " ".join(_TOKEN_PATTERN.findall((text or "").lower()))
        if not normalized:
            return ApprovalDecision.UNCLEAR
        tokens = set(normalized.split())
        padded = f" {normalized} "

        def _hit(lexicon: list[str]) -> bool:
            return any(
                (term in tokens) if " " not in term else (f" {term} " in padded)
                for term in lexicon
            )

        if _hit(self._approval_rules.reject):
            return ApprovalDecision.REJECT
        if _hit(self._approval_rules.modify):
            return ApprovalDecision.MODIFY
        if _hit(self._approval_rules.approve):
            return ApprovalDecision.APPROVE
        return ApprovalDecision.UNCLEAR

    def approve_plan(self, plan_id: str) -> ExecutionPlan:
        """Move a plan from ``awaiting_approval`` to ``approved``.

        Raises:
            NotFoundError: If no plan with this ID is awaiting approval.
                A second approval of the same plan lands here, so it never
                re-triggers execution.
        """
        plan = self._plans.get(plan_id)
        if plan is None or plan.status is not PlanStatus.AWAITING_APPROVAL:
            raise NotFoundError("Plan awaiting approval", plan_id)
        self._transition(plan, PlanStatus.APPROVED)
        plan.approved_at = utc_now()
        return plan

    def cancel_plan(self, plan_id: str) -> ExecutionPlan:
        """Cancel a plan from any non-terminal status.

        Cancellation is cooperative: an in-flight step is not preempted,
        but the driver sees the status and stops before the next step.

        Raises:
            NotFoundError: If the plan does not exist.
        """
        plan = self._require_plan(plan_id)
        if plan.is_terminal:
            logger.info("Plan %s already %s; cancel ignored", plan.id, plan.status.value)
            return plan
        self._transition(plan, PlanStatus.CANCELLED)
        return plan

    def fail_plan(self, plan_id: str, reason: str) -> ExecutionPlan:
        """Mark an executing plan ``failed`` after an unexpected driver error.

        Step failures do not go through here; they leave the plan executing.
        """
        plan = self._require_plan(plan_id)
        self._transition(plan, PlanStatus.FAILED)
        logger.warning("Plan %s failed: %s", plan.id, reason)
        return plan

    # ------------------------------------------------------------------
    # Step operations
    # ------------------------------------------------------------------

    def execute_step(self, plan_id: str, step_id: str) -> ExecutionStep:
        """Start a step. The plan moves to ``executing`` on its first step.

        Raises:
            NotFoundError: If the plan or step does not exist.
            ConflictError: If the plan is not approved/executing or the
                step is not pending.
        """
        plan = self._require_plan(plan_id)
        step = self._require_step(plan, step_id)
        if plan.status is PlanStatus.APPROVED:
            self._claim_slot(plan)
            self._transition(plan, PlanStatus.EXECUTING)
        elif plan.status is not PlanStatus.EXECUTING:
            raise ConflictError(
                f"Plan {plan.id} is {plan.status.value}; steps cannot start"
            )
        self._transition_step(plan, step, StepStatus.RUNNING)
        return step

    def complete_step(self, plan_id: str, step_id: str, result: Any = None) -> ExecutionStep:
        """Mark a running step completed; completes the plan when every step is done."""
        plan = self._require_plan(plan_id)
        step = self._require_step(plan, step_id)
        self._transition_step(plan, step, StepStatus.COMPLETED)
        step.result = result
        self._maybe_complete(plan)
        return step

    def fail_step(self, plan_id: str, step_id: str, error_message: str) -> ExecutionStep:
        """Mark a running step failed. Remaining steps are left untouched."""
        plan = self._require_plan(plan_id)
        step = self._require_step(plan, step_id)
        self._transition_step(plan, step, StepStatus.FAILED)
        step.error = error_message
        return step

    def skip_step(self, plan_id: str, step_id: str, reason: str | None = None) -> ExecutionStep:
        """Mark a running step skipped; completes the plan when every step is done."""
        plan = self._require_plan(plan_id)
        step = self._require_step(plan, step_id)
        self._transition_step(plan, step, StepStatus.SKIPPED)
        step.result = {"skipped": True, "reason": reason}
        self._maybe_complete(plan)
        return step

    def _maybe_complete(self, plan: ExecutionPlan) -> None:
        if plan.status is PlanStatus.EXECUTING and plan.all_steps_done:
            self._transition(plan, PlanStatus.COMPLETED)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_progress(self, plan_id: str) -> dict[str, int]:
        """Return completed/total/percentage for a plan (zeros if unknown)."""
        plan = self._plans.get(plan_id)
        if plan is None or not plan.steps:
            return {"completed": 0, "total": 0, "percentage": 0}
        completed = sum(
            1 for s in plan.steps
            if s.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)
        )
        return {
            "completed": completed,
            "total": len(plan.steps),
            "percentage": round(completed * 100 / len(plan.steps)),
        }

    @staticmethod
    def format_plan_for_approval(plan: ExecutionPlan) -> str:
        """Render a plan for the approval prompt. Output is deterministic."""
        lines = [
            f"## 📋 Execution Plan: {plan.objective}",
            "",
            f"**Total Steps**: {len(plan.steps)}",
            f"**Estimated Time**: {plan.total_estimated_time or 'Unknown'}",
            "",
            "### Steps to Execute:",
            "",
        ]
        for index, step in enumerate(plan.steps, start=1):
            lines.append(f"{index}. {_STATUS_ICONS[step.status]} {step.description}")
            lines.append(f"   - Service: {step.service}")
            lines.append(f"   - Action: {step.action}")
            if step.estimated_time:
                lines.append(f"   - Estimated Time: {step.estimated_time}")
            if step.parameters:
                lines.append("   - Parameters:")
                for key in sorted(step.parameters):
                    value = step.parameters[key]
                    if isinstance(value, (dict, list)):
                        rendered = json.dumps(value, sort_keys=True)
                    else:
                        rendered = str(value)
                    lines.append(f"     - {key}: {rendered}")
            lines.append("")

        lines.extend([
            "---",
            "🔐 **Safety Notice**: This plan will make real changes to your infrastructure.",
            "",
            "**Do you want to execute this plan?**",
            '- Reply "yes" or "execute" to proceed',
            '- Reply "no" or "cancel" to abort',
            '- Reply "modify" to adjust the plan',
        ])
        return "\n".join(lines)
