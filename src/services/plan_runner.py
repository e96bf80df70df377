"""Executes approved plans step by step.

Each step is one chat backend call with the step's service, action and
parameters. Execution stops at the first failed step; the plan is then
left in ``executing`` with its partial record and reported as stopped.
A cancelled plan is noticed before the next step starts.

Progress goes out two ways: ``execution_*`` events for machine
consumers, and assistant notices through the ``notify`` callback,
which the coordinator uses to append to the conversation history.
"""

import json
import logging
from typing import Awaitable, Callable

from src.orchestrator.events import ConversationEventEmitter, EventType
from src.orchestrator.models.backend import ChatMessage
from src.orchestrator.models.plan import ExecutionPlan, ExecutionStep, PlanStatus
from src.orchestrator.planning import ExecutionPlanMachine
from src.services.backend_gateway import ChatBackend

logger = logging.getLogger(__name__)

NotifyFn = Callable[[str], Awaitable[None]]

STEP_SYSTEM_PROMPT = (
    "You are executing a pre-approved infrastructure step. "
    "Execute the requested action using the available tools."
)


def _step_prompt(step: ExecutionStep) -> str:
    return (
        f"Execute this step: {step.description}\n"
        f"Service: {step.service}\n"
        f"Action: {step.action}\n"
        f"Parameters: {json.dumps(step.parameters, sort_keys=True, default=str)}"
    )


class PlanRunner:
    """Drives an approved plan through the state machine."""

    def __init__(
        self,
        machine: ExecutionPlanMachine,
        backend: ChatBackend,
        emitter: ConversationEventEmitter,
    ) -> None:
        self._machine = machine
        self._backend = backend
        self._emitter = emitter

    async def run(self, plan: ExecutionPlan, credential: str | None, notify: NotifyFn) -> ExecutionPlan:
        """Execute every step of an approved plan in order.

        Args:
            plan: Plan in ``approved`` status.
            credential: Backend credential for the step calls.
            notify: Coroutine publishing an assistant notice to the conversation.

        Returns:
            The plan in its final status for this run.
        """
        conversation_id = plan.conversation_id
        await self._emitter.emit(
            EventType.EXECUTION_STARTED,
            conversation_id,
            {"plan_id": plan.id, "objective": plan.objective, "total_steps": len(plan.steps)},
        )
        try:
            for index, step in enumerate(plan.steps, start=1):
                if plan.status not in (PlanStatus.APPROVED, PlanStatus.EXECUTING):
                    logger.info("Plan %s is %s; stopping before step %d", plan.id, plan.status.value, index)
                    break
                if not await self._run_step(plan, step, index, credential, notify):
                    break
        except Exception as e:
            logger.exception("Plan %s execution error", plan.id)
            if plan.status is PlanStatus.EXECUTING:
                self._machine.fail_plan(plan.id, str(e))
            await notify(f"❌ **Execution Error**\n\nPlan execution failed: {e}")
            await self._completed(plan)
            return plan

        if plan.status is PlanStatus.COMPLETED:
            await notify(
                "🎉 **Execution Plan Completed Successfully!**\n\n"
                f'All steps for "{plan.objective}" have been executed.'
            )
        elif plan.status is PlanStatus.CANCELLED:
            await notify(
                "🛑 **Execution Plan Cancelled**\n\n"
                "Remaining steps were not started. Steps already finished are unchanged."
            )
        else:
            await notify(
                "⚠️ **Execution Plan Stopped**\n\n"
                "Execution was halted due to a step failure. Please check the updates above.\n\n"
                "The plan still holds this conversation. Cancel it with "
                f"`POST /api/plans/{plan.id}/cancel` before starting a new one."
            )
        await self._completed(plan)
        return plan

    async def _run_step(
        self,
        plan: ExecutionPlan,
        step: ExecutionStep,
        index: int,
        credential: str | None,
        notify: NotifyFn,
    ) -> bool:
        conversation_id = plan.conversation_id
        self._machine.execute_step(plan.id, step.id)
        await self._emitter.emit(
            EventType.EXECUTION_STEP_STARTED,
            conversation_id,
            {"plan_id": plan.id, "step": step.to_dict(), "index": index},
        )
        await notify(f"🔄 Starting: {step.description}")

        try:
            reply = await self._backend.chat(
                [
                    ChatMessage(role="system", content=STEP_SYSTEM_PROMPT),
                    ChatMessage(role="user", content=_step_prompt(step)),
                ],
                credential,
                plan.workspace_id,
                conversation_id,
            )
        except Exception as e:
            logger.warning("Plan %s step %d failed: %s", plan.id, index, e)
            self._machine.fail_step(plan.id, step.id, str(e))
            await self._emitter.emit(
                EventType.EXECUTION_STEP_FAILED,
                conversation_id,
                {"plan_id": plan.id, "step": step.to_dict(), "index": index, "error": str(e)},
            )
            await notify(f"❌ Failed: {step.description}\nError: {e}")
            return False

        self._machine.complete_step(
            plan.id,
            step.id,
            {
                "message": reply.message,
                "tool_calls": [call.model_dump() for call in reply.tool_calls],
                "usage": reply.usage.model_dump() if reply.usage else None,
            },
        )
        await self._emitter.emit(
            EventType.EXECUTION_STEP_COMPLETED,
            conversation_id,
            {
                "plan_id": plan.id,
                "step": step.to_dict(),
                "index": index,
                "progress": self._machine.get_progress(plan.id),
            },
        )
        await notify(f"✅ Completed: {step.description}")
        return True

    async def _completed(self, plan: ExecutionPlan) -> None:
        await self._emitter.emit(
            EventType.EXECUTION_COMPLETED,
            plan.conversation_id,
            {
                "plan_id": plan.id,
                "status": plan.status.value,
                "stopped": plan.status is PlanStatus.EXECUTING,
                "progress": self._machine.get_progress(plan.id),
            },
        )
        await self._emitter.emit(
            EventType.WORKFLOW_PROGRESS,
            plan.conversation_id,
            {"execution": plan.to_dict()},
        )
