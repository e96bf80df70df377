"""Orchestration coordinator: the per-conversation message router.

Every inbound message goes through priority dispatch:

1. The conversation has a plan awaiting approval -> approval handler.
2. The message is an explicit execute command -> one-shot execution of
   the most recent deployment request via the tool-execution backend.
3. The message is a deployment request -> autonomous loop.
4. Otherwise -> one plain chat turn.

The coordinator is the only writer of conversation and plan state. The
loop controller, recovery engine and plan runner receive what they need
per call and hand results back; the coordinator appends messages and
updates status. Work on one conversation is serialized by the store's
per-conversation lock; different conversations run concurrently.

Backend failures are classified here. A provisioning failure starts a
recovery session and takes precedence over every other remediation;
other failures map to a fixed message and suggested actions by tag.
"""

import asyncio
import json
import logging
import re
from typing import Any

from src.config import InfraflowConfig
from src.errors import (
    ConflictError,
    ErrorCategory,
    NotFoundError,
    build_remediation,
    classify_backend_error,
    infer_llm_provider,
)
from src.orchestrator.autonomous import AutonomousLoopController
from src.orchestrator.models.backend import ChatMessage, Usage
from src.orchestrator.models.conversation import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
)
from src.orchestrator.models.plan import ExecutionPlan, PlanStatus, StepSpec
from src.orchestrator.models.response import AssistantResponse, Attachment, SuggestedAction
from src.orchestrator.planning import ApprovalDecision, ExecutionPlanMachine
from src.orchestrator.recovery import ErrorRecoveryEngine, ProvisioningFailureClassifier
from src.orchestrator.rules.schema import RuleSet
from src.orchestrator.system_prompt import build_system_prompt
from src.services.backend_gateway import ChatBackend, ToolExecutionBackend
from src.services.conversation_store import ConversationStore
from src.services.notification_service import NotificationService
from src.services.plan_runner import PlanRunner

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9'/]+")
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

PLAN_DRAFT_PROMPT = """Break the following infrastructure request into an execution plan.
Respond with JSON only:
{{"objective": "...", "steps": [{{"service": "...", "action": "...", "description": "...", "parameters": {{}}, "estimatedTime": "..."}}]}}

Request: {request}"""

GENERIC_ERROR_MESSAGE = "I encountered an error processing your request."


def _normalize(text: str) -> str:
    return " ".join(_TOKEN_PATTERN.findall((text or "").lower()))


class OrchestrationCoordinator:
    """Routes inbound messages and owns conversation and plan state."""

    def __init__(
        self,
        *,
        store: ConversationStore,
        machine: ExecutionPlanMachine,
        loop_controller: AutonomousLoopController,
        recovery_engine: ErrorRecoveryEngine,
        failure_classifier: ProvisioningFailureClassifier,
        plan_runner: PlanRunner,
        notifications: NotificationService,
        chat_backend: ChatBackend,
        tool_backend: ToolExecutionBackend,
        rules: RuleSet,
        config: InfraflowConfig,
    ) -> None:
        self.store = store
        self.machine = machine
        self.recovery_engine = recovery_engine
        self.notifications = notifications
        self._loop_controller = loop_controller
        self._failure_classifier = failure_classifier
        self._plan_runner = plan_runner
        self._chat_backend = chat_backend
        self._tool_backend = tool_backend
        self._rules = rules
        self._config = config
        self._deployment_patterns = [re.compile(p) for p in rules.intent.deployment_patterns]
        self._active_loops: set[str] = set()
        self._plan_tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    def create_conversation(self, workspace_id: str, user_id: str) -> Conversation:
        """Start a new conversation with the default context."""
        return self.store.create(workspace_id, user_id)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation, or None."""
        return self.store.get(conversation_id)

    def list_conversations(
        self,
        workspace_id: str | None = None,
        user_id: str | None = None,
    ) -> list[Conversation]:
        """List conversations, optionally filtered."""
        return self.store.list_conversations(workspace_id=workspace_id, user_id=user_id)

    def is_loop_active(self, conversation_id: str) -> bool:
        """True while an autonomous loop is driving the conversation."""
        return conversation_id in self._active_loops

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_execute_command(self, text: str) -> bool:
        """Match the execute-command lexicon as whole words or phrases."""
        padded = f" {_normalize(text)} "
        return any(f" {command} " in padded for command in self._rules.intent.execute_commands)

    def is_deployment_request(self, text: str) -> bool:
        """Match the deployment keyword lexicon or any deployment pattern."""
        lowered = (text or "").lower()
        if any(keyword in lowered for keyword in self._rules.intent.deployment_keywords):
            return True
        return any(pattern.search(lowered) for pattern in self._deployment_patterns)

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    async def process_message(
        self,
        conversation_id: str,
        text: str,
        credential: str | None = None,
    ) -> AssistantResponse:
        """Handle one inbound user message.

        Args:
            conversation_id: Target conversation.
            text: The user's message.
            credential: Backend credential for this turn. Never stored or logged.

        Returns:
            AssistantResponse for the user.

        Raises:
            NotFoundError: If the conversation does not exist.
        """
        conversation = self.store.require(conversation_id)
        async with self.store.lock(conversation_id):
            self._append(conversation, MessageRole.USER, text, credential=credential)
            await self.notifications.send_typing_status(conversation_id, True)
            try:
                return await self._dispatch(conversation, text, credential)
            finally:
                await self.notifications.send_typing_status(conversation_id, False)

    async def _dispatch(
        self,
        conversation: Conversation,
        text: str,
        credential: str | None,
    ) -> AssistantResponse:
        plan = self.machine.get_active_plan(conversation.id)
        try:
            if plan is not None and plan.status is PlanStatus.AWAITING_APPROVAL:
                return await self._handle_approval(conversation, plan, text, credential)
            if self.is_execute_command(text):
                return await self._handle_execute_command(conversation, credential)
            if self.is_deployment_request(text):
                return await self.run_autonomous(conversation, text, credential)
            return await self._chat_turn(conversation, credential)
        except ConflictError as e:
            return await self._reply(conversation, f"⚠️ {e}", response_type="error")
        except Exception as e:
            return await self._handle_backend_error(conversation, e, text, credential)

    # ------------------------------------------------------------------
    # Route 1: approval gate
    # ------------------------------------------------------------------

    async def _handle_approval(
        self,
        conversation: Conversation,
        plan: ExecutionPlan,
        text: str,
        credential: str | None,
    ) -> AssistantResponse:
        decision = self.machine.parse_approval_response(text)
        logger.info("Approval reply for plan %s classified as %s", plan.id, decision.value)

        if decision is ApprovalDecision.APPROVE:
            if self.is_loop_active(conversation.id):
                raise ConflictError(
                    f"Plan {plan.id} cannot be approved while an autonomous loop is running"
                )
            try:
                self.machine.approve_plan(plan.id)
            except NotFoundError:
                logger.info("Plan %s no longer awaiting approval; ignored", plan.id)
                return await self._reply(
                    conversation, "This plan is no longer awaiting approval."
                )
            self._start_plan_execution(conversation, plan, credential)
            return await self._reply(
                conversation,
                "✅ **Execution Plan Approved & Started**\n\n"
                f"I'm now executing the approved plan for: {plan.objective}\n\n"
                "You'll receive real-time updates as each step completes.",
            )

        if decision is ApprovalDecision.REJECT:
            self.machine.cancel_plan(plan.id)
            conversation.active_workflows.discard(plan.id)
            return await self._reply(
                conversation,
                "❌ **Execution Plan Cancelled**\n\n"
                f'The execution plan for "{plan.objective}" has been cancelled. '
                "No changes will be made to your infrastructure.",
            )

        if decision is ApprovalDecision.MODIFY:
            return await self._reply(
                conversation,
                "🔧 **Plan Modification Requested**\n\n"
                "Please describe what you'd like to change about the execution plan for: "
                f"{plan.objective}\n\n"
                'The current plan stays on hold. Reply "no" to discard it before '
                "requesting an updated plan.",
            )

        return await self._reply(
            conversation,
            "❓ **Please Confirm Your Decision**\n\n"
            f"{self.machine.format_plan_for_approval(plan)}",
        )

    def _start_plan_execution(
        self,
        conversation: Conversation,
        plan: ExecutionPlan,
        credential: str | None,
    ) -> None:
        conversation.active_workflows.add(plan.id)

        async def notify(content: str) -> None:
            await self._publish(conversation, content)

        async def run() -> None:
            try:
                await self._plan_runner.run(plan, credential, notify)
            except asyncio.CancelledError:
                logger.info("Plan %s execution task cancelled", plan.id)
                raise
            except Exception:
                logger.exception("Plan %s execution task failed", plan.id)
            finally:
                conversation.active_workflows.discard(plan.id)

        task = asyncio.create_task(run())
        self._plan_tasks[plan.id] = task
        task.add_done_callback(lambda _t, pid=plan.id: self._plan_tasks.pop(pid, None))

    def is_plan_running(self, conversation_id: str) -> bool:
        """True while a plan runner task is driving this conversation."""
        for plan_id, task in self._plan_tasks.items():
            plan = self.machine.get_plan(plan_id)
            if not task.done() and plan is not None and plan.conversation_id == conversation_id:
                return True
        return False

    async def wait_for_plan(self, plan_id: str) -> ExecutionPlan | None:
        """Wait until a plan's background execution finishes."""
        task = self._plan_tasks.get(plan_id)
        if task is not None:
            await task
        return self.machine.get_plan(plan_id)

    # ------------------------------------------------------------------
    # Route 2: explicit execute command
    # ------------------------------------------------------------------

    async def _handle_execute_command(
        self,
        conversation: Conversation,
        credential: str | None,
    ) -> AssistantResponse:
        if not credential:
            return await self._reply(
                conversation,
                "❌ Authentication required to execute deployment plans.",
                response_type="error",
            )

        request_text = None
        for message in reversed(conversation.recent(self._config.chat.history_window)):
            if message.role is MessageRole.USER and self.is_deployment_request(message.content):
                request_text = message.content
                break
        if request_text is None:
            return await self._reply(
                conversation,
                "❌ No deployment request found to execute. "
                "Please provide a deployment request first.",
                response_type="error",
            )

        logger.info("Executing deployment request for conversation %s", conversation.id)
        plan = await self._tool_backend.execute_plan(
            conversation.id,
            conversation.user_id,
            conversation.workspace_id,
            credential,
            request_text,
        )
        conversation.active_workflows.add(plan.id)
        await self.notifications.send_workflow_progress(conversation.id, plan.to_dict())
        first_step = plan.steps[0].description if plan.steps else "Initializing..."
        return await self._reply(
            conversation,
            "🚀 **Deployment Execution Started**\n\n"
            f"**Plan ID**: {plan.id}\n"
            f"**Steps**: {len(plan.steps)}\n\n"
            f"✅ Step 1: {first_step}\n\n"
            "**Status**: Executing infrastructure deployment...\n"
            "**Real-time updates**: You'll receive live progress updates as each step completes.\n\n"
            f"⏳ **Current Status**: {plan.status.value}",
            attachments=[Attachment(type="execution_plan", title=plan.objective or "Execution Plan",
                                    data=plan.to_dict())],
        )

    # ------------------------------------------------------------------
    # Route 3: autonomous loop
    # ------------------------------------------------------------------

    async def run_autonomous(
        self,
        conversation: Conversation,
        text: str,
        credential: str | None,
    ) -> AssistantResponse:
        """Run the autonomous loop for a deployment request.

        Raises:
            ConflictError: If a loop or a plan run is already driving this
                conversation.
        """
        if conversation.id in self._active_loops:
            raise ConflictError(
                f"An autonomous loop is already running for conversation {conversation.id}"
            )
        if self.is_plan_running(conversation.id):
            raise ConflictError(
                f"An execution plan is still running for conversation {conversation.id}"
            )
        self._active_loops.add(conversation.id)
        try:
            result = await self._loop_controller.run(
                conversation.id,
                conversation.workspace_id,
                text,
                list(conversation.messages),
                credential,
            )
        finally:
            self._active_loops.discard(conversation.id)

        for message in result.messages:
            conversation.append(message)

        if result.failed:
            return await self._handle_backend_error(
                conversation, result.error, text, credential, fallback_message=result.summary
            )

        conversation.status = ConversationStatus.ACTIVE
        response = await self._reply(conversation, result.summary)
        response.usage = Usage(total_tokens=result.total_tokens)
        return response

    # ------------------------------------------------------------------
    # Route 4: plain chat
    # ------------------------------------------------------------------

    async def _chat_turn(
        self,
        conversation: Conversation,
        credential: str | None,
    ) -> AssistantResponse:
        history = [ChatMessage(role="system", content=build_system_prompt(conversation.workspace_id))]
        history.extend(
            ChatMessage(role=m.role.value, content=m.content)
            for m in conversation.recent(self._config.chat.history_window)
        )
        reply = await self._chat_backend.chat(
            history, credential, conversation.workspace_id, conversation.id
        )
        conversation.status = ConversationStatus.ACTIVE
        response = await self._reply(conversation, reply.message)
        response.usage = reply.usage
        return response

    # ------------------------------------------------------------------
    # Plans from requests
    # ------------------------------------------------------------------

    async def propose_plan(
        self,
        conversation_id: str,
        objective: str,
        steps: list[StepSpec | dict[str, Any]],
    ) -> ExecutionPlan:
        """Create a plan from explicit steps and put it up for approval.

        Raises:
            NotFoundError: If the conversation does not exist.
            ValidationError: If the steps are empty or malformed.
            ConflictError: If the conversation already has an active plan.
        """
        conversation = self.store.require(conversation_id)
        async with self.store.lock(conversation_id):
            return await self._propose(conversation, objective, steps)

    async def draft_plan_for_request(
        self,
        conversation_id: str,
        request_text: str,
        credential: str | None = None,
    ) -> ExecutionPlan:
        """Ask the backend for a plan for a request and put it up for approval.

        A reply that is not a usable JSON plan falls back to a single
        analysis step.
        """
        conversation = self.store.require(conversation_id)
        async with self.store.lock(conversation_id):
            reply = await self._chat_backend.chat(
                [
                    ChatMessage(role="system", content=build_system_prompt(conversation.workspace_id)),
                    ChatMessage(role="user", content=PLAN_DRAFT_PROMPT.format(request=request_text)),
                ],
                credential,
                conversation.workspace_id,
                conversation.id,
            )
            objective, steps = self._parse_plan_reply(reply.message, request_text)
            return await self._propose(conversation, objective, steps)

    @staticmethod
    def _parse_plan_reply(text: str, request_text: str) -> tuple[str, list[dict[str, Any]]]:
        match = _JSON_OBJECT.search(text or "")
        if match:
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict) and isinstance(parsed.get("steps"), list) and parsed["steps"]:
                objective = str(parsed.get("objective") or request_text)
                return objective, parsed["steps"]
        logger.warning("Plan draft reply was not a usable JSON plan; using analysis step")
        return request_text, [{
            "service": "mercury",
            "action": "analyze_request",
            "description": "Analyze deployment requirements",
            "parameters": {"request": request_text},
            "estimatedTime": "30 seconds",
        }]

    async def _propose(
        self,
        conversation: Conversation,
        objective: str,
        steps: list[StepSpec | dict[str, Any]],
    ) -> ExecutionPlan:
        plan = self.machine.create_plan(
            conversation.id,
            conversation.user_id,
            conversation.workspace_id,
            objective,
            steps,
        )
        self.machine.request_approval(plan)
        await self._publish(conversation, self.machine.format_plan_for_approval(plan))
        return plan

    def cancel_plan(self, plan_id: str) -> ExecutionPlan:
        """Cancel a plan from any non-terminal status.

        Raises:
            NotFoundError: If the plan does not exist.
        """
        plan = self.machine.cancel_plan(plan_id)
        conversation = self.store.get(plan.conversation_id)
        if conversation is not None:
            conversation.active_workflows.discard(plan.id)
        return plan

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    async def _handle_backend_error(
        self,
        conversation: Conversation,
        error: BaseException,
        text: str,
        credential: str | None,
        fallback_message: str | None = None,
    ) -> AssistantResponse:
        failure = self._failure_classifier.classify(error, text)
        if failure is not None:
            recovery_id = await self.recovery_engine.start_recovery(
                conversation.id,
                error,
                failure.provider,
                failure.operation,
                failure.parameters,
                credential,
            )
            conversation.active_workflows.add(recovery_id)
            response = await self._reply(
                conversation,
                "🔧 **Infrastructure Provisioning Failed - Starting Intelligent Recovery**\n\n"
                f"I detected an issue with the {failure.provider} provisioning operation. "
                "I'm now analyzing the error to find a solution.\n\n"
                "**Recovery Process:**\n"
                "• 🔍 AI-powered error analysis\n"
                f"• 🔧 Automated fix attempts (up to {self._config.recovery.max_attempts} tries)\n"
                "• 📊 Real-time progress updates\n\n"
                "I'll keep you updated on the progress. If I can't resolve it, "
                "I'll give you specific guidance on next steps.\n\n"
                f"*Recovery ID: {recovery_id}*",
                response_type="recovery_started",
            )
            response.recovery_id = recovery_id
            return response

        category = classify_backend_error(error, self._rules.backend_errors)
        if category is ErrorCategory.INTERNAL:
            logger.exception("Unclassified failure in conversation %s", conversation.id, exc_info=error)
            conversation.status = ConversationStatus.ERROR
            message = fallback_message or f"{GENERIC_ERROR_MESSAGE} Please try again."
            return await self._reply(conversation, message, response_type="error")

        logger.warning("Backend error in conversation %s classified as %s", conversation.id, category.value)
        message, actions = build_remediation(category, infer_llm_provider(error))
        return await self._reply(
            conversation,
            message,
            response_type="error",
            suggested_actions=[SuggestedAction(**action) for action in actions] or None,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append(
        self,
        conversation: Conversation,
        role: MessageRole,
        content: str,
        credential: str | None = None,
    ) -> Message:
        message = Message(
            conversation_id=conversation.id,
            role=role,
            content=content,
            credential=credential,
        )
        conversation.append(message)
        return message

    async def _publish(self, conversation: Conversation, content: str) -> Message:
        message = self._append(conversation, MessageRole.ASSISTANT, content)
        await self.notifications.send_conversation_message(conversation.id, message)
        return message

    async def _reply(
        self,
        conversation: Conversation,
        content: str,
        response_type: str = "text",
        suggested_actions: list[SuggestedAction] | None = None,
        attachments: list[Attachment] | None = None,
    ) -> AssistantResponse:
        await self._publish(conversation, content)
        return AssistantResponse(
            message=content,
            response_type=response_type,
            suggested_actions=suggested_actions,
            attachments=attachments or [],
        )

    async def shutdown(self) -> None:
        """Cancel background work and drop in-memory state."""
        for task in list(self._plan_tasks.values()):
            task.cancel()
        if self._plan_tasks:
            await asyncio.gather(*self._plan_tasks.values(), return_exceptions=True)
        await self.recovery_engine.shutdown()
        self.store.clear()
