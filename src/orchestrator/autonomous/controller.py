"""Autonomous loop controller.

Drives repeated backend calls for a deployment request without a human
turn between iterations. Each reply is classified by the loop signal
table; a continue decision injects the next continuation prompt as a
synthetic user turn, a stop decision ends the run. Iteration and token
budgets bound every run regardless of what the backend says.

The controller never touches conversation state. It receives a history
snapshot and returns the assistant messages it produced; the caller
appends them. It never raises: a backend failure ends the run with a
failed LoopResult carrying the exception so the caller can classify it.

Example:
    controller = AutonomousLoopController(backend, emitter, rules.loop, config.loop)
    result = await controller.run("conv-1", "ws-1", text, history, token)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from src.config import LoopConfig
from src.orchestrator.autonomous.signals import LoopSignalClassifier, SignalDecision
from src.orchestrator.autonomous.summary import build_execution_summary
from src.orchestrator.events import ConversationEventEmitter, EventType
from src.orchestrator.models.backend import ChatMessage
from src.orchestrator.models.conversation import Message, MessageRole
from src.orchestrator.rules.schema import LoopRules, StopTone
from src.orchestrator.system_prompt import build_autonomous_system_prompt
from src.services.backend_gateway import ChatBackend

logger = logging.getLogger(__name__)

RECENT_TOOLS_IN_PROGRESS = 5

TOKEN_LIMIT_REASON = "Token usage limit reached"
MAX_ITERATIONS_REASON = "Maximum iterations reached"

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class LoopResult:
    """Outcome of one autonomous run.

    Attributes:
        iterations: Backend calls made.
        total_tokens: Cumulative tokens reported by the backend.
        tools: Tool names executed, in call order (with repeats).
        stopping_reason: Why the run halted.
        tone: Phrasing selector for the summary.
        messages: Assistant messages produced, in order.
        summary: User-facing summary text.
        error: Exception that ended the run, if any.
    """

    iterations: int
    total_tokens: int
    tools: list[str]
    stopping_reason: str
    tone: StopTone
    messages: list[Message] = field(default_factory=list)
    summary: str = ""
    error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class AutonomousLoopController:
    """Runs bounded autonomous backend loops for deployment requests."""

    def __init__(
        self,
        backend: ChatBackend,
        emitter: ConversationEventEmitter,
        rules: LoopRules,
        settings: LoopConfig,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            backend: Chat backend to drive.
            emitter: Event emitter for progress notices.
            rules: Signal table, continuation prompts and service labels.
            settings: Iteration/token budgets and throttle delays.
            sleep: Awaitable sleep used for throttling (injectable for tests).
        """
        self._backend = backend
        self._emitter = emitter
        self._rules = rules
        self._settings = settings
        self._sleep = sleep
        self._classifier = LoopSignalClassifier(rules)

    def continuation_prompt(self, iteration: int) -> str:
        """Return the continuation prompt injected after an iteration."""
        prompts = self._rules.continuation_prompts
        return prompts[(iteration - 1) % len(prompts)]

    async def _notify(self, conversation_id: str, content: str) -> None:
        await self._emitter.emit(
            EventType.CONVERSATION_MESSAGE,
            conversation_id,
            {"role": MessageRole.ASSISTANT.value, "content": content},
        )

    async def run(
        self,
        conversation_id: str,
        workspace_id: str,
        user_input: str,
        history: list[Message],
        credential: str | None,
    ) -> LoopResult:
        """Run the loop until a stop signal or a budget is exhausted.

        Args:
            conversation_id: Conversation being driven.
            workspace_id: Workspace passed to the backend.
            user_input: The deployment request that started the run.
            history: Conversation messages; only the trailing window is sent.
            credential: Backend credential for this turn.

        Returns:
            LoopResult; ``error`` is set when a backend call raised.
        """
        settings = self._settings
        window = history[-settings.history_window:] if settings.history_window else []
        chat_history = [
            ChatMessage(role="system", content=build_autonomous_system_prompt(workspace_id))
        ]
        chat_history.extend(
            ChatMessage(role=m.role.value, content=m.content) for m in window
        )

        iteration = 0
        total_tokens = 0
        tools: list[str] = []
        produced: list[Message] = []
        decision: SignalDecision | None = None
        stopping_reason = ""
        tone: StopTone = "neutral"

        logger.info("Starting autonomous loop for conversation %s", conversation_id)
        await self._notify(
            conversation_id,
            "🤖 **Autonomous Agent Activated**\n\n"
            "I'm now processing your deployment request autonomously. I'll continue "
            "working until completion or until I need your input.\n\n"
            f"**Current Task**: {user_input}",
        )

        try:
            while iteration < settings.max_iterations:
                if total_tokens >= settings.token_budget:
                    logger.info(
                        "Loop for %s stopped on token budget (%d tokens)",
                        conversation_id,
                        total_tokens,
                    )
                    stopping_reason, tone = TOKEN_LIMIT_REASON, "budget"
                    break

                iteration += 1
                if iteration > 1:
                    await self._notify(
                        conversation_id,
                        f"🔄 **Iteration {iteration}**: Continuing autonomous execution...",
                    )

                reply = await self._backend.chat(
                    chat_history, credential, workspace_id, conversation_id
                )
                if reply.usage:
                    total_tokens += reply.usage.total_tokens
                tools.extend(reply.tool_names)
                produced.append(Message(
                    conversation_id=conversation_id,
                    role=MessageRole.ASSISTANT,
                    content=reply.message,
                ))
                chat_history.append(ChatMessage(role="assistant", content=reply.message))

                decision = self._classifier.classify(reply.message, iteration)
                logger.debug(
                    "Loop %s iteration %d: %d tokens, tools=%s, decision=%s",
                    conversation_id,
                    iteration,
                    total_tokens,
                    reply.tool_names,
                    decision.rule,
                )
                if not decision.should_continue:
                    stopping_reason, tone = decision.reason, decision.tone
                    break

                chat_history.append(
                    ChatMessage(role="user", content=self.continuation_prompt(iteration))
                )
                await self._emitter.emit(
                    EventType.AUTONOMOUS_PROGRESS,
                    conversation_id,
                    {
                        "iteration": iteration,
                        "total_tokens": total_tokens,
                        "tools_executed": len(tools),
                        "recent_tools": tools[-RECENT_TOOLS_IN_PROGRESS:],
                        "continuing": True,
                    },
                )
                if iteration < settings.max_iterations:
                    await self._sleep(settings.delay_seconds(iteration))
            else:
                await self._notify(
                    conversation_id,
                    "⚠️ **Maximum Iterations Reached**\n\n"
                    f"I've completed {settings.max_iterations} autonomous execution cycles. "
                    "The task may require additional input or manual intervention.",
                )
                stopping_reason, tone = MAX_ITERATIONS_REASON, "neutral"
        except Exception as e:
            logger.exception(
                "Autonomous loop for %s failed during iteration %d",
                conversation_id,
                iteration,
            )
            completed = max(iteration - 1, 0)
            await self._emitter.emit(
                EventType.AUTONOMOUS_COMPLETE,
                conversation_id,
                {
                    "total_iterations": iteration,
                    "total_tokens": total_tokens,
                    "tools_executed": tools,
                    "stopping_reason": "Error encountered",
                    "failed": True,
                },
            )
            return LoopResult(
                iterations=iteration,
                total_tokens=total_tokens,
                tools=tools,
                stopping_reason="Error encountered",
                tone="error",
                messages=produced,
                summary=(
                    "❌ **Autonomous Execution Failed**\n\n"
                    f"Error occurred during autonomous execution: {e}\n\n"
                    f"Completed {completed} cycles before failure."
                ),
                error=e,
            )

        await self._emitter.emit(
            EventType.AUTONOMOUS_COMPLETE,
            conversation_id,
            {
                "total_iterations": iteration,
                "total_tokens": total_tokens,
                "tools_executed": tools,
                "stopping_reason": stopping_reason,
            },
        )
        logger.info(
            "Autonomous loop for %s halted after %d iterations: %s",
            conversation_id,
            iteration,
            stopping_reason,
        )
        return LoopResult(
            iterations=iteration,
            total_tokens=total_tokens,
            tools=tools,
            stopping_reason=stopping_reason,
            tone=tone,
            messages=produced,
            summary=build_execution_summary(
                iteration,
                total_tokens,
                tools,
                stopping_reason,
                tone,
                self._rules.service_labels,
            ),
        )
