"""Wiring for the orchestration runtime.

Builds the coordinator and its collaborators from configuration and the
rule tables. The API lifespan and the tests use the same builder; the
tests pass scripted backends and an instant ``sleep``.

Example:
    async with HttpBackendClient(config.backend) as client:
        coordinator = build_coordinator(config, client, client, client)
"""

import asyncio
import logging

from src.config import InfraflowConfig
from src.orchestrator.autonomous import AutonomousLoopController
from src.orchestrator.events import ConversationEventEmitter
from src.orchestrator.planning import ExecutionPlanMachine
from src.orchestrator.recovery import ErrorRecoveryEngine, ProvisioningFailureClassifier
from src.orchestrator.rules import RuleSet, load_rules
from src.services.backend_gateway import ChatBackend, ProvisioningBackend, ToolExecutionBackend
from src.services.conversation_coordinator import OrchestrationCoordinator
from src.services.conversation_store import ConversationStore
from src.services.notification_service import NotificationService
from src.services.plan_runner import PlanRunner

logger = logging.getLogger(__name__)


def build_coordinator(
    config: InfraflowConfig,
    chat_backend: ChatBackend,
    tool_backend: ToolExecutionBackend,
    provisioning_backend: ProvisioningBackend,
    rules: RuleSet | None = None,
    sleep=asyncio.sleep,
) -> OrchestrationCoordinator:
    """Build a coordinator with fresh in-memory state.

    Args:
        config: Loaded configuration.
        chat_backend: LLM/tool chat backend.
        tool_backend: One-shot plan execution backend.
        provisioning_backend: Backend used by recovery retries.
        rules: Rule tables; loaded from ``config.rules_path`` when omitted.
        sleep: Awaitable sleep for loop throttling and recovery backoff.

    Returns:
        A ready OrchestrationCoordinator.
    """
    rules = rules or load_rules(config.rules_path)
    emitter = ConversationEventEmitter()
    notifications = NotificationService(emitter)
    machine = ExecutionPlanMachine(rules.approval)

    coordinator = OrchestrationCoordinator(
        store=ConversationStore(),
        machine=machine,
        loop_controller=AutonomousLoopController(
            chat_backend, emitter, rules.loop, config.loop, sleep=sleep
        ),
        recovery_engine=ErrorRecoveryEngine(
            chat_backend, provisioning_backend, emitter, config.recovery, sleep=sleep
        ),
        failure_classifier=ProvisioningFailureClassifier(rules.provisioning_failure),
        plan_runner=PlanRunner(machine, chat_backend, emitter),
        notifications=notifications,
        chat_backend=chat_backend,
        tool_backend=tool_backend,
        rules=rules,
        config=config,
    )
    logger.info(
        "Orchestration runtime ready (max_iterations=%d, token_budget=%d, recovery_attempts=%d)",
        config.loop.max_iterations,
        config.loop.token_budget,
        config.recovery.max_attempts,
    )
    return coordinator
