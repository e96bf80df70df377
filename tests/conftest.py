"""Root-level pytest fixtures for all tests.

Provides shared fixtures for the orchestration core:
- Rule tables and configuration
- Event emitter with a recording observer
- Scripted backends and a coordinator wired to them
"""

import pytest

from src.config import InfraflowConfig
from src.orchestrator.events import ConversationEventEmitter
from src.orchestrator.rules import load_rules
from src.services.runtime import build_coordinator
from tests.helpers import (
    EventRecorder,
    RecordingSleep,
    ScriptedChatBackend,
    ScriptedProvisioningBackend,
    ScriptedToolBackend,
)


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )


# ============================================================================
# Rules and Configuration
# ============================================================================


@pytest.fixture
def rules():
    """Packaged default rule tables."""
    return load_rules()


@pytest.fixture
def config() -> InfraflowConfig:
    """Default configuration (no file, no env overrides)."""
    return InfraflowConfig()


# ============================================================================
# Events
# ============================================================================


@pytest.fixture
def emitter() -> ConversationEventEmitter:
    return ConversationEventEmitter()


@pytest.fixture
def recorder(emitter: ConversationEventEmitter) -> EventRecorder:
    """Recording observer registered on the emitter fixture."""
    observer = EventRecorder()
    emitter.add_observer(observer)
    return observer


@pytest.fixture
def instant_sleep() -> RecordingSleep:
    return RecordingSleep()


# ============================================================================
# Backends and Coordinator
# ============================================================================


@pytest.fixture
def chat_backend() -> ScriptedChatBackend:
    return ScriptedChatBackend()


@pytest.fixture
def provisioning_backend() -> ScriptedProvisioningBackend:
    return ScriptedProvisioningBackend()


@pytest.fixture
def tool_backend() -> ScriptedToolBackend:
    return ScriptedToolBackend()


@pytest.fixture
def make_coordinator(config, rules, instant_sleep):
    """Factory building a coordinator around the given scripted backends.

    The coordinator's notification service gets a recording observer,
    available as ``coordinator.recorder``.
    """

    def _make(
        chat: ScriptedChatBackend | None = None,
        tools: ScriptedToolBackend | None = None,
        provisioning: ScriptedProvisioningBackend | None = None,
    ):
        coordinator = build_coordinator(
            config,
            chat or ScriptedChatBackend(),
            tools or ScriptedToolBackend(),
            provisioning or ScriptedProvisioningBackend(),
            rules=rules,
            sleep=instant_sleep,
        )
        coordinator.recorder = EventRecorder()
        coordinator.notifications._emitter.add_observer(coordinator.recorder)
        return coordinator

    return _make
