"""Test helper utilities: scripted backends and event recording."""

from tests.helpers.fake_backends import (
    EventRecorder,
    RecordingSleep,
    ScriptedChatBackend,
    ScriptedProvisioningBackend,
    ScriptedToolBackend,
    reply,
)

__all__ = [
    "EventRecorder",
    "RecordingSleep",
    "ScriptedChatBackend",
    "ScriptedProvisioningBackend",
    "ScriptedToolBackend",
    "reply",
]
