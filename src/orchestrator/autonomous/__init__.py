"""Autonomous loop controller and its continue/stop classifier."""

from src.orchestrator.autonomous.controller import (
    AutonomousLoopController,
    LoopResult,
)
from src.orchestrator.autonomous.signals import LoopSignalClassifier, SignalDecision
from src.orchestrator.autonomous.summary import (
    build_execution_summary,
    group_tools_by_service,
)

__all__ = [
    "AutonomousLoopController",
    "LoopResult",
    "LoopSignalClassifier",
    "SignalDecision",
    "build_execution_summary",
    "group_tools_by_service",
]
