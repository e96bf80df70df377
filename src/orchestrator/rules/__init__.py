"""Externally configurable rule tables for free-text classification."""

from src.orchestrator.rules.loader import DEFAULT_RULES_PATH, load_rules
from src.orchestrator.rules.schema import (
    ApprovalRules,
    IntentRules,
    LoopRules,
    ProvisioningFailureRules,
    RuleSet,
    SignalRule,
)

__all__ = [
    "DEFAULT_RULES_PATH",
    "load_rules",
    "ApprovalRules",
    "IntentRules",
    "LoopRules",
    "ProvisioningFailureRules",
    "RuleSet",
    "SignalRule",
]
