"""Error recovery for failed provisioning operations."""

from src.orchestrator.recovery.classifier import (
    ProvisioningFailure,
    ProvisioningFailureClassifier,
)
from src.orchestrator.recovery.engine import ErrorRecoveryEngine, parse_analysis

__all__ = [
    "ErrorRecoveryEngine",
    "ProvisioningFailure",
    "ProvisioningFailureClassifier",
    "parse_analysis",
]
