"""Provisioning failure classification.

Decides whether a backend failure is a recoverable provisioning failure
and infers the provider, operation and parameters to retry with.
Typed errors are trusted over text: a ``ProvisioningError`` is always
eligible, ``CredentialError`` and ``QuotaError`` never are. Untyped
errors must mention a provisioning keyword and come from a request that
mentioned deploying or provisioning.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from src.errors import CredentialError, ProvisioningError, QuotaError
from src.orchestrator.rules.schema import ProvisioningFailureRules

logger = logging.getLogger(__name__)

_JSON_FRAGMENT = re.compile(r"\{[^{}]*\}")


@dataclass(frozen=True)
class ProvisioningFailure:
    """A failure eligible for recovery, with its inferred retry target."""

    provider: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)


class ProvisioningFailureClassifier:
    """Applies the provisioning-failure rule table."""

    def __init__(self, rules: ProvisioningFailureRules) -> None:
        self._rules = rules

    def is_provisioning_failure(self, error: BaseException, user_input: str) -> bool:
        """Return True if the failure should be routed to recovery."""
        if isinstance(error, ProvisioningError):
            return True
        if isinstance(error, (CredentialError, QuotaError)):
            return False
        error_text = str(error).lower()
        input_text = (user_input or "").lower()
        return any(k in error_text for k in self._rules.error_keywords) and any(
            k in input_text for k in self._rules.input_keywords
        )

    def infer_provider(self, error_text: str, user_input: str) -> str:
        """Infer the cloud provider from the combined error and input text."""
        combined = f"{error_text} {user_input}".lower()
        for provider in self._rules.providers:
            if any(keyword.lower() in combined for keyword in provider.keywords):
                return provider.name
        return self._rules.default_provider

    def infer_operation(self, error_text: str, user_input: str) -> str:
        """Infer the failed operation.

        Error-text keywords are checked across every operation before
        input keywords, since the error names what actually failed.
        """
        error_lower = error_text.lower()
        for operation in self._rules.operations:
            if any(k.lower() in error_lower for k in operation.error_keywords):
                return operation.name
        input_lower = (user_input or "").lower()
        for operation in self._rules.operations:
            if any(k.lower() in input_lower for k in operation.input_keywords):
                return operation.name
        return self._rules.default_operation

    def extract_parameters(self, error_text: str) -> dict[str, Any]:
        """Recover the original parameters from a JSON fragment in the error.

        Falls back to the configured safe defaults when no fragment parses.
        """
        match = _JSON_FRAGMENT.search(error_text)
        if match:
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError:
                logger.debug("Unparseable parameter fragment in error text")
            else:
                if isinstance(parsed, dict):
                    return parsed
        return dict(self._rules.default_parameters)

    def classify(self, error: BaseException, user_input: str) -> ProvisioningFailure | None:
        """Classify a failure; returns None when it is not recoverable.

        Args:
            error: Exception raised by the backend call.
            user_input: The user message that triggered the call.

        Returns:
            ProvisioningFailure with the retry target, or None.
        """
        if not self.is_provisioning_failure(error, user_input):
            return None
        error_text = str(error)
        if isinstance(error, ProvisioningError):
            provider = error.provider or self.infer_provider(error_text, user_input)
            operation = error.operation or self.infer_operation(error_text, user_input)
            parameters = dict(error.parameters) if error.parameters else self.extract_parameters(error_text)
        else:
            provider = self.infer_provider(error_text, user_input)
            operation = self.infer_operation(error_text, user_input)
            parameters = self.extract_parameters(error_text)
        logger.info("Classified provisioning failure: %s/%s", provider, operation)
        return ProvisioningFailure(provider=provider, operation=operation, parameters=parameters)
