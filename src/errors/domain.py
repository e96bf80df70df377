"""Typed domain exceptions for orchestration and backend error mapping.

These exceptions provide stronger contract guarantees than string-based
error message matching. The plan state machine raises the synchronous
ones (validation, conflict, not found); backend clients raise the
``BackendError`` family so the coordinator can pick remediation by tag.

Usage:
    # In the state machine
    raise ConflictError("Conversation conv-1 already has an active plan")

    # In a backend client
    raise QuotaError("Rate limit exceeded", kind="rate_limit", provider="anthropic")

    # In a route handler
    try:
        plan = machine.approve_plan(plan_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""

from typing import Literal


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found, or not in the expected state. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Second concurrent plan or loop on one conversation. Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Malformed plan or step input. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class BackendError(DomainError):
    """Failure reported by the LLM/tool backend.

    Attributes:
        category: Remediation tag (see ``src.errors.registry.ErrorCategory``).
        provider: Backend provider name when known (anthropic, openai, ...).
        details: Raw error payload from the backend.
    """

    category: str = "internal"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.details = details or {}


class CredentialError(BackendError):
    """Missing or invalid backend key. Surfaced with a settings action, never retried."""

    def __init__(
        self,
        message: str,
        kind: Literal["missing", "invalid"] = "missing",
        provider: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, provider=provider, details=details)
        self.kind = kind
        self.category = "missing_credentials" if kind == "missing" else "invalid_key"


class QuotaError(BackendError):
    """Rate limit or insufficient credits. Surfaced with a billing link, never retried."""

    def __init__(
        self,
        message: str,
        kind: Literal["rate_limit", "insufficient_credits"] = "rate_limit",
        provider: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, provider=provider, details=details)
        self.kind = kind
        self.category = kind


class ProvisioningError(BackendError):
    """Provisioning operation failed. Routed to the error recovery engine."""

    category = "provisioning"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        operation: str | None = None,
        parameters: dict | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, provider=provider, details=details)
        self.operation = operation
        self.parameters = parameters


class InternalError(BackendError):
    """Unexpected backend failure. Conversation is marked ``error``."""

    category = "internal"
