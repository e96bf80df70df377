"""Error handling framework for the orchestration core.

This package provides:
- Typed domain exceptions (validation, conflict, not found, backend errors)
- Remediation registry with E-XXXX format codes
- Backend error classification to remediation categories

Error categories:
- E-3xxx: Provider quota and billing errors
- E-4xxx: System/internal errors
- E-5xxx: Credential errors
"""

from src.errors.domain import (
    BackendError,
    ConflictError,
    CredentialError,
    DomainError,
    InternalError,
    NotFoundError,
    ProvisioningError,
    QuotaError,
    ValidationError,
)
from src.errors.registry import (
    REMEDIATION_REGISTRY,
    ErrorCategory,
    Remediation,
    get_remediation,
)
from src.errors.translation import (
    build_remediation,
    classify_backend_error,
    infer_llm_provider,
)

__all__ = [
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "BackendError",
    "CredentialError",
    "QuotaError",
    "ProvisioningError",
    "InternalError",
    # Registry
    "ErrorCategory",
    "Remediation",
    "REMEDIATION_REGISTRY",
    "get_remediation",
    # Translation
    "classify_backend_error",
    "infer_llm_provider",
    "build_remediation",
]
