"""Shared FastAPI dependencies for the route modules."""

from fastapi import Header, HTTPException, Request

from src.errors import ConflictError, DomainError, NotFoundError, ValidationError
from src.services.conversation_coordinator import OrchestrationCoordinator


def get_coordinator(request: Request) -> OrchestrationCoordinator:
    """Dependency returning the coordinator built by the app lifespan."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Orchestration runtime not ready")
    return coordinator


def get_backend_credential(authorization: str | None = Header(default=None)) -> str | None:
    """Extract the per-request backend credential from ``Authorization: Bearer``.

    The credential is forwarded to the backend for this request only and
    is never stored or logged.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def http_error(error: DomainError) -> HTTPException:
    """Map a synchronous domain error to its HTTP status."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=502, detail=str(error))
