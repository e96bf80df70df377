"""FastAPI routes for error recovery sessions.

Recovery runs in the background; clients poll here or watch the
conversation's event stream for ``recovery_*`` events.
"""

from fastapi import APIRouter, Depends, HTTPException

from src.api.dependencies import get_coordinator
from src.api.schemas import CancelResponse, RecoveryResponse
from src.services.conversation_coordinator import OrchestrationCoordinator

router = APIRouter(prefix="/recoveries", tags=["recoveries"])


@router.get("/{recovery_id}", response_model=RecoveryResponse)
def get_recovery(
    recovery_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> RecoveryResponse:
    """Get a recovery session's status, diagnosis and step log."""
    session = coordinator.recovery_engine.get_recovery_status(recovery_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Recovery session not found")
    return RecoveryResponse(**session.to_dict())


@router.post("/{recovery_id}/cancel", response_model=CancelResponse)
def cancel_recovery(
    recovery_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> CancelResponse:
    """Cancel a running recovery session.

    Raises:
        HTTPException: 404 if the session does not exist.
    """
    engine = coordinator.recovery_engine
    if engine.get_recovery_status(recovery_id) is None:
        raise HTTPException(status_code=404, detail="Recovery session not found")
    cancelled = engine.cancel_recovery(recovery_id)
    session = engine.get_recovery_status(recovery_id)
    return CancelResponse(id=recovery_id, cancelled=cancelled, status=session.status.value)
