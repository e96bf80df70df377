"""FastAPI routes for execution plans."""

from fastapi import APIRouter, Depends, HTTPException

from src.api.dependencies import get_coordinator, http_error
from src.api.routes.conversations import plan_response
from src.api.schemas import CancelResponse, PlanResponse
from src.errors import DomainError
from src.services.conversation_coordinator import OrchestrationCoordinator

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("/{plan_id}", response_model=PlanResponse)
def get_plan(
    plan_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> PlanResponse:
    """Get a plan with its step statuses and progress."""
    plan = coordinator.machine.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan_response(coordinator, plan)


@router.post("/{plan_id}/cancel", response_model=CancelResponse)
def cancel_plan(
    plan_id: str,
    coordinator: OrchestrationCoordinator = Depends(get_coordinator),
) -> CancelResponse:
    """Cancel a plan. Already-terminal plans are returned unchanged."""
    try:
        plan = coordinator.cancel_plan(plan_id)
    except DomainError as e:
        raise http_error(e) from None
    return CancelResponse(
        id=plan.id,
        cancelled=plan.status.value == "cancelled",
        status=plan.status.value,
    )
