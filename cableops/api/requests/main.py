# cableops/api/requests/main.py
import uuid

from fastapi import APIRouter, Depends, HTTPException

from ...core.exceptions import CableOpsError
from ...models.actor import Actor
from ...services.action_request_service import ActionRequestService
from ..deps import get_current_actor, get_request_service, http_error, require_admin
from .models import ActionRequestRead, ApprovalNotes, ApprovalResult, Denial, DenialResult

router = APIRouter()


@router.get("/requests", response_model=list[ActionRequestRead])
async def api_get_requests(
    status: str | None = "pending",
    customer_id: uuid.UUID | None = None,
    service: ActionRequestService = Depends(get_request_service),
    actor: Actor = Depends(get_current_actor),
):
    """Admins see every request, employees only their own."""
    requested_by = None if actor.has_authority else actor.id
    try:
        return await service.list_requests(status=status, customer_id=customer_id, requested_by=requested_by)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid request status '{status}'")


@router.get("/requests/counts", response_model=dict[str, int])
async def api_get_request_counts(
    service: ActionRequestService = Depends(get_request_service),
    actor: Actor = Depends(require_admin),
):
    return await service.count_by_status()


@router.get("/requests/{request_id}", response_model=ActionRequestRead)
async def api_get_request(
    request_id: uuid.UUID,
    service: ActionRequestService = Depends(get_request_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        return await service.get(request_id)
    except CableOpsError as e:
        raise http_error(e)


@router.post("/requests/{request_id}/approve", response_model=ApprovalResult)
async def api_approve_request(
    request_id: uuid.UUID,
    payload: ApprovalNotes,
    service: ActionRequestService = Depends(get_request_service),
    actor: Actor = Depends(get_current_actor),
):
    """
    Apply a pending request. Fails with 409 when the request was already
    resolved or when the customer changed since it was raised.
    """
    try:
        logs = await service.approve(request_id, actor, payload.notes)
        request = await service.get(request_id)
    except CableOpsError as e:
        raise http_error(e)
    return ApprovalResult(request=ActionRequestRead.model_validate(request), logs=logs)


@router.post("/requests/{request_id}/deny", response_model=DenialResult)
async def api_deny_request(
    request_id: uuid.UUID,
    payload: Denial,
    service: ActionRequestService = Depends(get_request_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        record = await service.deny(request_id, actor, payload.reason)
    except CableOpsError as e:
        raise http_error(e)
    return DenialResult(
        request_id=record.request_id,
        resolved_by=record.resolved_by,
        resolved_at=record.resolved_at,
        reason=record.reason,
    )
