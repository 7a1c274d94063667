# cableops/api/imports/main.py
from fastapi import APIRouter, Depends, HTTPException

from ...core.exceptions import CableOpsError
from ...models.actor import Actor
from ...services.import_service import ImportService, ValidationRun
from ..deps import get_current_actor, get_import_service, http_error, require_admin
from .models import CommitResponse, ImportCommit, ImportOutcomeRead, ImportRequest, ValidationResponse

router = APIRouter()


async def _validate(payload: ImportRequest, service: ImportService) -> ValidationRun:
    if payload.csv_text is not None:
        return await service.validate_text(payload.csv_text)
    if payload.records is not None:
        return await service.validate_batch(payload.records)
    raise HTTPException(status_code=400, detail="Provide csv_text or records")


@router.post("/imports/validate", response_model=ValidationResponse)
async def api_validate_import(
    payload: ImportRequest,
    service: ImportService = Depends(get_import_service),
    actor: Actor = Depends(get_current_actor),
):
    """Validate a batch without writing anything."""
    run = await _validate(payload, service)
    return ValidationResponse(summary=run.summary, quick=run.quick(), report=run.report())


@router.post("/imports/commit", response_model=CommitResponse)
async def api_commit_import(
    payload: ImportCommit,
    service: ImportService = Depends(get_import_service),
    actor: Actor = Depends(require_admin),
):
    """
    Re-validate the batch against fresh registries and import it.
    Partial imports of only the valid rows need allow_partial.
    """
    run = await _validate(payload, service)
    try:
        outcomes = await service.commit(run.summary, actor, allow_partial=payload.allow_partial)
    except CableOpsError as e:
        raise http_error(e)
    return CommitResponse(
        summary=run.summary,
        outcomes=[
            ImportOutcomeRead(
                row_number=o.row_number,
                vc_number=o.vc_number,
                ok=o.ok,
                skipped=o.skipped,
                customer_id=o.customer_id,
                error=o.error,
            )
            for o in outcomes
        ],
        imported=sum(1 for o in outcomes if o.ok),
    )
