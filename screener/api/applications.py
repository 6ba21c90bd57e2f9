import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from screener.schemas import (
    AdvanceRequest,
    BulkRejectRequest,
    BulkRejectResponse,
    RejectRequest,
)
from screener.services.greenhouse import GreenhouseClient
from screener.services.operations import bulk_reject
from screener.api.deps import get_greenhouse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/rejection-reasons")
async def list_rejection_reasons(
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
) -> List[Dict[str, Any]]:
    return await greenhouse.list_rejection_reasons()


@router.get("/email-templates")
async def list_email_templates(
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
) -> List[Dict[str, Any]]:
    return await greenhouse.list_email_templates()


@router.post("/applications/bulk-reject", response_model=BulkRejectResponse)
async def bulk_reject_applications(
    request: BulkRejectRequest,
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
):
    if not request.application_ids:
        raise HTTPException(status_code=400, detail="application_ids must be a non-empty array")
    return await bulk_reject(greenhouse, request)


@router.post("/applications/{application_id}/reject")
async def reject_application(
    application_id: int,
    request: RejectRequest,
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
):
    await greenhouse.reject_application(
        application_id, request.rejection_reason_id, request.email_template_id
    )
    logger.info(f"Rejected application {application_id}")
    return {"success": True, "application_id": application_id}


@router.post("/applications/{application_id}/advance")
async def advance_application(
    application_id: int,
    request: AdvanceRequest,
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
):
    await greenhouse.advance_application(application_id, request.from_stage_id)
    logger.info(f"Advanced application {application_id}")
    return {"success": True, "application_id": application_id}
