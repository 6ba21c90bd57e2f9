import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from screener.schemas import ApplicationListResponse, Job, Stage
from screener.services.greenhouse import GreenhouseClient
from screener.api.deps import get_greenhouse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Job])
async def list_jobs(greenhouse: GreenhouseClient = Depends(get_greenhouse)):
    return await greenhouse.list_jobs()


@router.get("/{job_id}/stages", response_model=List[Stage])
async def list_stages(job_id: int, greenhouse: GreenhouseClient = Depends(get_greenhouse)):
    return await greenhouse.list_stages(job_id)


@router.get("/{job_id}/applications", response_model=ApplicationListResponse)
async def list_applications(
    job_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=500),
    status: Literal["active", "rejected", "hired"] = Query("active"),
    stage_id: Optional[int] = Query(None),
    greenhouse: GreenhouseClient = Depends(get_greenhouse),
):
    logger.info(f"Fetching applications for job {job_id}, page {page}, stage {stage_id or 'all'}")
    result = await greenhouse.list_applications_page(
        job_id, page=page, per_page=per_page, status=status, stage_id=stage_id
    )

    # A full page means there may be more; stage filtering can shorten it
    has_more = len(result.applications) == per_page
    return ApplicationListResponse(
        applications=result.applications,
        total=result.total,
        page=page,
        per_page=per_page,
        next_page=page + 1 if has_more else None,
    )
