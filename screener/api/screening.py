from fastapi import APIRouter, Depends

from screener.schemas import ScreeningRequest, ScreeningResponse
from screener.services.screening import ScreeningService
from screener.api.deps import get_screening_service

router = APIRouter()


@router.post("", response_model=ScreeningResponse)
async def screen_applications(
    request: ScreeningRequest,
    service: ScreeningService = Depends(get_screening_service),
):
    outcome = await service.screen(request)
    return ScreeningResponse(
        results=outcome.results,
        missing_application_ids=outcome.missing_ids,
    )
