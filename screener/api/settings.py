import logging

from fastapi import APIRouter, Depends

from screener.config import Settings, SettingsStore
from screener.schemas import SettingsPayload, SettingsValidationResponse
from screener.services.credentials import (
    mask_secret,
    unmasked,
    validate_anthropic_key,
    validate_greenhouse_key,
)
from screener.api.deps import get_current_settings, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=SettingsPayload)
async def read_settings(settings: Settings = Depends(get_current_settings)):
    return SettingsPayload(
        greenhouseApiKey=mask_secret(settings.greenhouse_api_key),
        greenhouseUserId=settings.greenhouse_user_id,
        anthropicApiKey=mask_secret(settings.anthropic_api_key),
    )


@router.post("")
async def save_settings(payload: SettingsPayload, store: SettingsStore = Depends(get_store)):
    # Masked values are what GET returned; they mean "unchanged"
    store.update(
        greenhouse_api_key=unmasked(payload.greenhouseApiKey),
        greenhouse_user_id=payload.greenhouseUserId,
        anthropic_api_key=unmasked(payload.anthropicApiKey),
    )
    return {"success": True}


@router.post("/validate", response_model=SettingsValidationResponse)
async def validate_settings_keys(
    payload: SettingsPayload,
    settings: Settings = Depends(get_current_settings),
):
    """Check the submitted keys, falling back to the saved ones."""
    greenhouse_key = unmasked(payload.greenhouseApiKey) or settings.greenhouse_api_key
    user_id = payload.greenhouseUserId or settings.greenhouse_user_id
    anthropic_key = unmasked(payload.anthropicApiKey) or settings.anthropic_api_key

    greenhouse = await validate_greenhouse_key(
        greenhouse_key,
        user_id,
        settings.greenhouse_base_url,
        timeout=settings.greenhouse_timeout_seconds,
    )
    anthropic_result = await validate_anthropic_key(anthropic_key, settings.validation_model)
    logger.info(
        f"Validated keys: greenhouse={greenhouse.valid}, anthropic={anthropic_result.valid}"
    )
    return SettingsValidationResponse(greenhouse=greenhouse, anthropic=anthropic_result)
