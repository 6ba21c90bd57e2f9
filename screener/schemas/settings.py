from pydantic import BaseModel
from typing import Optional


class SettingsPayload(BaseModel):
    greenhouseApiKey: Optional[str] = None
    greenhouseUserId: Optional[str] = None
    anthropicApiKey: Optional[str] = None


class KeyValidation(BaseModel):
    valid: bool = False
    error: Optional[str] = None


class SettingsValidationResponse(BaseModel):
    greenhouse: KeyValidation
    anthropic: KeyValidation
