from pydantic import BaseModel, Field
from typing import List, Literal, Optional

from screener.schemas.application import Answer


class DisagreementFeedback(BaseModel):
    candidate_name: str
    llm_recommendation: Literal["GREEN", "RED"]
    user_decision: Literal["ADVANCE", "REJECT"]
    user_reason: str = ""


class ScreeningApplication(BaseModel):
    application_id: int
    candidate_name: str
    resume_url: Optional[str] = None
    cover_letter_url: Optional[str] = None
    answers: List[Answer] = []


class ScreeningRequest(BaseModel):
    job_id: int
    job_title: str = Field(..., min_length=1)
    job_requirements: str = ""
    applications: List[ScreeningApplication] = Field(..., min_length=1)
    feedback: Optional[List[DisagreementFeedback]] = None


class ScreeningResult(BaseModel):
    application_id: int
    recommendation: Literal["GREEN", "RED"]
    confidence: Literal["HIGH", "MEDIUM", "LOW"]
    summary: str = ""
    key_factors: List[str] = []
    concerns: List[str] = []
    reasoning: str = ""


class ScreeningResponse(BaseModel):
    results: List[ScreeningResult]
    missing_application_ids: List[int] = []
