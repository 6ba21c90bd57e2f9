from pydantic import BaseModel
from typing import List, Literal, Optional

from screener.schemas.application import Answer


class CandidateData(BaseModel):
    application_id: int
    candidate_id: int
    candidate_name: str
    greenhouse_url: str
    resume_text: str = ""
    answers: List[Answer] = []


class ExportedCandidate(CandidateData):
    cover_letter_text: str = ""
    current_stage: Optional[str] = None


class HighlightedCandidate(BaseModel):
    rank: int
    application_id: int
    candidate_id: int
    candidate_name: str
    greenhouse_url: str
    score: float
    summary: str = ""
    tier: Literal["TOP", "STRONG", "GOOD"]
