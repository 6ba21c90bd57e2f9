from pydantic import BaseModel
from typing import List, Optional

from screener.schemas.job import NamedRef


class Answer(BaseModel):
    question: str = ""
    answer: str = ""


class Candidate(BaseModel):
    id: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None


class Attachments(BaseModel):
    resume: Optional[str] = None
    cover_letter: Optional[str] = None


class Application(BaseModel):
    id: int
    candidate_id: int
    candidate: Candidate
    applied_at: Optional[str] = None
    source: Optional[NamedRef] = None
    current_stage: Optional[NamedRef] = None
    answers: List[Answer] = []
    attachments: Attachments = Attachments()


class LightweightApplication(BaseModel):
    """Application shape used for bulk indexing, export and ranking."""

    id: int
    candidate_id: int
    candidate_name: str
    current_stage: Optional[NamedRef] = None
    resume_url: Optional[str] = None
    cover_letter_url: Optional[str] = None
    answers: List[Answer] = []


class ApplicationListResponse(BaseModel):
    applications: List[Application]
    total: int
    page: int
    per_page: int
    next_page: Optional[int] = None


class RejectRequest(BaseModel):
    rejection_reason_id: int
    email_template_id: Optional[int] = None


class AdvanceRequest(BaseModel):
    from_stage_id: int


class BulkRejectRequest(BaseModel):
    application_ids: List[int]
    rejection_reason_id: int
    email_template_id: Optional[int] = None


class BulkRejectResponse(BaseModel):
    success: bool = True
    rejected: List[int]
    failed: List[int]
