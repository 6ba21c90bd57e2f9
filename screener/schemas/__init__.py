from screener.schemas.job import Job, Stage, NamedRef
from screener.schemas.application import (
    Answer,
    Application,
    ApplicationListResponse,
    AdvanceRequest,
    BulkRejectRequest,
    BulkRejectResponse,
    Candidate,
    LightweightApplication,
    RejectRequest,
)
from screener.schemas.screening import (
    DisagreementFeedback,
    ScreeningApplication,
    ScreeningRequest,
    ScreeningResponse,
    ScreeningResult,
)
from screener.schemas.highlights import CandidateData, ExportedCandidate, HighlightedCandidate
from screener.schemas.search import (
    EmbeddingRecord,
    EmbeddingStatus,
    IndexStatus,
    JobIndex,
    SearchRequest,
    SearchResponse,
    SearchResult,
)
from screener.schemas.settings import KeyValidation, SettingsPayload, SettingsValidationResponse

__all__ = [
    "Job",
    "Stage",
    "NamedRef",
    "Answer",
    "Application",
    "ApplicationListResponse",
    "AdvanceRequest",
    "BulkRejectRequest",
    "BulkRejectResponse",
    "Candidate",
    "LightweightApplication",
    "RejectRequest",
    "DisagreementFeedback",
    "ScreeningApplication",
    "ScreeningRequest",
    "ScreeningResponse",
    "ScreeningResult",
    "CandidateData",
    "ExportedCandidate",
    "HighlightedCandidate",
    "EmbeddingRecord",
    "EmbeddingStatus",
    "IndexStatus",
    "JobIndex",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "KeyValidation",
    "SettingsPayload",
    "SettingsValidationResponse",
]
