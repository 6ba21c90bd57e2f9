from pydantic import BaseModel, Field
from typing import List, Optional


class EmbeddingRecord(BaseModel):
    application_id: int
    candidate_name: str
    text: str
    embedding: List[float]
    indexed_at: str


class JobIndex(BaseModel):
    job_id: int
    job_title: str
    indexed_at: str
    records: List[EmbeddingRecord] = []


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(20, ge=1, le=500)


class SearchResult(BaseModel):
    application_id: int
    candidate_name: str
    score: float
    preview: str


class SearchResponse(BaseModel):
    results: List[SearchResult]


class IndexStatus(BaseModel):
    indexed: bool
    count: int = 0
    indexed_at: Optional[str] = None


class EmbeddingStatus(BaseModel):
    available: bool
    error: Optional[str] = None
