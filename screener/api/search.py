"""
Search API - Semantic Search, Index Rebuild, Export and Highlights

Endpoints:
    GET    /api/search/status               - Embedding backend availability
    GET    /api/search/index/{job_id}       - Index status of a job
    POST   /api/search/index/{job_id}       - Rebuild the index (SSE)
    DELETE /api/search/index/{job_id}       - Delete the index
    POST   /api/search/{job_id}             - Semantic search
    GET    /api/search/export/{job_id}      - Export resumes as JSON (SSE)
    GET    /api/search/highlights/{job_id}  - Rank the top candidates (SSE)
"""

import logging

from fastapi import APIRouter, Depends, Query

from screener.schemas import EmbeddingStatus, IndexStatus, SearchRequest, SearchResponse
from screener.services.documents import DocumentExtractor
from screener.services.greenhouse import GreenhouseClient
from screener.services.highlights import HighlightsPipeline
from screener.services.operations import build_index, export_resumes, generate_highlights
from screener.services.vector_index import EmbeddingIndex
from screener.api.deps import (
    get_embedding_index,
    get_highlights_pipeline,
    provide_extractor,
    provide_greenhouse,
)
from screener.api.streaming import event_stream

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/status", response_model=EmbeddingStatus)
async def embedding_status(index: EmbeddingIndex = Depends(get_embedding_index)):
    return await index.status()


@router.get("/index/{job_id}", response_model=IndexStatus)
async def index_status(job_id: int, index: EmbeddingIndex = Depends(get_embedding_index)):
    return index.index_status(job_id)


@router.post("/index/{job_id}")
async def rebuild_index(
    job_id: int,
    index: EmbeddingIndex = Depends(get_embedding_index),
    greenhouse: GreenhouseClient = Depends(provide_greenhouse),
    extractor: DocumentExtractor = Depends(provide_extractor),
):
    return event_stream(
        lambda emit: build_index(job_id, greenhouse, extractor, index, emit),
        cleanup=[greenhouse.aclose, extractor.aclose],
        name=f"index rebuild for job {job_id}",
    )


@router.delete("/index/{job_id}")
async def clear_index(job_id: int, index: EmbeddingIndex = Depends(get_embedding_index)):
    index.clear(job_id)
    return {"success": True}


@router.get("/export/{job_id}")
async def export_job_resumes(
    job_id: int,
    greenhouse: GreenhouseClient = Depends(provide_greenhouse),
    extractor: DocumentExtractor = Depends(provide_extractor),
):
    return event_stream(
        lambda emit: export_resumes(job_id, greenhouse, extractor, emit),
        cleanup=[greenhouse.aclose, extractor.aclose],
        name=f"export for job {job_id}",
    )


@router.get("/highlights/{job_id}")
async def job_highlights(
    job_id: int,
    top_n: int = Query(100, ge=1, le=1000),
    requirements: str = Query(""),
    pipeline: HighlightsPipeline = Depends(get_highlights_pipeline),
    greenhouse: GreenhouseClient = Depends(provide_greenhouse),
    extractor: DocumentExtractor = Depends(provide_extractor),
):
    return event_stream(
        lambda emit: generate_highlights(
            job_id,
            greenhouse,
            extractor,
            pipeline,
            emit,
            top_n=top_n,
            job_requirements=requirements,
        ),
        cleanup=[greenhouse.aclose, extractor.aclose],
        name=f"highlights for job {job_id}",
    )


@router.post("/{job_id}", response_model=SearchResponse)
async def search_candidates(
    job_id: int,
    request: SearchRequest,
    index: EmbeddingIndex = Depends(get_embedding_index),
):
    results = await index.search(job_id, request.query, request.limit)
    return SearchResponse(results=results)
