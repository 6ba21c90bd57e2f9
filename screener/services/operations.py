"""
Long-running job operations streamed to the UI as progress events.

Each operation fetches every active application of a job through the
lightweight path, keeps those in Application Review, and then:

- build_index(): extracts resumes and (re)builds the embedding index
- export_resumes(): extracts resumes and cover letters into one JSON payload
- generate_highlights(): extracts resumes and runs the tournament ranking

Progress is reported through an ``emit`` callback; any exception escaping
an operation is turned into an ``error`` event by the streaming layer.

bulk_reject() lives here too since it fans out over many applications.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Sequence

from screener.schemas import (
    BulkRejectRequest,
    BulkRejectResponse,
    CandidateData,
    ExportedCandidate,
    Job,
    LightweightApplication,
)
from screener.services.documents import DocumentExtractor
from screener.services.greenhouse import (
    GreenhouseClient,
    fetch_all_applications,
    greenhouse_url,
    in_application_review,
)
from screener.services.highlights import HighlightsPipeline
from screener.services.progress import (
    BatchEvent,
    CompleteEvent,
    Emit,
    FetchingEvent,
    ProgressEvent,
    StatusEvent,
)
from screener.services.vector_index import EmbeddingIndex

logger = logging.getLogger(__name__)

INDEX_BATCH_SIZE = 25
EXTRACT_BATCH_SIZE = 50


class OperationError(Exception):
    """An operation could not start or continue; the message is shown to the user."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _require_job(greenhouse: GreenhouseClient, job_id: int) -> Job:
    job = await greenhouse.get_job(job_id)
    if job is None:
        raise OperationError("Job not found")
    return job


async def _review_applications(
    greenhouse: GreenhouseClient,
    job_id: int,
    emit: Emit,
    log_prefix: str,
) -> List[LightweightApplication]:
    applications = await fetch_all_applications(
        greenhouse,
        job_id,
        status="active",
        on_page=lambda page, count: emit(FetchingEvent(page=page, fetched=count)),
        log_prefix=log_prefix,
    )
    in_review = [a for a in applications if in_application_review(a)]
    logger.info(
        f"{log_prefix}Filtered {len(applications)} applications "
        f"to {len(in_review)} in Application Review"
    )
    return in_review


def _batches(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield i + len(items[i:i + size]), items[i:i + size]


# ==================== Index rebuild ====================

async def build_index(
    job_id: int,
    greenhouse: GreenhouseClient,
    extractor: DocumentExtractor,
    index: EmbeddingIndex,
    emit: Emit,
    batch_size: int = INDEX_BATCH_SIZE,
) -> None:
    emit(StatusEvent("init", "Checking embedding service..."))
    status = await index.status()
    if not status.available:
        raise OperationError(status.error or "Embedding service not available")

    emit(StatusEvent("init", "Loading job details..."))
    job = await _require_job(greenhouse, job_id)

    emit(StatusEvent("fetching", "Fetching applications (lightweight)..."))
    applications = await _review_applications(greenhouse, job_id, emit, "[Index] ")
    total = len(applications)

    emit(StatusEvent("processing", f"Indexing {total} candidates...", total=total))
    index.clear(job_id)

    async def index_one(app: LightweightApplication) -> bool:
        resume_text = await extractor.extract_text(app.resume_url)
        return await index.index_candidate(
            job_id, job.name, app.id, app.candidate_name, resume_text, app.answers
        )

    indexed = failed = skipped = 0
    for processed, batch in _batches(applications, batch_size):
        outcomes = await asyncio.gather(*(index_one(a) for a in batch), return_exceptions=True)

        names = []
        for app, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                failed += 1
                logger.error(f"[Index] Failed to index application {app.id}: {outcome}")
                continue
            if outcome:
                indexed += 1
            else:
                skipped += 1
            names.append(app.candidate_name)

        emit(ProgressEvent(
            processed=processed,
            total=total,
            indexed=indexed,
            failed=failed,
            current=", ".join(names),
        ))
        logger.info(f"[Index] Processed {processed}/{total}")

    emit(StatusEvent("complete", "Indexing complete!"))
    emit(CompleteEvent({
        "success": True,
        "indexed": indexed,
        "failed": failed,
        "skipped": skipped,
        "total": total,
    }))


# ==================== Export ====================

async def export_resumes(
    job_id: int,
    greenhouse: GreenhouseClient,
    extractor: DocumentExtractor,
    emit: Emit,
    batch_size: int = EXTRACT_BATCH_SIZE,
) -> None:
    emit(StatusEvent("init", "Starting export..."))
    job = await _require_job(greenhouse, job_id)

    emit(StatusEvent("fetching", "Fetching applications (lightweight)..."))
    applications = await _review_applications(greenhouse, job_id, emit, "[Export] ")
    total = len(applications)

    emit(StatusEvent("processing", f"Processing {total} candidates...", total=total))
    logger.info(f"[Export] Processing {total} candidates for job: {job.name}")

    async def export_one(app: LightweightApplication) -> ExportedCandidate:
        resume_text, cover_letter_text = await asyncio.gather(
            extractor.extract_text(app.resume_url),
            extractor.extract_text(app.cover_letter_url),
        )
        return ExportedCandidate(
            application_id=app.id,
            candidate_id=app.candidate_id,
            candidate_name=app.candidate_name,
            greenhouse_url=greenhouse_url(greenhouse.app_url, app.candidate_id, app.id),
            resume_text=resume_text,
            cover_letter_text=cover_letter_text,
            answers=app.answers,
            current_stage=app.current_stage.name if app.current_stage else None,
        )

    exported: List[ExportedCandidate] = []
    for processed, batch in _batches(applications, batch_size):
        results = await asyncio.gather(*(export_one(a) for a in batch))
        exported.extend(results)
        emit(ProgressEvent(
            processed=processed,
            total=total,
            current=", ".join(r.candidate_name for r in results),
        ))
        logger.info(f"[Export] Processed {processed}/{total}")

    emit(StatusEvent("complete", "Export complete!"))
    emit(CompleteEvent({
        "job_id": job_id,
        "job_name": job.name,
        "exported_at": _now(),
        "total_candidates": len(exported),
        "candidates": [c.model_dump() for c in exported],
    }))


# ==================== Highlights ====================

async def generate_highlights(
    job_id: int,
    greenhouse: GreenhouseClient,
    extractor: DocumentExtractor,
    pipeline: HighlightsPipeline,
    emit: Emit,
    top_n: int = 100,
    job_requirements: str = "",
    batch_size: int = EXTRACT_BATCH_SIZE,
) -> None:
    emit(StatusEvent("init", "Starting highlights generation..."))
    job = await _require_job(greenhouse, job_id)

    emit(StatusEvent("fetching", "Fetching applications..."))
    applications = await _review_applications(greenhouse, job_id, emit, "[Highlights] ")
    total = len(applications)

    emit(StatusEvent("extracting", f"Extracting resumes from {total} candidates...", total=total))

    async def candidate_data(app: LightweightApplication) -> CandidateData:
        return CandidateData(
            application_id=app.id,
            candidate_id=app.candidate_id,
            candidate_name=app.candidate_name,
            greenhouse_url=greenhouse_url(greenhouse.app_url, app.candidate_id, app.id),
            resume_text=await extractor.extract_text(app.resume_url),
            answers=app.answers,
        )

    candidates: List[CandidateData] = []
    for processed, batch in _batches(applications, batch_size):
        candidates.extend(await asyncio.gather(*(candidate_data(a) for a in batch)))
        emit(ProgressEvent(
            processed=processed,
            total=total,
            message=f"Extracted {processed}/{total} resumes",
        ))

    emit(StatusEvent("analyzing", f"Analyzing {total} candidates in batches..."))
    highlights = await pipeline.run(
        job.name,
        job_requirements,
        candidates,
        top_n=min(top_n, total),
        on_batch=lambda batch, total_batches, winners: emit(
            BatchEvent(batch=batch, total_batches=total_batches, winners_found=winners)
        ),
    )

    emit(StatusEvent("complete", f"Found {len(highlights)} top candidates!"))
    emit(CompleteEvent({
        "job_id": job_id,
        "job_name": job.name,
        "total_candidates": total,
        "highlighted_count": len(highlights),
        "generated_at": _now(),
        "highlights": [h.model_dump() for h in highlights],
    }))


# ==================== Bulk actions ====================

async def bulk_reject(greenhouse: GreenhouseClient, request: BulkRejectRequest) -> BulkRejectResponse:
    """Reject every application independently; failures are reported, not raised."""
    outcomes = await asyncio.gather(
        *(
            greenhouse.reject_application(
                application_id, request.rejection_reason_id, request.email_template_id
            )
            for application_id in request.application_ids
        ),
        return_exceptions=True,
    )

    rejected: List[int] = []
    failed: List[int] = []
    for application_id, outcome in zip(request.application_ids, outcomes):
        if isinstance(outcome, Exception):
            logger.error(f"Failed to reject application {application_id}: {outcome}")
            failed.append(application_id)
        else:
            rejected.append(application_id)

    logger.info(f"Bulk reject: {len(rejected)} rejected, {len(failed)} failed")
    return BulkRejectResponse(success=True, rejected=rejected, failed=failed)
