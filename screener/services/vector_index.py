"""
Embedding Index - Per-Job Semantic Search Over Candidates

Each job gets one JSON file (``job-<id>.json``) under the embeddings
directory holding a record per indexed application: a short text preview,
the embedding vector and timestamps. Search embeds the query with the same
provider and ranks records by cosine similarity.

Usage:
    index = EmbeddingIndex(settings.embeddings_directory, provider)

    await index.index_candidate(job_id, "Engineer", 42, "Ada", resume, answers)
    results = await index.search(job_id, "python and kubernetes", limit=10)

The file is rewritten in full on every upsert and is not locked. Within one
event loop the read-modify-write has no await point, but a second writer
working from an older snapshot (another process, or a caller holding a
loaded JobIndex) replaces the file wholesale and loses records. Last writer
wins; a rebuild restores anything lost.
"""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from screener.middleware.metrics import record_embedding_latency, update_index_size
from screener.schemas import (
    Answer,
    EmbeddingRecord,
    EmbeddingStatus,
    IndexStatus,
    JobIndex,
    SearchResult,
)
from screener.services.embedding_providers import EmbeddingProvider

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50
MAX_TEXT_LENGTH = 8000
PREVIEW_LENGTH = 500


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when the vectors differ in length or either has zero
    magnitude.
    """
    if len(vec1) != len(vec2):
        return 0.0

    a = np.asarray(vec1, dtype=float)
    b = np.asarray(vec2, dtype=float)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def build_candidate_text(
    candidate_name: str,
    resume_text: str,
    answers: Sequence[Union[Answer, dict]],
) -> str:
    lines = []
    for answer in answers:
        if isinstance(answer, dict):
            answer = Answer.model_validate(answer)
        lines.append(f"{answer.question}: {answer.answer}")
    return f"{candidate_name}\n\n{resume_text}\n\n" + "\n".join(lines)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EmbeddingIndex:
    """File-backed embedding index, one JSON document per job."""

    def __init__(self, directory: Union[str, Path], provider: EmbeddingProvider):
        self.directory = Path(directory)
        self.provider = provider

    def index_path(self, job_id: int) -> Path:
        return self.directory / f"job-{job_id}.json"

    # ==================== Persistence ====================

    def load(self, job_id: int) -> Optional[JobIndex]:
        """Load a job index; missing, unreadable or invalid files give None."""
        path = self.index_path(job_id)
        if not path.exists():
            return None
        try:
            return JobIndex.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable index {path}: {e}")
            return None

    def save(self, index: JobIndex) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.index_path(index.job_id).write_text(
            json.dumps(index.model_dump(), indent=2), encoding="utf-8"
        )
        update_index_size(index.job_id, len(index.records))

    def clear(self, job_id: int) -> None:
        path = self.index_path(job_id)
        if path.exists():
            path.unlink()
            logger.info(f"Cleared index for job {job_id}")
        update_index_size(job_id, 0)

    # ==================== Embedding ====================

    async def status(self) -> EmbeddingStatus:
        """Make sure the embedding backend can be used, loading it if needed."""
        try:
            await self.provider.load()
        except Exception as e:
            logger.error(f"Embedding model unavailable: {e}")
            return EmbeddingStatus(available=False, error=str(e))
        return EmbeddingStatus(available=True)

    async def _embed(self, text: str) -> List[float]:
        start = time.perf_counter()
        embedding = await self.provider.embed(text)
        record_embedding_latency(self.provider.name, time.perf_counter() - start)
        return list(embedding)

    async def index_candidate(
        self,
        job_id: int,
        job_title: str,
        application_id: int,
        candidate_name: str,
        resume_text: str,
        answers: Sequence[Union[Answer, dict]] = (),
    ) -> bool:
        """
        Embed one candidate and upsert the record into the job index.

        Returns False without touching the index when the combined text is
        too short to be meaningful.
        """
        full_text = build_candidate_text(candidate_name, resume_text, answers).strip()
        if len(full_text) < MIN_TEXT_LENGTH:
            logger.info(f"Skipping {candidate_name} - insufficient text")
            return False

        text = full_text[:MAX_TEXT_LENGTH]
        logger.debug(f"Generating embedding for {candidate_name}")
        embedding = await self._embed(text)

        now = _now()
        index = self.load(job_id) or JobIndex(job_id=job_id, job_title=job_title, indexed_at=now)
        record = EmbeddingRecord(
            application_id=application_id,
            candidate_name=candidate_name,
            text=text[:PREVIEW_LENGTH] + "...",
            embedding=embedding,
            indexed_at=now,
        )

        for i, existing in enumerate(index.records):
            if existing.application_id == application_id:
                index.records[i] = record
                break
        else:
            index.records.append(record)

        index.indexed_at = now
        self.save(index)
        return True

    async def search(self, job_id: int, query: str, limit: int = 20) -> List[SearchResult]:
        index = self.load(job_id)
        if index is None or not index.records:
            return []

        logger.info(f"Searching {len(index.records)} candidates for: \"{query}\"")
        query_embedding = await self._embed(query)

        scored = [
            SearchResult(
                application_id=record.application_id,
                candidate_name=record.candidate_name,
                score=cosine_similarity(query_embedding, record.embedding),
                preview=record.text,
            )
            for record in index.records
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    def index_status(self, job_id: int) -> IndexStatus:
        index = self.load(job_id)
        if index is None:
            return IndexStatus(indexed=False, count=0)
        return IndexStatus(indexed=True, count=len(index.records), indexed_at=index.indexed_at)
