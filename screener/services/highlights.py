"""
Highlights Pipeline - Tournament Ranking of a Whole Applicant Pool

Ranking thousands of resumes in one prompt does not fit the context window,
so ranking runs in two phases:

Phase 1 (elimination):
    Candidates are split into batches of ``batch_size``. Each batch is sent
    on its own, one after another, asking for at most ``winners_per_batch``
    candidates scoring 70+. A batch whose answer cannot be parsed
    contributes no winners.

Phase 2 (final ranking):
    All winners go into one call with resume text trimmed so the request
    stays under ~500k characters. The model returns the final ordering,
    which is normalised here into ranks 1..N with tiers.

winners_per_batch = ceil(1.5 * top_n / num_batches); the 1.5x buffer
covers candidates that drop out in phase 2.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from screener.middleware.metrics import record_llm_latency
from screener.schemas import CandidateData, HighlightedCandidate
from screener.services.claude import ParseError, first_text, parse_json_payload, with_retry

logger = logging.getLogger(__name__)

GENERAL_REQUIREMENTS = "General technical role"
MAX_RESUME_CHARS = 3000
FINAL_PROMPT_BUDGET = 500_000
BATCH_ANSWER_LIMIT = 3

BATCH_SYSTEM_PROMPT = """You are an expert technical recruiter analyzing candidates for: {job_title}

## Job Requirements
{job_requirements}

## Your Task
This is batch {batch_num} of {total_batches}. Analyze these candidates and identify the TOP {winners} from this batch.

## Response Format
Return JSON array of winners with scores (0-100):

```json
[
  {{
    "application_id": 12345,
    "score": 95,
    "summary": "Senior ML Engineer from Google, built recommendation systems at scale"
  }}
]
```

## Rules
- Only include candidates scoring 70+
- Maximum {winners} candidates
- Be specific in summaries
- Return valid JSON array"""

FINAL_SYSTEM_PROMPT = """You are an expert technical recruiter analyzing candidates for: {job_title}

## Job Requirements
{job_requirements}

## Your Task
The candidates below were shortlisted from a larger pool.
Analyze ALL of them and identify the TOP {top_n} based on fit for this role.

## Scoring (0-100)
- 90-100: Exceptional, must interview
- 80-89: Strong candidate
- 70-79: Good candidate
- Below 70: Don't include

## Response Format
Return JSON array ranked from best (#1) to #{top_n}:

```json
[
  {{
    "application_id": 12345,
    "rank": 1,
    "score": 95,
    "summary": "Senior ML Engineer from Google, built recommendation systems at scale"
  }}
]
```

## Rules
- Only include candidates scoring 70+
- Be specific in summaries - companies, metrics, achievements
- Maximum {top_n} candidates
- Return valid JSON array"""


class HighlightsError(Exception):
    """The final ranking could not be produced."""


@dataclass
class Winner:
    candidate: CandidateData
    score: float
    summary: str


BatchCallback = Callable[[int, int, int], Any]


def plan_batches(count: int, top_n: int, batch_size: int = 100) -> Tuple[int, int]:
    """Return (num_batches, winners_per_batch) for ``count`` candidates."""
    if count <= 0:
        return 0, 0
    num_batches = math.ceil(count / batch_size)
    return num_batches, math.ceil(top_n * 1.5 / num_batches)


def tier_for_rank(rank: int) -> str:
    if rank <= 10:
        return "TOP"
    if rank <= 25:
        return "STRONG"
    return "GOOD"


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _to_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(score):
        return 0.0
    return max(0.0, min(100.0, score))


def _rank_key(value: Any) -> float:
    try:
        rank = float(value)
    except (TypeError, ValueError):
        return math.inf
    return math.inf if math.isnan(rank) else rank


def format_batch_candidates(candidates: Sequence[CandidateData]) -> str:
    chunks = []
    for c in candidates:
        chunk = f"\n---\n### {c.candidate_name} (ID: {c.application_id})\n"
        chunk += c.resume_text or "No resume"
        if c.answers:
            answers = "; ".join(
                f"{a.question}: {a.answer}" for a in c.answers[:BATCH_ANSWER_LIMIT]
            )
            chunk += f"\nAnswers: {answers}"
        chunks.append(chunk)
    return "".join(chunks)


def select_winners(
    items: Any,
    batch: Sequence[CandidateData],
    limit: int,
) -> List[Winner]:
    """Keep in-batch, first-seen winners up to ``limit``."""
    if not isinstance(items, list):
        return []

    by_id = {c.application_id: c for c in batch}
    seen = set()
    winners: List[Winner] = []
    for item in items:
        if len(winners) >= limit:
            break
        if not isinstance(item, dict):
            continue
        application_id = _to_int(item.get("application_id"))
        if application_id not in by_id or application_id in seen:
            continue
        seen.add(application_id)
        winners.append(Winner(
            candidate=by_id[application_id],
            score=_to_score(item.get("score")),
            summary=str(item.get("summary") or ""),
        ))
    return winners


def normalize_ranking(
    items: List[Any],
    winners: Sequence[Winner],
    top_n: int,
) -> List[HighlightedCandidate]:
    """
    Turn the model's ranking into contiguous ranks 1..N.

    Items are ordered by the rank the model gave (stable, unranked last);
    ids that were not shortlisted and repeated ids are dropped.
    """
    by_id = {w.candidate.application_id: w for w in winners}
    dicts = [item for item in items if isinstance(item, dict)]
    ordered = sorted(dicts, key=lambda item: _rank_key(item.get("rank")))

    seen = set()
    ranked: List[HighlightedCandidate] = []
    for item in ordered:
        if len(ranked) >= top_n:
            break
        application_id = _to_int(item.get("application_id"))
        if application_id not in by_id or application_id in seen:
            continue
        seen.add(application_id)
        candidate = by_id[application_id].candidate
        rank = len(ranked) + 1
        ranked.append(HighlightedCandidate(
            rank=rank,
            application_id=application_id,
            candidate_id=candidate.candidate_id,
            candidate_name=candidate.candidate_name,
            greenhouse_url=candidate.greenhouse_url,
            score=_to_score(item.get("score")),
            summary=str(item.get("summary") or ""),
            tier=tier_for_rank(rank),
        ))
    return ranked


class HighlightsPipeline:
    """
    Two-phase tournament ranking over CandidateData.

    Example:
        >>> pipeline = HighlightsPipeline(client, model=settings.ranking_model)
        >>> top = await pipeline.run("Data Scientist", "", candidates, top_n=50)
    """

    def __init__(
        self,
        client: Any,
        model: str = "claude-opus-4-5-20251101",
        batch_size: int = 100,
        batch_max_tokens: int = 4000,
        final_max_tokens: int = 16000,
        batch_attempts: int = 3,
        final_attempts: int = 5,
        sleep=asyncio.sleep,
    ):
        self.client = client
        self.model = model
        self.batch_size = batch_size
        self.batch_max_tokens = batch_max_tokens
        self.final_max_tokens = final_max_tokens
        self.batch_attempts = batch_attempts
        self.final_attempts = final_attempts
        self._sleep = sleep

    async def _create(self, system: str, user: str, max_tokens: int, attempts: int, label: str):
        return await with_retry(
            lambda: self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
            ),
            max_attempts=attempts,
            label=label,
            sleep=self._sleep,
        )

    async def process_batch(
        self,
        batch: Sequence[CandidateData],
        job_title: str,
        job_requirements: str,
        winners_per_batch: int,
        batch_num: int,
        total_batches: int,
    ) -> List[Winner]:
        system = BATCH_SYSTEM_PROMPT.format(
            job_title=job_title,
            job_requirements=job_requirements or GENERAL_REQUIREMENTS,
            batch_num=batch_num,
            total_batches=total_batches,
            winners=winners_per_batch,
        )
        user = (
            f"Analyze these {len(batch)} candidates:\n{format_batch_candidates(batch)}"
            f"\n\nReturn top {winners_per_batch} as JSON."
        )

        start = time.perf_counter()
        message = await self._create(
            system, user, self.batch_max_tokens, self.batch_attempts,
            f"Batch {batch_num}/{total_batches}",
        )
        record_llm_latency("highlights_batch", time.perf_counter() - start)

        parsed = parse_json_payload(first_text(message))
        if isinstance(parsed, ParseError):
            logger.warning(f"Failed to parse batch {batch_num} response: {parsed.reason}")
            return []
        return select_winners(parsed.value, batch, winners_per_batch)

    async def rank_winners(
        self,
        winners: Sequence[Winner],
        job_title: str,
        job_requirements: str,
        top_n: int,
    ) -> List[HighlightedCandidate]:
        system = FINAL_SYSTEM_PROMPT.format(
            job_title=job_title,
            job_requirements=job_requirements or GENERAL_REQUIREMENTS,
            top_n=top_n,
        )

        max_resume = min(MAX_RESUME_CHARS, FINAL_PROMPT_BUDGET // len(winners))
        logger.info(f"Max {max_resume} chars per resume for {len(winners)} winners")

        chunks = []
        for w in winners:
            resume = (w.candidate.resume_text or "")[:max_resume] or "No resume"
            chunks.append(
                f"\n---\n### {w.candidate.candidate_name} (ID: {w.candidate.application_id})\n"
                f"Previous Score: {w.score:g}\n"
                f"Summary: {w.summary}\n"
                f"Resume: {resume}"
            )
        user = (
            f"Rank these {len(winners)} pre-screened candidates:\n{''.join(chunks)}"
            f"\n\nReturn top {top_n} ranked."
        )

        start = time.perf_counter()
        message = await self._create(
            system, user, self.final_max_tokens, self.final_attempts, "Final ranking",
        )
        record_llm_latency("highlights_final", time.perf_counter() - start)

        parsed = parse_json_payload(first_text(message))
        if isinstance(parsed, ParseError):
            raise HighlightsError(f"Failed to parse final ranking: {parsed.reason}")
        if not isinstance(parsed.value, list):
            raise HighlightsError("Final ranking was not a JSON array")

        return normalize_ranking(parsed.value, winners, top_n)

    async def run(
        self,
        job_title: str,
        job_requirements: str,
        candidates: Sequence[CandidateData],
        top_n: int = 100,
        on_batch: Optional[BatchCallback] = None,
    ) -> List[HighlightedCandidate]:
        num_batches, winners_per_batch = plan_batches(len(candidates), top_n, self.batch_size)
        logger.info(
            f"Processing {len(candidates)} candidates in {num_batches} batches, "
            f"{winners_per_batch} winners/batch"
        )

        winners: List[Winner] = []
        for i in range(num_batches):
            batch = candidates[i * self.batch_size:(i + 1) * self.batch_size]
            batch_winners = await self.process_batch(
                batch, job_title, job_requirements, winners_per_batch, i + 1, num_batches
            )
            winners.extend(batch_winners)
            logger.info(
                f"Batch {i + 1}: found {len(batch_winners)} winners (total: {len(winners)})"
            )
            if on_batch:
                on_batch(i + 1, num_batches, len(winners))

        if not winners:
            logger.info("No winners found in any batch")
            return []

        ranked = await self.rank_winners(winners, job_title, job_requirements, top_n)
        logger.info(f"Highlights complete: {len(ranked)} top candidates")
        return ranked
