"""
Screening Service - GREEN/RED Recommendations From Claude

Screens a group of applications in a single Messages API call:
- PDF resumes and cover letters are attached as base64 document blocks
- Other formats are converted to text and inlined
- Past human disagreements are added to the system prompt as calibration

Usage:
    service = ScreeningService(client, extractor, model=settings.screening_model)
    outcome = await service.screen(request)
    outcome.results          # List[ScreeningResult]
    outcome.missing_ids      # applications the model skipped
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from screener.middleware.metrics import record_llm_latency
from screener.schemas import (
    DisagreementFeedback,
    ScreeningApplication,
    ScreeningRequest,
    ScreeningResult,
)
from screener.services.claude import ParseError, first_text, parse_json_payload, with_retry
from screener.services.documents import DocumentContent, DocumentExtractor, PdfContent

logger = logging.getLogger(__name__)

NO_REQUIREMENTS = "No specific requirements provided."

SYSTEM_PROMPT = """You are an extremely critical technical recruiter screening candidates for: {job_title}

## Job Requirements
{job_requirements}

## Your Mindset
You are HIGHLY SELECTIVE. Your job is to protect the hiring team's time by filtering out anyone who isn't an exceptional fit.

- Assume most candidates are NOT qualified until proven otherwise
- A generic resume with buzzwords is a RED flag, not neutral
- "Potential" doesn't count - you need EVIDENCE of relevant accomplishments
- Missing information = assume the worst (if they had it, they'd mention it)
- Years of experience at mediocre companies < 1 year at a top company with impact
- Be skeptical of inflated titles and vague job descriptions

## Response Format (JSON)
Respond with a JSON array containing an object for each candidate:

```json
[
  {{
    "application_id": 12345,
    "recommendation": "GREEN",
    "confidence": "HIGH",
    "summary": "Senior data scientist from Google with 5 years ML experience, built recommendation systems serving 100M users",
    "key_factors": [
      "Led A/B testing platform at Stripe, ran 200+ experiments",
      "Built customer segmentation model at Airbnb increasing conversion 15%"
    ],
    "concerns": ["No direct marketing analytics experience"],
    "reasoning": "Strong technical foundation from top companies. A/B testing expertise directly relevant."
  }}
]
```

## BE SPECIFIC - Include Real Details
- summary: Mention their current/most impressive company, years of experience, and ONE concrete achievement
- key_factors: Name actual companies, specific projects, real metrics, and concrete skills they demonstrated
- concerns: Be brutally honest about gaps, red flags, and missing qualifications
- reasoning: Explain exactly why they pass or fail the bar

AVOID generic statements like "strong technical skills" or "good communication".

## RED FLAGS to watch for
- Vague descriptions without metrics or outcomes
- Job hopping without progression
- No evidence of the specific skills required
- Buzzword-heavy resume with no substance
- "Familiar with" or "exposure to" instead of hands-on experience

## Rules
- recommendation: "GREEN" or "RED" only
- confidence: "HIGH", "MEDIUM", or "LOW"
- GREEN = Exceptional candidate who clearly meets requirements with EVIDENCE
- RED = Anyone who doesn't clearly prove they're qualified
- When in doubt, RED. The hiring team's time is precious.
- Include ALL candidates in your response
- Return valid JSON"""

CALIBRATION_SECTION = """

## CALIBRATION FROM PAST DECISIONS
I've disagreed with some of your past recommendations. LEARN FROM THESE CORRECTIONS:

{examples}

Adjust your calibration based on this feedback. If you've been too lenient or too strict on certain criteria, correct accordingly.
"""

CANDIDATE_SEPARATOR = "\n\n---\n\n"

RECOMMENDATIONS = ("GREEN", "RED")
CONFIDENCE_LEVELS = ("HIGH", "MEDIUM", "LOW")


class ScreeningParseError(Exception):
    """The model response could not be parsed as screening JSON."""

    def __init__(self, reason: str, raw: str = ""):
        self.reason = reason
        self.raw = raw
        super().__init__(f"Failed to parse screening response: {reason}")


@dataclass
class ScreeningOutcome:
    results: List[ScreeningResult]
    missing_ids: List[int] = field(default_factory=list)


def format_calibration(feedback: Optional[Sequence[DisagreementFeedback]], limit: int = 20) -> str:
    """Calibration section for the most recent ``limit`` disagreements."""
    if not feedback or limit <= 0:
        return ""

    examples = []
    for f in list(feedback)[-limit:]:
        if f.user_decision == "ADVANCE":
            action = "ADVANCED (you said RED)"
        else:
            action = "REJECTED (you said GREEN)"
        examples.append(
            f'- {f.candidate_name}: You recommended {f.llm_recommendation}, '
            f'but I {action}. Reason: "{f.user_reason}"'
        )
    return CALIBRATION_SECTION.format(examples="\n".join(examples))


def build_system_prompt(
    job_title: str,
    job_requirements: str,
    feedback: Optional[Sequence[DisagreementFeedback]] = None,
    calibration_limit: int = 20,
) -> str:
    prompt = SYSTEM_PROMPT.format(
        job_title=job_title,
        job_requirements=job_requirements or NO_REQUIREMENTS,
    )
    return prompt + format_calibration(feedback, calibration_limit)


def pdf_block(document: PdfContent) -> Dict[str, Any]:
    return {
        "type": "document",
        "source": {
            "type": "base64",
            "media_type": "application/pdf",
            "data": document.base64,
        },
    }


def candidate_text(
    application: ScreeningApplication,
    resume: Optional[DocumentContent],
    cover_letter: Optional[DocumentContent],
) -> str:
    parts = [
        f"## Candidate: {application.candidate_name}",
        f"Application ID: {application.application_id}",
        "",
        "### Application Answers",
    ]
    if application.answers:
        for qa in application.answers:
            parts.append(f"**{qa.question}**\n{qa.answer}\n")
    else:
        parts.append("No application answers provided.\n")

    if isinstance(resume, PdfContent):
        parts.append("### Resume\nThe candidate's resume PDF is attached above. Please analyze it carefully.")
    elif resume is not None:
        parts.append(f"### Resume Content\n{resume.content}")
    elif application.resume_url:
        parts.append("### Resume\nResume file could not be processed.")
    else:
        parts.append("### Resume\nNo resume provided.")

    if isinstance(cover_letter, PdfContent):
        parts.append("### Cover Letter\nThe candidate's cover letter PDF is attached above.")
    elif cover_letter is not None:
        parts.append(f"### Cover Letter Content\n{cover_letter.content}")
    elif application.cover_letter_url:
        parts.append("### Cover Letter\nCover letter file could not be processed.")

    return "\n".join(parts)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def coerce_result(item: Dict[str, Any]) -> Optional[ScreeningResult]:
    """Build a ScreeningResult from one raw item, or None without a usable id."""
    application_id = _as_int(item.get("application_id"))
    if application_id is None:
        return None

    recommendation = _as_str(item.get("recommendation")).strip().upper()
    if recommendation not in RECOMMENDATIONS:
        logger.warning(
            f"Unrecognized recommendation {item.get('recommendation')!r} "
            f"for application {application_id}, treating as RED"
        )
        recommendation = "RED"

    confidence = _as_str(item.get("confidence")).strip().upper()
    if confidence not in CONFIDENCE_LEVELS:
        confidence = "LOW"

    return ScreeningResult(
        application_id=application_id,
        recommendation=recommendation,
        confidence=confidence,
        summary=_as_str(item.get("summary")),
        key_factors=_as_str_list(item.get("key_factors")),
        concerns=_as_str_list(item.get("concerns")),
        reasoning=_as_str(item.get("reasoning")),
    )


def parse_screening_response(text: Optional[str]) -> List[ScreeningResult]:
    """
    Parse the model output into screening results.

    Accepts a single object or an array, optionally wrapped in a fenced
    code block. Raises ScreeningParseError when the payload is not JSON
    or is neither an object nor an array.
    """
    parsed = parse_json_payload(text)
    if isinstance(parsed, ParseError):
        logger.error(f"Failed to parse screening response: {parsed.reason}")
        raise ScreeningParseError(parsed.reason, parsed.raw)

    value = parsed.value
    if isinstance(value, dict):
        items = [value]
    elif isinstance(value, list):
        items = value
    else:
        raise ScreeningParseError(f"unexpected JSON type {type(value).__name__}", text or "")

    results = []
    for item in items:
        if not isinstance(item, dict):
            continue
        result = coerce_result(item)
        if result is not None:
            results.append(result)
    return results


class ScreeningService:
    """
    Screens applications against a job with one Claude call per request.

    Attributes:
        client: AsyncAnthropic (or compatible) client
        extractor: Downloads resumes and cover letters
        model: Model used for screening
    """

    def __init__(
        self,
        client: Any,
        extractor: DocumentExtractor,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        calibration_limit: int = 20,
        max_attempts: int = 3,
        sleep=asyncio.sleep,
    ):
        self.client = client
        self.extractor = extractor
        self.model = model
        self.max_tokens = max_tokens
        self.calibration_limit = calibration_limit
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def _documents(self, application: ScreeningApplication):
        return await asyncio.gather(
            self.extractor.fetch_for_llm(application.resume_url),
            self.extractor.fetch_for_llm(application.cover_letter_url),
        )

    async def build_content(self, applications: Sequence[ScreeningApplication]) -> List[Dict[str, Any]]:
        logger.info(f"Preparing documents for {len(applications)} candidates")
        documents = await asyncio.gather(*(self._documents(a) for a in applications))

        content: List[Dict[str, Any]] = []
        for application, (resume, cover_letter) in zip(applications, documents):
            if isinstance(resume, PdfContent):
                content.append(pdf_block(resume))
            if isinstance(cover_letter, PdfContent):
                content.append(pdf_block(cover_letter))
            content.append({"type": "text", "text": candidate_text(application, resume, cover_letter)})
            content.append({"type": "text", "text": CANDIDATE_SEPARATOR})

        content.append({
            "type": "text",
            "text": (
                f"Please analyze all {len(applications)} candidates above and provide "
                f"your screening recommendations in the specified JSON format."
            ),
        })
        return content

    async def screen(self, request: ScreeningRequest) -> ScreeningOutcome:
        system_prompt = build_system_prompt(
            request.job_title,
            request.job_requirements,
            request.feedback,
            self.calibration_limit,
        )
        content = await self.build_content(request.applications)

        logger.info(f"Screening {len(request.applications)} candidates for job {request.job_id}")
        start = time.perf_counter()
        message = await with_retry(
            lambda: self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": content}],
            ),
            max_attempts=self.max_attempts,
            label=f"Screening job {request.job_id}",
            sleep=self._sleep,
        )
        record_llm_latency("screening", time.perf_counter() - start)

        results = parse_screening_response(first_text(message))

        returned = {r.application_id for r in results}
        missing = [
            a.application_id for a in request.applications
            if a.application_id not in returned
        ]
        if missing:
            logger.warning(
                f"Missing screening results for applications: {', '.join(map(str, missing))}"
            )

        return ScreeningOutcome(results=results, missing_ids=missing)
