"""
Greenhouse Harvest API Client

Wraps every outbound call to the Greenhouse ATS:
- Basic auth with the API key plus the On-Behalf-Of user header
- Exponential backoff on HTTP 429 (2s, 4s, 8s, 16s, 30s; 5 retries)
- Translation of all other non-2xx responses into GreenhouseAPIError
- Response shaping into Job / Application / LightweightApplication

Two application fetch paths exist:
    - list_applications_page(): one extra /candidates call per application
      for email and phone. Used by the UI list view only.
    - list_applications_page_lightweight(): relies on the candidate name and
      attachments embedded in /applications. Used for indexing, export and
      ranking, where it cuts request volume by roughly 10x.

The stage_id filter of /applications is ignored server-side, so stage
filtering always happens here after the page is fetched.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx

from screener.config import Settings
from screener.middleware.metrics import record_greenhouse_request, record_greenhouse_retry
from screener.schemas import (
    Application,
    Job,
    LightweightApplication,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]

REVIEW_STAGE_NAME = "application review"


class GreenhouseAPIError(Exception):
    """Non-2xx response from the Harvest API."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Greenhouse API error: {status_code} - {body}")


@dataclass
class ApplicationPage:
    applications: List[Application]
    total: int


@dataclass
class LightweightPage:
    applications: List[LightweightApplication]
    has_more: bool


def backoff_delay(retry: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Delay before the given 1-based retry: base * 2**retry, capped."""
    return min(base * (2 ** retry), cap)


async def batch_process(
    items: List[T],
    fn: Callable[[T], Awaitable[R]],
    batch_size: int = 5,
    delay: float = 0.5,
    sleep: Sleep = asyncio.sleep,
) -> List[R]:
    """Run fn over items in concurrent batches with a pause between batches."""
    results: List[R] = []
    for i in range(0, len(items), batch_size):
        batch = items[i:i + batch_size]
        results.extend(await asyncio.gather(*(fn(item) for item in batch)))
        if i + batch_size < len(items):
            await sleep(delay)
    return results


def greenhouse_url(app_url: str, candidate_id: int, application_id: int) -> str:
    return f"{app_url.rstrip('/')}/people/{candidate_id}/applications/{application_id}"


def in_application_review(application: Any) -> bool:
    stage = application.current_stage
    return bool(stage and REVIEW_STAGE_NAME in (stage.name or "").lower())


def _answers(raw: Dict[str, Any]) -> List[Dict[str, str]]:
    return [
        {"question": a.get("question") or "", "answer": a.get("answer") or ""}
        for a in raw.get("answers") or []
    ]


def _applied_timestamp(application: Application) -> float:
    if not application.applied_at:
        return 0.0
    try:
        return datetime.fromisoformat(application.applied_at.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _find_attachment(attachments: Optional[List[Dict[str, Any]]], kind: str) -> Optional[str]:
    for attachment in attachments or []:
        if attachment.get("type") == kind:
            return attachment.get("url")
    return None


def _first_preferred(entries: List[Dict[str, Any]], preferred_type: str) -> Optional[str]:
    for entry in entries:
        if entry.get("type") == preferred_type:
            return entry.get("value")
    return entries[0].get("value") if entries else None


def to_lightweight(raw: Dict[str, Any]) -> LightweightApplication:
    candidate = raw.get("candidate") or {}
    first_name = candidate.get("first_name") or ""
    last_name = candidate.get("last_name") or ""
    if first_name or last_name:
        name = f"{first_name} {last_name}".strip()
    else:
        name = f"Candidate {raw['candidate_id']}"

    return LightweightApplication(
        id=raw["id"],
        candidate_id=raw["candidate_id"],
        candidate_name=name,
        current_stage=raw.get("current_stage"),
        resume_url=_find_attachment(raw.get("attachments"), "resume"),
        cover_letter_url=_find_attachment(raw.get("attachments"), "cover_letter"),
        answers=_answers(raw),
    )


def to_application(raw: Dict[str, Any], candidate: Dict[str, Any]) -> Application:
    source = raw.get("source")
    attachments = candidate.get("attachments") or []
    return Application(
        id=raw["id"],
        candidate_id=raw["candidate_id"],
        candidate={
            "id": candidate["id"],
            "first_name": candidate.get("first_name") or "",
            "last_name": candidate.get("last_name") or "",
            "email": _first_preferred(candidate.get("email_addresses") or [], "personal") or "",
            "phone": _first_preferred(candidate.get("phone_numbers") or [], "mobile"),
        },
        applied_at=raw.get("applied_at"),
        source={"id": source["id"], "name": source.get("public_name", "")} if source else None,
        current_stage=raw.get("current_stage"),
        answers=_answers(raw),
        attachments={
            "resume": _find_attachment(attachments, "resume"),
            "cover_letter": _find_attachment(attachments, "cover_letter"),
        },
    )


class GreenhouseClient:
    """
    Async client for the Greenhouse Harvest API.

    Holds the credentials of the settings snapshot it was created with.
    Pass ``http_client`` to share a connection pool or to inject a mock
    transport; otherwise one is created lazily and closed by ``aclose``.
    """

    max_retries = 5

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.base_url = settings.greenhouse_base_url.rstrip("/")
        self.app_url = settings.greenhouse_app_url
        self.timeout = settings.greenhouse_timeout_seconds
        self._auth = httpx.BasicAuth(settings.greenhouse_api_key, "")
        self._headers = {"On-Behalf-Of": settings.greenhouse_user_id}
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        client = self._get_client()
        url = f"{self.base_url}{endpoint}"
        retries = 0

        while True:
            response = await client.request(
                method,
                url,
                params=params,
                json=json,
                auth=self._auth,
                headers=self._headers,
                timeout=self.timeout,
            )
            record_greenhouse_request(method, response.status_code)

            if response.status_code == 429 and retries < self.max_retries:
                retries += 1
                delay = backoff_delay(retries)
                logger.warning(
                    f"Rate limited (429) on {endpoint}. "
                    f"Retry {retries}/{self.max_retries} after {delay}s"
                )
                record_greenhouse_retry()
                await self._sleep(delay)
                continue

            if response.is_error:
                raise GreenhouseAPIError(response.status_code, response.text)

            return response

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._request("GET", endpoint, params=params)
        return response.json()

    # ==================== Jobs ====================

    async def list_jobs(self) -> List[Job]:
        jobs = await self._get_json("/jobs", params={"per_page": 500})
        return [Job.model_validate(job) for job in jobs]

    async def get_job(self, job_id: int) -> Optional[Job]:
        for job in await self.list_jobs():
            if job.id == job_id:
                return job
        return None

    async def list_stages(self, job_id: int) -> List[Dict[str, Any]]:
        return await self._get_json(f"/jobs/{job_id}/stages")

    # ==================== Candidates & Applications ====================

    async def get_candidate(self, candidate_id: int) -> Dict[str, Any]:
        return await self._get_json(f"/candidates/{candidate_id}")

    async def count_applications(
        self,
        job_id: int,
        status: str = "active",
        stage_id: Optional[int] = None,
    ) -> int:
        """
        Estimate the number of applications matching the filters.

        Requests a single-row page; with per_page=1 the page number of the
        rel="last" link equals the row count. Without a Link header the
        number of returned rows is the total.
        """
        params: Dict[str, Any] = {"job_id": job_id, "per_page": 1, "page": 1, "status": status}
        if stage_id:
            params["stage_id"] = stage_id

        response = await self._request("GET", "/applications", params=params)
        last = response.links.get("last", {}).get("url")
        if last:
            page = httpx.URL(last).params.get("page")
            if page and page.isdigit():
                return int(page)
        return len(response.json())

    async def list_applications_page(
        self,
        job_id: int,
        page: int = 1,
        per_page: int = 20,
        status: str = "active",
        stage_id: Optional[int] = None,
    ) -> ApplicationPage:
        params = {"job_id": job_id, "page": page, "per_page": per_page, "status": status}

        raw_applications, total = await asyncio.gather(
            self._get_json("/applications", params=params),
            self.count_applications(job_id, status, stage_id),
        )

        async def enrich(raw: Dict[str, Any]) -> Application:
            candidate = await self.get_candidate(raw["candidate_id"])
            return to_application(raw, candidate)

        enriched = await batch_process(
            raw_applications, enrich, batch_size=5, delay=0.3, sleep=self._sleep
        )

        if stage_id:
            filtered = [a for a in enriched if a.current_stage and a.current_stage.id == stage_id]
        else:
            filtered = enriched

        # Newest first; sort is stable so ties keep upstream order
        filtered.sort(key=_applied_timestamp, reverse=True)

        logger.info(
            f"Fetched {len(enriched)}, filtered to {len(filtered)} "
            f"for stage {stage_id or 'all'}"
        )
        return ApplicationPage(applications=filtered, total=total)

    async def list_applications_page_lightweight(
        self,
        job_id: int,
        page: int = 1,
        per_page: int = 100,
        status: str = "active",
    ) -> LightweightPage:
        params = {"job_id": job_id, "page": page, "per_page": per_page, "status": status}
        raw_applications = await self._get_json("/applications", params=params)
        return LightweightPage(
            applications=[to_lightweight(raw) for raw in raw_applications],
            has_more=len(raw_applications) == per_page,
        )

    # ==================== Rejection ====================

    async def list_rejection_reasons(self) -> List[Dict[str, Any]]:
        reasons = await self._get_json("/rejection_reasons")
        return [{"id": r["id"], "name": r["name"]} for r in reasons]

    async def list_email_templates(self) -> List[Dict[str, Any]]:
        templates = await self._get_json("/email_templates", params={"per_page": 500})
        return [
            t for t in templates
            if t.get("type") in ("candidate_rejection", "rejection")
            or "reject" in str(t.get("name", "")).lower()
        ]

    # ==================== Actions ====================

    async def reject_application(
        self,
        application_id: int,
        rejection_reason_id: int,
        email_template_id: Optional[int] = None,
    ) -> None:
        body: Dict[str, Any] = {"rejection_reason_id": rejection_reason_id}
        if email_template_id:
            body["rejection_email"] = {
                "email_template_id": email_template_id,
                "send_email_at": None,
            }
        await self._request("POST", f"/applications/{application_id}/reject", json=body)

    async def advance_application(self, application_id: int, from_stage_id: int) -> None:
        await self._request(
            "POST",
            f"/applications/{application_id}/advance",
            json={"from_stage_id": from_stage_id},
        )


# ==================== Full-collection helpers ====================

async def fetch_all_applications(
    client: GreenhouseClient,
    job_id: int,
    status: str = "active",
    per_page: int = 100,
    page_delay: float = 0.3,
    on_page: Optional[Callable[[int, int], None]] = None,
    sleep: Sleep = asyncio.sleep,
    log_prefix: str = "",
) -> List[LightweightApplication]:
    """
    Fetch every application of a job through the lightweight page method.

    Stops on the first page shorter than ``per_page``. When the collection
    size is an exact multiple of ``per_page`` this costs one extra request
    that returns an empty page.

    Args:
        on_page: Called with (page, fetched_so_far) before each request and
            once more with the final count.
    """
    applications: List[LightweightApplication] = []
    page = 1

    while True:
        logger.info(f"{log_prefix}Fetching page {page} ({len(applications)} fetched so far)")
        if on_page:
            on_page(page, len(applications))

        result = await client.list_applications_page_lightweight(
            job_id, page=page, per_page=per_page, status=status
        )
        applications.extend(result.applications)

        if len(result.applications) < per_page:
            break
        page += 1
        await sleep(page_delay)

    if on_page:
        on_page(page, len(applications))
    return applications


