"""
Tests for the HTTP API.

Tests cover:
- Health check
- Jobs, applications and rejection routes against a mocked Greenhouse
- Upstream error mapping to 502
- Screening route
- Settings masking and persistence
- Semantic search and SSE streaming of the index rebuild

Run with: pytest tests/test_api.py -v
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from screener.config import SettingsStore
from screener.services.documents import DocumentExtractor
from screener.services.embedding_providers import MockEmbeddingProvider
from screener.services.greenhouse import GreenhouseClient
from screener.services.screening import ScreeningService
from screener.services.vector_index import EmbeddingIndex

RESUME = "Staff data engineer with eight years of Spark, Kafka and Python experience."

JOBS = [{"id": 7, "name": "Data Engineer", "status": "open"}]

STAGES = [
    {"id": 5, "name": "Application Review", "priority": 1, "active": True, "interviews": [{"id": 9, "name": "Screen"}]},
    {"id": 6, "name": None, "priority": 2, "active": False, "interviews": []},
]


def application(app_id, stage="Application Review"):
    return {
        "id": app_id,
        "candidate_id": 1000 + app_id,
        "applied_at": "2024-01-01T00:00:00Z",
        "current_stage": {"id": 5, "name": stage},
        "answers": [],
        "attachments": [{"type": "resume", "url": f"https://files.test/{app_id}/resume.txt"}],
        "candidate": {"first_name": "Ada", "last_name": str(app_id)},
    }


class FakeGreenhouse:
    """MockTransport handler for the Harvest API and attachment downloads."""

    def __init__(self, applications=None, fail_status=None):
        self.applications = applications if applications is not None else [application(1), application(2)]
        self.fail_status = fail_status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if request.url.host == "files.test":
            if path.endswith("denied.pdf"):
                return httpx.Response(403, text="denied")
            return httpx.Response(200, content=RESUME.encode())
        if self.fail_status:
            return httpx.Response(self.fail_status, text="upstream failure")
        if path.endswith("/jobs"):
            return httpx.Response(200, json=JOBS)
        if path.endswith("/stages"):
            return httpx.Response(200, json=STAGES)
        if path.endswith("/applications"):
            page = int(request.url.params.get("page", 1))
            return httpx.Response(200, json=self.applications if page == 1 else [])
        if path.endswith("/rejection_reasons"):
            return httpx.Response(200, json=[{"id": 8, "name": "Skills"}])
        if "/candidates/" in path:
            candidate_id = int(path.rsplit("/", 1)[-1])
            return httpx.Response(200, json={"id": candidate_id, "first_name": "Ada", "last_name": "L"})
        if path.endswith("/reject"):
            if "/applications/2/" in path:
                return httpx.Response(422, text="already rejected")
            return httpx.Response(200, json={})
        return httpx.Response(404)


@pytest.fixture
def fake_greenhouse():
    return FakeGreenhouse()


@pytest.fixture
def client(settings, tmp_path, fake_greenhouse):
    from screener.api import deps
    from screener.main import app

    store = SettingsStore(settings, tmp_path / "settings.json")
    index = EmbeddingIndex(tmp_path / "embeddings", MockEmbeddingProvider(dimensions=16))

    def transport_client():
        return httpx.AsyncClient(transport=httpx.MockTransport(fake_greenhouse))

    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.provide_greenhouse] = lambda: GreenhouseClient(
        store.current, http_client=transport_client()
    )
    app.dependency_overrides[deps.provide_extractor] = lambda: DocumentExtractor(
        http_client=transport_client()
    )
    app.dependency_overrides[deps.get_embedding_index] = lambda: index

    test_client = TestClient(app)
    test_client.store = store
    test_client.index = index
    yield test_client
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        """Should report ok with a timestamp."""
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "timestamp" in response.json()

    def test_metrics_exposed(self, client):
        """Should expose Prometheus metrics including Greenhouse requests."""
        client.get("/api/jobs")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "greenhouse_requests_total" in response.text


class TestJobsApi:
    """Tests for /api/jobs."""

    def test_list_jobs(self, client):
        """Should return the Greenhouse jobs."""
        response = client.get("/api/jobs")

        assert response.status_code == 200
        assert response.json()[0]["name"] == "Data Engineer"

    def test_list_stages(self, client):
        """Should pass stages through unchanged, including unnamed ones."""
        response = client.get("/api/jobs/7/stages")

        assert response.status_code == 200
        assert response.json() == STAGES

    def test_list_applications(self, client):
        """Should return enriched applications and no next page for a short page."""
        response = client.get("/api/jobs/7/applications", params={"per_page": 20})

        body = response.json()
        assert response.status_code == 200
        assert [a["id"] for a in body["applications"]] == [1, 2]
        assert body["next_page"] is None
        assert body["page"] == 1

    def test_upstream_error_is_502(self, client, fake_greenhouse):
        """Should map Greenhouse failures to 502 with the upstream status."""
        fake_greenhouse.fail_status = 500

        response = client.get("/api/jobs")

        assert response.status_code == 502
        assert response.json() == {"error": "Greenhouse API request failed", "upstream_status": 500}


class TestApplicationsApi:
    """Tests for rejection and advancement routes."""

    def test_rejection_reasons(self, client):
        assert client.get("/api/rejection-reasons").json() == [{"id": 8, "name": "Skills"}]

    def test_bulk_reject_partial_failure(self, client):
        """Should report the failed id without failing the request."""
        response = client.post(
            "/api/applications/bulk-reject",
            json={"application_ids": [1, 2, 3], "rejection_reason_id": 8},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "rejected": [1, 3], "failed": [2]}

    def test_bulk_reject_requires_ids(self, client):
        """Should reject an empty id list with 400."""
        response = client.post(
            "/api/applications/bulk-reject",
            json={"application_ids": [], "rejection_reason_id": 8},
        )

        assert response.status_code == 400

    def test_single_reject(self, client):
        response = client.post("/api/applications/1/reject", json={"rejection_reason_id": 8})

        assert response.json() == {"success": True, "application_id": 1}


class TestAttachmentsApi:
    """Tests for the attachment proxy."""

    def test_serves_inline(self, client):
        """Should stream the document inline with caching headers."""
        response = client.get(
            "/api/attachments/proxy", params={"url": "https://files.test/1/Résumé.pdf"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'inline; filename="Rsum.pdf"'
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.content == RESUME.encode()

    def test_upstream_error_is_passed_through(self, client):
        """Should return the upstream status with an error body."""
        response = client.get(
            "/api/attachments/proxy", params={"url": "https://files.test/1/denied.pdf"}
        )

        assert response.status_code == 403
        assert response.json()["status"] == 403


class TestScreeningApi:
    """Tests for /api/screen."""

    def test_screen(self, client):
        """Should return results and the ids the model skipped."""
        from screener.api import deps
        from screener.main import app

        anthropic_client = Mock()
        anthropic_client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[
            SimpleNamespace(type="text", text=json.dumps([
                {"application_id": 1, "recommendation": "GREEN", "confidence": "HIGH", "summary": "Strong"},
            ])),
        ]))
        extractor = Mock()
        extractor.fetch_for_llm = AsyncMock(return_value=None)
        app.dependency_overrides[deps.get_screening_service] = lambda: ScreeningService(
            anthropic_client, extractor
        )

        response = client.post("/api/screen", json={
            "job_id": 7,
            "job_title": "Data Engineer",
            "applications": [
                {"application_id": 1, "candidate_name": "Ada 1"},
                {"application_id": 2, "candidate_name": "Ada 2"},
            ],
        })

        body = response.json()
        assert response.status_code == 200
        assert body["results"][0]["recommendation"] == "GREEN"
        assert body["missing_application_ids"] == [2]

    def test_unparseable_response_is_502(self, client):
        """Should map an unusable model response to 502."""
        from screener.api import deps
        from screener.main import app

        anthropic_client = Mock()
        anthropic_client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[
            SimpleNamespace(type="text", text="Sorry"),
        ]))
        extractor = Mock()
        extractor.fetch_for_llm = AsyncMock(return_value=None)
        app.dependency_overrides[deps.get_screening_service] = lambda: ScreeningService(
            anthropic_client, extractor
        )

        response = client.post("/api/screen", json={
            "job_id": 7,
            "job_title": "Data Engineer",
            "applications": [{"application_id": 1, "candidate_name": "Ada 1"}],
        })

        assert response.status_code == 502
        assert "Failed to parse screening response" in response.json()["error"]


class TestSettingsApi:
    """Tests for /api/settings."""

    def test_get_masks_keys(self, client):
        """Should mask all but the last four characters."""
        body = client.get("/api/settings").json()

        assert body["greenhouseApiKey"] == "••-key"
        assert body["anthropicApiKey"].endswith("-key")
        assert set(body["anthropicApiKey"][:-4]) == {"•"}
        assert body["greenhouseUserId"] == "42"

    def test_save_ignores_masked_values(self, client):
        """Should keep existing keys when the masked echo is posted back."""
        masked = client.get("/api/settings").json()

        response = client.post("/api/settings", json={
            "greenhouseApiKey": "new-greenhouse-key",
            "greenhouseUserId": "43",
            "anthropicApiKey": masked["anthropicApiKey"],
        })

        assert response.json() == {"success": True}
        assert client.store.current.greenhouse_api_key == "new-greenhouse-key"
        assert client.store.current.greenhouse_user_id == "43"
        assert client.store.current.anthropic_api_key == "sk-ant-test-key"
        saved = json.loads(client.store.path.read_text())
        assert saved == {"greenhouse_api_key": "new-greenhouse-key", "greenhouse_user_id": "43"}


class TestSearchApi:
    """Tests for /api/search."""

    def test_status(self, client):
        assert client.get("/api/search/status").json() == {"available": True, "error": None}

    def test_index_stream_then_search(self, client):
        """Should stream index progress and then find the indexed candidates."""
        response = client.post("/api/search/index/7")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = [f for f in response.text.split("\n\n") if f]
        events = [f.split("\n")[0] for f in frames]
        assert events[0] == "event: status"
        assert "event: fetching" in events
        assert "event: progress" in events
        assert events[-1] == "event: complete"
        complete = json.loads(frames[-1].split("data: ", 1)[1])
        assert complete == {"success": True, "indexed": 2, "failed": 0, "skipped": 0, "total": 2}

        status = client.get("/api/search/index/7").json()
        assert status["indexed"] is True
        assert status["count"] == 2

        results = client.post("/api/search/7", json={"query": "Spark engineer", "limit": 1}).json()
        assert len(results["results"]) == 1

        assert client.delete("/api/search/index/7").json() == {"success": True}
        assert client.get("/api/search/index/7").json()["indexed"] is False

    def test_stream_error_event(self, client, fake_greenhouse):
        """Should end the stream with an error event when Greenhouse fails."""
        fake_greenhouse.fail_status = 503

        response = client.get("/api/search/export/7")

        frames = [f for f in response.text.split("\n\n") if f]
        assert frames[-1].startswith("event: error\n")
        assert "503" in frames[-1]

    def test_search_empty_index(self, client):
        """Should return no results when the job has no index."""
        response = client.post("/api/search/99", json={"query": "python"})

        assert response.json() == {"results": []}


class TestEmbeddingConfiguration:
    """Tests for search routes with an unusable embedding configuration."""

    @pytest.fixture
    def openai_client(self, settings, tmp_path):
        from screener.api import deps
        from screener.main import app

        openai_settings = settings.model_copy(update={"embedding_provider": "openai", "openai_api_key": ""})
        store = SettingsStore(openai_settings, tmp_path / "settings.json")
        app.dependency_overrides[deps.get_store] = lambda: store
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_missing_openai_key_reports_unavailable(self, openai_client):
        """Should report the missing key through the status payload."""
        response = openai_client.get("/api/search/status")

        assert response.status_code == 200
        assert response.json() == {"available": False, "error": "OpenAI embeddings require an API key"}

    def test_index_routes_work_without_key(self, openai_client):
        """Should read and clear index files without an embedding key."""
        status = openai_client.get("/api/search/index/7")
        cleared = openai_client.delete("/api/search/index/7")

        assert status.status_code == 200
        assert status.json()["indexed"] is False
        assert cleared.json() == {"success": True}
