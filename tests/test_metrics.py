"""
Tests for the Prometheus middleware.

Tests cover:
- Requests to routes added through include_router
- Endpoint labels for routing entries without a path

Run with: pytest tests/test_metrics.py -v
"""
from types import SimpleNamespace

from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY


def make_app():
    from screener.middleware.metrics import setup_metrics

    router = APIRouter(prefix="/api/widgets")

    @router.get("/{widget_id}")
    async def read_widget(widget_id: int):
        return {"id": widget_id}

    app = FastAPI()
    setup_metrics(app)
    app.include_router(router)
    return app


def request_count(endpoint_prefix):
    total = 0.0
    for metric in REGISTRY.collect():
        if metric.name != "http_requests":
            continue
        for sample in metric.samples:
            labels = sample.labels
            if (
                sample.name == "http_requests_total"
                and labels.get("endpoint", "").startswith(endpoint_prefix)
                and labels.get("status") == "200"
            ):
                total += sample.value
    return total


class TestPrometheusMiddleware:
    """Tests for PrometheusMiddleware."""

    def test_included_router_endpoint(self):
        """Should serve and count requests to routes of an included router."""
        client = TestClient(make_app())
        before = request_count("/api/widgets")

        response = client.get("/api/widgets/5")

        assert response.status_code == 200
        assert response.json() == {"id": 5}
        assert request_count("/api/widgets") == before + 1

    def test_routes_without_path_are_skipped(self):
        """Should ignore routing entries that have no path attribute."""
        from starlette.routing import Route

        from screener.middleware.metrics import PrometheusMiddleware

        async def endpoint(request):
            return None

        mounted = SimpleNamespace()  # no path, no matches()
        route = Route("/api/widgets/{widget_id}", endpoint)
        scope = {"type": "http", "path": "/api/widgets/5", "method": "GET"}
        request = SimpleNamespace(
            app=SimpleNamespace(routes=[mounted, route]),
            scope=scope,
            url=SimpleNamespace(path="/api/widgets/5"),
        )
        middleware = PrometheusMiddleware(FastAPI())

        assert middleware._get_endpoint(request) == "/api/widgets/{widget_id}"

    def test_unmatched_path_falls_back_to_url(self):
        """Should label unknown paths with the request path."""
        from screener.middleware.metrics import PrometheusMiddleware

        request = SimpleNamespace(
            app=SimpleNamespace(routes=[SimpleNamespace()]),
            scope={"type": "http", "path": "/nowhere", "method": "GET"},
            url=SimpleNamespace(path="/nowhere"),
        )

        assert PrometheusMiddleware(FastAPI())._get_endpoint(request) == "/nowhere"
