"""
Prometheus Metrics Middleware

Provides request/response metrics for monitoring:
- HTTP request latency and count by endpoint and status
- Active request gauge
- Greenhouse API calls and rate-limit retries
- Claude call latency and retries
- Embedding latency and index size

Usage:
    from screener.middleware.metrics import setup_metrics

    app = FastAPI()
    setup_metrics(app)

Metrics Endpoint:
    GET /metrics - Prometheus-format metrics
"""

import time
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CONTENT_TYPE_LATEST,
    generate_latest,
    REGISTRY,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

logger = logging.getLogger(__name__)

# ==================== Prometheus Metrics ====================

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint", "status"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0]
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
    ["method", "endpoint"]
)

# Upstream ATS metrics
GREENHOUSE_REQUESTS = Counter(
    "greenhouse_requests_total",
    "Greenhouse Harvest API requests",
    ["method", "status"]
)

GREENHOUSE_RATE_LIMIT_RETRIES = Counter(
    "greenhouse_rate_limit_retries_total",
    "Greenhouse requests retried after HTTP 429"
)

# LLM metrics
LLM_CALL_LATENCY = Histogram(
    "llm_call_seconds",
    "Claude API call latency",
    ["operation"],  # screening, highlights_batch, highlights_final
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

LLM_RETRIES = Counter(
    "llm_retries_total",
    "Claude API calls retried",
    ["kind"]  # api, connection
)

# Embedding metrics
EMBEDDING_LATENCY = Histogram(
    "embedding_generation_seconds",
    "Time to generate embeddings",
    ["provider"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0]
)

INDEXED_RECORDS = Gauge(
    "embedding_index_records",
    "Records in the embedding index of a job",
    ["job_id"]
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for Prometheus metrics collection.

    Records:
    - Request latency
    - Request count by status code
    - Active request count
    """

    def __init__(self, app: FastAPI, app_name: str = "screener"):
        super().__init__(app)
        self.app_name = app_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable
    ) -> Response:
        """Process request and record metrics."""
        endpoint = self._get_endpoint(request)
        method = request.method

        if endpoint == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.labels(method=method, endpoint=endpoint).inc()
        label = endpoint
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status = str(response.status_code)
            label = self._matched_route(request) or endpoint
        except Exception as e:
            status = "500"
            logger.error(f"Request error: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time

            REQUEST_LATENCY.labels(
                method=method,
                endpoint=label,
                status=status
            ).observe(duration)

            REQUEST_COUNT.labels(
                method=method,
                endpoint=label,
                status=status
            ).inc()

            ACTIVE_REQUESTS.labels(
                method=method,
                endpoint=endpoint
            ).dec()

        return response

    def _matched_route(self, request: Request) -> Optional[str]:
        """Pattern of the route that handled the request, when it spans the full path."""
        route = request.scope.get("route")
        regex = getattr(route, "path_regex", None)
        if regex is not None and regex.match(request.url.path):
            return route.path
        return None

    def _get_endpoint(self, request: Request) -> str:
        """
        Get normalized endpoint path from request.

        Uses route pattern (e.g., /api/jobs/{job_id}) instead of
        actual path to avoid high cardinality.
        """
        for route in request.app.routes:
            # Included routers are mounted without a path of their own
            path = getattr(route, "path", None)
            if path is None:
                continue
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return path

        return request.url.path


def metrics_endpoint(request: Request) -> Response:
    """Endpoint handler for Prometheus metrics scraping."""
    return PlainTextResponse(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )


def setup_metrics(app: FastAPI) -> None:
    """
    Configure Prometheus metrics for FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_middleware(PrometheusMiddleware, app_name="screener")
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    logger.info("Prometheus metrics configured")


# ==================== Helper Functions ====================

def record_greenhouse_request(method: str, status: int) -> None:
    GREENHOUSE_REQUESTS.labels(method=method, status=str(status)).inc()


def record_greenhouse_retry() -> None:
    GREENHOUSE_RATE_LIMIT_RETRIES.inc()


def record_llm_latency(operation: str, duration: float) -> None:
    LLM_CALL_LATENCY.labels(operation=operation).observe(duration)


def record_llm_retry(kind: str) -> None:
    LLM_RETRIES.labels(kind=kind).inc()


def record_embedding_latency(provider: str, duration: float) -> None:
    EMBEDDING_LATENCY.labels(provider=provider).observe(duration)


def update_index_size(job_id: int, count: int) -> None:
    INDEXED_RECORDS.labels(job_id=str(job_id)).set(count)
