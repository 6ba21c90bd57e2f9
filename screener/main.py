"""
Greenhouse Screener API - Main Application Entry Point

This module initializes the FastAPI application with:
- Logging and settings checks at startup
- CORS middleware for the frontend dev servers
- Prometheus metrics middleware and /metrics endpoint
- Exception handlers for upstream Greenhouse and Claude failures
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (logging, settings validation)
    ├── CORS Middleware
    ├── Prometheus Middleware (/metrics)
    └── API Router (/api)
        ├── /jobs - Jobs, stages and applications
        ├── /applications, /rejection-reasons, /email-templates - Actions
        ├── /screen - Claude screening
        ├── /attachments - Resume proxy
        ├── /search - Semantic search, index rebuild, export, highlights
        └── /settings - API credentials
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import anthropic
import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from screener.api import api_router
from screener.config import get_settings, get_settings_store, validate_settings
from screener.middleware.metrics import setup_metrics
from screener.services.greenhouse import GreenhouseAPIError
from screener.services.highlights import HighlightsError
from screener.services.screening import ScreeningParseError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        1. Configure logging from settings
        2. Load saved API keys and warn about missing ones
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_settings(get_settings_store().current)
    logger.info(f"Greenhouse Screener ready on port {settings.port}")
    yield


app = FastAPI(
    title="Greenhouse Screener API",
    description="Candidate screening and ranking for Greenhouse",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_metrics(app)

app.include_router(api_router)


@app.exception_handler(GreenhouseAPIError)
async def greenhouse_error_handler(request: Request, exc: GreenhouseAPIError):
    logger.error(f"Greenhouse error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": "Greenhouse API request failed", "upstream_status": exc.status_code},
    )


@app.exception_handler(anthropic.APIStatusError)
async def anthropic_error_handler(request: Request, exc: anthropic.APIStatusError):
    logger.error(f"Claude API error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": "Claude API request failed", "upstream_status": exc.status_code},
    )


@app.exception_handler(ScreeningParseError)
@app.exception_handler(HighlightsError)
async def llm_parse_error_handler(request: Request, exc: Exception):
    logger.error(f"Unusable model response on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc)})


@app.exception_handler(httpx.HTTPError)
@app.exception_handler(anthropic.APIConnectionError)
async def connection_error_handler(request: Request, exc: Exception):
    logger.error(f"Upstream connection failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"error": f"Upstream connection failed: {exc}"})


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


def run() -> None:
    settings = get_settings()
    uvicorn.run("screener.main:app", host="0.0.0.0", port=settings.port)
