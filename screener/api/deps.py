"""
FastAPI dependencies.

Every request takes the settings snapshot current at the time it arrives;
saving new API keys affects later requests only.

``provide_*`` functions build unmanaged instances (streaming routes close
them when their background operation ends). ``get_*`` wrap them for
ordinary routes and close them after the response. Tests override the
``provide_*`` functions.
"""

from functools import lru_cache
from typing import AsyncIterator

import anthropic
from fastapi import Depends

from screener.config import Settings, SettingsStore, get_settings_store
from screener.services.claude import get_anthropic_client
from screener.services.documents import DocumentExtractor
from screener.services.embedding_providers import (
    EmbeddingProvider,
    OpenAIEmbeddings,
    get_embedding_provider,
)
from screener.services.greenhouse import GreenhouseClient
from screener.services.highlights import HighlightsPipeline
from screener.services.screening import ScreeningService
from screener.services.vector_index import EmbeddingIndex


def get_store() -> SettingsStore:
    return get_settings_store()


def get_current_settings(store: SettingsStore = Depends(get_store)) -> Settings:
    return store.current


def provide_greenhouse(settings: Settings = Depends(get_current_settings)) -> GreenhouseClient:
    return GreenhouseClient(settings)


def provide_extractor(settings: Settings = Depends(get_current_settings)) -> DocumentExtractor:
    return DocumentExtractor(timeout=settings.document_timeout_seconds)


@lru_cache(maxsize=4)
def _anthropic_client(api_key: str, timeout: float) -> anthropic.AsyncAnthropic:
    return get_anthropic_client(api_key, timeout)


def provide_anthropic(settings: Settings = Depends(get_current_settings)) -> anthropic.AsyncAnthropic:
    return _anthropic_client(settings.anthropic_api_key, settings.anthropic_timeout_seconds)


async def get_greenhouse(
    client: GreenhouseClient = Depends(provide_greenhouse),
) -> AsyncIterator[GreenhouseClient]:
    try:
        yield client
    finally:
        await client.aclose()


async def get_extractor(
    extractor: DocumentExtractor = Depends(provide_extractor),
) -> AsyncIterator[DocumentExtractor]:
    try:
        yield extractor
    finally:
        await extractor.aclose()


@lru_cache(maxsize=4)
def _embedding_provider(name: str, model: str, api_key: str) -> EmbeddingProvider:
    # One instance per configuration so a loaded model is reused across requests
    if name.lower() == "openai":
        # A missing key surfaces from load() as an unavailable status
        return OpenAIEmbeddings(api_key=api_key)
    model_name = model if name == "local" else None
    return get_embedding_provider(name, model_name=model_name)


def get_embedding_index(settings: Settings = Depends(get_current_settings)) -> EmbeddingIndex:
    provider = _embedding_provider(
        settings.embedding_provider,
        settings.local_embedding_model,
        settings.openai_api_key,
    )
    return EmbeddingIndex(settings.embeddings_directory, provider)


def get_screening_service(
    settings: Settings = Depends(get_current_settings),
    client: anthropic.AsyncAnthropic = Depends(provide_anthropic),
    extractor: DocumentExtractor = Depends(get_extractor),
) -> ScreeningService:
    return ScreeningService(
        client,
        extractor,
        model=settings.screening_model,
        calibration_limit=settings.calibration_limit,
    )


def get_highlights_pipeline(
    settings: Settings = Depends(get_current_settings),
    client: anthropic.AsyncAnthropic = Depends(provide_anthropic),
) -> HighlightsPipeline:
    return HighlightsPipeline(client, model=settings.ranking_model)
