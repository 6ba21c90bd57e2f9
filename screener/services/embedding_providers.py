"""
Embedding Providers - Interface for Resume Embedding Models

Resumes are embedded with a small local sentence-transformers model by
default so candidate data never leaves the machine. An OpenAI provider is
available as an alternative, and a deterministic mock is used by tests.

Provider Comparison:
    | Model                      | Dimensions | Cost       |
    |----------------------------|------------|------------|
    | all-MiniLM-L6-v2 (local)   | 384        | Free       |
    | OpenAI text-embedding-3-s  | 1536       | $0.02/1M   |

Key Classes:
    - EmbeddingProvider: Protocol shared by all providers
    - LocalEmbeddings: Local sentence-transformers models
    - OpenAIEmbeddings: OpenAI API provider
    - MockEmbeddingProvider: Deterministic mock for testing
"""

import asyncio
import hashlib
import logging
from typing import List, Optional, Dict, Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"

MODEL_DIMENSIONS: Dict[str, int] = {
    "text-embedding-3-small": 1536,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
}


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Protocol defining the embedding provider interface.

    All embedding providers must implement:
    - load(): Make the backend ready, raising if it cannot be
    - embed(): Single text to embedding
    - dimensions: Embedding vector size
    """

    name: str

    @property
    def dimensions(self) -> int:
        ...

    async def load(self) -> None:
        ...

    async def embed(self, text: str) -> List[float]:
        ...


class LocalEmbeddings:
    """
    Local embeddings using sentence-transformers.

    The model is loaded on first use and kept for the lifetime of the
    process. Embeddings are L2-normalized (mean pooling is built into the
    sentence-transformers model config).

    Example:
        >>> provider = LocalEmbeddings()
        >>> embedding = await provider.embed("Python developer")
    """

    name = "local"

    def __init__(
        self,
        model_name: str = DEFAULT_LOCAL_MODEL,
    ) -> None:
        self.model_name = model_name
        self._model = None
        self._lock = asyncio.Lock()

    def _load_model(self) -> None:
        """Load the embedding model. Raises if it cannot be loaded."""
        if self._model is not None:
            return

        from sentence_transformers import SentenceTransformer
        logger.info(f"Loading embedding model: {self.model_name}")
        self._model = SentenceTransformer(self.model_name)
        logger.info("Embedding model loaded")

    @property
    def loaded(self) -> bool:
        return self._model is not None

    @property
    def dimensions(self) -> int:
        return MODEL_DIMENSIONS.get(self.model_name, 384)

    async def load(self) -> None:
        """Load the model in an executor; concurrent callers share one load."""
        async with self._lock:
            if self._model is None:
                loop = asyncio.get_event_loop()
                await loop.run_in_executor(None, self._load_model)

    async def embed(self, text: str) -> List[float]:
        text = text.strip()
        if not text:
            return [0.0] * self.dimensions

        await self.load()
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            lambda: self._model.encode(text, normalize_embeddings=True).tolist()
        )


class OpenAIEmbeddings:
    """
    OpenAI API embeddings provider.

    Example:
        >>> provider = OpenAIEmbeddings(api_key="sk-...")
        >>> embedding = await provider.embed("Python developer")
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL
    ) -> None:
        self.api_key = api_key
        self.model = model
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    @property
    def dimensions(self) -> int:
        return MODEL_DIMENSIONS.get(self.model, 1536)

    async def load(self) -> None:
        if not self.api_key:
            raise ValueError("OpenAI embeddings require an API key")
        self._get_client()

    async def embed(self, text: str) -> List[float]:
        text = text.replace("\n", " ").strip()
        if not text:
            return [0.0] * self.dimensions

        client = self._get_client()
        response = await client.embeddings.create(
            input=[text],
            model=self.model,
        )
        return response.data[0].embedding


class MockEmbeddingProvider:
    """
    Mock embedding provider for testing.

    Generates deterministic embeddings from the text hash, so identical
    texts always produce identical vectors.
    """

    name = "mock"

    def __init__(self, dimensions: int = 384) -> None:
        self._dimensions = dimensions
        self.calls: List[str] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _text_to_embedding(self, text: str) -> List[float]:
        if not text:
            return [0.0] * self._dimensions

        text_hash = hashlib.md5(text.encode()).hexdigest()

        embedding = []
        for i in range(self._dimensions):
            idx = (i * 2) % len(text_hash)
            char_val = int(text_hash[idx:idx+2], 16)
            # Normalize to [-1, 1]
            embedding.append((char_val / 127.5) - 1)

        return embedding

    async def load(self) -> None:
        return None

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return self._text_to_embedding(text)


def get_embedding_provider(
    provider_name: str = "local",
    api_key: Optional[str] = None,
    model_name: Optional[str] = None,
    **kwargs: Any
) -> EmbeddingProvider:
    """
    Factory function to create embedding provider instances.

    Args:
        provider_name: Provider type - "local", "openai", or "mock"
        api_key: API key for cloud providers (required for OpenAI)
        model_name: Optional model name override

    Raises:
        ValueError: If provider is unknown or required args missing
    """
    provider_name = provider_name.lower()

    if provider_name == "local":
        return LocalEmbeddings(model_name=model_name or DEFAULT_LOCAL_MODEL)

    elif provider_name == "openai":
        if not api_key:
            raise ValueError("OpenAI embeddings require api_key")
        return OpenAIEmbeddings(
            api_key=api_key,
            model=model_name or DEFAULT_OPENAI_MODEL
        )

    elif provider_name == "mock":
        return MockEmbeddingProvider(dimensions=kwargs.get("dimensions", 384))

    else:
        raise ValueError(
            f"Unknown embedding provider: {provider_name}. "
            f"Supported: local, openai, mock"
        )
