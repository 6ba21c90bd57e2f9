"""
Tests for embedding providers.

Tests cover:
- Local embeddings provider (sentence-transformers)
- OpenAI embeddings provider
- Deterministic mock provider
- Provider factory

Run with: pytest tests/test_embedding_providers.py -v
"""
import pytest
from unittest.mock import Mock, AsyncMock, patch


class TestLocalEmbeddings:
    """Tests for local sentence-transformers embeddings."""

    def test_default_model_is_minilm(self):
        """Should default to all-MiniLM-L6-v2 with 384 dimensions."""
        from screener.services.embedding_providers import LocalEmbeddings

        provider = LocalEmbeddings()

        assert provider.model_name == "sentence-transformers/all-MiniLM-L6-v2"
        assert provider.dimensions == 384
        assert not provider.loaded

    @pytest.mark.asyncio
    async def test_embed_normalizes(self):
        """Should request normalized embeddings from the model."""
        import numpy as np
        from screener.services.embedding_providers import LocalEmbeddings

        provider = LocalEmbeddings()
        mock_model = Mock()
        mock_model.encode.return_value = np.array([0.6, 0.8])
        provider._model = mock_model

        embedding = await provider.embed("Python developer")

        assert embedding == [0.6, 0.8]
        mock_model.encode.assert_called_once_with("Python developer", normalize_embeddings=True)

    @pytest.mark.asyncio
    async def test_empty_text_returns_zero_vector(self):
        """Should return zero vector without touching the model."""
        from screener.services.embedding_providers import LocalEmbeddings

        provider = LocalEmbeddings()
        provider._model = Mock()

        embedding = await provider.embed("   ")

        assert len(embedding) == 384
        assert all(v == 0.0 for v in embedding)
        provider._model.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_failure_propagates(self):
        """Should raise from load() when the model cannot be loaded."""
        from screener.services.embedding_providers import LocalEmbeddings

        provider = LocalEmbeddings()

        with patch.object(provider, "_load_model", side_effect=OSError("no network")):
            with pytest.raises(OSError):
                await provider.load()


class TestOpenAIEmbeddings:
    """Tests for OpenAI embeddings provider."""

    @pytest.mark.asyncio
    async def test_embed_single_text(self):
        """Should call the embeddings API once."""
        from screener.services.embedding_providers import OpenAIEmbeddings

        provider = OpenAIEmbeddings(api_key="test-key")
        mock_response = Mock()
        mock_response.data = [Mock(embedding=[0.1] * 1536)]

        with patch.object(provider, "_client") as mock_client:
            mock_client.embeddings.create = AsyncMock(return_value=mock_response)

            embedding = await provider.embed("Test text")

            assert len(embedding) == 1536
            mock_client.embeddings.create.assert_called_once()

    @pytest.mark.asyncio
    async def test_load_requires_key(self):
        """Should refuse to load without an API key."""
        from screener.services.embedding_providers import OpenAIEmbeddings

        with pytest.raises(ValueError):
            await OpenAIEmbeddings(api_key="").load()


class TestMockEmbeddingProvider:
    """Tests for the deterministic mock provider."""

    @pytest.mark.asyncio
    async def test_same_text_same_vector(self):
        """Should produce identical vectors for identical text."""
        from screener.services.embedding_providers import MockEmbeddingProvider

        provider = MockEmbeddingProvider(dimensions=16)

        first = await provider.embed("kubernetes")
        second = await provider.embed("kubernetes")
        other = await provider.embed("marketing")

        assert first == second
        assert first != other
        assert len(first) == 16


class TestEmbeddingProviderFactory:
    """Tests for embedding provider factory."""

    def test_factory_creates_each_provider(self):
        """Should create local, openai and mock providers."""
        from screener.services.embedding_providers import (
            LocalEmbeddings,
            MockEmbeddingProvider,
            OpenAIEmbeddings,
            get_embedding_provider,
        )

        assert isinstance(get_embedding_provider("local"), LocalEmbeddings)
        assert isinstance(get_embedding_provider("openai", api_key="k"), OpenAIEmbeddings)
        assert isinstance(get_embedding_provider("MOCK"), MockEmbeddingProvider)

    def test_factory_openai_requires_key(self):
        """Should raise when OpenAI is requested without a key."""
        from screener.services.embedding_providers import get_embedding_provider

        with pytest.raises(ValueError):
            get_embedding_provider("openai")

    def test_factory_invalid_provider(self):
        """Should raise error for unknown provider."""
        from screener.services.embedding_providers import get_embedding_provider

        with pytest.raises(ValueError):
            get_embedding_provider("unknown")
