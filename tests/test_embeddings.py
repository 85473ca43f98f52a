"""Tests for embeddings generation with mocked OpenAI API."""

from unittest.mock import MagicMock, patch

import pytest

from app.core.embeddings import embed_text_async, embed_texts


@pytest.fixture
def mock_openai_response():
    """Create a mock OpenAI embeddings response."""

    def _create_response(num_embeddings: int, dimension: int = 1536):
        mock_response = MagicMock()
        mock_response.data = []

        for _ in range(num_embeddings):
            mock_embedding = MagicMock()
            mock_embedding.embedding = [0.1] * dimension
            mock_response.data.append(mock_embedding)

        return mock_response

    return _create_response


def test_embed_texts_multiple(mock_openai_response):
    """Each input text gets a full-dimension vector."""
    with patch("app.core.embeddings._get_client") as mock_get_client:
        mock_client = MagicMock()
        mock_client.embeddings.create.return_value = mock_openai_response(2)
        mock_get_client.return_value = mock_client

        embeddings = embed_texts(["Apple (snack)", "Running (cardio)"])

        assert len(embeddings) == 2
        assert all(len(e) == 1536 for e in embeddings)
        assert mock_client.embeddings.create.call_args.kwargs["model"] == "text-embedding-3-small"


def test_embed_texts_empty():
    assert embed_texts([]) == []


def test_embed_texts_dimension_validation(mock_openai_response):
    """Dimension mismatch raises ValueError."""
    with patch("app.core.embeddings._get_client") as mock_get_client:
        mock_client = MagicMock()
        mock_client.embeddings.create.return_value = mock_openai_response(1, dimension=512)
        mock_get_client.return_value = mock_client

        with pytest.raises(ValueError, match="Embedding dimension mismatch"):
            embed_texts(["Apple"])


@pytest.mark.asyncio
async def test_embed_text_async_returns_vector(mock_openai_response):
    with patch("app.core.embeddings._get_client") as mock_get_client:
        mock_client = MagicMock()
        mock_client.embeddings.create.return_value = mock_openai_response(1)
        mock_get_client.return_value = mock_client

        vector = await embed_text_async("How many calories in an apple?")

        assert vector is not None
        assert len(vector) == 1536


@pytest.mark.asyncio
async def test_embed_text_async_returns_none_on_failure():
    """API failures degrade to None instead of raising."""
    with patch("app.core.embeddings._get_client") as mock_get_client:
        mock_client = MagicMock()
        mock_client.embeddings.create.side_effect = Exception("API Error")
        mock_get_client.return_value = mock_client

        assert await embed_text_async("Apple") is None


@pytest.mark.asyncio
async def test_embed_text_async_skips_blank_text():
    with patch("app.core.embeddings._get_client") as mock_get_client:
        assert await embed_text_async("   ") is None
        mock_get_client.assert_not_called()
