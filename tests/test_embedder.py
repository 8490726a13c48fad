"""Tests for the sentence-transformers embedder.

The model is mocked; nothing is downloaded.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from docugraphrag.embeddings import embedder as embedder_module
from docugraphrag.embeddings.embedder import (
    EmbeddingProvider,
    SentenceTransformerEmbedder,
    get_model,
)


@pytest.fixture(autouse=True)
def clear_model_cache():
    embedder_module._models.clear()
    yield
    embedder_module._models.clear()


@pytest.fixture
def mock_model():
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = 3
    model.encode.side_effect = lambda texts, **kw: np.ones((len(texts), 3))
    with patch.object(embedder_module, "SentenceTransformer", return_value=model) as cls:
        yield cls, model


class TestGetModel:
    """Tests for the model cache."""

    def test_loaded_once(self, mock_model):
        cls, model = mock_model
        assert get_model("tiny") is model
        assert get_model("tiny") is model
        cls.assert_called_once_with("tiny")

    def test_default_from_settings(self, mock_model):
        cls, _ = mock_model
        get_model()
        cls.assert_called_once_with("all-MiniLM-L6-v2")


class TestSentenceTransformerEmbedder:
    """Tests for SentenceTransformerEmbedder."""

    def test_satisfies_protocol(self):
        assert isinstance(SentenceTransformerEmbedder("tiny"), EmbeddingProvider)

    def test_embed_returns_floats(self, mock_model):
        vector = SentenceTransformerEmbedder("tiny").embed("Paris")
        assert vector == [1.0, 1.0, 1.0]

    def test_embed_many(self, mock_model):
        _, model = mock_model
        vectors = SentenceTransformerEmbedder("tiny", batch_size=8).embed_many(["a", "b"])

        assert len(vectors) == 2
        kwargs = model.encode.call_args.kwargs
        assert kwargs["batch_size"] == 8
        assert kwargs["normalize_embeddings"] is True

    def test_embed_many_empty(self, mock_model):
        cls, _ = mock_model
        assert SentenceTransformerEmbedder("tiny").embed_many([]) == []
        cls.assert_not_called()

    def test_dimension(self, mock_model):
        assert SentenceTransformerEmbedder("tiny").dimension == 3
