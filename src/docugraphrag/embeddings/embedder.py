"""Embedding generation using sentence-transformers.

Wraps the sentence-transformers library to produce dense vector embeddings
for document chunks and questions. Uses the model configured in settings
(default: all-MiniLM-L6-v2, 384-dimensional embeddings).

Calls are blocking; async callers run them through ``asyncio.to_thread``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loguru import logger
from sentence_transformers import SentenceTransformer

from docugraphrag.config import get_settings

if TYPE_CHECKING:
    import numpy as np


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str) -> list[float]: ...


# ---------------------------------------------------------------------------
# Module-level cache for models (loaded once per name)
# ---------------------------------------------------------------------------

_models: dict[str, SentenceTransformer] = {}


def get_model(model_name: str | None = None) -> SentenceTransformer:
    """Return a cached SentenceTransformer model.

    Args:
        model_name: HuggingFace model name, or None to use config default.

    Returns:
        Loaded SentenceTransformer instance.
    """
    if model_name is None:
        model_name = get_settings().embedding_model

    model = _models.get(model_name)
    if model is None:
        logger.info("Loading embedding model: {}", model_name)
        model = SentenceTransformer(model_name)
        logger.info("Model loaded, embedding dimension: {}", model.get_sentence_embedding_dimension())
        _models[model_name] = model

    return model


class SentenceTransformerEmbedder:
    """Default :class:`EmbeddingProvider` backed by sentence-transformers."""

    def __init__(
        self,
        model_name: str | None = None,
        normalize: bool = True,
        batch_size: int = 64,
    ) -> None:
        self.model_name = model_name or get_settings().embedding_model
        self.normalize = normalize
        self.batch_size = batch_size

    @property
    def dimension(self) -> int:
        """Embedding dimension of the loaded model."""
        dim = get_model(self.model_name).get_sentence_embedding_dimension()
        assert dim is not None
        return int(dim)

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: Input strings to embed.

        Returns:
            List of embedding vectors (each a list of floats).
        """
        if not texts:
            return []

        model = get_model(self.model_name)
        logger.debug("Embedding {} texts (batch_size={})", len(texts), self.batch_size)

        embeddings: np.ndarray = model.encode(
            texts,
            batch_size=self.batch_size,
            show_progress_bar=False,
            normalize_embeddings=self.normalize,
        )
        return embeddings.tolist()

    def embed(self, text: str) -> list[float]:
        """Embed a single text string."""
        return self.embed_many([text])[0]
