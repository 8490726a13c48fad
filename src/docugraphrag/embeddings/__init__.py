"""Dense text embeddings for chunks and questions."""

from docugraphrag.embeddings.embedder import EmbeddingProvider, SentenceTransformerEmbedder

__all__ = ["EmbeddingProvider", "SentenceTransformerEmbedder"]
