"""Text splitting for ingested documents.

Splits document text into overlapping chunks suitable for embedding and
retrieval. Chunks prefer to end on a sentence boundary.
"""

from __future__ import annotations

import re

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200


def _clean_text(text: str) -> str:
    """Collapse runs of whitespace / newlines into single spaces."""
    return re.sub(r"\s+", " ", text).strip()


def split_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[str]:
    """Split *text* into overlapping chunks by character count.

    Args:
        text: Input text to split.
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Overlap between consecutive chunks.

    Returns:
        List of non-empty text chunks, in document order.

    Raises:
        ValueError: if ``chunk_size`` is not positive or the overlap does
            not leave room to advance.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError(
            f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} (size {chunk_size})"
        )

    if not text or not text.strip():
        return []

    text = _clean_text(text)

    if len(text) <= chunk_size:
        return [text]

    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = start + chunk_size
        chunk = text[start:end]

        # Try to break at a sentence boundary (period, question mark, etc.)
        if end < len(text):
            last_period = chunk.rfind(". ")
            last_question = chunk.rfind("? ")
            last_excl = chunk.rfind("! ")
            best_break = max(last_period, last_question, last_excl)
            if best_break > chunk_size // 2:
                end = start + best_break + 2  # include the period + space
                chunk = text[start:end]

        if chunk.strip():
            chunks.append(chunk.strip())
        if end >= len(text):
            break
        start = max(end - chunk_overlap, start + 1)

    return chunks
