"""Scoring primitives shared by the signal searchers.

- Cosine similarity for the vector signal.
- Question tokenisation and word-match ratio for the lexical signal.
- Term matching and path scoring for the graph signal.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import numpy as np

# Words of this length or shorter carry no lexical signal ("is", "of", ...)
MIN_WORD_LENGTH = 3

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity ``dot(a, b) / (|a| * |b|)``.

    Zero-norm vectors, empty vectors and mismatched lengths score 0.0.
    """
    if len(a) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def tokenize_question(question: str) -> list[str]:
    """Split a question into case-folded words longer than two characters.

    Duplicates are dropped, first occurrence order is kept.
    """
    seen: set[str] = set()
    words: list[str] = []
    for match in _WORD_RE.finditer(question.casefold()):
        word = match.group(0)
        if len(word) < MIN_WORD_LENGTH or word in seen:
            continue
        seen.add(word)
        words.append(word)
    return words


def match_ratio(words: Sequence[str], text: str) -> float:
    """Fraction of *words* contained in *text* (case-insensitive substring)."""
    if not words:
        return 0.0
    folded = text.casefold()
    hits = sum(1 for word in words if word in folded)
    return hits / len(words)


def matches_term(text: str, terms: Iterable[str]) -> bool:
    """True if any (case-folded) term occurs inside *text*."""
    folded = text.casefold()
    return any(term.casefold() in folded for term in terms if term)


def path_score(path_length: int, match_count: int) -> float:
    """Score a graph path as ``(1 / path_length) * match_count``.

    A zero-hop path (the matched entity itself) counts as length 1.
    """
    return (1.0 / max(path_length, 1)) * match_count
