"""Candidate entity names from user questions.

Identifies which stored entities a natural-language question talks about,
so the graph searcher knows where to start traversing:
  1. Exact matching (word-boundary aware) against known entity names.
  2. Fuzzy matching (rapidfuzz) for misspellings / partial names.
  3. Fallback to the question's content words when nothing matches.

Known names are the entity texts stored for the documents in scope.

Usage:
    extractor = CandidateNameExtractor(store)
    names = await extractor.extract("Where is Paris located?", {"doc-1"})
    # names == ["Paris"]
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger
from rapidfuzz import fuzz, process

from docugraphrag.engine.scoring import MIN_WORD_LENGTH, tokenize_question

if TYPE_CHECKING:
    from docugraphrag.graph.store import GraphStore

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Minimum score (0-100) for fuzzy matching to accept a candidate
FUZZY_THRESHOLD = 80

# Common words that should NOT be extracted even if they match
STOP_WORDS: set[str] = {
    "THE",
    "AND",
    "FOR",
    "WITH",
    "THIS",
    "THAT",
    "FROM",
    "HAVE",
    "HAS",
    "ARE",
    "WAS",
    "WERE",
    "BEEN",
    "WILL",
    "CAN",
    "MAY",
    "SHOULD",
    "WOULD",
    "COULD",
    "WHAT",
    "WHICH",
    "WHEN",
    "WHERE",
    "HOW",
    "WHO",
    "WHOM",
    "WHY",
    "NOT",
    "DOES",
    "DID",
    "ABOUT",
    "INTO",
    "THERE",
    "THEIR",
    "THEY",
    "THEM",
    "ANY",
    "ALL",
    "SOME",
    "TELL",
    "SHOW",
    "LIST",
    "EXPLAIN",
    "DESCRIBE",
    "DOCUMENT",
    "DOCUMENTS",
    "MENTIONED",
    "RELATED",
    "BETWEEN",
    "LOCATED",
}


@dataclass
class CandidateNames:
    """Result of candidate-name extraction from a user question."""

    names: list[str] = field(default_factory=list)
    """Entity names (as stored) or fallback content words."""

    matched_known: bool = False
    """True when the names come from the known-entity catalogue."""

    raw_query: str = ""
    """The original user question."""

    def is_empty(self) -> bool:
        """Return True when no candidate names were found."""
        return not self.names


# ---------------------------------------------------------------------------
# Extraction logic
# ---------------------------------------------------------------------------


def _normalize_query(text: str) -> str:
    """Normalise a query for matching: uppercase, collapse whitespace."""
    text = text.upper().strip()
    text = re.sub(r"\s+", " ", text)
    return text


def _build_catalogue(known_names: Iterable[str]) -> dict[str, str]:
    """Map normalised (upper-case) name → stored name, minus stop words."""
    catalogue: dict[str, str] = {}
    for name in known_names:
        key = _normalize_query(name)
        if len(key) < MIN_WORD_LENGTH or key in STOP_WORDS:
            continue
        catalogue.setdefault(key, name)
    return catalogue


def _exact_match(query_upper: str, catalogue: dict[str, str]) -> list[str]:
    """Find known names that appear as whole words in the query.

    Longer names are matched first to avoid partial overlaps
    (e.g. "NEW YORK CITY" before "NEW YORK").
    """
    found: list[str] = []
    for key in sorted(catalogue, key=len, reverse=True):
        pattern = r"(?<!\w)" + re.escape(key) + r"(?!\w)"
        if re.search(pattern, query_upper):
            # Make sure the match isn't already covered by a longer name
            if not any(key in longer for longer in found):
                found.append(key)
    return found


def _fuzzy_match(
    query_tokens: list[str],
    catalogue: dict[str, str],
    threshold: int = FUZZY_THRESHOLD,
) -> list[str]:
    """Find known names via fuzzy token and bigram matching."""
    if not catalogue:
        return []

    candidates: list[str] = []
    keys = list(catalogue)

    # Single tokens
    for token in query_tokens:
        if len(token) < MIN_WORD_LENGTH or token in STOP_WORDS:
            continue
        match = process.extractOne(token, keys, scorer=fuzz.ratio, score_cutoff=threshold)
        if match:
            candidates.append(match[0])

    # Bigrams (for multi-word names like "EIFFEL TOWER")
    for i in range(len(query_tokens) - 1):
        if query_tokens[i] in STOP_WORDS or query_tokens[i + 1] in STOP_WORDS:
            continue
        bigram = f"{query_tokens[i]} {query_tokens[i + 1]}"
        match = process.extractOne(bigram, keys, scorer=fuzz.ratio, score_cutoff=threshold)
        if match:
            candidates.append(match[0])

    return candidates


def _content_words(question: str) -> list[str]:
    return [w for w in tokenize_question(question) if w.upper() not in STOP_WORDS]


def extract_candidate_names(
    question: str,
    known_names: Iterable[str],
    *,
    fuzzy: bool = True,
    fuzzy_threshold: int = FUZZY_THRESHOLD,
) -> CandidateNames:
    """Extract candidate entity names from a question.

    Strategy:
      1. Exact word-boundary matching against all known names.
      2. Fuzzy matching per token / bigram if ``fuzzy=True``.
      3. Content words of the question if nothing matched.

    Args:
        question: User question in natural language.
        known_names: Entity texts stored in the graph.
        fuzzy: Enable fuzzy matching as fallback.
        fuzzy_threshold: Minimum rapidfuzz score (0-100).

    Returns:
        CandidateNames in question order of discovery, de-duplicated.
    """
    catalogue = _build_catalogue(known_names)
    query_upper = _normalize_query(question)
    tokens = re.findall(r"\w+", query_upper)

    keys = _exact_match(query_upper, catalogue)
    if fuzzy and not keys:
        keys = _fuzzy_match(tokens, catalogue, threshold=fuzzy_threshold)

    # Deduplicate, preserving order
    seen: set[str] = set()
    names: list[str] = []
    for key in keys:
        if key not in seen:
            seen.add(key)
            names.append(catalogue[key])

    if names:
        result = CandidateNames(names=names, matched_known=True, raw_query=question)
    else:
        result = CandidateNames(names=_content_words(question), raw_query=question)

    logger.debug(
        "Candidate names from '{}': {} (known={})",
        question[:80],
        result.names,
        result.matched_known,
    )
    return result


# ---------------------------------------------------------------------------
# Store-backed extractor
# ---------------------------------------------------------------------------


class CandidateNameExtractor:
    """Default name-extraction capability for the graph searcher."""

    def __init__(
        self,
        store: GraphStore,
        *,
        fuzzy: bool = True,
        fuzzy_threshold: int = FUZZY_THRESHOLD,
    ) -> None:
        self.store = store
        self.fuzzy = fuzzy
        self.fuzzy_threshold = fuzzy_threshold

    async def extract(self, question: str, scope: set[str]) -> list[str]:
        """Candidate names for *question*, matched against in-scope entities."""
        known = await self.store.list_entity_names(scope)
        result = extract_candidate_names(
            question,
            known,
            fuzzy=self.fuzzy,
            fuzzy_threshold=self.fuzzy_threshold,
        )
        return result.names
