"""Signal searchers: vector, lexical and graph retrieval behind one interface.

Each searcher answers ``search(question, scope, top_k)`` with evidence items
scored by its own signal. A searcher never fails the query: timeouts and
errors are logged and turned into an empty result, so the other signals
still contribute.

Usage:
    searchers = build_searchers(store, embedder=embedder, name_extractor=names)
    vector_hits = await searchers[Signal.VECTOR].search("Where is Paris?", {"doc-1"}, 5)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from docugraphrag.config import Settings, get_settings
from docugraphrag.engine.scoring import (
    cosine_similarity,
    match_ratio,
    matches_term,
    path_score,
    tokenize_question,
)
from docugraphrag.errors import SignalUnavailable
from docugraphrag.models import Entity, EvidenceItem, Relationship, Signal, SignalScores

if TYPE_CHECKING:
    from docugraphrag.embeddings.embedder import EmbeddingProvider
    from docugraphrag.graph.store import ChunkRecord, GraphStore


class NameExtractor(Protocol):
    """Turns a question into candidate entity names for graph traversal."""

    async def extract(self, question: str, scope: set[str]) -> list[str]: ...


def _evidence(record: ChunkRecord, signal: Signal, score: float) -> EvidenceItem:
    scores = SignalScores()
    scores.set(signal, score)
    return EvidenceItem(
        content=record.content,
        document_id=record.document_id,
        chunk_index=record.chunk_index,
        score=score,
        signal_scores=scores,
    )


def _top_k(items: list[EvidenceItem], top_k: int) -> list[EvidenceItem]:
    # sorted() is stable: equal scores keep store order
    return sorted(items, key=lambda item: item.score, reverse=True)[:top_k]


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


class SignalSearcher(ABC):
    """Common fail-soft and timeout policy for all signals."""

    signal: Signal

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else get_settings().signal_timeout_seconds

    async def search(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        """Return at most *top_k* in-scope evidence items, best first.

        Never raises for a failing data source; cancellation propagates.
        """
        if not scope or not question or not question.strip() or top_k <= 0:
            return []

        try:
            results = await asyncio.wait_for(
                self._search(question, scope, top_k),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("{} search timed out after {}s", self.signal.value, self.timeout)
            return []
        except SignalUnavailable as exc:
            logger.warning("{} search unavailable: {}", self.signal.value, exc)
            return []
        except Exception as exc:
            logger.warning("{} search failed: {}", self.signal.value, exc)
            return []

        logger.debug("{} search returned {} items", self.signal.value, len(results))
        return results

    @abstractmethod
    async def _search(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        """Signal-specific retrieval; may raise."""


# ---------------------------------------------------------------------------
# Vector
# ---------------------------------------------------------------------------


class VectorSearcher(SignalSearcher):
    """Cosine similarity between the question embedding and chunk embeddings."""

    signal = Signal.VECTOR

    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider,
        min_similarity: float = 0.65,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self.store = store
        self.embedder = embedder
        self.min_similarity = min_similarity

    async def _search(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        try:
            query_vector = await asyncio.to_thread(self.embedder.embed, question)
        except Exception as exc:
            raise SignalUnavailable(f"question embedding failed: {exc}") from exc

        records = await self.store.fetch_chunk_embeddings(scope)

        hits: list[EvidenceItem] = []
        for record in records:
            similarity = cosine_similarity(query_vector, record.embedding)
            if similarity >= self.min_similarity:
                hits.append(_evidence(record, self.signal, similarity))

        return _top_k(hits, top_k)


# ---------------------------------------------------------------------------
# Lexical
# ---------------------------------------------------------------------------


class LexicalSearcher(SignalSearcher):
    """Fraction of question words contained in each chunk."""

    signal = Signal.LEXICAL

    def __init__(
        self,
        store: GraphStore,
        fallback_score: float = 0.5,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self.store = store
        self.fallback_score = fallback_score

    async def _search(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        words = tokenize_question(question)
        if not words:
            return []

        try:
            records = await self.store.find_chunks_with_words(words, scope)
        except Exception as exc:
            logger.warning("Word query failed ({}), falling back to phrase match", exc)
            return await self._fallback(question, scope, top_k)

        hits: list[EvidenceItem] = []
        for record in records:
            ratio = match_ratio(words, record.content)
            if ratio > 0:
                hits.append(_evidence(record, self.signal, ratio))

        return _top_k(hits, top_k)

    async def _fallback(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        records = await self.store.find_chunks_containing(question.strip().casefold(), scope)
        return [_evidence(r, self.signal, self.fallback_score) for r in records[:top_k]]


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class GraphSearcher(SignalSearcher):
    """Relationship paths from entities named in the question."""

    signal = Signal.GRAPH

    # Paths fetched per requested result; several paths usually land on one chunk
    PATHS_PER_RESULT = 20

    def __init__(
        self,
        store: GraphStore,
        name_extractor: NameExtractor,
        max_hops: int = 3,
        timeout: float | None = None,
    ) -> None:
        super().__init__(timeout)
        self.store = store
        self.name_extractor = name_extractor
        self.max_hops = max_hops

    async def _search(self, question: str, scope: set[str], top_k: int) -> list[EvidenceItem]:
        names = await self.name_extractor.extract(question, scope)
        if not names:
            return []

        paths = await self.store.find_entity_paths(
            names,
            scope,
            max_hops=self.max_hops,
            limit=top_k * self.PATHS_PER_RESULT,
        )

        by_content: dict[str, EvidenceItem] = {}
        for path in paths:
            match_count = sum(1 for node in path.nodes if matches_term(node.text, names))
            score = path_score(path.length, match_count)

            item = by_content.get(path.content)
            if item is None:
                item = EvidenceItem(
                    content=path.content,
                    document_id=path.document_id,
                    chunk_index=path.chunk_index,
                )
                by_content[path.content] = item
            if score > item.score:
                item.score = score
                item.signal_scores.graph = score
            _add_entities(item, path.nodes)
            _add_relationships(item, path.relationships)

        hits = [item for item in by_content.values() if item.score > 0]
        return _top_k(hits, top_k)


def _add_entities(item: EvidenceItem, entities: list[Entity]) -> None:
    seen = {e.key for e in item.entities}
    for entity in entities:
        if entity.key not in seen:
            seen.add(entity.key)
            item.entities.append(entity)


def _add_relationships(item: EvidenceItem, relationships: list[Relationship]) -> None:
    seen = {r.key for r in item.relationships}
    for rel in relationships:
        if rel.key not in seen:
            seen.add(rel.key)
            item.relationships.append(rel)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_searchers(
    store: GraphStore,
    *,
    embedder: EmbeddingProvider | None = None,
    name_extractor: NameExtractor | None = None,
    settings: Settings | None = None,
) -> dict[Signal, SignalSearcher]:
    """Create one searcher per available capability.

    The lexical searcher only needs the store. Without an embedder there is
    no vector searcher; without a name extractor there is no graph searcher.
    """
    settings = settings or get_settings()
    timeout = settings.signal_timeout_seconds

    searchers: dict[Signal, SignalSearcher] = {}
    if embedder is not None:
        searchers[Signal.VECTOR] = VectorSearcher(
            store, embedder, min_similarity=settings.min_similarity, timeout=timeout
        )
    searchers[Signal.LEXICAL] = LexicalSearcher(
        store, fallback_score=settings.lexical_fallback_score, timeout=timeout
    )
    if name_extractor is not None:
        searchers[Signal.GRAPH] = GraphSearcher(
            store, name_extractor, max_hops=settings.max_hops, timeout=timeout
        )

    logger.info("Signal searchers enabled: {}", [s.value for s in searchers])
    return searchers
