"""Result fusion: combine per-signal evidence into one ranked list.

Items are keyed by their exact chunk content. Each signal contributes
``raw_score * weight`` once per key, using the best score it gave that
content; an item found by several signals gets the sum, so corroborated
chunks rise above chunks found by a single signal.

Ties keep first-seen order: vector results, then lexical, then graph, each
in the order its searcher returned them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from loguru import logger

from docugraphrag.config import Settings, get_settings
from docugraphrag.models import EvidenceItem, Signal, SignalScores

DEFAULT_LIMIT = 5

# Signal visiting order; defines tie-breaking between equal combined scores
SIGNAL_ORDER: tuple[Signal, ...] = (Signal.VECTOR, Signal.LEXICAL, Signal.GRAPH)


@dataclass(frozen=True)
class RetrievalWeights:
    """Per-signal fusion weights."""

    vector: float = 0.4
    lexical: float = 0.3
    graph: float = 0.3

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RetrievalWeights:
        settings = settings or get_settings()
        return cls(
            vector=settings.vector_weight,
            lexical=settings.lexical_weight,
            graph=settings.graph_weight,
        )

    def weight(self, signal: Signal) -> float:
        return getattr(self, signal.value)

    @property
    def total(self) -> float:
        return self.vector + self.lexical + self.graph


def merge_signals(
    results: Mapping[Signal, Sequence[EvidenceItem]],
    weights: RetrievalWeights | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[EvidenceItem]:
    """Fuse per-signal results into at most *limit* items, best first.

    Args:
        results: Evidence lists keyed by the signal that produced them. Missing
            signals contribute nothing.
        weights: Fusion weights (defaults to settings).
        limit: Maximum number of items to return.

    Returns:
        New evidence items whose ``score`` is the combined weighted score and
        whose ``signal_scores`` hold each contributing signal's raw score.
    """
    weights = weights or RetrievalWeights.from_settings()
    if abs(weights.total - 1.0) > 1e-6:
        logger.warning("Retrieval weights sum to {:.3f}, expected 1.0", weights.total)

    merged: dict[str, EvidenceItem] = {}
    entity_keys: dict[str, set[tuple[str, str]]] = {}
    relationship_keys: dict[str, set[tuple[str, str, str, str, str]]] = {}

    for signal in SIGNAL_ORDER:
        weight = weights.weight(signal)
        for item in results.get(signal, ()):
            entry = merged.get(item.content)
            if entry is None:
                entry = EvidenceItem(
                    content=item.content,
                    document_id=item.document_id,
                    chunk_index=item.chunk_index,
                    score=0.0,
                    signal_scores=SignalScores(),
                )
                merged[item.content] = entry
                entity_keys[item.content] = set()
                relationship_keys[item.content] = set()

            # A signal counts once per content key, with its best score
            best = entry.signal_scores.get(signal)
            if item.score > best:
                entry.score += (item.score - best) * weight
                entry.signal_scores.set(signal, item.score)
            if entry.chunk_index is None:
                entry.chunk_index = item.chunk_index

            seen_entities = entity_keys[item.content]
            for entity in item.entities:
                if entity.key not in seen_entities:
                    seen_entities.add(entity.key)
                    entry.entities.append(entity)

            seen_rels = relationship_keys[item.content]
            for rel in item.relationships:
                if rel.key not in seen_rels:
                    seen_rels.add(rel.key)
                    entry.relationships.append(rel)

    # sorted() is stable: ties keep insertion (first-seen) order
    ranked = sorted(merged.values(), key=lambda e: e.score, reverse=True)
    logger.debug("Merged {} unique items, returning top {}", len(ranked), limit)
    return ranked[:limit]


def merge(
    vector_results: Sequence[EvidenceItem],
    lexical_results: Sequence[EvidenceItem],
    graph_results: Sequence[EvidenceItem],
    weights: RetrievalWeights | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[EvidenceItem]:
    """Fuse the three signal result lists. See :func:`merge_signals`."""
    return merge_signals(
        {
            Signal.VECTOR: vector_results,
            Signal.LEXICAL: lexical_results,
            Signal.GRAPH: graph_results,
        },
        weights=weights,
        limit=limit,
    )
