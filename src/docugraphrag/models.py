"""Core data model: documents, chunks, entities, relationships, evidence.

Graph layout:
    (:Document {documentId, uploadedAt, status, error, ...metadata})
    (:DocumentChunk {chunkId, documentId, chunkIndex, content, embedding, hasEntities})
    (:Entity {text, type, properties})

    (:Document)-[:HAS_CHUNK]->(:DocumentChunk)
    (:DocumentChunk)-[:HAS_ENTITY]->(:Entity)
    (:Document)-[:CONTAINS_ENTITY]->(:Entity)
    (:Entity)-[:RELATES_TO {type, confidence, documentId, chunkIndex}]->(:Entity)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class DocumentStatus(str, Enum):
    """Processing state of an ingested document."""

    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"

    def can_transition_to(self, target: DocumentStatus) -> bool:
        """Only ``processing`` may move, and only forwards."""
        return self is DocumentStatus.PROCESSING and target in (
            DocumentStatus.PROCESSED,
            DocumentStatus.ERROR,
        )


class Signal(str, Enum):
    """Independent retrieval methods."""

    VECTOR = "vector"
    LEXICAL = "lexical"
    GRAPH = "graph"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Document:
    """An ingested document and its processing state."""

    id: str
    """Opaque unique identifier."""

    uploaded_at: datetime = field(default_factory=_utcnow)
    """When ingestion started."""

    status: DocumentStatus = DocumentStatus.PROCESSING
    """Current processing state."""

    error: str | None = None
    """Captured failure message when ``status`` is ``error``."""

    metadata: dict[str, str] = field(default_factory=dict)
    """Caller-supplied flat metadata (file name, description, ...)."""

    chunk_count: int = 0
    """Number of chunks the document was split into."""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a dictionary (for API responses)."""
        return {
            "document_id": self.id,
            "uploaded_at": self.uploaded_at.isoformat(),
            "status": self.status.value,
            "error": self.error,
            "metadata": dict(self.metadata),
            "chunk_count": self.chunk_count,
        }


@dataclass
class Chunk:
    """A bounded slice of a document's text, the unit of retrieval."""

    document_id: str
    index: int
    text: str
    embedding: list[float] = field(default_factory=list)
    has_entities: bool = False

    @property
    def chunk_id(self) -> str:
        """Unique identifier for this chunk."""
        return f"{self.document_id}:{self.index}"


@dataclass
class Entity:
    """A named, typed span of text; identity is ``(text, type)``."""

    text: str
    type: str
    properties: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        """Content-addressed identity used for MERGE and de-duplication."""
        return (self.text, self.type)


@dataclass
class Relationship:
    """Directed, typed edge between two entities."""

    source: str
    source_type: str
    target: str
    target_type: str
    type: str
    confidence: float | None = None

    @property
    def key(self) -> tuple[str, str, str, str, str]:
        return (self.source, self.source_type, self.type, self.target, self.target_type)


@dataclass
class ExtractionResult:
    """Entities and relationships extracted from one chunk of text."""

    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)

    def is_empty(self) -> bool:
        """Return True when nothing was extracted."""
        return not self.entities and not self.relationships


@dataclass
class SignalScores:
    """Raw (unweighted) score each signal gave an evidence item."""

    vector: float = 0.0
    lexical: float = 0.0
    graph: float = 0.0

    def get(self, signal: Signal) -> float:
        return getattr(self, signal.value)

    def set(self, signal: Signal, value: float) -> None:
        setattr(self, signal.value, value)

    def to_dict(self) -> dict[str, float]:
        return {"vector": self.vector, "lexical": self.lexical, "graph": self.graph}


@dataclass
class EvidenceItem:
    """One scored unit of retrieved context. Created per query, never persisted."""

    content: str
    """Chunk text; also the de-duplication key."""

    document_id: str
    """Document the chunk belongs to."""

    score: float = 0.0
    """Signal score before merging, combined weighted score after."""

    signal_scores: SignalScores = field(default_factory=SignalScores)
    """Per-signal raw scores."""

    entities: list[Entity] = field(default_factory=list)
    """Entities attached by the signal(s) that found this chunk."""

    relationships: list[Relationship] = field(default_factory=list)
    """Relationships attached by the signal(s) that found this chunk."""

    chunk_index: int | None = None
    """Position of the chunk in its document, when known."""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a dictionary (for API responses)."""
        return {
            "content": self.content,
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "score": self.score,
            "signal_scores": self.signal_scores.to_dict(),
            "entities": [
                {"text": e.text, "type": e.type, "properties": dict(e.properties)}
                for e in self.entities
            ],
            "relationships": [
                {
                    "source": r.source,
                    "source_type": r.source_type,
                    "target": r.target,
                    "target_type": r.target_type,
                    "type": r.type,
                    "confidence": r.confidence,
                }
                for r in self.relationships
            ],
        }
