"""Shared test doubles.

``FakeGraphStore`` mirrors the behaviour of :class:`GraphStore` in memory:
MERGE-by-identity writes, status updates only from ``processing``, scoped
retrieval queries and bounded-hop undirected path traversal. Any method can
be made to fail with ``store.fail(method_name, exc, times=...)``.

``FakeEmbedder`` is a deterministic bag-of-words embedder over a fixed
vocabulary, so cosine similarities are easy to reason about.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

import pytest

from docugraphrag.graph.mutations import GraphMutation
from docugraphrag.graph.store import ChunkRecord, PathRecord
from docugraphrag.models import Chunk, Document, DocumentStatus, Entity, Relationship


@dataclass
class _StoredRelationship:
    source: tuple[str, str]
    target: tuple[str, str]
    type: str
    document_id: str
    chunk_index: int
    confidence: float | None = None


@dataclass
class _StoredChunk:
    chunk: Chunk
    entity_keys: list[tuple[str, str]] = field(default_factory=list)


class FakeGraphStore:
    """In-memory stand-in for :class:`docugraphrag.graph.store.GraphStore`."""

    def __init__(self) -> None:
        self.documents: dict[str, Document] = {}
        self.chunks: dict[str, _StoredChunk] = {}
        self.entities: dict[tuple[str, str], Entity] = {}
        self.relationships: list[_StoredRelationship] = []
        self.calls: dict[str, int] = {}
        self._failures: dict[str, list] = {}
        self.closed = False

    # --- failure injection -------------------------------------------------

    def fail(self, method: str, exc: BaseException, times: int | None = None) -> None:
        """Make *method* raise *exc* (``times`` calls, or always when None)."""
        self._failures[method] = [exc, times]

    def _enter(self, method: str) -> None:
        self.calls[method] = self.calls.get(method, 0) + 1
        failure = self._failures.get(method)
        if failure is None:
            return
        exc, times = failure
        if times is not None:
            if times <= 0:
                return
            failure[1] = times - 1
        raise exc

    # --- documents ---------------------------------------------------------

    async def create_document(self, document: Document) -> bool:
        self._enter("create_document")
        if document.id in self.documents:
            return False
        self.documents[document.id] = Document(
            id=document.id,
            uploaded_at=document.uploaded_at,
            status=document.status,
            metadata=dict(document.metadata),
            chunk_count=document.chunk_count,
        )
        return True

    async def set_document_status(
        self, document_id: str, status: DocumentStatus, error: str | None = None
    ) -> bool:
        self._enter("set_document_status")
        if not DocumentStatus.PROCESSING.can_transition_to(status):
            raise ValueError(f"Cannot move a document to {status.value!r}")
        document = self.documents.get(document_id)
        if document is None or document.status is not DocumentStatus.PROCESSING:
            return False
        document.status = status
        document.error = error
        return True

    async def get_document(self, document_id: str) -> Document | None:
        self._enter("get_document")
        return self.documents.get(document_id)

    async def list_documents(self) -> list[Document]:
        self._enter("list_documents")
        return sorted(self.documents.values(), key=lambda d: d.uploaded_at, reverse=True)

    async def delete_document(self, document_id: str) -> bool:
        self._enter("delete_document")
        if self.documents.pop(document_id, None) is None:
            return False
        self.chunks = {
            cid: stored
            for cid, stored in self.chunks.items()
            if stored.chunk.document_id != document_id
        }
        self.relationships = [r for r in self.relationships if r.document_id != document_id]
        referenced = {key for stored in self.chunks.values() for key in stored.entity_keys}
        self.entities = {k: e for k, e in self.entities.items() if k in referenced}
        return True

    # --- chunks ------------------------------------------------------------

    async def write_chunk(self, chunk: Chunk, mutation: GraphMutation) -> None:
        self._enter("write_chunk")
        if chunk.document_id not in self.documents:
            return

        stored = _StoredChunk(chunk=chunk)
        for params in mutation.entity_parameters():
            key = (params["text"], params["type"])
            if key not in self.entities:
                self.entities[key] = Entity(
                    text=params["text"],
                    type=params["type"],
                    properties=json.loads(params["properties"]),
                )
            if key not in stored.entity_keys:
                stored.entity_keys.append(key)
        self.chunks[chunk.chunk_id] = stored

        for params in mutation.relationship_parameters():
            source = (params["source"], params["source_type"])
            target = (params["target"], params["target_type"])
            if source not in stored.entity_keys or target not in stored.entity_keys:
                continue
            existing = next(
                (
                    r
                    for r in self.relationships
                    if (r.source, r.target, r.type, r.document_id, r.chunk_index)
                    == (source, target, params["type"], chunk.document_id, chunk.index)
                ),
                None,
            )
            if existing is None:
                self.relationships.append(
                    _StoredRelationship(
                        source=source,
                        target=target,
                        type=params["type"],
                        document_id=chunk.document_id,
                        chunk_index=chunk.index,
                        confidence=params["confidence"],
                    )
                )
            else:
                existing.confidence = params["confidence"]

    # --- retrieval ---------------------------------------------------------

    def _in_scope(self, document_ids: set[str]) -> list[Chunk]:
        chunks = [s.chunk for s in self.chunks.values() if s.chunk.document_id in document_ids]
        return sorted(chunks, key=lambda c: (c.document_id, c.index))

    @staticmethod
    def _record(chunk: Chunk, with_embedding: bool = False) -> ChunkRecord:
        return ChunkRecord(
            content=chunk.text,
            document_id=chunk.document_id,
            chunk_index=chunk.index,
            embedding=list(chunk.embedding) if with_embedding else [],
        )

    async def fetch_chunk_embeddings(self, document_ids: set[str]) -> list[ChunkRecord]:
        self._enter("fetch_chunk_embeddings")
        return [self._record(c, True) for c in self._in_scope(document_ids) if c.embedding]

    async def find_chunks_with_words(
        self, words: list[str], document_ids: set[str]
    ) -> list[ChunkRecord]:
        self._enter("find_chunks_with_words")
        return [
            self._record(c)
            for c in self._in_scope(document_ids)
            if any(w in c.text.lower() for w in words)
        ]

    async def find_chunks_containing(self, text: str, document_ids: set[str]) -> list[ChunkRecord]:
        self._enter("find_chunks_containing")
        return [
            self._record(c)
            for c in self._in_scope(document_ids)
            if text.lower() in c.text.lower()
        ]

    async def find_entity_paths(
        self,
        terms: list[str],
        document_ids: set[str],
        max_hops: int = 3,
        limit: int = 100,
    ) -> list[PathRecord]:
        self._enter("find_entity_paths")
        terms = [t.lower() for t in terms]
        edges = [r for r in self.relationships if r.document_id in document_ids]

        paths: list[PathRecord] = []
        for chunk in self._in_scope(document_ids):
            for start in self.chunks[chunk.chunk_id].entity_keys:
                if not any(t in start[0].lower() for t in terms):
                    continue
                for nodes, rels in _walk(start, edges, max_hops):
                    paths.append(
                        PathRecord(
                            content=chunk.text,
                            document_id=chunk.document_id,
                            chunk_index=chunk.index,
                            nodes=[self.entities[k] for k in nodes],
                            relationships=[
                                Relationship(
                                    source=r.source[0],
                                    source_type=r.source[1],
                                    target=r.target[0],
                                    target_type=r.target[1],
                                    type=r.type,
                                    confidence=r.confidence,
                                )
                                for r in rels
                            ],
                            length=len(rels),
                        )
                    )
        paths.sort(key=lambda p: (p.length, p.document_id, p.chunk_index))
        return paths[:limit]

    async def list_entity_names(
        self, document_ids: set[str] | None = None, limit: int = 50_000
    ) -> list[str]:
        self._enter("list_entity_names")
        names: list[str] = []
        for stored in self.chunks.values():
            if document_ids is not None and stored.chunk.document_id not in document_ids:
                continue
            for text, _type in stored.entity_keys:
                if text not in names:
                    names.append(text)
        return names[:limit]

    async def verify_connectivity(self) -> None:
        self._enter("verify_connectivity")

    async def close(self) -> None:
        self.closed = True


def _walk(start, edges, max_hops):
    """Undirected paths from *start* that never reuse a relationship."""
    stack = [([start], [])]
    while stack:
        nodes, rels = stack.pop()
        yield nodes, rels
        if len(rels) >= max_hops:
            continue
        for edge in edges:
            if any(edge is used for used in rels):
                continue
            if edge.source == nodes[-1]:
                stack.append((nodes + [edge.target], rels + [edge]))
            elif edge.target == nodes[-1]:
                stack.append((nodes + [edge.source], rels + [edge]))


class FakeEmbedder:
    """Bag-of-words vectors over a fixed vocabulary."""

    def __init__(self, vocabulary: list[str]) -> None:
        self.vocabulary = [w.lower() for w in vocabulary]
        self.calls = 0

    @property
    def dimension(self) -> int:
        return len(self.vocabulary)

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        words = set(re.findall(r"\w+", text.lower()))
        return [1.0 if w in words else 0.0 for w in self.vocabulary]


class FakeExtractor:
    """Returns canned extraction results keyed by a phrase in the chunk text."""

    def __init__(self, by_phrase=None, error: Exception | None = None) -> None:
        self.by_phrase = by_phrase or {}
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    def extract(self, text, focus=None):
        from docugraphrag.models import ExtractionResult

        self.calls.append((text, focus))
        if self.error is not None:
            raise self.error
        for phrase, result in self.by_phrase.items():
            if phrase in text:
                return result
        return ExtractionResult()


def paris_extraction():
    """Paris/LOCATION, France/LOCATION, Paris LOCATED_IN France."""
    from docugraphrag.models import ExtractionResult

    return ExtractionResult(
        entities=[
            Entity(text="Paris", type="LOCATION", properties={"kind": "city"}),
            Entity(text="France", type="LOCATION", properties={"kind": "country"}),
        ],
        relationships=[
            Relationship(
                source="Paris",
                source_type="LOCATION",
                target="France",
                target_type="LOCATION",
                type="LOCATED_IN",
                confidence=0.9,
            )
        ],
    )


def split_paragraphs(text: str, size: int, overlap: int) -> list[str]:
    """Deterministic splitter for tests: one chunk per blank-line paragraph."""
    return [p.strip() for p in text.split("\n\n") if p.strip()]


@pytest.fixture
def store() -> FakeGraphStore:
    return FakeGraphStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder(
        ["paris", "france", "capital", "located", "eiffel", "tower", "berlin", "germany", "city"]
    )
