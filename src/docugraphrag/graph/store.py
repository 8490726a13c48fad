"""Async Neo4j access for ingestion and retrieval.

Every method opens its own session, so concurrent searchers and chunk
writers never share one. All values are bound as ``$parameters``.

Usage:
    store = GraphStore.from_settings()
    records = await store.fetch_chunk_embeddings({"doc-1"})
    await store.close()
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import ConstraintError

from docugraphrag.config import Settings, get_settings
from docugraphrag.graph.mutations import GraphMutation
from docugraphrag.models import Chunk, Document, DocumentStatus, Entity, Relationship

# Upper bound for traversal depth; Cypher cannot bind the hop count as a parameter
MAX_TRAVERSAL_HOPS = 10


@dataclass
class ChunkRecord:
    """A stored chunk as returned by retrieval queries."""

    content: str
    document_id: str
    chunk_index: int | None = None
    embedding: list[float] = field(default_factory=list)


@dataclass
class PathRecord:
    """A relationship path starting at an entity of an in-scope chunk."""

    content: str
    document_id: str
    chunk_index: int | None
    nodes: list[Entity]
    relationships: list[Relationship]
    length: int


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

CREATE_DOCUMENT = """
OPTIONAL MATCH (existing:Document {documentId: $document_id})
WITH existing WHERE existing IS NULL
CREATE (d:Document {documentId: $document_id})
SET d.uploadedAt = $uploaded_at,
    d.status = $status,
    d.metadata = $metadata,
    d.chunkCount = $chunk_count
RETURN count(d) AS created
"""

UPDATE_DOCUMENT_STATUS = """
MATCH (d:Document {documentId: $document_id})
WHERE d.status = $from_status
SET d.status = $status,
    d.error = $error,
    d.finishedAt = $finished_at
RETURN count(d) AS updated
"""

GET_DOCUMENT = """
MATCH (d:Document {documentId: $document_id})
RETURN d.documentId AS document_id, d.uploadedAt AS uploaded_at,
       d.status AS status, d.error AS error,
       d.metadata AS metadata, d.chunkCount AS chunk_count
"""

LIST_DOCUMENTS = """
MATCH (d:Document)
RETURN d.documentId AS document_id, d.uploadedAt AS uploaded_at,
       d.status AS status, d.error AS error,
       d.metadata AS metadata, d.chunkCount AS chunk_count
ORDER BY d.uploadedAt DESC
"""

DOCUMENT_EXISTS = """
MATCH (d:Document {documentId: $document_id})
RETURN count(d) AS found
"""

DELETE_DOCUMENT_RELATIONSHIPS = """
MATCH ()-[r:RELATES_TO {documentId: $document_id}]->()
DELETE r
"""

DELETE_DOCUMENT_NODES = """
MATCH (d:Document {documentId: $document_id})
OPTIONAL MATCH (d)-[:HAS_CHUNK]->(c:DocumentChunk)
DETACH DELETE d, c
"""

DELETE_ORPHAN_ENTITIES = """
MATCH (e:Entity)
WHERE NOT (e)<-[:HAS_ENTITY]-(:DocumentChunk)
DETACH DELETE e
"""

WRITE_CHUNK = """
MATCH (d:Document {documentId: $document_id})
MERGE (c:DocumentChunk {chunkId: $chunk_id})
SET c.documentId = $document_id,
    c.chunkIndex = $chunk_index,
    c.content = $content,
    c.embedding = $embedding,
    c.hasEntities = $has_entities
MERGE (d)-[:HAS_CHUNK]->(c)
"""

WRITE_ENTITIES = """
MATCH (d:Document {documentId: $document_id})
MATCH (c:DocumentChunk {chunkId: $chunk_id})
UNWIND $entities AS entity
MERGE (e:Entity {text: entity.text, type: entity.type})
ON CREATE SET e.properties = entity.properties
MERGE (c)-[:HAS_ENTITY]->(e)
MERGE (d)-[:CONTAINS_ENTITY]->(e)
"""

WRITE_RELATIONSHIPS = """
MATCH (c:DocumentChunk {chunkId: $chunk_id})
UNWIND $relationships AS rel
MATCH (c)-[:HAS_ENTITY]->(a:Entity {text: rel.source, type: rel.source_type})
MATCH (c)-[:HAS_ENTITY]->(b:Entity {text: rel.target, type: rel.target_type})
MERGE (a)-[r:RELATES_TO {type: rel.type, documentId: $document_id, chunkIndex: $chunk_index}]->(b)
SET r.confidence = rel.confidence
"""

FETCH_CHUNK_EMBEDDINGS = """
MATCH (c:DocumentChunk)
WHERE c.documentId IN $document_ids AND c.embedding IS NOT NULL
RETURN c.content AS content, c.documentId AS document_id,
       c.chunkIndex AS chunk_index, c.embedding AS embedding
ORDER BY c.documentId, c.chunkIndex
"""

FIND_CHUNKS_WITH_WORDS = """
MATCH (c:DocumentChunk)
WHERE c.documentId IN $document_ids
  AND any(word IN $words WHERE toLower(c.content) CONTAINS word)
RETURN c.content AS content, c.documentId AS document_id, c.chunkIndex AS chunk_index
ORDER BY c.documentId, c.chunkIndex
"""

FIND_CHUNKS_CONTAINING = """
MATCH (c:DocumentChunk)
WHERE c.documentId IN $document_ids
  AND toLower(c.content) CONTAINS toLower($text)
RETURN c.content AS content, c.documentId AS document_id, c.chunkIndex AS chunk_index
ORDER BY c.documentId, c.chunkIndex
"""

# The hop pattern is spliced in by ``_entity_paths_query``; everything else is bound.
_ENTITY_PATHS_TEMPLATE = """
MATCH (c:DocumentChunk)-[:HAS_ENTITY]->(start:Entity)
WHERE c.documentId IN $document_ids
  AND any(term IN $terms WHERE toLower(start.text) CONTAINS term)
MATCH path = (start)-[:RELATES_TO*0..__MAX_HOPS__]-(:Entity)
WHERE all(r IN relationships(path) WHERE r.documentId IN $document_ids)
RETURN c.content AS content, c.documentId AS document_id, c.chunkIndex AS chunk_index,
       [n IN nodes(path) | {text: n.text, type: n.type, properties: n.properties}] AS nodes,
       [r IN relationships(path) | {
            source: startNode(r).text, source_type: startNode(r).type,
            target: endNode(r).text, target_type: endNode(r).type,
            type: r.type, confidence: r.confidence
       }] AS relationships,
       length(path) AS path_length
ORDER BY path_length ASC, c.documentId, c.chunkIndex
LIMIT $limit
"""

LIST_ENTITY_NAMES = """
MATCH (c:DocumentChunk)-[:HAS_ENTITY]->(e:Entity)
WHERE $document_ids IS NULL OR c.documentId IN $document_ids
RETURN DISTINCT e.text AS text
LIMIT $limit
"""


def _entity_paths_query(max_hops: int) -> str:
    hops = int(max_hops)
    if not 0 <= hops <= MAX_TRAVERSAL_HOPS:
        raise ValueError(f"max_hops must be between 0 and {MAX_TRAVERSAL_HOPS}, got {max_hops}")
    return _ENTITY_PATHS_TEMPLATE.replace("__MAX_HOPS__", str(hops))


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def _decode_properties(raw: Any) -> dict[str, str]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return {str(k): str(v) for k, v in decoded.items()} if isinstance(decoded, dict) else {}


def _document_from_record(row: dict[str, Any]) -> Document:
    uploaded_at = row.get("uploaded_at")
    if isinstance(uploaded_at, str):
        uploaded_at = datetime.fromisoformat(uploaded_at)
    elif hasattr(uploaded_at, "to_native"):
        uploaded_at = uploaded_at.to_native()

    doc = Document(
        id=row["document_id"],
        status=DocumentStatus(row.get("status") or DocumentStatus.PROCESSING.value),
        error=row.get("error"),
        metadata=_decode_properties(row.get("metadata")),
        chunk_count=row.get("chunk_count") or 0,
    )
    if uploaded_at is not None:
        doc.uploaded_at = uploaded_at
    return doc


def _chunk_from_record(row: dict[str, Any]) -> ChunkRecord:
    return ChunkRecord(
        content=row["content"],
        document_id=row["document_id"],
        chunk_index=row.get("chunk_index"),
        embedding=list(row.get("embedding") or []),
    )


def _path_from_record(row: dict[str, Any]) -> PathRecord:
    nodes = [
        Entity(
            text=n["text"],
            type=n["type"],
            properties=_decode_properties(n.get("properties")),
        )
        for n in row.get("nodes") or []
    ]
    relationships = [
        Relationship(
            source=r["source"],
            source_type=r["source_type"],
            target=r["target"],
            target_type=r["target_type"],
            type=r["type"],
            confidence=r.get("confidence"),
        )
        for r in row.get("relationships") or []
    ]
    return PathRecord(
        content=row["content"],
        document_id=row["document_id"],
        chunk_index=row.get("chunk_index"),
        nodes=nodes,
        relationships=relationships,
        length=int(row.get("path_length") or 0),
    )


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


async def _write_chunk_tx(
    tx: AsyncManagedTransaction,
    chunk: Chunk,
    mutation: GraphMutation,
) -> None:
    """Create one chunk with its entities and relationships (single transaction)."""
    base = {
        "document_id": chunk.document_id,
        "chunk_id": chunk.chunk_id,
        "chunk_index": chunk.index,
    }
    await tx.run(
        WRITE_CHUNK,
        {
            **base,
            "content": chunk.text,
            "embedding": chunk.embedding,
            "has_entities": chunk.has_entities,
        },
    )
    if mutation.entities:
        await tx.run(WRITE_ENTITIES, {**base, "entities": mutation.entity_parameters()})
    if mutation.relationships:
        await tx.run(
            WRITE_RELATIONSHIPS,
            {**base, "relationships": mutation.relationship_parameters()},
        )


async def _delete_document_tx(tx: AsyncManagedTransaction, document_id: str) -> bool:
    result = await tx.run(
        DOCUMENT_EXISTS,
        {"document_id": document_id},
    )
    record = await result.single()
    if not record or not record["found"]:
        return False
    await tx.run(DELETE_DOCUMENT_RELATIONSHIPS, {"document_id": document_id})
    await tx.run(DELETE_DOCUMENT_NODES, {"document_id": document_id})
    await tx.run(DELETE_ORPHAN_ENTITIES)
    return True


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class GraphStore:
    """Queryable graph of documents, chunks, and entities."""

    def __init__(self, driver: AsyncDriver, database: str | None = None) -> None:
        self._driver = driver
        self._database = database

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> GraphStore:
        """Create a store with a driver configured from settings."""
        settings = settings or get_settings()
        driver = AsyncGraphDatabase.driver(
            settings.neo4j_uri,
            auth=(settings.neo4j_user, settings.neo4j_password),
        )
        logger.info("Neo4j driver created for {}", settings.neo4j_uri)
        return cls(driver, database=settings.neo4j_database)

    @property
    def driver(self) -> AsyncDriver:
        return self._driver

    @property
    def database(self) -> str | None:
        return self._database

    def _session(self):
        return self._driver.session(database=self._database)

    async def close(self) -> None:
        await self._driver.close()

    async def verify_connectivity(self) -> None:
        await self._driver.verify_connectivity()

    async def _read(self, query: str, parameters: dict[str, Any]) -> list[dict[str, Any]]:
        async with self._session() as session:
            result = await session.run(query, parameters)
            return await result.data()

    # --- documents ---------------------------------------------------------

    async def create_document(self, document: Document) -> bool:
        """Create the Document node in ``processing`` state.

        Returns:
            True if the node was created, False if a document with the same id
            already exists (the existing node is left untouched).
        """
        try:
            async with self._session() as session:
                result = await session.run(
                    CREATE_DOCUMENT,
                    {
                        "document_id": document.id,
                        "uploaded_at": document.uploaded_at.isoformat(),
                        "status": document.status.value,
                        "metadata": json.dumps(document.metadata, sort_keys=True),
                        "chunk_count": document.chunk_count,
                    },
                )
                record = await result.single()
        except ConstraintError:
            # lost a race with a concurrent create of the same id
            record = None
        created = bool(record and record["created"])
        if not created:
            logger.warning("Document {} already exists; not recreated", document.id)
        return created

    async def set_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error: str | None = None,
    ) -> bool:
        """Move a document out of ``processing``.

        Returns:
            True if the document was updated, False if it was not in
            ``processing`` (terminal states are never overwritten).
        """
        if not DocumentStatus.PROCESSING.can_transition_to(status):
            raise ValueError(f"Cannot move a document to {status.value!r}")

        async with self._session() as session:
            result = await session.run(
                UPDATE_DOCUMENT_STATUS,
                {
                    "document_id": document_id,
                    "from_status": DocumentStatus.PROCESSING.value,
                    "status": status.value,
                    "error": error,
                    "finished_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            record = await result.single()
        updated = bool(record and record["updated"])
        if not updated:
            logger.warning(
                "Document {} not in processing state; status {} not applied",
                document_id,
                status.value,
            )
        return updated

    async def get_document(self, document_id: str) -> Document | None:
        rows = await self._read(GET_DOCUMENT, {"document_id": document_id})
        return _document_from_record(rows[0]) if rows else None

    async def list_documents(self) -> list[Document]:
        rows = await self._read(LIST_DOCUMENTS, {})
        return [_document_from_record(row) for row in rows]

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document, its chunks, its relationships, and orphaned entities."""
        async with self._session() as session:
            deleted = await session.execute_write(_delete_document_tx, document_id)
        if deleted:
            logger.info("Deleted document {}", document_id)
        return deleted

    # --- chunks --------------------------------------------------------------

    async def write_chunk(self, chunk: Chunk, mutation: GraphMutation) -> None:
        """Persist a chunk with its entities and relationships atomically."""
        async with self._session() as session:
            await session.execute_write(_write_chunk_tx, chunk, mutation)

    # --- retrieval -----------------------------------------------------------

    async def fetch_chunk_embeddings(self, document_ids: set[str]) -> list[ChunkRecord]:
        """All in-scope chunks with their embeddings."""
        rows = await self._read(FETCH_CHUNK_EMBEDDINGS, {"document_ids": sorted(document_ids)})
        return [_chunk_from_record(row) for row in rows]

    async def find_chunks_with_words(
        self, words: list[str], document_ids: set[str]
    ) -> list[ChunkRecord]:
        """In-scope chunks containing at least one of the (lower-case) words."""
        rows = await self._read(
            FIND_CHUNKS_WITH_WORDS,
            {"words": list(words), "document_ids": sorted(document_ids)},
        )
        return [_chunk_from_record(row) for row in rows]

    async def find_chunks_containing(self, text: str, document_ids: set[str]) -> list[ChunkRecord]:
        """In-scope chunks containing *text* (case-insensitive)."""
        rows = await self._read(
            FIND_CHUNKS_CONTAINING,
            {"text": text, "document_ids": sorted(document_ids)},
        )
        return [_chunk_from_record(row) for row in rows]

    async def find_entity_paths(
        self,
        terms: list[str],
        document_ids: set[str],
        max_hops: int = 3,
        limit: int = 100,
    ) -> list[PathRecord]:
        """Relationship paths from entities matching *terms* in in-scope chunks."""
        rows = await self._read(
            _entity_paths_query(max_hops),
            {
                "terms": [t.lower() for t in terms],
                "document_ids": sorted(document_ids),
                "limit": limit,
            },
        )
        return [_path_from_record(row) for row in rows]

    async def list_entity_names(
        self,
        document_ids: set[str] | None = None,
        limit: int = 50_000,
    ) -> list[str]:
        """Distinct entity texts, optionally restricted to in-scope chunks."""
        rows = await self._read(
            LIST_ENTITY_NAMES,
            {
                "document_ids": sorted(document_ids) if document_ids is not None else None,
                "limit": limit,
            },
        )
        return [row["text"] for row in rows if row.get("text")]
