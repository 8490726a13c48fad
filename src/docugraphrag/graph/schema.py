"""Neo4j knowledge graph schema definition.

Defines the graph schema with constraints and indexes.

Schema:
    (:Document {documentId, uploadedAt, status, error, metadata, chunkCount})
    (:DocumentChunk {chunkId, documentId, chunkIndex, content, embedding, hasEntities})
    (:Entity {text, type, properties})

    (:Document)-[:HAS_CHUNK]->(:DocumentChunk)
    (:DocumentChunk)-[:HAS_ENTITY]->(:Entity)
    (:Document)-[:CONTAINS_ENTITY]->(:Entity)
    (:Entity)-[:RELATES_TO {type, confidence, documentId, chunkIndex}]->(:Entity)

Usage:
    python -m docugraphrag.graph.schema
    python -m docugraphrag.graph.schema --drop
"""

from __future__ import annotations

import asyncio
import sys

from loguru import logger

from docugraphrag.config import get_settings
from docugraphrag.graph.store import GraphStore

# Constraints ensure uniqueness and create implicit indexes
CONSTRAINTS = [
    "CREATE CONSTRAINT document_id IF NOT EXISTS FOR (d:Document) REQUIRE d.documentId IS UNIQUE",
    "CREATE CONSTRAINT chunk_id IF NOT EXISTS FOR (c:DocumentChunk) REQUIRE c.chunkId IS UNIQUE",
    "CREATE CONSTRAINT entity_identity IF NOT EXISTS FOR (e:Entity) REQUIRE (e.text, e.type) IS UNIQUE",
]

# Additional indexes for common query patterns
INDEXES = [
    "CREATE INDEX chunk_document_idx IF NOT EXISTS FOR (c:DocumentChunk) ON (c.documentId, c.chunkIndex)",
    "CREATE INDEX document_status_idx IF NOT EXISTS FOR (d:Document) ON (d.status)",
    "CREATE TEXT INDEX entity_text_idx IF NOT EXISTS FOR (e:Entity) ON (e.text)",
    "CREATE TEXT INDEX chunk_content_idx IF NOT EXISTS FOR (c:DocumentChunk) ON (c.content)",
    "CREATE INDEX relates_to_document_idx IF NOT EXISTS FOR ()-[r:RELATES_TO]-() ON (r.documentId)",
]

NODE_COUNTS = "MATCH (n) UNWIND labels(n) AS label RETURN label, count(*) AS count"
RELATIONSHIP_COUNTS = "MATCH ()-[r]->() RETURN type(r) AS type, count(*) AS count"
DELETE_BATCH = "MATCH (n) WITH n LIMIT $batch DETACH DELETE n RETURN count(*) AS deleted"


async def create_schema(store: GraphStore) -> None:
    """Create constraints and indexes (idempotent)."""
    async with store.driver.session(database=store.database) as session:
        for constraint in CONSTRAINTS:
            await session.run(constraint)
            logger.info("  Created constraint: {}", constraint.split("FOR")[0].strip())

        for index in INDEXES:
            await session.run(index)
            logger.info("  Created index: {}", index.split("FOR")[0].strip())

    logger.success("Schema created successfully")


async def drop_all_data(store: GraphStore, batch: int = 10_000) -> int:
    """Drop all nodes and relationships (for development/testing).

    Returns:
        Number of deleted nodes.
    """
    total = 0
    async with store.driver.session(database=store.database) as session:
        while True:
            result = await session.run(DELETE_BATCH, {"batch": batch})
            record = await result.single()
            deleted = record["deleted"] if record else 0
            total += deleted
            if deleted == 0:
                break

    logger.warning("Deleted {} nodes from Neo4j", total)
    return total


async def get_schema_info(store: GraphStore) -> dict:
    """Get current schema information from Neo4j.

    Returns:
        Dictionary with node counts per label and relationship counts per type.
    """
    async with store.driver.session(database=store.database) as session:
        result = await session.run(NODE_COUNTS)
        node_counts = {row["label"]: row["count"] for row in await result.data()}

        result = await session.run(RELATIONSHIP_COUNTS)
        rel_counts = {row["type"]: row["count"] for row in await result.data()}

    return {"nodes": node_counts, "relationships": rel_counts}


async def _run(drop: bool) -> None:
    store = GraphStore.from_settings()
    try:
        await store.verify_connectivity()
        logger.success("Connected to Neo4j")

        if drop:
            logger.warning("Dropping all existing data...")
            await drop_all_data(store)

        await create_schema(store)

        info = await get_schema_info(store)
        logger.info("Schema info: {}", info)
    finally:
        await store.close()


def main() -> None:
    """CLI entry point for schema creation."""
    import argparse

    parser = argparse.ArgumentParser(description="Create Neo4j schema")
    parser.add_argument("--drop", action="store_true", help="Drop all data first")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)

    asyncio.run(_run(args.drop))


if __name__ == "__main__":
    main()
