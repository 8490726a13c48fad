"""Ingest a UTF-8 text file into the knowledge graph.

Usage:
    uv run python scripts/ingest_document.py notes.txt --description "People and places"
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger

from docugraphrag.config import get_settings
from docugraphrag.embeddings.embedder import SentenceTransformerEmbedder
from docugraphrag.errors import IngestionError
from docugraphrag.graph.store import GraphStore
from docugraphrag.ingestion.extractor import LLMEntityExtractor
from docugraphrag.ingestion.pipeline import IngestionPipeline


async def ingest(path: Path, description: str | None, extract: bool) -> str:
    settings = get_settings()
    store = GraphStore.from_settings(settings)
    try:
        pipeline = IngestionPipeline(
            store,
            SentenceTransformerEmbedder(settings.embedding_model),
            LLMEntityExtractor() if extract else None,
            settings=settings,
        )
        return await pipeline.ingest(
            path.read_bytes(),
            {"file_name": path.name, "description": description},
        )
    finally:
        await store.close()


def main() -> None:
    """Ingest one document and print its id."""
    parser = argparse.ArgumentParser(description="Ingest a text document")
    parser.add_argument("path", type=Path, help="UTF-8 text file")
    parser.add_argument("--description", help="Analysis focus for entity extraction")
    parser.add_argument("--no-extract", action="store_true", help="Skip entity extraction")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)

    logger.info("=== Ingesting {} ===", args.path)
    try:
        document_id = asyncio.run(ingest(args.path, args.description, not args.no_extract))
    except IngestionError as exc:
        logger.error("{}", exc)
        sys.exit(1)

    logger.info("=== Done! Document id: {} ===", document_id)
    print(document_id)


if __name__ == "__main__":
    main()
