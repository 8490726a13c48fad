"""Ask a question about ingested documents from the command line.

Usage:
    uv run python scripts/ask.py "Where is Paris located?" --document 3f2c...
    uv run python scripts/ask.py "Where is Paris located?" --document 3f2c... --retrieval-only
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from loguru import logger

from docugraphrag.config import get_settings
from docugraphrag.embeddings.embedder import SentenceTransformerEmbedder
from docugraphrag.engine.query_engine import QueryEngine
from docugraphrag.graph.store import GraphStore


async def ask(question: str, document_ids: list[str], retrieval_only: bool) -> None:
    settings = get_settings()
    store = GraphStore.from_settings(settings)
    try:
        engine = QueryEngine.from_store(
            store,
            embedder=SentenceTransformerEmbedder(settings.embedding_model),
            settings=settings,
        )
        if retrieval_only:
            result = await engine.retrieve(question, document_ids)
            print(result.context or "(no evidence)")
            return

        async for event in engine.answer_stream(question, document_ids):
            if event.kind == "delta":
                print(event.content, end="", flush=True)
            elif event.kind == "error":
                logger.error("Answer generation failed: {}", event.content)
        print()
    finally:
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Ask a question about ingested documents")
    parser.add_argument("question")
    parser.add_argument(
        "--document", "-d", action="append", default=[], dest="documents",
        help="Document id to search (repeatable)",
    )
    parser.add_argument("--retrieval-only", action="store_true", help="Print the ranked context")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)

    asyncio.run(ask(args.question, args.documents, args.retrieval_only))


if __name__ == "__main__":
    main()
