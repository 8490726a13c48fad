"""Document ingestion: split → embed → extract → persist.

Each document is split into chunks that are processed concurrently (bounded
by ``ingest_concurrency``). Per chunk:
  1. Embedding (mandatory, retried).
  2. Entity / relationship extraction (best-effort).
  3. Typed graph mutation build.
  4. Atomic write of chunk + entities + relationships (mandatory, retried).

The document stays in ``processing`` until every chunk has settled, then
moves to ``processed``, or to ``error`` with the first failure message.

Usage:
    pipeline = IngestionPipeline(store, SentenceTransformerEmbedder(), LLMEntityExtractor())
    document_id = await pipeline.ingest(text, {"file_name": "paris.txt"})
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from loguru import logger
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from docugraphrag.config import Settings, get_settings
from docugraphrag.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    ExtractionSoftError,
    IngestionFatalError,
    InvalidDocumentError,
)
from docugraphrag.graph.mutations import GraphMutation
from docugraphrag.ingestion.chunker import split_text
from docugraphrag.models import Chunk, Document, DocumentStatus, ExtractionResult

if TYPE_CHECKING:
    from docugraphrag.embeddings.embedder import EmbeddingProvider
    from docugraphrag.graph.store import GraphStore
    from docugraphrag.ingestion.extractor import EntityExtractor

T = TypeVar("T")

Splitter = Callable[[str, int, int], list[str]]

CANCELLED_MESSAGE = "ingestion cancelled"
LOST_PROCESSING_MESSAGE = "document left processing state before ingestion finished"


class EmbeddingDimensionError(ValueError):
    """An embedding does not have the deployment's dimensionality."""


def decode_document(raw_text: str | bytes) -> str:
    """Return document text, rejecting undecodable or blank input.

    Raises:
        InvalidDocumentError: if bytes are not valid UTF-8 or the text is blank.
    """
    if isinstance(raw_text, (bytes, bytearray)):
        try:
            text = bytes(raw_text).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidDocumentError(f"Document is not valid UTF-8: {exc}") from exc
    elif isinstance(raw_text, str):
        text = raw_text
    else:
        raise InvalidDocumentError(f"Unsupported document type: {type(raw_text).__name__}")

    if not text.strip():
        raise InvalidDocumentError("Document text is empty")
    return text


class IngestionPipeline:
    """Turns raw documents into chunks, embeddings and graph structure."""

    def __init__(
        self,
        store: GraphStore,
        embedder: EmbeddingProvider,
        extractor: EntityExtractor | None = None,
        *,
        splitter: Splitter = split_text,
        settings: Settings | None = None,
        retry_wait: float = 0.5,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.embedder = embedder
        self.extractor = extractor if settings.extraction_enabled else None
        self.splitter = splitter
        self.chunk_size = settings.chunk_size
        self.chunk_overlap = settings.chunk_overlap
        self.concurrency = max(1, settings.ingest_concurrency)
        self.max_retries = max(1, settings.ingest_max_retries)
        self.retry_wait = retry_wait
        self.dimension: int | None = settings.embedding_dimension or None

    # --- public API ----------------------------------------------------------

    async def ingest(
        self,
        raw_text: str | bytes,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        """Ingest one document and return its id.

        Args:
            raw_text: Document text, or UTF-8 bytes.
            metadata: Flat metadata. ``document_id`` overrides the generated
                id; ``description`` is used as the extraction focus.

        Raises:
            InvalidDocumentError: before any I/O, for empty or undecodable text.
            DocumentExistsError: if a document with the same id is already
                stored; it is left unchanged.
            IngestionFatalError: if a mandatory step failed; the document is
                left in ``error`` state.
        """
        text = decode_document(raw_text)
        meta = {str(k): str(v) for k, v in (metadata or {}).items() if v is not None}
        document_id = meta.pop("document_id", "") or str(uuid.uuid4())

        pieces = [p for p in self.splitter(text, self.chunk_size, self.chunk_overlap) if p.strip()]
        if not pieces:
            raise InvalidDocumentError("Document produced no chunks")

        document = Document(id=document_id, metadata=meta, chunk_count=len(pieces))
        try:
            created = await self.store.create_document(document)
        except Exception as exc:
            raise IngestionFatalError(document_id, f"could not create document: {exc}") from exc
        if not created:
            raise DocumentExistsError(document_id)

        logger.info("Ingesting document {} ({} chunks)", document_id, len(pieces))

        semaphore = asyncio.Semaphore(self.concurrency)
        focus = meta.get("description")
        try:
            outcomes = await asyncio.gather(
                *(
                    self._process_chunk(document_id, index, piece, focus, semaphore)
                    for index, piece in enumerate(pieces)
                ),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            logger.warning("Ingestion of document {} cancelled", document_id)
            await self.store.set_document_status(
                document_id, DocumentStatus.ERROR, error=CANCELLED_MESSAGE
            )
            raise

        failures = [
            (index, outcome)
            for index, outcome in enumerate(outcomes)
            if isinstance(outcome, BaseException)
        ]
        if failures:
            index, exc = failures[0]
            message = f"chunk {index}: {exc}"
            logger.error(
                "Ingestion of document {} failed ({} of {} chunks): {}",
                document_id,
                len(failures),
                len(pieces),
                message,
            )
            await self.store.set_document_status(document_id, DocumentStatus.ERROR, error=message)
            raise IngestionFatalError(document_id, message) from exc

        if not await self.store.set_document_status(document_id, DocumentStatus.PROCESSED):
            raise IngestionFatalError(document_id, LOST_PROCESSING_MESSAGE)
        logger.success("Document {} processed ({} chunks)", document_id, len(pieces))
        return document_id

    async def get_document(self, document_id: str) -> Document:
        """Return a document's current state.

        Raises:
            DocumentNotFoundError: if no such document exists.
        """
        document = await self.store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_documents(self) -> list[Document]:
        return await self.store.list_documents()

    async def delete_document(self, document_id: str) -> None:
        """Delete a document, its chunks and entities no chunk refers to any more.

        Raises:
            DocumentNotFoundError: if no such document exists.
        """
        if not await self.store.delete_document(document_id):
            raise DocumentNotFoundError(document_id)

    # --- per-chunk work ------------------------------------------------------

    async def _process_chunk(
        self,
        document_id: str,
        index: int,
        text: str,
        focus: str | None,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            embedding = await self._retrying(
                f"embed chunk {index}", lambda: asyncio.to_thread(self.embedder.embed, text)
            )
            self._check_dimension(embedding)

            extraction = await self._extract(document_id, index, text, focus)
            mutation = GraphMutation.from_extraction(extraction)

            chunk = Chunk(
                document_id=document_id,
                index=index,
                text=text,
                embedding=list(embedding),
                has_entities=mutation.has_entities,
            )
            await self._retrying(
                f"write chunk {index}", lambda: self.store.write_chunk(chunk, mutation)
            )
            logger.debug(
                "Chunk {}:{} stored ({} entities, {} relationships)",
                document_id,
                index,
                len(mutation.entities),
                len(mutation.relationships),
            )

    async def _extract(
        self,
        document_id: str,
        index: int,
        text: str,
        focus: str | None,
    ) -> ExtractionResult | None:
        if self.extractor is None:
            return None
        try:
            return await asyncio.to_thread(self.extractor.extract, text, focus)
        except ExtractionSoftError as exc:
            logger.warning("Extraction failed for chunk {}:{}: {}", document_id, index, exc)
        except Exception as exc:
            logger.warning(
                "Extractor raised on chunk {}:{}: {!r}", document_id, index, exc
            )
        return None

    def _check_dimension(self, embedding: list[float]) -> None:
        if not embedding:
            raise EmbeddingDimensionError("Embedding is empty")
        if self.dimension is None:
            self.dimension = len(embedding)
            logger.info("Embedding dimension fixed at {}", self.dimension)
        elif len(embedding) != self.dimension:
            raise EmbeddingDimensionError(
                f"Embedding has {len(embedding)} dimensions, expected {self.dimension}"
            )

    async def _retrying(self, what: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation*, retrying with exponential backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_wait, max=10),
            before_sleep=lambda state: logger.warning(
                "{} failed (attempt {}/{}): {}",
                what,
                state.attempt_number,
                self.max_retries,
                state.outcome.exception(),
            ),
            reraise=True,
        ):
            with attempt:
                result = await operation()
        return result
