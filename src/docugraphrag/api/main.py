"""FastAPI application: routes for the DocuGraphRAG API.

Endpoints:
    POST   /documents          Ingest a text document.
    GET    /documents          List documents and their processing state.
    GET    /documents/{id}     Get one document.
    DELETE /documents/{id}     Delete a document and its graph data.
    POST   /query              Ask a question, get a ranked-evidence answer.
    POST   /query/stream       Same, streamed as server-sent events.
    GET    /health             Health check.

Usage:
    uvicorn docugraphrag.api.main:app --reload
"""

from __future__ import annotations

import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from docugraphrag import __version__
from docugraphrag.api.models import (
    DocumentRequest,
    DocumentResponse,
    HealthResponse,
    IngestResponse,
    QueryRequest,
    QueryResponse,
)
from docugraphrag.config import get_settings
from docugraphrag.engine.query_engine import NO_ANSWER_MESSAGE, QueryEngine, QueryResult
from docugraphrag.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    IngestionFatalError,
    InvalidInputError,
)
from docugraphrag.graph.store import GraphStore
from docugraphrag.ingestion.pipeline import IngestionPipeline
from docugraphrag.models import Document, Signal


@dataclass
class Services:
    """Long-lived collaborators shared by all requests."""

    store: GraphStore
    engine: QueryEngine
    pipeline: IngestionPipeline


def build_services() -> Services:
    """Wire the default store, embedder, extractor, engine and pipeline."""
    from docugraphrag.embeddings.embedder import SentenceTransformerEmbedder
    from docugraphrag.ingestion.extractor import LLMEntityExtractor

    settings = get_settings()
    store = GraphStore.from_settings(settings)
    embedder = SentenceTransformerEmbedder(settings.embedding_model)
    return Services(
        store=store,
        engine=QueryEngine.from_store(store, embedder=embedder, settings=settings),
        pipeline=IngestionPipeline(store, embedder, LLMEntityExtractor(), settings=settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)

    services = build_services()
    app.state.services = services
    try:
        yield
    finally:
        await services.store.close()


app = FastAPI(
    title="DocuGraphRAG",
    description=(
        "GraphRAG API for asking questions about uploaded documents, "
        "ranking evidence from vector, lexical and knowledge-graph retrieval."
    ),
    version=__version__,
    lifespan=lifespan,
)


def get_services(request: Request) -> Services:
    return request.app.state.services


def _document_response(document: Document) -> DocumentResponse:
    return DocumentResponse(**document.to_dict())


def _signals(req: QueryRequest) -> list[Signal]:
    flags = {
        Signal.VECTOR: req.vector_search,
        Signal.LEXICAL: req.text_search,
        Signal.GRAPH: req.graph_search,
    }
    return [signal for signal, enabled in flags.items() if enabled]


def _query_response(result: QueryResult, error: str | None = None) -> QueryResponse:
    data = result.to_dict()
    return QueryResponse(
        question=result.question,
        answer=result.answer,
        status=data["status"],
        document_ids=data["document_ids"],
        evidence=data["evidence"],
        signal_counts=data["signal_counts"],
        llm_model=data["llm_model"] or "",
        llm_provider=data["llm_provider"] or "",
        error=error if error is not None else data["llm_error"],
    )


def _sse(payload: dict | str) -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {body}\n\n"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@app.post("/documents", response_model=IngestResponse)
async def create_document(
    req: DocumentRequest,
    services: Services = Depends(get_services),
) -> IngestResponse:
    """Ingest a document: split, embed, extract entities, and store."""
    metadata = {
        "file_name": req.file_name,
        "description": req.description,
        "document_id": req.document_id,
    }
    try:
        document_id = await services.pipeline.ingest(req.text, metadata)
    except DocumentExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IngestionFatalError as exc:
        logger.error("Upload failed: {}", exc)
        raise HTTPException(
            status_code=502,
            detail={"document_id": exc.document_id, "error": exc.message},
        ) from exc

    return IngestResponse(document_id=document_id, status="processed")


@app.get("/documents", response_model=list[DocumentResponse])
async def list_documents(services: Services = Depends(get_services)) -> list[DocumentResponse]:
    """List all documents, newest first."""
    documents = await services.pipeline.list_documents()
    return [_document_response(d) for d in documents]


@app.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    services: Services = Depends(get_services),
) -> DocumentResponse:
    """Get one document and its processing state."""
    try:
        document = await services.pipeline.get_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Document '{document_id}' not found.") from exc
    return _document_response(document)


@app.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    services: Services = Depends(get_services),
) -> dict[str, str]:
    """Delete a document, its chunks, and entities no other chunk uses."""
    try:
        await services.pipeline.delete_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Document '{document_id}' not found.") from exc
    return {"message": "Document deleted successfully"}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@app.post("/query", response_model=QueryResponse)
async def query(
    req: QueryRequest,
    services: Services = Depends(get_services),
) -> QueryResponse:
    """Answer a question from the selected documents.

    1. Search the documents with the enabled signals.
    2. Fuse and rank the evidence.
    3. (Optionally) Generate an LLM answer.
    """
    engine = services.engine
    signals = _signals(req)
    try:
        if req.use_llm:
            result = await engine.answer(
                req.question, req.document_ids, signals=signals, top_k=req.top_k
            )
        else:
            result = await engine.retrieve(
                req.question, req.document_ids, signals=signals, top_k=req.top_k
            )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error("Query failed: {}", exc)
        result = QueryResult(question=req.question, document_ids=sorted(set(req.document_ids)))
        result.answer = NO_ANSWER_MESSAGE
        return _query_response(result, error=str(exc))

    return _query_response(result)


@app.post("/query/stream")
async def query_stream(
    req: QueryRequest,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Stream the answer as server-sent events.

    Events are ``data: {"content": ...}`` deltas, ended by ``data: [DONE]``;
    a failure is sent as ``data: {"error": ...}``.
    """
    if not req.question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty")

    engine = services.engine
    signals = _signals(req)

    async def events() -> AsyncIterator[str]:
        try:
            async for event in engine.answer_stream(
                req.question, req.document_ids, signals=signals, top_k=req.top_k
            ):
                if event.kind == "delta":
                    yield _sse({"content": event.content})
                elif event.kind == "error":
                    yield _sse({"error": event.content})
                    return
                else:
                    yield _sse("[DONE]")
        except Exception as exc:
            logger.error("Streaming query failed: {}", exc)
            yield _sse({"error": str(exc)})

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health(services: Services = Depends(get_services)) -> HealthResponse:
    """Health check: reports status of Neo4j."""
    try:
        await services.store.verify_connectivity()
        neo4j_status = "ok"
    except Exception as exc:  # noqa: BLE001
        neo4j_status = f"error: {exc}"

    return HealthResponse(status="ok", version=__version__, neo4j=neo4j_status)
