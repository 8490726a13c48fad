"""Pydantic models for the FastAPI layer.

Defines request and response schemas for the REST API.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class DocumentRequest(BaseModel):
    """Body for POST /documents."""

    text: str = Field(..., description="Plain UTF-8 document text.")
    file_name: str | None = Field(None, description="Original file name, kept as metadata.")
    description: str | None = Field(
        None,
        description="Analysis focus for entity extraction.",
        examples=["People and the places they work in."],
    )
    document_id: str | None = Field(None, description="Use this id instead of a generated one.")


class QueryRequest(BaseModel):
    """Body for POST /query and POST /query/stream."""

    question: str = Field(
        ...,
        max_length=2000,
        description="Natural-language question about the selected documents.",
        examples=["Where is Paris located?"],
    )
    document_ids: list[str] = Field(
        default_factory=list,
        description="Documents the answer may draw on.",
    )
    vector_search: bool = Field(True, description="Use embedding similarity.")
    text_search: bool = Field(True, description="Use lexical matching.")
    graph_search: bool = Field(True, description="Use entity relationship traversal.")
    use_llm: bool = Field(True, description="Generate an LLM answer (False = retrieval only).")
    top_k: int | None = Field(None, ge=1, le=50, description="Results requested per signal.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    """A document and its processing state."""

    document_id: str
    uploaded_at: str = ""
    status: str
    error: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    chunk_count: int = 0


class IngestResponse(BaseModel):
    """Response for POST /documents."""

    document_id: str
    status: str


class EntityInfo(BaseModel):
    text: str
    type: str
    properties: dict[str, str] = Field(default_factory=dict)


class RelationshipInfo(BaseModel):
    source: str
    source_type: str = ""
    target: str
    target_type: str = ""
    type: str
    confidence: float | None = None


class EvidenceInfo(BaseModel):
    """A single ranked piece of evidence used to build the answer."""

    content: str
    document_id: str
    chunk_index: int | None = None
    score: float = Field(..., description="Combined weighted score.")
    signal_scores: dict[str, float] = Field(default_factory=dict)
    entities: list[EntityInfo] = Field(default_factory=list)
    relationships: list[RelationshipInfo] = Field(default_factory=list)


class QueryResponse(BaseModel):
    """Response for POST /query."""

    question: str
    answer: str = Field("", description="LLM-generated answer (empty if use_llm=False).")
    status: str = "no_evidence"
    document_ids: list[str] = Field(default_factory=list)
    evidence: list[EvidenceInfo] = Field(default_factory=list)
    signal_counts: dict[str, int] = Field(default_factory=dict)
    llm_model: str = ""
    llm_provider: str = ""
    error: str | None = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str = ""
    neo4j: str = "unknown"
