"""GraphRAG query engine: main orchestrator.

Runs the signal searchers concurrently, fuses their results, formats the
ranked evidence and assembles the LLM prompt. The result is a
:class:`QueryResult` that can be answered in one go or streamed.

Flow:
    User question + document scope
        → Vector / lexical / graph search   (searchers, concurrently)
        → Fusion and ranking                (merger)
        → Context block                     (formatter)
        → Prompt assembly
        → Answer generation                 (llm.client)

Usage:
    engine = QueryEngine.from_store(store, embedder=embedder)
    result = await engine.answer("Where is Paris located?", ["doc-1"])
    print(result.answer)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from docugraphrag.config import Settings, get_settings
from docugraphrag.engine.entity_extractor import CandidateNameExtractor
from docugraphrag.engine.formatter import format_context
from docugraphrag.engine.merger import SIGNAL_ORDER, RetrievalWeights, merge_signals
from docugraphrag.engine.searchers import SignalSearcher, build_searchers
from docugraphrag.errors import InvalidInputError
from docugraphrag.llm.client import LLMResponse, generate_answer, stream_answer
from docugraphrag.models import EvidenceItem, Signal

if TYPE_CHECKING:
    from docugraphrag.embeddings.embedder import EmbeddingProvider
    from docugraphrag.graph.store import GraphStore

NO_ANSWER_MESSAGE = (
    "I couldn't find any relevant information in the selected documents "
    "to answer your question."
)

# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based ONLY on the "
    "provided context. Use both the content and the structured information "
    "about entities and relationships to provide accurate answers.\n\n"
    "Rules:\n"
    "1. Be factual: cite the entities and relationships from the context.\n"
    "2. If the context does not contain enough information to answer "
    "confidently, say so explicitly.\n"
    "3. Prefer higher-scored context sections when they disagree.\n"
)

USER_TEMPLATE = (
    "Context:\n{context}\n\n"
    "Question: {question}\n\n"
    "Provide a clear and concise answer based on the above context."
)


class QueryStatus(str, Enum):
    """Outcome of retrieval."""

    OK = "ok"
    NO_EVIDENCE = "no_evidence"


# ---------------------------------------------------------------------------
# Result data classes
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """Output of the query engine, ready for LLM consumption."""

    question: str
    """Original user question."""

    document_ids: list[str] = field(default_factory=list)
    """Document scope the question was asked against."""

    status: QueryStatus = QueryStatus.NO_EVIDENCE
    """Whether any evidence was found."""

    evidence: list[EvidenceItem] = field(default_factory=list)
    """Ranked, de-duplicated evidence."""

    signal_counts: dict[str, int] = field(default_factory=dict)
    """Number of items each signal returned before fusion."""

    context: str = ""
    """Formatted context block."""

    system_prompt: str = ""
    """System prompt for the LLM."""

    user_prompt: str = ""
    """User prompt (context + question) for the LLM."""

    answer: str = ""
    """Generated answer (empty until :meth:`QueryEngine.answer`)."""

    llm: LLMResponse | None = None
    """Raw LLM response, when one was requested."""

    @property
    def prompt(self) -> str:
        """Full prompt as a single string (system + user)."""
        return f"{self.system_prompt}\n\n{self.user_prompt}"

    @property
    def has_context(self) -> bool:
        """True if any evidence was retrieved."""
        return self.status is QueryStatus.OK

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a dictionary (for API responses)."""
        return {
            "question": self.question,
            "document_ids": list(self.document_ids),
            "status": self.status.value,
            "answer": self.answer,
            "evidence": [item.to_dict() for item in self.evidence],
            "signal_counts": dict(self.signal_counts),
            "llm_provider": self.llm.provider if self.llm else None,
            "llm_model": self.llm.model if self.llm else None,
            "llm_error": self.llm.error if self.llm else None,
        }


@dataclass
class StreamEvent:
    """One event of a streamed answer.

    ``delta`` carries a piece of answer text, ``done`` marks the end of a
    successful answer, ``error`` ends the stream with a failure message.
    """

    kind: str
    content: str = ""
    result: QueryResult | None = None


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------


def _build_user_prompt(question: str, context: str) -> str:
    return USER_TEMPLATE.format(context=context, question=question)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class QueryEngine:
    """Fan-out / fan-in retrieval over the signal searchers."""

    def __init__(
        self,
        searchers: Mapping[Signal, SignalSearcher],
        *,
        weights: RetrievalWeights | None = None,
        top_k: int | None = None,
        result_count: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.searchers = dict(searchers)
        self.weights = weights or RetrievalWeights.from_settings(settings)
        self.top_k = top_k if top_k is not None else settings.search_top_k
        self.result_count = result_count if result_count is not None else settings.result_count

    @classmethod
    def from_store(
        cls,
        store: GraphStore,
        *,
        embedder: EmbeddingProvider | None = None,
        graph_search: bool = True,
        settings: Settings | None = None,
    ) -> QueryEngine:
        """Build an engine with the default searchers for *store*."""
        settings = settings or get_settings()
        searchers = build_searchers(
            store,
            embedder=embedder,
            name_extractor=CandidateNameExtractor(store) if graph_search else None,
            settings=settings,
        )
        return cls(searchers, settings=settings)

    async def retrieve(
        self,
        question: str,
        document_ids: Iterable[str],
        *,
        signals: Iterable[Signal] | None = None,
        top_k: int | None = None,
    ) -> QueryResult:
        """Retrieve, fuse and format evidence for *question*.

        Args:
            question: Natural-language user question.
            document_ids: Documents the answer may draw on.
            signals: Restrict retrieval to these signals (default: all enabled).
            top_k: Results requested from each searcher.

        Returns:
            QueryResult with ranked evidence and assembled prompt; status
            ``NO_EVIDENCE`` when nothing relevant was found.

        Raises:
            InvalidInputError: if the question is empty.
        """
        if not isinstance(question, str) or not question.strip():
            raise InvalidInputError("Question must not be empty")

        question = question.strip()
        scope = {d for d in document_ids if d}
        result = QueryResult(question=question, document_ids=sorted(scope))
        if not scope:
            logger.info("Empty document scope; nothing to search")
            return result

        wanted = set(signals) if signals is not None else set(SIGNAL_ORDER)
        active = [s for s in SIGNAL_ORDER if s in wanted and s in self.searchers]
        k = top_k if top_k is not None else self.top_k

        logger.info(
            "Processing query: '{}' over {} documents, signals={}",
            question[:100],
            len(scope),
            [s.value for s in active],
        )

        per_signal = await asyncio.gather(
            *(self.searchers[s].search(question, scope, k) for s in active)
        )
        results = dict(zip(active, per_signal))
        result.signal_counts = {s.value: len(items) for s, items in results.items()}

        result.evidence = merge_signals(results, self.weights, self.result_count)
        if not result.evidence:
            logger.info("No evidence found (signal counts: {})", result.signal_counts)
            return result

        result.status = QueryStatus.OK
        result.context = format_context(result.evidence)
        result.system_prompt = SYSTEM_PROMPT
        result.user_prompt = _build_user_prompt(question, result.context)

        logger.info(
            "Query result: {} evidence items, context: {} chars, signal counts: {}",
            len(result.evidence),
            len(result.context),
            result.signal_counts,
        )
        return result

    async def answer(
        self,
        question: str,
        document_ids: Iterable[str],
        *,
        signals: Iterable[Signal] | None = None,
        top_k: int | None = None,
    ) -> QueryResult:
        """Retrieve evidence and generate an answer with the configured LLM."""
        result = await self.retrieve(question, document_ids, signals=signals, top_k=top_k)
        if result.status is QueryStatus.NO_EVIDENCE:
            result.answer = NO_ANSWER_MESSAGE
            return result

        response = await asyncio.to_thread(
            generate_answer, result.system_prompt, result.user_prompt
        )
        result.llm = response
        if response.ok:
            result.answer = response.text
        else:
            logger.error("Answer generation failed: {}", response.error)
            result.answer = NO_ANSWER_MESSAGE
        return result

    async def answer_stream(
        self,
        question: str,
        document_ids: Iterable[str],
        *,
        signals: Iterable[Signal] | None = None,
        top_k: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Retrieve evidence, then stream the answer as :class:`StreamEvent` objects.

        The stream always ends with exactly one ``done`` or ``error`` event.
        """
        result = await self.retrieve(question, document_ids, signals=signals, top_k=top_k)
        if result.status is QueryStatus.NO_EVIDENCE:
            result.answer = NO_ANSWER_MESSAGE
            yield StreamEvent(kind="delta", content=NO_ANSWER_MESSAGE)
            yield StreamEvent(kind="done", result=result)
            return

        deltas = stream_answer(result.system_prompt, result.user_prompt)
        parts: list[str] = []
        end = object()
        while True:
            try:
                delta = await asyncio.to_thread(next, deltas, end)
            except Exception as exc:
                logger.error("Answer streaming failed: {}", exc)
                result.answer = NO_ANSWER_MESSAGE
                yield StreamEvent(kind="error", content=str(exc), result=result)
                return
            if delta is end:
                break
            parts.append(delta)
            yield StreamEvent(kind="delta", content=delta)

        result.answer = "".join(parts)
        yield StreamEvent(kind="done", result=result)
