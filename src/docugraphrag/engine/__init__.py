"""GraphRAG query engine: signal searchers, fusion, context formatting, answering."""

from docugraphrag.engine.formatter import format_context
from docugraphrag.engine.merger import RetrievalWeights, merge, merge_signals
from docugraphrag.engine.query_engine import (
    NO_ANSWER_MESSAGE,
    QueryEngine,
    QueryResult,
    QueryStatus,
    StreamEvent,
)
from docugraphrag.engine.searchers import (
    GraphSearcher,
    LexicalSearcher,
    SignalSearcher,
    VectorSearcher,
    build_searchers,
)

__all__ = [
    "NO_ANSWER_MESSAGE",
    "GraphSearcher",
    "LexicalSearcher",
    "QueryEngine",
    "QueryResult",
    "QueryStatus",
    "RetrievalWeights",
    "SignalSearcher",
    "StreamEvent",
    "VectorSearcher",
    "build_searchers",
    "format_context",
    "merge",
    "merge_signals",
]
