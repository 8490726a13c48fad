"""Entity and relationship extraction from chunk text.

The default extractor asks the configured LLM for a JSON object of
entities and relationships and validates the reply with pydantic. Any
failure (provider down, non-JSON reply, wrong shape) is an
:class:`ExtractionSoftError`: ingestion logs it and stores the chunk
without entities.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docugraphrag.errors import ExtractionSoftError
from docugraphrag.llm.client import generate_answer
from docugraphrag.models import Entity, ExtractionResult, Relationship


@runtime_checkable
class EntityExtractor(Protocol):
    """Anything that turns chunk text into entities and relationships."""

    def extract(self, text: str, focus: str | None = None) -> ExtractionResult: ...


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

EXTRACTION_SYSTEM_PROMPT = """You are an expert at extracting entities and relationships from text.
Your task is to analyze the given text and extract relevant entities and their relationships based on the analysis focus.

Return ONLY a valid JSON object in this format:
{
    "entities": [
        {
            "text": "exact text from document",
            "type": "PERSON|ORGANIZATION|LOCATION|DATE|etc",
            "properties": {"key1": "value1", "key2": "value2"}
        }
    ],
    "relationships": [
        {
            "from": "exact text of source entity",
            "fromType": "type of source entity",
            "to": "exact text of target entity",
            "toType": "type of target entity",
            "type": "WORKS_FOR|LOCATED_IN|MANAGES|etc",
            "confidence": 0.9
        }
    ]
}

IMPORTANT:
1. Extract ONLY entities and relationships that are RELEVANT to the analysis focus
2. Use the EXACT text from the document for entity names
3. Choose appropriate entity types based on the context
4. Create meaningful relationships between entities
5. All property values must be primitive types (string, number, boolean)
6. Do not use nested objects in properties
7. Ensure relationship endpoints reference existing entities
8. Do not include duplicate entities (same text and type)"""

EXTRACTION_USER_TEMPLATE = (
    "Given this text and analysis focus, extract entities and relationships:\n\n"
    "Text: {text}\n\n"
    "Analysis focus: {focus}"
)

DEFAULT_FOCUS = "General knowledge: people, organizations, locations, dates and how they relate."

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Reply schema
# ---------------------------------------------------------------------------


class EntityPayload(BaseModel):
    """One entity as returned by the model."""

    text: str
    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


class RelationshipPayload(BaseModel):
    """One relationship as returned by the model."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from")
    source_type: str | None = Field(default=None, alias="fromType")
    target: str = Field(alias="to")
    target_type: str | None = Field(default=None, alias="toType")
    type: str
    confidence: float | None = None


class ExtractionPayload(BaseModel):
    """Top-level reply object."""

    entities: list[EntityPayload] = Field(default_factory=list)
    relationships: list[RelationshipPayload] = Field(default_factory=list)


def _strip_fences(reply: str) -> str:
    return _FENCE_RE.sub("", reply.strip()).strip()


def parse_extraction(reply: str) -> ExtractionResult:
    """Parse and validate a model reply into an :class:`ExtractionResult`.

    Raises:
        ExtractionSoftError: if the reply is not a JSON object of the
            expected shape.
    """
    try:
        data = json.loads(_strip_fences(reply))
    except json.JSONDecodeError as exc:
        raise ExtractionSoftError(f"Reply is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ExtractionSoftError(f"Reply is a {type(data).__name__}, expected an object")

    try:
        payload = ExtractionPayload.model_validate(data)
    except ValidationError as exc:
        raise ExtractionSoftError(f"Reply has the wrong shape: {exc.error_count()} errors") from exc

    return ExtractionResult(
        entities=[
            Entity(text=e.text, type=e.type, properties=dict(e.properties))
            for e in payload.entities
        ],
        relationships=[
            Relationship(
                source=r.source,
                source_type=r.source_type or "",
                target=r.target,
                target_type=r.target_type or "",
                type=r.type,
                confidence=r.confidence,
            )
            for r in payload.relationships
        ],
    )


class LLMEntityExtractor:
    """Default :class:`EntityExtractor` backed by :func:`generate_answer`."""

    def __init__(self, provider: str | None = None, model: str | None = None) -> None:
        self.provider = provider
        self.model = model

    def extract(self, text: str, focus: str | None = None) -> ExtractionResult:
        """Extract entities and relationships from *text*.

        Raises:
            ExtractionSoftError: on any provider or parsing failure.
        """
        response = generate_answer(
            EXTRACTION_SYSTEM_PROMPT,
            EXTRACTION_USER_TEMPLATE.format(text=text, focus=focus or DEFAULT_FOCUS),
            provider=self.provider,
            model=self.model,
        )
        if not response.ok:
            raise ExtractionSoftError(f"Extraction model failed: {response.error}")

        result = parse_extraction(response.text)
        logger.debug(
            "Extracted {} entities, {} relationships",
            len(result.entities),
            len(result.relationships),
        )
        return result
