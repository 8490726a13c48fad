"""Typed builder for per-chunk graph mutations.

Extraction output is untrusted model text. It never reaches the database as
query text: only structured ``{entities, relationships}`` data is accepted,
each item is checked against a fixed schema, and what survives is bound as
query parameters by :mod:`docugraphrag.graph.store`.

Allowed node labels and relationship labels are fixed. The semantic type of
an entity or relationship (``PERSON``, ``LOCATED_IN``, ...) is an open
vocabulary, but it must be a plain upper-case tag and is stored as a
property, never as a label.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from docugraphrag.errors import GraphMutationError
from docugraphrag.models import Entity, ExtractionResult, Relationship

NODE_LABELS: frozenset[str] = frozenset({"Document", "DocumentChunk", "Entity"})
RELATIONSHIP_LABELS: frozenset[str] = frozenset(
    {"HAS_CHUNK", "HAS_ENTITY", "CONTAINS_ENTITY", "RELATES_TO"}
)

MAX_ENTITY_TEXT_LENGTH = 500
MAX_PROPERTY_VALUE_LENGTH = 1000
MAX_PROPERTIES = 20

_TAG_RE = re.compile(r"^[A-Z][A-Z0-9_]{0,49}$")
_PROPERTY_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


def normalize_tag(raw: Any) -> str:
    """Normalise a type tag: upper-case, spaces and dashes to underscores.

    Raises:
        GraphMutationError: if the result is not a plain tag.
    """
    if not isinstance(raw, str):
        raise GraphMutationError(f"Type tag must be a string, got {type(raw).__name__}")
    tag = re.sub(r"[\s\-]+", "_", raw.strip()).upper()
    if not _TAG_RE.match(tag):
        raise GraphMutationError(f"Invalid type tag: {raw!r}")
    return tag


def _validate_text(raw: Any) -> str:
    if not isinstance(raw, str):
        raise GraphMutationError(f"Entity text must be a string, got {type(raw).__name__}")
    text = " ".join(raw.split())
    if not text:
        raise GraphMutationError("Entity text is empty")
    if len(text) > MAX_ENTITY_TEXT_LENGTH:
        raise GraphMutationError(f"Entity text longer than {MAX_ENTITY_TEXT_LENGTH} chars")
    return text


def _validate_properties(raw: Any) -> dict[str, str]:
    """Keep flat primitive properties only, coerced to strings."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise GraphMutationError("Entity properties must be a mapping")

    props: dict[str, str] = {}
    for key, value in raw.items():
        if len(props) >= MAX_PROPERTIES:
            break
        if not isinstance(key, str) or not _PROPERTY_KEY_RE.match(key):
            logger.debug("Dropping property with invalid key {!r}", key)
            continue
        if isinstance(value, bool):
            props[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            props[key] = str(value)[:MAX_PROPERTY_VALUE_LENGTH]
        else:
            logger.debug("Dropping non-primitive property {!r}", key)
    return props


def _validate_confidence(raw: Any) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise GraphMutationError(f"Confidence must be a number, got {raw!r}")
    value = float(raw)
    if not 0.0 <= value <= 1.0:
        raise GraphMutationError(f"Confidence {value} outside [0, 1]")
    return value


@dataclass
class GraphMutation:
    """Validated entities and relationships for one chunk."""

    entities: list[Entity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    rejected: int = 0
    """Number of extracted items dropped during validation."""

    @property
    def has_entities(self) -> bool:
        return bool(self.entities)

    @classmethod
    def from_extraction(cls, extraction: ExtractionResult | None) -> GraphMutation:
        """Validate an extraction result, dropping items that do not fit the schema.

        Entities are de-duplicated by ``(text, type)``. A relationship is kept
        only if both endpoints are entities of this mutation.
        """
        mutation = cls()
        if extraction is None:
            return mutation

        by_key: dict[tuple[str, str], Entity] = {}
        by_text: dict[str, list[str]] = {}

        for raw in extraction.entities:
            try:
                entity = Entity(
                    text=_validate_text(raw.text),
                    type=normalize_tag(raw.type),
                    properties=_validate_properties(raw.properties),
                )
            except GraphMutationError as exc:
                logger.warning("Rejected entity {!r}: {}", getattr(raw, "text", raw), exc)
                mutation.rejected += 1
                continue

            existing = by_key.get(entity.key)
            if existing is None:
                by_key[entity.key] = entity
                by_text.setdefault(entity.text, []).append(entity.type)
            else:
                for k, v in entity.properties.items():
                    existing.properties.setdefault(k, v)

        mutation.entities = list(by_key.values())

        seen_rels: set[tuple[str, str, str, str, str]] = set()
        for raw in extraction.relationships:
            try:
                rel = cls._validate_relationship(raw, by_key, by_text)
            except GraphMutationError as exc:
                logger.warning("Rejected relationship {!r}: {}", raw, exc)
                mutation.rejected += 1
                continue
            if rel.key in seen_rels:
                continue
            seen_rels.add(rel.key)
            mutation.relationships.append(rel)

        return mutation

    @staticmethod
    def _validate_relationship(
        raw: Relationship,
        by_key: dict[tuple[str, str], Entity],
        by_text: dict[str, list[str]],
    ) -> Relationship:
        source = _validate_text(raw.source)
        target = _validate_text(raw.target)
        source_type = _resolve_endpoint_type(source, raw.source_type, by_key, by_text)
        target_type = _resolve_endpoint_type(target, raw.target_type, by_key, by_text)
        return Relationship(
            source=source,
            source_type=source_type,
            target=target,
            target_type=target_type,
            type=normalize_tag(raw.type),
            confidence=_validate_confidence(raw.confidence),
        )

    def entity_parameters(self) -> list[dict[str, Any]]:
        """Entities as query parameters; properties are stored as a JSON string."""
        return [
            {
                "text": e.text,
                "type": e.type,
                "properties": json.dumps(e.properties, sort_keys=True),
            }
            for e in self.entities
        ]

    def relationship_parameters(self) -> list[dict[str, Any]]:
        """Relationships as query parameters."""
        return [
            {
                "source": r.source,
                "source_type": r.source_type,
                "target": r.target,
                "target_type": r.target_type,
                "type": r.type,
                "confidence": r.confidence,
            }
            for r in self.relationships
        ]


def _resolve_endpoint_type(
    text: str,
    raw_type: str | None,
    by_key: dict[tuple[str, str], Entity],
    by_text: dict[str, list[str]],
) -> str:
    """Find the entity a relationship endpoint refers to.

    With a type the ``(text, type)`` pair must exist. Without one the text
    must name exactly one entity.
    """
    if raw_type:
        entity_type = normalize_tag(raw_type)
        if (text, entity_type) not in by_key:
            raise GraphMutationError(f"Unknown endpoint ({text!r}, {entity_type})")
        return entity_type

    types = by_text.get(text, [])
    if len(types) != 1:
        raise GraphMutationError(f"Cannot resolve endpoint {text!r} without a type")
    return types[0]
