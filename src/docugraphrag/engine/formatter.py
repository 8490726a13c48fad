"""Render ranked evidence as a plain-text context block for the LLM.

Each item becomes one section, in rank order:

    ### Context 1 (Score: 0.470)
    Content: Paris is the capital of France.

    Entities:
    - LOCATION: Paris

    Relationships:
    - Paris LOCATED_IN France

    ---
"""

from __future__ import annotations

from collections.abc import Sequence

from docugraphrag.models import EvidenceItem

SEPARATOR = "---"


def format_item(item: EvidenceItem, rank: int) -> str:
    """Format one evidence item; empty entity/relationship sections are left out."""
    lines = [
        f"### Context {rank} (Score: {item.score:.3f})",
        f"Content: {item.content}",
    ]

    if item.entities:
        lines.append("")
        lines.append("Entities:")
        lines.extend(f"- {e.type}: {e.text}" for e in item.entities)

    if item.relationships:
        lines.append("")
        lines.append("Relationships:")
        lines.extend(f"- {r.source} {r.type} {r.target}" for r in item.relationships)

    lines.append("")
    lines.append(SEPARATOR)
    return "\n".join(lines)


def format_context(evidence: Sequence[EvidenceItem]) -> str:
    """Format evidence in the given order. Empty evidence gives an empty string."""
    return "\n\n".join(format_item(item, rank) for rank, item in enumerate(evidence, start=1))
