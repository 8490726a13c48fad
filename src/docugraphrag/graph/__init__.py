"""Neo4j knowledge graph: schema, typed mutations, and async store."""

from docugraphrag.graph.mutations import GraphMutation
from docugraphrag.graph.store import ChunkRecord, GraphStore, PathRecord

__all__ = ["ChunkRecord", "GraphMutation", "GraphStore", "PathRecord"]
