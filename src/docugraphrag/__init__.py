"""DocuGraphRAG: document question answering over a knowledge graph."""

__version__ = "0.1.0"
