"""Document ingestion: splitting, embedding, extraction and persistence."""

from docugraphrag.ingestion.chunker import split_text
from docugraphrag.ingestion.extractor import EntityExtractor, LLMEntityExtractor
from docugraphrag.ingestion.pipeline import IngestionPipeline

__all__ = ["EntityExtractor", "IngestionPipeline", "LLMEntityExtractor", "split_text"]
