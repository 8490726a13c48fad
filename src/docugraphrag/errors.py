"""Exception taxonomy.

Soft failures (a signal searcher going down, entity extraction returning
garbage) are absorbed where they happen; only invalid input and fatal
ingestion failures reach the caller.
"""

from __future__ import annotations


class DocuGraphError(Exception):
    """Base class for all package errors."""


class InvalidInputError(DocuGraphError, ValueError):
    """A question, scope, or document was rejected before any I/O."""


class IngestionError(DocuGraphError):
    """Base class for ingestion failures."""


class InvalidDocumentError(IngestionError, InvalidInputError):
    """Document text is empty or not decodable as UTF-8."""


class DocumentExistsError(IngestionError, InvalidInputError):
    """A document with the requested id is already stored."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id} already exists")
        self.document_id = document_id


class IngestionFatalError(IngestionError):
    """A mandatory ingestion step failed; the document is in ``error`` state."""

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(f"Ingestion of document {document_id} failed: {message}")
        self.document_id = document_id
        self.message = message


class DocumentNotFoundError(DocuGraphError, LookupError):
    """No document with the requested id exists."""


class SignalUnavailable(DocuGraphError):
    """A retrieval signal could not produce results (query failed or timed out)."""


class ExtractionSoftError(DocuGraphError):
    """Entity/relationship extraction failed or returned malformed data."""


class GraphMutationError(DocuGraphError, ValueError):
    """Extracted data does not fit the allowed graph schema."""


class LLMError(DocuGraphError):
    """No answer-generation provider could produce a response."""
