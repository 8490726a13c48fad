"""REST API for document ingestion and question answering."""
