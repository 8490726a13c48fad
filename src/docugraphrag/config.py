"""Centralized configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Neo4j ---
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "docugraphrag"
    neo4j_database: str = "neo4j"

    # --- LLM ---
    llm_provider: str = "gemini"  # "gemini" or "ollama"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3:8b"

    # --- Embeddings ---
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 0  # 0 = take it from the first vector produced

    # --- Ingestion ---
    chunk_size: int = 1000
    chunk_overlap: int = 200
    ingest_concurrency: int = 4
    ingest_max_retries: int = 3
    extraction_enabled: bool = True

    # --- Retrieval ---
    vector_weight: float = 0.4
    lexical_weight: float = 0.3
    graph_weight: float = 0.3
    min_similarity: float = 0.65
    lexical_fallback_score: float = 0.5
    max_hops: int = 3
    search_top_k: int = 5
    result_count: int = 5
    signal_timeout_seconds: float = 10.0

    # --- App ---
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
