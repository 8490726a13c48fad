"""LLM integration: Gemini API and Ollama fallback."""

from docugraphrag.llm.client import LLMResponse, generate_answer, stream_answer

__all__ = ["LLMResponse", "generate_answer", "stream_answer"]
