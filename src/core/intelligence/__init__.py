# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Intelligence module for AI-powered operations.

LiteLLM is the single interface for generation, transcription and
embeddings, so any provider it supports (OpenAI, Anthropic, Google,
Ollama) can back the tutor.

Example:
    >>> from src.core.intelligence import EmbeddingService, LLMClient
    >>> embedder = EmbeddingService()
    >>> client = LLMClient(model="gpt-4o")
"""

from src.core.intelligence.embeddings import EmbeddingError, EmbeddingService
from src.core.intelligence.llm import LLMClient, LLMError

__all__ = [
    # Embeddings
    "EmbeddingService",
    "EmbeddingError",
    # LLM
    "LLMClient",
    "LLMError",
]
