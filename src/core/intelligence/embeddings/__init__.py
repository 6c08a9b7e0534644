# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Embedding service module.

Example:
    >>> from src.core.intelligence.embeddings import EmbeddingService
    >>> service = EmbeddingService(model="text-embedding-3-small")
    >>> vector = await service.embed_text("Hello world")
"""

from src.core.intelligence.embeddings.service import EmbeddingError, EmbeddingService

__all__ = ["EmbeddingError", "EmbeddingService"]
