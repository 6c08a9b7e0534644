# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Retrieval of source documents for investigations."""

from src.core.memory.rag.retriever import Document, DocumentRetriever, RetrieverError

__all__ = [
    "Document",
    "DocumentRetriever",
    "RetrieverError",
]
