# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Vector storage infrastructure using Qdrant.

Holds the curated source documents searched by investigations.

Example:
    from src.infrastructure.vectors import init_qdrant, get_qdrant, close_qdrant

    await init_qdrant(settings)
    results = await get_qdrant().search("hippocampus_documents", vector, limit=8)
    await close_qdrant()
"""

from src.infrastructure.vectors.qdrant_client import (
    QdrantVectorClient,
    SearchResult,
    VectorStoreError,
    close_qdrant,
    get_qdrant,
    init_qdrant,
)

__all__ = [
    "QdrantVectorClient",
    "SearchResult",
    "VectorStoreError",
    "close_qdrant",
    "get_qdrant",
    "init_qdrant",
]
