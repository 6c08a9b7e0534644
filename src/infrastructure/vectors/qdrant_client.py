# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Qdrant vector database client for document similarity search.

The investigation node searches a single collection of curated source
documents (``QDRANT_DOCUMENTS_COLLECTION``). Each point payload carries
``title``, ``content`` and ``source_type`` (PRIMARY, CURATED, SECONDARY or
MAINSTREAM).

Example:
    from src.infrastructure.vectors import init_qdrant, get_qdrant

    await init_qdrant(settings)
    results = await get_qdrant().search(
        "hippocampus_documents", query_vector=embedding, limit=8, score_threshold=0.5
    )
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import UnexpectedResponse

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Module-level state
_qdrant_client: Optional["QdrantVectorClient"] = None


class VectorStoreError(Exception):
    """Exception raised for vector store failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Qdrant error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


@dataclass
class SearchResult:
    """Result from a vector similarity search.

    Attributes:
        id: Point ID in Qdrant.
        score: Similarity score.
        payload: Associated metadata.
    """

    id: str
    score: float
    payload: dict[str, Any]


class QdrantVectorClient:
    """Async Qdrant client wrapper.

    Example:
        client = QdrantVectorClient(settings)
        await client.connect()
        results = await client.search("hippocampus_documents", vector, limit=8)
        await client.close()
    """

    def __init__(self, settings: "Settings") -> None:
        self._settings = settings
        self._client: Optional[AsyncQdrantClient] = None

    async def connect(self) -> None:
        """Create the Qdrant client connection.

        Raises:
            VectorStoreError: If connection fails.
        """
        qdrant_settings = self._settings.qdrant
        api_key = (
            qdrant_settings.api_key.get_secret_value()
            if qdrant_settings.api_key
            else None
        )

        try:
            self._client = AsyncQdrantClient(
                host=qdrant_settings.host,
                port=qdrant_settings.http_port,
                grpc_port=qdrant_settings.grpc_port,
                api_key=api_key,
                prefer_grpc=qdrant_settings.prefer_grpc,
                timeout=qdrant_settings.timeout,
            )
            await self._client.get_collections()
        except Exception as e:
            raise VectorStoreError("Failed to connect to Qdrant", e) from e

    async def close(self) -> None:
        """Close the Qdrant client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _ensure_connected(self) -> AsyncQdrantClient:
        if self._client is None:
            raise VectorStoreError("Qdrant client not connected. Call connect() first.")
        return self._client

    async def search(
        self,
        collection_name: str,
        query_vector: list[float],
        limit: int = 5,
        score_threshold: Optional[float] = None,
    ) -> list[SearchResult]:
        """Search for similar vectors in a collection.

        Uses the query_points API (qdrant-client >= 1.16).

        Raises:
            VectorStoreError: If search fails.
        """
        client = self._ensure_connected()

        try:
            response = await client.query_points(
                collection_name=collection_name,
                query=query_vector,
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except UnexpectedResponse as e:
            raise VectorStoreError(f"Failed to search in: {collection_name}", e) from e

        return [
            SearchResult(
                id=str(point.id),
                score=point.score,
                payload=point.payload or {},
            )
            for point in response.points
        ]

    async def ping(self) -> bool:
        """Check if Qdrant is reachable."""
        try:
            client = self._ensure_connected()
            await client.get_collections()
            return True
        except Exception:
            return False


# ========== Module-level functions ==========


async def init_qdrant(settings: "Settings") -> None:
    """Initialize the global Qdrant client.

    Raises:
        VectorStoreError: If connection fails.
    """
    global _qdrant_client

    _qdrant_client = QdrantVectorClient(settings)
    await _qdrant_client.connect()


async def close_qdrant() -> None:
    """Close the global Qdrant client."""
    global _qdrant_client

    if _qdrant_client is not None:
        await _qdrant_client.close()
        _qdrant_client = None


def get_qdrant() -> QdrantVectorClient:
    """Get the global Qdrant client.

    Raises:
        VectorStoreError: If Qdrant has not been initialized.
    """
    if _qdrant_client is None:
        raise VectorStoreError("Qdrant not initialized. Call init_qdrant() first.")
    return _qdrant_client
