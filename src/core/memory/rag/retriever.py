# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document retriever for investigations.

Embeds a question and runs a similarity search over the curated source
document collection in Qdrant. Documents carry a ``source_type`` tag so the
investigation node can rank primary sources above mainstream summaries.

Example:
    retriever = DocumentRetriever(
        qdrant_client=get_qdrant(),
        embedding_service=EmbeddingService(),
        collection="hippocampus_documents",
    )
    documents = await retriever.search("Who profits from standardized testing?")
"""

import logging
from dataclasses import dataclass

from src.core.intelligence.embeddings import EmbeddingError, EmbeddingService
from src.core.memory.stores.base import SourceType
from src.infrastructure.vectors import QdrantVectorClient, VectorStoreError

logger = logging.getLogger(__name__)


@dataclass
class Document:
    """A retrieved source document.

    Attributes:
        id: Point id.
        title: Document title.
        content: Document text.
        source_type: Provenance tag.
        similarity: Cosine similarity to the query.
    """

    id: str
    title: str
    content: str
    source_type: SourceType
    similarity: float


class RetrieverError(Exception):
    """Exception raised for retrieval failures.

    Attributes:
        message: Error description.
        original_error: Original exception if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


def _source_type(value: object) -> SourceType:
    try:
        return SourceType(str(value).upper())
    except ValueError:
        return SourceType.MAINSTREAM


class DocumentRetriever:
    """Similarity search over the source document collection."""

    def __init__(
        self,
        qdrant_client: QdrantVectorClient,
        embedding_service: EmbeddingService,
        collection: str,
    ) -> None:
        self._qdrant = qdrant_client
        self._embedding = embedding_service
        self._collection = collection

    async def search(
        self,
        query: str,
        limit: int = 8,
        min_similarity: float = 0.5,
    ) -> list[Document]:
        """Find documents similar to the query.

        Args:
            query: Question text.
            limit: Maximum number of documents.
            min_similarity: Documents must score strictly above this.

        Returns:
            Documents ordered by similarity, best first.

        Raises:
            RetrieverError: If embedding or search fails.
        """
        try:
            vector = await self._embedding.embed_text(query)
            results = await self._qdrant.search(
                self._collection,
                query_vector=vector,
                limit=limit,
                score_threshold=min_similarity,
            )
        except (EmbeddingError, VectorStoreError) as e:
            raise RetrieverError(f"Document search failed: {e}", e) from e

        documents = [
            Document(
                id=r.id,
                title=str(r.payload.get("title", "")),
                content=str(r.payload.get("content", "")),
                source_type=_source_type(r.payload.get("source_type", "MAINSTREAM")),
                similarity=r.score,
            )
            for r in results
            if r.score > min_similarity
        ]
        logger.debug("Retrieved %d documents for query of length %d", len(documents), len(query))
        return documents
