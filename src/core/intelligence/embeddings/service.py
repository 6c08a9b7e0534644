# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Embedding service for API-based embedding generation.

Embeddings back two features: similarity retrieval for investigations and
the semantic cache that short-circuits near-duplicate prompts.

Ollama embeddings use direct httpx calls against ``/api/embed``; every
other provider goes through LiteLLM's ``aembedding``.

Example:
    >>> from src.core.intelligence.embeddings import EmbeddingService
    >>> service = EmbeddingService(model="text-embedding-3-small")
    >>> vector = await service.embed_text("Who profits from standardized testing?")
"""

import logging
from typing import Any, Optional

import httpx
from litellm import aembedding

from src.core.config.settings import EmbeddingSettings, LLMSettings, get_settings

logger = logging.getLogger(__name__)

# Model dimension mapping for known embedding models
MODEL_DIMENSIONS: dict[str, int] = {
    "ollama/nomic-embed-text": 768,
    "ollama/mxbai-embed-large": 1024,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "gemini/text-embedding-004": 768,
}


class EmbeddingError(Exception):
    """Exception raised when embedding generation fails.

    Attributes:
        message: Error description.
        model: Model that caused the error.
        original_error: Original exception if any.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.model = model
        self.original_error = original_error
        super().__init__(self.message)


class EmbeddingService:
    """Service for generating text embeddings.

    Attributes:
        model: The embedding model identifier in LiteLLM format.
        dimension: The output dimension of the embedding vectors.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        embedding_settings: Optional[EmbeddingSettings] = None,
        llm_settings: Optional[LLMSettings] = None,
    ):
        """Initialize the embedding service.

        Args:
            model: Embedding model in LiteLLM format. Falls back to settings.
            dimension: Vector dimension. Auto-detected from model if not provided.
            embedding_settings: Embedding configuration. Uses get_settings() if None.
            llm_settings: Provider credentials. Uses get_settings() if None.
        """
        if embedding_settings is None or llm_settings is None:
            settings = get_settings()
            embedding_settings = embedding_settings or settings.embedding
            llm_settings = llm_settings or settings.llm

        self._llm_settings = llm_settings
        self._model = model or embedding_settings.model
        self._dimension = dimension or MODEL_DIMENSIONS.get(
            self._model, embedding_settings.dimension
        )

        logger.info(
            "EmbeddingService initialized with model=%s, dimension=%d",
            self._model,
            self._dimension,
        )

    @property
    def model(self) -> str:
        """Get the embedding model identifier."""
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension."""
        return self._dimension

    def _is_ollama(self) -> bool:
        return self._model.startswith("ollama/")

    def _litellm_params(self) -> dict[str, Any]:
        api_key = self._llm_settings.api_key_for(self._model)
        return {"api_key": api_key} if api_key else {}

    async def _ollama_embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings using a direct Ollama API call.

        Raises:
            EmbeddingError: If the API call fails.
        """
        model_name = self._model.removeprefix("ollama/")
        api_base = self._llm_settings.ollama_base_url

        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                response = await client.post(
                    f"{api_base}/api/embed",
                    json={"model": model_name, "input": texts},
                )
                response.raise_for_status()
                return response.json().get("embeddings", [])
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                message=f"Ollama API error: {e.response.status_code} - {e.response.text}",
                model=self._model,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingError(
                message=f"Failed to call Ollama embedding API: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for a single text.

        Args:
            text: Input text to embed.

        Returns:
            Embedding vector as list of floats.

        Raises:
            EmbeddingError: If embedding generation fails.
            ValueError: If text is empty.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        try:
            if self._is_ollama():
                embeddings = await self._ollama_embed([text])
                embedding = embeddings[0] if embeddings else []
            else:
                response = await aembedding(
                    model=self._model,
                    input=[text],
                    **self._litellm_params(),
                )
                embedding = response.data[0]["embedding"]
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(
                "Failed to generate embedding: model=%s, text_length=%d, error=%s",
                self._model,
                len(text),
                str(e),
            )
            raise EmbeddingError(
                message=f"Failed to generate embedding: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

        if not embedding:
            raise EmbeddingError(message="Provider returned an empty embedding", model=self._model)

        logger.debug(
            "Generated embedding for text of length %d, dimension=%d",
            len(text),
            len(embedding),
        )
        return embedding
