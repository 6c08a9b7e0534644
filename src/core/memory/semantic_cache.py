# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Semantic cache for near-duplicate prompts.

Before running the pipeline the query is embedded and compared against
cached entries in Redis. A cosine similarity of at least 0.92 returns the
cached response instantly.

Storage layout:
    semcache:{fingerprint}  list of JSON entries, TTL 1 hour, at most 500
    semcache:stats          hash of hits / misses / stores counters

The fingerprint is the sign pattern of the first 8 embedding dimensions,
a coarse locality bucket. Concurrent writes to one bucket are last write
wins. Every failure is logged and treated as a miss; the cache never
breaks a request.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

from src.core.intelligence.embeddings import EmbeddingError, EmbeddingService
from src.infrastructure.cache import RedisClient, RedisError

logger = logging.getLogger(__name__)

CACHE_PREFIX = "semcache:"
STATS_KEY = "semcache:stats"
SIMILARITY_THRESHOLD = 0.92
CACHE_TTL_SECONDS = 3600
MAX_CACHE_ENTRIES = 500
FINGERPRINT_DIMENSIONS = 8


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity, 0 for mismatched lengths or zero vectors."""
    if len(a) != len(b):
        return 0.0
    dot = math.fsum(x * y for x, y in zip(a, b))
    norm = math.sqrt(math.fsum(x * x for x in a)) * math.sqrt(math.fsum(y * y for y in b))
    return dot / norm if norm else 0.0


def embedding_fingerprint(embedding: list[float]) -> str:
    """Bucket key from the signs of the leading dimensions."""
    return "".join("1" if v > 0 else "0" for v in embedding[:FINGERPRINT_DIMENSIONS])


@dataclass
class CacheHit:
    """A cached response close enough to the query."""

    intent: str
    response_text: str | None
    ui_payload: dict[str, Any] | None
    similarity: float


@dataclass
class CacheStats:
    hits: int
    misses: int
    stores: int

    @property
    def hit_rate(self) -> str:
        total = self.hits + self.misses
        return f"{self.hits / total * 100:.1f}%" if total else "0%"


class SemanticCache:
    """Embedding-similarity response cache backed by Redis."""

    def __init__(
        self,
        redis_client: RedisClient,
        embedding_service: EmbeddingService,
        threshold: float = SIMILARITY_THRESHOLD,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        max_entries: int = MAX_CACHE_ENTRIES,
    ) -> None:
        self._redis = redis_client
        self._embedding = embedding_service
        self._threshold = threshold
        self._ttl = ttl_seconds
        self._max_entries = max_entries

    async def _count(self, field: str) -> None:
        try:
            await self._redis.hincrby(STATS_KEY, field, 1)
        except RedisError as e:
            logger.debug("Semantic cache stats update failed: %s", e)

    async def lookup(self, query: str) -> CacheHit | None:
        """Return the most similar cached entry above the threshold, if any."""
        try:
            embedding = await self._embedding.embed_text(query)
            entries = await self._redis.lrange(CACHE_PREFIX + embedding_fingerprint(embedding))
        except (EmbeddingError, RedisError, ValueError) as e:
            logger.warning("Semantic cache lookup failed: %s", e)
            return None

        best: CacheHit | None = None
        for entry in entries:
            if not isinstance(entry, dict) or not isinstance(entry.get("embedding"), list):
                continue
            similarity = cosine_similarity(embedding, entry["embedding"])
            if similarity >= self._threshold and (best is None or similarity > best.similarity):
                best = CacheHit(
                    intent=entry.get("intent") or "CHAT",
                    response_text=entry.get("response_text"),
                    ui_payload=entry.get("ui_payload"),
                    similarity=similarity,
                )

        if best is not None:
            logger.info("Semantic cache hit: similarity=%.4f", best.similarity)
            await self._count("hits")
        else:
            await self._count("misses")
        return best

    async def store(
        self,
        query: str,
        intent: str,
        response_text: str | None,
        ui_payload: dict[str, Any] | None,
    ) -> bool:
        """Cache a response for the query.

        Returns:
            True when stored, False on failure.
        """
        try:
            embedding = await self._embedding.embed_text(query)
            bucket = embedding_fingerprint(embedding)
            key = CACHE_PREFIX + bucket
            await self._redis.rpush(
                key,
                {
                    "embedding": embedding,
                    "ui_payload": ui_payload,
                    "intent": intent,
                    "response_text": response_text,
                    "query": query[:100],
                    "timestamp": int(time.time() * 1000),
                },
            )
            await self._redis.expire(key, self._ttl)
            length = await self._redis.llen(key)
            if length > self._max_entries:
                await self._redis.ltrim(key, length - self._max_entries, -1)
        except (EmbeddingError, RedisError, ValueError) as e:
            logger.warning("Semantic cache store failed: %s", e)
            return False

        logger.info("Semantic cache stored: bucket=%s, intent=%s", bucket, intent)
        await self._count("stores")
        return True

    async def stats(self) -> CacheStats:
        """Hit, miss and store counters."""
        try:
            raw = await self._redis.hgetall(STATS_KEY)
        except RedisError as e:
            logger.warning("Semantic cache stats read failed: %s", e)
            return CacheStats(hits=0, misses=0, stores=0)
        return CacheStats(
            hits=int(raw.get("hits", 0)),
            misses=int(raw.get("misses", 0)),
            stores=int(raw.get("stores", 0)),
        )
