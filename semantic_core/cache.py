"""Query embedding cache using Redis.

Provides:
- get_redis: Cached asyncio Redis client from REDIS_URL with decode_responses.
- QueryEmbeddingCache: get/set/clear of query vectors keyed by model + text hash,
  expiring after settings.EMBEDDING_CACHE_TTL_SECONDS.
"""
import hashlib
import json
from typing import List, Optional

import redis.asyncio as redis

from semantic_core.config import settings

_redis_client: Optional[redis.Redis] = None

KEY_PREFIX = "kb:emb:v1"


def get_redis() -> redis.Redis:
    """Return a cached Redis client configured from settings.REDIS_URL.

    Returns:
        redis.Redis: Client with decode_responses=True.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


class QueryEmbeddingCache:
    """Caches query embeddings; Redis TTLs take care of expiry."""

    def __init__(self, client: Optional[redis.Redis] = None, ttl_seconds: Optional[int] = None):
        self._client = client
        self.ttl_seconds = ttl_seconds or settings.EMBEDDING_CACHE_TTL_SECONDS

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    @staticmethod
    def key_for(text: str, model: str) -> str:
        """Stable cache key for a query under a given model."""
        h = hashlib.sha256(f"{model}|{text.strip()}".encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}:{h}"

    async def get(self, text: str, model: str) -> Optional[List[float]]:
        raw = await self.client.get(self.key_for(text, model))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    async def set(self, text: str, model: str, embedding: List[float], ttl_seconds: Optional[int] = None) -> None:
        await self.client.setex(self.key_for(text, model), ttl_seconds or self.ttl_seconds, json.dumps(embedding))

    async def clear(self) -> int:
        """Delete every cached query embedding. Returns the number of keys removed."""
        removed = 0
        async for key in self.client.scan_iter(match=f"{KEY_PREFIX}:*"):
            removed += await self.client.delete(key)
        return removed
