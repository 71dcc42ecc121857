"""
RoomMatch Redis cache.

Namespaced keys: roommatch:{namespace}:{key}
All values serialised as JSON.

Only the stateless /embed endpoint is cached. Match results are computed per
query and never cached. An empty REDIS_URL disables caching entirely.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import ConnectionPool, Redis

from roommatch.core.config import settings

logger = logging.getLogger(__name__)

# ── Single connection pool shared across the whole app ────────────────────────
_pool: Optional[ConnectionPool] = None


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
        )
    return _pool


def get_redis() -> Redis:
    return Redis(connection_pool=_get_pool())


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


# ── Generic async cache class ─────────────────────────────────────────────────

class RedisCache:
    """
    Async TTL cache backed by Redis.
    Every failure degrades to a miss; the cache never breaks a request.
    """

    def __init__(self, namespace: str, default_ttl_seconds: int = 300):
        self.ns  = namespace
        self.ttl = default_ttl_seconds

    @property
    def enabled(self) -> bool:
        return bool(settings.REDIS_URL)

    def _key(self, key: str) -> str:
        return f"roommatch:{self.ns}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = await get_redis().get(self._key(key))
        except Exception as exc:
            logger.warning("[%s] get failed — %s", self.ns, exc)
            return None
        if raw is None:
            logger.debug("[%s] MISS %s", self.ns, key[:30])
            return None
        logger.debug("[%s] HIT  %s", self.ns, key[:30])
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("[%s] dropping undecodable entry %s", self.ns, key[:30])
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl
        try:
            await get_redis().setex(self._key(key), ttl, json.dumps(value))
            logger.debug("[%s] SET  %s (ttl=%ds)", self.ns, key[:30], ttl)
        except Exception as exc:
            logger.warning("[%s] set failed — %s", self.ns, exc)

    async def clear(self) -> int:
        if not self.enabled:
            return 0
        try:
            r    = get_redis()
            keys = [k async for k in r.scan_iter(match=f"roommatch:{self.ns}:*")]
            if keys:
                await r.delete(*keys)
        except Exception as exc:
            logger.warning("[%s] clear failed — %s", self.ns, exc)
            return 0
        logger.info("[%s] Cleared %d keys", self.ns, len(keys))
        return len(keys)


# ── Shared instances ──────────────────────────────────────────────────────────

embed_vector_cache = RedisCache("embed_vectors", default_ttl_seconds=settings.EMBED_CACHE_TTL_SECONDS)
