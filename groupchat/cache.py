import json
import logging

import redis.asyncio as redis

from groupchat.config import settings

logger = logging.getLogger(__name__)

# Cached URLs expire this many seconds before their signature does, so a
# cache hit never hands out a link that is about to stop working.
SIGNED_URL_MARGIN_SECONDS = 60


class CacheManager:
    """
    Redis-backed cache for derived values such as signed asset URLs.

    Entities are never cached.  Every method tolerates a missing or
    failing Redis: reads miss and writes are skipped, so callers fall
    back to computing the value.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    async def connect(self) -> None:
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, signed URL cache disabled: %s", exc)

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | None:
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str, value: dict, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.debug("Cache DELETE error for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Signed asset URLs
    # ------------------------------------------------------------------

    @staticmethod
    def signed_url_key(asset_key: str) -> str:
        return f"icons:signed:{asset_key}"

    async def get_signed_url(self, asset_key: str) -> str | None:
        cached = await self.get(self.signed_url_key(asset_key))
        return cached["url"] if cached else None

    async def set_signed_url(self, asset_key: str, url: str, expiry_seconds: int) -> None:
        ttl = expiry_seconds - SIGNED_URL_MARGIN_SECONDS
        if ttl <= 0:
            return
        await self.set(self.signed_url_key(asset_key), {"url": url}, ttl=ttl)

    async def invalidate_signed_url(self, asset_key: str) -> None:
        await self.delete(self.signed_url_key(asset_key))

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
