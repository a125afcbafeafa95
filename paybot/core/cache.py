from __future__ import annotations

import logging
from typing import Any

import orjson
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


class RedisCache:
    """JSON values in Redis under a key prefix.

    Cache trouble never reaches the caller: reads degrade to a miss and writes
    are dropped with a warning, so a Redis outage only costs the worker its
    persisted cursor.
    """

    def __init__(self, redis_url: str, prefix: str = "paybot") -> None:
        self.redis = Redis.from_url(redis_url, decode_responses=False)
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    @staticmethod
    def _warn(op: str, key: str, exc: Exception) -> None:
        logger.warning(f"cache_{op}_error", extra={"event": f"cache_{op}_error", "error": f"{key}: {exc}"})

    async def close(self) -> None:
        await self.redis.aclose()

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.redis.get(self._key(key))
        except Exception as exc:  # noqa: BLE001
            self._warn("get", key, exc)
            return None
        if not raw:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            self._warn("decode", key, exc)
            return None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self.redis.set(self._key(key), orjson.dumps(value), ex=ttl or None)
        except Exception as exc:  # noqa: BLE001
            self._warn("set", key, exc)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self.redis.delete(*(self._key(k) for k in keys)))
        except Exception as exc:  # noqa: BLE001
            self._warn("delete", ",".join(keys), exc)
            return 0
