from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from paybot.core.cache import RedisCache

logger = logging.getLogger(__name__)

SINCE_ID_KEY = "mentions:since_id"
REPLIED_KEY = "mentions:replied_ids"


def id_sort_key(mention_id: str) -> tuple[int, int, str]:
    """Numeric ids compare numerically; anything else sorts after them lexically."""
    if mention_id.isdigit():
        return (0, int(mention_id), "")
    return (1, 0, mention_id)


class MentionCursor:
    """Since-id watermark plus a short-lived cache of ids the bot already replied to.

    Both live in Redis when a cache is configured so a restarted worker resumes
    where the previous one stopped.
    """

    def __init__(self, cache: RedisCache | None = None, replied_ttl: int = 300) -> None:
        self.cache = cache
        self.replied_ttl = replied_ttl
        self._since_id: str | None = None
        self._loaded = False
        self._replied: set[str] | None = None
        self._replied_at = 0.0

    @property
    def since_id(self) -> str | None:
        return self._since_id

    async def load(self) -> str | None:
        if not self._loaded:
            self._loaded = True
            if self.cache is not None:
                stored = await self.cache.get_json(SINCE_ID_KEY)
                if stored:
                    self._since_id = str(stored)
        return self._since_id

    async def advance(self, mention_id: str) -> bool:
        if not mention_id:
            return False
        if self._since_id is not None and id_sort_key(mention_id) <= id_sort_key(self._since_id):
            return False
        self._since_id = mention_id
        if self.cache is not None:
            await self.cache.set_json(SINCE_ID_KEY, mention_id)
        return True

    async def replied_ids(self, loader: Callable[[], Awaitable[list[str]]]) -> set[str]:
        if self._replied is not None and time.monotonic() - self._replied_at >= self.replied_ttl:
            self._replied = None
        if self._replied is None and self.cache is not None:
            cached = await self.cache.get_json(REPLIED_KEY)
            if isinstance(cached, list):
                self._replied = {str(x) for x in cached}
                self._replied_at = time.monotonic()
        if self._replied is None:
            try:
                fresh = await loader()
            except Exception as exc:  # noqa: BLE001
                logger.warning("replied_ids_failed", extra={"event": "replied_ids_failed", "error": str(exc)})
                return set()
            self._replied = {str(x) for x in fresh}
            self._replied_at = time.monotonic()
            if self.cache is not None:
                await self.cache.set_json(REPLIED_KEY, sorted(self._replied), ttl=self.replied_ttl)
        return set(self._replied)

    async def invalidate_replied(self) -> None:
        self._replied = None
        if self.cache is not None:
            await self.cache.delete(REPLIED_KEY)
