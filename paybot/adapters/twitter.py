from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any

import tweepy

from paybot.core.errors import FetchError, UpstreamError

logger = logging.getLogger(__name__)

TWEET_FIELDS = ["created_at", "conversation_id", "referenced_tweets", "author_id"]


def build_client(
    bearer_token: str,
    api_key: str,
    api_secret: str,
    access_token: str,
    access_secret: str,
) -> tweepy.Client:
    return tweepy.Client(
        bearer_token=bearer_token or None,
        consumer_key=api_key or None,
        consumer_secret=api_secret or None,
        access_token=access_token or None,
        access_token_secret=access_secret or None,
    )


def _replied_to(tweet: Any) -> str | None:
    for ref in getattr(tweet, "referenced_tweets", None) or []:
        if getattr(ref, "type", None) == "replied_to":
            return str(ref.id)
    return None


def tweet_to_raw(tweet: Any, usernames: dict[str, str]) -> dict[str, Any]:
    author_id = str(getattr(tweet, "author_id", "") or "")
    return {
        "id": str(tweet.id),
        "text": getattr(tweet, "text", "") or "",
        "author_id": author_id or None,
        "username": usernames.get(author_id, ""),
        "created_at": getattr(tweet, "created_at", None),
        "conversation_id": str(getattr(tweet, "conversation_id", "") or "") or None,
        "in_reply_to_id": _replied_to(tweet),
    }


class TwitterMentionSource:
    """Mention source over the v2 API. tweepy is synchronous, so calls run in the default executor."""

    def __init__(self, client: tweepy.Client, batch_size: int = 30) -> None:
        self.client = client
        self.batch_size = min(max(batch_size, 5), 100)
        self._user_id: str | None = None

    async def _call(self, fn, /, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, **kwargs))

    async def user_id(self) -> str:
        if self._user_id is None:
            resp = await self._call(self.client.get_me, user_fields=["id"])
            if not resp.data:
                raise UpstreamError("get_me returned no user")
            self._user_id = str(resp.data.id)
        return self._user_id

    async def fetch_recent_mentions(self, since_id: str | None = None) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "max_results": self.batch_size,
            "tweet_fields": TWEET_FIELDS,
            "expansions": ["author_id"],
            "user_fields": ["username"],
        }
        if since_id:
            kwargs["since_id"] = since_id
        try:
            kwargs["id"] = await self.user_id()
            resp = await self._call(self.client.get_users_mentions, **kwargs)
        except Exception as exc:  # noqa: BLE001
            raise FetchError(f"mention fetch failed: {exc}") from exc

        includes = getattr(resp, "includes", None) or {}
        usernames = {str(u.id): u.username for u in includes.get("users", [])}
        out = [tweet_to_raw(t, usernames) for t in (resp.data or [])]
        logger.info("mentions_fetched", extra={"event": "mentions_fetched", "count": len(out)})
        return out

    async def fetch_replied_ids(self) -> list[str]:
        resp = await self._call(
            self.client.get_users_tweets,
            id=await self.user_id(),
            max_results=100,
            tweet_fields=["referenced_tweets"],
        )
        return [rid for rid in (_replied_to(t) for t in (resp.data or [])) if rid]

    async def reply_to(self, mention_id: str, text: str) -> None:
        try:
            await self._call(self.client.create_tweet, text=text, in_reply_to_tweet_id=mention_id)
        except tweepy.TweepyException as exc:
            raise UpstreamError(f"reply to {mention_id} failed: {exc}") from exc
        logger.info("reply_sent", extra={"event": "reply_sent", "mention_id": mention_id})
