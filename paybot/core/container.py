from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from paybot.adapters.agent import AgentClient
from paybot.adapters.provisioning import AccountProvisioner
from paybot.adapters.twitter import TwitterMentionSource, build_client
from paybot.core.cache import RedisCache
from paybot.core.config import Settings
from paybot.core.http import ResilientHTTPClient
from paybot.core.nlu import IntentParser
from paybot.db.session import build_engine, build_session_factory
from paybot.services.cursor import MentionCursor
from paybot.services.dispatch import DispatchRouter
from paybot.services.idempotency import IdempotencyTracker
from paybot.services.pipeline import MentionPipeline
from paybot.services.transactions import TransactionService
from paybot.services.users import UserService


@dataclass
class ServiceHub:
    settings: Settings
    engine: AsyncEngine
    http: ResilientHTTPClient
    cache: RedisCache
    users: UserService
    transactions: TransactionService
    tracker: IdempotencyTracker
    router: DispatchRouter
    pipeline: MentionPipeline

    async def close(self) -> None:
        await self.http.close()
        await self.cache.close()
        await self.engine.dispose()


def build_hub(settings: Settings) -> ServiceHub:
    engine = build_engine(settings.database_url)
    db_factory = build_session_factory(engine)
    http = ResilientHTTPClient(timeout=settings.collaborator_timeout_sec)
    cache = RedisCache(settings.redis_url)

    users = UserService(db_factory, network=settings.ledger_network)
    transactions = TransactionService(db_factory)
    tracker = IdempotencyTracker(
        max_entries=settings.processed_max_entries,
        ttl_seconds=settings.processed_ttl_sec or None,
    )
    router = DispatchRouter(
        agent=AgentClient(http, settings.agent_base_url, settings.agent_name),
        registry=users,
        provisioner=AccountProvisioner(http, users, settings.provisioning_url, settings.ledger_network),
        recorder=transactions,
        timeout=settings.collaborator_timeout_sec,
        register_funding=settings.register_initial_funding,
        receiver_funding=settings.receiver_initial_funding,
    )
    source = TwitterMentionSource(
        build_client(
            settings.twitter_bearer_token,
            settings.twitter_api_key,
            settings.twitter_api_secret,
            settings.twitter_access_token,
            settings.twitter_access_secret,
        ),
        batch_size=settings.fetch_batch_size,
    )
    pipeline = MentionPipeline(
        source=source,
        parser=IntentParser(settings.bot_handle),
        router=router,
        registry=users,
        tracker=tracker,
        bot_handle=settings.bot_handle,
        cursor=MentionCursor(cache, replied_ttl=settings.replied_ids_cache_ttl_sec),
        timeout=settings.collaborator_timeout_sec,
        reply_limit=settings.reply_char_limit,
        max_depth=settings.sanitize_max_depth,
    )
    return ServiceHub(
        settings=settings,
        engine=engine,
        http=http,
        cache=cache,
        users=users,
        transactions=transactions,
        tracker=tracker,
        router=router,
        pipeline=pipeline,
    )
