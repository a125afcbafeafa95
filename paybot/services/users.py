from __future__ import annotations

import logging

from sqlalchemy import func, select

from paybot.db.models import User

logger = logging.getLogger(__name__)


def _norm(handle: str) -> str:
    return (handle or "").strip().lstrip("@").lower()


class UserService:
    """Handle → ledger account registry backed by the `users` table."""

    def __init__(self, db_factory, network: str = "testnet") -> None:
        self.db_factory = db_factory
        self.network = network

    async def _find(self, session, handle: str) -> User | None:
        q = await session.execute(select(User).where(func.lower(User.handle) == _norm(handle)))
        return q.scalar_one_or_none()

    async def get_registered_account_id(self, handle: str) -> str | None:
        if not _norm(handle):
            return None
        async with self.db_factory() as session:
            user = await self._find(session, handle)
            return user.account_id if user else None

    async def is_registered(self, handle: str) -> bool:
        return bool(await self.get_registered_account_id(handle))

    async def link_account(self, handle: str, account_id: str, external_id: str | None = None) -> User:
        async with self.db_factory() as session:
            user = await self._find(session, handle)
            if user is None:
                user = User(handle=_norm(handle), network=self.network)
                session.add(user)
            user.account_id = account_id
            if external_id:
                user.external_id = external_id
            await session.commit()
            await session.refresh(user)
        logger.info(
            "account_linked",
            extra={"event": "account_linked", "handle": _norm(handle)},
        )
        return user
