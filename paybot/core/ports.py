"""Collaborator contracts the pipeline depends on.

Concrete implementations live in `paybot.adapters` and `paybot.services`;
tests substitute plain dummy classes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ProvisionResult:
    success: bool
    message: str
    account_id: str | None = None


class MentionSource(Protocol):
    async def fetch_recent_mentions(self, since_id: str | None = None) -> list[dict[str, Any]]: ...

    async def reply_to(self, mention_id: str, text: str) -> None: ...


class Registry(Protocol):
    async def is_registered(self, handle: str) -> bool: ...

    async def get_registered_account_id(self, handle: str) -> str | None: ...


class AccountProvisioner(Protocol):
    async def create_account_for(
        self, handle: str, external_id: str | None, initial_funding: float
    ) -> ProvisionResult: ...


class Agent(Protocol):
    async def execute(self, instruction: str, user_id: str, user_handle: str) -> list[dict[str, Any]]: ...


class TransactionRecorder(Protocol):
    async def record_transaction(
        self,
        *,
        sender: str,
        receiver: str | None,
        tx_id: str,
        kind: str,
        amount: str | None,
        unit: str | None,
        memo: str | None,
        status: str,
    ) -> None: ...
