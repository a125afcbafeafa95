from __future__ import annotations

import logging
from typing import Any

from paybot.bot.templates import AGENT_HELP, BALANCE_UNAVAILABLE
from paybot.core.http import ResilientHTTPClient

logger = logging.getLogger(__name__)

ALL_BALANCES_ACTION = "HEDERA_ALL_BALANCES"


class AgentClient:
    """Conversational execution agent reached over HTTP.

    The agent answers with a list of fragments `{text?, action?, data?}`.
    Malformed answers, and all-balances answers to instructions that never asked
    for a balance, are replaced with a single help fragment.
    """

    def __init__(self, http: ResilientHTTPClient, base_url: str, agent_name: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.agent_name = agent_name

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.agent_name}/message"

    async def execute(self, instruction: str, user_id: str, user_handle: str) -> list[dict[str, Any]]:
        is_balance = "balance" in instruction.lower()
        data = await self.http.post_json(
            self.endpoint,
            {"text": instruction, "userId": user_id, "userName": user_handle},
        )
        if not isinstance(data, list):
            logger.warning("agent_invalid_response", extra={"event": "agent_invalid_response", "handle": user_handle})
            return [{"text": BALANCE_UNAVAILABLE if is_balance else AGENT_HELP}]

        fragments = [item for item in data if isinstance(item, dict)]
        if not is_balance and any(item.get("action") == ALL_BALANCES_ACTION for item in fragments):
            logger.warning(
                "agent_unexpected_balances",
                extra={"event": "agent_unexpected_balances", "handle": user_handle},
            )
            return [{"text": AGENT_HELP}]
        return fragments
