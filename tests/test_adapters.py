from __future__ import annotations

import json
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest

from paybot.adapters.agent import AgentClient
from paybot.adapters.provisioning import AccountProvisioner
from paybot.adapters.twitter import TwitterMentionSource, tweet_to_raw
from paybot.bot.templates import AGENT_HELP, BALANCE_UNAVAILABLE, REGISTER_FAILED
from paybot.core.errors import UpstreamError
from paybot.core.http import ResilientHTTPClient


class ScriptedTransport:
    def __init__(self, responses: list[httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[min(len(self.requests), len(self.responses)) - 1]


def _client(script: ScriptedTransport, **kwargs) -> ResilientHTTPClient:
    return ResilientHTTPClient(backoff_base=0, transport=httpx.MockTransport(script), **kwargs)


class DummyUsers:
    def __init__(self, accounts: dict[str, str] | None = None) -> None:
        self.accounts = dict(accounts or {})
        self.linked: list[tuple[str, str, str | None]] = []

    async def get_registered_account_id(self, handle: str) -> str | None:
        return self.accounts.get(handle)

    async def link_account(self, handle: str, account_id: str, external_id: str | None = None) -> None:
        self.linked.append((handle, account_id, external_id))
        self.accounts[handle] = account_id


@pytest.mark.asyncio
async def test_get_is_retried_on_transient_status() -> None:
    script = ScriptedTransport([httpx.Response(503), httpx.Response(200, json={"ok": True})])
    http = _client(script)
    try:
        assert await http.get_json("https://ledger.test/status") == {"ok": True}
    finally:
        await http.close()
    assert len(script.requests) == 2


@pytest.mark.asyncio
async def test_post_is_sent_once() -> None:
    script = ScriptedTransport([httpx.Response(503), httpx.Response(200, json=[])])
    http = _client(script)
    try:
        with pytest.raises(UpstreamError):
            await http.post_json("https://agent.test/x/message", {"text": "hi"})
    finally:
        await http.close()
    assert len(script.requests) == 1


@pytest.mark.asyncio
async def test_circuit_opens_after_repeated_failures() -> None:
    script = ScriptedTransport([httpx.Response(500)])
    http = _client(script, breaker_threshold=1)
    try:
        with pytest.raises(UpstreamError):
            await http.post_json("https://agent.test/x/message", {})
        with pytest.raises(UpstreamError, match="Circuit open"):
            await http.post_json("https://agent.test/x/message", {})
    finally:
        await http.close()
    assert len(script.requests) == 1


@pytest.mark.asyncio
async def test_agent_posts_instruction_and_returns_fragments() -> None:
    script = ScriptedTransport([httpx.Response(200, json=[{"text": "Sent."}, "noise"])])
    http = _client(script)
    agent = AgentClient(http, "https://agent.test/", "HederaBot")
    try:
        fragments = await agent.execute("Transfer 5 HBAR to account 0.0.9", "42", "dave")
    finally:
        await http.close()

    assert fragments == [{"text": "Sent."}]
    request = script.requests[0]
    assert str(request.url) == "https://agent.test/HederaBot/message"
    assert json.loads(request.content) == {"text": "Transfer 5 HBAR to account 0.0.9", "userId": "42", "userName": "dave"}


@pytest.mark.asyncio
async def test_agent_replaces_unrequested_balance_dump() -> None:
    script = ScriptedTransport([httpx.Response(200, json=[{"action": "HEDERA_ALL_BALANCES", "text": "0.0.1: 5"}])])
    http = _client(script)
    agent = AgentClient(http, "https://agent.test", "HederaBot")
    try:
        assert await agent.execute("Reject token 0.0.7", "42", "dave") == [{"text": AGENT_HELP}]
        assert await agent.execute("Show me all my token balances", "42", "dave") == [
            {"action": "HEDERA_ALL_BALANCES", "text": "0.0.1: 5"}
        ]
    finally:
        await http.close()


@pytest.mark.asyncio
async def test_agent_malformed_answer() -> None:
    script = ScriptedTransport([httpx.Response(200, json={"unexpected": True})])
    http = _client(script)
    agent = AgentClient(http, "https://agent.test", "HederaBot")
    try:
        assert await agent.execute("What's my HBAR balance?", "42", "dave") == [{"text": BALANCE_UNAVAILABLE}]
        assert await agent.execute("Reject token 0.0.7", "42", "dave") == [{"text": AGENT_HELP}]
    finally:
        await http.close()


@pytest.mark.asyncio
async def test_provisioner_creates_and_links_account() -> None:
    script = ScriptedTransport([httpx.Response(200, json={"accountId": "0.0.4242"})])
    http = _client(script)
    users = DummyUsers()
    provisioner = AccountProvisioner(http, users, "https://provision.test/accounts", "testnet")
    try:
        result = await provisioner.create_account_for("@carol", "99", 1)
    finally:
        await http.close()

    assert result.success is True
    assert result.account_id == "0.0.4242"
    assert "https://hashscan.io/testnet/account/0.0.4242" in result.message
    assert users.linked == [("carol", "0.0.4242", "99")]
    assert json.loads(script.requests[0].content) == {"initialBalance": 1, "network": "testnet"}


@pytest.mark.asyncio
async def test_provisioner_refuses_existing_account() -> None:
    script = ScriptedTransport([httpx.Response(200, json={"accountId": "0.0.1"})])
    http = _client(script)
    provisioner = AccountProvisioner(http, DummyUsers({"carol": "0.0.77"}), "https://provision.test/accounts")
    try:
        result = await provisioner.create_account_for("carol", None, 1)
    finally:
        await http.close()

    assert result.success is False
    assert result.account_id == "0.0.77"
    assert script.requests == []


@pytest.mark.asyncio
async def test_provisioner_rejects_bad_account_id() -> None:
    script = ScriptedTransport([httpx.Response(200, json={"accountId": "not-an-id"})])
    http = _client(script)
    users = DummyUsers()
    provisioner = AccountProvisioner(http, users, "https://provision.test/accounts")
    try:
        result = await provisioner.create_account_for("carol", None, 1)
    finally:
        await http.close()

    assert result.success is False
    assert result.message == REGISTER_FAILED
    assert users.linked == []


def test_tweet_to_raw_maps_v2_fields() -> None:
    created = datetime(2025, 1, 1, tzinfo=timezone.utc)
    tweet = SimpleNamespace(
        id=123,
        text="@Bot balance",
        author_id=7,
        created_at=created,
        conversation_id=120,
        referenced_tweets=[SimpleNamespace(type="replied_to", id=120)],
    )
    raw = tweet_to_raw(tweet, {"7": "dave"})
    assert raw == {
        "id": "123",
        "text": "@Bot balance",
        "author_id": "7",
        "username": "dave",
        "created_at": created,
        "conversation_id": "120",
        "in_reply_to_id": "120",
    }


def test_batch_size_is_clamped() -> None:
    assert TwitterMentionSource(object(), batch_size=1).batch_size == 5
    assert TwitterMentionSource(object(), batch_size=500).batch_size == 100
