from __future__ import annotations

import asyncio

import pytest

from paybot.bot.templates import ASK_RECEIVER, REGISTER_FIRST, RECEIVER_PROVISION_FAILED
from paybot.core.commands import (
    BalanceQuery,
    BalanceScope,
    Greeting,
    RegisterIntent,
    TokenOp,
    TokenOpKind,
    TopicOp,
    TopicOpKind,
    Transfer,
    Unknown,
    build_params,
)
from paybot.core.errors import ErrorKind, UpstreamError
from paybot.core.outcome import Deferred, Failure, Text
from paybot.core.ports import ProvisionResult
from paybot.services.dispatch import (
    DispatchRouter,
    extract_transaction_id,
    token_instruction,
    topic_instruction,
)


class DummyAgent:
    def __init__(self, reply=None, exc: Exception | None = None, delay: float = 0.0) -> None:
        self.reply = reply if reply is not None else [{"text": "Done."}]
        self.exc = exc
        self.delay = delay
        self.calls: list[tuple[str, str, str]] = []

    async def execute(self, instruction: str, user_id: str, user_handle: str) -> list[dict]:
        self.calls.append((instruction, user_id, user_handle))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return self.reply


class DummyRegistry:
    def __init__(self, accounts: dict[str, str] | None = None) -> None:
        self.accounts = dict(accounts or {})

    async def is_registered(self, handle: str) -> bool:
        return handle in self.accounts

    async def get_registered_account_id(self, handle: str) -> str | None:
        return self.accounts.get(handle)


class DummyProvisioner:
    def __init__(self, registry: DummyRegistry, succeed: bool = True) -> None:
        self.registry = registry
        self.succeed = succeed
        self.calls: list[tuple[str, str | None, float]] = []

    async def create_account_for(self, handle: str, external_id: str | None, initial_funding: float) -> ProvisionResult:
        self.calls.append((handle, external_id, initial_funding))
        if not self.succeed:
            return ProvisionResult(success=False, message="ledger down")
        account_id = f"0.0.{900 + len(self.calls)}"
        self.registry.accounts[handle] = account_id
        return ProvisionResult(success=True, message=f"Hedera account {account_id} created for @{handle}.", account_id=account_id)


class DummyRecorder:
    def __init__(self) -> None:
        self.rows: list[dict] = []

    async def record_transaction(self, **kwargs) -> None:
        self.rows.append(kwargs)


def _router(agent: DummyAgent | None = None, accounts: dict[str, str] | None = None, succeed: bool = True, timeout: float = 1.0):
    registry = DummyRegistry(accounts)
    provisioner = DummyProvisioner(registry, succeed=succeed)
    recorder = DummyRecorder()
    router = DispatchRouter(
        agent=agent or DummyAgent(),
        registry=registry,
        provisioner=provisioner,
        recorder=recorder,
        timeout=timeout,
    )
    return router, provisioner, recorder


def _transfer(receiver: str = "alice", amount: str = "5") -> Transfer:
    return Transfer(amount=amount, unit="HBAR", receiver_handle=receiver, native=True, original_text="send")


@pytest.mark.asyncio
async def test_unregistered_author_is_gated() -> None:
    agent = DummyAgent()
    router, provisioner, _ = _router(agent)
    for command in (
        _transfer(),
        BalanceQuery(scope=BalanceScope.ALL, original_text="balance"),
        TokenOp(kind=TokenOpKind.REJECT, token_id="0.0.1", original_text="reject"),
        TopicOp(kind=TopicOpKind.DELETE, topic_id="0.0.1", original_text="delete"),
        Unknown(raw_text="??", original_text="??"),
    ):
        out = await router.dispatch(command, "bob", is_registered=False)
        assert out == Text(REGISTER_FIRST)
    assert agent.calls == []
    assert provisioner.calls == []


@pytest.mark.asyncio
async def test_greeting_and_registration_skip_the_gate() -> None:
    router, provisioner, _ = _router()
    hello = await router.dispatch(Greeting(text="hi", original_text="hi"), "bob", is_registered=False)
    assert isinstance(hello, Text) and "@bob" in hello.text

    reg = await router.dispatch(RegisterIntent(original_text="register"), "bob", is_registered=False, author_id="42")
    assert isinstance(reg, Text)
    assert reg.text.startswith("Hedera account 0.0.901 created for @bob")
    assert provisioner.calls == [("bob", "42", 10)]


@pytest.mark.asyncio
async def test_unknown_is_deferred() -> None:
    router, _, _ = _router()
    assert await router.dispatch(Unknown(raw_text="xyzzy", original_text="xyzzy"), "bob", True) == Deferred()


@pytest.mark.asyncio
async def test_transfer_to_registered_receiver_records_transaction() -> None:
    agent = DummyAgent([{"text": "Sent 5 HBAR. Transaction ID: 0.0.1@1700000000.123"}])
    router, provisioner, recorder = _router(agent, accounts={"bob": "0.0.1", "alice": "0.0.100"})
    out = await router.dispatch(_transfer(), "bob", True, author_id="7")

    assert out == Text("Sent 5 HBAR. Transaction ID: 0.0.1@1700000000.123")
    assert agent.calls == [("Transfer 5 HBAR to account 0.0.100", "7", "bob")]
    assert provisioner.calls == []
    assert recorder.rows[0]["tx_id"] == "0.0.1@1700000000.123"
    assert recorder.rows[0]["receiver"] == "alice"
    assert recorder.rows[0]["kind"] == "transfer"


@pytest.mark.asyncio
async def test_transfer_to_unregistered_receiver_provisions_first() -> None:
    agent = DummyAgent([{"text": "Sent 3 HBAR."}])
    router, provisioner, _ = _router(agent, accounts={"bob": "0.0.1"})
    out = await router.dispatch(_transfer("carol", "3"), "bob", True)

    assert provisioner.calls == [("carol", None, 1)]
    assert agent.calls[0][0] == "Transfer 3 HBAR to account 0.0.901"
    assert out == Text("I created a new Hedera account for @carol. Sent 3 HBAR.")


@pytest.mark.asyncio
async def test_receiver_provisioning_failure_stops_transfer() -> None:
    agent = DummyAgent()
    router, _, _ = _router(agent, accounts={"bob": "0.0.1"}, succeed=False)
    out = await router.dispatch(_transfer("carol"), "bob", True)
    assert out == Text(RECEIVER_PROVISION_FAILED.format(handle="carol"))
    assert agent.calls == []


@pytest.mark.asyncio
async def test_missing_receiver_asks_for_one() -> None:
    router, _, _ = _router()
    assert await router.dispatch(_transfer(""), "bob", True) == Text(ASK_RECEIVER)
    airdrop = TokenOp(kind=TokenOpKind.AIRDROP, token_id="0.0.5", params=build_params(amount="1"), original_text="x")
    assert await router.dispatch(airdrop, "bob", True) == Text(ASK_RECEIVER)


@pytest.mark.asyncio
async def test_error_fragments_become_failures() -> None:
    agent = DummyAgent([{"text": "Error: INSUFFICIENT_BALANCE for account 0.0.1"}])
    router, _, recorder = _router(agent, accounts={"alice": "0.0.100"})
    out = await router.dispatch(_transfer(), "bob", True)
    assert isinstance(out, Failure)
    assert out.kind == ErrorKind.INSUFFICIENT_BALANCE
    assert recorder.rows == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("agent", "kind"),
    [
        (DummyAgent(exc=UpstreamError("connection refused")), ErrorKind.SERVICE_UNAVAILABLE),
        (DummyAgent(delay=0.5), ErrorKind.SERVICE_UNAVAILABLE),
        (DummyAgent(exc=RuntimeError("TOKEN_NOT_FOUND")), ErrorKind.TOKEN_NOT_FOUND),
        (DummyAgent(exc=RuntimeError("boom")), ErrorKind.UNKNOWN),
    ],
)
async def test_collaborator_exceptions_become_failures(agent: DummyAgent, kind: ErrorKind) -> None:
    router, _, _ = _router(agent, timeout=0.05)
    out = await router.dispatch(BalanceQuery(scope=BalanceScope.ALL, original_text="balance"), "bob", True)
    assert isinstance(out, Failure)
    assert out.kind == kind


@pytest.mark.asyncio
async def test_balance_instructions() -> None:
    agent = DummyAgent()
    router, _, _ = _router(agent)
    await router.dispatch(BalanceQuery(scope=BalanceScope.NATIVE, original_text="x"), "bob", True)
    await router.dispatch(BalanceQuery(scope=BalanceScope.TOKEN, token_id="0.0.5", original_text="x"), "bob", True)
    await router.dispatch(BalanceQuery(scope=BalanceScope.ALL, original_text="x"), "bob", True)
    assert [c[0] for c in agent.calls] == [
        "What's my HBAR balance?",
        "What's my balance for token 0.0.5?",
        "Show me all my token balances",
    ]


@pytest.mark.asyncio
async def test_create_token_requires_symbol() -> None:
    agent = DummyAgent()
    router, _, _ = _router(agent)
    cmd = TokenOp(kind=TokenOpKind.CREATE, params=build_params(name="Foo"), original_text="create token Foo")
    out = await router.dispatch(cmd, "bob", True)
    assert out == Failure(ErrorKind.MISSING_TOKEN_SYMBOL, "MISSING_TOKEN_SYMBOL")
    assert agent.calls == []


def test_instruction_strings() -> None:
    create = TokenOp(
        kind=TokenOpKind.CREATE,
        params=build_params(name="Foo", symbol="FOO", decimals="2", initial_supply="1000", supply_key=True, memo="hi"),
        original_text="x",
    )
    holders = TokenOp(kind=TokenOpKind.HOLDERS, token_id="0.0.7", params=build_params(threshold="100"), original_text="x")
    messages = TopicOp(kind=TopicOpKind.MESSAGES, topic_id="0.0.9", params=build_params(after="2025-01-01"), original_text="x")
    assert token_instruction(create) == (
        "Create token Foo with symbol FOO, 2 decimal places, and starting supply of 1000. Add supply key. Set memo to 'hi'"
    )
    assert token_instruction(holders) == "Show me the token holders for 0.0.7 with minimum balance equal 100"
    assert topic_instruction(messages) == "Get messages from topic 0.0.9 that were posted after 2025-01-01"


def test_transaction_id_priority() -> None:
    assert extract_transaction_id([{"text": "Transaction ID: 0.0.2@2.2"}, {"data": {"transactionId": "0.0.3@3.3"}}]) == "0.0.3@3.3"
    assert (
        extract_transaction_id([{"text": "see https://hashscan.io/testnet/tx/0.0.9@1.1"}, {"text": "Transaction ID: 0.0.2@2.2."}])
        == "0.0.2@2.2"
    )
    assert extract_transaction_id([{"text": "see https://hashscan.io/testnet/tx/0.0.9@1.1"}]) == "0.0.9@1.1"
    assert extract_transaction_id([{"text": "done 0.0.4@4.4 ok"}]) == "0.0.4@4.4"
    assert extract_transaction_id([{"text": "no id here"}]) is None
