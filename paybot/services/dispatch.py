from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx

from paybot.bot.templates import (
    ASK_RECEIVER,
    NEW_ACCOUNT_NOTICE,
    RECEIVER_PROVISION_FAILED,
    REGISTER_FAILED,
    REGISTER_FIRST,
    greeting_text,
)
from paybot.core.commands import (
    BalanceQuery,
    BalanceScope,
    Command,
    Greeting,
    Register,
    RegisterIntent,
    TokenOp,
    TokenOpKind,
    TopicOp,
    TopicOpKind,
    Transfer,
    Unknown,
)
from paybot.core.errors import ErrorKind, UpstreamError, ValidationError
from paybot.core.fmt import is_account_id
from paybot.core.outcome import Deferred, Failure, Outcome, Text
from paybot.core.ports import AccountProvisioner, Agent, Registry, TransactionRecorder
from paybot.services.response import (
    classify_error,
    format_agent_fragments,
    fragment_error_detail,
    is_error_fragment,
    translate_fragment,
)

logger = logging.getLogger(__name__)

UNGATED = (Register, RegisterIntent, Greeting)

TX_LABEL_RE = re.compile(r"Transaction ID:\s*([\w.@-]+)", re.IGNORECASE)
TX_HASHSCAN_RE = re.compile(r"hashscan\.io/[^\s]*?/(?:tx|transaction)/([\w.@-]+)", re.IGNORECASE)
TX_BARE_RE = re.compile(r"\b(\d+\.\d+\.\d+@\d+\.\d+)\b")

# Only these command kinds write to the transaction ledger.
RECORDED_TOKEN_KINDS = {
    TokenOpKind.CREATE: "token_create",
    TokenOpKind.AIRDROP: "airdrop",
    TokenOpKind.MINT: "mint",
    TokenOpKind.MINT_NFT: "mint_nft",
}


@dataclass(frozen=True)
class LedgerEntry:
    kind: str
    receiver: str | None = None
    amount: str | None = None
    unit: str | None = None
    memo: str | None = None


def _require(value: str | None, what: str) -> str:
    if not value:
        raise ValidationError(f"missing {what}")
    return value


def transfer_instruction(command: Transfer, receiver_account: str) -> str:
    if command.native:
        return f"Transfer {command.amount} HBAR to account {receiver_account}"
    if is_account_id(command.unit):
        return f"Transfer {command.amount} of {command.unit} to account {receiver_account}"
    return f"Transfer {command.amount} {command.unit} to account {receiver_account}"


def balance_instruction(command: BalanceQuery) -> str:
    if command.scope == BalanceScope.NATIVE:
        return "What's my HBAR balance?"
    if command.scope == BalanceScope.TOKEN and command.token_id:
        return f"What's my balance for token {command.token_id}?"
    return "Show me all my token balances"


def _create_token_instruction(command: TokenOp) -> str:
    name = command.get("name")
    symbol = command.get("symbol")
    if not name:
        raise ValidationError("MISSING_TOKEN_NAME")
    if not symbol:
        raise ValidationError("MISSING_TOKEN_SYMBOL")
    text = (
        f"Create token {name} with symbol {symbol}, {command.get('decimals', '0')} decimal places, "
        f"and starting supply of {command.get('initial_supply', '0')}"
    )
    keys = [label for label in ("supply", "admin", "metadata") if command.flag(f"{label}_key")]
    if keys:
        text += ". Add " + ", ".join(f"{label} key" for label in keys)
    if command.get("memo"):
        text += f". Set memo to '{command.get('memo')}'"
    if command.get("metadata"):
        text += f". Set token metadata to '{command.get('metadata')}'"
    return text


def token_instruction(command: TokenOp) -> str:
    kind = command.kind
    if kind == TokenOpKind.CREATE:
        return _create_token_instruction(command)
    if kind == TokenOpKind.PENDING:
        account = command.get("account_id")
        if account:
            return f"Show pending airdrops for the account with id {account}"
        return "Show your pending airdrops"
    if kind == TokenOpKind.AIRDROP:
        receivers = ", ".join(f"@{r}" for r in command.receivers)
        return f"Airdrop {_require(command.get('amount'), 'amount')} {_require(command.token_id, 'token')} to {receivers}"

    token_id = _require(command.token_id, "token id")
    if kind == TokenOpKind.HOLDERS:
        threshold = command.get("threshold")
        if threshold:
            return f"Show me the token holders for {token_id} with minimum balance equal {threshold}"
        return f"Show me the token holders for {token_id}"
    if kind == TokenOpKind.MINT:
        return f"Mint {_require(command.get('amount'), 'amount')} tokens {token_id}"
    if kind == TokenOpKind.MINT_NFT:
        metadata = command.get("metadata")
        return f"Mint NFT {token_id} with metadata '{metadata}'" if metadata else f"Mint NFT {token_id}"
    if kind == TokenOpKind.REJECT:
        return f"Reject token {token_id}"
    if kind == TokenOpKind.ASSOCIATE:
        return f"Associate my wallet with token {token_id}"
    if kind == TokenOpKind.DISSOCIATE:
        return f"Dissociate my wallet with token {token_id}"
    if kind == TokenOpKind.CLAIM:
        return f"Claim airdrop of token {token_id} from account {_require(command.get('sender'), 'sender account')}"
    raise ValidationError(f"unsupported token operation {kind.value}")


def topic_instruction(command: TopicOp) -> str:
    kind = command.kind
    if kind == TopicOpKind.CREATE:
        text = f"Create topic with memo: {_require(command.memo, 'memo')}"
        if command.get("submit_key") == "true":
            text += ". Please set submit key"
        return text

    topic_id = _require(command.topic_id, "topic id")
    if kind == TopicOpKind.INFO:
        return f"Give me details about topic {topic_id}"
    if kind == TopicOpKind.SUBMIT:
        return f"Submit message '{_require(command.message, 'message')}' to topic {topic_id}"
    if kind == TopicOpKind.MESSAGES:
        text = f"Get messages from topic {topic_id}"
        after = command.get("after")
        before = command.get("before")
        if after:
            text += f" that were posted after {after}"
            if before:
                text += f" and before {before}"
        elif before:
            text += f" that were posted before {before}"
        return text
    if kind == TopicOpKind.DELETE:
        return f"Delete Topic with id {topic_id}"
    raise ValidationError(f"unsupported topic operation {kind.value}")


def extract_transaction_id(fragments: list[dict[str, Any]]) -> str | None:
    """Best-effort transaction id lookup; patterns are tried in priority order across all fragments."""
    for item in fragments:
        data = item.get("data")
        if isinstance(data, dict) and data.get("transactionId"):
            return str(data["transactionId"])
    texts = [item["text"] for item in fragments if isinstance(item.get("text"), str)]
    for pattern in (TX_LABEL_RE, TX_HASHSCAN_RE, TX_BARE_RE):
        for text in texts:
            m = pattern.search(text)
            if m:
                return m.group(1).rstrip(".")
    return None


def failure_from_exception(exc: BaseException) -> Failure:
    if isinstance(exc, (asyncio.TimeoutError, UpstreamError, httpx.HTTPError)):
        return Failure(ErrorKind.SERVICE_UNAVAILABLE, str(exc) or type(exc).__name__)
    if isinstance(exc, ValidationError):
        kind = classify_error(str(exc))
        return Failure(ErrorKind.MISSING_FIELD if kind == ErrorKind.UNKNOWN else kind, str(exc))
    return Failure(classify_error(str(exc)), str(exc))


class DispatchRouter:
    def __init__(
        self,
        *,
        agent: Agent,
        registry: Registry,
        provisioner: AccountProvisioner,
        recorder: TransactionRecorder | None = None,
        timeout: float = 30.0,
        register_funding: float = 10,
        receiver_funding: float = 1,
    ) -> None:
        self.agent = agent
        self.registry = registry
        self.provisioner = provisioner
        self.recorder = recorder
        self.timeout = timeout
        self.register_funding = register_funding
        self.receiver_funding = receiver_funding

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def dispatch(
        self,
        command: Command,
        author_handle: str,
        is_registered: bool,
        author_id: str | None = None,
    ) -> Outcome:
        started = time.perf_counter()
        if not is_registered and not isinstance(command, UNGATED):
            return Text(REGISTER_FIRST)
        try:
            outcome = await self._route(command, author_handle, author_id)
        except Exception as exc:  # noqa: BLE001
            outcome = failure_from_exception(exc)
            logger.warning(
                "dispatch_failed",
                extra={
                    "event": "dispatch_failed",
                    "handle": author_handle,
                    "command": command.name,
                    "kind": outcome.kind.value,
                    "error": str(exc) or type(exc).__name__,
                },
            )
        logger.info(
            "command_dispatched",
            extra={
                "event": "command_dispatched",
                "handle": author_handle,
                "command": command.name,
                "latency_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return outcome

    async def _route(self, command: Command, author_handle: str, author_id: str | None) -> Outcome:
        if isinstance(command, (Register, RegisterIntent)):
            return await self._register(author_handle, author_id)
        if isinstance(command, Greeting):
            return Text(greeting_text(author_handle))
        if isinstance(command, Unknown):
            return Deferred()
        if isinstance(command, Transfer):
            return await self._transfer(command, author_handle, author_id)
        if isinstance(command, BalanceQuery):
            return await self._execute(balance_instruction(command), author_handle, author_id)
        if isinstance(command, TokenOp):
            return await self._token_op(command, author_handle, author_id)
        if isinstance(command, TopicOp):
            return await self._execute(topic_instruction(command), author_handle, author_id)
        return Deferred()

    async def _register(self, author_handle: str, author_id: str | None) -> Outcome:
        result = await self._bounded(
            self.provisioner.create_account_for(author_handle, author_id, self.register_funding)
        )
        return Text(result.message or REGISTER_FAILED)

    async def _transfer(self, command: Transfer, author_handle: str, author_id: str | None) -> Outcome:
        receiver = command.receiver_handle.lstrip("@")
        if not receiver:
            return Text(ASK_RECEIVER)

        notice = ""
        if is_account_id(receiver):
            account = receiver
        else:
            account = await self._bounded(self.registry.get_registered_account_id(receiver))
            if not account:
                result = await self._bounded(
                    self.provisioner.create_account_for(receiver, None, self.receiver_funding)
                )
                if not result.success or not result.account_id:
                    logger.warning(
                        "receiver_provision_failed",
                        extra={"event": "receiver_provision_failed", "handle": receiver},
                    )
                    return Text(RECEIVER_PROVISION_FAILED.format(handle=receiver))
                account = result.account_id
                notice = NEW_ACCOUNT_NOTICE.format(handle=receiver)
                logger.info(
                    "receiver_provisioned",
                    extra={"event": "receiver_provisioned", "handle": receiver},
                )

        outcome = await self._execute(
            transfer_instruction(command, account),
            author_handle,
            author_id,
            LedgerEntry(
                kind="transfer",
                receiver=receiver,
                amount=command.amount,
                unit="HBAR" if command.native else command.unit,
                memo=f"Transfer to @{receiver}",
            ),
        )
        if notice and isinstance(outcome, Text):
            return Text(notice + outcome.text)
        return outcome

    async def _token_op(self, command: TokenOp, author_handle: str, author_id: str | None) -> Outcome:
        if command.kind == TokenOpKind.AIRDROP and not command.receivers:
            return Text(ASK_RECEIVER)
        entry = None
        ledger_kind = RECORDED_TOKEN_KINDS.get(command.kind)
        if ledger_kind:
            entry = LedgerEntry(
                kind=ledger_kind,
                receiver=", ".join(command.receivers) or None,
                amount=command.get("amount") or command.get("initial_supply"),
                unit=command.token_id or command.get("symbol"),
                memo=command.get("memo") or command.get("name"),
            )
        return await self._execute(token_instruction(command), author_handle, author_id, entry)

    async def _execute(
        self,
        instruction: str,
        author_handle: str,
        author_id: str | None,
        entry: LedgerEntry | None = None,
    ) -> Outcome:
        raw = await self._bounded(self.agent.execute(instruction, author_id or author_handle, author_handle))
        fragments = [f for f in (raw or []) if isinstance(f, dict)]

        errors = [f for f in fragments if is_error_fragment(f)]
        visible = [f for f in fragments if translate_fragment(f).strip()]
        if errors and len(errors) == len(visible):
            detail = fragment_error_detail(errors[0])
            return Failure(classify_error(detail), detail)

        if entry is not None and self.recorder is not None:
            tx_id = extract_transaction_id(fragments)
            if tx_id:
                await self._record(author_handle, tx_id, entry)
        return Text(format_agent_fragments(fragments))

    async def _record(self, author_handle: str, tx_id: str, entry: LedgerEntry) -> None:
        try:
            await self._bounded(
                self.recorder.record_transaction(
                    sender=author_handle,
                    receiver=entry.receiver,
                    tx_id=tx_id,
                    kind=entry.kind,
                    amount=entry.amount,
                    unit=entry.unit,
                    memo=entry.memo,
                    status="completed",
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "transaction_record_failed",
                extra={"event": "transaction_record_failed", "handle": author_handle, "error": str(exc)},
            )
