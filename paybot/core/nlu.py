from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from paybot.core.balance import classify_balance_query
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
    build_params,
)

NATIVE_UNIT = "HBAR"

AMOUNT = r"(\d+(?:\.\d+)?)"
ENTITY_ID = r"(\d+\.\d+\.\d+)"
HANDLE = r"@(\w+)"
# Receiver for the bare-id rules: a ledger id or a handle with or without "@".
RECEIVER = r"(?:account\s+)?@?(\d+\.\d+\.\d+|\w+)"
SEND_VERB = r"\b(?:send|transfer|make\s+a\s+transaction\s+of)"

HANDLE_RE = re.compile(r"@\w+")

SEND_RE = re.compile(rf"\b(?:send|transfer)\s+{AMOUNT}\s+([A-Za-z]+)\s+(?:to\s+)?{HANDLE}", re.IGNORECASE)
SEND_REVERSE_RE = re.compile(rf"\b(?:send|transfer)\s+(?:to\s+)?{HANDLE}\s+{AMOUNT}\s+([A-Za-z]+)\b", re.IGNORECASE)
AIRDROP_RE = re.compile(
    rf"\bairdrop\s+{AMOUNT}\s+(\d+\.\d+\.\d+|[A-Za-z]+)\s+(?:to\s+)?(@\w+(?:[\s,]+(?:and\s+)?@\w+)*)",
    re.IGNORECASE,
)
REGISTER_RE = re.compile(rf"\bregister\s+(?:my\s+)?(?:account\s+)?{ENTITY_ID}\b", re.IGNORECASE)
REGISTER_INTENT_RE = re.compile(
    r"\bregister(?:\s+(?:a\s+)?new\s+account|\s+(?:me|myself)|\s+an?\s+account)?\b",
    re.IGNORECASE,
)
GREETING_RE = re.compile(
    r"^(?:hi|hello|hey|greetings|howdy|sup|yo|gm|what'?s up|good morning|good afternoon|good evening)(?:[\s.,!?]|$)",
    re.IGNORECASE,
)
CREATE_TOKEN_RE = re.compile(
    r"\bcreate\s+(?:a\s+)?token\s+([A-Za-z0-9 ]+?)\s+(?:with\s+)?symbol\s+([A-Za-z]+)\s*,?\s*"
    r"(\d+)\s+decimals?\s*,?\s*(?:and\s+)?(?:(?:starting|initial)\s+)?supply\s+(?:of\s+)?(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
SUPPLY_KEY_RE = re.compile(r"\badd\b[^.;]*?\bsupply\s+key\b", re.IGNORECASE)
ADMIN_KEY_RE = re.compile(r"\badd\b[^.;]*?\badmin\s+key\b", re.IGNORECASE)
METADATA_KEY_RE = re.compile(r"\badd\b[^.;]*?\bmetadata\s+key\b", re.IGNORECASE)
MEMO_RE = re.compile(r"\bset\s+memo\s+(?:to\s+)?['\"]([^'\"]+)['\"]", re.IGNORECASE)
TOKEN_METADATA_RE = re.compile(r"\bset\s+(?:token\s+)?metadata\s+(?:to\s+)?['\"]([^'\"]+)['\"]", re.IGNORECASE)

TOKEN_HOLDERS_RE = re.compile(
    rf"\b(?:show|get|list|display)\s+(?:me\s+)?(?:the\s+)?(?:token\s+)?holders\s+(?:for|of)\s+(?:token\s+)?{ENTITY_ID}"
    r"(?:\s+with\s+(?:minimum\s+)?balance\s+(?:(?:equal|equals)\s+(?:to\s+)?)?(\d+))?",
    re.IGNORECASE,
)
MINT_TOKEN_RE = re.compile(
    rf"\b(?:mint|generate|increase\s+supply\s+of)\s+{AMOUNT}\s+(?:(?:tokens?|of)\s+)?(?:(?:of\s+)?token\s+)?{ENTITY_ID}",
    re.IGNORECASE,
)
MINT_NFT_RE = re.compile(
    rf"\bmint\s+(?:an?\s+)?nft\s+(?:for\s+)?(?:token\s+)?{ENTITY_ID}(?:\s+with\s+metadata\s+['\"]([^'\"]+)['\"])?",
    re.IGNORECASE,
)
REJECT_TOKEN_RE = re.compile(rf"\breject\s+(?:the\s+)?token\s+{ENTITY_ID}", re.IGNORECASE)
ASSOCIATE_TOKEN_RE = re.compile(
    rf"\b(?:associate|connect|link)\s+(?:(?:my\s+)?(?:wallet|account)\s+(?:with|to)\s+)?token\s+{ENTITY_ID}",
    re.IGNORECASE,
)
DISSOCIATE_TOKEN_RE = re.compile(
    rf"\b(?:dissociate|disconnect|unlink)\s+(?:(?:my\s+)?(?:wallet|account)\s+(?:with|from)\s+)?token\s+{ENTITY_ID}",
    re.IGNORECASE,
)
TRANSFER_NATIVE_RE = re.compile(rf"{SEND_VERB}\s+{AMOUNT}\s+hbars?\s+to\s+{RECEIVER}", re.IGNORECASE)
TRANSFER_NATIVE_REVERSE_RE = re.compile(
    rf"{SEND_VERB}\s+(?:to\s+)?{RECEIVER}\s+{AMOUNT}\s+hbars?\b", re.IGNORECASE
)
TRANSFER_TOKEN_RE = re.compile(
    rf"{SEND_VERB}\s+{AMOUNT}\s+(?:(?:of|tokens?)\s+){{0,2}}{ENTITY_ID}\s+to\s+{RECEIVER}", re.IGNORECASE
)
TRANSFER_TOKEN_REVERSE_RE = re.compile(
    rf"{SEND_VERB}\s+(?:to\s+)?{RECEIVER}\s+{AMOUNT}\s+(?:(?:of|tokens?)\s+){{0,2}}{ENTITY_ID}", re.IGNORECASE
)
CLAIM_AIRDROP_RE = re.compile(
    rf"\b(?:claim|accept)\s+(?:the\s+)?airdrop\s+(?:of\s+)?(?:token\s+)?{ENTITY_ID}\s+from\s+(?:account\s+)?{ENTITY_ID}",
    re.IGNORECASE,
)
PENDING_AIRDROPS_RE = re.compile(
    rf"\bshow\s+(?:my\s+)?pending\s+airdrops?(?:\s+for\s+(?:the\s+)?(?:account\s+)?(?:with\s+id\s+)?{ENTITY_ID})?",
    re.IGNORECASE,
)
TOPIC_INFO_RE = re.compile(
    rf"\b(?:show|get|fetch|give\s+me)\s+(?:the\s+)?(?:info|details|information)\s+(?:about|on|for)\s+(?:the\s+)?topic\s+{ENTITY_ID}",
    re.IGNORECASE,
)
TOPIC_SUBMIT_RE = re.compile(
    rf"\b(?:submit|send|post)\s+(?:(?:a\s+)?message\s+)?['\"]([^'\"]+)['\"]\s+to\s+(?:the\s+)?topic\s+{ENTITY_ID}",
    re.IGNORECASE,
)
TOPIC_CREATE_RE = re.compile(r"\bcreate\s+(?:a\s+)?(?:new\s+)?topic\s+with\s+memo\s*:?\s*(.+)$", re.IGNORECASE)
SUBMIT_KEY_CLAUSE_RE = re.compile(
    r"[.,]?\s*(?:please\s+)?(set|do\s+not\s+set|don'?t\s+set)\s+(?:a\s+|the\s+)?submit\s+key[.!]?\s*$",
    re.IGNORECASE,
)
TOPIC_MESSAGES_RE = re.compile(
    rf"\bget\s+(?:the\s+)?messages\s+from\s+(?:the\s+)?topic\s+{ENTITY_ID}"
    r"(?:\s+that\s+were\s+posted(?:\s+after\s+(.+?))?(?:\s+and\s+before\s+(.+?))?)?\s*[!?]?$",
    re.IGNORECASE,
)
TOPIC_DELETE_RE = re.compile(rf"\bdelete\s+(?:the\s+)?topic\s+(?:with\s+id\s+)?{ENTITY_ID}", re.IGNORECASE)

FALLBACK_AMOUNT_RE = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)\b(?!\.\d)")
FALLBACK_UNIT_RE = re.compile(r"\b(HBAR|[A-Z]{3,})\b")
FALLBACK_VERB_RE = re.compile(r"\b(?:send|transfer)\b", re.IGNORECASE)
FALLBACK_UNIT_STOPWORDS = {"SEND", "TRANSFER", "PLEASE", "TO", "THE", "AND", "NOW"}

_QUOTES = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})


@dataclass(frozen=True)
class ParseContext:
    original: str
    text: str
    clean: str
    bot_handle: str


Rule = Callable[[ParseContext], "Command | None"]


def strip_bot_handle(text: str, bot_handle: str) -> str:
    if not bot_handle:
        return text.strip()
    pattern = re.compile(rf"^\s*@{re.escape(bot_handle)}\b[\s,:]*", re.IGNORECASE)
    return pattern.sub("", text, count=1).strip()


def strip_handles(text: str) -> str:
    return " ".join(HANDLE_RE.sub("", text).split())


def build_context(text: str, bot_handle: str) -> ParseContext:
    original = text or ""
    normalized = original.translate(_QUOTES)
    without_bot = strip_bot_handle(normalized, bot_handle)
    return ParseContext(
        original=original,
        text=without_bot,
        clean=strip_handles(without_bot),
        bot_handle=bot_handle.lstrip("@"),
    )


def _transfer(ctx: ParseContext, amount: str, unit: str, receiver: str) -> Transfer:
    unit = unit.upper() if unit.isalpha() else unit
    return Transfer(
        amount=amount,
        unit=unit,
        receiver_handle=receiver.lstrip("@"),
        native=unit == NATIVE_UNIT,
        original_text=ctx.original,
    )


def rule_transfer(ctx: ParseContext) -> Command | None:
    m = SEND_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(1), m.group(2), m.group(3))
    m = SEND_REVERSE_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(2), m.group(3), m.group(1))
    return None


def rule_airdrop(ctx: ParseContext) -> Command | None:
    m = AIRDROP_RE.search(ctx.text)
    if not m:
        return None
    receivers = [h.lstrip("@") for h in HANDLE_RE.findall(m.group(3))]
    unit = m.group(2).upper() if m.group(2).isalpha() else m.group(2)
    return TokenOp(
        kind=TokenOpKind.AIRDROP,
        token_id=unit,
        params=build_params(amount=m.group(1), receivers=",".join(receivers)),
        original_text=ctx.original,
    )


def rule_register(ctx: ParseContext) -> Command | None:
    m = REGISTER_RE.search(ctx.text)
    if m:
        return Register(account_id=m.group(1), original_text=ctx.original)
    return None


def rule_register_intent(ctx: ParseContext) -> Command | None:
    if REGISTER_INTENT_RE.search(ctx.text):
        return RegisterIntent(original_text=ctx.original)
    return None


def rule_greeting(ctx: ParseContext) -> Command | None:
    if GREETING_RE.search(ctx.clean):
        return Greeting(text=ctx.clean, original_text=ctx.original)
    return None


def rule_create_token(ctx: ParseContext) -> Command | None:
    m = CREATE_TOKEN_RE.search(ctx.text)
    if not m:
        return None
    memo = MEMO_RE.search(ctx.text)
    metadata = TOKEN_METADATA_RE.search(ctx.text)
    return TokenOp(
        kind=TokenOpKind.CREATE,
        params=build_params(
            name=m.group(1).strip(),
            symbol=m.group(2).strip(),
            decimals=m.group(3),
            initial_supply=m.group(4),
            supply_key=bool(SUPPLY_KEY_RE.search(ctx.text)),
            admin_key=bool(ADMIN_KEY_RE.search(ctx.text)),
            metadata_key=bool(METADATA_KEY_RE.search(ctx.text)),
            memo=memo.group(1) if memo else None,
            metadata=metadata.group(1) if metadata else None,
        ),
        original_text=ctx.original,
    )


def rule_balance(ctx: ParseContext) -> Command | None:
    result = classify_balance_query(ctx.clean)
    if not result.is_balance_query:
        return None
    return BalanceQuery(scope=result.scope, token_id=result.token_id, original_text=ctx.original)


def rule_token_holders(ctx: ParseContext) -> Command | None:
    m = TOKEN_HOLDERS_RE.search(ctx.text)
    if not m:
        return None
    return TokenOp(
        kind=TokenOpKind.HOLDERS,
        token_id=m.group(1),
        params=build_params(threshold=m.group(2)),
        original_text=ctx.original,
    )


def rule_mint_token(ctx: ParseContext) -> Command | None:
    m = MINT_TOKEN_RE.search(ctx.text)
    if not m:
        return None
    return TokenOp(
        kind=TokenOpKind.MINT,
        token_id=m.group(2),
        params=build_params(amount=m.group(1)),
        original_text=ctx.original,
    )


def rule_mint_nft(ctx: ParseContext) -> Command | None:
    m = MINT_NFT_RE.search(ctx.text)
    if not m:
        return None
    return TokenOp(
        kind=TokenOpKind.MINT_NFT,
        token_id=m.group(1),
        params=build_params(metadata=m.group(2)),
        original_text=ctx.original,
    )


def _single_token_rule(pattern: re.Pattern[str], kind: TokenOpKind) -> Rule:
    def rule(ctx: ParseContext) -> Command | None:
        m = pattern.search(ctx.text)
        if not m:
            return None
        return TokenOp(kind=kind, token_id=m.group(1), original_text=ctx.original)

    rule.__name__ = f"rule_{kind.value}"
    return rule


def rule_transfer_native(ctx: ParseContext) -> Command | None:
    m = TRANSFER_NATIVE_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(1), NATIVE_UNIT, m.group(2))
    m = TRANSFER_NATIVE_REVERSE_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(2), NATIVE_UNIT, m.group(1))
    return None


def rule_transfer_token(ctx: ParseContext) -> Command | None:
    m = TRANSFER_TOKEN_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(1), m.group(2), m.group(3))
    m = TRANSFER_TOKEN_REVERSE_RE.search(ctx.text)
    if m:
        return _transfer(ctx, m.group(2), m.group(3), m.group(1))
    return None


def rule_claim_airdrop(ctx: ParseContext) -> Command | None:
    m = CLAIM_AIRDROP_RE.search(ctx.text)
    if not m:
        return None
    return TokenOp(
        kind=TokenOpKind.CLAIM,
        token_id=m.group(1),
        params=build_params(sender=m.group(2)),
        original_text=ctx.original,
    )


def rule_pending_airdrops(ctx: ParseContext) -> Command | None:
    m = PENDING_AIRDROPS_RE.search(ctx.text)
    if not m:
        return None
    return TokenOp(
        kind=TokenOpKind.PENDING,
        params=build_params(account_id=m.group(1)),
        original_text=ctx.original,
    )


def rule_topic_info(ctx: ParseContext) -> Command | None:
    m = TOPIC_INFO_RE.search(ctx.text)
    if not m:
        return None
    return TopicOp(kind=TopicOpKind.INFO, topic_id=m.group(1), original_text=ctx.original)


def rule_topic_submit(ctx: ParseContext) -> Command | None:
    m = TOPIC_SUBMIT_RE.search(ctx.text)
    if not m:
        return None
    return TopicOp(kind=TopicOpKind.SUBMIT, topic_id=m.group(2), message=m.group(1), original_text=ctx.original)


def rule_topic_create(ctx: ParseContext) -> Command | None:
    m = TOPIC_CREATE_RE.search(ctx.text)
    if not m:
        return None
    rest = m.group(1)
    submit_key = False
    clause = SUBMIT_KEY_CLAUSE_RE.search(rest)
    if clause:
        submit_key = clause.group(1).lower() == "set"
        rest = rest[: clause.start()]
    memo = rest.strip().strip("'\"").strip().rstrip(".").strip()
    if not memo:
        return None
    return TopicOp(
        kind=TopicOpKind.CREATE,
        memo=memo,
        params=build_params(submit_key=submit_key),
        original_text=ctx.original,
    )


def rule_topic_messages(ctx: ParseContext) -> Command | None:
    m = TOPIC_MESSAGES_RE.search(ctx.text)
    if not m:
        return None
    after = m.group(2).strip() if m.group(2) else None
    before = m.group(3).strip() if m.group(3) else None
    return TopicOp(
        kind=TopicOpKind.MESSAGES,
        topic_id=m.group(1),
        params=build_params(after=after, before=before),
        original_text=ctx.original,
    )


def rule_topic_delete(ctx: ParseContext) -> Command | None:
    m = TOPIC_DELETE_RE.search(ctx.text)
    if not m:
        return None
    return TopicOp(kind=TopicOpKind.DELETE, topic_id=m.group(1), original_text=ctx.original)


def rule_loose_transfer(ctx: ParseContext) -> Command | None:
    """Last resort: a send verb, a receiver handle, an amount and a symbol in any order."""
    if not FALLBACK_VERB_RE.search(ctx.text):
        return None
    handles = [h[1:] for h in HANDLE_RE.findall(ctx.text) if h[1:].lower() != ctx.bot_handle.lower()]
    amount = FALLBACK_AMOUNT_RE.search(HANDLE_RE.sub(" ", ctx.text))
    unit = next(
        (u.group(1) for u in FALLBACK_UNIT_RE.finditer(ctx.text) if u.group(1) not in FALLBACK_UNIT_STOPWORDS),
        None,
    )
    if not handles or not amount or not unit:
        return None
    return _transfer(ctx, amount.group(1), unit, handles[0])


RULES: list[tuple[str, Rule]] = [
    ("transfer", rule_transfer),
    ("airdrop", rule_airdrop),
    ("register", rule_register),
    ("register_intent", rule_register_intent),
    ("greeting", rule_greeting),
    ("create_token", rule_create_token),
    ("balance", rule_balance),
    ("token_holders", rule_token_holders),
    ("mint_token", rule_mint_token),
    ("mint_nft", rule_mint_nft),
    ("reject_token", _single_token_rule(REJECT_TOKEN_RE, TokenOpKind.REJECT)),
    ("associate_token", _single_token_rule(ASSOCIATE_TOKEN_RE, TokenOpKind.ASSOCIATE)),
    ("dissociate_token", _single_token_rule(DISSOCIATE_TOKEN_RE, TokenOpKind.DISSOCIATE)),
    ("transfer_native", rule_transfer_native),
    ("transfer_token", rule_transfer_token),
    ("claim_airdrop", rule_claim_airdrop),
    ("pending_airdrops", rule_pending_airdrops),
    ("topic_info", rule_topic_info),
    ("topic_submit", rule_topic_submit),
    ("topic_create", rule_topic_create),
    ("topic_messages", rule_topic_messages),
    ("topic_delete", rule_topic_delete),
    ("loose_transfer", rule_loose_transfer),
]


def parse_message(text: str, bot_handle: str = "") -> Command:
    ctx = build_context(text, bot_handle)
    for _, rule in RULES:
        command = rule(ctx)
        if command is not None:
            return command
    return Unknown(raw_text=ctx.clean, original_text=ctx.original)


class IntentParser:
    def __init__(self, bot_handle: str) -> None:
        self.bot_handle = bot_handle.lstrip("@")

    def parse(self, text: str) -> Command:
        return parse_message(text, self.bot_handle)
