"""Turn dispatch outcomes and agent fragments into one user-safe reply.

Collaborator error payloads never pass through: anything recognized as an
error is mapped to a fixed sentence from `paybot.bot.templates`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from paybot.bot.templates import (
    EMPTY_RESPONSE,
    ERROR_MESSAGES,
    GENERIC_ERROR,
    unknown_command_text,
)
from paybot.core.errors import ErrorKind
from paybot.core.fmt import truncate
from paybot.core.outcome import Deferred, Failure, Outcome, Text

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 280

# First match wins. Several codes contain others as substrings, so order matters.
ERROR_SIGNATURES: list[tuple[str, ErrorKind]] = [
    ("INVALID_TOPIC_ID", ErrorKind.INVALID_TOPIC_ID),
    ("UNAUTHORIZED", ErrorKind.UNAUTHORIZED),
    ("INSUFFICIENT_BALANCE", ErrorKind.INSUFFICIENT_BALANCE),
    ("INSUFFICIENT_TX_FEE", ErrorKind.INSUFFICIENT_FEE),
    ("INVALID_SIGNATURE", ErrorKind.INVALID_SIGNATURE),
    ("ACCOUNT_NOT_FOUND", ErrorKind.ACCOUNT_NOT_FOUND),
    ("TOKEN_NOT_FOUND", ErrorKind.TOKEN_NOT_FOUND),
    ("TOPIC_NOT_FOUND", ErrorKind.TOPIC_NOT_FOUND),
    ("TOKEN_NOT_ASSOCIATED_TO_ACCOUNT", ErrorKind.TOKEN_NOT_ASSOCIATED),
    ("TOKEN_ALREADY_ASSOCIATED_TO_ACCOUNT", ErrorKind.TOKEN_ALREADY_ASSOCIATED),
    ("INVALID_TOKEN_ID", ErrorKind.INVALID_TOKEN_ID),
    ("INVALID_ACCOUNT_ID", ErrorKind.INVALID_ACCOUNT_ID),
    ("TOKEN_HAS_NO_SUPPLY_KEY", ErrorKind.MISSING_SUPPLY_KEY),
    ("KEY_REQUIRED", ErrorKind.KEY_REQUIRED),
    ("INVALID_SUBMIT_KEY", ErrorKind.MISSING_SUBMIT_KEY),
    ("INSUFFICIENT_TOKEN_BALANCE", ErrorKind.INSUFFICIENT_TOKEN_BALANCE),
    ("INVALID_SOLIDITY_ADDRESS", ErrorKind.INVALID_SOLIDITY_ADDRESS),
    ("MISSING_TOKEN_NAME", ErrorKind.MISSING_TOKEN_NAME),
    ("MISSING_TOKEN_SYMBOL", ErrorKind.MISSING_TOKEN_SYMBOL),
    ("does not have registered", ErrorKind.UNREGISTERED),
]

ERROR_TEXT_MARKERS = (
    "Error:",
    "error:",
    "ERROR:",
    "StatusError",
    "Transaction failed:",
    "failed:",
    "Exception:",
    "Invalid:",
    "Could not",
    "not found",
    "cannot be",
)

OK_STATUSES = {"SUCCESS", "OK"}


def classify_error(detail: str | None) -> ErrorKind:
    text = detail or ""
    for needle, kind in ERROR_SIGNATURES:
        if needle in text:
            return kind
    return ErrorKind.UNKNOWN


def friendly_message(kind: ErrorKind) -> str:
    return ERROR_MESSAGES.get(kind, GENERIC_ERROR)


def _content(item: dict[str, Any]) -> dict[str, Any]:
    content = item.get("content")
    return content if isinstance(content, dict) else {}


def is_error_fragment(item: dict[str, Any]) -> bool:
    text = item.get("text")
    if isinstance(text, str) and any(marker in text for marker in ERROR_TEXT_MARKERS):
        return True
    if _content(item).get("error") or item.get("error"):
        return True
    action = item.get("action")
    if isinstance(action, str) and "FAILED" in action:
        return True
    status = item.get("status")
    return bool(status) and str(status) not in OK_STATUSES


def fragment_error_detail(item: dict[str, Any]) -> str:
    for value in (item.get("text"), _content(item).get("error"), item.get("error"), item.get("status")):
        if value:
            return str(value)
    return str(item.get("content") or "Unknown error")


def translate_fragment(item: dict[str, Any]) -> str:
    if is_error_fragment(item):
        return friendly_message(classify_error(fragment_error_detail(item)))
    text = item.get("text")
    return text if isinstance(text, str) else ""


def format_agent_fragments(fragments: Iterable[dict[str, Any]] | None) -> str:
    """Join agent fragments into one message, translating error fragments one by one."""
    items = [f for f in (fragments or []) if isinstance(f, dict)]
    parts = [translate_fragment(item) for item in items]
    joined = "\n\n".join(p for p in parts if p.strip())
    return joined or EMPTY_RESPONSE


def format_outcome(outcome: Outcome, limit: int = DEFAULT_LIMIT) -> str:
    if isinstance(outcome, Text):
        text = outcome.text if outcome.text and outcome.text.strip() else EMPTY_RESPONSE
    elif isinstance(outcome, Failure):
        kind = outcome.kind
        if kind == ErrorKind.UNKNOWN:
            kind = classify_error(outcome.detail)
        text = friendly_message(kind)
        logger.info(
            "reply_failure",
            extra={"event": "reply_failure", "kind": kind.value},
        )
    elif isinstance(outcome, Deferred):
        text = unknown_command_text(outcome.hint)
    else:
        logger.warning("unknown_outcome", extra={"event": "unknown_outcome", "error": type(outcome).__name__})
        text = GENERIC_ERROR
    return truncate(text, limit)
