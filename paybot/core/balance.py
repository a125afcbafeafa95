from __future__ import annotations

import re
from dataclasses import dataclass

from paybot.core.commands import BalanceScope

HANDLE_RE = re.compile(r"@\w+")

NATIVE_BALANCE_PATTERNS = [
    re.compile(r"(?:what(?:'?s| is)\s+)?(?:(?:my|the)\s+)?\bhbars?\s+balances?\b"),
    re.compile(r"\b(?:show|check|display|get)\s+(?:me\s+)?(?:my\s+)?hbars?\s+balances?\b"),
    re.compile(r"\bhbars?\b.*\bbalances?\b"),
    re.compile(r"\bbalances?\s+(?:of|in)\s+hbars?\b"),
]

SPECIFIC_TOKEN_RE = re.compile(r"\bbalances?\s+(?:for|of)\s+(?:the\s+)?token\s+(\d+\.\d+\.\d+)\b")

GENERAL_BALANCE_PATTERNS = [
    re.compile(r"\bwhat(?:'?s| is| are)\s+(?:my|the)\s+(?:token\s+)?balances?\b"),
    re.compile(r"\bshow\s+(?:me\s+)?(?:my\s+|the\s+)?(?:token\s+)?balances?\b"),
    re.compile(r"\bcheck\s+(?:my\s+|the\s+)?(?:token\s+)?balances?\b"),
    re.compile(r"\bdisplay\s+(?:my\s+|the\s+)?(?:token\s+)?balances?\b"),
    re.compile(r"\bget\s+(?:my\s+|the\s+)?(?:token\s+)?balances?\b"),
    re.compile(r"^(?:my\s+|token\s+)?balances?[\s?!.]*$"),
    # A bare balance word anywhere, except threshold clauses like "with minimum balance 100".
    re.compile(r"(?<!minimum )(?<!with )\bbalances?\b"),
]


@dataclass(frozen=True)
class BalanceQueryResult:
    is_balance_query: bool
    scope: BalanceScope
    token_id: str | None = None


NOT_A_BALANCE_QUERY = BalanceQueryResult(False, BalanceScope.NONE)


def normalize(text: str) -> str:
    text = (text or "").replace("’", "'")
    return " ".join(HANDLE_RE.sub("", text).split()).lower()


def classify_balance_query(text: str) -> BalanceQueryResult:
    """Recognize balance phrasing: native coin first, then a specific token, then everything."""
    clean = normalize(text)
    if not clean:
        return NOT_A_BALANCE_QUERY

    if any(p.search(clean) for p in NATIVE_BALANCE_PATTERNS):
        return BalanceQueryResult(True, BalanceScope.NATIVE)

    token_match = SPECIFIC_TOKEN_RE.search(clean)
    if token_match:
        return BalanceQueryResult(True, BalanceScope.TOKEN, token_match.group(1))

    if any(p.search(clean) for p in GENERAL_BALANCE_PATTERNS):
        return BalanceQueryResult(True, BalanceScope.ALL)

    return NOT_A_BALANCE_QUERY
