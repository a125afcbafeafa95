from __future__ import annotations

import re

ELLIPSIS = "..."
ACCOUNT_ID_RE = re.compile(r"^\d+\.\d+\.\d+$")


def truncate(text: str, limit: int) -> str:
    """Cut text to `limit` characters, ending in '...' when anything was dropped."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    if limit <= len(ELLIPSIS):
        return text[:limit]
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def address_reply(handle: str, text: str) -> str:
    """Prefix a reply with @handle unless it already addresses that user."""
    handle = (handle or "").lstrip("@")
    if not handle:
        return text
    prefix = f"@{handle}"
    if text.lower().startswith(prefix.lower()):
        return text
    return f"{prefix} {text}"


def is_account_id(value: str | None) -> bool:
    """True for ledger ids like 0.0.12345."""
    return bool(value) and bool(ACCOUNT_ID_RE.match(value))
