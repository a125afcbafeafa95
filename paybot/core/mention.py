"""Mention model and the reference sanitizer.

Raw mention payloads arrive from the social client as nested mappings in a
handful of shapes (v1 `id_str`/`full_text`, scraper `id`/`username`, ...).
Reply chains, threads and quoted posts can point back at each other, so
`sanitize` flattens them into a bounded, acyclic `Mention` tree.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

DEFAULT_MAX_DEPTH = 3

_TWITTER_TS_FORMAT = "%a %b %d %H:%M:%S %z %Y"


@dataclass(frozen=True)
class Mention:
    id: str
    author_handle: str
    text: str
    created_at: datetime
    author_id: str | None = None
    in_reply_to_id: str | None = None
    conversation_id: str | None = None
    thread: tuple[Mention, ...] = ()
    in_reply_to: Mention | None = None
    quoted: Mention | None = None
    is_stub: bool = False

    def children(self) -> list[Mention]:
        out = list(self.thread)
        if self.in_reply_to is not None:
            out.append(self.in_reply_to)
        if self.quoted is not None:
            out.append(self.quoted)
        return out

    def nesting_depth(self) -> int:
        """Deepest level of nested thread/reply/quote items below this node."""
        kids = self.children()
        if not kids:
            return 0
        return 1 + max(k.nesting_depth() for k in kids)


def parse_created_at(value: Any, now: datetime | None = None) -> datetime:
    """Best-effort timestamp parsing; anything missing or invalid becomes now."""
    fallback = now or datetime.now(timezone.utc)
    if value is None or value == "":
        return fallback
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        raw = value.strip()
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            pass
        try:
            return datetime.strptime(raw, _TWITTER_TS_FORMAT)
        except ValueError:
            return fallback
    return fallback


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _user_field(raw: Mapping[str, Any], key: str) -> Any:
    user = raw.get("user")
    if isinstance(user, Mapping):
        return user.get(key)
    return None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _base_fields(node: Mention | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(node, Mention):
        return {
            "id": node.id,
            "author_handle": node.author_handle,
            "text": node.text,
            "created_at": node.created_at,
            "author_id": node.author_id,
            "in_reply_to_id": node.in_reply_to_id,
            "conversation_id": node.conversation_id,
        }
    return {
        "id": _as_str(_first(node, "id", "id_str")) or "",
        "author_handle": str(
            _first(node, "author_handle", "username") or _user_field(node, "screen_name") or ""
        ).lstrip("@"),
        "text": str(_first(node, "text", "full_text") or ""),
        "created_at": parse_created_at(_first(node, "created_at", "timeParsed", "_parsedCreatedAt")),
        "author_id": _as_str(
            _first(node, "author_id", "userId", "user_id_str") or _user_field(node, "id_str")
        ),
        "in_reply_to_id": _as_str(
            _first(node, "in_reply_to_id", "inReplyToStatusId", "in_reply_to_status_id_str")
        ),
        "conversation_id": _as_str(_first(node, "conversation_id", "conversationId", "conversation_id_str")),
    }


def _nested(node: Mention | Mapping[str, Any]) -> tuple[list[Any], Any, Any]:
    if isinstance(node, Mention):
        return list(node.thread), node.in_reply_to, node.quoted
    thread = node.get("thread")
    if not isinstance(thread, (list, tuple)):
        thread = []
    in_reply_to = _first(node, "in_reply_to", "inReplyToStatus")
    quoted = _first(node, "quoted", "quotedStatus")
    return list(thread), in_reply_to, quoted


def _stub(node: Mention | Mapping[str, Any]) -> Mention:
    fields = _base_fields(node)
    return Mention(
        id=fields["id"],
        author_handle=fields["author_handle"],
        text=fields["text"],
        created_at=fields["created_at"],
        is_stub=True,
    )


def _is_node(value: Any) -> bool:
    return isinstance(value, (Mention, Mapping))


def _walk(
    node: Mention | Mapping[str, Any],
    depth: int,
    max_depth: int,
    ancestor_ids: frozenset[str],
    ancestor_objs: frozenset[int],
) -> Mention:
    fields = _base_fields(node)
    node_id = fields["id"]
    if depth > 0:
        if depth >= max_depth or id(node) in ancestor_objs or (node_id and node_id in ancestor_ids):
            return _stub(node)
        if isinstance(node, Mention) and node.is_stub:
            return node

    ids = ancestor_ids | {node_id} if node_id else ancestor_ids
    objs = ancestor_objs | {id(node)}
    thread, in_reply_to, quoted = _nested(node)
    if depth + 1 > max_depth:
        thread, in_reply_to, quoted = [], None, None

    return Mention(
        **fields,
        thread=tuple(_walk(t, depth + 1, max_depth, ids, objs) for t in thread if _is_node(t)),
        in_reply_to=_walk(in_reply_to, depth + 1, max_depth, ids, objs) if _is_node(in_reply_to) else None,
        quoted=_walk(quoted, depth + 1, max_depth, ids, objs) if _is_node(quoted) else None,
        is_stub=node.is_stub if isinstance(node, Mention) else False,
    )


def sanitize(node: Mention | Mapping[str, Any] | None, max_depth: int = DEFAULT_MAX_DEPTH) -> Mention | None:
    """Flatten a possibly self-referential mention graph.

    Nested items at `max_depth` or pointing back at an ancestor (by id or by
    object identity) collapse to `{id, text, author_handle}` stubs, so the
    result is acyclic and at most `max_depth` levels deep. Sanitizing a
    sanitized value returns an equal value.
    """
    if node is None or not _is_node(node):
        return None
    return _walk(node, 0, max(0, int(max_depth)), frozenset(), frozenset())
