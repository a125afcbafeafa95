from __future__ import annotations

from datetime import datetime, timezone

from paybot.core.mention import Mention, sanitize


def _chain(length: int) -> dict:
    root: dict = {"id": "0", "text": "root", "username": "u0"}
    node = root
    for i in range(1, length):
        child = {"id": str(i), "text": f"reply {i}", "username": f"u{i}"}
        node["inReplyToStatus"] = child
        node = child
    return root


def test_none_returns_none() -> None:
    assert sanitize(None) is None
    assert sanitize("not a mention") is None  # type: ignore[arg-type]


def test_self_reference_terminates_as_stub() -> None:
    raw: dict = {"id": "1", "text": "loop", "username": "alice"}
    raw["inReplyToStatus"] = raw
    raw["thread"] = [raw]

    out = sanitize(raw, 3)
    assert out is not None
    assert out.in_reply_to is not None and out.in_reply_to.is_stub
    assert out.thread[0].is_stub
    assert out.nesting_depth() <= 3


def test_id_cycle_through_distinct_objects() -> None:
    raw = {"id": "1", "text": "a", "inReplyToStatus": {"id": "2", "text": "b", "inReplyToStatus": {"id": "1", "text": "a again"}}}
    out = sanitize(raw, 5)
    assert out is not None
    assert out.in_reply_to is not None and not out.in_reply_to.is_stub
    assert out.in_reply_to.in_reply_to is not None and out.in_reply_to.in_reply_to.is_stub


def test_depth_is_bounded() -> None:
    for max_depth in (0, 1, 3, 5):
        out = sanitize(_chain(12), max_depth)
        assert out is not None
        assert out.nesting_depth() <= max_depth


def test_sanitize_is_idempotent() -> None:
    raw: dict = _chain(8)
    raw["quotedStatus"] = raw
    once = sanitize(raw, 3)
    assert sanitize(once, 3) == once


def test_v1_payload_keys() -> None:
    raw = {
        "id_str": "9",
        "full_text": "yo",
        "user": {"screen_name": "bob", "id_str": "77"},
        "created_at": "Wed Oct 10 20:19:24 +0000 2018",
        "in_reply_to_status_id_str": "8",
        "conversation_id_str": "7",
    }
    out = sanitize(raw)
    assert isinstance(out, Mention)
    assert (out.id, out.text, out.author_handle, out.author_id) == ("9", "yo", "bob", "77")
    assert out.in_reply_to_id == "8"
    assert out.conversation_id == "7"
    assert out.created_at == datetime(2018, 10, 10, 20, 19, 24, tzinfo=timezone.utc)


def test_missing_or_invalid_created_at_defaults_to_now() -> None:
    before = datetime.now(timezone.utc)
    missing = sanitize({"id": "1", "text": "x"})
    invalid = sanitize({"id": "2", "text": "x", "created_at": "not a date"})
    assert missing is not None and invalid is not None
    assert missing.created_at >= before
    assert invalid.created_at >= before
