from __future__ import annotations

import pytest

from paybot.core.config import Settings
from paybot.db.session import migration_url, normalize_database_url, split_asyncpg_query


def test_bot_handle_loses_at_sign(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BOT_HANDLE", " @PayBot ")
    monkeypatch.setenv("REPLY_CHAR_LIMIT", "140")
    settings = Settings(_env_file=None)
    assert settings.bot_handle == "PayBot"
    assert settings.reply_char_limit == 140


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@db/paybot", "postgresql+asyncpg://u:p@db/paybot"),
        ("postgresql://u:p@db/paybot", "postgresql+asyncpg://u:p@db/paybot"),
        ("sqlite+aiosqlite:///paybot.db", "sqlite+aiosqlite:///paybot.db"),
    ],
)
def test_normalize_database_url(raw: str, expected: str) -> None:
    assert normalize_database_url(raw) == expected


def test_sslmode_becomes_connect_arg() -> None:
    url, connect_args = split_asyncpg_query(
        "postgresql+asyncpg://u:p@db/paybot?sslmode=require&channel_binding=require&application_name=bot"
    )
    assert url == "postgresql+asyncpg://u:p@db/paybot?application_name=bot"
    assert connect_args == {"ssl": "require"}

    _, plain = split_asyncpg_query("postgresql+asyncpg://u:p@db/paybot?sslmode=disable")
    assert plain == {}


def test_migration_url_strips_libpq_options() -> None:
    assert migration_url("postgres://u:p@db/paybot?sslmode=require") == "postgresql+asyncpg://u:p@db/paybot"
