from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def normalize_database_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://") :]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://") :]
    return url


def split_asyncpg_query(url: str) -> tuple[str, dict]:
    """Drop libpq-only query options and translate sslmode for asyncpg."""
    parsed = urlsplit(url)
    pairs = parse_qsl(parsed.query, keep_blank_values=True)
    filtered: list[tuple[str, str]] = []
    connect_args: dict = {}

    sslmode = None
    for key, value in pairs:
        k = key.lower()
        if k == "sslmode":
            sslmode = (value or "").lower().strip()
            continue
        if k == "channel_binding":
            continue
        filtered.append((key, value))

    if sslmode and sslmode not in {"disable", "allow"}:
        connect_args["ssl"] = "require"

    return urlunsplit(parsed._replace(query=urlencode(filtered))), connect_args


def build_engine(database_url: str) -> AsyncEngine:
    url = normalize_database_url(database_url)
    connect_args: dict = {}
    if url.startswith("postgresql+asyncpg://"):
        url, connect_args = split_asyncpg_query(url)
    return create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


def migration_url(raw_url: str) -> str:
    """Synchronous-config URL for alembic: asyncpg driver, libpq-only options removed."""
    url = normalize_database_url(raw_url)
    if url.startswith("postgresql+asyncpg://"):
        url, _ = split_asyncpg_query(url)
    return url
