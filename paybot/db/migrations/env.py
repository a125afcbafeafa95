"""Alembic environment for the paybot schema (`users`, `ledger_transactions`).

The database URL comes from `DATABASE_URL` via settings unless overridden with
`alembic -x db_url=... upgrade head`.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from paybot.core.config import get_settings
from paybot.db.models import Base
from paybot.db.session import migration_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _resolve_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    return migration_url(override or get_settings().database_url)


config.set_main_option("sqlalchemy.url", _resolve_url())


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    _configure(connection=connection)


async def _run_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True)
else:
    asyncio.run(_run_online())
