# alembic/env.py
from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import pool
from alembic import context
from sqlalchemy.ext.asyncio import async_engine_from_config

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from nettoria.core.config import settings
from nettoria.core.db import Base
import nettoria.models  # noqa: F401  (registers every table on Base.metadata)

target_metadata = Base.metadata

def _run_migrations(connection) -> None:
    """Synchronous block that runs the migrations inside one transaction."""
    # SQLite cannot ALTER most constraints in place
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()

def _sync_url(url: str) -> str:
    # offline mode renders SQL only, so drop the async driver
    return url.replace("+aiosqlite", "").replace("+asyncpg", "").replace("+aiomysql", "+pymysql")

def run_migrations_offline() -> None:
    context.configure(
        url=_sync_url(settings.DATABASE_URL),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()

async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        {"sqlalchemy.url": settings.DATABASE_URL},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(_run_migrations)

    await connectable.dispose()

def run() -> None:
    if context.is_offline_mode():
        run_migrations_offline()
    else:
        import asyncio
        asyncio.run(run_migrations_online())

run()
