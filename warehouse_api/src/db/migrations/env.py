from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

# `src.*` imports resolve from the warehouse_api directory
WAREHOUSE_API_ROOT = Path(__file__).resolve().parents[3]
if str(WAREHOUSE_API_ROOT) not in sys.path:
    sys.path.insert(0, str(WAREHOUSE_API_ROOT))

from src.db import models  # noqa: E402,F401
from src.db.base import Base  # noqa: E402
from src.db.config import get_settings  # noqa: E402

config = context.config
target_metadata = Base.metadata
settings = get_settings()
logger = logging.getLogger("alembic.env")


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url") or settings.sync_database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations through a short-lived asyncpg engine."""
    engine = create_async_engine(settings.async_database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    logger.info("Running migrations against %s:%s", settings.POSTGRES_HOST, settings.POSTGRES_PORT)
    asyncio.run(run_migrations_online())
