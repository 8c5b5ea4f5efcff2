"""Alembic environment for the Nilavu schema (projects, data sources, summaries,
synthesis matrix), run through the same async engine URL the API uses."""

import asyncio
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# `alembic` is run from backend/, where the flat app modules live
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from database import Base  # noqa: E402
import models_async  # noqa: F401, E402  registers the research tables on Base

target_metadata = Base.metadata

# ALEMBIC_DATABASE_URL lets migrations target a copy without touching the app's DATABASE_URL
_db_url = (
    os.getenv("ALEMBIC_DATABASE_URL")
    or os.getenv("DATABASE_URL")
    or "sqlite+aiosqlite:///./instance/nilavu.db"
)


def _configure(**kwargs) -> None:
    # batch mode lets SQLite emulate ALTER TABLE for the cascade foreign keys
    context.configure(target_metadata=target_metadata, render_as_batch=True, **kwargs)


def run_migrations_offline() -> None:
    """Emit the schema as a SQL script instead of applying it."""
    _configure(url=_db_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = create_async_engine(_db_url, poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
