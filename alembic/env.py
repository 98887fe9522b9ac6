#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Alembic environment for PyDPL.

* The database URL comes from Settings (DATABASE_URL or .env).
* Migrations run through the async engine; SQLite gets batch mode so
  column changes work despite its limited ALTER TABLE.
* The dpl_clview view is managed by the migrations themselves and is
  hidden from autogenerate.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# ── App imports ──────────────────────────────────────────────────────────────

from dpl.core.config import get_settings
from dpl.core.database import Base
from dpl.models import CATEGORY_VIEW
import dpl.models.models  # noqa: F401  — registers all ORM models on Base


# ── Alembic config object ────────────────────────────────────────────────────

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = Base.metadata


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    return not (type_ == "table" and name == CATEGORY_VIEW)


def _options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type":    True,
        "include_object":  include_object,
        "render_as_batch": url.startswith("sqlite"),
    }


# ── Offline mode ─────────────────────────────────────────────────────────────

def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


# ── Online mode ──────────────────────────────────────────────────────────────

def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **_options(settings.database_url))
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


# ── Entry point ──────────────────────────────────────────────────────────────

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
