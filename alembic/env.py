"""
alembic/env.py — EarnLedger migration environment
===================================================

The URL always comes from ``DATABASE_URL`` (via ``.env``), the same variable
:func:`earnledger.database.engine.create_db_engine` reads, so migrations and
the API can never point at different databases.

Autogenerate compares column types as well, since the money columns are
``Numeric(12, 2)`` and a precision drift would otherwise go unnoticed.
SQLite (local dev) gets batch mode so ALTERs are emulated by table copies.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv()

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

database_url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if not database_url:
    raise RuntimeError(
        "DATABASE_URL is not set.  "
        "Copy .env.example → .env and set a valid PostgreSQL URL."
    )
config.set_main_option("sqlalchemy.url", database_url)

from earnledger.database.models import Base  # noqa: E402

target_metadata = Base.metadata


def _configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit SQL for the ledger schema without connecting."""
    context.configure(
        url=database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(database_url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single unpooled connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs(database_url))
        with context.begin_transaction():
            context.run_migrations()
    logger.info("Ledger schema migrated on %s", connectable.url.host or connectable.url.database)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
