"""Alembic environment for the reward gate schema.

The target URL comes from `ALEMBIC_URL`, then `sqlalchemy.url` in
alembic.ini, then the application settings (asyncpg URLs are rewritten to
psycopg so migrations always run synchronously).
"""
from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, pool

from reward_gate.core.settings import settings
from reward_gate.db.session import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    override = os.getenv("ALEMBIC_URL")
    if override:
        return override
    return config.get_main_option("sqlalchemy.url") or settings.database_url_sync


def _skip_bookkeeping(obj, name, type_, reflected, compare_to) -> bool:
    """Keep `alembic_version` out of autogenerated revisions."""
    return not (type_ == "table" and name == "alembic_version")


def _migration_options(**extra: Any) -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "include_object": _skip_bookkeeping,
        "compare_type": True,
        **extra,
    }


def run_offline(url: str) -> None:
    """Emit SQL for the replay, usage, match and audit tables without connecting."""
    context.configure(
        **_migration_options(
            url=url,
            literal_binds=True,
            dialect_opts={"paramstyle": "named"},
        )
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    """Apply revisions over a live connection.

    SQLite cannot alter constraints in place, so batch mode is enabled there.
    """
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            **_migration_options(
                connection=connection,
                render_as_batch=connection.dialect.name == "sqlite",
            )
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline(_database_url())
else:
    run_online(_database_url())
