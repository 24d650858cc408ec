"""Alembic environment configuration.

Builds the database URL from ``DatabaseSettings`` (``DATABASE_URL``) so that
migrations and the API always target the same database. The database is
created automatically if it doesn't exist (connects to the default
``postgres`` database to run ``CREATE DATABASE``).
"""

from __future__ import annotations

import sys
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, make_url, pool

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from todo_api.config import DatabaseSettings  # noqa: E402
from todo_api.db.schemas import Base  # noqa: E402

config = context.config
target_metadata = Base.metadata


def _ensure_database(settings: DatabaseSettings) -> None:
    """Create the application database if it doesn't exist."""
    import psycopg
    from psycopg import sql

    url = make_url(settings.sqlalchemy_url())
    conn = psycopg.connect(
        host=url.host,
        port=url.port or 5432,
        dbname="postgres",
        user=url.username,
        password=url.password,
        autocommit=True,
    )
    try:
        conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(url.database)))
    except psycopg.errors.DuplicateDatabase:
        pass
    finally:
        conn.close()


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode; emits SQL to stdout."""
    url = DatabaseSettings().sqlalchemy_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against a live connection."""
    settings = DatabaseSettings()
    _ensure_database(settings)

    cfg = config.get_section(config.config_ini_section, {})
    cfg["sqlalchemy.url"] = settings.sqlalchemy_url()

    connectable = engine_from_config(
        cfg,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
