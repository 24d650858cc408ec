"""PostgreSQL connection pool for Todo API."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

import psycopg
import structlog
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from todo_api.config import DatabaseSettings, get_settings

logger = structlog.get_logger()


class PostgresDB:
    """Process-wide psycopg pool; every connection yields dict rows."""

    def __init__(self, settings: DatabaseSettings | None = None):
        settings = settings or get_settings().database
        self._pool = ConnectionPool(
            conninfo=settings.url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            timeout=settings.pool_timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        logger.info(
            "connection_pool_created",
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )

    def open(self) -> None:
        self._pool.open(wait=False)

    def close(self) -> None:
        self._pool.close()
        logger.info("connection_pool_closed")

    @contextmanager
    def session(self) -> Generator[psycopg.Connection, None, None]:
        """Borrow a connection; commit on success, roll back on error.

        Everything executed inside one ``session()`` block is a single
        transaction.
        """
        with self._pool.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise


class TransactionScope:
    """Session source bound to a connection whose transaction is already open.

    Reads issued through it see the uncommitted rows of that transaction and
    never take a second connection from the pool. Commit and rollback stay
    with the session that opened the connection.
    """

    def __init__(self, conn: psycopg.Connection):
        self._conn = conn

    @contextmanager
    def session(self) -> Generator[psycopg.Connection, None, None]:
        yield self._conn


_db: PostgresDB | None = None


def get_db() -> PostgresDB:
    global _db
    if _db is None:
        _db = PostgresDB()
        _db.open()
    return _db


def close_db() -> None:
    global _db
    if _db is not None:
        _db.close()
        _db = None
