# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Database connection management for spaceledger.

Config via SPACELEDGER_DB_* environment variables. Each
:class:`ConnectionPool` is owned by the backend that created it; there is
no module-level pool.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor

from .config import CoreSettings, get_config
from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "storage" / "schema.sql"


class ConnectionPool:
    """Thread-safe psycopg2 connection pool.

    The underlying ThreadedConnectionPool is created lazily on first use so
    constructing a backend never touches the network.
    """

    def __init__(self, settings: CoreSettings | None = None) -> None:
        self._settings = settings or get_config()
        self._pool: psycopg2_pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()

    def _ensure_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Ensure pool is initialized, creating it if necessary."""
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = psycopg2_pool.ThreadedConnectionPool(
                            minconn=self._settings.db_pool_min,
                            maxconn=self._settings.db_pool_max,
                            **self._settings.connection_params,
                        )
                    except psycopg2.OperationalError as e:
                        logger.error("Failed to create connection pool: %s", e)
                        raise PersistenceError(f"Failed to create connection pool: {e}", "connect") from e
                    logger.info(
                        "Connection pool initialized: min=%d, max=%d",
                        self._settings.db_pool_min,
                        self._settings.db_pool_max,
                    )
        return self._pool

    def _get_conn_with_timeout(self, pool: psycopg2_pool.ThreadedConnectionPool) -> Any:
        """Get a connection from pool, giving up after the configured timeout."""
        result_queue: queue.Queue = queue.Queue()

        def _get_conn():
            try:
                result_queue.put(("success", pool.getconn()))
            except Exception as e:
                result_queue.put(("error", e))

        thread = threading.Thread(target=_get_conn, daemon=True)
        thread.start()

        timeout = self._settings.db_pool_timeout
        try:
            result_type, result_value = result_queue.get(timeout=timeout)
        except queue.Empty:
            raise PersistenceError(f"Connection pool timeout after {timeout} seconds", "connect")
        if result_type == "error":
            raise PersistenceError(f"Failed to get connection from pool: {result_value}", "connect") from result_value
        return result_value

    def _get_healthy_connection(self) -> Any:
        """Get a healthy connection from pool, discarding stale ones."""
        pool = self._ensure_pool()
        for _ in range(3):
            conn = self._get_conn_with_timeout(pool)
            if not conn.closed:
                try:
                    with conn.cursor() as cur:
                        cur.execute("SELECT 1")
                    return conn
                except psycopg2.Error:
                    logger.warning("Discarding stale pooled connection")
            pool.putconn(conn, close=True)
        raise PersistenceError("Failed to get healthy connection after multiple attempts", "connect")

    @contextmanager
    def cursor(self) -> Generator[Any, None, None]:
        """Get a dict cursor with commit on success, rollback on error.

        psycopg2 errors are re-raised as PersistenceError.

        Usage:
            with pool.cursor() as cur:
                cur.execute("SELECT * FROM delegations")
                rows = cur.fetchall()
        """
        conn = self._get_healthy_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self._ensure_pool().putconn(conn)

    def close(self) -> None:
        """Close all connections in the pool."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Connection pool closed")

    def check_connection(self) -> bool:
        """Check if database connection is working."""
        try:
            with self.cursor() as cur:
                cur.execute("SELECT 1")
            return True
        except PersistenceError:
            return False


def init_schema(pool: ConnectionPool, schema_path: str | Path | None = None) -> None:
    """Apply schema.sql (idempotent: every statement is IF NOT EXISTS).

    Args:
        pool: Pool to run the DDL on.
        schema_path: Path to an alternative schema file.
    """
    path = Path(schema_path) if schema_path else SCHEMA_PATH
    if not path.exists():
        raise FileNotFoundError(f"schema.sql not found at {path}")

    schema_sql = path.read_text()
    with pool.cursor() as cur:
        cur.execute(schema_sql)
    logger.info("Applied schema from %s", path)
