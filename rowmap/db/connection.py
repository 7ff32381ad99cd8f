"""
rowmap/db/connection.py
-----------------------
Wraps a PostgreSQL connection pool behind an injectable handle.
Uses psycopg2's ThreadedConnectionPool so independent callers can share it.

Any pool exposing ``getconn()`` / ``putconn(conn)`` (and optionally
``closeall()``) over DB-API 2.0 connections is accepted.
"""

import psycopg2
from psycopg2 import pool

from rowmap import config
from rowmap.errors import ConnectionAcquisitionError
from rowmap.utils.logger import get_logger

logger = get_logger(__name__)


class Database:
    """A connection pool plus the placeholder style of its driver."""

    def __init__(self, connection_pool, placeholder: str = "%s"):
        """
        Args:
            connection_pool: Pool object with ``getconn`` / ``putconn``.
            placeholder: Positional marker of the driver's paramstyle.
        """
        self._pool = connection_pool
        self.placeholder = placeholder

    @classmethod
    def connect(
        cls,
        dsn: str = config.DATABASE_URL,
        min_conn: int = config.DB_POOL_MIN,
        max_conn: int = config.DB_POOL_MAX,
    ) -> "Database":
        """
        Open a psycopg2 connection pool.

        Args:
            dsn: libpq connection string or URL.
            min_conn: Minimum number of connections to keep open.
            max_conn: Maximum number of connections allowed.

        Raises:
            ConnectionAcquisitionError: If the database is unreachable.
        """
        try:
            connection_pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
        except psycopg2.OperationalError as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise ConnectionAcquisitionError(f"cannot open pool: {e}") from e
        logger.info("Database connection pool initialized successfully.")
        return cls(connection_pool)

    def get_connection(self):
        """
        Get a connection from the pool.

        Raises:
            ConnectionAcquisitionError: If the pool is closed, exhausted or
                cannot reach the database.
        """
        if self._pool is None:
            raise ConnectionAcquisitionError("Database pool is closed.")
        try:
            return self._pool.getconn()
        except Exception as e:
            logger.error(f"Failed to acquire connection: {e}")
            raise ConnectionAcquisitionError(str(e)) from e

    def release_connection(self, conn) -> None:
        """Return a connection back to the pool."""
        if self._pool is not None:
            self._pool.putconn(conn)

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool is not None:
            closeall = getattr(self._pool, "closeall", None)
            if closeall is not None:
                closeall()
            self._pool = None
            logger.info("Database connection pool closed.")
