"""
PostgreSQL connection pool backed by asyncpg.

Invariants:
    - Pool size is bounded by max_size
    - Statements are sent with numbered parameters, never interpolated
    - asyncpg errors never escape; they are translated to otstore.errors

How to change safely:
    - Test against a real PostgreSQL before deploying (see tests/e2e)
    - Keep error translation in sync with the SQLite backend
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import urlsplit

import asyncpg

from ..errors import (
    ConnectionError,
    ConstraintViolationError,
    QueryError,
    StatementTimeoutError,
)
from ..types import Statement
from .base import POSTGRES_DIALECT, Row

logger = logging.getLogger(__name__)


class PostgresPool:
    """asyncpg implementation of the ConnectionPool protocol.

    Attributes:
        dsn: PostgreSQL connection URL
        min_size: Connections opened eagerly
        max_size: Upper bound on open connections

    Example:
        >>> pool = PostgresPool("postgresql://app@localhost/docs", max_size=10)
        >>> await pool.connect()
    """

    dialect = POSTGRES_DIALECT

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10) -> None:
        """Initialize the pool (no connections are opened yet).

        Args:
            dsn: PostgreSQL connection URL
            min_size: Minimum pooled connections
            max_size: Maximum pooled connections
        """
        self.dsn = dsn
        self.min_size = min(min_size, max_size)
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def address(self) -> str:
        """host:port of the server, without credentials."""
        parts = urlsplit(self.dsn)
        return f"{parts.hostname or 'localhost'}:{parts.port or 5432}"

    @property
    def is_connected(self) -> bool:
        """Whether the asyncpg pool is open."""
        return self._pool is not None

    async def connect(self) -> None:
        """Create the asyncpg pool.

        Raises:
            ConnectionError: If the server is unreachable or rejects login
        """
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
            )
        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}", address=self.address) from e

        logger.info(
            "Connected to PostgreSQL",
            extra={"address": self.address, "max_size": self.max_size},
        )

    async def close(self) -> None:
        """Close the pool, waiting for checked-out connections to return."""
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("PostgreSQL pool closed", extra={"address": self.address})

    async def acquire(self, timeout: float) -> Any:
        """Acquire a connection within ``timeout`` seconds."""
        if self._pool is None:
            raise ConnectionError("Not connected", address=self.address)

        try:
            return await self._pool.acquire(timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"No connection available within {timeout}s",
                address=self.address,
            ) from e
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise ConnectionError(f"Failed to acquire connection: {e}", address=self.address) from e

    async def release(self, conn: Any) -> None:
        """Release a connection back to the asyncpg pool."""
        if self._pool is None:
            # Pool already closed; make sure the socket goes away
            conn.terminate()
            return
        await self._pool.release(conn)

    async def execute(
        self,
        conn: Any,
        statement: Statement,
        timeout: Optional[float],
    ) -> List[Row]:
        """Run one statement and return its rows as dicts."""
        try:
            records = await conn.fetch(statement.text, *statement.params, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StatementTimeoutError(
                f"Statement '{statement.name}' exceeded {timeout}s",
                statement=statement.name,
                cause=e,
            ) from e
        except asyncpg.UniqueViolationError as e:
            raise ConstraintViolationError(
                f"Statement '{statement.name}' violated {e.constraint_name or 'a unique constraint'}",
                statement=statement.name,
                cause=e,
                details={"sqlstate": e.sqlstate},
            ) from e
        except asyncpg.PostgresError as e:
            raise QueryError(
                f"Statement '{statement.name}' failed: {e}",
                statement=statement.name,
                cause=e,
                details={"sqlstate": getattr(e, "sqlstate", None)},
            ) from e
        except (OSError, asyncpg.InterfaceError) as e:
            raise QueryError(
                f"Statement '{statement.name}' failed: {e}",
                statement=statement.name,
                cause=e,
            ) from e

        return [dict(record) for record in records]

    async def executescript(self, conn: Any, sql: str) -> None:
        """Run a multi-statement script with the simple query protocol."""
        try:
            await conn.execute(sql)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise QueryError(f"Script failed: {e}", statement="executescript", cause=e) from e
