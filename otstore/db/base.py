"""
Base protocol and types for the connection pool abstraction.

This module defines the ConnectionPool protocol that all backends must
implement, the SQL dialect descriptor the stores use to render
statements, and the JSON column helpers shared by every backend.

Invariants:
    - A pool hands out at most ``max_size`` connections at a time
    - execute() runs exactly one parameterized statement
    - Backend errors are translated into otstore.errors types
    - Rows are returned as plain dicts keyed by column name

How to change safely:
    - Protocol changes require updating all implementations
    - New dialect features must be expressible on every backend
"""

from __future__ import annotations

import json
from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)

from ..types import Statement

if TYPE_CHECKING:
    from ..config import StoreSettings

Row = Dict[str, Any]


@dataclass(frozen=True)
class Dialect:
    """SQL rendering differences between backends.

    Attributes:
        name: Backend name
        json_type: Column type for structured data
        json_cast: Suffix applied to JSON placeholders
        supports_schemas: Whether "schema.table" names are allowed
    """

    name: str
    json_type: str
    json_cast: str
    supports_schemas: bool

    def json_param(self, index: int) -> str:
        """Placeholder for a JSON-encoded parameter at ``index``."""
        return f"${index}{self.json_cast}"


POSTGRES_DIALECT = Dialect(name="postgres", json_type="JSONB", json_cast="::jsonb", supports_schemas=True)
SQLITE_DIALECT = Dialect(name="sqlite", json_type="TEXT", json_cast="", supports_schemas=False)


def encode_json(value: Any) -> str:
    """Encode structured data for a JSON column parameter."""
    return json.dumps(value, ensure_ascii=False)


def decode_json(value: Any) -> Any:
    """Decode a JSON column value.

    asyncpg returns JSONB as text unless a codec is registered and SQLite
    stores it as TEXT, so strings are parsed. Anything else is returned
    as the driver produced it.
    """
    if isinstance(value, (str, bytes, bytearray)):
        return json.loads(value)
    return value


@runtime_checkable
class ConnectionPool(Protocol):
    """Protocol for database connection pool backends.

    Connections are opaque to callers; they are only passed back to the
    pool that produced them.

    Example:
        >>> pool = SqlitePool("/tmp/docs.db", max_size=4)
        >>> await pool.connect()
        >>> conn = await pool.acquire(timeout=5.0)
        >>> try:
        ...     rows = await pool.execute(conn, Statement("SELECT 1 AS one"), timeout=5.0)
        ... finally:
        ...     await pool.release(conn)
    """

    dialect: Dialect

    @abstractmethod
    async def connect(self) -> None:
        """Open the pool.

        Raises:
            ConnectionError: If the database is unreachable
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the pool and every idle connection."""
        ...

    @abstractmethod
    async def acquire(self, timeout: float) -> Any:
        """Take a connection from the pool.

        Args:
            timeout: Seconds to wait for a free connection

        Raises:
            ConnectionError: If no connection is available in time
        """
        ...

    @abstractmethod
    async def release(self, conn: Any) -> None:
        """Return a connection to the pool."""
        ...

    @abstractmethod
    async def execute(
        self,
        conn: Any,
        statement: Statement,
        timeout: Optional[float],
    ) -> List[Row]:
        """Execute one parameterized statement and return its rows.

        Raises:
            StatementTimeoutError: If the statement exceeds ``timeout``
            ConstraintViolationError: On unique/primary key violations
            QueryError: For any other engine error
        """
        ...

    @abstractmethod
    async def executescript(self, conn: Any, sql: str) -> None:
        """Execute a parameterless multi-statement script (DDL only)."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the pool is open."""
        ...


def create_pool(settings: "StoreSettings") -> ConnectionPool:
    """Factory function to create a connection pool from settings.

    Args:
        settings: Store settings

    Returns:
        Appropriate ConnectionPool implementation

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import Backend
    from .postgres import PostgresPool
    from .sqlite import SqlitePool

    backend = settings.backend
    if backend == Backend.POSTGRES:
        return PostgresPool(
            settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_size,
        )
    elif backend == Backend.SQLITE:
        return SqlitePool(settings.sqlite_path, max_size=settings.pool_size)
    else:
        raise ValueError(f"Unsupported backend: {backend}")
