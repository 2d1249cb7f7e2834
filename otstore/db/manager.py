"""
Connection manager for otstore.

The ConnectionManager is the only way the stores reach the database. For
every statement it acquires one pooled connection, executes the
statement, and releases the connection, on success and on failure.

Each statement runs as its own task and the caller awaits it through
``asyncio.shield``. If the caller is cancelled the statement still runs
to completion and its connection is released when it finishes, so an
abandoned request never leaks a connection.

Lifecycle:
    OPEN -> CLOSING -> CLOSED

    The first shutdown() drains in-flight statements, closes the pool and
    sets a one-shot event. Callers arriving while CLOSING wait for that
    event; callers arriving when CLOSED return immediately.

Invariants:
    - One statement per acquired connection
    - release() is always called after acquire() succeeds
    - No statement starts after shutdown() begins
    - No retries; every failure reaches the caller

How to change safely:
    - Keep acquire/release inside the shielded task
    - Test shutdown with statements in flight
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set, TYPE_CHECKING

from ..errors import ConnectionError
from ..types import Statement
from .base import ConnectionPool, Dialect, Row, create_pool

if TYPE_CHECKING:
    from ..config import StoreSettings

logger = logging.getLogger(__name__)


class PoolState(Enum):
    """Lifecycle state of a ConnectionManager."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionManager:
    """Scoped statement execution over a bounded connection pool.

    Attributes:
        pool: Backend connection pool
        acquire_timeout: Seconds to wait for a free connection
        statement_timeout: Seconds a statement may run (None = unbounded)

    Example:
        >>> manager = ConnectionManager(SqlitePool("/tmp/docs.db"))
        >>> rows = await manager.execute(Statement("SELECT 1 AS one", name="ping"))
        >>> await manager.shutdown()
    """

    def __init__(
        self,
        pool: ConnectionPool,
        acquire_timeout: float = 30.0,
        statement_timeout: Optional[float] = 30.0,
    ) -> None:
        """Initialize the manager. The pool is connected lazily.

        Args:
            pool: Backend connection pool
            acquire_timeout: Connection acquire timeout in seconds
            statement_timeout: Statement timeout in seconds
        """
        self.pool = pool
        self.acquire_timeout = acquire_timeout
        self.statement_timeout = statement_timeout
        self._state = PoolState.OPEN
        self._closed = asyncio.Event()
        self._connect_lock = asyncio.Lock()
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: "StoreSettings") -> ConnectionManager:
        """Build a manager and its pool from settings."""
        return cls(
            create_pool(settings),
            acquire_timeout=settings.acquire_timeout,
            statement_timeout=settings.statement_timeout,
        )

    @property
    def state(self) -> PoolState:
        """Current lifecycle state."""
        return self._state

    @property
    def dialect(self) -> Dialect:
        """SQL dialect of the underlying pool."""
        return self.pool.dialect

    @property
    def inflight(self) -> int:
        """Number of statements currently running."""
        return len(self._inflight)

    async def execute(self, statement: Statement) -> List[Row]:
        """Execute one statement on a pooled connection.

        Args:
            statement: Parameterized statement

        Returns:
            Result rows as dicts (empty for statements without rows)

        Raises:
            ConnectionError: If the pool is closed or no connection is available
            QueryError: If the engine rejects the statement
        """
        logger.debug(
            "Executing statement",
            extra={"statement": statement.name, "param_count": len(statement.params)},
        )
        rows = await self._submit(
            statement.name,
            lambda conn: self.pool.execute(conn, statement, self.statement_timeout),
        )
        logger.debug(
            "Statement finished",
            extra={"statement": statement.name, "row_count": len(rows)},
        )
        return rows

    async def executescript(self, sql: str) -> None:
        """Execute a parameterless DDL script on one pooled connection."""
        await self._submit("executescript", lambda conn: self.pool.executescript(conn, sql))

    async def shutdown(self) -> None:
        """Close the pool once; later calls return immediately.

        Concurrent callers all return after the pool is closed.
        """
        if self._state is PoolState.CLOSED:
            return
        if self._state is PoolState.CLOSING:
            await self._closed.wait()
            return

        self._state = PoolState.CLOSING
        logger.info("Shutting down connection pool", extra={"inflight": len(self._inflight)})

        try:
            if self._inflight:
                await asyncio.wait(set(self._inflight))
            await self.pool.close()
        except Exception as e:
            logger.warning(f"Error closing connection pool: {e}")
        finally:
            self._state = PoolState.CLOSED
            self._closed.set()

        logger.info("Connection pool closed")

    async def wait_closed(self) -> None:
        """Wait until shutdown() has completed."""
        await self._closed.wait()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _submit(self, name: str, work: Callable[[Any], Awaitable[Any]]) -> Any:
        if self._state is not PoolState.OPEN:
            raise ConnectionError("Connection pool is closed")

        task = asyncio.ensure_future(self._run(work))
        self._inflight.add(task)
        task.add_done_callback(self._on_done)
        return await asyncio.shield(task)

    async def _run(self, work: Callable[[Any], Awaitable[Any]]) -> Any:
        await self._ensure_connected()
        conn = await self.pool.acquire(self.acquire_timeout)
        try:
            return await work(conn)
        finally:
            await self.pool.release(conn)

    async def _ensure_connected(self) -> None:
        if self.pool.is_connected:
            return
        async with self._connect_lock:
            if not self.pool.is_connected:
                await self.pool.connect()

    def _on_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        # Marks the exception retrieved when the caller stopped waiting
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Statement task failed: {task.exception()!r}")


# Process-wide manager
_default_manager: Optional[ConnectionManager] = None
_manager_lock = threading.Lock()


def get_connection_manager(settings: Optional["StoreSettings"] = None) -> ConnectionManager:
    """Get the process-wide connection manager.

    Creates one from ``settings`` (or environment settings) if none exists
    or the previous one has been shut down.

    Returns:
        Shared ConnectionManager instance
    """
    global _default_manager
    with _manager_lock:
        if _default_manager is None or _default_manager.state is PoolState.CLOSED:
            if settings is None:
                from ..config import StoreSettings

                settings = StoreSettings()
            _default_manager = ConnectionManager.from_settings(settings)
        return _default_manager


def reset_connection_manager() -> None:
    """Forget the process-wide manager (for testing only).

    Warning: This does not close the pool. Call shutdown() first.
    """
    global _default_manager
    with _manager_lock:
        _default_manager = None
