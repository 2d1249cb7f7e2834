"""
SQLite connection pool.

This module provides a bounded pool of sqlite3 connections for:
- Unit and integration tests
- Local development without a PostgreSQL server
- Single-host deployments

sqlite3 is blocking, so every call runs in the default executor. A
statement timeout is enforced by a progress handler inside the worker
thread, so a timed-out statement stops the thread instead of leaving it
running against a connection that was already handed back.

Invariants:
    - At most max_size connections exist at once
    - Connections are in autocommit mode; each statement is atomic
    - Uniqueness is enforced by the PRIMARY KEY, same as PostgreSQL
    - Numbered placeholders ($1) are rewritten to SQLite's ?1 form

How to change safely:
    - Keep error translation in sync with the PostgreSQL backend
    - Test concurrent writers with a file database (not :memory:)
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import time
from typing import Any, List, Optional, Sequence

from ..errors import (
    ConnectionError,
    ConstraintViolationError,
    QueryError,
    StatementTimeoutError,
)
from ..types import Statement
from .base import SQLITE_DIALECT, Row

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")

_CONSTRAINT_ERRORS = frozenset({"SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE"})

# VM instructions between progress handler calls
_PROGRESS_STEPS = 1000


def to_sqlite_placeholders(text: str) -> str:
    """Rewrite ``$1`` style placeholders to SQLite's ``?1`` style."""
    return _PLACEHOLDER_RE.sub(r"?\1", text)


class SqlitePool:
    """sqlite3 implementation of the ConnectionPool protocol.

    Attributes:
        path: Database file path (":memory:" for a shared in-memory database)
        max_size: Maximum open connections
        busy_timeout_ms: How long a writer waits for a competing lock

    Thread safety:
        Connections are opened with check_same_thread=False because
        executor threads vary between calls. A connection is only ever
        used by one statement at a time.
    """

    dialect = SQLITE_DIALECT

    def __init__(
        self,
        path: str,
        max_size: int = 10,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Initialize the pool.

        Args:
            path: SQLite database path
            max_size: Maximum open connections
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL journal mode for file databases
        """
        self.path = path
        self.max_size = max_size
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._idle: Optional[asyncio.Queue] = None
        self._created = 0
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether the pool is open."""
        return self._connected

    @property
    def _in_memory(self) -> bool:
        return self.path == ":memory:"

    def _open(self) -> sqlite3.Connection:
        if self._in_memory:
            # Every plain ":memory:" connection is its own database
            target, uri = f"file:otstore-{id(self)}?mode=memory&cache=shared", True
        else:
            target, uri = self.path, False

        conn = sqlite3.connect(
            target,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit, one statement per call
            check_same_thread=False,
            uri=uri,
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode and not self._in_memory:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    async def _open_async(self) -> sqlite3.Connection:
        try:
            return await asyncio.get_running_loop().run_in_executor(None, self._open)
        except sqlite3.Error as e:
            raise ConnectionError(f"Failed to open SQLite database: {e}", address=self.path) from e

    async def connect(self) -> None:
        """Open the pool with one eager connection to surface errors early."""
        if self._connected:
            return

        self._idle = asyncio.Queue()
        conn = await self._open_async()
        self._created = 1
        self._idle.put_nowait(conn)
        self._connected = True
        logger.info("SQLite pool opened", extra={"path": self.path, "max_size": self.max_size})

    async def close(self) -> None:
        """Close every idle connection.

        Connections still checked out are closed when they are released.
        """
        if not self._connected:
            return
        self._connected = False

        loop = asyncio.get_running_loop()
        while self._idle is not None and not self._idle.empty():
            conn = self._idle.get_nowait()
            self._created -= 1
            await loop.run_in_executor(None, conn.close)
        logger.info("SQLite pool closed", extra={"path": self.path})

    async def acquire(self, timeout: float) -> sqlite3.Connection:
        """Take an idle connection, open a new one, or wait for a release."""
        if not self._connected or self._idle is None:
            raise ConnectionError("Not connected", address=self.path)

        try:
            return self._idle.get_nowait()
        except asyncio.QueueEmpty:
            pass

        if self._created < self.max_size:
            # Reserve the slot before suspending
            self._created += 1
            try:
                return await self._open_async()
            except ConnectionError:
                self._created -= 1
                raise

        try:
            return await asyncio.wait_for(self._idle.get(), timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionError(
                f"No connection available within {timeout}s (pool size {self.max_size})",
                address=self.path,
            ) from e

    async def release(self, conn: sqlite3.Connection) -> None:
        """Return a connection, or close it if the pool is closed."""
        if self._connected and self._idle is not None:
            self._idle.put_nowait(conn)
            return
        self._created -= 1
        await asyncio.get_running_loop().run_in_executor(None, conn.close)

    async def execute(
        self,
        conn: sqlite3.Connection,
        statement: Statement,
        timeout: Optional[float],
    ) -> List[Row]:
        """Run one statement in the executor and return its rows."""
        return await asyncio.get_running_loop().run_in_executor(
            None,
            self._execute_sync,
            conn,
            statement,
            timeout,
        )

    async def executescript(self, conn: sqlite3.Connection, sql: str) -> None:
        """Run a multi-statement DDL script."""
        await asyncio.get_running_loop().run_in_executor(None, self._executescript_sync, conn, sql)

    def _execute_sync(
        self,
        conn: sqlite3.Connection,
        statement: Statement,
        timeout: Optional[float],
    ) -> List[Row]:
        text = to_sqlite_placeholders(statement.text)
        params: Sequence[Any] = statement.params

        if timeout is not None:
            deadline = time.monotonic() + timeout
            conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEPS)

        try:
            cursor = conn.execute(text, params)
            rows = [dict(row) for row in cursor.fetchall()]
            cursor.close()
            return rows
        except sqlite3.IntegrityError as e:
            if e.sqlite_errorname in _CONSTRAINT_ERRORS:
                raise ConstraintViolationError(
                    f"Statement '{statement.name}' violated a unique constraint: {e}",
                    statement=statement.name,
                    cause=e,
                    details={"sqlite_errorname": e.sqlite_errorname},
                ) from e
            raise QueryError(
                f"Statement '{statement.name}' failed: {e}",
                statement=statement.name,
                cause=e,
            ) from e
        except sqlite3.OperationalError as e:
            if timeout is not None and "interrupted" in str(e):
                raise StatementTimeoutError(
                    f"Statement '{statement.name}' exceeded {timeout}s",
                    statement=statement.name,
                    cause=e,
                ) from e
            raise QueryError(
                f"Statement '{statement.name}' failed: {e}",
                statement=statement.name,
                cause=e,
            ) from e
        except sqlite3.Error as e:
            raise QueryError(
                f"Statement '{statement.name}' failed: {e}",
                statement=statement.name,
                cause=e,
            ) from e
        finally:
            if timeout is not None:
                conn.set_progress_handler(None, 0)

    def _executescript_sync(self, conn: sqlite3.Connection, sql: str) -> None:
        try:
            conn.executescript(sql)
        except sqlite3.Error as e:
            raise QueryError(f"Script failed: {e}", statement="executescript", cause=e) from e
