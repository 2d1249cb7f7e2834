"""
Database access layer for otstore.

This module provides a pluggable connection pool interface supporting:
- PostgreSQL via asyncpg (production)
- SQLite via sqlite3 (tests, local development)

and the ConnectionManager that every store goes through.

Invariants:
    - Every statement is parameterized
    - Every acquired connection is released, even on failure or cancellation
    - Uniqueness and ordering are enforced by the engine, never by in-process locks
"""

from .base import (
    ConnectionPool,
    Dialect,
    POSTGRES_DIALECT,
    SQLITE_DIALECT,
    create_pool,
    decode_json,
    encode_json,
)
from .manager import (
    ConnectionManager,
    PoolState,
    get_connection_manager,
    reset_connection_manager,
)
from .postgres import PostgresPool
from .sqlite import SqlitePool

__all__ = [
    # Protocol and types
    "ConnectionPool",
    "Dialect",
    "POSTGRES_DIALECT",
    "SQLITE_DIALECT",
    "encode_json",
    "decode_json",
    # Factory
    "create_pool",
    # Manager
    "ConnectionManager",
    "PoolState",
    "get_connection_manager",
    "reset_connection_manager",
    # Implementations
    "PostgresPool",
    "SqlitePool",
]
