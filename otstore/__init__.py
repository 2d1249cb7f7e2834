"""
otstore - relational persistence for operational-transform document editing.

This package stores collaborative-document snapshots and their
append-only operation logs in PostgreSQL (or SQLite), exposing the
contract a real-time OT backend needs:

- get/put the current snapshot of a document
- append an operation at a version
- compute the next version
- read a version range of operations
- fetch many snapshots in one round trip

Architecture:
    ┌──────────────┐     ┌───────────────┐     ┌───────────────────┐
    │  OT backend  │────▶│ DocumentStore │────▶│ SnapshotStore     │
    └──────────────┘     └───────────────┘     │ OperationLog      │
                                               │ ProcedureStore    │
                                               └─────────┬─────────┘
                                                         │ Statement
                                                         ▼
                                               ┌───────────────────┐
                                               │ ConnectionManager │
                                               └─────────┬─────────┘
                                                         │
                                     ┌───────────────────┴──────────┐
                                     ▼                              ▼
                              ┌─────────────┐               ┌─────────────┐
                              │ PostgresPool│               │ SqlitePool  │
                              │  (asyncpg)  │               │  (sqlite3)  │
                              └─────────────┘               └─────────────┘

Invariants:
    - Operation versions are unique per document, enforced by the database
    - Snapshot writes are single-statement upserts
    - Every payload is stripped of NUL characters before it is stored
    - Every pooled connection is released, even when the caller gives up

Version: see _version.py.
"""

from ._version import __version__
from .adapter import DocumentStore
from .config import StorageShape, StoreSettings
from .errors import (
    ConnectionError,
    ConstraintViolationError,
    DuplicateVersionError,
    ProcedureResponseError,
    QueryError,
    StatementTimeoutError,
    StoreError,
)
from .sanitize import sanitize
from .types import DocumentKey, OperationRecord, Statement

__all__ = [
    "__version__",
    "DocumentStore",
    "StoreSettings",
    "StorageShape",
    "sanitize",
    "DocumentKey",
    "OperationRecord",
    "Statement",
    "StoreError",
    "ConnectionError",
    "QueryError",
    "StatementTimeoutError",
    "ConstraintViolationError",
    "DuplicateVersionError",
    "ProcedureResponseError",
]
