"""
Store module for otstore - snapshots and the operation log.

This module handles:
- Snapshot get/put and bulk fetch (one row per document)
- Operation append, range reads and next-version lookup
- The stored-procedure alternative for snapshot/operation writes
- DDL for the table shape

Invariants:
    - Every outbound payload is sanitized
    - Every statement goes through the ConnectionManager
    - Absence is None or an empty list, never an error
"""

from .operations import OperationLog, check_version
from .procedures import ProcedureRequest, ProcedureResponse, ProcedureStore, Resource
from .schema import schema_sql
from .snapshots import SnapshotStore

__all__ = [
    "SnapshotStore",
    "OperationLog",
    "check_version",
    "ProcedureStore",
    "ProcedureRequest",
    "ProcedureResponse",
    "Resource",
    "schema_sql",
]
