"""
DocumentStore - the persistence contract for an OT backend.

This is the class a real-time collaborative-editing backend talks to. It
wires the snapshot store, the operation log and (optionally) the
stored-procedure shape onto one shared ConnectionManager.

Inbound contract:
    get_snapshot(collection, document)              -> data | None
    put_snapshot(collection, document, data)        -> stored data
    append_op(collection, document, version, op)    -> stored op
    get_ops(collection, document, start, end=None)  -> [op, ...]
    get_next_version(collection, document)          -> int
    bulk_get_snapshots({collection: [document]})    -> {collection: {document: data}}
    close()

Invariants:
    - Every operation is one statement on one pooled connection
    - No in-process locks; ordering and uniqueness come from the database
    - Failures propagate unchanged; nothing is retried here

How to change safely:
    - New operations must go through SnapshotStore/OperationLog
    - Keep the method names stable; OT backends bind to them
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import StorageShape, StoreSettings
from .db.manager import ConnectionManager, get_connection_manager
from .store.operations import OperationLog
from .store.procedures import ProcedureStore
from .store.schema import schema_sql
from .store.snapshots import SnapshotStore
from .types import OperationRecord

logger = logging.getLogger(__name__)


class DocumentStore:
    """Snapshot and operation-log persistence for collaborative documents.

    Attributes:
        settings: Store settings
        manager: Connection manager shared by all stores
        snapshots: Table-backed snapshot store (also serves bulk reads)
        operations: Table-backed operation log (also serves range reads)
        procedures: Stored-procedure store when storage_shape is "procedures"

    Example:
        >>> store = DocumentStore(StoreSettings(database_url="sqlite:////tmp/docs.db"))
        >>> await store.initialize()
        >>> await store.put_snapshot("team_1", "board_9", {"title": "Plan"})
        >>> await store.append_op("team_1", "board_9", 0, {"op": "set-title"})
        >>> await store.get_next_version("team_1", "board_9")
        1
        >>> await store.close()
    """

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        manager: Optional[ConnectionManager] = None,
    ) -> None:
        """Initialize the store.

        Args:
            settings: Store settings (loaded from environment if not provided)
            manager: Connection manager. Defaults to a new one built from
                ``settings``, or the process-wide one when neither is given
        """
        self.settings = settings or StoreSettings()
        if manager is None:
            if settings is None:
                manager = get_connection_manager(self.settings)
            else:
                manager = ConnectionManager.from_settings(settings)
        self.manager = manager

        self.snapshots = SnapshotStore(self.manager, self.settings.snapshot_table)
        self.operations = OperationLog(self.manager, self.settings.operation_table)
        self.procedures: Optional[ProcedureStore] = None
        if self.settings.storage_shape == StorageShape.PROCEDURES:
            self.procedures = ProcedureStore(
                self.manager,
                schema=self.settings.procedure_schema,
                sender=self.settings.procedure_sender,
            )

    async def __aenter__(self) -> DocumentStore:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Create the snapshot and operation tables if they don't exist.

        With the stored-procedure shape the tables belong to the database
        side and nothing is created.
        """
        self.settings.log_config()

        if self.procedures is not None:
            logger.info("Stored-procedure shape in use, skipping table creation")
            return

        await self.manager.executescript(
            schema_sql(
                self.manager.dialect,
                self.settings.snapshot_table,
                self.settings.operation_table,
            )
        )
        logger.info(
            "Initialized tables",
            extra={
                "snapshot_table": self.settings.snapshot_table,
                "operation_table": self.settings.operation_table,
            },
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def get_snapshot(self, collection: str, document: str) -> Optional[Any]:
        """Get a document's snapshot, or None for a brand-new document."""
        if self.procedures is not None:
            return await self.procedures.get_snapshot(collection, document)
        return await self.snapshots.get_snapshot(collection, document)

    async def put_snapshot(self, collection: str, document: str, data: Any) -> Any:
        """Create or overwrite a document's snapshot; returns the stored data."""
        if self.procedures is not None:
            return await self.procedures.put_snapshot(collection, document, data)
        return await self.snapshots.put_snapshot(collection, document, data)

    write_snapshot = put_snapshot

    async def bulk_get_snapshots(
        self,
        requests: Mapping[str, Sequence[str]],
    ) -> Dict[str, Dict[str, Any]]:
        """Fetch many snapshots across collections in one round trip."""
        return await self.snapshots.bulk_get_snapshots(requests)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def append_op(self, collection: str, document: str, version: int, payload: Any) -> Any:
        """Append an operation; raises DuplicateVersionError if the version exists."""
        if self.procedures is not None:
            return await self.procedures.append_op(collection, document, version, payload)
        return await self.operations.append_op(collection, document, version, payload)

    async def write_op(self, collection: str, document: str, op_data: Mapping[str, Any]) -> Any:
        """Append an operation whose version is carried in ``op_data["v"]``.

        Raises:
            ValueError: If op_data has no "v" key
        """
        if "v" not in op_data:
            raise ValueError("op_data must carry its version under 'v'")
        return await self.append_op(collection, document, op_data["v"], dict(op_data))

    async def get_ops(
        self,
        collection: str,
        document: str,
        start: int,
        end: Optional[int] = None,
    ) -> List[Any]:
        """Get operations with start <= version < end (end=None reads to the end)."""
        return await self.operations.get_ops(collection, document, start, end)

    async def get_op_records(
        self,
        collection: str,
        document: str,
        start: int,
        end: Optional[int] = None,
    ) -> List[OperationRecord]:
        """Like get_ops, with each payload's version attached."""
        return await self.operations.get_op_records(collection, document, start, end)

    async def get_next_version(self, collection: str, document: str) -> int:
        """Next version for a document: 0 if it has no operations, else max + 1."""
        return await self.operations.get_next_version(collection, document)

    get_version = get_next_version

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Shut down the connection pool. Safe to call more than once."""
        await self.manager.shutdown()
