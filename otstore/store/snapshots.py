"""
Snapshot store for otstore.

A snapshot is the latest materialized state of a document. There is at
most one row per (collection, name); writes overwrite it in place.

Invariants:
    - put_snapshot is a single INSERT ... ON CONFLICT DO UPDATE statement,
      so concurrent first writes cannot both insert
    - Data is sanitized before it is written
    - A missing snapshot is None, never an error
    - bulk_get_snapshots returns every requested collection, even when
      nothing matched
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..db.manager import ConnectionManager
from ..db.base import decode_json, encode_json
from ..sanitize import sanitize
from ..types import Statement

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes document snapshots.

    Attributes:
        manager: Connection manager used for every statement
        table: Snapshot table name

    Example:
        >>> store = SnapshotStore(manager)
        >>> await store.put_snapshot("team_1", "board_9", {"title": "Plan"})
        {'title': 'Plan'}
        >>> await store.get_snapshot("team_1", "board_9")
        {'title': 'Plan'}
    """

    def __init__(self, manager: ConnectionManager, table: str = "documents") -> None:
        self.manager = manager
        self.table = table

    async def get_snapshot(self, collection: str, document: str) -> Optional[Any]:
        """Get the current snapshot of a document.

        Args:
            collection: Collection name
            document: Document name

        Returns:
            Snapshot data, or None if the document has no snapshot yet
        """
        statement = Statement(
            text=f"SELECT data FROM {self.table} WHERE collection = $1 AND name = $2",
            params=(collection, document),
            name="get_snapshot",
        )
        rows = await self.manager.execute(statement)
        data = decode_json(rows[0]["data"]) if rows else None

        logger.debug(
            "Fetched snapshot",
            extra={"collection": collection, "document": document, "found": bool(rows)},
        )
        return data

    async def put_snapshot(self, collection: str, document: str, data: Any) -> Any:
        """Create or overwrite the snapshot of a document.

        Args:
            collection: Collection name
            document: Document name
            data: Snapshot data (JSON-serializable)

        Returns:
            The stored data, after sanitization
        """
        clean = sanitize(data)
        json_param = self.manager.dialect.json_param(3)
        statement = Statement(
            text=(
                f"INSERT INTO {self.table} (collection, name, data) "
                f"VALUES ($1, $2, {json_param}) "
                f"ON CONFLICT (collection, name) DO UPDATE SET data = excluded.data "
                f"RETURNING data"
            ),
            params=(collection, document, encode_json(clean)),
            name="put_snapshot",
        )
        rows = await self.manager.execute(statement)
        stored = decode_json(rows[0]["data"]) if rows else clean

        logger.debug(
            "Wrote snapshot",
            extra={"collection": collection, "document": document},
        )
        return stored

    async def bulk_get_snapshots(
        self,
        requests: Mapping[str, Sequence[str]],
    ) -> Dict[str, Dict[str, Any]]:
        """Fetch many documents across many collections in one statement.

        Args:
            requests: Collection name -> document names

        Returns:
            Collection name -> (document name -> data). Every requested
            collection is present; documents without a snapshot are absent.
        """
        results: Dict[str, Dict[str, Any]] = {collection: {} for collection in requests}

        statement = self._bulk_statement(requests)
        if statement is None:
            return results

        rows = await self.manager.execute(statement)
        for row in rows:
            results.setdefault(row["collection"], {})[row["name"]] = decode_json(row["data"])

        logger.debug(
            "Bulk fetched snapshots",
            extra={"collections": len(requests), "found": len(rows)},
        )
        return results

    def _bulk_statement(self, requests: Mapping[str, Sequence[str]]) -> Optional[Statement]:
        clauses: List[str] = []
        params: List[Any] = []

        for collection, names in requests.items():
            names = list(dict.fromkeys(names))
            if not names:
                continue
            params.append(collection)
            collection_ref = f"${len(params)}"
            placeholders = []
            for name in names:
                params.append(name)
                placeholders.append(f"${len(params)}")
            clauses.append(f"(collection = {collection_ref} AND name IN ({', '.join(placeholders)}))")

        if not clauses:
            return None

        return Statement(
            text=(
                f"SELECT collection, name, data FROM {self.table} "
                f"WHERE {' OR '.join(clauses)}"
            ),
            params=tuple(params),
            name="bulk_get_snapshots",
        )
