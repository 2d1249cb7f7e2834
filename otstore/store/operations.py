"""
Operation log for otstore.

Operations are immutable, versioned entries in a document's history.
This module appends them, reads version ranges back in order, and
computes the next version for a document.

Invariants:
    - Versions are non-negative integers, unique per (collection, document)
    - Uniqueness is enforced by the table's primary key; a lost append race
      surfaces as DuplicateVersionError
    - Rows are never updated or deleted here
    - get_ops ranges are [start, end) and ascending by version
    - get_next_version is advisory; only the append constraint is authoritative

How to change safely:
    - Never add a code path that writes an operation without the primary key
    - Keep range semantics identical for get_ops and get_op_records
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from ..db.manager import ConnectionManager
from ..db.base import decode_json, encode_json
from ..errors import ConstraintViolationError, DuplicateVersionError
from ..sanitize import sanitize
from ..types import OperationRecord, Statement

logger = logging.getLogger(__name__)


def check_version(value: Any, name: str = "version") -> int:
    """Validate a version number or range bound.

    Raises:
        ValueError: If value is not a non-negative int
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


class OperationLog:
    """Append-only, version-ordered operation log.

    Attributes:
        manager: Connection manager used for every statement
        table: Operation table name

    Example:
        >>> log = OperationLog(manager)
        >>> v = await log.get_next_version("team_1", "board_9")
        >>> await log.append_op("team_1", "board_9", v, {"op": [{"insert": "a"}]})
        >>> await log.get_ops("team_1", "board_9", 0)
        [{'op': [{'insert': 'a'}]}]
    """

    def __init__(self, manager: ConnectionManager, table: str = "operations") -> None:
        self.manager = manager
        self.table = table

    async def append_op(self, collection: str, document: str, version: int, payload: Any) -> Any:
        """Append one operation at ``version``.

        Args:
            collection: Collection name
            document: Document name
            version: Version of this operation
            payload: Operation data (JSON-serializable)

        Returns:
            The stored payload, after sanitization

        Raises:
            ValueError: If version is not a non-negative int
            DuplicateVersionError: If the version already exists
        """
        check_version(version)
        clean = sanitize(payload)
        json_param = self.manager.dialect.json_param(4)
        statement = Statement(
            text=(
                f"INSERT INTO {self.table} (collection_name, document_name, version, data) "
                f"VALUES ($1, $2, $3, {json_param}) "
                f"RETURNING data"
            ),
            params=(collection, document, version, encode_json(clean)),
            name="append_op",
        )

        try:
            rows = await self.manager.execute(statement)
        except ConstraintViolationError as e:
            logger.debug(
                "Duplicate operation version",
                extra={"collection": collection, "document": document, "version": version},
            )
            raise DuplicateVersionError(
                collection,
                document,
                version,
                statement=statement.name,
                cause=e.cause,
            ) from e

        logger.debug(
            "Appended operation",
            extra={"collection": collection, "document": document, "version": version},
        )
        return decode_json(rows[0]["data"]) if rows else clean

    async def get_ops(
        self,
        collection: str,
        document: str,
        start: int,
        end: Optional[int] = None,
    ) -> List[Any]:
        """Get operation payloads with start <= version < end.

        Args:
            collection: Collection name
            document: Document name
            start: First version (inclusive)
            end: Last version (exclusive); None reads to the end of the log

        Returns:
            Payloads in ascending version order (empty if none match)
        """
        rows = await self.manager.execute(
            self._range_statement("data", collection, document, start, end, name="get_ops")
        )
        ops = [decode_json(row["data"]) for row in rows]

        logger.debug(
            "Fetched operations",
            extra={
                "collection": collection,
                "document": document,
                "start": start,
                "end": end,
                "count": len(ops),
            },
        )
        return ops

    async def get_op_records(
        self,
        collection: str,
        document: str,
        start: int,
        end: Optional[int] = None,
    ) -> List[OperationRecord]:
        """Same range as get_ops, returned with versions attached."""
        rows = await self.manager.execute(
            self._range_statement(
                "version, data", collection, document, start, end, name="get_op_records"
            )
        )
        return [
            OperationRecord(
                collection=collection,
                document=document,
                version=int(row["version"]),
                data=decode_json(row["data"]),
            )
            for row in rows
        ]

    async def get_next_version(self, collection: str, document: str) -> int:
        """Compute the next version from the log's high-water mark.

        Returns:
            0 for an empty log, otherwise the highest version + 1
        """
        statement = Statement(
            text=(
                f"SELECT version FROM {self.table} "
                f"WHERE collection_name = $1 AND document_name = $2 "
                f"ORDER BY version DESC LIMIT 1"
            ),
            params=(collection, document),
            name="get_next_version",
        )
        rows = await self.manager.execute(statement)
        version = int(rows[0]["version"]) + 1 if rows else 0

        logger.debug(
            "Computed next version",
            extra={"collection": collection, "document": document, "version": version},
        )
        return version

    def _range_statement(
        self,
        columns: str,
        collection: str,
        document: str,
        start: int,
        end: Optional[int],
        name: str,
    ) -> Statement:
        check_version(start, "start")
        text = (
            f"SELECT {columns} FROM {self.table} "
            f"WHERE collection_name = $1 AND document_name = $2 AND version >= $3"
        )
        params: List[Any] = [collection, document, start]

        if end is not None:
            check_version(end, "end")
            text += " AND version < $4"
            params.append(end)

        text += " ORDER BY version ASC"
        return Statement(text=text, params=tuple(params), name=name)
