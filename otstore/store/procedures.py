"""
Stored-procedure storage shape.

Some deployments keep snapshots and operations behind two PostgreSQL
functions that take one JSON request and return one JSON response:

    SELECT <schema>.select($1::jsonb) AS doc    -- read
    SELECT <schema>.update($1::jsonb) AS doc    -- write

Request payload:
    {
        "head": {
            "resource": "board_document" | "board_operation",
            "sender": "be-api",
            "team_id": <collection>,
            "board_id": <document>
        },
        "data": {"data": <snapshot>}                     # snapshot write
        "data": {"version": <int>, "data": <payload>}    # operation write
    }

Response payload:
    {"data": {"document": {"data": <snapshot>}}}
    {"data": {"operation": {"data": <payload>}}}

Requests and responses are pydantic models, validated at the boundary.
Only the document data field is free-form.

Invariants:
    - A missing document or operation in the response maps to None
    - A response that does not decode raises ProcedureResponseError
    - A unique violation raised inside the procedure maps to
      DuplicateVersionError, same as the table shape
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..db.base import decode_json, encode_json
from ..db.manager import ConnectionManager
from ..errors import ConstraintViolationError, DuplicateVersionError, ProcedureResponseError
from ..sanitize import sanitize
from ..types import Statement
from .operations import check_version

logger = logging.getLogger(__name__)


class Resource(str, Enum):
    """Resource addressed by a procedure request."""

    DOCUMENT = "board_document"
    OPERATION = "board_operation"


class RequestHead(BaseModel):
    """Routing header of a procedure request."""

    model_config = ConfigDict(populate_by_name=True)

    resource: Resource
    sender: str
    collection: str = Field(alias="team_id")
    document: str = Field(alias="board_id")


class SnapshotWrite(BaseModel):
    """Body of a snapshot write."""

    data: Any


class OperationWrite(BaseModel):
    """Body of an operation write."""

    version: int = Field(ge=0)
    data: Any


class ProcedureRequest(BaseModel):
    """Complete procedure request."""

    head: RequestHead
    data: Optional[Union[SnapshotWrite, OperationWrite]] = None

    def to_payload(self) -> dict:
        """Serialize to the wire shape (aliases, no empty body)."""
        exclude = {"data"} if self.data is None else None
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class DataEnvelope(BaseModel):
    """``{"data": ...}`` wrapper used in responses."""

    model_config = ConfigDict(extra="ignore")

    data: Any = None


class ResponseBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    document: Optional[DataEnvelope] = None
    operation: Optional[DataEnvelope] = None


class ProcedureResponse(BaseModel):
    """Complete procedure response."""

    model_config = ConfigDict(extra="ignore")

    data: Optional[ResponseBody] = None

    @property
    def document_data(self) -> Any:
        if self.data is None or self.data.document is None:
            return None
        return self.data.document.data

    @property
    def operation_data(self) -> Any:
        if self.data is None or self.data.operation is None:
            return None
        return self.data.operation.data


class ProcedureStore:
    """Snapshot and operation access through stored procedures.

    Attributes:
        manager: Connection manager (PostgreSQL)
        schema: Schema holding the select/update functions
        sender: Value of head.sender in every request

    Example:
        >>> store = ProcedureStore(manager, schema="api3")
        >>> await store.put_snapshot("team_1", "board_9", {"title": "Plan"})
    """

    def __init__(self, manager: ConnectionManager, schema: str = "api3", sender: str = "be-api") -> None:
        self.manager = manager
        self.schema = schema
        self.sender = sender

    def _head(self, resource: Resource, collection: str, document: str) -> RequestHead:
        return RequestHead(
            resource=resource,
            sender=self.sender,
            collection=collection,
            document=document,
        )

    async def get_snapshot(self, collection: str, document: str) -> Optional[Any]:
        """Read a snapshot through ``<schema>.select``."""
        request = ProcedureRequest(head=self._head(Resource.DOCUMENT, collection, document))
        response = await self._call("select", request, name="get_snapshot")
        return response.document_data

    async def put_snapshot(self, collection: str, document: str, data: Any) -> Any:
        """Write a snapshot through ``<schema>.update``.

        Returns:
            The stored data as reported by the procedure
        """
        request = ProcedureRequest(
            head=self._head(Resource.DOCUMENT, collection, document),
            data=SnapshotWrite(data=sanitize(data)),
        )
        response = await self._call("update", request, name="put_snapshot")
        return response.document_data

    async def append_op(self, collection: str, document: str, version: int, payload: Any) -> Any:
        """Write an operation through ``<schema>.update``.

        Raises:
            DuplicateVersionError: If the procedure reports a unique violation
        """
        check_version(version)
        request = ProcedureRequest(
            head=self._head(Resource.OPERATION, collection, document),
            data=OperationWrite(version=version, data=sanitize(payload)),
        )
        try:
            response = await self._call("update", request, name="append_op")
        except ConstraintViolationError as e:
            raise DuplicateVersionError(
                collection,
                document,
                version,
                statement="append_op",
                cause=e.cause,
            ) from e
        return response.operation_data

    async def _call(self, function: str, request: ProcedureRequest, name: str) -> ProcedureResponse:
        payload = request.to_payload()
        logger.debug(
            "Calling stored procedure",
            extra={
                "function": f"{self.schema}.{function}",
                "resource": request.head.resource.value,
                "collection": request.head.collection,
                "document": request.head.document,
            },
        )

        statement = Statement(
            text=f"SELECT {self.schema}.{function}($1::jsonb) AS doc",
            params=(encode_json(payload),),
            name=name,
        )
        rows = await self.manager.execute(statement)
        return self._decode(rows, name)

    @staticmethod
    def _decode(rows: List[dict], name: str) -> ProcedureResponse:
        if not rows or rows[0].get("doc") is None:
            return ProcedureResponse()

        try:
            raw = decode_json(rows[0]["doc"])
            return ProcedureResponse.model_validate(raw)
        except (ValueError, ValidationError) as e:
            raise ProcedureResponseError(
                f"Procedure response for '{name}' did not decode: {e}",
                statement=name,
                cause=e,
            ) from e
