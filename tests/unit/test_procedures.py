"""
Unit tests for the stored-procedure storage shape.

A recording fake stands in for the ConnectionManager so the exact
request payloads and response decoding can be checked without
PostgreSQL.

Tests cover:
- Request models and wire shape
- Response decoding and missing paths
- Sanitization of outbound data
- Error mapping
"""

import json
from typing import Any, List, Optional

import pytest

from otstore.db.base import POSTGRES_DIALECT
from otstore.errors import (
    ConstraintViolationError,
    DuplicateVersionError,
    ProcedureResponseError,
)
from otstore.store.procedures import (
    OperationWrite,
    ProcedureRequest,
    ProcedureResponse,
    ProcedureStore,
    RequestHead,
    Resource,
)
from otstore.types import Statement


class RecordingManager:
    """Records statements and replies with a canned procedure response."""

    dialect = POSTGRES_DIALECT

    def __init__(self, response: Any = None) -> None:
        self.response = response
        self.error: Optional[Exception] = None
        self.statements: List[Statement] = []

    async def execute(self, statement: Statement) -> List[dict]:
        self.statements.append(statement)
        if self.error is not None:
            raise self.error
        return [{"doc": None if self.response is None else json.dumps(self.response)}]

    @property
    def last_payload(self) -> dict:
        return json.loads(self.statements[-1].params[0])


class TestProcedureModels:
    """Tests for request/response models."""

    def test_request_wire_shape(self):
        """Heads serialize with the procedure's field names."""
        request = ProcedureRequest(
            head=RequestHead(
                resource=Resource.OPERATION,
                sender="be-api",
                collection="team_1",
                document="board_9",
            ),
            data=OperationWrite(version=3, data={"op": "x"}),
        )

        assert request.to_payload() == {
            "head": {
                "resource": "board_operation",
                "sender": "be-api",
                "team_id": "team_1",
                "board_id": "board_9",
            },
            "data": {"version": 3, "data": {"op": "x"}},
        }

    def test_read_request_has_no_body(self):
        """Read requests carry only the head."""
        request = ProcedureRequest(
            head=RequestHead(resource=Resource.DOCUMENT, sender="s", team_id="t", board_id="b"),
        )

        assert "data" not in request.to_payload()

    def test_operation_version_non_negative(self):
        """Negative versions are rejected by the model."""
        with pytest.raises(ValueError):
            OperationWrite(version=-1, data={})

    def test_response_paths(self):
        """Document and operation data are read from their paths."""
        response = ProcedureResponse.model_validate(
            {"data": {"document": {"data": {"x": 1}}, "meta": "ignored"}}
        )

        assert response.document_data == {"x": 1}
        assert response.operation_data is None

    def test_empty_response(self):
        """Missing paths decode to None."""
        assert ProcedureResponse.model_validate({}).document_data is None
        assert ProcedureResponse.model_validate({"data": None}).operation_data is None


class TestProcedureStore:
    """Tests for ProcedureStore."""

    @pytest.mark.asyncio
    async def test_get_snapshot(self):
        """get_snapshot calls <schema>.select and unwraps the document."""
        manager = RecordingManager({"data": {"document": {"data": {"title": "Plan"}}}})
        store = ProcedureStore(manager, schema="api3", sender="be-api")

        data = await store.get_snapshot("team_1", "board_9")

        assert data == {"title": "Plan"}
        assert manager.statements[0].text == "SELECT api3.select($1::jsonb) AS doc"
        assert manager.last_payload == {
            "head": {
                "resource": "board_document",
                "sender": "be-api",
                "team_id": "team_1",
                "board_id": "board_9",
            }
        }

    @pytest.mark.asyncio
    async def test_get_missing_snapshot(self):
        """A NULL procedure result means no snapshot."""
        store = ProcedureStore(RecordingManager(None))

        assert await store.get_snapshot("team_1", "new_board") is None

    @pytest.mark.asyncio
    async def test_put_snapshot_sanitizes(self):
        """Snapshot writes are sanitized before they are sent."""
        manager = RecordingManager({"data": {"document": {"data": {"title": "Plan"}}}})
        store = ProcedureStore(manager, schema="api3")

        stored = await store.put_snapshot("team_1", "board_9", {"title": "Pl\x00an"})

        assert stored == {"title": "Plan"}
        assert manager.statements[0].text == "SELECT api3.update($1::jsonb) AS doc"
        assert manager.last_payload["data"] == {"data": {"title": "Plan"}}

    @pytest.mark.asyncio
    async def test_append_op(self):
        """Operation writes carry the version and the sanitized payload."""
        manager = RecordingManager({"data": {"operation": {"data": {"v": 4, "op": "ab"}}}})
        store = ProcedureStore(manager)

        stored = await store.append_op("team_1", "board_9", 4, {"v": 4, "op": "a\x00b"})

        assert stored == {"v": 4, "op": "ab"}
        payload = manager.last_payload
        assert payload["head"]["resource"] == "board_operation"
        assert payload["data"] == {"version": 4, "data": {"v": 4, "op": "ab"}}

    @pytest.mark.asyncio
    async def test_append_op_duplicate(self):
        """A unique violation inside the procedure is a DuplicateVersionError."""
        manager = RecordingManager()
        manager.error = ConstraintViolationError("dup", statement="append_op")
        store = ProcedureStore(manager)

        with pytest.raises(DuplicateVersionError) as exc_info:
            await store.append_op("team_1", "board_9", 2, {"op": "x"})

        assert exc_info.value.version == 2
        assert exc_info.value.collection == "team_1"

    @pytest.mark.asyncio
    async def test_append_op_rejects_bad_version(self):
        """Versions are validated before any statement is sent."""
        manager = RecordingManager()
        store = ProcedureStore(manager)

        with pytest.raises(ValueError):
            await store.append_op("team_1", "board_9", -1, {})
        assert manager.statements == []

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """Responses of the wrong shape raise ProcedureResponseError."""
        manager = RecordingManager({"data": {"document": "not-an-object"}})
        store = ProcedureStore(manager)

        with pytest.raises(ProcedureResponseError):
            await store.get_snapshot("team_1", "board_9")
