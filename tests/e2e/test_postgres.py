"""
End-to-end tests against PostgreSQL.

Run with OTSTORE_E2E_DATABASE_URL set (see conftest.py).
"""

import asyncio

import pytest

from otstore.errors import DuplicateVersionError


class TestPostgresTables:
    """Table shape on PostgreSQL."""

    @pytest.mark.asyncio
    async def test_snapshot_lifecycle(self, pg_store):
        """Missing, written, overwritten."""
        assert await pg_store.get_snapshot("team_1", "board_9") is None

        await pg_store.put_snapshot("team_1", "board_9", {"x": 1})
        await pg_store.put_snapshot("team_1", "board_9", {"x": 2})

        assert await pg_store.get_snapshot("team_1", "board_9") == {"x": 2}

    @pytest.mark.asyncio
    async def test_nul_never_reaches_jsonb(self, pg_store):
        """JSONB rejects \\u0000, so it must be stripped first."""
        stored = await pg_store.put_snapshot("team_1", "board_9", {"text": "hello\x00world"})

        assert stored == {"text": "helloworld"}

    @pytest.mark.asyncio
    async def test_ops_and_versions(self, pg_store):
        """Ranges and next version over a real log."""
        for version in range(7):
            await pg_store.append_op("team_1", "board_9", version, {"v": version})

        assert await pg_store.get_ops("team_1", "board_9", 2, 5) == [{"v": 2}, {"v": 3}, {"v": 4}]
        assert await pg_store.get_next_version("team_1", "board_9") == 7

    @pytest.mark.asyncio
    async def test_concurrent_appends_one_winner(self, pg_store):
        """The primary key decides the race."""
        results = await asyncio.gather(
            *(pg_store.append_op("team_1", "board_9", 0, {"writer": i}) for i in range(8)),
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert all(isinstance(r, DuplicateVersionError) for r in results if isinstance(r, Exception))

    @pytest.mark.asyncio
    async def test_bulk_get(self, pg_store):
        """Bulk reads pad missing collections."""
        await pg_store.put_snapshot("teamA", "d1", {"x": 1})

        result = await pg_store.bulk_get_snapshots({"teamA": ["d1", "d2"], "teamB": ["d3"]})

        assert result == {"teamA": {"d1": {"x": 1}}, "teamB": {}}


class TestPostgresProcedures:
    """Stored-procedure shape on PostgreSQL."""

    @pytest.mark.asyncio
    async def test_snapshot_round_trip(self, pg_procedures):
        """Snapshots go through select/update."""
        assert await pg_procedures.get_snapshot("team_1", "board_9") is None

        stored = await pg_procedures.put_snapshot("team_1", "board_9", {"title": "Pl\x00an"})

        assert stored == {"title": "Plan"}
        assert await pg_procedures.get_snapshot("team_1", "board_9") == {"title": "Plan"}

    @pytest.mark.asyncio
    async def test_duplicate_operation(self, pg_procedures):
        """A duplicate version inside the procedure surfaces as DuplicateVersionError."""
        await pg_procedures.append_op("team_1", "board_9", 0, {"op": "a"})

        with pytest.raises(DuplicateVersionError):
            await pg_procedures.append_op("team_1", "board_9", 0, {"op": "b"})
