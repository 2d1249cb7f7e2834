"""
Unit tests for table DDL generation.
"""

from otstore.db.base import POSTGRES_DIALECT, SQLITE_DIALECT
from otstore.store.schema import schema_sql


class TestSchemaSql:
    """Tests for schema_sql."""

    def test_postgres_uses_jsonb(self):
        """PostgreSQL tables store data as JSONB."""
        sql = schema_sql(POSTGRES_DIALECT, "documents", "operations")

        assert "CREATE TABLE IF NOT EXISTS documents" in sql
        assert "CREATE TABLE IF NOT EXISTS operations" in sql
        assert "data JSONB NOT NULL" in sql
        assert "CREATE SCHEMA" not in sql

    def test_sqlite_uses_text(self):
        """SQLite tables store data as TEXT."""
        sql = schema_sql(SQLITE_DIALECT, "documents", "operations")

        assert "data TEXT NOT NULL" in sql
        assert "JSONB" not in sql

    def test_operation_primary_key(self):
        """Versions are unique per document."""
        sql = schema_sql(SQLITE_DIALECT, "documents", "operations")

        assert "PRIMARY KEY (collection_name, document_name, version)" in sql
        assert "PRIMARY KEY (collection, name)" in sql
        assert "CHECK (version >= 0)" in sql

    def test_schema_qualified_tables(self):
        """Schemas are created once for qualified table names."""
        sql = schema_sql(POSTGRES_DIALECT, "ot.documents", "ot.operations")

        assert sql.count("CREATE SCHEMA IF NOT EXISTS ot;") == 1
        assert "CREATE TABLE IF NOT EXISTS ot.documents" in sql
