"""
Table definitions for the table storage shape.

Table schema:
    <snapshot_table>:
        - collection TEXT
        - name TEXT
        - data JSONB (TEXT on SQLite)
        - PRIMARY KEY (collection, name)

    <operation_table>:
        - collection_name TEXT
        - document_name TEXT
        - version INTEGER, CHECK (version >= 0)
        - data JSONB (TEXT on SQLite)
        - PRIMARY KEY (collection_name, document_name, version)

The operation primary key is what rejects a second write of the same
version; it also serves the ordered range scan in get_ops.

How to change safely:
    - Schema changes must be backward compatible with existing rows
    - Never drop the operation primary key
"""

from __future__ import annotations

from ..db.base import Dialect


def schema_sql(dialect: Dialect, snapshot_table: str, operation_table: str) -> str:
    """Build the idempotent DDL script for both tables.

    Args:
        dialect: Target SQL dialect
        snapshot_table: Snapshot table name (validated identifier)
        operation_table: Operation table name (validated identifier)

    Returns:
        DDL script using CREATE ... IF NOT EXISTS
    """
    statements = []

    if dialect.supports_schemas:
        schemas = sorted(
            {name.split(".", 1)[0] for name in (snapshot_table, operation_table) if "." in name}
        )
        statements.extend(f"CREATE SCHEMA IF NOT EXISTS {schema};" for schema in schemas)

    statements.append(f"""
        CREATE TABLE IF NOT EXISTS {snapshot_table} (
            collection TEXT NOT NULL,
            name TEXT NOT NULL,
            data {dialect.json_type} NOT NULL,
            PRIMARY KEY (collection, name)
        );""")

    statements.append(f"""
        CREATE TABLE IF NOT EXISTS {operation_table} (
            collection_name TEXT NOT NULL,
            document_name TEXT NOT NULL,
            version INTEGER NOT NULL CHECK (version >= 0),
            data {dialect.json_type} NOT NULL,
            PRIMARY KEY (collection_name, document_name, version)
        );""")

    return "\n".join(statements)
