"""
Error types for otstore.

This module defines all exception types raised by the store:
- StoreError: Base exception
- ConnectionError: Pool closed, exhausted or unreachable
- QueryError: Statement rejected by the engine
- StatementTimeoutError: Statement exceeded its time budget
- ConstraintViolationError: Unique or primary key violation
- DuplicateVersionError: Operation version already written
- ProcedureResponseError: Stored procedure returned a malformed payload

Invariants:
    - All errors inherit from StoreError
    - Absence of a snapshot or of operations is never an error
    - Engine errors are always chained (``raise ... from exc``)
    - Errors never carry statement parameters (they hold document data)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .types import DocumentKey


class StoreError(Exception):
    """Base exception for all otstore errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "STORE_ERROR"
        self.details = details or {}


class ConnectionError(StoreError):
    """A pooled connection could not be obtained.

    Raised when:
    - The pool has been shut down
    - No connection became free within the acquire timeout
    - The database is unreachable
    """

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"address": address},
        )
        self.address = address


class QueryError(StoreError):
    """The engine rejected or failed a statement.

    Attributes:
        statement: Logical name of the failed statement
        cause: The underlying driver exception, if any
    """

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
        code: str = "QUERY_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"statement": statement}
        merged.update(details or {})
        super().__init__(message, code=code, details=merged)
        self.statement = statement
        self.cause = cause


class StatementTimeoutError(QueryError):
    """Statement did not finish within the statement timeout."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, statement=statement, cause=cause, code="STATEMENT_TIMEOUT")


class ConstraintViolationError(QueryError):
    """A unique or primary key constraint rejected the write."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
        code: str = "CONSTRAINT_VIOLATION",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            statement=statement,
            cause=cause,
            code=code,
            details=details,
        )


class DuplicateVersionError(ConstraintViolationError):
    """An operation with this version already exists for the document.

    The caller lost an append race. Whether to recompute the version and
    retry or to abort is the caller's decision.
    """

    def __init__(
        self,
        collection: str,
        document: str,
        version: int,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Version {version} already exists for {DocumentKey(collection, document)}",
            statement=statement,
            cause=cause,
            code="DUPLICATE_VERSION",
            details={
                "collection": collection,
                "document": document,
                "version": version,
            },
        )
        self.collection = collection
        self.document = document
        self.version = version


class ProcedureResponseError(QueryError):
    """A stored procedure returned a payload that does not decode."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, statement=statement, cause=cause, code="PROCEDURE_RESPONSE")
