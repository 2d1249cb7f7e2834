"""
Core value types shared by the stores and the connection layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class DocumentKey:
    """Identity of a document.

    Attributes:
        collection: Collection (namespace) name
        name: Document name within the collection
    """

    collection: str
    name: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.name}"


@dataclass(frozen=True)
class OperationRecord:
    """One row of the operation log.

    Attributes:
        collection: Collection name
        document: Document name
        version: Position in the document history (0-based)
        data: Operation payload as stored
    """

    collection: str
    document: str
    version: int
    data: Any

    @property
    def key(self) -> DocumentKey:
        return DocumentKey(self.collection, self.document)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "collection": self.collection,
            "document": self.document,
            "version": self.version,
            "data": self.data,
        }


@dataclass(frozen=True)
class Statement:
    """A single parameterized SQL statement.

    Placeholders are numbered (``$1``, ``$2``, ...) and bound positionally
    from ``params``. User data never appears in ``text``.

    Attributes:
        text: SQL text with numbered placeholders
        params: Ordered parameter values
        name: Logical name used in logs and errors
    """

    text: str
    params: Tuple[Any, ...] = ()
    name: str = "statement"

    def __str__(self) -> str:
        return f"Statement(name={self.name}, params={len(self.params)})"
