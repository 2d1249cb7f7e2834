"""
Outbound data sanitizer.

PostgreSQL rejects the NUL character in TEXT and JSONB values, so every
snapshot and operation payload passes through ``sanitize`` before it is
written.

Invariants:
    - Input is never mutated; a new structure is returned
    - Non-string scalars are returned unchanged
    - sanitize(sanitize(x)) == sanitize(x)
"""

from __future__ import annotations

from typing import Any

NUL = "\x00"


def strip_nul(text: str) -> str:
    """Remove every NUL character from a string."""
    if NUL not in text:
        return text
    return text.replace(NUL, "")


def sanitize(value: Any) -> Any:
    """Recursively strip NUL characters from strings in nested data.

    Dict keys are cleaned as well as values. Lists and tuples keep their
    type. Cyclic structures are not supported.

    Args:
        value: JSON-like data (dicts, lists, tuples, strings, scalars)

    Returns:
        A sanitized copy of ``value``

    Example:
        >>> sanitize({"a\\x00": ["x\\x00y", 1, None]})
        {'a': ['xy', 1, None]}
    """
    if isinstance(value, str):
        return strip_nul(value)
    if isinstance(value, dict):
        return {
            (strip_nul(k) if isinstance(k, str) else k): sanitize(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize(item) for item in value)
    return value
