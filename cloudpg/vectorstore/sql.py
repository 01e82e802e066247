"""
SQL text helpers shared by the vector store, index manager and chat history.

Table, column and index names are interpolated into statements, so every
identifier is checked against a strict allow-list and then double-quoted.
Values always travel as bind parameters.
"""

import math
import re
from collections.abc import Iterable, Sequence

import numpy as np

# Unquoted-identifier alphabet; PostgreSQL truncates names past 63 bytes.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
MAX_IDENTIFIER_LENGTH = 63


def is_valid_identifier(name: str) -> bool:
    """Check a name against the identifier allow-list."""
    return (
        isinstance(name, str)
        and len(name) <= MAX_IDENTIFIER_LENGTH
        and _IDENTIFIER_RE.match(name) is not None
    )


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Return ``name`` unchanged if it is a safe identifier.

    Raises:
        ValueError: if the name is empty, too long, or has disallowed characters
    """
    if not is_valid_identifier(name):
        raise ValueError(
            f"Invalid {kind} {name!r}: must match {_IDENTIFIER_RE.pattern} "
            f"and be at most {MAX_IDENTIFIER_LENGTH} characters"
        )
    return name


def quote_identifier(name: str) -> str:
    """Validate and double-quote a single identifier."""
    return f'"{validate_identifier(name)}"'


def qualified_name(schema: str, name: str) -> str:
    """Return ``"schema"."name"`` with both parts validated."""
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def column_list(columns: Iterable[str]) -> str:
    """Comma-join quoted column names."""
    return ", ".join(quote_identifier(c) for c in columns)


def vector_literal(vector: Sequence[float]) -> str:
    """
    Serialize an embedding to pgvector's text form ``[v1,v2,...]``.

    Values are rounded to float32 (pgvector's storage precision) and written
    positionally, never in exponent notation.

    Raises:
        ValueError: on an empty vector or a non-finite component
    """
    if len(vector) == 0:
        raise ValueError("Cannot serialize an empty vector")

    parts = []
    for value in vector:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Vector component is not finite: {value}")
        parts.append(
            np.format_float_positional(np.float32(value), unique=True, trim="-")
        )
    return "[" + ",".join(parts) + "]"
