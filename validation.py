"""
Input validation for commit-search operations.

Provides validation functions for all public parameters with
clear error messages.
"""

from __future__ import annotations

import math
import unicodedata
from collections.abc import Iterable
from pathlib import Path

from errors import ValidationError

MAX_PREFIX_LENGTH = 200


def validate_index_path(path: str | Path) -> Path:
    """Validate an index directory path.

    The directory does not have to exist yet (it is created on first use),
    but the path must not point at an existing regular file.

    Args:
        path: Index directory path to validate

    Returns:
        Resolved Path object

    Raises:
        ValidationError: If path is empty or names a file
    """
    if path is None or not str(path).strip():
        raise ValidationError("Index path cannot be empty")

    try:
        resolved = Path(path).resolve()
    except Exception as e:
        raise ValidationError(f"Invalid index path: {path}", {"exception": str(e)})

    if resolved.exists() and not resolved.is_dir():
        raise ValidationError(f"Index path is not a directory: {path}")

    return resolved


def validate_query(query: str, min_length: int = 1, max_length: int = 1000) -> str:
    """Validate and sanitize query string.

    Args:
        query: Query string to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Sanitized query string (stripped whitespace)

    Raises:
        ValidationError: If query is invalid
    """
    if query is None:
        raise ValidationError("Query cannot be None")

    sanitized = query.strip()

    if len(sanitized) < min_length:
        raise ValidationError(
            f"Query too short (minimum {min_length} characters)",
            {"length": len(sanitized), "minimum": min_length}
        )

    if len(sanitized) > max_length:
        raise ValidationError(
            f"Query too long (maximum {max_length} characters)",
            {"length": len(sanitized), "maximum": max_length}
        )

    bad = [c for c in sanitized if unicodedata.category(c) == "Cc" and c not in "\t\n\r"]
    if bad:
        raise ValidationError(
            "Query contains control characters",
            {"characters": sorted({f"U+{ord(c):04X}" for c in bad})}
        )

    return sanitized


def validate_min_score(value: float | int | None) -> float:
    """Validate the minimum relevance score.

    None means "keep everything" and maps to 0.0.

    Raises:
        ValidationError: If value is not a finite number
    """
    if value is None:
        return 0.0

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            "min_score must be a number",
            {"provided_type": type(value).__name__}
        )

    if not math.isfinite(value):
        raise ValidationError("min_score must be finite", {"provided": value})

    return float(value)


def validate_page_size(value: int, min_val: int = 1, max_val: int = 1000) -> int:
    """Validate the page size used for paginated queries.

    Raises:
        ValidationError: If value is not an integer in range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            "page_size must be an integer",
            {"provided_type": type(value).__name__}
        )

    if value < min_val or value > max_val:
        raise ValidationError(
            f"page_size must be between {min_val} and {max_val}",
            {"provided": value, "minimum": min_val, "maximum": max_val}
        )

    return value


def validate_id_prefix(prefix: str | None) -> str:
    """Validate the id prefix that namespaces one repository's records.

    Args:
        prefix: Prefix to validate (None is treated as empty)

    Returns:
        Validated prefix

    Raises:
        ValidationError: If prefix contains whitespace or is too long
    """
    if prefix is None:
        return ""

    if not isinstance(prefix, str):
        raise ValidationError(
            "id_prefix must be a string",
            {"provided_type": type(prefix).__name__}
        )

    if any(c.isspace() for c in prefix):
        raise ValidationError(
            f"id_prefix cannot contain whitespace: '{prefix}'"
        )

    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ValidationError(
            f"id_prefix too long (maximum {MAX_PREFIX_LENGTH} characters)",
            {"length": len(prefix), "maximum": MAX_PREFIX_LENGTH}
        )

    return prefix


def validate_branch_filters(filters: str | Iterable[str] | None) -> list[str]:
    """Normalise branch filters into a list of names.

    A single string is treated as one filter. The empty list and ``[""]``
    are returned unchanged; their match-all meaning is decided by the
    indexer.

    Raises:
        ValidationError: If any filter is not a string
    """
    if filters is None:
        return []

    if isinstance(filters, str):
        return [filters]

    result = list(filters)
    for name in result:
        if not isinstance(name, str):
            raise ValidationError(
                "Branch filters must be strings",
                {"provided_type": type(name).__name__}
            )

    return result
