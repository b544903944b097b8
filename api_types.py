"""
TypedDict definitions for the shapes commit-search hands back to callers.

These types provide:
- IDE autocompletion support
- Static type checking via mypy
- Documentation of the stored field map and operation summaries
"""

from __future__ import annotations

from typing import Literal, TypedDict

# ---------------------------------------------------------------------------
# Stored record fields
# ---------------------------------------------------------------------------


class CommitFields(TypedDict):
    """Field map stored per commit and returned with every search hit."""

    id: str
    message: str
    author_name: str
    author_email: str
    time: int


# ---------------------------------------------------------------------------
# Error Response
# ---------------------------------------------------------------------------


class ErrorResponse(TypedDict):
    """Structured description of a failure."""

    error: Literal[True]
    error_type: str
    message: str
    details: str | dict | None


# ---------------------------------------------------------------------------
# index_repository
# ---------------------------------------------------------------------------


class IndexSummary(TypedDict):
    """Result of one indexing run."""

    index_path: str
    id_prefix: str
    branches: list[str]
    commits_indexed: int
    records_written: int
    skipped: list[ErrorResponse]
    duration_ms: float


# ---------------------------------------------------------------------------
# get_index_stats
# ---------------------------------------------------------------------------


class IndexCounts(TypedDict):
    """Record counts, overall and per id prefix."""

    records: int
    by_prefix: dict[str, int]


class IndexTimeRange(TypedDict):
    """Author time bounds over all records, nanoseconds since epoch."""

    oldest: int | None
    newest: int | None


class IndexDatabaseInfo(TypedDict):
    """Physical database details."""

    size_mb: float
    journal_mode: str
    schema_version: int | None


class IndexStats(TypedDict):
    """Health and content statistics for one index."""

    indexed: bool
    counts: IndexCounts
    time_range: IndexTimeRange
    database: IndexDatabaseInfo
