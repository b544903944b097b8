"""
Query layer for commit-search.

Compiles query strings into FTS5 MATCH expressions and runs paginated,
score-filtered searches against an index, stitching the pages back into
one relevance-ordered list.
"""

from __future__ import annotations

import math
import re
from pathlib import Path

import db as db_mod
import records
import validation as val
from api_types import IndexStats
from errors import MalformedRecordError, ValidationError
from logging_config import OperationLogger, get_logger

logger = get_logger("queries")

PAGE_SIZE = 30

# ---------------------------------------------------------------------------
# Query string -> FTS5 MATCH
# ---------------------------------------------------------------------------

# Field names accepted before a colon, mapped to FTS5 columns
_FIELDS = {
    "message": "message",
    "msg": "message",
    "author_name": "author_name",
    "author": "author_name",
    "author_email": "author_email",
    "email": "author_email",
}

# [+|-][field:]("phrase"|term)
_TOKEN_RE = re.compile(r'([+-]?)(?:([A-Za-z_]+):)?("[^"]*"?|\S+)')


def _phrase(text: str) -> str:
    # FTS5 strings escape double-quotes by doubling them
    return '"' + text.replace('"', '""') + '"'


def _clause(field: str | None, raw: str) -> str | None:
    """Turn one ``[field:]term`` token into an FTS5 clause, or None if empty."""
    column = _FIELDS.get(field.lower()) if field else None
    if field and column is None:
        # Unknown field: search the token as plain text
        raw = f"{field}:{raw}"

    prefix = False
    if raw.startswith('"'):
        text = raw.strip('"')
    else:
        if raw.endswith("*"):
            prefix = True
            raw = raw.rstrip("*")
        text = raw

    # Punctuation-only tokens produce no FTS5 tokens
    if not any(ch.isalnum() for ch in text):
        return None

    clause = _phrase(text) + (" *" if prefix else "")
    if column is not None:
        clause = f"{column} : {clause}"
    return f"({clause})"


def build_match_expression(query: str) -> str:
    """Compile a query string into an FTS5 MATCH expression.

    Syntax:
        - ``term``: optional; at least one optional term must match
        - ``+term``: required (optional terms are ignored when any exist)
        - ``-term``: excluded
        - ``"a phrase"``: exact phrase
        - ``field:term``: restrict to ``message``, ``author`` or ``email``
        - ``term*``: prefix match

    Raises:
        ValidationError: When nothing but exclusions remains.
    """
    required: list[str] = []
    optional: list[str] = []
    excluded: list[str] = []

    for op, field, raw in _TOKEN_RE.findall(query):
        clause = _clause(field or None, raw)
        if clause is None:
            continue
        if op == "+":
            required.append(clause)
        elif op == "-":
            excluded.append(clause)
        else:
            optional.append(clause)

    if required:
        expression = " AND ".join(required)
    elif optional:
        expression = " OR ".join(optional)
    else:
        raise ValidationError(
            "Query needs at least one term that is not excluded",
            {"query": query},
        )

    for clause in excluded:
        expression = f"({expression}) NOT {clause}"
    return expression


# ---------------------------------------------------------------------------
# Paginated search
# ---------------------------------------------------------------------------


def _collect(
    hits: list[db_mod.Hit],
    min_score: float,
    out: list[tuple[records.CommitRecord, float]],
) -> None:
    """Append decoded hits scoring at least *min_score*; skip malformed ones."""
    for hit in hits:
        if hit.score < min_score:
            continue
        try:
            record = records.from_index_fields(hit.index_id, hit.fields)
        except MalformedRecordError as exc:
            logger.warning(f"Skipping malformed hit {hit.index_id}: {exc.message}")
            continue
        out.append((record, hit.score))


def search_with_scores(
    index_path: str | Path,
    query: str,
    min_score: float = 0.0,
    *,
    page_size: int = PAGE_SIZE,
) -> list[tuple[records.CommitRecord, float]]:
    """Return every hit scoring at least *min_score*, best first, with scores.

    The first page reports the engine's total match count; one more page is
    requested per ``page_size`` hits in that total.  Hits below the
    threshold are dropped without changing how many pages are fetched.

    Args:
        index_path: Index directory.
        query: Query string, see :func:`build_match_expression`.
        min_score: Minimum relevance score, inclusive.
        page_size: Hits per engine round-trip.

    Raises:
        IndexEngineError: When the index cannot be opened or a page query fails.
        ValidationError: On invalid arguments.
    """
    text = val.validate_query(query)
    threshold = val.validate_min_score(min_score)
    size = val.validate_page_size(page_size)
    index_dir = val.validate_index_path(index_path)
    match = build_match_expression(text)

    with OperationLogger("search", index_path=str(index_dir), query=text, min_score=threshold) as op:
        results: list[tuple[records.CommitRecord, float]] = []
        with db_mod.open_index(index_dir) as database:
            first = db_mod.query_index(database, match, size, 0)
            _collect(first.hits, threshold, results)

            offset = size
            for _ in range(math.ceil(first.total / size)):
                page = db_mod.query_index(database, match, size, offset)
                _collect(page.hits, threshold, results)
                offset += size

        logger.debug(f"Query '{text}' matched {first.total} records, kept {len(results)}")
        op.set_result_count(len(results))
        return results


def search(
    index_path: str | Path,
    query: str,
    min_score: float = 0.0,
    *,
    page_size: int = PAGE_SIZE,
) -> list[records.CommitRecord]:
    """Return every record scoring at least *min_score*, in relevance order."""
    return [
        record
        for record, _ in search_with_scores(index_path, query, min_score, page_size=page_size)
    ]


def index_stats(index_path: str | Path) -> IndexStats:
    """Open the index at *index_path* and report its statistics."""
    index_dir = val.validate_index_path(index_path)
    with db_mod.open_index(index_dir) as database:
        return db_mod.get_index_stats(database, index_dir)
