"""
Index storage layer for commit-search.

Each index is a directory holding one SQLite database with two layers:
  1. Relational table (commits) keyed by the composite record id
  2. FTS5 full-text index (commits_fts) for BM25 keyword search

All writes use upsert semantics so re-indexing is idempotent, and rows
whose content hash has not changed are left untouched.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NamedTuple

import xxhash

import records
from api_types import CommitFields, IndexStats
from errors import IndexEngineError

logger = logging.getLogger(__name__)

# Database file inside the index directory - can be overridden via environment
DEFAULT_INDEX_DB_NAME = "commit_index.db"
INDEX_DB_NAME = os.environ.get("COMMIT_SEARCH_DB_NAME", DEFAULT_INDEX_DB_NAME)

SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# Transaction support
# ---------------------------------------------------------------------------


@contextmanager
def transaction(db: sqlite3.Connection):
    """Context manager for explicit transaction control.

    Starts a transaction, yields control, then commits on success.
    On exception, rolls back automatically.

    Example:
        with transaction(db):
            for key, fields in batch:
                _upsert_commit(db, key, fields)
        # Single commit here
    """
    db.execute("BEGIN")
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


# ---------------------------------------------------------------------------
# Database initialisation
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
-- 0. Metadata table for tracking the schema version
CREATE TABLE IF NOT EXISTS index_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- 1. One row per indexed commit, keyed by "<prefix>-<sha>"
CREATE TABLE IF NOT EXISTS commits (
    id           INTEGER PRIMARY KEY,
    index_id     TEXT    UNIQUE NOT NULL,
    id_prefix    TEXT    NOT NULL,
    commit_id    TEXT    NOT NULL,
    message      TEXT    NOT NULL,
    author_name  TEXT    NOT NULL,
    author_email TEXT    NOT NULL,
    time         INTEGER NOT NULL,
    record_hash  TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS commits_commit_id ON commits(commit_id);

-- 2. FTS5 content-sync'd to commits
CREATE VIRTUAL TABLE IF NOT EXISTS commits_fts USING fts5(
    message,
    author_name,
    author_email,
    content=commits,
    content_rowid=id
);

-- Triggers to keep FTS5 in sync with commits table
CREATE TRIGGER IF NOT EXISTS commits_ai AFTER INSERT ON commits BEGIN
    INSERT INTO commits_fts(rowid, message, author_name, author_email)
    VALUES (new.id, new.message, new.author_name, new.author_email);
END;

CREATE TRIGGER IF NOT EXISTS commits_ad AFTER DELETE ON commits BEGIN
    INSERT INTO commits_fts(commits_fts, rowid, message, author_name, author_email)
    VALUES ('delete', old.id, old.message, old.author_name, old.author_email);
END;

CREATE TRIGGER IF NOT EXISTS commits_au AFTER UPDATE ON commits BEGIN
    INSERT INTO commits_fts(commits_fts, rowid, message, author_name, author_email)
    VALUES ('delete', old.id, old.message, old.author_name, old.author_email);
    INSERT INTO commits_fts(rowid, message, author_name, author_email)
    VALUES (new.id, new.message, new.author_name, new.author_email);
END;
"""


def index_db_path(index_path: str | Path) -> Path:
    """Location of the database file for the index at *index_path*."""
    return Path(index_path).resolve() / INDEX_DB_NAME


def get_db(index_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the index database and ensure schema.

    The database is stored as {index_path}/commit_index.db.  The directory
    is created when missing, so the same call serves "open existing" and
    "create new".

    Args:
        index_path: The index directory.

    Returns:
        A ready-to-use ``sqlite3.Connection`` in WAL mode.

    Raises:
        IndexEngineError: When the database cannot be opened or its schema
            version is not the one this code writes.
    """
    db_path = index_db_path(index_path)
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = sqlite3.connect(str(db_path))
    except (OSError, sqlite3.Error) as exc:
        raise IndexEngineError(
            f"Could not open index at {index_path}", {"exception": str(exc)}
        ) from exc

    try:
        db.execute("PRAGMA journal_mode=WAL")
        db.executescript(_SCHEMA_SQL)

        stored = db.execute(
            "SELECT value FROM index_metadata WHERE key = 'schema_version'"
        ).fetchone()
        if stored is None:
            db.execute(
                "INSERT INTO index_metadata (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
            db.commit()
            logger.info(f"Created commit index at {db_path}")
        elif int(stored[0]) != SCHEMA_VERSION:
            raise IndexEngineError(
                f"Index at {index_path} has schema version {stored[0]}, expected {SCHEMA_VERSION}",
                {"stored": stored[0], "expected": SCHEMA_VERSION},
            )
    except sqlite3.Error as exc:
        db.close()
        raise IndexEngineError(
            f"Could not initialise index at {index_path}", {"exception": str(exc)}
        ) from exc
    except IndexEngineError:
        db.close()
        raise

    return db


@contextmanager
def open_index(index_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Scoped access to an index; the connection is closed on every exit path."""
    db = get_db(index_path)
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Write batches
# ---------------------------------------------------------------------------


def record_hash(fields: CommitFields) -> str:
    """Compute a fast non-cryptographic hash of a record's stored fields.

    Uses xxHash (xxh64); only used to detect unchanged rows on re-index.
    """
    h = xxhash.xxh64()
    for name in ("id", "message", "author_name", "author_email"):
        h.update(fields[name].encode("utf-8", errors="surrogatepass"))
        h.update(b"\x00")
    h.update(str(fields["time"]).encode("ascii"))
    return h.hexdigest()


class WriteBatch:
    """Pending keyed writes, submitted together by :func:`submit_batch`.

    Adding the same key twice keeps the last value.
    """

    def __init__(self) -> None:
        self._pending: dict[str, CommitFields] = {}

    def index(self, index_id: str, fields: CommitFields) -> None:
        """Queue *fields* under *index_id*.

        Raises:
            MalformedRecordError: When the field map cannot be stored.
        """
        checked = records.from_index_fields(index_id, dict(fields))
        self._pending[index_id] = checked.to_fields()

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[tuple[str, CommitFields]]:
        return iter(self._pending.items())


def _prefix_of(index_id: str, commit_id: str) -> str:
    suffix = f"-{commit_id}"
    if index_id.endswith(suffix):
        return index_id[: -len(suffix)]
    return ""


def _upsert_commit(db: sqlite3.Connection, index_id: str, fields: CommitFields) -> int:
    """Insert or update one commit row. Returns the number of rows written."""
    cur = db.execute(
        """
        INSERT INTO commits (index_id, id_prefix, commit_id, message,
                             author_name, author_email, time, record_hash)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(index_id) DO UPDATE SET
            id_prefix    = excluded.id_prefix,
            commit_id    = excluded.commit_id,
            message      = excluded.message,
            author_name  = excluded.author_name,
            author_email = excluded.author_email,
            time         = excluded.time,
            record_hash  = excluded.record_hash
        WHERE commits.record_hash != excluded.record_hash
        """,
        (
            index_id,
            _prefix_of(index_id, fields["id"]),
            fields["id"],
            fields["message"],
            fields["author_name"],
            fields["author_email"],
            fields["time"],
            record_hash(fields),
        ),
    )
    return max(cur.rowcount, 0)


def submit_batch(db: sqlite3.Connection, batch: WriteBatch) -> int:
    """Write every pending record in one transaction.

    Either all records land or none do.

    Returns:
        Number of rows inserted or changed (unchanged rows are not counted).

    Raises:
        IndexEngineError: When the transaction fails.
    """
    written = 0
    try:
        with transaction(db):
            for index_id, fields in batch:
                written += _upsert_commit(db, index_id, fields)
    except sqlite3.Error as exc:
        raise IndexEngineError(
            f"Batch of {len(batch)} records could not be submitted",
            {"exception": str(exc)},
        ) from exc
    logger.debug(f"Submitted batch: {len(batch)} records, {written} written")
    return written


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class Hit(NamedTuple):
    """A single scored match with its stored fields."""

    index_id: str
    score: float
    fields: dict[str, Any]


class QueryResult(NamedTuple):
    total: int
    hits: list[Hit]


def query_index(db: sqlite3.Connection, match: str, limit: int, offset: int = 0) -> QueryResult:
    """Run one bounded FTS5 query.

    Hits come back best first.  ``bm25()`` is negated so larger scores are
    better and every match scores >= 0.  Ties are broken by record id so
    consecutive pages never overlap.

    Args:
        db: An open connection from :func:`get_db`.
        match: An FTS5 MATCH expression.
        limit: Page size.
        offset: Number of hits to skip.

    Raises:
        IndexEngineError: When the engine rejects the query.
    """
    try:
        total = db.execute(
            "SELECT COUNT(*) FROM commits_fts WHERE commits_fts MATCH ?",
            (match,),
        ).fetchone()[0]
        rows = db.execute(
            """
            SELECT c.index_id, c.commit_id, c.message, c.author_name,
                   c.author_email, c.time, -bm25(commits_fts) AS score
            FROM commits_fts
            JOIN commits c ON c.id = commits_fts.rowid
            WHERE commits_fts MATCH ?
            ORDER BY score DESC, c.index_id
            LIMIT ? OFFSET ?
            """,
            (match, limit, offset),
        ).fetchall()
    except sqlite3.Error as exc:
        raise IndexEngineError(
            f"Query failed: {exc}", {"match": match, "offset": offset}
        ) from exc

    hits = [
        Hit(
            index_id=r[0],
            score=r[6],
            fields={
                "id": r[1],
                "message": r[2],
                "author_name": r[3],
                "author_email": r[4],
                "time": r[5],
            },
        )
        for r in rows
    ]
    return QueryResult(total=total, hits=hits)


# ---------------------------------------------------------------------------
# Index Statistics
# ---------------------------------------------------------------------------

def get_index_stats(db: sqlite3.Connection, index_path: str | Path) -> IndexStats:
    """Get statistics about the index.

    Args:
        db: An open sqlite3.Connection.
        index_path: The index directory.

    Returns:
        Dictionary with record counts (overall and per id prefix), the
        author time range, schema version and database size.
    """
    records_count = db.execute("SELECT COUNT(*) FROM commits").fetchone()[0]

    by_prefix = dict(db.execute(
        "SELECT id_prefix, COUNT(*) FROM commits GROUP BY id_prefix ORDER BY id_prefix"
    ).fetchall())

    oldest, newest = db.execute("SELECT MIN(time), MAX(time) FROM commits").fetchone()

    schema_version = db.execute(
        "SELECT value FROM index_metadata WHERE key = 'schema_version'"
    ).fetchone()

    db_path = index_db_path(index_path)
    db_size_bytes = os.path.getsize(db_path) if db_path.exists() else 0

    journal_mode = db.execute("PRAGMA journal_mode").fetchone()[0]

    return {
        "indexed": records_count > 0,
        "counts": {
            "records": records_count,
            "by_prefix": by_prefix,
        },
        "time_range": {
            "oldest": oldest,
            "newest": newest,
        },
        "database": {
            "size_mb": round(db_size_bytes / (1024 * 1024), 2),
            "journal_mode": journal_mode,
            "schema_version": int(schema_version[0]) if schema_version else None,
        },
    }
