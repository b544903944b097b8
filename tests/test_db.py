"""Tests for the index storage layer."""

from __future__ import annotations

import sqlite3

import pytest

import db as db_mod
from errors import IndexEngineError, MalformedRecordError


def _fields(sha: str, message: str, author: str = "Alice Liddell", when: int = 1) -> dict:
    return {
        "id": sha,
        "message": message,
        "author_name": author,
        "author_email": f"{author.split()[0].lower()}@example.com",
        "time": when,
    }


def _batch(prefix: str, items) -> db_mod.WriteBatch:
    batch = db_mod.WriteBatch()
    for sha, message in items:
        batch.index(f"{prefix}-{sha}", _fields(sha, message))
    return batch


class TestGetDb:
    """Tests for opening and creating indexes."""

    def test_creates_directory_and_schema(self, index_dir):
        assert not index_dir.exists()
        with db_mod.open_index(index_dir) as database:
            tables = {
                r[0] for r in database.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert db_mod.index_db_path(index_dir).exists()
        assert {"commits", "commits_fts", "index_metadata"} <= tables

    def test_reopen_keeps_data(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("p", [("a" * 40, "first")]))
        with db_mod.open_index(index_dir) as database:
            assert database.execute("SELECT COUNT(*) FROM commits").fetchone()[0] == 1

    def test_schema_version_mismatch(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            database.execute("UPDATE index_metadata SET value = '999' WHERE key = 'schema_version'")
            database.commit()
        with pytest.raises(IndexEngineError) as exc_info:
            db_mod.get_db(index_dir)
        assert exc_info.value.details["stored"] == "999"

    def test_open_index_closes_on_error(self, index_dir):
        with pytest.raises(RuntimeError):
            with db_mod.open_index(index_dir) as database:
                raise RuntimeError("boom")
        with pytest.raises(sqlite3.ProgrammingError):
            database.execute("SELECT 1")


class TestWriteBatch:
    """Tests for WriteBatch and submit_batch."""

    def test_last_write_wins_within_batch(self):
        batch = db_mod.WriteBatch()
        batch.index("p-x", _fields("x", "old"))
        batch.index("p-x", _fields("x", "new"))
        assert len(batch) == 1
        assert dict(batch)["p-x"]["message"] == "new"

    def test_rejects_malformed_fields(self):
        batch = db_mod.WriteBatch()
        with pytest.raises(MalformedRecordError):
            batch.index("p-x", {"id": "x", "message": None})
        assert len(batch) == 0

    def test_upsert_overwrites_by_key(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("p", [("a" * 40, "first version")]))
            db_mod.submit_batch(database, _batch("p", [("a" * 40, "second version")]))
            rows = database.execute("SELECT index_id, message FROM commits").fetchall()
        assert rows == [("p-" + "a" * 40, "second version")]

    def test_unchanged_rows_not_rewritten(self, index_dir):
        items = [("a" * 40, "first"), ("b" * 40, "second")]
        with db_mod.open_index(index_dir) as database:
            assert db_mod.submit_batch(database, _batch("p", items)) == 2
            assert db_mod.submit_batch(database, _batch("p", items)) == 0

    def test_records_prefix(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("repo-one", [("a" * 40, "x")]))
            db_mod.submit_batch(database, _batch("", [("a" * 40, "x")]))
            prefixes = sorted(r[0] for r in database.execute("SELECT id_prefix FROM commits"))
        assert prefixes == ["", "repo-one"]

    def test_failed_batch_writes_nothing(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            database.executescript("""
                CREATE TRIGGER reject_boom BEFORE INSERT ON commits
                WHEN new.message = 'boom'
                BEGIN SELECT RAISE(ABORT, 'rejected'); END;
            """)
            batch = _batch("p", [("a" * 40, "fine"), ("b" * 40, "boom")])
            with pytest.raises(IndexEngineError):
                db_mod.submit_batch(database, batch)
            assert database.execute("SELECT COUNT(*) FROM commits").fetchone()[0] == 0


class TestQueryIndex:
    """Tests for query_index function."""

    def test_total_and_paging(self, index_dir):
        items = [(f"{i:040x}", f"widget change {i}") for i in range(5)]
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("p", items))
            first = db_mod.query_index(database, '"widget"', 2, 0)
            second = db_mod.query_index(database, '"widget"', 2, 2)
            third = db_mod.query_index(database, '"widget"', 2, 4)

        assert first.total == 5
        ids = [h.index_id for page in (first, second, third) for h in page.hits]
        assert len(ids) == 5
        assert len(set(ids)) == 5

    def test_hits_carry_fields_and_scores(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("p", [("a" * 40, "tune cache size")]))
            result = db_mod.query_index(database, '"cache"', 10)

        hit = result.hits[0]
        assert hit.index_id == "p-" + "a" * 40
        assert hit.score >= 0
        assert hit.fields["message"] == "tune cache size"
        assert hit.fields["id"] == "a" * 40

    def test_better_match_scores_higher(self, index_dir):
        items = [
            ("a" * 40, "cache cache cache"),
            ("b" * 40, "cache and many other unrelated words here"),
            ("c" * 40, "nothing relevant"),
            ("d" * 40, "still nothing relevant"),
            ("e" * 40, "again nothing"),
        ]
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("p", items))
            hits = db_mod.query_index(database, '"cache"', 10).hits

        assert [h.index_id for h in hits] == ["p-" + "a" * 40, "p-" + "b" * 40]
        assert hits[0].score > hits[1].score

    def test_bad_match_syntax(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            with pytest.raises(IndexEngineError):
                db_mod.query_index(database, '"unterminated', 10)


class TestIndexStats:
    """Tests for get_index_stats function."""

    def test_empty_index(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            stats = db_mod.get_index_stats(database, index_dir)
        assert stats["indexed"] is False
        assert stats["counts"]["records"] == 0
        assert stats["time_range"]["oldest"] is None
        assert stats["database"]["schema_version"] == db_mod.SCHEMA_VERSION

    def test_counts_by_prefix(self, index_dir):
        with db_mod.open_index(index_dir) as database:
            db_mod.submit_batch(database, _batch("a", [("1" * 40, "x"), ("2" * 40, "y")]))
            db_mod.submit_batch(database, _batch("b", [("1" * 40, "x")]))
            stats = db_mod.get_index_stats(database, index_dir)
        assert stats["counts"]["records"] == 3
        assert stats["counts"]["by_prefix"] == {"a": 2, "b": 1}
        assert stats["database"]["journal_mode"] == "wal"
