"""
Commit record mapping for commit-search.

Converts GitPython commits into index records and index field maps back
into records.  Both directions are pure; neither touches the repository
or the index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import git

from api_types import CommitFields
from errors import MalformedRecordError

NANOS_PER_SECOND = 1_000_000_000

TIME_MIN = -(2**63)
TIME_MAX = 2**63 - 1

_TEXT_FIELDS = ("id", "message", "author_name", "author_email")


def make_index_id(id_prefix: str, commit_id: str) -> str:
    """Build the composite primary key for a commit under *id_prefix*."""
    return f"{id_prefix}-{commit_id}"


@dataclass(frozen=True)
class CommitRecord:
    """One searchable commit."""

    index_id: str
    commit_id: str
    message: str
    author_name: str
    author_email: str
    time: int

    def to_fields(self) -> CommitFields:
        return {
            "id": self.commit_id,
            "message": self.message,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "time": self.time,
        }


def to_record(commit: git.Commit, id_prefix: str = "") -> CommitRecord:
    """Extract a record from a ``git.Commit``.

    GitPython decodes messages with ``errors="replace"``, so bytes that are
    invalid in the commit's declared encoding arrive as U+FFFD and are
    indexed as such.  Field types and ranges are checked when the record
    is added to a write batch, see :func:`from_index_fields`.
    """
    sha = commit.hexsha
    author = commit.author
    return CommitRecord(
        index_id=make_index_id(id_prefix, sha),
        commit_id=sha,
        message=commit.message,
        author_name=author.name or "",
        author_email=author.email or "",
        time=int(commit.authored_date) * NANOS_PER_SECOND,
    )


def from_index_fields(index_id: str, fields: dict[str, Any]) -> CommitRecord:
    """Rebuild a record from the field map stored in the index.

    Raises:
        MalformedRecordError: When a field is missing or has the wrong type.
    """
    for name in _TEXT_FIELDS:
        if name not in fields:
            raise MalformedRecordError(
                f"Record {index_id} is missing field '{name}'",
                {"index_id": index_id, "field": name},
            )
        if not isinstance(fields[name], str):
            raise MalformedRecordError(
                f"Record {index_id} field '{name}' is not text",
                {"index_id": index_id, "field": name, "type": type(fields[name]).__name__},
            )

    # bool is an int subclass; reject it explicitly
    when = fields.get("time")
    if isinstance(when, bool) or not isinstance(when, int):
        raise MalformedRecordError(
            f"Record {index_id} field 'time' is not an integer",
            {"index_id": index_id, "field": "time", "type": type(when).__name__},
        )

    # Stored as a signed 64-bit INTEGER
    if not TIME_MIN <= when <= TIME_MAX:
        raise MalformedRecordError(
            f"Record {index_id} field 'time' is out of range",
            {"index_id": index_id, "field": "time", "value": when},
        )

    return CommitRecord(
        index_id=index_id,
        commit_id=fields["id"],
        message=fields["message"],
        author_name=fields["author_name"],
        author_email=fields["author_email"],
        time=when,
    )
