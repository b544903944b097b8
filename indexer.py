"""
Commit graph indexer for commit-search.

Walks a repository's commit DAG from branch tips, converts every reachable
commit into one search record and submits all records to the index as a
single atomic batch.

Traversal uses an explicit stack, so history depth is bounded by memory
rather than by the interpreter's recursion limit.  Each run carries its own
visit set and write batch in an :class:`IndexRun`; nothing is shared between
runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import git

import db as db_mod
import records
import repository
import validation as val
from api_types import ErrorResponse, IndexSummary
from errors import MalformedRecordError, format_error
from logging_config import IndexingLogger, OperationLogger, get_logger, log_timing

logger = get_logger("indexer")


@dataclass
class IndexRun:
    """State owned by one indexing run."""

    id_prefix: str
    visited: set[str] = field(default_factory=set)
    batch: db_mod.WriteBatch = field(default_factory=db_mod.WriteBatch)
    skipped: list[ErrorResponse] = field(default_factory=list)


def select_branches(
    branches: Iterable[repository.Branch], filters: Sequence[str] | None
) -> list[repository.Branch]:
    """Pick the branches to walk.

    No filters, or a single empty filter, selects every branch.  Otherwise a
    branch is selected when its name equals one of the filters.
    """
    if not filters or (len(filters) == 1 and filters[0] == ""):
        return list(branches)
    wanted = set(filters)
    return [b for b in branches if b.name in wanted]


def walk_commits(
    tip: git.Commit,
    run: IndexRun,
    progress: IndexingLogger | None = None,
) -> int:
    """Add every not-yet-visited commit reachable from *tip* to the run's batch.

    Depth-first, parent 0 before parent 1.  A commit already in
    ``run.visited`` is skipped together with the part of its ancestry
    reached only through it.

    Returns:
        Number of records added to the batch by this walk.

    Raises:
        RepositoryError: When a commit or its parents cannot be read.
    """
    added = 0
    stack = [tip]
    while stack:
        commit = stack.pop()
        sha = commit.hexsha
        if sha in run.visited:
            continue
        run.visited.add(sha)

        # Reading parents loads the commit object; lookup failures abort here
        parents = repository.parents_of(commit)

        try:
            record = records.to_record(commit, run.id_prefix)
            run.batch.index(record.index_id, record.to_fields())
        except MalformedRecordError as exc:
            run.skipped.append(format_error(exc))
            if progress is not None:
                progress.commit_skipped(sha, exc.message)
        else:
            added += 1
            if progress is not None:
                progress.commit_indexed(sha)

        stack.extend(reversed(parents))
    return added


def index_repository(
    repo: git.Repo,
    index_path: str | Path,
    id_prefix: str = "",
    branch_filters: str | Iterable[str] | None = None,
    *,
    legacy_head_walk: bool = False,
) -> IndexSummary:
    """Index every commit reachable from the selected branches.

    Args:
        repo: An open ``git.Repo``.
        index_path: Index directory; created when missing.
        id_prefix: Namespace for record ids, so several repositories can
            share one index.
        branch_filters: Branch names to walk. None, ``[]`` or ``[""]``
            walks all branches.
        legacy_head_walk: Walk HEAD for every selected branch instead of
            the branch's own tip.  Because the visit set spans the whole
            run, only the first selected branch then contributes records.

    Returns:
        An ``IndexSummary`` describing the run.

    Raises:
        RepositoryError: When HEAD, a branch or a commit cannot be read.
            Nothing is written in that case.
        IndexEngineError: When the index cannot be opened or written.
        ValidationError: On invalid arguments.
    """
    index_dir = val.validate_index_path(index_path)
    prefix = val.validate_id_prefix(id_prefix)
    filters = val.validate_branch_filters(branch_filters)

    with OperationLogger(
        "index_repository",
        index_path=str(index_dir),
        id_prefix=prefix,
        branches=filters or None,
        legacy_head_walk=legacy_head_walk or None,
    ) as op:
        progress = IndexingLogger(str(repo.working_tree_dir or repo.git_dir))
        progress.start(str(index_dir))

        with db_mod.open_index(index_dir) as database:
            run = IndexRun(id_prefix=prefix)
            walked: list[str] = []
            for branch in select_branches(repository.list_branches(repo), filters):
                tip = repository.resolve_head(repo) if legacy_head_walk else branch.tip
                added = walk_commits(tip, run, progress)
                progress.branch_walked(branch.name, added)
                walked.append(branch.name)

            with log_timing(f"Submitting {len(run.batch)} records", logger):
                written = db_mod.submit_batch(database, run.batch)

        progress.complete()
        op.set_result_count(len(run.batch))

        return {
            "index_path": str(index_dir),
            "id_prefix": prefix,
            "branches": walked,
            "commits_indexed": len(run.batch),
            "records_written": written,
            "skipped": run.skipped,
            "duration_ms": op.elapsed_ms(),
        }


def index_remote(
    url: str,
    index_path: str | Path,
    id_prefix: str = "",
    branch_filters: str | Iterable[str] | None = None,
    *,
    legacy_head_walk: bool = False,
) -> IndexSummary:
    """Clone *url* into a temporary directory, index it, then remove the clone."""
    with repository.clone_repo(url) as repo:
        return index_repository(
            repo,
            index_path,
            id_prefix,
            branch_filters,
            legacy_head_walk=legacy_head_walk,
        )
