"""
Git repository access for commit-search.

Thin boundary over the ``gitpython`` library: open or clone a repository,
resolve HEAD, enumerate branches, look up commits and walk parent links.

Design rules
------------
- NO shell-outs; everything goes through the ``git.Repo`` Python API.
- Every GitPython / gitdb failure is re-raised as ``RepositoryError`` with
  the original exception chained, so callers handle one error type.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import git
from git.exc import BadName, BadObject, GitError, ODBError

from errors import RepositoryError
from logging_config import get_logger

logger = get_logger("git")

# Everything the git layer may raise when a ref or object cannot be read
GIT_FAILURES = (GitError, ODBError, BadName, BadObject, ValueError, OSError)

LOCAL = "local"
REMOTE = "remote"


@dataclass(frozen=True)
class Branch:
    """A branch and the commit it currently points at."""

    name: str
    kind: str
    tip: git.Commit


# ---------------------------------------------------------------------------
# 1. Repository resolution
# ---------------------------------------------------------------------------

def get_repo(path: str | Path = ".") -> git.Repo:
    """Resolve the Git repository that contains *path*.

    Searches upward from *path* for a ``.git`` directory so callers can
    pass any file or subdirectory inside the repo.

    Raises:
        RepositoryError: When *path* does not exist or is not in a repository.
    """
    resolved = Path(path).resolve()
    try:
        return git.Repo(str(resolved), search_parent_directories=True)
    except GIT_FAILURES as exc:
        raise RepositoryError(
            f"Not a git repository: {path}", {"exception": str(exc)}
        ) from exc


@contextmanager
def clone_repo(url: str) -> Iterator[git.Repo]:
    """Clone *url* into a temporary directory for the duration of the block.

    The working copy is removed on exit, including when the block raises.

    Raises:
        RepositoryError: When the clone fails.
    """
    workdir = tempfile.mkdtemp(prefix="gm")
    try:
        try:
            repo = git.Repo.clone_from(url, workdir)
        except GIT_FAILURES as exc:
            raise RepositoryError(
                f"Could not clone {url}", {"exception": str(exc)}
            ) from exc
        logger.info(f"Cloned {url} into {workdir}")
        try:
            yield repo
        finally:
            repo.close()
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


# ---------------------------------------------------------------------------
# 2. Commits
# ---------------------------------------------------------------------------

def resolve_head(repo: git.Repo) -> git.Commit:
    """Return the commit HEAD points at.

    Raises:
        RepositoryError: On an unborn or broken HEAD.
    """
    try:
        return repo.head.commit
    except GIT_FAILURES as exc:
        raise RepositoryError(
            "Could not resolve HEAD", {"exception": str(exc)}
        ) from exc


def lookup_commit(repo: git.Repo, commit_id: str) -> git.Commit:
    """Look up a commit by full or abbreviated sha.

    Part of the data-source surface for callers holding a commit id; the
    indexer itself reaches commits through branch tips and parent links.

    Raises:
        RepositoryError: When the object does not exist or is not a commit.
    """
    try:
        return repo.commit(commit_id)
    except GIT_FAILURES as exc:
        raise RepositoryError(
            f"Could not resolve commit '{commit_id}'", {"exception": str(exc)}
        ) from exc


def parents_of(commit: git.Commit) -> tuple[git.Commit, ...]:
    """Return the parents of *commit* in parent-index order.

    Raises:
        RepositoryError: When the commit object cannot be read.
    """
    try:
        return tuple(commit.parents)
    except GIT_FAILURES as exc:
        raise RepositoryError(
            f"Could not read parents of {commit.hexsha}", {"exception": str(exc)}
        ) from exc


# ---------------------------------------------------------------------------
# 3. Branches
# ---------------------------------------------------------------------------

def list_branches(repo: git.Repo) -> list[Branch]:
    """Enumerate local branches, then remote-tracking branches.

    Symbolic remote refs such as ``origin/HEAD`` are skipped; the branch
    they point at is listed under its own name.

    Raises:
        RepositoryError: When a ref cannot be read.
    """
    branches: list[Branch] = []
    try:
        for head in repo.heads:
            branches.append(Branch(name=head.name, kind=LOCAL, tip=head.commit))
        for ref in repo.refs:
            if not isinstance(ref, git.RemoteReference) or ref.remote_head == "HEAD":
                continue
            branches.append(Branch(name=ref.name, kind=REMOTE, tip=ref.commit))
    except GIT_FAILURES as exc:
        raise RepositoryError(
            "Could not enumerate branches", {"exception": str(exc)}
        ) from exc
    return branches
