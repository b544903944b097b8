"""
Shared test fixtures for commit-search tests.
"""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import git
import pytest

ALICE = git.Actor("Alice Liddell", "alice@example.com")
BOB = git.Actor("Bob Builder", "bob@example.com")


class RepoBuilder:
    """Builds commit graphs with exact parent links and author dates.

    Commits are written straight from the (empty) index with
    ``head=False``, so the graph shape is whatever the test asks for and
    branches and HEAD are placed explicitly.
    """

    def __init__(self, path: Path):
        self.path = path
        self.repo = git.Repo.init(path)
        self._clock = 1_700_000_000

    def commit(
        self, message: str, parents=(), author: git.Actor = ALICE, when: int | None = None
    ) -> git.Commit:
        """Write a commit; *when* overrides the builder's clock for this commit only."""
        if when is None:
            self._clock += 60
            when = self._clock
        date = f"{when} +0000"
        return self.repo.index.commit(
            message,
            parent_commits=list(parents),
            head=False,
            author=author,
            committer=author,
            author_date=date,
            commit_date=date,
        )

    def chain(self, messages, parent: git.Commit | None = None) -> list[git.Commit]:
        """Commit *messages* in order, each on top of the previous one."""
        commits = []
        for message in messages:
            parent = self.commit(message, [parent] if parent is not None else [])
            commits.append(parent)
        return commits

    def branch(self, name: str, commit: git.Commit) -> git.Head:
        return self.repo.create_head(name, commit)

    def checkout(self, name: str) -> None:
        """Point HEAD at branch *name* (no working tree update)."""
        self.repo.head.reference = self.repo.heads[name]


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for file tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def index_dir(temp_dir):
    """Directory for the index; deliberately not created up front."""
    return temp_dir / "index"


@pytest.fixture
def repo_builder(temp_dir):
    """Provide an empty repository wrapped in a RepoBuilder."""
    builder = RepoBuilder(temp_dir / "repo")
    yield builder
    builder.repo.close()


@pytest.fixture
def linear_repo(repo_builder):
    """Three commits A -> B -> C on main, HEAD at C."""
    a, b, c = repo_builder.chain([
        "Initial import of the project",
        "Fix parser overflow on long lines",
        "Add contributor documentation",
    ])
    repo_builder.branch("main", c)
    repo_builder.checkout("main")
    repo_builder.commits = {"A": a, "B": b, "C": c}
    return repo_builder


@pytest.fixture
def merge_repo(repo_builder):
    """Root R, P1 and P2 both on R, merge M of (P1, P2); HEAD at M."""
    r = repo_builder.commit("Root commit")
    p1 = repo_builder.commit("Left side change", [r])
    p2 = repo_builder.commit("Right side change", [r], author=BOB)
    m = repo_builder.commit("Merge left and right", [p1, p2])
    repo_builder.branch("main", m)
    repo_builder.checkout("main")
    repo_builder.commits = {"R": r, "P1": p1, "P2": p2, "M": m}
    return repo_builder


@pytest.fixture
def branched_repo(repo_builder):
    """main: A -> B, feature: A -> C, HEAD on main."""
    a = repo_builder.commit("Shared base commit")
    b = repo_builder.commit("Main line work", [a])
    c = repo_builder.commit("Feature branch work", [a], author=BOB)
    repo_builder.branch("main", b)
    repo_builder.branch("feature", c)
    repo_builder.checkout("main")
    repo_builder.commits = {"A": a, "B": b, "C": c}
    return repo_builder
