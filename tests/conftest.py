"""Shared fixtures: an upstream repository and a workspace of clones."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pygit2
import pytest

SIGNATURE = pygit2.Signature("Test User", "test@example.com")


def commit_file(
    repo: pygit2.Repository,
    name: str,
    content: str,
    message: str | None = None,
    *,
    ref: str = "HEAD",
    parents: list[pygit2.Oid] | None = None,
) -> pygit2.Oid:
    """Write a file in the working tree and commit it."""
    path = Path(repo.workdir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add(name)
    repo.index.write()
    tree = repo.index.write_tree()
    if parents is None:
        parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit(ref, SIGNATURE, SIGNATURE, message or f"Update {name}", tree, parents)


def branch_tip(path: Path, branch: str = "main") -> pygit2.Oid:
    """Read a branch tip from disk through a fresh handle."""
    return pygit2.Repository(str(path)).references[f"refs/heads/{branch}"].target


@pytest.fixture
def upstream(tmp_path: Path) -> pygit2.Repository:
    """Non-bare repository on branch main with one commit, outside the workspace."""
    repo = pygit2.init_repository(str(tmp_path / "upstream"), initial_head="main")
    commit_file(repo, ".gitignore", "*.log\n", "Ignore logs")
    commit_file(repo, "README.md", "hello\n", "Initial commit")
    return repo


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def clone(upstream: pygit2.Repository, workspace: Path) -> Callable[[str], pygit2.Repository]:
    """Factory cloning the upstream into the workspace."""

    def _clone(name: str) -> pygit2.Repository:
        return pygit2.clone_repository(str(Path(upstream.workdir)), str(workspace / name))

    return _clone
