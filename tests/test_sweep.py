"""Tests for the per-repository pipeline and SweepManager."""

from __future__ import annotations

from pathlib import Path

import pygit2
import pytest

from git_sweep import core
from git_sweep.core import (
    ActionKind,
    DiscoveryError,
    GitRepository,
    NetworkError,
    Pull,
    SkipReason,
    SweepConfig,
    SweepManager,
    SweepSummary,
    SyncOutcome,
    SyncResult,
    sweep_repository,
)

from .conftest import branch_tip, commit_file


def _by_name(results: list[SyncResult]) -> dict[str, SyncResult]:
    return {r.name: r for r in results}


# =============================================================================
# Discovery
# =============================================================================


class TestDiscovery:
    """Tests for SweepManager.discover_repositories()."""

    def test_finds_immediate_repositories_only(self, clone, workspace: Path) -> None:
        clone("beta")
        clone("alpha")
        (workspace / "notes.txt").write_text("not a repo\n")
        (workspace / "plain").mkdir()
        (workspace / "plain" / "nested").mkdir()
        pygit2.init_repository(str(workspace / "plain" / "nested" / "deep"))

        repos = SweepManager(workspace).discover_repositories()
        assert [r.name for r in repos] == ["alpha", "beta"]

    def test_does_not_search_parent_repository(self, workspace: Path) -> None:
        pygit2.init_repository(str(workspace))
        (workspace / "plain").mkdir()
        assert SweepManager(workspace).discover_repositories() == []

    def test_unreadable_root_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(DiscoveryError):
            SweepManager(tmp_path / "missing").discover_repositories()

    def test_plan_classifies_without_network(self, clone) -> None:
        repo = clone("alpha")
        planned = SweepManager(Path(repo.workdir).parent).plan()
        assert [(r.name, a) for r, a in planned] == [("alpha", Pull(Path(repo.workdir)))]

    def test_discovery_does_not_hold_repositories_open(self, clone, workspace: Path) -> None:
        clone("alpha")
        clone("beta")

        manager = SweepManager(workspace)
        assert all(r._repo is None for r in manager.discover_repositories())
        manager.plan()
        assert all(r._repo is None for r in manager.discover_repositories())


# =============================================================================
# Single repository pipeline
# =============================================================================


class TestSweepRepository:
    """Tests for sweep_repository()."""

    def test_fast_forwards_three_new_commits(self, upstream, clone) -> None:
        repo = clone("alpha")
        old_tip = repo.head.target
        for i in range(3):
            new_tip = commit_file(upstream, f"file{i}.txt", f"{i}\n")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.FAST_FORWARDED
        assert result.action == ActionKind.PULL
        assert result.branch == "main"
        assert result.old_tip == str(old_tip)[:7]
        assert result.new_tip == str(new_tip)[:7]
        assert branch_tip(Path(repo.workdir)) == new_tip
        for i in range(3):
            assert (Path(repo.workdir) / f"file{i}.txt").read_text() == f"{i}\n"
        assert pygit2.Repository(repo.workdir).status() == {}

    def test_second_run_is_up_to_date(self, upstream, clone) -> None:
        repo = clone("alpha")
        new_tip = commit_file(upstream, "file.txt", "x\n")

        first = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())
        second = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert first.outcome == SyncOutcome.FAST_FORWARDED
        assert second.outcome == SyncOutcome.UP_TO_DATE
        assert branch_tip(Path(repo.workdir)) == new_tip

    def test_dirty_tree_is_fetched_but_not_updated(self, upstream, clone) -> None:
        repo = clone("alpha")
        old_tip = repo.head.target
        new_tip = commit_file(upstream, "README.md", "upstream edit\n")
        (Path(repo.workdir) / "README.md").write_text("local edit\n")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.FETCHED
        assert result.action == ActionKind.FETCH
        assert result.success
        assert branch_tip(Path(repo.workdir)) == old_tip
        assert (Path(repo.workdir) / "README.md").read_text() == "local edit\n"
        tracking = pygit2.Repository(repo.workdir).references["refs/remotes/origin/main"]
        assert tracking.target == new_tip

    def test_diverged_needs_manual_merge(self, upstream, clone) -> None:
        repo = clone("alpha")
        local_tip = commit_file(repo, "local.txt", "mine\n")
        commit_file(upstream, "remote.txt", "theirs\n")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.MANUAL_MERGE
        assert result.success
        assert "merge necessary" in result.message
        assert branch_tip(Path(repo.workdir)) == local_tip
        assert not (Path(repo.workdir) / "remote.txt").exists()

    def test_local_ahead_is_up_to_date(self, clone) -> None:
        repo = clone("alpha")
        local_tip = commit_file(repo, "local.txt", "mine\n")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.UP_TO_DATE
        assert branch_tip(Path(repo.workdir)) == local_tip

    def test_merge_in_progress_is_never_touched(self, upstream, clone, monkeypatch) -> None:
        repo = clone("alpha")
        old_tip = repo.head.target
        (Path(repo.path) / "MERGE_HEAD").write_text(f"{old_tip}\n")
        commit_file(upstream, "file.txt", "x\n")

        def no_fetch(*args, **kwargs):
            raise AssertionError("fetch must not run")

        monkeypatch.setattr(core, "fetch_upstream", no_fetch)
        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.SKIPPED
        assert result.skip_reason == SkipReason.NOT_CLEAN_STATE
        assert branch_tip(Path(repo.workdir)) == old_tip

    def test_detached_head_is_skipped(self, clone) -> None:
        repo = clone("alpha")
        repo.set_head(repo.head.target)

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())
        assert result.outcome == SyncOutcome.SKIPPED
        assert result.skip_reason == SkipReason.DETACHED_HEAD

    def test_no_upstream_is_skipped(self, clone) -> None:
        repo = clone("alpha")
        del repo.config["branch.main.remote"]
        del repo.config["branch.main.merge"]

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())
        assert result.outcome == SyncOutcome.SKIPPED
        assert result.skip_reason == SkipReason.NO_UPSTREAM
        assert result.success

    def test_branch_tracking_local_branch_is_skipped(self, clone) -> None:
        repo = clone("alpha")
        repo.config["branch.main.remote"] = "."
        repo.config["branch.main.merge"] = "refs/heads/dev"

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())
        assert result.outcome == SyncOutcome.SKIPPED
        assert result.skip_reason == SkipReason.NO_UPSTREAM
        assert result.success

    def test_upstream_branch_deleted_is_error(self, upstream, clone) -> None:
        repo = clone("alpha")
        old_tip = repo.head.target
        upstream.references.create("refs/heads/other", upstream.head.target)
        upstream.set_head("refs/heads/other")
        upstream.references.delete("refs/heads/main")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.ERROR
        assert "ref not found" in result.error
        assert branch_tip(Path(repo.workdir)) == old_tip

    def test_dry_run_does_not_move_branch(self, upstream, clone) -> None:
        repo = clone("alpha")
        old_tip = repo.head.target
        commit_file(upstream, "file.txt", "x\n")

        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig(dry_run=True))

        assert result.outcome == SyncOutcome.WOULD_FAST_FORWARD
        assert branch_tip(Path(repo.workdir)) == old_tip
        assert not (Path(repo.workdir) / "file.txt").exists()

    def test_fetch_error_becomes_error_result(self, clone, monkeypatch) -> None:
        repo = clone("alpha")

        def offline(*args, **kwargs):
            raise NetworkError("connection refused")

        monkeypatch.setattr(core, "fetch_upstream", offline)
        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.ERROR
        assert result.success is False
        assert result.error == "connection refused"

    def test_unexpected_exception_becomes_error_result(self, clone, monkeypatch, caplog) -> None:
        repo = clone("alpha")

        def broken(*args, **kwargs):
            raise ValueError("bad refspec")

        monkeypatch.setattr(core, "analyze_merge", broken)
        result = sweep_repository(GitRepository.open(Path(repo.workdir)), SweepConfig())

        assert result.outcome == SyncOutcome.ERROR
        assert "bad refspec" in result.error
        assert "unexpected error" in caplog.text

    def test_handle_released_after_pipeline(self, clone) -> None:
        repo = clone("alpha")
        handle = GitRepository.open(Path(repo.workdir))
        sweep_repository(handle, SweepConfig())
        assert handle._repo is None


# =============================================================================
# SweepManager.run
# =============================================================================


class TestSweepManager:
    """Tests for SweepManager.run() and the exit status."""

    def test_one_failing_fetch_does_not_stop_the_others(
        self, upstream, clone, workspace: Path, tmp_path: Path
    ) -> None:
        for name in ["alpha", "beta", "gamma", "delta"]:
            clone(name)
        pygit2.Repository(str(workspace / "beta")).remotes.set_url("origin", str(tmp_path / "gone"))
        new_tip = commit_file(upstream, "file.txt", "x\n")

        manager = SweepManager(workspace, SweepConfig(max_workers=4))
        results = manager.run()
        by_name = _by_name(results)

        assert [r.name for r in results] == ["alpha", "beta", "delta", "gamma"]
        assert by_name["beta"].outcome == SyncOutcome.ERROR
        for name in ["alpha", "gamma", "delta"]:
            assert by_name[name].outcome == SyncOutcome.FAST_FORWARDED
            assert branch_tip(workspace / name) == new_tip
        assert SweepManager.exit_code(results) == 1
        assert SweepManager.exit_code(list(reversed(results))) == 1
        assert SweepSummary.from_results(results).failed is True

    def test_unexpected_exception_does_not_stop_the_others(
        self, upstream, clone, workspace: Path, monkeypatch
    ) -> None:
        for name in ["alpha", "beta", "gamma"]:
            clone(name)
        new_tip = commit_file(upstream, "file.txt", "x\n")
        real_fetch = core.fetch_upstream

        def flaky_fetch(repository, *args, **kwargs):
            if repository.name == "beta":
                raise ValueError("bad refspec")
            return real_fetch(repository, *args, **kwargs)

        monkeypatch.setattr(core, "fetch_upstream", flaky_fetch)
        results = SweepManager(workspace, SweepConfig(max_workers=3)).run()
        by_name = _by_name(results)

        assert by_name["beta"].outcome == SyncOutcome.ERROR
        for name in ["alpha", "gamma"]:
            assert by_name[name].outcome == SyncOutcome.FAST_FORWARDED
            assert branch_tip(workspace / name) == new_tip
        assert SweepManager.exit_code(results) == 1

    def test_mixed_workspace_succeeds(self, upstream, clone, workspace: Path) -> None:
        clone("clean")
        dirty = clone("dirty")
        diverged = clone("diverged")
        (Path(dirty.workdir) / "README.md").write_text("local edit\n")
        commit_file(diverged, "local.txt", "mine\n")
        commit_file(upstream, "file.txt", "x\n")

        results = SweepManager(workspace).run()
        outcomes = {r.name: r.outcome for r in results}

        assert outcomes == {
            "clean": SyncOutcome.FAST_FORWARDED,
            "dirty": SyncOutcome.FETCHED,
            "diverged": SyncOutcome.MANUAL_MERGE,
        }
        assert SweepManager.exit_code(results) == 0

        summary = SweepSummary.from_results(results)
        assert summary.total == 3
        assert summary.fast_forwarded == 1
        assert summary.fetched == 1
        assert summary.manual_merge == 1
        assert summary.failed is False

    def test_sequential_matches_parallel(self, upstream, clone, workspace: Path) -> None:
        clone("alpha")
        clone("beta")
        commit_file(upstream, "file.txt", "x\n")

        results = SweepManager(workspace, SweepConfig(sequential=True)).run()
        assert [r.outcome for r in results] == [SyncOutcome.FAST_FORWARDED] * 2

    def test_empty_workspace(self, workspace: Path) -> None:
        results = SweepManager(workspace).run()
        assert results == []
        assert SweepManager.exit_code(results) == 0
