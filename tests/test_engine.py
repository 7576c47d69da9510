"""Unit tests for the sync engine over scripted git repositories."""

from __future__ import annotations

import logging

import pytest

from gitsync.config_schema import SyncConfig
from gitsync.core.git import GitCommandError
from gitsync.sync.engine import SyncEngine, repo_dir_name
from gitsync.sync.session import SyncSession

URL = "git@example.com:org/lib.git"


def _engine(tmp_path, make_git, bare: str = "false"):
    repos = {}

    def factory(dir: str):
        git = make_git(dir)
        git.on("rev-parse", "--is-bare-repository", output=bare)
        repos[dir] = git
        return git

    engine = SyncEngine(
        SyncConfig(source_dir="lib"),
        base_dir=tmp_path / "base",
        repo_factory=factory,
    )
    return engine, repos


class TestRepoDirName:
    def test_url(self):
        assert repo_dir_name(URL) == "git-example.com-org-lib.git"

    def test_https_url(self):
        assert repo_dir_name("https://example.com/org/lib") == (
            "https---example.com-org-lib"
        )


class TestInitRepo:
    def test_existing_checkout_used_in_place(self, tmp_path, make_git):
        engine, repos = _engine(tmp_path, make_git)
        checkout = tmp_path / "checkout"
        checkout.mkdir()

        repo = engine.init_repo(str(checkout))

        assert repo.dir == str(checkout.resolve())
        assert not repo.commands("clone")

    def test_url_is_cloned_into_base_dir(self, tmp_path, make_git):
        engine, _ = _engine(tmp_path, make_git)

        repo = engine.init_repo(URL)

        expected = tmp_path / "base" / "git-example.com-org-lib.git"
        assert repo.dir == str(expected)
        assert expected.is_dir()
        assert repo.calls == [["clone", URL, "."]]

    def test_existing_clone_is_reused(self, tmp_path, make_git):
        engine, _ = _engine(tmp_path, make_git)
        (tmp_path / "base" / "git-example.com-org-lib.git").mkdir(
            parents=True
        )

        repo = engine.init_repo(URL)

        assert not repo.commands("clone")

    def test_bare_repository_is_cloned(self, tmp_path, make_git):
        engine, _ = _engine(tmp_path, make_git, bare="true")
        bare = tmp_path / "lib.git"
        bare.mkdir()

        repo = engine.init_repo(str(bare))

        assert repo.dir.startswith(str(tmp_path / "base"))
        assert repo.commands("clone") == [["clone", str(bare), "."]]


class TestPreviousConflicts:
    def test_leftover_conflict_branches_mark_divergence(
        self, tmp_path, make_git, caplog
    ):
        engine, _ = _engine(tmp_path, make_git)
        session = SyncSession(default_branch="master")

        with caplog.at_level(logging.WARNING, logger="gitsync"):
            engine._mark_previous_conflicts(
                ["master", "origin/1.0", "feature"],
                ["master-git-sync-conflict", "1.0-git-sync-conflict"],
                session,
            )

        assert session.diverted == {
            "master": "master-git-sync-conflict",
            "1.0": "1.0-git-sync-conflict",
        }
        assert session.default_ref == "master-git-sync-conflict"
        assert (
            "Conflict branch master-git-sync-conflict from a previous run "
            "still exists" in caplog.text
        )


class TestCleanup:
    def _state(self, make_git):
        source = make_git("/source")
        target = make_git("/target")
        target.on("symbolic-ref", output="sync-abc")
        target.on("branch", "--list", output="  master")
        session = SyncSession(
            original_branch="master",
            temp_branches=["sync-abc"],
            worktree=make_git("/target/.git/gitsync-worktree"),
        )
        return source, target, session

    def test_removes_temporary_state(self, tmp_path, make_git):
        engine, _ = _engine(tmp_path, make_git)
        source, target, session = self._state(make_git)

        engine._cleanup(source, target, session, failed=False)

        assert ["checkout", "master"] in target.calls
        assert ["branch", "-D", "sync-abc"] in target.calls
        assert source.commands("worktree") == [
            [
                "worktree",
                "remove",
                "--force",
                "/target/.git/gitsync-worktree",
            ]
        ]
        assert session.temp_branches == []
        assert session.worktree is None

    def test_failed_run_logs_cleanup_error(self, tmp_path, make_git, caplog):
        engine, _ = _engine(tmp_path, make_git)
        source, target, session = self._state(make_git)
        target.on("branch", "-D", error=True)

        with caplog.at_level(logging.ERROR, logger="gitsync"):
            engine._cleanup(source, target, session, failed=True)

        assert ["checkout", "-f", "master"] in target.calls
        assert ["branch", "-D", "sync-abc"] in target.calls
        assert "Cleanup after failed sync did not complete" in caplog.text
        assert caplog.records[-1].exc_info is not None

    def test_successful_run_raises_cleanup_error(self, tmp_path, make_git):
        engine, _ = _engine(tmp_path, make_git)
        source, target, session = self._state(make_git)
        target.on("branch", "-D", error=True)

        with pytest.raises(GitCommandError):
            engine._cleanup(source, target, session, failed=False)

        assert not source.commands("worktree")
