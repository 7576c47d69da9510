"""Integration tests for the sync engine against real git repositories.

Each test builds a source repository with a tracked ``lib`` directory and
a target repository under ``tmp_path`` and runs a complete sync, checking
the resulting target history, branches, tags and working tree:

- initial sync into an empty target, then a no-op second run
- deletions and commits outside the tracked directory
- output subdirectory in the target
- tag creation and tag filters
- merge commits and side branches
- diverged histories, leftover conflict branches and cleanup on failure
- commit identity
"""

from __future__ import annotations

import logging

import pytest

from gitsync.config_schema import SyncConfig
from gitsync.core.git import GitCommandError
from gitsync.errors import ConflictError, MissingSourceDirectoryError
from gitsync.sync.engine import SyncEngine
from gitsync.sync.tags import TagReconciler

pytestmark = pytest.mark.integration


@pytest.fixture
def repos(make_repo):
    """Return an empty (source, target) pair."""
    return make_repo("source"), make_repo("target")


def _sync(tmp_path, src, dst, **options):
    config = SyncConfig(
        source=str(src.path),
        target=str(dst.path),
        source_dir="lib",
        **options,
    )
    return SyncEngine(config, base_dir=tmp_path / "base").run()


def _linear_history(src):
    src.write("lib/a.txt", "one\n")
    src.write("lib/b.txt", "bee\n")
    src.write("README.md", "readme\n")
    src.commit("Add library")
    src.write("lib/a.txt", "two\n")
    src.commit("Update a")
    src.remove("lib/b.txt")
    src.commit("Remove b")
    src.write("README.md", "more\n")
    src.commit("Update readme")


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


class TestInitialSync:
    def test_replays_filtered_history(self, tmp_path, repos):
        src, dst = repos
        _linear_history(src)

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 3
        assert report.commits.synced == 3
        assert dst.count() == 3
        assert dst.git("log", "--format=%s") == (
            "Remove b\nUpdate a\nAdd library"
        )
        assert dst.read("a.txt") == "two\n"
        assert not (dst.path / "b.txt").exists()
        assert not (dst.path / "README.md").exists()
        assert not (dst.path / "lib").exists()

    def test_second_run_is_a_no_op(self, tmp_path, repos):
        src, dst = repos
        _linear_history(src)
        _sync(tmp_path, src, dst)
        head = dst.head()

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 0
        assert report.commits.exists == 3
        assert dst.head() == head

    def test_incremental_sync(self, tmp_path, repos):
        src, dst = repos
        _linear_history(src)
        _sync(tmp_path, src, dst)
        src.write("lib/c.txt", "sea\n")
        src.commit("Add c")

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 1
        assert dst.count() == 4
        assert dst.read("c.txt") == "sea\n"

    def test_target_subdirectory(self, tmp_path, repos):
        src, dst = repos
        _linear_history(src)
        dst.write("README.md", "monorepo\n")
        dst.commit("Initial monorepo")

        report = _sync(tmp_path, src, dst, target_dir="packages/lib")

        assert report.commits.new == 3
        assert dst.read("packages/lib/a.txt") == "two\n"
        assert dst.read("README.md") == "monorepo\n"
        assert dst.count() == 4

    def test_cleanup_leaves_no_temporary_state(self, tmp_path, repos):
        src, dst = repos
        _linear_history(src)

        _sync(tmp_path, src, dst)

        assert dst.branches() == ["master"]
        assert "gitsync-worktree" not in src.git("worktree", "list")
        assert dst.git("status", "--porcelain") == ""

    def test_missing_source_directory(self, tmp_path, repos):
        src, dst = repos
        src.write("other/a.txt", "a\n")
        src.commit("Add other")

        with pytest.raises(MissingSourceDirectoryError):
            _sync(tmp_path, src, dst)


class TestCommitIdentity:
    def test_authorship_preserved(self, tmp_path, repos):
        src, dst = repos
        src.write("lib/a.txt", "a\n")
        source_hash = src.commit("Add a", author="Carol")

        _sync(tmp_path, src, dst)

        assert dst.git("log", "-1", "--format=%an <%ae> %at") == src.git(
            "log", "-1", "--format=%an <%ae> %at", source_hash
        )
        assert dst.git("log", "-1", "--format=%cn") == "Carol"

    def test_authorship_not_preserved(self, tmp_path, repos):
        src, dst = repos
        src.write("lib/a.txt", "a\n")
        src.commit("Add a", author="Carol")

        _sync(tmp_path, src, dst, preserve_commit=False)

        assert dst.git("log", "-1", "--format=%an") == "Sync Bot"
        assert dst.git("log", "-1", "--format=%s") == "Add a"

    def test_multi_line_message(self, tmp_path, repos):
        src, dst = repos
        src.write("lib/a.txt", "a\n")
        src.commit("Add a\n\nLonger description.")

        _sync(tmp_path, src, dst)

        assert dst.git("log", "-1", "--format=%B") == (
            "Add a\n\nLonger description."
        )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TestTags:
    def _history(self, src):
        src.write("lib/a.txt", "one\n")
        src.commit("Add a")
        src.write("lib/a.txt", "two\n")
        src.commit("Update a")
        src.tag("v1.0", "Release 1.0")
        src.tag("v2.0-rc")
        src.write("README.md", "readme\n")
        src.commit("Add readme")
        src.tag("v1.1")

    def test_tags_created_at_mapped_commits(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(tmp_path, src, dst)

        assert sorted(dst.tags()) == ["v1.0", "v1.1", "v2.0-rc"]
        assert report.tags.synced == 3
        # v1.1 points at a commit outside lib and maps to its ancestor
        assert dst.head("v1.1") == dst.head("master")
        assert dst.git("cat-file", "-t", "v1.0") == "tag"
        assert dst.git("cat-file", "-t", "v1.1") == "commit"
        assert "Release 1.0" in dst.git(
            "tag", "-l", "--format=%(contents)", "v1.0"
        )

    def test_tag_filters(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(
            tmp_path, src, dst, include_tags=["v*"], exclude_tags=["*-rc"]
        )

        assert sorted(dst.tags()) == ["v1.0", "v1.1"]
        assert report.tags.new == 2
        assert report.tags.source == 3

    def test_skip_tags(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(tmp_path, src, dst, skip_tags=True)

        assert dst.tags() == []
        assert report.tags is None

    def test_existing_tags_kept(self, tmp_path, repos):
        src, dst = repos
        self._history(src)
        _sync(tmp_path, src, dst)
        before = dst.head("v1.0^{commit}")

        report = _sync(tmp_path, src, dst)

        assert report.tags.new == 0
        assert report.tags.exists == 3
        assert dst.head("v1.0^{commit}") == before


# ---------------------------------------------------------------------------
# Branches and merges
# ---------------------------------------------------------------------------


class TestBranchesAndMerges:
    def _history(self, src):
        src.write("lib/a.txt", "one\n")
        src.commit("Add a")
        src.git("checkout", "-q", "-b", "feature")
        src.write("lib/f.txt", "feature\n")
        src.commit("Add feature")
        src.git("checkout", "-q", "master")
        src.write("lib/a.txt", "two\n")
        src.commit("Update a")
        src.merge("feature", "Merge branch 'feature'")

    def test_merge_commit_replayed(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 4
        merge_parents = dst.git("log", "-1", "--format=%P").split()
        assert len(merge_parents) == 2
        assert dst.git("log", "-1", "--format=%s") == "Merge branch 'feature'"
        assert dst.read("a.txt") == "two\n"
        assert dst.read("f.txt") == "feature\n"

    def test_side_branch_created(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(tmp_path, src, dst)

        assert sorted(dst.branches()) == ["feature", "master"]
        assert dst.git("log", "-1", "--format=%s", "feature") == "Add feature"
        assert report.branches.synced == 2
        assert not report.conflicts
        assert dst.git("symbolic-ref", "--short", "HEAD") == "master"
        assert "gitsync-worktree" not in src.git("worktree", "list")

    def test_branch_fast_forward(self, tmp_path, repos):
        src, dst = repos
        self._history(src)
        _sync(tmp_path, src, dst)
        src.git("checkout", "-q", "feature")
        src.write("lib/f.txt", "feature 2\n")
        src.commit("Extend feature")
        src.git("checkout", "-q", "master")

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 1
        assert dst.git("log", "-1", "--format=%s", "feature") == (
            "Extend feature"
        )
        assert dst.git("show", "feature:f.txt") == "feature 2"
        assert dst.read("f.txt") == "feature\n"

    def test_failed_run_removes_temporary_state(
        self, tmp_path, repos, monkeypatch
    ):
        src, dst = repos
        self._history(src)

        def fail(self, progress=None):
            raise GitCommandError(["tag"], 1, "", "scripted failure")

        monkeypatch.setattr(TagReconciler, "reconcile", fail)

        with pytest.raises(GitCommandError):
            _sync(tmp_path, src, dst)

        assert sorted(dst.branches()) == ["feature", "master"]
        assert dst.git("symbolic-ref", "--short", "HEAD") == "master"
        assert "gitsync-worktree" not in src.git("worktree", "list")

    def test_include_branches(self, tmp_path, repos):
        src, dst = repos
        self._history(src)
        src.git("branch", "experiment", "feature")

        _sync(tmp_path, src, dst, include_branches=["master"])

        assert dst.branches() == ["master"]

    def test_exclude_all_branches_syncs_nothing(self, tmp_path, repos):
        src, dst = repos
        self._history(src)

        report = _sync(tmp_path, src, dst, exclude_branches=["*"])

        assert report.commits.source == 0
        assert dst.branches() == []


# ---------------------------------------------------------------------------
# Divergence
# ---------------------------------------------------------------------------


class TestDivergence:
    def _diverge(self, tmp_path, src, dst):
        src.write("lib/a.txt", "one\n")
        src.commit("Add a")
        _sync(tmp_path, src, dst)

        src.write("lib/a.txt", "source change\n")
        src.write("lib/b.txt", "bee\n")
        src.commit("Change a in source")
        dst.write("a.txt", "target change\n")
        return dst.commit("Change a in target", author="Bob")

    def test_conflict_branch_created(self, tmp_path, repos):
        src, dst = repos
        target_head = self._diverge(tmp_path, src, dst)

        with pytest.raises(ConflictError) as exc_info:
            _sync(tmp_path, src, dst)

        assert exc_info.value.branches == ["master"]
        assert dst.head("master") == target_head
        assert dst.read("a.txt") == "target change\n"
        assert dst.git("symbolic-ref", "--short", "HEAD") == "master"

        conflict = "master-git-sync-conflict"
        assert conflict in dst.branches()
        assert dst.git("show", f"{conflict}:a.txt") == "source change"
        assert dst.git("show", f"{conflict}:b.txt") == "bee"
        assert dst.git("log", "-1", "--format=%s", conflict) == (
            "Change a in source"
        )
        assert dst.git("merge-base", "master", conflict) == dst.head(
            "master~1"
        )

    def test_guides_logged(self, tmp_path, repos, caplog):
        src, dst = repos
        target_head = self._diverge(tmp_path, src, dst)

        with caplog.at_level(logging.WARNING, logger="gitsync"):
            with pytest.raises(ConflictError):
                _sync(tmp_path, src, dst)

        assert "master conflict with master-git-sync-conflict" in caplog.text
        assert "Sorry, an error occurred during sync." in caplog.text
        assert f"git reset --hard {target_head}" in caplog.text

    def test_tags_not_synced_on_conflict(self, tmp_path, repos):
        src, dst = repos
        self._diverge(tmp_path, src, dst)
        src.tag("v1.0")

        with pytest.raises(ConflictError):
            _sync(tmp_path, src, dst)

        assert dst.tags() == []

    def test_rerun_still_reports_conflict(self, tmp_path, repos, caplog):
        src, dst = repos
        target_head = self._diverge(tmp_path, src, dst)
        with pytest.raises(ConflictError):
            _sync(tmp_path, src, dst)
        conflict = "master-git-sync-conflict"
        conflict_head = dst.head(conflict)

        with caplog.at_level(logging.WARNING, logger="gitsync"):
            with pytest.raises(ConflictError) as exc_info:
                _sync(tmp_path, src, dst)

        assert exc_info.value.branches == ["master"]
        assert (
            f"Conflict branch {conflict} from a previous run still exists"
            in caplog.text
        )
        assert "master conflict with master-git-sync-conflict" in caplog.text
        assert dst.head("master") == target_head
        assert dst.head(conflict) == conflict_head
        assert sorted(dst.branches()) == ["master", conflict]

    def test_rerun_appends_to_conflict_branch(self, tmp_path, repos):
        src, dst = repos
        target_head = self._diverge(tmp_path, src, dst)
        with pytest.raises(ConflictError):
            _sync(tmp_path, src, dst)
        src.write("lib/c.txt", "sea\n")
        src.commit("Add c")

        with pytest.raises(ConflictError):
            _sync(tmp_path, src, dst)

        conflict = "master-git-sync-conflict"
        assert dst.git("log", "--format=%s", conflict) == (
            "Add c\nChange a in source\nAdd a"
        )
        assert dst.git("show", f"{conflict}:c.txt") == "sea"
        assert dst.head("master") == target_head

    def test_resolved_conflict_syncs_cleanly(self, tmp_path, repos):
        src, dst = repos
        self._diverge(tmp_path, src, dst)
        with pytest.raises(ConflictError):
            _sync(tmp_path, src, dst)
        conflict = "master-git-sync-conflict"
        dst.git("merge", "-q", "--no-edit", "-X", "theirs", conflict)
        dst.git("branch", "-D", conflict)

        report = _sync(tmp_path, src, dst)

        assert report.commits.new == 0
        assert not report.conflicts

    def test_cleanup_after_conflict_with_side_lineage(self, tmp_path, repos):
        src, dst = repos
        src.write("lib/a.txt", "one\n")
        src.commit("Add a")
        _sync(tmp_path, src, dst)
        src.git("checkout", "-q", "-b", "feature")
        src.write("lib/f.txt", "feature\n")
        src.commit("Add feature")
        src.git("checkout", "-q", "master")
        src.write("lib/a.txt", "source change\n")
        src.commit("Change a in source")
        src.merge("feature", "Merge branch 'feature'")
        dst.write("a.txt", "target change\n")
        target_head = dst.commit("Change a in target", author="Bob")

        with pytest.raises(ConflictError) as exc_info:
            _sync(tmp_path, src, dst)

        assert exc_info.value.branches == ["master"]
        assert sorted(dst.branches()) == [
            "feature",
            "master",
            "master-git-sync-conflict",
        ]
        assert dst.head("master") == target_head
        assert dst.git("symbolic-ref", "--short", "HEAD") == "master"
        assert dst.git("status", "--porcelain") == ""
        assert "gitsync-worktree" not in src.git("worktree", "list")
