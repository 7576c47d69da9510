"""Sync engine that orchestrates a full history sync run.

The ``SyncEngine`` ties together the history reader, hash mapper, commit
replay, conflict escalation and branch/tag reconciliation.  It:

1. Resolves the source and target repositories (cloning remote ones).
2. Checks that the tracked directory exists in the source.
3. Reads both path-filtered commit graphs and computes the new commits,
   treating branches with a leftover conflict branch as still diverged.
4. Replays the new commits oldest first.
5. Reconciles the remaining branches.
6. Raises ``ConflictError`` if any branch diverged.
7. Creates the missing tags.
8. Cleans up temporary branches and the scratch worktree.

Any failure aborts the run.  Cleanup always runs, and a failed run logs
how to reset the target repository to its previous state.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable

from gitsync.config import get_base_dir
from gitsync.config_schema import SyncConfig
from gitsync.core.git import (
    Git,
    GitCommandError,
    GitRepo,
    current_branch,
    has_branch,
)
from gitsync.errors import ConflictError, MissingSourceDirectoryError
from gitsync.logger import is_verbose
from gitsync.sync.branches import BranchReconciler, branch_stats
from gitsync.sync.history import (
    get_branch_from_logs,
    get_branches,
    get_logs,
    to_local_branch,
)
from gitsync.sync.mapper import HashMapper
from gitsync.sync.models import (
    CommitRecord,
    SyncReport,
    SyncStats,
    conflict_branch_name,
    is_conflict_branch,
)
from gitsync.sync.patterns import filter_names
from gitsync.sync.progress import LoggingProgress, ProgressFactory
from gitsync.sync.replay import CommitReplayEngine
from gitsync.sync.reporter import (
    format_conflict_guide,
    format_counts,
    format_recovery_guide,
    format_synced_commits,
)
from gitsync.sync.resolver import ConflictEscalation
from gitsync.sync.session import SyncSession
from gitsync.sync.tags import TagReconciler

logger = logging.getLogger(__name__)

_REPO_DIR_CHARS = re.compile(r"[:@/\\]")


def repo_dir_name(locator: str) -> str:
    """Return the directory name a remote repository is cloned into."""
    return _REPO_DIR_CHARS.sub("-", locator)


class SyncEngine:
    """Run one sync of a source subdirectory into a target repository.

    Args:
        config: Options of the run.
        progress_factory: Builds a progress observer per step; defaults to
            ``LoggingProgress``.
        base_dir: Directory remote repositories are cloned into; defaults
            to ``get_base_dir()``.
        repo_factory: Builds repository handles from directories.
    """

    def __init__(
        self,
        config: SyncConfig,
        progress_factory: ProgressFactory | None = None,
        base_dir: Path | None = None,
        repo_factory: Callable[[str], Git] = GitRepo,
    ) -> None:
        self.config = config
        self.progress_factory = progress_factory or LoggingProgress
        self.base_dir = base_dir
        self.repo_factory = repo_factory

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def init_repo(self, locator: str) -> Git:
        """Return a working repository for *locator*.

        An existing non-bare checkout is used in place.  Anything else (a
        bare repository or a URL) is cloned once under the base directory
        and reused by later runs.
        """
        path = Path(locator).expanduser()
        if path.is_dir():
            repo = self.repo_factory(str(path.resolve()))
            if repo.run(["rev-parse", "--is-bare-repository"]) == "false":
                return repo

        base_dir = self.base_dir or get_base_dir()
        repo_dir = base_dir / repo_dir_name(locator)
        repo = self.repo_factory(str(repo_dir))
        if not repo_dir.exists():
            logger.info("Cloning %s into %s", locator, repo_dir)
            repo_dir.mkdir(parents=True)
            repo.run(["clone", locator, "."])
        return repo

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> SyncReport:
        """Execute a full sync run.

        Returns:
            A ``SyncReport`` with commit, branch and tag counts.

        Raises:
            MissingSourceDirectoryError: If the tracked directory does not
                exist in the source checkout.
            ConflictError: If one or more branches diverged.
            GitSyncError: On any other sync failure.
            GitCommandError: If a git command fails.
        """
        source = self.init_repo(self.config.source)
        target = self.init_repo(self.config.target)

        if not Path(source.dir, self.config.source_dir).exists():
            raise MissingSourceDirectoryError(self.config.source_dir)

        session = SyncSession(
            initial_head=target.run(["rev-list", "-n", "1", "--all"]),
            original_branch=current_branch(target),
        )

        failed = True
        try:
            report = self._sync(source, target, session)
            failed = False
        except Exception:
            logger.warning(
                format_recovery_guide(
                    self._target_path(target),
                    session.initial_head,
                    is_verbose(),
                )
            )
            raise
        finally:
            self._cleanup(source, target, session, failed)

        logger.info("Sync finished.")
        return report

    def _sync(
        self, source: Git, target: Git, session: SyncSession
    ) -> SyncReport:
        mapper = HashMapper(source, target, self.config.source_dir)
        escalation = ConflictEscalation(
            source, target, self.config.source_dir, mapper, session
        )

        commits, branches = self._sync_commits(
            source, target, session, mapper, escalation
        )
        self._restore_branch(target, session, force=False)

        if session.diverted:
            logger.warning(
                format_conflict_guide(
                    self._target_path(target), session.conflicts
                )
            )
            raise ConflictError([c.branch for c in session.conflicts])

        tags = None
        if not self.config.skip_tags:
            tags = TagReconciler(
                source,
                target,
                mapper,
                self.config.include_tags,
                self.config.exclude_tags,
            ).reconcile(self.progress_factory("tags"))

        return SyncReport(
            source=source.dir,
            target=target.dir,
            commits=commits,
            branches=branches,
            tags=tags,
            conflicts=session.conflicts,
        )

    # ------------------------------------------------------------------
    # Commits and branches
    # ------------------------------------------------------------------

    def _filtered_branches(self, repo: Git) -> list[str]:
        return filter_names(
            get_branches(repo),
            self.config.include_branches,
            self.config.exclude_branches,
        )

    def _read_logs(
        self,
        repo: Git,
        branches: list[str],
        path: str,
        restricted: bool = False,
    ) -> dict:
        if not branches and (
            restricted
            or self.config.include_branches
            or self.config.exclude_branches
        ):
            # Walking no ref would fall back to --all
            logger.debug("No branch of %s left to walk", repo.dir)
            return {}
        return get_logs(
            repo,
            branches,
            path,
            after=self.config.after,
            max_count=self.config.max_count,
        )

    def _mark_previous_conflicts(
        self,
        source_branches: list[str],
        conflict_branches: list[str],
        session: SyncSession,
    ) -> None:
        """Record branches whose conflict branch survives from a past run."""
        existing = {to_local_branch(b) for b in conflict_branches}
        for branch in source_branches:
            local = to_local_branch(branch)
            name = conflict_branch_name(local)
            if name in existing and not session.is_diverted(local):
                logger.warning(
                    "Conflict branch %s from a previous run still exists",
                    name,
                )
                session.divert(local)

    def _sync_commits(
        self,
        source: Git,
        target: Git,
        session: SyncSession,
        mapper: HashMapper,
        escalation: ConflictEscalation,
    ) -> tuple[SyncStats, SyncStats]:
        source_branches = self._filtered_branches(source)

        # Conflict branches never count as synced history
        all_target_branches = get_branches(target)
        conflict_branches = [
            b for b in all_target_branches if is_conflict_branch(b)
        ]
        target_branches = filter_names(
            [b for b in all_target_branches if not is_conflict_branch(b)],
            self.config.include_branches,
            self.config.exclude_branches,
        )
        self._mark_previous_conflicts(
            source_branches, conflict_branches, session
        )

        source_logs = self._read_logs(
            source, source_branches, self.config.source_dir
        )
        target_logs = self._read_logs(
            target,
            target_branches,
            self.config.target_dir,
            restricted=bool(conflict_branches),
        )

        session.default_branch = to_local_branch(
            get_branch_from_logs(source, source_logs)
        )
        self._checkout_default_branch(target, session)

        existing = {record.signature for record in target_logs.values()}
        new_commits = [
            record
            for record in source_logs.values()
            if record.signature not in existing
        ]

        commits = SyncStats(
            new=len(new_commits),
            exists=len(source_logs) - len(new_commits),
            source=len(source_logs),
            target=len(target_logs),
        )
        logger.info(format_counts("Commits", commits))
        logger.info(
            format_counts(
                "Branches", branch_stats(source_branches, target_branches)
            )
        )

        session.is_contains = (
            len(source_logs) - len(target_logs) == len(new_commits)
        )

        pending = self._skip_diverted_commits(
            target, conflict_branches, new_commits
        )

        replay = CommitReplayEngine(
            source,
            target,
            self.config.source_dir,
            self.config.target_dir,
            mapper,
            session,
            escalation,
            preserve_commit=self.config.preserve_commit,
            repo_factory=self.repo_factory,
        )
        synced = replay.replay(
            list(reversed(pending)), self.progress_factory("commits")
        )
        logger.info(format_synced_commits(synced))
        commits = commits.model_copy(update={"synced": synced})

        branches = BranchReconciler(
            source, target, mapper, escalation, session
        ).reconcile(
            source_branches, target_branches, self.progress_factory("branches")
        )
        return commits, branches

    def _skip_diverted_commits(
        self,
        target: Git,
        conflict_branches: list[str],
        new_commits: list[CommitRecord],
    ) -> list[CommitRecord]:
        """Drop new commits a previous run already put on a conflict branch."""
        if not conflict_branches or not new_commits:
            return new_commits
        diverted = {
            record.signature
            for record in get_logs(
                target, conflict_branches, self.config.target_dir
            ).values()
        }
        pending = [r for r in new_commits if r.signature not in diverted]
        if len(pending) != len(new_commits):
            logger.info(
                "%d new commits are already on conflict branches",
                len(new_commits) - len(pending),
            )
        return pending

    def _checkout_default_branch(
        self, target: Git, session: SyncSession
    ) -> None:
        branch = session.default_branch
        if not branch or current_branch(target) == branch:
            return
        if has_branch(target, branch):
            target.run(["checkout", branch])
        else:
            target.run(["checkout", "-b", branch])

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _restore_branch(
        self, target: Git, session: SyncSession, force: bool
    ) -> None:
        """Check out the branch the target was on before the run."""
        checkout = ["checkout", "-f"] if force else ["checkout"]
        branch = session.original_branch
        current = current_branch(target)
        if branch and has_branch(target, branch):
            if current != branch:
                target.run([*checkout, branch])
        elif current in session.temp_branches:
            # A temp branch cannot be deleted while checked out
            target.run([*checkout, "--detach"])

    def _cleanup(
        self, source: Git, target: Git, session: SyncSession, failed: bool
    ) -> None:
        """Restore the target and remove temporary state.

        On a failed run, cleanup errors are logged so that the original
        error propagates.
        """
        try:
            self._restore_branch(target, session, force=failed)
            if session.temp_branches:
                target.run(["branch", "-D", *session.temp_branches])
                session.temp_branches.clear()
            if session.worktree is not None:
                source.run(
                    ["worktree", "remove", "--force", session.worktree.dir]
                )
                session.worktree = None
        except (GitCommandError, OSError):
            if not failed:
                raise
            logger.exception("Cleanup after failed sync did not complete")

    def _target_path(self, target: Git) -> str:
        if self.config.target_dir == ".":
            return target.dir
        return str(Path(target.dir, self.config.target_dir))
