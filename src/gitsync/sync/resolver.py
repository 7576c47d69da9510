"""Divert diverged history onto isolated conflict branches.

When the target's history under the tracked directory is not a prefix of
the source's, a patch that fails to apply means the two sides changed the
same content independently.  Instead of guessing, the remaining source
history of that branch is replayed onto ``<branch>-git-sync-conflict``,
started from the last commit both sides share, so the user can merge it
by hand.  The original branch is never rewritten.
"""

from __future__ import annotations

import logging

from gitsync.core.git import Git, GitCommandError, has_branch
from gitsync.sync.history import get_branches_containing
from gitsync.sync.mapper import HashMapper, split_signature
from gitsync.sync.session import SyncSession

logger = logging.getLogger(__name__)


class ConflictEscalation:
    """Create and record conflict branches in the target repository.

    Args:
        source: Source repository.
        target: Target repository.
        source_dir: Tracked subdirectory of the source repository.
        mapper: Hash mapper used to find the shared starting point.
        session: State of the current run.
    """

    def __init__(
        self,
        source: Git,
        target: Git,
        source_dir: str,
        mapper: HashMapper,
        session: SyncSession,
    ) -> None:
        self.source = source
        self.target = target
        self.source_dir = source_dir
        self.mapper = mapper
        self.session = session

    def escalate(
        self, source_hash: str, branch: str, label: str | None = None
    ) -> str:
        """Move the replay of *branch* onto its conflict branch.

        Conflicted paths are first resolved to the incoming side.  The
        first escalation of *branch* in a run resets the working tree,
        creates (or resets) the conflict branch at the target commit
        equivalent to the source commit preceding *source_hash*, and checks
        it out.  Later escalations of the same branch only resolve paths.

        Args:
            source_hash: Source commit whose patch failed to apply.
            branch: Lineage the commit was being replayed on: the default
                branch or the key of a side lineage.
            label: Branch the conflict branch is named after; defaults to
                *branch*.

        Returns:
            Name of the conflict branch.
        """
        self._take_theirs()

        if self.session.is_diverted(branch):
            return self.session.diverted[branch]

        start = self._find_start_point(source_hash)
        self.target.run(["reset", "--hard", "HEAD"])

        recorded = set(self.session.diverted.values())
        name = self.session.divert(branch, label)
        if name not in recorded and has_branch(self.target, name):
            logger.warning(
                "Conflict branch %s already exists, resetting it to %s",
                name,
                start,
            )
        self.target.run(["checkout", "-B", name, start])
        logger.warning("Branch %s diverged, continuing on %s", branch, name)
        return name

    def divert_branch(self, branch: str, target_hash: str) -> str:
        """Point the conflict branch of *branch* at *target_hash*.

        Used for branches whose mapped tip does not descend from the
        target branch tip.  The branch itself is left untouched.
        """
        recorded = set(self.session.diverted.values())
        name = self.session.divert(branch)
        if name not in recorded and has_branch(self.target, name):
            logger.warning(
                "Conflict branch %s already exists, resetting it to %s",
                name,
                target_hash,
            )
        self.target.run(["branch", "-f", name, target_hash])
        logger.warning("Branch %s diverged, created %s", branch, name)
        return name

    def owning_branch(self, source_hash: str) -> str:
        """Return the source branch a side-lineage commit belongs to.

        Prefers a branch other than the default branch; falls back to the
        default branch when it is the only one containing the commit.
        """
        branches = get_branches_containing(self.source, source_hash)
        for branch in branches:
            if branch != self.session.default_branch:
                return branch
        return self.session.default_branch or source_hash

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _take_theirs(self) -> None:
        try:
            self.target.run(["checkout", "--theirs", "."], mute=True)
        except GitCommandError as exc:
            # Nothing to resolve (no unmerged paths or an empty tree)
            logger.debug("checkout --theirs skipped: %s", exc)

    def _find_start_point(self, source_hash: str) -> str:
        """Return the target commit to start a conflict branch from."""
        log = self.source.run(
            [
                "log",
                "--format=%ct %B",
                "-1",
                "--skip=1",
                source_hash,
                "--",
                self.source_dir,
            ]
        )
        if log:
            timestamp, message = split_signature(log)
            start = self.mapper.find_by_signature(timestamp, message)
            if start:
                return start
            logger.debug(
                "Previous commit of %s not found in target, "
                "starting conflict branch from HEAD",
                source_hash,
            )
        return self.target.run(["rev-parse", "HEAD"])
