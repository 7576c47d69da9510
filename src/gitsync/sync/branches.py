"""Bring target branches in line with the source branches.

Runs after commit replay, so every source branch tip touching the tracked
directory has a counterpart in the target.  The replayed branch itself is
already up to date and is skipped.  For every other branch:

* missing in the target -- created at the mapped tip;
* the mapped tip descends from the target tip -- fast-forwarded;
* otherwise -- left alone, and the mapped tip is recorded on the
  branch's conflict branch.
"""

from __future__ import annotations

import logging

from gitsync.core.git import Git, GitCommandError
from gitsync.sync.history import to_local_branch
from gitsync.sync.mapper import HashMapper
from gitsync.sync.models import SyncStats
from gitsync.sync.progress import NullProgress, Progress
from gitsync.sync.reporter import format_synced
from gitsync.sync.resolver import ConflictEscalation
from gitsync.sync.session import SyncSession

logger = logging.getLogger(__name__)


def branch_stats(
    source_branches: list[str], target_branches: list[str]
) -> SyncStats:
    """Return new/exists/source/target counts, comparing local names."""
    target_locals = {to_local_branch(b) for b in target_branches}
    new = [b for b in source_branches if to_local_branch(b) not in target_locals]
    return SyncStats(
        new=len(new),
        exists=len(source_branches) - len(new),
        source=len(source_branches),
        target=len(target_branches),
    )


class BranchReconciler:
    """Create, fast-forward or divert target branches.

    Args:
        source: Source repository.
        target: Target repository.
        mapper: Source-to-target hash mapper.
        escalation: Conflict branch handler.
        session: State of the current run.
    """

    def __init__(
        self,
        source: Git,
        target: Git,
        mapper: HashMapper,
        escalation: ConflictEscalation,
        session: SyncSession,
    ) -> None:
        self.source = source
        self.target = target
        self.mapper = mapper
        self.escalation = escalation
        self.session = session

    def reconcile(
        self,
        source_branches: list[str],
        target_branches: list[str],
        progress: Progress | None = None,
    ) -> SyncStats:
        """Reconcile every (already filtered) source branch.

        Args:
            source_branches: Source branch names as listed by
                ``get_branches``.
            target_branches: Target branch names before the run.
            progress: Optional progress observer.

        Returns:
            Branch counts including synced and skipped totals.
        """
        progress = progress or NullProgress()
        target_locals = {to_local_branch(b) for b in target_branches}
        skipped = 0

        progress.start(len(source_branches))
        for branch in source_branches:
            local = to_local_branch(branch)
            if local != self.session.default_branch and not self._sync_branch(
                branch, local, local in target_locals
            ):
                skipped += 1
            progress.tick()
        progress.terminate()

        stats = branch_stats(source_branches, target_branches).model_copy(
            update={
                "synced": len(source_branches) - skipped,
                "skipped": skipped,
            }
        )
        logger.info(format_synced("branches", stats))
        return stats

    def _sync_branch(self, branch: str, local: str, exists: bool) -> bool:
        """Sync one branch; return ``False`` when it was skipped."""
        source_hash = self.source.run(["rev-parse", branch])
        target_hash = self.mapper.find_target_tag_hash(source_hash)
        if not target_hash:
            self.mapper.log_commit_not_found(source_hash, "branch", branch)
            return False

        if not exists:
            logger.debug("Creating branch %s at %s", local, target_hash)
            self.target.run(["branch", "-f", local, target_hash])
            return True

        tip = self.target.run(["rev-parse", local])
        if self._is_ancestor(tip, target_hash):
            if tip != target_hash:
                logger.debug("Fast-forwarding %s to %s", local, target_hash)
                self.target.run(["branch", "-f", local, target_hash])
        else:
            self.escalation.divert_branch(local, target_hash)
        return True

    def _is_ancestor(self, tip: str, target_hash: str) -> bool:
        try:
            base = self.target.run(["merge-base", tip, target_hash], mute=True)
        except GitCommandError:
            # No common ancestor
            return False
        return base == tip
