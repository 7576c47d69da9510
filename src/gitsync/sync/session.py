"""Per-run mutable state shared by the sync components.

A ``SyncSession`` is created by ``SyncEngine.run`` and discarded when the
run ends.  Nothing in it is persisted: the target repository itself is the
only durable record of a sync.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from gitsync.core.git import Git
from gitsync.sync.models import (
    CONFLICT_SUFFIX,
    ConflictBranch,
    conflict_branch_name,
)


@dataclass
class SyncSession:
    """Mutable state of one sync run.

    Attributes:
        original_branch: Branch checked out in the target before the run
            (``""`` for a detached HEAD).
        default_branch: Source branch whose lineage is replayed onto the
            target's current branch.
        initial_head: Newest target commit before the run (``""`` when the
            target had no commits).
        is_contains: True when the target history is a prefix of the
            source's filtered history.  Computed once per run.
        diverted: Lineages already moved onto a conflict branch, mapped to
            that conflict branch's name.  A lineage is the default branch,
            a branch reconciled after replay, or the first temp branch of a
            side lineage.
        lineages: Source commits replayed on a side lineage, mapped to the
            lineage they belong to.
        temp_branches: ``sync-<hash>`` branches created while replaying
            side lineages.
        worktree: Scratch worktree of the source repository, created on
            first use.
    """

    original_branch: str = ""
    default_branch: str = ""
    initial_head: str = ""
    is_contains: bool = False
    diverted: dict[str, str] = field(default_factory=dict)
    lineages: dict[str, str] = field(default_factory=dict)
    temp_branches: list[str] = field(default_factory=list)
    worktree: Git | None = None

    @property
    def conflicts(self) -> list[ConflictBranch]:
        """Diverted branches in diversion order, one per conflict branch."""
        branches: list[str] = []
        for name in self.diverted.values():
            branch = name.removesuffix(CONFLICT_SUFFIX)
            if branch not in branches:
                branches.append(branch)
        return [ConflictBranch(branch=branch) for branch in branches]

    @property
    def default_ref(self) -> str:
        """Target ref that receives commits of the replayed lineage."""
        return self.diverted.get(self.default_branch, self.default_branch)

    def is_diverted(self, branch: str) -> bool:
        return branch in self.diverted

    def divert(self, branch: str, label: str | None = None) -> str:
        """Mark *branch* as diverted and return its conflict branch name.

        The conflict branch is named after *label* when given, so that a
        side lineage is reported under the source branch owning it.
        """
        name = conflict_branch_name(label or branch)
        self.diverted[branch] = name
        return name

    def add_temp_branch(self, name: str) -> None:
        if name not in self.temp_branches:
            self.temp_branches.append(name)
