"""Pydantic models for the history sync engine.

Defines the data contracts shared by the sync modules:

- ``CommitRecord``: one commit of a path-filtered history walk.
- ``Tag``: a tag and the commit it points at.
- ``ConflictBranch``: a branch diverted onto an isolated conflict branch.
- ``SyncStats``: new/exists/source/target counts for one object kind.
- ``SyncReport``: aggregate result of a full sync run.

All models are frozen (immutable).
"""

from __future__ import annotations

from pydantic import BaseModel

CONFLICT_SUFFIX = "-git-sync-conflict"


def conflict_branch_name(branch: str) -> str:
    """Return the conflict branch name for *branch*."""
    return branch + CONFLICT_SUFFIX


def is_conflict_branch(branch: str) -> bool:
    return branch.endswith(CONFLICT_SUFFIX)


class CommitRecord(BaseModel):
    """A commit read from a path-filtered ``git log --graph`` walk.

    Attributes:
        hash: Full commit hash.
        parents: Parent hashes in order (empty for a root commit).
        timestamp: Author date as a unix timestamp.
        subject: First line of the commit message.
        on_current_branch: True if the commit is drawn in the leftmost
            column of the graph walk.
    """

    hash: str
    parents: list[str] = []
    timestamp: int
    subject: str = ""
    on_current_branch: bool = False

    model_config = {"frozen": True}

    @property
    def signature(self) -> str:
        """Identity of the commit across repositories."""
        return f"{self.timestamp} {self.subject}"

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


class Tag(BaseModel):
    """A tag in a repository.

    Attributes:
        name: Tag name without the ``refs/tags/`` prefix.
        hash: Commit the tag points at (peeled for annotated tags).
        annotated: True for annotated tags.
    """

    name: str
    hash: str
    annotated: bool = False

    model_config = {"frozen": True}


class ConflictBranch(BaseModel):
    """A branch whose new history was diverted onto a conflict branch."""

    branch: str

    model_config = {"frozen": True}

    @property
    def name(self) -> str:
        return conflict_branch_name(self.branch)


class SyncStats(BaseModel):
    """Counts for one kind of object (commits, branches or tags).

    Attributes:
        new: Objects present in source but not in target.
        exists: Source objects already present in target.
        source: Total objects in source.
        target: Total objects in target before the run.
        synced: Objects actually written to target.
        skipped: Objects that could not be written.
    """

    new: int = 0
    exists: int = 0
    source: int = 0
    target: int = 0
    synced: int = 0
    skipped: int = 0

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        source: Source repository directory.
        target: Target repository directory.
        commits: Commit counts.
        branches: Branch counts.
        tags: Tag counts (``None`` when tag sync was skipped).
        conflicts: Branches that were diverted onto conflict branches.
    """

    source: str
    target: str
    commits: SyncStats = SyncStats()
    branches: SyncStats = SyncStats()
    tags: SyncStats | None = None
    conflicts: list[ConflictBranch] = []

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)
