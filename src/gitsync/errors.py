"""Exception taxonomy for gitsync.

Every fatal condition raised by the sync engine derives from
``GitSyncError``.  Failures of the underlying ``git`` process are reported
as ``gitsync.core.git.GitCommandError`` and are propagated as-is except at
the recovery points documented in ``gitsync.sync.replay``.
"""

from __future__ import annotations


class GitSyncError(Exception):
    """Base class for all sync failures."""


class MissingSourceDirectoryError(GitSyncError):
    """The tracked subdirectory does not exist in the source checkout."""

    def __init__(self, source_dir: str) -> None:
        super().__init__(
            f'Directory "{source_dir}" does not exist in current repository.'
        )
        self.source_dir = source_dir


class AmbiguousCommitMappingError(GitSyncError):
    """More than one target commit shares a source commit's signature."""

    def __init__(
        self, timestamp: int, message: str, hashes: list[str]
    ) -> None:
        super().__init__(
            "Expected to return one commit, but returned more than one "
            "commit with the same message in the same second, "
            f"commit date: {timestamp}, message: {message}, "
            f"hashes: {', '.join(hashes)}"
        )
        self.timestamp = timestamp
        self.message = message
        self.hashes = hashes


class CommitNotFoundError(GitSyncError):
    """A commit required for replay has no counterpart in the target."""

    def __init__(self, source_hash: str) -> None:
        super().__init__(
            f"Commit {source_hash} not found in target repository"
        )
        self.source_hash = source_hash


class LogFormatError(GitSyncError):
    """A ``git log`` row could not be decoded into a commit record."""

    def __init__(self, row: str) -> None:
        super().__init__(f"Malformed log row: {row!r}")
        self.row = row


class ConflictError(GitSyncError):
    """One or more branches diverged and were moved to conflict branches."""

    def __init__(self, branches: list[str]) -> None:
        super().__init__(
            "conflict: " + ", ".join(branches) if branches else "conflict"
        )
        self.branches = branches
