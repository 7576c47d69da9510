"""Source-to-target commit hash resolution.

A source commit is identified in the target by its committer timestamp
and the first line of its raw message.  The assumption is that nobody
commits the same message twice within one second; two target commits
sharing a signature raise ``AmbiguousCommitMappingError``.

Lookups are memoized for the lifetime of one ``HashMapper`` (one sync
run).  Replayed commits are recorded with ``set_target_hash`` so that
their children resolve without another search.
"""

from __future__ import annotations

import logging

from gitsync.core.git import Git, has_commits
from gitsync.errors import AmbiguousCommitMappingError

logger = logging.getLogger(__name__)


def split_signature(log: str) -> tuple[int, str]:
    """Split ``"<timestamp> <message>"`` output into its two parts."""
    timestamp, _, message = log.partition(" ")
    return int(timestamp), message


class HashMapper:
    """Resolve source commit hashes to the equivalent target commits.

    Args:
        source: Source repository.
        target: Target repository.
        source_dir: Tracked subdirectory of the source repository.
    """

    def __init__(self, source: Git, target: Git, source_dir: str) -> None:
        self.source = source
        self.target = target
        self.source_dir = source_dir
        self._hashes: dict[str, str | None] = {}
        self._target_has_commits = False

    def __contains__(self, source_hash: str) -> bool:
        return self._hashes.get(source_hash) is not None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_target_hash(self, source_hash: str) -> str | None:
        """Return the target commit equivalent to *source_hash*.

        Returns:
            The target hash, or ``None`` when no target commit matches.

        Raises:
            AmbiguousCommitMappingError: If several target commits match.
        """
        if source_hash in self._hashes:
            return self._hashes[source_hash]

        # Use the raw body (%B) rather than the subject (%s): git joins the
        # lines of the first paragraph into the subject, which --grep would
        # not find.
        log = self.source.run(["log", "--format=%ct %B", "-1", source_hash])
        timestamp, message = split_signature(log)

        target_hash = self.find_by_signature(timestamp, message)
        self._hashes[source_hash] = target_hash
        return target_hash

    def find_by_signature(self, timestamp: int, message: str) -> str | None:
        """Search every target ref for a commit with this signature.

        Args:
            timestamp: Committer date as a unix timestamp.
            message: Commit message; only its first line is matched.

        Returns:
            The matching target hash, or ``None``.

        Raises:
            AmbiguousCommitMappingError: If several target commits match.
        """
        if not self._target_has_commits:
            if not has_commits(self.target):
                return None
            self._target_has_commits = True

        first_line = message.split("\n", 1)[0]
        output = self.target.run(
            [
                "log",
                f"--after={timestamp}",
                f"--before={timestamp}",
                "--grep",
                first_line,
                "--fixed-strings",
                "--format=%H",
                "--all",
            ],
            mute=True,
        )
        if not output:
            return None

        hashes = output.split("\n")
        if len(hashes) > 1:
            raise AmbiguousCommitMappingError(timestamp, first_line, hashes)
        return hashes[0]

    def set_target_hash(self, source_hash: str, target_hash: str) -> None:
        """Record that *source_hash* was replayed as *target_hash*."""
        self._hashes[source_hash] = target_hash

    def find_target_tag_hash(self, source_hash: str) -> str | None:
        """Map the nearest ancestor of *source_hash* touching the subdirectory.

        Branch tips and tags may point at commits that do not touch the
        tracked subdirectory; those resolve to their closest ancestor
        (inclusive) that does.
        """
        dir_hash = self.source.run(
            ["log", "--format=%H", "-1", source_hash, "--", self.source_dir]
        )
        if not dir_hash:
            return None
        return self.get_target_hash(dir_hash)

    def log_commit_not_found(
        self, source_hash: str, kind: str, name: str
    ) -> None:
        """Warn that the commit behind a branch or tag has no mapping."""
        log = self.source.run(["log", "--format=%ct %s", "-1", source_hash])
        timestamp, subject = split_signature(log)
        logger.warning(
            "Commit not found in target repository, %s: %s, "
            "date: %s, subject: %s",
            kind,
            name,
            timestamp,
            subject,
        )
