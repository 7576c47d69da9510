"""Replay source commits onto the target repository.

Commits are processed oldest first.  Each one is replayed on the right
target branch, its changes under the tracked directory are transferred
and a commit with the source message (and, by default, the source
authorship) is created.

Changes are transferred in one of two ways:

* **Patch apply** -- the commit's diff, restricted to the tracked
  directory, is applied with a three-way ``git apply``.  This is the
  normal path for ordinary commits.
* **Overwrite** -- the files the commit added or modified are checked out
  of the source repository and copied over the target, and deleted files
  are removed.  Merge commits always use it; ordinary commits fall back
  to it when their patch does not apply.

A failed patch is handled by ``ApplyState`` transitions: when the target
history is a prefix of the source's, the overwrite is safe.  Otherwise the
branch is diverted once onto its conflict branch and the patch retried
there; a second failure resolves to the incoming side.
"""

from __future__ import annotations

import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable

from gitsync.core.git import (
    Git,
    GitCommandError,
    GitRepo,
    current_branch,
    git_dir,
)
from gitsync.errors import CommitNotFoundError
from gitsync.sync.mapper import HashMapper
from gitsync.sync.models import CommitRecord
from gitsync.sync.progress import NullProgress, Progress
from gitsync.sync.resolver import ConflictEscalation
from gitsync.sync.session import SyncSession

logger = logging.getLogger(__name__)

# Hash of the empty tree, used as the "parent" of root commits
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

TEMP_BRANCH_PREFIX = "sync-"

WORKTREE_NAME = "gitsync-worktree"

_FIELD_SEP = "\x1f"

_COMMIT_FORMAT = "--format=" + "%x1f".join(
    ["%an", "%ae", "%ai", "%cn", "%ce", "%ci", "%B"]
)


class ApplyState(str, Enum):
    """Replay state of an ordinary (non-merge) commit."""

    APPLYING = "applying"
    DIVERTED = "diverted"
    COMMITTED = "committed"


class CommitReplayEngine:
    """Replay missing commits into the target working tree.

    Args:
        source: Source repository.
        target: Target repository.
        source_dir: Tracked subdirectory of the source repository.
        target_dir: Subdirectory of the target receiving the files.
        mapper: Source-to-target hash mapper.
        session: State of the current run.
        escalation: Conflict branch handler.
        preserve_commit: Copy author and committer identity and dates.
        repo_factory: Builds a repository handle for the scratch worktree.
    """

    def __init__(
        self,
        source: Git,
        target: Git,
        source_dir: str,
        target_dir: str,
        mapper: HashMapper,
        session: SyncSession,
        escalation: ConflictEscalation,
        preserve_commit: bool = True,
        repo_factory: Callable[[str], Git] = GitRepo,
    ) -> None:
        self.source = source
        self.target = target
        self.source_dir = source_dir
        self.target_dir = target_dir
        self.mapper = mapper
        self.session = session
        self.escalation = escalation
        self.preserve_commit = preserve_commit
        self.repo_factory = repo_factory

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def replay(
        self, commits: list[CommitRecord], progress: Progress | None = None
    ) -> int:
        """Replay *commits* (oldest first).

        Returns:
            Number of commits created in the target.
        """
        progress = progress or NullProgress()
        progress.start(len(commits))
        for record in commits:
            self.replay_commit(record)
            progress.tick()
        progress.terminate()
        return len(commits)

    def replay_commit(self, record: CommitRecord) -> str:
        """Replay one commit and return the new target hash."""
        logger.debug("Replaying %s %s", record.hash, record.subject)
        branch = self._switch_branch(record)

        if record.is_merge:
            self._merge(record)
        else:
            self._apply(record, branch)

        self._commit(record.hash)
        target_hash = self.target.run(["rev-parse", "HEAD"])
        self.mapper.set_target_hash(record.hash, target_hash)
        return target_hash

    # ------------------------------------------------------------------
    # Branch context
    # ------------------------------------------------------------------

    def _switch_branch(self, record: CommitRecord) -> str:
        """Check out the target branch for *record* and return its lineage.

        The lineage is the default branch for the current lineage.  A side
        lineage is keyed by its first temp branch and inherited by every
        temp branch started from one of its commits, so a diverted side
        lineage keeps replaying onto its conflict branch.
        """
        if record.on_current_branch:
            ref = self.session.default_ref
            if ref and current_branch(self.target) != ref:
                self.target.run(["checkout", ref])
            return self.session.default_branch or current_branch(self.target)

        if not record.parents:
            name = TEMP_BRANCH_PREFIX + record.hash
            self.target.run(["checkout", "--orphan", name])
            self.target.run(["rm", "-rf", "-q", "--ignore-unmatch", "."])
            self.session.add_temp_branch(name)
            self.session.lineages[record.hash] = name
            return name

        parent = record.parents[0]
        name = TEMP_BRANCH_PREFIX + parent
        lineage = self.session.lineages.get(parent, name)
        start = self._require_target_hash(parent)
        if self.session.is_diverted(lineage):
            self.target.run(
                ["checkout", "-B", self.session.diverted[lineage], start]
            )
        else:
            self.target.run(["checkout", "-B", name, start])
            self.session.add_temp_branch(name)
        self.session.lineages[record.hash] = lineage
        return lineage

    def _require_target_hash(self, source_hash: str) -> str:
        target_hash = self.mapper.get_target_hash(source_hash)
        if not target_hash:
            raise CommitNotFoundError(source_hash)
        return target_hash

    # ------------------------------------------------------------------
    # Merge commits
    # ------------------------------------------------------------------

    def _merge(self, record: CommitRecord) -> None:
        parents = [self._require_target_hash(p) for p in record.parents]
        try:
            # Stop before committing: the tree is rewritten from the source
            # merge result whether or not git merged cleanly.
            self.target.run(
                ["merge", "--no-ff", "--no-commit", *parents], mute=True
            )
        except GitCommandError as exc:
            logger.debug("Merge of %s left conflicts: %s", record.hash, exc)
        self._overwrite(record)

    # ------------------------------------------------------------------
    # Ordinary commits
    # ------------------------------------------------------------------

    def create_patch(self, source_hash: str) -> str:
        """Return the diff of *source_hash* under the tracked directory."""
        patch = self.source.run(
            [
                "log",
                "-p",
                "--reverse",
                "-m",
                "--stat",
                "--binary",
                "-1",
                "--color=never",
                # An empty format keeps diff-like commit bodies out of the
                # patch.
                "--format=%n",
                source_hash,
                "--",
                self.source_dir,
            ]
        )
        # git apply reports "corrupt patch" without the trailing newlines
        return patch + "\n\n"

    def apply_args(self) -> list[str]:
        args = ["apply", "-3", "--ignore-whitespace"]
        if self.source_dir and self.source_dir != ".":
            args.append(f"-p{self.source_dir.count('/') + 2}")
        if self.target_dir and self.target_dir != ".":
            args += ["--directory", self.target_dir]
        return args

    def _apply(self, record: CommitRecord, branch: str) -> ApplyState:
        patch = self.create_patch(record.hash)
        if "diff --git" not in patch:
            logger.debug("Commit %s has no changes to apply", record.hash)
            return ApplyState.COMMITTED

        state = ApplyState.APPLYING
        while state is not ApplyState.COMMITTED:
            if self._try_apply(record.hash, patch):
                state = ApplyState.COMMITTED
            elif self.session.is_contains:
                self._overwrite(record)
                state = ApplyState.COMMITTED
            elif state is ApplyState.APPLYING and not self.session.is_diverted(
                branch
            ):
                self.escalation.escalate(
                    record.hash, branch, self._conflict_label(record)
                )
                state = ApplyState.DIVERTED
            else:
                self.escalation.escalate(record.hash, branch)
                self._overwrite(record)
                state = ApplyState.COMMITTED
        return state

    def _conflict_label(self, record: CommitRecord) -> str | None:
        """Return the branch a side-lineage conflict branch is named after."""
        if record.on_current_branch:
            return None
        return self.escalation.owning_branch(record.hash)

    def _try_apply(self, source_hash: str, patch: str) -> bool:
        try:
            self.target.run(self.apply_args(), input=patch, mute=True)
        except GitCommandError as exc:
            logger.info("Patch of %s does not apply: %s", source_hash, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Overwrite step
    # ------------------------------------------------------------------

    def changed_files(self, record: CommitRecord) -> dict[str, str]:
        """Return ``{path: status}`` of files changed by *record*.

        Paths are relative to the source repository root; statuses are the
        first letter of ``git diff-tree --name-status``.
        """
        files: dict[str, str] = {}
        for parent in record.parents or [EMPTY_TREE]:
            output = self.source.run(
                [
                    "diff-tree",
                    "--name-status",
                    "--no-renames",
                    "-r",
                    "-z",
                    parent,
                    record.hash,
                    "--",
                    self.source_dir,
                ],
                strip=False,
            )
            fields = [f for f in output.split("\0") if f]
            for status, path in zip(fields[::2], fields[1::2]):
                files[path] = status[0]
        return files

    def _overwrite(self, record: CommitRecord) -> None:
        files = self.changed_files(record)
        removed = [path for path, status in files.items() if status == "D"]
        updated = [path for path, status in files.items() if status != "D"]

        root = Path(self.target.dir, self.target_dir)

        # Delete first, so a file both removed and re-added by the merge of
        # several parents ends up present.
        for path in removed:
            (root / self._relative(path)).unlink(missing_ok=True)

        if not updated:
            return

        worktree = self._worktree()
        worktree.run(["checkout", "-f", record.hash, "--", *updated])
        for path in updated:
            dest = root / self._relative(path)
            dest.parent.mkdir(parents=True, exist_ok=True)
            os.replace(Path(worktree.dir, path), dest)

    def _relative(self, path: str) -> str:
        if not self.source_dir or self.source_dir == ".":
            return path
        return path[len(self.source_dir) + 1 :]

    def _worktree(self) -> Git:
        """Return the scratch worktree, creating it on first use."""
        if self.session.worktree is not None:
            return self.session.worktree

        path = git_dir(self.target) / WORKTREE_NAME
        if path.exists():
            logger.warning("Removing stale worktree %s", path)
            shutil.rmtree(path)
            self.source.run(["worktree", "prune"])

        self.source.run(
            ["worktree", "add", "-f", str(path), "--no-checkout", "--detach"]
        )
        self.session.worktree = self.repo_factory(str(path))
        return self.session.worktree

    # ------------------------------------------------------------------
    # Commit step
    # ------------------------------------------------------------------

    def commit_env(self, source_hash: str) -> tuple[str, dict[str, str] | None]:
        """Return the message of *source_hash* and the identity environment.

        The environment is ``None`` when commit identity is not preserved.
        """
        output = self.source.run(["show", "-s", _COMMIT_FORMAT, source_hash])
        fields = output.split(_FIELD_SEP, 6)
        fields += [""] * (7 - len(fields))
        message = fields[6]
        if not self.preserve_commit:
            return message, None
        return message, {
            "GIT_AUTHOR_NAME": fields[0],
            "GIT_AUTHOR_EMAIL": fields[1],
            "GIT_AUTHOR_DATE": fields[2],
            "GIT_COMMITTER_NAME": fields[3],
            "GIT_COMMITTER_EMAIL": fields[4],
            "GIT_COMMITTER_DATE": fields[5],
        }

    def _commit(self, source_hash: str) -> None:
        self.target.run(["add", "-A"])
        message, env = self.commit_env(source_hash)
        self.target.run(
            [
                "commit",
                "--allow-empty",
                "--allow-empty-message",
                "-am",
                message,
            ],
            env=env,
        )
