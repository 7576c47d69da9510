"""Thin ``git`` process wrapper shared by every sync component.

All repository access goes through ``GitRepo.run``: one command at a time,
executed in the repository directory, returning trimmed standard output.
Sync components only rely on the ``Git`` protocol (``dir`` + ``run``), so
tests can substitute an in-memory fake.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class GitCommandError(Exception):
    """A ``git`` invocation exited with a non-zero status.

    Attributes:
        args_list: Arguments passed after ``git``.
        returncode: Process exit status.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        args_list: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.args_list = list(args_list)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        message = (
            f"git {' '.join(self.args_list)} failed "
            f"with exit code {returncode}"
        )
        if detail:
            message += f": {detail}"
        super().__init__(message)


class Git(Protocol):
    """The process-execution contract used by the sync engine."""

    dir: str

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: dict[str, str] | None = None,
        mute: bool = False,
        strip: bool = True,
    ) -> str:
        """Run ``git <args>`` and return its output."""
        ...  # pragma: no cover


class GitRepo:
    """Run git commands against one working directory.

    Args:
        dir: Path of the working tree (or worktree) to operate on.
    """

    def __init__(self, dir: str | Path) -> None:
        self.dir = str(dir)

    def __repr__(self) -> str:
        return f"GitRepo({self.dir!r})"

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: dict[str, str] | None = None,
        mute: bool = False,
        strip: bool = True,
    ) -> str:
        """Execute ``git <args>`` in this repository.

        Args:
            args: Arguments following ``git``.
            input: Text written to the process's standard input.
            env: Environment overrides merged over ``os.environ``.
            mute: Log failures at DEBUG instead of WARNING.
            strip: Strip trailing whitespace from the output.

        Returns:
            Standard output of the command.

        Raises:
            GitCommandError: If git exits with a non-zero status.
        """
        command = ["git", *args]
        logger.debug("Run: %s (in %s)", " ".join(command), self.dir)

        full_env = None
        if env:
            full_env = {**os.environ, **env}

        result = subprocess.run(
            command,
            cwd=self.dir,
            input=input,
            env=full_env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
        )

        if result.returncode != 0:
            log = logger.debug if mute else logger.warning
            log(
                "Command failed: git %s (exit %d): %s",
                " ".join(args),
                result.returncode,
                result.stderr.strip(),
            )
            raise GitCommandError(
                args, result.returncode, result.stdout, result.stderr
            )

        output = result.stdout
        return output.rstrip() if strip else output


# ---------------------------------------------------------------------------
# Repository helpers
# ---------------------------------------------------------------------------


def has_commits(repo: Git) -> bool:
    """Return ``True`` if any ref of *repo* points at a commit."""
    return bool(repo.run(["rev-list", "-n", "1", "--all"]))


def current_branch(repo: Git) -> str:
    """Return the checked-out branch name, or ``""`` on a detached HEAD.

    Works on a freshly initialised repository, where HEAD points at an
    unborn branch.
    """
    try:
        return repo.run(["symbolic-ref", "--short", "-q", "HEAD"], mute=True)
    except GitCommandError:
        return ""


def has_branch(repo: Git, name: str) -> bool:
    """Return ``True`` if a local branch *name* exists."""
    return bool(repo.run(["branch", "--list", name]))


def git_dir(repo: Git) -> Path:
    """Return the absolute path of the repository's git directory."""
    return Path(repo.run(["rev-parse", "--absolute-git-dir"]))
