"""Shared pytest fixtures for gitsync tests."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Sequence

import pytest

from gitsync.core.git import GitCommandError

HAS_GIT = shutil.which("git") is not None


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: tests that run the real git binary"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests when git is not installed."""
    if HAS_GIT:
        return
    skip_git = pytest.mark.skip(reason="git executable not found")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_git)


# ---------------------------------------------------------------------------
# Scripted git fake
# ---------------------------------------------------------------------------


class FakeGit:
    """In-memory replacement for ``GitRepo``.

    Responses are scripted per argument prefix with ``on()``; the most
    recently registered matching rule wins.  Unscripted commands return
    ``""``.  Every call is recorded in ``calls``.
    """

    def __init__(self, dir: str = "/repo") -> None:
        self.dir = dir
        self.rules: list[list] = []
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.envs: list[dict | None] = []

    def on(
        self,
        *prefix: str,
        output: str = "",
        error: bool = False,
        times: int | None = None,
    ) -> FakeGit:
        self.rules.append([tuple(prefix), output, error, times])
        return self

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: dict | None = None,
        mute: bool = False,
        strip: bool = True,
    ) -> str:
        args = list(args)
        self.calls.append(args)
        self.inputs.append(input)
        self.envs.append(env)
        for rule in reversed(self.rules):
            prefix, output, error, times = rule
            if tuple(args[: len(prefix)]) != prefix:
                continue
            if times is not None:
                rule[3] -= 1
                if rule[3] == 0:
                    self.rules.remove(rule)
            if error:
                raise GitCommandError(args, 1, "", "scripted failure")
            return output
        return ""

    def commands(self, name: str) -> list[list[str]]:
        """Return the recorded calls of one git subcommand."""
        return [call for call in self.calls if call and call[0] == name]

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[: len(prefix)]) == prefix for c in self.calls)


@pytest.fixture
def make_git():
    """Factory fixture for ``FakeGit`` instances."""

    def _make(dir: str = "/repo") -> FakeGit:
        return FakeGit(dir)

    return _make


# ---------------------------------------------------------------------------
# Real repositories
# ---------------------------------------------------------------------------


class RepoBuilder:
    """Build a real git repository with deterministic commit dates.

    Args:
        path: Working tree directory (created if missing).
        clock: Shared one-element list holding the next commit timestamp,
            so that repositories built in one test never reuse a second.
    """

    def __init__(self, path: Path, clock: list[int]) -> None:
        self.path = path
        self.clock = clock
        path.mkdir(parents=True, exist_ok=True)
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/master")

    def git(self, *args: str, env: dict | None = None) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            env={**os.environ, **(env or {})},
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    def write(self, rel_path: str, content: str) -> None:
        path = self.path / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def remove(self, rel_path: str) -> None:
        (self.path / rel_path).unlink()

    def read(self, rel_path: str) -> str:
        return (self.path / rel_path).read_text(encoding="utf-8")

    def _identity(self, author: str) -> dict:
        timestamp = self.clock[0]
        self.clock[0] += 60
        date = f"{timestamp} +0000"
        email = f"{author.lower()}@example.com"
        return {
            "GIT_AUTHOR_NAME": author,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_AUTHOR_DATE": date,
            "GIT_COMMITTER_NAME": author,
            "GIT_COMMITTER_EMAIL": email,
            "GIT_COMMITTER_DATE": date,
        }

    def commit(self, message: str, author: str = "Alice") -> str:
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message, env=self._identity(author))
        return self.head()

    def merge(self, branch: str, message: str, author: str = "Alice") -> str:
        self.git(
            "merge", "-q", "--no-ff", branch, "-m", message,
            env=self._identity(author),
        )
        return self.head()

    def tag(self, name: str, message: str | None = None) -> None:
        if message is None:
            self.git("tag", name)
        else:
            self.git("tag", "-a", name, "-m", message, env=self._identity("Alice"))

    def head(self, ref: str = "HEAD") -> str:
        return self.git("rev-parse", ref)

    def branches(self) -> list[str]:
        output = self.git("branch", "--format=%(refname:short)")
        return output.split("\n") if output else []

    def tags(self) -> list[str]:
        output = self.git("tag", "--list")
        return output.split("\n") if output else []

    def count(self, ref: str = "HEAD") -> int:
        return int(self.git("rev-list", "--count", ref))


@pytest.fixture
def git_home(tmp_path, monkeypatch):
    """Isolate git from the user's configuration."""
    home = tmp_path / "home"
    home.mkdir()
    (home / ".gitconfig").write_text(
        "[user]\n"
        "\tname = Sync Bot\n"
        "\temail = bot@example.com\n"
        "[init]\n"
        "\tdefaultBranch = master\n"
        "[commit]\n"
        "\tgpgsign = false\n"
        "[tag]\n"
        "\tgpgsign = false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    for name in (
        "GIT_AUTHOR_NAME",
        "GIT_AUTHOR_EMAIL",
        "GIT_AUTHOR_DATE",
        "GIT_COMMITTER_NAME",
        "GIT_COMMITTER_EMAIL",
        "GIT_COMMITTER_DATE",
        "GIT_DIR",
        "GIT_WORK_TREE",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def make_repo(tmp_path, git_home):
    """Factory fixture building real repositories under ``tmp_path``."""
    clock = [1_700_000_000]

    def _make(name: str) -> RepoBuilder:
        return RepoBuilder(tmp_path / name, clock)

    return _make
