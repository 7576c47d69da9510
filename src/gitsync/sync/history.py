"""Read path-filtered commit graphs, branches and tags from a repository.

The commit walk uses ``git log --graph`` so that the leftmost graph column,
the lineage of the walk's first ref, can be told apart from side
branches.  Each commit row is decoded into a ``CommitRecord``; the mapping
returned by ``get_logs`` keeps the walk order (descendants first), which
the replay engine reverses to process commits oldest first.
"""

from __future__ import annotations

import logging
import re

from gitsync.core.git import Git, has_commits
from gitsync.errors import LogFormatError
from gitsync.sync.models import CommitRecord, Tag

logger = logging.getLogger(__name__)

LOG_FORMAT = "--format=#%H %P-%at %s"

REMOTE = "origin"

# Example: ada25d8079f998939893a9ec33f4006d99a19554 refs/tags/v1.2.0^{}
_SHOW_REF_TAG = re.compile(r"^(\S+) refs/tags/(.+?)(\^\{\})?$")


# ---------------------------------------------------------------------------
# Commit graph
# ---------------------------------------------------------------------------


def decode_log_row(row: str) -> CommitRecord | None:
    """Decode one ``git log --graph`` row.

    Args:
        row: A line produced with ``LOG_FORMAT``.

    Returns:
        The decoded record, or ``None`` for graph-only rows (edges).

    Raises:
        LogFormatError: If a commit row cannot be decoded.
    """
    marker = row.find("#")
    if marker == -1:
        if "*" in row:
            raise LogFormatError(row)
        return None

    graph = row[:marker]
    if "*" not in graph:
        return None

    ids, sep, rest = row[marker + 1 :].partition("-")
    hashes = ids.split()
    if not sep or not hashes:
        raise LogFormatError(row)

    timestamp, _, subject = rest.partition(" ")
    try:
        ts = int(timestamp)
    except ValueError:
        raise LogFormatError(row) from None

    return CommitRecord(
        hash=hashes[0],
        parents=hashes[1:],
        timestamp=ts,
        subject=subject,
        on_current_branch=graph.startswith("*"),
    )


def get_logs(
    repo: Git,
    branches: list[str],
    path: str,
    after: str | None = None,
    max_count: int | None = None,
) -> dict[str, CommitRecord]:
    """Return the commits of *branches* that touch *path*.

    Args:
        repo: Repository to read.
        branches: Refs to walk; all refs when empty.
        path: Path filter (``"."`` for the whole tree).
        after: Only commits more recent than this git date.
        max_count: Limit the number of commits walked.

    Returns:
        Ordered mapping of commit hash to record, newest first.  Empty when
        the repository has no commits.
    """
    # "git log" fails with "does not have any commits yet" on an empty repo
    if not has_commits(repo):
        return {}

    args = ["log", "--graph", LOG_FORMAT]
    if after:
        args += ["--after", after]
    if max_count:
        args.append(f"-{max_count}")
    if branches:
        args += branches
    else:
        args.append("--all")
    if path:
        args += ["--", path]

    output = repo.run(args)
    if not output:
        return {}

    logs: dict[str, CommitRecord] = {}
    for row in output.split("\n"):
        record = decode_log_row(row)
        if record is not None:
            logs[record.hash] = record
    return logs


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------


def to_local_branch(branch: str) -> str:
    """Convert a remote-tracking branch name to its local name."""
    prefix = f"{REMOTE}/"
    if branch.startswith(prefix):
        return branch[len(prefix) :]
    return branch


def get_branches(repo: Git) -> list[str]:
    """List local and remote-tracking branches.

    ``remotes/`` prefixes are stripped, symbolic ``HEAD -> ...`` entries and
    detached-HEAD lines are ignored, and ``origin/<name>`` is dropped when a
    local ``<name>`` already exists.
    """
    return _parse_branches(repo.run(["branch", "-a", "--no-color"]))


def get_branches_containing(repo: Git, commit: str) -> list[str]:
    """List the local names of the branches containing *commit*."""
    output = repo.run(["branch", "-a", "--no-color", "--contains", commit])
    return [to_local_branch(name) for name in _parse_branches(output)]


def _parse_branches(output: str) -> list[str]:
    if not output:
        return []

    branches: list[str] = []
    for line in output.split("\n"):
        # "  remotes/origin/1.0" -> "remotes/origin/1.0"
        name = line[2:]
        if name.startswith("remotes/"):
            name = name[len("remotes/") :]
        if " -> " in name or name.startswith("("):
            continue
        if name.startswith(f"{REMOTE}/") and to_local_branch(name) in branches:
            continue
        branches.append(name)
    return branches


def get_branch_from_logs(
    repo: Git, logs: dict[str, CommitRecord]
) -> str:
    """Return the branch owning the newest commit of a walk.

    Returns ``""`` when *logs* is empty.
    """
    if not logs:
        return ""
    newest = next(iter(logs))
    output = repo.run(["branch", "--no-color", "--contains", newest])
    for line in output.split("\n"):
        # Example: "* master"
        name = line[2:]
        if name and not name.startswith("("):
            return name
    return ""


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def get_tags(repo: Git) -> dict[str, Tag]:
    """Return the repository's tags keyed by name.

    For annotated tags the peeled commit hash is used.
    """
    # "show-ref" exits with status 1 when there are no tags
    if not repo.run(["rev-list", "-n", "1", "--tags"]):
        return {}

    tags: dict[str, Tag] = {}
    output = repo.run(["show-ref", "--tags", "-d"])
    for row in output.split("\n"):
        match = _SHOW_REF_TAG.match(row)
        if match is None:
            logger.debug("Ignoring show-ref row: %s", row)
            continue
        name = match.group(2)
        tags[name] = Tag(
            name=name,
            hash=match.group(1),
            annotated=match.group(3) is not None,
        )
    return tags
