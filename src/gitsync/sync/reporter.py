"""Sync report formatting functions.

Provides the human-readable messages logged during and after a sync:

- ``format_counts`` -- ``Commits: new: 1, exists: 2, ...`` lines.
- ``format_synced`` -- ``Synced 2, skipped 1 tags.`` lines.
- ``format_conflict_guide`` -- steps to merge diverged branches by hand.
- ``format_recovery_guide`` -- steps to undo a failed run.
- ``format_sync_report`` -- full post-sync summary.
- ``report_to_json`` -- structured dict for machine-readable output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import conflict_branch_name

if TYPE_CHECKING:
    from .models import ConflictBranch, SyncReport, SyncStats


def pluralize(word: str, count: int, suffix: str = "s") -> str:
    """Return *word* with *suffix* appended unless *count* is one."""
    return word if count == 1 else word + suffix


# ------------------------------------------------------------------
# Progress lines
# ------------------------------------------------------------------


def format_counts(label: str, stats: SyncStats) -> str:
    """Format the set-difference counts of one object kind."""
    return (
        f"{label}: new: {stats.new}, exists: {stats.exists}, "
        f"source: {stats.source}, target: {stats.target}"
    )


def format_synced(kind: str, stats: SyncStats) -> str:
    """Format the outcome of branch or tag reconciliation.

    Args:
        kind: Plural object name (``"branches"`` or ``"tags"``).
        stats: Reconciliation counts.
    """
    return f"Synced {stats.synced}, skipped {stats.skipped} {kind}."


def format_synced_commits(count: int) -> str:
    return f"Synced {count} {pluralize('commit', count)}."


# ------------------------------------------------------------------
# Guides
# ------------------------------------------------------------------


def format_conflict_guide(
    target_path: str, conflicts: list[ConflictBranch]
) -> str:
    """Explain how to merge conflict branches back by hand.

    Args:
        target_path: Directory of the target repository (including the
            target subdirectory).
        conflicts: Diverged branches.

    Returns:
        Multi-line guide.
    """
    count = len(conflicts)
    noun = pluralize("branch", count, "es")
    placeholder = conflict_branch_name("BRANCH-NAME")

    lines = [
        "The target repository contains conflict "
        f"{noun}, which need to be resolved manually.",
        "",
        f"The conflict {noun}:",
        "",
    ]
    for conflict in conflicts:
        lines.append(f"    {conflict.branch} conflict with {conflict.name}")
    lines += [
        "",
        "Please follow the steps to resolve the conflicts:",
        "",
        f"    1. cd {target_path}",
        "    2. git checkout BRANCH-NAME // Replace BRANCH-NAME to your "
        "branch name",
        f"    3. git merge {placeholder}",
        "    4. // Follow the tips to resolve the conflicts",
        f"    5. git branch -d {placeholder} // Remove temp branch",
        '    6. "gitsync ..." to sync changes back to current repository',
    ]
    return "\n".join(lines)


def format_recovery_guide(
    target_path: str, initial_head: str, verbose: bool
) -> str:
    """Explain how to retry and how to reset the target after a failure.

    Args:
        target_path: Directory of the target repository.
        initial_head: Newest target commit before the run, ``""`` when the
            target had no commits.
        verbose: Whether DEBUG logging was already enabled.
    """
    lines = ["Sorry, an error occurred during sync.", ""]
    if not verbose:
        lines += [
            "To retry your command with verbose logs:",
            "",
            "    1. YOUR-COMMAND --log-level=verbose",
            "",
        ]

    lines += ["To reset to previous HEAD:", "", f"    1. cd {target_path}"]
    if initial_head:
        lines.append(f"    2. git reset --hard {initial_head}")
    else:
        lines += [
            "    2. git rm --cached -r *",
            "    3. git update-ref -d HEAD",
        ]
    return "\n".join(lines)


# ------------------------------------------------------------------
# Summary
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    The tag line is omitted when tag sync was skipped.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines = [
        f"Sync report for {report.source} -> {report.target}",
        f"  Commits:   {report.commits.synced} synced, "
        f"{report.commits.exists} existing",
        f"  Branches:  {report.branches.synced} synced, "
        f"{report.branches.skipped} skipped",
    ]
    if report.tags is not None:
        lines.append(
            f"  Tags:      {report.tags.synced} synced, "
            f"{report.tags.skipped} skipped"
        )
    if report.conflicts:
        lines.append("  Conflicts:")
        for conflict in report.conflicts:
            lines.append(f"    {conflict.branch} -> {conflict.name}")
    return "\n".join(lines)


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with repository paths, per-kind counts and conflict branches.
    """
    return {
        "source": report.source,
        "target": report.target,
        "commits": report.commits.model_dump(),
        "branches": report.branches.model_dump(),
        "tags": report.tags.model_dump() if report.tags is not None else None,
        "conflicts": [
            {"branch": c.branch, "conflict_branch": c.name}
            for c in report.conflicts
        ],
    }
