"""History sync engine.

Public API for replaying the history of one repository subdirectory into
another repository, branches and tags included.

Architecture
------------
Commits are matched across repositories by **signature**: timestamp and
message.  Source commits whose signature is missing from the target are
replayed oldest first, as a three-way patch where possible and by copying
the committed files otherwise.  When the two histories have diverged, the
new history is isolated on a ``<branch>-git-sync-conflict`` branch instead
of being forced onto the existing one.

Modules:

- ``engine``    -- ``SyncEngine``: orchestrates a full sync run.
- ``history``   -- path-filtered commit graph, branch and tag listing.
- ``mapper``    -- ``HashMapper``: source-to-target commit resolution.
- ``replay``    -- ``CommitReplayEngine``: patch, overwrite and commit.
- ``resolver``  -- ``ConflictEscalation``: conflict branch diversion.
- ``branches``  -- ``BranchReconciler``: create/fast-forward/divert.
- ``tags``      -- ``TagReconciler``: create missing tags.
- ``patterns``  -- include/exclude glob filtering.
- ``session``   -- ``SyncSession``: per-run mutable state.
- ``progress``  -- progress observers.
- ``models``    -- ``CommitRecord``, ``Tag``, ``ConflictBranch``,
  ``SyncStats``, ``SyncReport``: core data contracts.
- ``reporter``  -- human-readable and JSON report formatting.

Usage example
-------------
::

    from gitsync.config_schema import SyncConfig
    from gitsync.sync import SyncEngine, format_sync_report

    config = SyncConfig(target="../component", source_dir="packages/component")
    report = SyncEngine(config).run()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .models import (
    CommitRecord,
    ConflictBranch,
    SyncReport,
    SyncStats,
    Tag,
)
from .reporter import format_sync_report, report_to_json

__all__ = [
    "CommitRecord",
    "ConflictBranch",
    "SyncEngine",
    "SyncReport",
    "SyncStats",
    "Tag",
    "format_sync_report",
    "report_to_json",
]
