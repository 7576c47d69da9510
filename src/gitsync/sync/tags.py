"""Create source tags missing from the target repository.

Existing target tags are never moved.  A new tag is created at the target
commit equivalent to the nearest ancestor of the tagged commit that
touches the tracked directory; annotated tags keep their message.
"""

from __future__ import annotations

import logging

from gitsync.core.git import Git
from gitsync.sync.history import get_tags
from gitsync.sync.mapper import HashMapper
from gitsync.sync.models import SyncStats, Tag
from gitsync.sync.patterns import filter_mapping
from gitsync.sync.progress import NullProgress, Progress
from gitsync.sync.reporter import format_counts, format_synced

logger = logging.getLogger(__name__)


class TagReconciler:
    """Copy filtered, missing tags from source to target.

    Args:
        source: Source repository.
        target: Target repository.
        mapper: Source-to-target hash mapper.
        include: Tag globs to include (empty means all).
        exclude: Tag globs to exclude.
    """

    def __init__(
        self,
        source: Git,
        target: Git,
        mapper: HashMapper,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
    ) -> None:
        self.source = source
        self.target = target
        self.mapper = mapper
        self.include = include or []
        self.exclude = exclude or []

    def reconcile(self, progress: Progress | None = None) -> SyncStats:
        """Create the missing tags.

        Returns:
            Tag counts.  ``new`` counts the filtered new tags.
        """
        progress = progress or NullProgress()
        source_tags = get_tags(self.source)
        target_tags = get_tags(self.target)

        new_tags = {
            name: tag
            for name, tag in source_tags.items()
            if name not in target_tags
        }
        selected = filter_mapping(new_tags, self.include, self.exclude)

        stats = SyncStats(
            new=len(selected),
            exists=len(source_tags) - len(new_tags),
            source=len(source_tags),
            target=len(target_tags),
        )
        logger.info(format_counts("Tags", stats))

        skipped = 0
        progress.start(len(selected))
        for tag in selected.values():
            if not self._create_tag(tag):
                skipped += 1
            progress.tick()
        progress.terminate()

        stats = stats.model_copy(
            update={"synced": len(selected) - skipped, "skipped": skipped}
        )
        logger.info(format_synced("tags", stats))
        return stats

    def _create_tag(self, tag: Tag) -> bool:
        target_hash = self.mapper.find_target_tag_hash(tag.hash)
        if not target_hash:
            self.mapper.log_commit_not_found(tag.hash, "tag", tag.name)
            return False

        args = ["tag", tag.name, target_hash]
        if tag.annotated:
            message = self.source.run(
                ["tag", "-l", "--format=%(contents)", tag.name]
            )
            args += ["-m", message]
        logger.debug("Creating tag %s at %s", tag.name, target_hash)
        self.target.run(args)
        return True
