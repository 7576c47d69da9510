"""Command line entry point: ``gitsync TARGET SOURCE_DIR``."""

import argparse
import logging
import sys

import yaml
from dotenv import load_dotenv

from . import __version__
from .config import load_config, load_config_files
from .config_schema import build_config
from .core.git import GitCommandError
from .errors import ConflictError, GitSyncError
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.reporter import format_sync_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFLICT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitsync",
        description="Sync the history of a repository subdirectory into "
        "another repository, branches and tags included",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync packages/http of the current repository into ../http
  gitsync ../http packages/http

  # Sync back from the component repository into the monorepo
  gitsync ../monorepo . --target-dir packages/http

  # Only release branches, no tags, authored as the current user
  gitsync git@example.com:org/http.git packages/http \\
      --include-branches 'release/*' --no-tags --no-preserve-commit

Options can also be set via GITSYNC_* environment variables, a .env file
or the "sync" section of .gitsync/config.yml.
        """,
    )

    parser.add_argument(
        "target",
        nargs="?",
        help="Target repository directory or URL (default: GITSYNC_TARGET "
        "env var or config files)",
    )
    parser.add_argument(
        "source_dir",
        nargs="?",
        help="Subdirectory of the source repository to sync",
    )
    parser.add_argument(
        "--source",
        help="Source repository directory or URL (default: .)",
    )
    parser.add_argument(
        "--target-dir",
        help="Subdirectory of the target repository receiving the files "
        "(default: .)",
    )
    parser.add_argument(
        "--include-branches",
        nargs="+",
        metavar="GLOB",
        help="Only sync branches matching these globs",
    )
    parser.add_argument(
        "--exclude-branches",
        nargs="+",
        metavar="GLOB",
        help="Do not sync branches matching these globs",
    )
    parser.add_argument(
        "--include-tags",
        nargs="+",
        metavar="GLOB",
        help="Only sync tags matching these globs",
    )
    parser.add_argument(
        "--exclude-tags",
        nargs="+",
        metavar="GLOB",
        help="Do not sync tags matching these globs",
    )
    parser.add_argument(
        "--after",
        help="Only sync commits more recent than this date",
    )
    parser.add_argument(
        "--max-count",
        type=int,
        help="Maximum number of commits to read",
    )
    parser.add_argument(
        "--no-preserve-commit",
        dest="preserve_commit",
        action="store_false",
        default=None,
        help="Commit as the current user instead of copying authorship",
    )
    parser.add_argument(
        "--no-tags",
        dest="skip_tags",
        action="store_true",
        default=None,
        help="Do not sync tags",
    )
    parser.add_argument(
        "--log-level",
        help="Log level: debug (or verbose), info, warning, error "
        "(default: LOG_LEVEL env var or info)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level, overriding --log-level",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file",
    )
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gitsync version {__version__}",
    )
    return parser


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args(argv)

    load_dotenv()

    try:
        unified = build_config(load_config_files())
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    setup_logging(
        level=args.log_level or unified.logging.level,
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.debug_format,
    )

    cli_overrides = {
        "source": args.source,
        "target": args.target,
        "source_dir": args.source_dir,
        "target_dir": args.target_dir,
        "include_branches": args.include_branches,
        "exclude_branches": args.exclude_branches,
        "include_tags": args.include_tags,
        "exclude_tags": args.exclude_tags,
        "after": args.after,
        "max_count": args.max_count,
        "preserve_commit": args.preserve_commit,
        "skip_tags": args.skip_tags,
    }

    try:
        config = load_config(
            cli_overrides, unified.sync.model_dump(exclude_none=True)
        )
        report = SyncEngine(config).run()
    except ConflictError as exc:
        logger.error("Sync stopped with %s", exc)
        sys.exit(EXIT_CONFLICT)
    except (GitSyncError, GitCommandError, ValueError) as exc:
        logger.error("%s", exc)
        sys.exit(EXIT_ERROR)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    print(format_sync_report(report))
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    run()
