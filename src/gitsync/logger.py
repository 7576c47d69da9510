import json
import logging
import os
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
FILE_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Extra level names accepted on the command line
LEVEL_ALIASES = {"VERBOSE": "DEBUG", "WARN": "WARNING"}


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    """Convert a level name (``verbose`` included) to a logging level."""
    if not name:
        return default
    name = name.upper()
    name = LEVEL_ALIASES.get(name, name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _formatter(debug_format: str, fmt: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=DATE_FORMAT)
    return logging.Formatter(fmt, datefmt=DATE_FORMAT)


def setup_logging(
    level: str | None = None,
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging for the command line.

    Records go to stderr, and to *log_file* as well when one is given.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR or verbose).
            Defaults to the LOG_LEVEL env var, then INFO.
        debug: If True, overrides the level to DEBUG.
        log_file: Optional log file path (appended to).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level used when *level* is not given.
    """
    if debug:
        log_level = logging.DEBUG
    else:
        log_level = parse_level(level or os.getenv("LOG_LEVEL"))

    handlers: list[logging.Handler] = []
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_formatter(debug_format, LOG_FORMAT))
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(_formatter(debug_format, FILE_LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
    )


def is_verbose() -> bool:
    """Return True if DEBUG records of the gitsync package are emitted."""
    return logging.getLogger("gitsync").isEnabledFor(logging.DEBUG)
