"""Sync options resolved from CLI args, environment and YAML config.

Config files (highest precedence first, whole sections replaced):
    $GITSYNC_CONFIG > .gitsync/config.yml of the repository >
    ~/.config/gitsync/config.yml

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GITSYNC_TARGET: Target repository path or URL
    GITSYNC_TARGET_DIR: Output subdirectory in target (default: .)
    GITSYNC_AFTER: Only sync commits more recent than this date
    GITSYNC_MAX_COUNT: Maximum number of commits walked
    GITSYNC_PRESERVE_COMMIT: Copy commit authorship (default: true)
    GITSYNC_SKIP_TAGS: Do not sync tags (default: false)
    GITSYNC_BASE_DIR: Where remote repositories are cloned
        (default: ~/.gitsync/repos)
"""

import logging
import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config_schema import SyncConfig

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIR = "~/.gitsync/repos"

# Option name -> environment variable
ENV_VARS = {
    "target": "GITSYNC_TARGET",
    "target_dir": "GITSYNC_TARGET_DIR",
    "after": "GITSYNC_AFTER",
    "max_count": "GITSYNC_MAX_COUNT",
    "preserve_commit": "GITSYNC_PRESERVE_COMMIT",
    "skip_tags": "GITSYNC_SKIP_TAGS",
}

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset.

    Raises:
        ValueError: If the value is not a recognised boolean.
    """
    val = os.getenv(key)
    if val is None or val == "":
        return None
    if val.lower() in _TRUE:
        return True
    if val.lower() in _FALSE:
        return False
    raise ValueError(f"Invalid {key} '{val}': must be true or false")


def get_int_env(key: str) -> int | None:
    """Return a positive integer from env var, or None if unset.

    Raises:
        ValueError: If the value is not a positive integer.
    """
    val = os.getenv(key)
    if val is None or val == "":
        return None
    try:
        number = int(val)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{val}': must be a positive number"
        ) from None
    if number < 1:
        raise ValueError(f"Invalid {key} '{val}': must be a positive number")
    return number


def _env_value(name: str):
    key = ENV_VARS.get(name)
    if key is None:
        return None
    if name in ("preserve_commit", "skip_tags"):
        return get_bool_env(key)
    if name == "max_count":
        return get_int_env(key)
    return os.getenv(key) or None


def load_config(
    cli_overrides: dict | None = None,
    yaml_fallbacks: dict | None = None,
) -> SyncConfig:
    """Load sync options with unified precedence.

    Resolution order for each option (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        cli_overrides: Option values from the command line.  ``None``
            values (and empty lists) mean "not given".
        yaml_fallbacks: Values from the YAML config file ``sync`` section.

    Returns:
        Validated SyncConfig instance.

    Raises:
        ValueError: If an option is malformed or ``source_dir`` is missing
            from every source.
    """
    cli = cli_overrides or {}
    fb = yaml_fallbacks or {}

    values: dict = {}
    for name in SyncConfig.model_fields:
        cli_val = cli.get(name)
        if cli_val is not None and cli_val != []:
            values[name] = cli_val
            continue
        env_val = _env_value(name)
        if env_val is not None:
            values[name] = env_val
            continue
        if fb.get(name) is not None:
            values[name] = fb[name]

    if not values.get("source_dir"):
        raise ValueError(
            "Source directory not found. Pass SOURCE_DIR on the command "
            "line or add 'source_dir' to the sync section of config.yml."
        )

    try:
        config = SyncConfig(**values)
    except ValidationError as exc:
        raise ValueError(f"Invalid sync options: {exc}") from exc

    logger.debug("Sync options: %s", config.model_dump())
    return config


def get_base_dir() -> Path:
    """Return the directory where remote repositories are cloned."""
    return Path(os.getenv("GITSYNC_BASE_DIR") or DEFAULT_BASE_DIR).expanduser()


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------

PROJECT_CONFIG = Path(".gitsync") / "config.yml"
GLOBAL_CONFIG = Path(".config") / "gitsync" / "config.yml"

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def find_project_config(start: Path | None = None) -> Path | None:
    """Return the ``.gitsync/config.yml`` governing *start*.

    Looks in *start* (default: the working directory) and its parents, up
    to and including the root of the enclosing git repository.
    """
    start = (start or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        path = directory / PROJECT_CONFIG
        if path.is_file():
            return path
        if (directory / ".git").exists():
            break
    return None


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``GITSYNC_CONFIG`` env var (explicit path)
        2. ``.gitsync/config.yml`` of the current repository
        3. ``~/.config/gitsync/config.yml``
    """
    candidates: list[Path] = []
    explicit = os.getenv("GITSYNC_CONFIG")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    project = find_project_config()
    if project is not None:
        candidates.append(project)
    candidates.append(Path.home() / GLOBAL_CONFIG)
    return [path for path in candidates if path.is_file()]


def _expand_env(value):
    if isinstance(value, str):
        return _ENV_REF.sub(
            lambda m: os.getenv(m.group(1)) or m.group(2) or "", value
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


def load_config_files() -> dict:
    """Merge the discovered config files into one raw dict.

    Files are applied from lowest to highest precedence, each replacing
    whole top-level sections (``sync``, ``logging``) of the previous ones.
    ``${VAR}`` and ``${VAR:-default}`` references in string values are
    expanded from the environment afterwards.

    Raises:
        OSError: If a config file cannot be read.
        yaml.YAMLError: If a config file is not valid YAML.
    """
    merged: dict = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Ignoring %s: expected a mapping, got %s",
                path,
                type(data).__name__,
            )
    return _expand_env(merged)
