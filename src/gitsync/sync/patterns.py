"""Include/exclude glob filtering for branch and tag names.

Patterns are evaluated left to right: a positive pattern adds every name it
matches, a ``!``-prefixed pattern removes every name it matches, so the last
matching pattern wins.  Exclude globs are appended after the include globs
as negated patterns; with no include globs, a match-everything ``*`` comes
first.
"""

from __future__ import annotations

import fnmatch
from typing import Iterable, Mapping, TypeVar

V = TypeVar("V")

MATCH_ALL = "*"


def build_patterns(
    include: Iterable[str] | None, exclude: Iterable[str] | None
) -> list[str]:
    """Combine include and exclude globs into one ordered pattern list."""
    include = list(include or [])
    exclude = list(exclude or [])
    patterns = include + [f"!{item}" for item in exclude]
    if not include:
        patterns.insert(0, MATCH_ALL)
    return patterns


def match_patterns(names: Iterable[str], patterns: list[str]) -> list[str]:
    """Return *names* selected by *patterns*, in their original order."""
    names = list(names)
    selected: set[str] = set()
    for pattern in patterns:
        if pattern.startswith("!"):
            glob = pattern[1:]
            selected.difference_update(
                n for n in names if fnmatch.fnmatchcase(n, glob)
            )
        else:
            selected.update(
                n for n in names if fnmatch.fnmatchcase(n, pattern)
            )
    return [n for n in names if n in selected]


def filter_names(
    names: Iterable[str],
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[str]:
    """Filter *names* by include and exclude globs.

    Args:
        names: Candidate names (branches or tags).
        include: Globs a name must match; empty means "everything".
        exclude: Globs a name must not match.

    Returns:
        The selected names in input order.  When both *include* and
        *exclude* are empty, *names* is returned unchanged.
    """
    names = list(names)
    include = list(include or [])
    exclude = list(exclude or [])
    if not include and not exclude:
        return names
    return match_patterns(names, build_patterns(include, exclude))


def filter_mapping(
    mapping: Mapping[str, V],
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> dict[str, V]:
    """Filter a mapping by its keys, preserving values and key order."""
    keys = filter_names(mapping.keys(), include, exclude)
    return {key: mapping[key] for key in keys}
