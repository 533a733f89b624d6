"""Version parsing and freshest-first ordering of discovered filenames."""

import re
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")

Version = Tuple[int, int, int]

UNVERSIONED: Version = (0, 0, 0)

_VERSION_RE = re.compile(r"(?<![\d.])(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(text: str) -> Optional[Version]:
    """Extracts the first major.minor[.patch] number found in a filename or URL."""
    match = _VERSION_RE.search(text)
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def in_series(version: Optional[Version], series: Optional[str]) -> bool:
    """Checks a version against a 'major.minor' series filter like '8.3'."""
    if not series:
        return True
    if version is None:
        return False
    return ".".join(str(part) for part in version).startswith(series + ".")


def dedupe(items: Iterable[T]) -> List[T]:
    """Drops repeated items, keeping the first occurrence in order."""
    seen = set()
    unique = []
    for item in items:
        if item not in seen:
            seen.add(item)
            unique.append(item)
    return unique


def sort_freshest_first(
    items: Iterable[T], name: Callable[[T], str] = str
) -> List[T]:
    """
    Orders items by the version parsed from their name, newest first.

    Items without a parseable version count as 0.0.0 and therefore sort last.
    The sort is stable, so equal versions keep their discovery order.
    """
    return sorted(
        items,
        key=lambda item: parse_version(name(item)) or UNVERSIONED,
        reverse=True,
    )
