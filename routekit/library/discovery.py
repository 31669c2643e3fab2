"""
Filesystem discovery of handler modules.

Walks a base directory and records every ``.py`` file that matches the
include glob and none of the exclude globs. Each file is reachable by its
short name (the file stem) and by its full name (the relative path with
separators joined by ``_``).
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from routekit.constants import FULL_NAME_SEPARATOR, HANDLER_SUFFIX, INCLUDE_GLOB

logger = logging.getLogger(__name__)


@dataclass
class HandlerRecord:
    """One discovered handler file."""
    file_path: Path
    short_name: str
    full_name: str
    is_handled: bool = False


@lru_cache(maxsize=128)
def _glob_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a path glob into a regex; `*` stops at `/`, `**` does not."""
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def glob_match(relative: str, pattern: str) -> bool:
    """
    Match a posix relative path against a glob pattern.

    A pattern without a ``/`` is matched against the basename, so ``_*.py``
    excludes private modules at any depth.
    """
    if pattern.startswith("./"):
        pattern = pattern[2:]
    if "/" not in pattern:
        relative = relative.rsplit("/", 1)[-1]
    return _glob_regex(pattern).match(relative) is not None


class HandlerRegistry:
    """
    Lookup tables built by a discovery scan.

    `records` maps absolute file paths to their `HandlerRecord`; `by_name` and
    `by_full_name` map route identifiers to file paths.
    """

    def __init__(self, base: Optional[Path] = None):
        self.base = base
        self.records: Dict[Path, HandlerRecord] = {}
        self.by_name: Dict[str, Path] = {}
        self.by_full_name: Dict[str, Path] = {}

    def add(self, file_path: Path, relative: Union[str, Path, None] = None) -> HandlerRecord:
        """
        Record `file_path`, naming it after `relative` (its scan path under the
        base) when the two differ, as they do for symlinked files.
        """
        relative = Path(relative) if relative is not None else file_path.relative_to(self.base)
        short_name = relative.stem
        full_name = FULL_NAME_SEPARATOR.join(relative.with_suffix("").parts)

        if short_name in self.by_name and self.by_name[short_name] != file_path:
            logger.debug(f"Short name '{short_name}' now refers to {relative}")

        record = HandlerRecord(file_path=file_path, short_name=short_name, full_name=full_name)
        self.records[file_path] = record
        self.by_name[short_name] = file_path
        self.by_full_name[full_name] = file_path
        return record

    def lookup(self, name: str) -> Optional[HandlerRecord]:
        """Find a record by short name first, then by full name."""
        file_path = self.by_name.get(name) or self.by_full_name.get(name)
        if file_path is None:
            return None
        return self.records.get(file_path)

    def unhandled(self) -> List[HandlerRecord]:
        """Records not yet claimed by a route, in full-name order."""
        pending = (record for record in self.records.values() if not record.is_handled)
        return sorted(pending, key=lambda record: record.full_name)

    def __len__(self):
        return len(self.records)

    def __contains__(self, name):
        return name in self.by_name or name in self.by_full_name


def discover_handlers(
    base,
    include: str = INCLUDE_GLOB,
    exclude: Optional[Iterable[str]] = None,
) -> HandlerRegistry:
    """
    Scan `base` for handler modules.

    Args:
        base (str | Path): Directory holding the handler modules.
        include (str): Glob the relative path must match.
        exclude (Iterable[str]): Globs that remove a file from the scan.

    Returns:
        HandlerRegistry: Tables for every discovered file. The registry is
        empty if `base` is not a directory.
    """
    base = Path(base).resolve()
    registry = HandlerRegistry(base)
    exclude = list(exclude or [])

    if not base.is_dir():
        logger.warning(f"Handler directory not found: {base}")
        return registry

    candidates = sorted(
        (p for p in base.rglob(f"*{HANDLER_SUFFIX}") if p.is_file()),
        key=lambda p: p.relative_to(base).as_posix(),
    )
    for path in candidates:
        relative = path.relative_to(base).as_posix()
        if not glob_match(relative, include):
            continue
        if any(glob_match(relative, pattern) for pattern in exclude):
            logger.debug(f"Excluded {relative}")
            continue
        # symlinks collapse onto the file they point at
        registry.add(path.resolve(), relative)

    logger.info(f"Discovered {len(registry)} handler modules under {base}")
    return registry
