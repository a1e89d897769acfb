"""Recursive discovery of large items and disposable build artifacts.

Both walks use os.scandir in name order, never follow symlinks, and keep
an explicit stack of open directories instead of recursing. Neither raises
for unreadable directories; those subtrees are simply not reported.
"""

import logging
import os
from pathlib import Path
from typing import Generator, Iterable, Optional

from molehill.config import expand_path
from molehill.models import PurgeCandidate, ScanEntry
from molehill.scanner import (
    DEEP_DEPTH,
    DEFAULT_DEPTH,
    estimate_size,
    estimate_sizes,
    rank_entries,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 100 * 1024 * 1024  # 100 MiB
DEFAULT_ITEM_CAP = 200

# Hidden directory that is still worth scanning for large discardable files
TRASH_DIRECTORY = ".Trash"

# Reported as one aggregate item instead of being walked
COMPACT_FOLDERS = frozenset(
    {
        "node_modules",
        ".git",
        "vendor",
        "Pods",
        "DerivedData",
        "Build",
        "build",
        "dist",
        "target",
        "__pycache__",
        ".venv",
        "venv",
        "env",
        ".cache",
        "cache",
        "Cache",
        "Caches",
        ".npm",
        ".yarn",
        ".pnpm-store",
        "go",
        ".cargo",
        ".rustup",
        ".gradle",
        ".m2",
        ".cocoapods",
    }
)

# Build/dependency directories offered for purging
PURGE_TARGETS = (
    "node_modules",
    "target",
    "build",
    "dist",
    ".next",
    "__pycache__",
    "venv",
    ".venv",
)


def _sorted_entries(directory: str) -> list[os.DirEntry]:
    try:
        with os.scandir(directory) as entries:
            return sorted(entries, key=lambda e: e.name)
    except (PermissionError, OSError):
        return []


def _entry(path: str, name: str, size: int, is_dir: bool) -> ScanEntry:
    return ScanEntry(path=path, name=name, size_bytes=size, is_dir=is_dir)


def find_large_items(
    root: Path | str,
    min_size: int = DEFAULT_MIN_SIZE,
    item_cap: int = DEFAULT_ITEM_CAP,
    max_workers: Optional[int] = None,
) -> list[ScanEntry]:
    """
    Find large files and large compact folders under root.

    Direct children of root that are directories are sized in parallel after
    the walk. Compact folders (dependency caches, build output, VCS metadata)
    deeper down are sized on the spot and not descended; a compact folder that
    is itself a direct child is sized once, with the other top-level folders,
    and not descended either. Hidden names are skipped except .Trash, and
    Library directories are pruned.

    The walk stops as soon as ``item_cap`` items are collected, so a capped
    result reflects traversal order rather than global size order.

    Args:
        root: Directory to scan
        min_size: Minimum size in bytes for an item to be reported
        item_cap: Maximum number of items returned
        max_workers: Optional bound on parallel top-level estimates

    Returns:
        At most ``item_cap`` ScanEntries, largest first
    """
    if item_cap <= 0:
        return []

    root_path = expand_path(str(root))
    items: list[ScanEntry] = []
    top_level: list[str] = []

    # One iterator per open directory; the top of the stack is the directory
    # being listed, which keeps the walk in name order without recursion.
    stack = [(iter(_sorted_entries(str(root_path))), True)]
    while stack:
        entries, is_root = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue

        name = entry.name
        if name.startswith(".") and name != TRASH_DIRECTORY:
            continue

        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = not is_dir and entry.is_file(follow_symlinks=False)
            file_size = entry.stat(follow_symlinks=False).st_size if is_file else 0
        except (PermissionError, OSError):
            continue

        if is_dir:
            if name == "Library":
                continue
            compact = name in COMPACT_FOLDERS
            if is_root:
                top_level.append(entry.path)
                if not compact:
                    stack.append((iter(_sorted_entries(entry.path)), False))
            elif compact:
                size = estimate_size(entry.path, DEEP_DEPTH)
                if size >= min_size:
                    items.append(_entry(entry.path, name, size, True))
            else:
                stack.append((iter(_sorted_entries(entry.path)), False))
        elif is_file and file_size >= min_size:
            items.append(_entry(entry.path, name, file_size, False))

        if len(items) >= item_cap:
            logger.debug("Large item scan of %s stopped at %d items", root_path, item_cap)
            break

    sizes = estimate_sizes(top_level, DEEP_DEPTH, max_workers)
    for folder in top_level:
        size = sizes.get(folder, 0)
        if size >= min_size:
            items.append(_entry(folder, os.path.basename(folder), size, True))

    return rank_entries(items)[:item_cap]


def find_matching_directories(
    root: Path | str,
    targets: Iterable[str],
    max_depth: Optional[int] = None,
) -> Generator[tuple[Path, str], None, None]:
    """
    Find directories whose name is one of ``targets``.

    A matched directory is not descended into, so a match nested inside
    another match (node_modules inside node_modules) is never yielded.

    Args:
        root: Root directory to start searching from
        targets: Exact directory names to match
        max_depth: Optional maximum depth below root (None = unlimited)

    Yields:
        (path, matched name) pairs
    """
    target_set = frozenset(targets)
    if max_depth is not None and max_depth < 1:
        return

    stack = [(iter(_sorted_entries(str(expand_path(str(root))))), 1)]
    while stack:
        entries, depth = stack[-1]
        entry = next(entries, None)
        if entry is None:
            stack.pop()
            continue

        try:
            if not entry.is_dir(follow_symlinks=False):
                continue
        except (PermissionError, OSError):
            continue

        if entry.name in target_set:
            yield Path(entry.path), entry.name
            continue

        if max_depth is None or depth < max_depth:
            stack.append((iter(_sorted_entries(entry.path)), depth + 1))


def scan_for_purge(
    root: Path | str,
    targets: Iterable[str] = PURGE_TARGETS,
    max_depth: Optional[int] = None,
) -> list[PurgeCandidate]:
    """
    Scan for disposable build and dependency directories.

    Args:
        root: Directory to search
        targets: Directory names that qualify for purging
        max_depth: Optional maximum depth below root

    Returns:
        PurgeCandidates sorted by size descending
    """
    candidates = [
        PurgeCandidate(
            path=str(path),
            size_bytes=estimate_size(path, DEFAULT_DEPTH),
            matched_pattern=name,
        )
        for path, name in find_matching_directories(root, targets, max_depth)
    ]

    logger.debug("Purge scan of %s found %d candidates", root, len(candidates))
    return rank_entries(candidates)
