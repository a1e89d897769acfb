"""Directory size estimation and ranking for molehill."""

import logging
import os
import stat
from concurrent.futures import ThreadPoolExecutor, as_completed
from operator import attrgetter
from pathlib import Path
from typing import Callable, Iterable, Optional, TypeVar

from molehill.config import expand_path
from molehill.models import ScanEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Depth used by most callers; DEEP_DEPTH where precision matters more than speed
DEFAULT_DEPTH = 3
DEEP_DEPTH = 5

# Never entered below the scanned root (large, slow, or not user data)
SKIP_DIRECTORIES = frozenset(
    {
        "node_modules",
        ".git",
        "Library",
        "Caches",
    }
)


def estimate_size(path: Path | str, max_depth: int = DEFAULT_DEPTH) -> int:
    """
    Estimate the apparent size of a file or directory tree.

    The root sits at depth 0. Directories at depth ``max_depth`` or deeper are
    not opened, so files up to ``max_depth`` levels below the root are counted.
    Names in SKIP_DIRECTORIES are never entered below the root. Symlinks are
    not followed.

    Unreadable directories and entries that vanish mid-walk contribute 0;
    this function never raises for filesystem errors.

    Args:
        path: File or directory to size
        max_depth: Depth bound for the walk

    Returns:
        Total bytes of regular files found
    """
    root = Path(path)
    try:
        root_stat = root.stat()
    except (PermissionError, OSError):
        return 0

    if stat.S_ISREG(root_stat.st_mode):
        return root_stat.st_size
    if not stat.S_ISDIR(root_stat.st_mode) or max_depth <= 0:
        return 0

    total_size = 0

    def _scan(directory: str, depth: int) -> None:
        nonlocal total_size
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    try:
                        if entry.is_file(follow_symlinks=False):
                            total_size += entry.stat(follow_symlinks=False).st_size
                        elif entry.is_dir(follow_symlinks=False):
                            if entry.name in SKIP_DIRECTORIES or depth + 1 >= max_depth:
                                continue
                            _scan(entry.path, depth + 1)
                    except (PermissionError, OSError):
                        continue
        except (PermissionError, OSError):
            pass

    _scan(str(root), 0)
    return total_size


def estimate_sizes(
    paths: Iterable[Path | str],
    max_depth: int = DEFAULT_DEPTH,
    max_workers: Optional[int] = None,
) -> dict[str, int]:
    """
    Estimate several sizes concurrently.

    One worker per path unless ``max_workers`` bounds the pool. Returns only
    after every estimate has finished.

    Returns:
        Mapping of str(path) to estimated size
    """
    path_list = [str(p) for p in paths]
    if not path_list:
        return {}

    workers = max_workers or len(path_list)
    sizes: dict[str, int] = {}

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_path = {
            executor.submit(estimate_size, p, max_depth): p for p in path_list
        }
        for future in as_completed(future_to_path):
            sizes[future_to_path[future]] = future.result()

    return sizes


def rank_entries(
    entries: Iterable[T],
    key: Callable[[T], int] = attrgetter("size_bytes"),
) -> list[T]:
    """Return a new list ordered by size, largest first (stable for ties)."""
    return sorted(entries, key=key, reverse=True)


def list_children(root: Path | str, include_hidden: bool = False) -> list[os.DirEntry]:
    """List immediate children of root in name order, or [] if unreadable."""
    try:
        with os.scandir(root) as entries:
            children = [
                e for e in entries if include_hidden or not e.name.startswith(".")
            ]
    except (PermissionError, OSError):
        return []
    return sorted(children, key=lambda e: e.name)


def top_level_breakdown(
    root: Path | str,
    max_depth: int = DEFAULT_DEPTH,
    max_workers: Optional[int] = None,
) -> list[ScanEntry]:
    """
    Size every visible child of a directory.

    Directories are estimated in parallel; plain files report their own size.
    Hidden (dot-prefixed) names are skipped.

    Args:
        root: Directory to break down
        max_depth: Depth bound for each child's estimate
        max_workers: Optional bound on parallel estimates

    Returns:
        ScanEntries sorted by size descending
    """
    root_path = expand_path(str(root))
    children = list_children(root_path)

    dir_paths: list[str] = []
    file_sizes: dict[str, int] = {}
    is_dir: dict[str, bool] = {}

    for child in children:
        try:
            child_is_dir = child.is_dir(follow_symlinks=False)
        except (PermissionError, OSError):
            child_is_dir = False
        is_dir[child.path] = child_is_dir

        if child_is_dir:
            dir_paths.append(child.path)
            continue
        try:
            file_sizes[child.path] = child.stat(follow_symlinks=False).st_size
        except (PermissionError, OSError):
            file_sizes[child.path] = 0

    sizes = estimate_sizes(dir_paths, max_depth, max_workers)
    sizes.update(file_sizes)

    entries = [
        ScanEntry(
            path=child.path,
            name=child.name,
            size_bytes=sizes.get(child.path, 0),
            is_dir=is_dir[child.path],
        )
        for child in children
    ]

    logger.debug("Top-level breakdown of %s: %d entries", root_path, len(entries))
    return rank_entries(entries)


def analyze_downloads(max_workers: Optional[int] = None) -> list[ScanEntry]:
    """Breakdown of ~/Downloads, largest first."""
    return top_level_breakdown(expand_path("~/Downloads"), max_workers=max_workers)
