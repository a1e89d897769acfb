"""Storage breakdown, volumes, installed apps and permission probes."""

import logging
import os
import plistlib
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import psutil

from molehill.config import expand_path
from molehill.models import (
    AppInfo,
    CleanupSuggestion,
    OtherBreakdown,
    OtherCategory,
    PermissionsStatus,
    StorageBreakdown,
    StorageCategory,
    Volume,
    VolumeAnalysis,
)
from molehill.scanner import estimate_sizes, list_children, rank_entries

logger = logging.getLogger(__name__)

# (name, path, color, icon)
STORAGE_CATEGORIES = [
    ("Applications", "/Applications", "#3b82f6", "apps"),
    ("Documents", "~/Documents", "#10b981", "document"),
    ("Downloads", "~/Downloads", "#f59e0b", "download"),
    ("Desktop", "~/Desktop", "#8b5cf6", "desktop"),
    ("Pictures", "~/Pictures", "#ec4899", "image"),
    ("Movies", "~/Movies", "#ef4444", "video"),
    ("Music", "~/Music", "#06b6d4", "music"),
    ("Code Projects", "~/code", "#22c55e", "code"),
    ("System Library", "~/Library", "#6366f1", "library"),
]

# (category, title, description, path, threshold bytes)
SUGGESTION_RULES = [
    ("cache", "Clear System Cache", "Temporary files that can be safely removed",
     "~/Library/Caches", 100 * 1024 * 1024),
    ("logs", "Clear Old Logs", "Log files from apps and system",
     "~/Library/Logs", 50 * 1024 * 1024),
    ("trash", "Empty Trash", "Files waiting to be permanently deleted",
     "~/.Trash", 10 * 1024 * 1024),
    ("xcode", "Xcode Build Files", "Developer build cache (safe to delete)",
     "~/Library/Developer/Xcode/DerivedData", 500 * 1024 * 1024),
]

# (path, name, type, icon) sized for the "other" breakdown
OTHER_DIRECTORIES = [
    ("/private/var", "System Data (var)", "system", "settings"),
    ("/System", "macOS System", "system", "apple"),
    ("/usr", "Unix Programs", "system", "terminal"),
    ("/opt", "Optional Software", "system", "package"),
    ("~/.local", "Local Data", "user", "folder"),
    ("~/.cache", "User Cache", "cache", "trash"),
    ("~/.docker", "Docker Config", "developer", "docker"),
    ("~/.npm", "NPM Cache", "developer", "package"),
    ("~/.cargo", "Rust/Cargo", "developer", "code"),
    ("~/.rustup", "Rustup", "developer", "code"),
    ("~/.gradle", "Gradle Cache", "developer", "code"),
    ("~/.m2", "Maven Cache", "developer", "code"),
    ("~/.vscode", "VS Code", "developer", "code"),
    ("~/.cursor", "Cursor IDE", "developer", "code"),
    ("~/.orbstack", "OrbStack", "developer", "docker"),
    ("~/.lima", "Lima VMs", "developer", "docker"),
    ("~/.vagrant.d", "Vagrant", "developer", "docker"),
    ("/Volumes", "External Volumes", "volumes", "harddrive"),
]

OTHER_ENTRY_THRESHOLD = 10 * 1024 * 1024
UNACCOUNTED_THRESHOLD = 100 * 1024 * 1024
UNACCOUNTED_NAME = "Unaccounted (System/Protected)"

OLD_DOWNLOAD_DAYS = 30
OLD_DOWNLOADS_THRESHOLD = 100 * 1024 * 1024

VOLUME_ENTRY_THRESHOLD = 100 * 1024 * 1024

# Helper mounts that are not useful to show as volumes
HIDDEN_MOUNT_MARKERS = ("/Update", "/xarts", "/iSCPreboot", "/Hardware", "/Preboot", "/VM")

APP_DIRECTORIES = ["/Applications", "~/Applications"]


def old_files_size(path: Path, days: int = OLD_DOWNLOAD_DAYS) -> int:
    """Total size of files under path not modified in ``days`` days."""
    cutoff = time.time() - days * 24 * 60 * 60
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for filename in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, filename))
            except (PermissionError, OSError):
                continue
            if st.st_mtime < cutoff:
                total += st.st_size
    return total


def _cleanup_suggestions() -> list[CleanupSuggestion]:
    paths = [expand_path(rule[3]) for rule in SUGGESTION_RULES]

    with ThreadPoolExecutor(max_workers=len(paths) + 1) as executor:
        old_downloads = executor.submit(old_files_size, expand_path("~/Downloads"))
        sizes = estimate_sizes(paths)
        old_downloads_size = old_downloads.result()

    suggestions = []
    for (category, title, description, _path, threshold), path in zip(SUGGESTION_RULES, paths):
        size = sizes.get(str(path), 0)
        if size > threshold:
            suggestions.append(
                CleanupSuggestion(
                    title=title, description=description, size_bytes=size, category=category
                )
            )

    if old_downloads_size > OLD_DOWNLOADS_THRESHOLD:
        suggestions.append(
            CleanupSuggestion(
                title="Old Downloads",
                description=f"Files in Downloads older than {OLD_DOWNLOAD_DAYS} days",
                size_bytes=old_downloads_size,
                category="downloads",
            )
        )

    return rank_entries(suggestions)


def get_storage_breakdown(
    disk_root: str = "/",
    max_workers: Optional[int] = None,
) -> StorageBreakdown:
    """
    Disk totals plus sizes of well-known locations and cleanup suggestions.

    Locations are sized in parallel; empty or missing locations are omitted.
    Percentages are relative to used disk space.
    """
    usage = psutil.disk_usage(disk_root)

    paths = [expand_path(c[1]) for c in STORAGE_CATEGORIES]
    sizes = estimate_sizes(paths, max_workers=max_workers)

    categories = []
    for (name, _raw, color, icon), path in zip(STORAGE_CATEGORIES, paths):
        size = sizes.get(str(path), 0)
        if size <= 0:
            continue
        categories.append(
            StorageCategory(
                name=name,
                path=str(path),
                size_bytes=size,
                percent=size / usage.used * 100 if usage.used else 0.0,
                color=color,
                icon=icon,
            )
        )

    return StorageBreakdown(
        total=usage.total,
        used=usage.used,
        free=usage.free,
        categories=rank_entries(categories),
        suggestions=_cleanup_suggestions(),
    )


def analyze_other(disk_root: str = "/", max_workers: Optional[int] = None) -> OtherBreakdown:
    """
    Break down used space that the storage categories do not cover.

    "Other" is used disk space minus the combined size of the breakdown
    categories, floored at zero. System and developer directories over 10 MB
    are listed with their share of it, largest first. Whatever they leave
    unexplained is appended as one unaccounted row when it exceeds 100 MB.
    """
    usage = psutil.disk_usage(disk_root)

    categorized = [expand_path(c[1]) for c in STORAGE_CATEGORIES]
    candidates = [
        (expand_path(raw), name, kind, icon)
        for raw, name, kind, icon in OTHER_DIRECTORIES
        if expand_path(raw) not in categorized
    ]
    sizes = estimate_sizes(categorized + [c[0] for c in candidates], max_workers=max_workers)

    categorized_size = sum(sizes.get(str(p), 0) for p in categorized)
    total_other = max(usage.used - categorized_size, 0)

    def _percent(size: int) -> float:
        return size / total_other * 100 if total_other else 0.0

    categories = []
    for path, name, kind, icon in candidates:
        size = sizes.get(str(path), 0)
        if size <= OTHER_ENTRY_THRESHOLD:
            continue
        categories.append(
            OtherCategory(
                name=name,
                path=str(path),
                size_bytes=size,
                percent=_percent(size),
                type=kind,
                icon=icon,
            )
        )
    categories = rank_entries(categories)

    unaccounted = total_other - sum(c.size_bytes for c in categories)
    if unaccounted > UNACCOUNTED_THRESHOLD:
        categories.append(
            OtherCategory(
                name=UNACCOUNTED_NAME,
                size_bytes=unaccounted,
                percent=_percent(unaccounted),
                type="system",
                icon="lock",
            )
        )

    logger.debug("Other space: %d bytes across %d entries", total_other, len(categories))
    return OtherBreakdown(total_other=total_other, categories=categories)


def list_volumes() -> list[Volume]:
    """Mounted physical volumes with their usage."""
    volumes = []
    for partition in psutil.disk_partitions(all=False):
        if not partition.device.startswith("/dev/"):
            continue
        mount = partition.mountpoint
        if any(marker in mount for marker in HIDDEN_MOUNT_MARKERS):
            continue
        try:
            usage = psutil.disk_usage(mount)
        except (PermissionError, OSError):
            continue
        volumes.append(
            Volume(
                device=partition.device,
                mount_point=mount,
                total_bytes=usage.total,
                used_bytes=usage.used,
                free_bytes=usage.free,
                used_percent=usage.percent,
                is_main=mount in ("/", "/System/Volumes/Data"),
            )
        )
    return volumes


def category_style(name: str) -> tuple[str, str]:
    """Pick a (color, icon) pair for a directory name."""
    name = name.lower()
    styles = [
        (("docker",), "#2563eb", "docker"),
        (("media", "movies", "videos"), "#dc2626", "video"),
        (("photo", "pictures"), "#ec4899", "camera"),
        (("music", "audio"), "#06b6d4", "music"),
        (("code", "dev", "projects"), "#22c55e", "code"),
        (("document",), "#10b981", "document"),
        (("download",), "#f59e0b", "download"),
        (("library",), "#6366f1", "library"),
        (("application",), "#3b82f6", "apps"),
        (("backup", "time machine"), "#8b5cf6", "backup"),
    ]
    for needles, color, icon in styles:
        if any(n in name for n in needles):
            return color, icon
    return "#71717a", "folder"


def analyze_volume(volume_path: str = "/", max_workers: Optional[int] = None) -> VolumeAnalysis:
    """Top-level entries of a volume larger than 100 MB, largest first."""
    children = list_children(volume_path)
    sizes = estimate_sizes([c.path for c in children], max_workers=max_workers)

    categories = []
    for child in children:
        size = sizes.get(child.path, 0)
        if size <= VOLUME_ENTRY_THRESHOLD:
            continue
        color, icon = category_style(child.name)
        categories.append(
            StorageCategory(name=child.name, path=child.path, size_bytes=size, color=color, icon=icon)
        )

    total = sum(c.size_bytes for c in categories)
    for category in categories:
        category.percent = category.size_bytes / total * 100 if total else 0.0

    return VolumeAnalysis(path=volume_path, total_size=total, categories=rank_entries(categories))


def get_bundle_id(app_path: Path) -> str:
    """CFBundleIdentifier from an app bundle's Info.plist, or ''."""
    plist_path = app_path / "Contents" / "Info.plist"
    try:
        with open(plist_path, "rb") as f:
            info = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError):
        return ""
    return str(info.get("CFBundleIdentifier", ""))


def is_protected_app_path(path: str) -> bool:
    """Apple system apps are never offered for removal."""
    if path.startswith("/System/Applications/"):
        return True
    return get_bundle_id(Path(path)).startswith("com.apple.")


def _find_app_bundles(directory: Path, levels: int = 3) -> list[Path]:
    """.app bundles up to ``levels`` deep (vendor folders like /Applications/Adobe)."""
    bundles: list[Path] = []
    for entry in list_children(directory):
        path = Path(entry.path)
        if entry.name.endswith(".app"):
            bundles.append(path)
            continue
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except (PermissionError, OSError):
            continue
        if is_dir and levels > 1 and entry.name != "Utilities":
            bundles.extend(_find_app_bundles(path, levels - 1))
    return bundles


def list_applications(app_dirs: Optional[list[str]] = None) -> list[AppInfo]:
    """Installed, non-system application bundles, largest first."""
    bundles: list[Path] = []
    for raw in app_dirs or APP_DIRECTORIES:
        bundles.extend(_find_app_bundles(expand_path(raw)))

    bundles = [b for b in bundles if not is_protected_app_path(str(b))]
    sizes = estimate_sizes(bundles)

    apps = [
        AppInfo(name=b.name.removesuffix(".app"), path=str(b), size_bytes=sizes.get(str(b), 0))
        for b in bundles
    ]
    return rank_entries(apps)


def check_permissions(home: Optional[Path] = None) -> PermissionsStatus:
    """Probe which protected locations this process can read."""
    home = home or Path.home()

    def _readable(path: Path) -> bool:
        try:
            with os.scandir(path):
                return True
        except (PermissionError, OSError):
            return False

    status = PermissionsStatus(
        can_read_home=_readable(home),
        can_read_library=_readable(home / "Library" / "Safari"),
        can_read_downloads=_readable(home / "Downloads"),
    )

    markers = [
        home / "Library" / "Safari" / "Bookmarks.plist",
        home / "Library" / "Application Support" / "com.apple.TCC" / "TCC.db",
    ]
    if any(os.path.exists(m) for m in markers):
        status.full_disk_access = True
        status.message = "Full Disk Access granted - all features available"
    else:
        status.message = "Full Disk Access required for complete system scanning"

    logger.debug("Permission probe: %s", status.message)
    return status
