"""Cleanup, purge and uninstall actions with safety checks."""

import os
import shutil
import subprocess
from pathlib import Path

from molehill.broadcast import BroadcastHub
from molehill.config import expand_path
from molehill.context import AppContext
from molehill.models import CommandOutcome, DeleteResult, format_size
from molehill.runner import GUI_ENV, NOT_FOUND_MESSAGE
from molehill.scanner import estimate_size
from molehill.storage import is_protected_app_path

# Anything at or below these is never deleted
PROTECTED_PREFIXES = [
    "/System",
    "/Library",
    "/usr",
    "/bin",
    "/sbin",
    "/private",
    "/var",
    "/etc",
]

# Estimated size per trash item when the trash folders cannot be measured
TRASH_ITEM_ESTIMATE = 50 * 1024 * 1024

FINDER_COUNT_TRASH = 'tell application "Finder" to count of items of trash'
FINDER_EMPTY_TRASH = 'tell application "Finder" to empty trash'


def is_protected_path(path: Path | str) -> bool:
    """
    Check whether a path must never be deleted.

    Args:
        path: Path to check

    Returns:
        True for system locations, the home directory itself and Apple apps
    """
    path_str = os.path.normpath(str(path))

    for prefix in PROTECTED_PREFIXES:
        if path_str == prefix or path_str.startswith(prefix + "/"):
            return True

    if path_str == str(Path.home()):
        return True

    if path_str.startswith("/Applications/") and is_protected_app_path(path_str):
        return True

    return False


def delete_path(path: Path) -> tuple[int, str | None]:
    """
    Delete a file or directory tree.

    Args:
        path: Path to delete

    Returns:
        Tuple of (estimated bytes freed, error_message)
    """
    try:
        if path.is_dir() and not path.is_symlink():
            size = estimate_size(path)
            shutil.rmtree(path)
        else:
            size = path.lstat().st_size
            path.unlink()
        return size, None
    except PermissionError as e:
        return 0, f"Permission denied: {e}"
    except OSError as e:
        return 0, f"OS error: {e}"


def delete_files(paths: list[str], hub: BroadcastHub) -> DeleteResult:
    """Delete user-selected paths, refusing protected and missing ones."""
    result = DeleteResult()

    for raw in paths:
        if is_protected_path(raw):
            result.failed.append(raw)
            result.errors.append("Protected system path")
            continue

        path = Path(raw)
        if not os.path.lexists(path):
            result.failed.append(raw)
            result.errors.append("Path does not exist")
            continue

        size, error = delete_path(path)
        if error:
            result.failed.append(raw)
            result.errors.append(error)
        else:
            result.deleted_count += 1
            result.deleted_size += size
            hub.log("Deleted: %s (%s)", raw, format_size(size))

    result.success = not result.failed
    return result


def purge_paths(paths: list[str], hub: BroadcastHub) -> CommandOutcome:
    """Remove purge candidates chosen by the user."""
    removed = 0
    total_cleaned = 0

    for raw in paths:
        path = Path(raw)
        if is_protected_path(raw) or not os.path.lexists(path):
            continue
        size, error = delete_path(path)
        if error:
            hub.log("ERROR: Failed to purge %s: %s", raw, error)
            continue
        removed += 1
        total_cleaned += size
        hub.log("Purged: %s (%s)", raw, format_size(size))

    return CommandOutcome(
        success=True,
        message=f"Removed {removed} items",
        cleaned_bytes=total_cleaned,
    )


def _osascript(script: str) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["osascript", "-e", script],
        capture_output=True,
        text=True,
    )


def empty_trash(hub: BroadcastHub) -> CommandOutcome:
    """Empty the Trash through Finder, which handles permissions itself."""
    try:
        count_result = _osascript(FINDER_COUNT_TRASH)
    except OSError:
        return CommandOutcome(success=False, message="Failed to check trash")
    if count_result.returncode != 0:
        return CommandOutcome(success=False, message="Failed to check trash")

    count_str = count_result.stdout.strip()
    if count_str == "0":
        return CommandOutcome(
            success=True,
            message="Trash is already empty",
            output="Nothing to clean",
        )

    # ~/.Trash is often unreadable on recent macOS; measured size may be 0
    trash_size = estimate_size(expand_path("~/.Trash"))
    trash_size += estimate_size(Path("/.Trashes") / str(os.getuid()))

    try:
        empty_result = _osascript(FINDER_EMPTY_TRASH)
    except OSError as e:
        return CommandOutcome(success=False, message=f"Failed to empty trash: {e}")
    if empty_result.returncode != 0:
        return CommandOutcome(
            success=False,
            message=f"Failed to empty trash: exit status {empty_result.returncode}",
            output=empty_result.stdout + empty_result.stderr,
        )

    if trash_size == 0:
        count = int(count_str) if count_str.isdigit() else 0
        trash_size = count * TRASH_ITEM_ESTIMATE

    hub.log("Trash emptied: %s items, about %s", count_str, format_size(trash_size))
    return CommandOutcome(
        success=True,
        message="Trash emptied",
        cleaned_bytes=trash_size,
        output=f"Emptied {count_str} items from trash, freed approximately {format_size(trash_size)}",
    )


def clean(ctx: AppContext, category: str = "") -> CommandOutcome:
    """
    Run a cleanup for one category, or everything.

    The trash is emptied directly since the mole CLI has no trash option.
    """
    if category == "trash":
        return empty_trash(ctx.hub)

    args = ["clean"]
    if category and category != "all":
        args.append(f"--{category}")
    args.append("--yes")
    return ctx.run_mole(*args)


def clean_preview(ctx: AppContext) -> CommandOutcome:
    """Dry run of a full cleanup."""
    return ctx.run_mole("clean", "--dry-run")


def uninstall_apps(ctx: AppContext, app_paths: list[str]) -> CommandOutcome:
    """
    Uninstall applications through the mole CLI, one at a time.

    Output lines are broadcast with ANSI sequences stripped.
    """
    if not app_paths:
        return CommandOutcome(success=False, message="No apps specified")

    mole = ctx.find_mole()
    if mole is None:
        return CommandOutcome(
            success=False,
            message=f"{NOT_FOUND_MESSAGE}. Please ensure Mole is installed correctly.",
        )

    successful: list[str] = []
    failed: list[str] = []

    for app_path in app_paths:
        name = os.path.basename(app_path)
        ctx.hub.log("Attempting to uninstall: %s", app_path)

        if not os.path.exists(app_path):
            ctx.hub.log("ERROR: Path does not exist: %s", app_path)
            failed.append(f"{name} (not found)")
            continue

        outcome = ctx.runner.run(
            mole,
            ["uninstall", "--path", app_path, "--debug"],
            env=GUI_ENV,
            broadcast_stripped=True,
        )
        if outcome.success:
            ctx.hub.log("SUCCESS: Uninstalled %s", app_path)
            successful.append(name)
        else:
            ctx.hub.log("ERROR: Uninstallation failed for %s: %s", app_path, outcome.message)
            failed.append(f"{name} ({outcome.message})")

    if failed and not successful:
        return CommandOutcome(success=False, message=f"Failed to remove: {', '.join(failed)}")

    message = f"Uninstalled {len(successful)} app(s)"
    if failed:
        message += f" (Failed {len(failed)}: {', '.join(failed)})"

    return CommandOutcome(
        success=True,
        message=message,
        output=f"Used Mole CLI for comprehensive cleanup of: {', '.join(successful)}",
    )
