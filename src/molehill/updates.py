"""Release and package update checks."""

import logging
import shutil
import subprocess
from typing import Optional

import httpx

from molehill.context import AppContext
from molehill.errors import UpdateCheckError
from molehill.models import CommandOutcome, UpdateInfo, UpdateItem

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/repos/{repo}/releases/latest"
REQUEST_TIMEOUT = 10.0


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare dotted numeric versions.

    Missing or non-numeric parts count as 0, so "1.2" == "1.2.0".

    Returns:
        1 if v1 > v2, -1 if v1 < v2, 0 if equal
    """
    parts1 = v1.split(".")
    parts2 = v2.split(".")

    for i in range(max(len(parts1), len(parts2))):
        p1 = _leading_int(parts1[i]) if i < len(parts1) else 0
        p2 = _leading_int(parts2[i]) if i < len(parts2) else 0
        if p1 > p2:
            return 1
        if p1 < p2:
            return -1
    return 0


def _leading_int(part: str) -> int:
    digits = ""
    for ch in part:
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else 0


def homebrew_updates() -> list[UpdateItem]:
    """Outdated Homebrew packages, as a single item, when brew is installed."""
    brew = shutil.which("brew")
    if brew is None:
        return []
    try:
        result = subprocess.run(
            [brew, "outdated", "--quiet"], capture_output=True, text=True
        )
    except OSError:
        return []
    out = result.stdout
    if result.returncode != 0 or not out.strip():
        return []

    lines = out.strip().splitlines()
    return [
        UpdateItem(
            name="Homebrew",
            label=f"Homebrew ({len(lines)} updates available)",
            details=out,
        )
    ]


def check_for_updates(
    current_version: str,
    repo: str,
    client: Optional[httpx.Client] = None,
) -> UpdateInfo:
    """
    Compare the running version with the latest GitHub release.

    A repo with no releases (404) reports no update available.

    Raises:
        UpdateCheckError: The release feed could not be fetched or parsed
    """
    current = current_version.removeprefix("v")
    url = GITHUB_API_URL.format(repo=repo)

    try:
        if client is None:
            response = httpx.get(url, timeout=REQUEST_TIMEOUT)
        else:
            response = client.get(url, timeout=REQUEST_TIMEOUT)
    except httpx.HTTPError as e:
        raise UpdateCheckError(f"failed to fetch updates: {e}") from e

    if response.status_code == 404:
        return UpdateInfo(current_version=current, latest_version=current)
    if response.status_code != 200:
        raise UpdateCheckError(f"GitHub API returned status {response.status_code}")

    try:
        release = response.json()
    except ValueError as e:
        raise UpdateCheckError(f"failed to parse response: {e}") from e

    latest = str(release.get("tag_name", "")).removeprefix("v")
    download_url = ""
    for asset in release.get("assets", []):
        if asset.get("name", "").endswith(".dmg"):
            download_url = asset.get("browser_download_url", "")
            break

    info = UpdateInfo(
        current_version=current,
        latest_version=latest,
        update_available=compare_versions(latest, current) > 0,
        download_url=download_url,
        release_notes=release.get("body") or "",
        published_at=release.get("published_at") or "",
        system_updates=homebrew_updates(),
    )
    logger.debug("Update check: current=%s latest=%s", current, latest)
    return info


def perform_update(ctx: AppContext, name: str) -> CommandOutcome:
    """Apply an update: the mole CLI itself or Homebrew packages."""
    ctx.hub.log("Performing update: %s", name)

    if name == "Mole":
        outcome = ctx.run_mole("update", "--debug")
    elif name == "Homebrew":
        brew = shutil.which("brew")
        if brew is None:
            outcome = CommandOutcome(success=False, message="Homebrew not found")
        else:
            outcome = ctx.runner.run(brew, ["upgrade"])
            if outcome.success:
                outcome.message = "Homebrew upgraded successfully"
    else:
        ctx.hub.log("ERROR: Unsupported update type: %s", name)
        outcome = CommandOutcome(success=False, message="Unsupported update type")

    ctx.hub.log(
        "Update result for %s: Success=%s, Message=%s", name, outcome.success, outcome.message
    )
    return outcome
