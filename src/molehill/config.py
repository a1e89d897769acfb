"""Runtime configuration for molehill."""

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def expand_path(path: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expanduser(os.path.expandvars(path)))


def user_cache_dir() -> Path:
    """Per-user cache directory (~/Library/Caches on macOS, XDG elsewhere)."""
    if sys.platform == "darwin":
        return expand_path("~/Library/Caches")
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg)
    return expand_path("~/.cache")


def user_config_dir() -> Path:
    """Per-user config directory (~/Library/Application Support on macOS, XDG elsewhere)."""
    if sys.platform == "darwin":
        return expand_path("~/Library/Application Support")
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return expand_path("~/.config")


def default_log_file() -> Path:
    """Location of the append-only web UI log."""
    return user_cache_dir() / "Mole" / "web-ui.log"


def list_log_files(log_file: Optional[Path] = None) -> list[tuple[str, Path]]:
    """(archive name, path) of every log worth collecting, present or not."""
    mole_config = expand_path("~/.config/mole")
    return [
        ("server.log", user_config_dir() / "Mole" / "server.log"),
        ("web-ui.log", log_file or default_log_file()),
        ("mole.log", mole_config / "mole.log"),
        ("mole_debug_session.log", mole_config / "mole_debug_session.log"),
    ]


class Settings(BaseModel):
    """Process-wide settings, read once at startup."""

    host: str = Field("localhost", description="Interface to bind to")
    port: int = Field(8080, description="Port to listen on")
    open_browser: bool = Field(True, description="Open the dashboard in a browser on start")
    mole_dir: Optional[Path] = Field(None, description="Directory containing the mole script")
    mole_path: Optional[Path] = Field(None, description="Explicit path to the mole script")
    log_file: Path = Field(default_factory=default_log_file, description="Append-only log file")
    scan_workers: Optional[int] = Field(
        None,
        description="Upper bound on parallel size estimates per scan (None = one per entry)",
    )
    status_interval: float = Field(2.0, description="Seconds between status stream pushes")
    log_queue_size: int = Field(100, description="Per-subscriber log queue capacity")
    update_repo: str = Field("enoteware/mole-ui", description="GitHub repo to check for releases")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Build settings from MOLE_* environment variables."""
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("MOLE_HOST"):
            values["host"] = env["MOLE_HOST"]
        if env.get("MOLE_PORT"):
            values["port"] = int(env["MOLE_PORT"])
        if env.get("MOLE_NO_OPEN"):
            values["open_browser"] = False
        if env.get("MOLE_DIR"):
            values["mole_dir"] = expand_path(env["MOLE_DIR"])
        if env.get("MOLE_PATH"):
            values["mole_path"] = expand_path(env["MOLE_PATH"])
        if env.get("MOLE_LOG_FILE"):
            values["log_file"] = expand_path(env["MOLE_LOG_FILE"])
        if env.get("MOLE_SCAN_WORKERS"):
            values["scan_workers"] = int(env["MOLE_SCAN_WORKERS"])
        if env.get("MOLE_STATUS_INTERVAL"):
            values["status_interval"] = float(env["MOLE_STATUS_INTERVAL"])

        return cls(**values)
