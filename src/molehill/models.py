"""Data models for molehill."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field


def format_size(size_bytes: int) -> str:
    """Human-readable size string (decimal units like macOS)."""
    if size_bytes >= 1000**4:
        return f"{size_bytes / (1000**4):.1f} TB"
    elif size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{size_bytes} B"


class ScanEntry(BaseModel):
    """A file or directory reported by a scan."""

    path: str = Field(..., description="Absolute path of the entry")
    name: str = Field(..., description="Base name of the entry")
    size_bytes: int = Field(..., ge=0, description="Estimated apparent size in bytes")
    is_dir: bool = Field(False, description="Whether the entry is a directory")

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class PurgeCandidate(BaseModel):
    """A disposable build/dependency directory found by the purge scan."""

    path: str = Field(..., description="Absolute path of the matched directory")
    size_bytes: int = Field(..., ge=0, description="Estimated apparent size in bytes")
    matched_pattern: str = Field(..., description="Target name the directory matched")

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class CommandOutcome(BaseModel):
    """Result of running an external command or cleanup action."""

    success: bool = Field(..., description="Whether the action succeeded")
    message: str = Field("", description="Short status or error text")
    cleaned_bytes: int = Field(0, ge=0, description="Bytes freed, when known")
    output: str = Field("", description="Combined output, ANSI sequences stripped")


class DeleteResult(BaseModel):
    """Result of deleting user-selected files."""

    success: bool = True
    deleted_count: int = 0
    deleted_size: int = 0
    failed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.deleted_size)


# =============================================================================
# System status snapshot
# =============================================================================


class CPUInfo(BaseModel):
    model: str = ""
    cores: int = 0
    usage: float = 0.0


class MemoryInfo(BaseModel):
    total: int = 0
    used: int = 0
    available: int = 0
    percent: float = 0.0


class DiskInfo(BaseModel):
    total: int = 0
    used: int = 0
    free: int = 0
    percent: float = 0.0


class NetworkInfo(BaseModel):
    bytes_sent: int = 0
    bytes_recv: int = 0


class SystemStatus(BaseModel):
    """Host metrics pushed by the status endpoints."""

    hostname: str = ""
    home_dir: str = ""
    local_ip: str = "localhost"
    os: str = ""
    uptime: str = ""
    version: str = ""
    cpu: CPUInfo = Field(default_factory=CPUInfo)
    memory: MemoryInfo = Field(default_factory=MemoryInfo)
    disk: DiskInfo = Field(default_factory=DiskInfo)
    network: NetworkInfo = Field(default_factory=NetworkInfo)
    collected_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Storage breakdown
# =============================================================================


class StorageCategory(BaseModel):
    """Size of one well-known storage location."""

    name: str
    path: Optional[str] = None
    size_bytes: int = Field(..., ge=0)
    percent: float = 0.0
    color: str = "#71717a"
    icon: str = "folder"

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class CleanupSuggestion(BaseModel):
    """Something the user could clean, with its estimated size."""

    title: str
    description: str
    size_bytes: int = Field(..., ge=0)
    action: str = "clean"
    category: str

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class StorageBreakdown(BaseModel):
    """Disk totals plus per-location sizes and cleanup suggestions."""

    total: int
    used: int
    free: int
    categories: list[StorageCategory] = Field(default_factory=list)
    suggestions: list[CleanupSuggestion] = Field(default_factory=list)

    @computed_field
    @property
    def total_human(self) -> str:
        return format_size(self.total)

    @computed_field
    @property
    def used_human(self) -> str:
        return format_size(self.used)

    @computed_field
    @property
    def free_human(self) -> str:
        return format_size(self.free)


class Volume(BaseModel):
    """A mounted volume."""

    device: str
    mount_point: str
    total_bytes: int
    used_bytes: int
    free_bytes: int
    used_percent: float
    is_main: bool = False


class VolumeAnalysis(BaseModel):
    """Top-level breakdown of a volume."""

    path: str
    total_size: int = 0
    categories: list[StorageCategory] = Field(default_factory=list)


class OtherCategory(BaseModel):
    """One contributor to used space outside the well-known locations."""

    name: str
    path: str = ""
    size_bytes: int = Field(..., ge=0)
    percent: float = Field(0.0, description="Share of the 'other' total")
    type: str = Field("system", description="system, user, cache, developer or volumes")
    icon: str = "folder"

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class OtherBreakdown(BaseModel):
    """Used space not covered by the storage breakdown categories."""

    total_other: int = Field(0, ge=0)
    categories: list[OtherCategory] = Field(default_factory=list)

    @computed_field
    @property
    def total_other_human(self) -> str:
        return format_size(self.total_other)


# =============================================================================
# Apps, permissions, updates
# =============================================================================


class AppInfo(BaseModel):
    """An installed application bundle."""

    name: str
    path: str
    size_bytes: int = Field(..., ge=0)

    @computed_field
    @property
    def size_human(self) -> str:
        return format_size(self.size_bytes)


class PermissionsStatus(BaseModel):
    """Which protected locations the server process can read."""

    full_disk_access: bool = False
    can_read_home: bool = False
    can_read_library: bool = False
    can_read_downloads: bool = False
    message: str = ""


class UpdateItem(BaseModel):
    name: str
    label: str
    details: str = ""


class UpdateInfo(BaseModel):
    """Latest release information."""

    current_version: str
    latest_version: str
    update_available: bool = False
    download_url: str = ""
    release_notes: str = ""
    published_at: str = ""
    system_updates: list[UpdateItem] = Field(default_factory=list)
