"""Host metrics snapshot for the status endpoints."""

import os
import platform
import socket
import time
from datetime import datetime

import psutil

from molehill import __version__
from molehill.models import CPUInfo, DiskInfo, MemoryInfo, NetworkInfo, SystemStatus

# Interfaces checked, in order, when looking for the LAN address
PRIMARY_INTERFACES = ("en0", "eth0")


def format_uptime(seconds: int) -> str:
    """Format uptime as '3d 4h 5m', '4h 5m' or '5m'."""
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    mins = (seconds % 3600) // 60
    if days > 0:
        return f"{days}d {hours}h {mins}m"
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def get_local_ip() -> str:
    """IPv4 address of the primary interface, or 'localhost'."""
    try:
        interfaces = psutil.net_if_addrs()
    except (PermissionError, OSError):
        return "localhost"

    for name in PRIMARY_INTERFACES:
        for addr in interfaces.get(name, []):
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                return addr.address
    return "localhost"


def _os_label() -> str:
    if platform.system() == "Darwin":
        return f"macOS {platform.mac_ver()[0]}"
    return f"{platform.system()} {platform.release()}"


def collect_status(disk_root: str = "/") -> SystemStatus:
    """
    Take a metrics snapshot.

    Each probe is independent; a probe that fails leaves its section at
    defaults instead of failing the snapshot.
    """
    status = SystemStatus(
        collected_at=datetime.now(),
        version=__version__,
        home_dir=os.environ.get("HOME", ""),
        hostname=socket.gethostname(),
        os=_os_label(),
        local_ip=get_local_ip(),
    )

    try:
        status.uptime = format_uptime(int(time.time() - psutil.boot_time()))
    except (PermissionError, OSError):
        pass

    status.cpu = CPUInfo(
        model=platform.processor() or platform.machine(),
        cores=psutil.cpu_count() or 0,
        usage=psutil.cpu_percent(interval=None),
    )

    try:
        mem = psutil.virtual_memory()
        status.memory = MemoryInfo(
            total=mem.total, used=mem.used, available=mem.available, percent=mem.percent
        )
    except (PermissionError, OSError):
        pass

    try:
        disk = psutil.disk_usage(disk_root)
        status.disk = DiskInfo(
            total=disk.total, used=disk.used, free=disk.free, percent=disk.percent
        )
    except (PermissionError, OSError):
        pass

    try:
        net = psutil.net_io_counters()
        if net is not None:
            status.network = NetworkInfo(bytes_sent=net.bytes_sent, bytes_recv=net.bytes_recv)
    except (PermissionError, OSError):
        pass

    return status
