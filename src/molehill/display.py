"""Rich terminal display for molehill."""

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from molehill.models import PurgeCandidate, ScanEntry, SystemStatus, format_size

console = Console()


def usage_color(percent: float) -> str:
    """Color for a usage percentage."""
    if percent >= 90:
        return "red"
    elif percent >= 75:
        return "yellow"
    return "green"


def show_entries(entries: list[ScanEntry], title: str, limit: int | None = None) -> None:
    """Display ranked scan entries."""
    shown = entries[:limit] if limit else entries

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("", width=3)
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Path", style="dim")

    total = 0
    for entry in shown:
        icon = "[blue]D[/blue]" if entry.is_dir else " "
        table.add_row(icon, entry.name, format_size(entry.size_bytes), entry.path)
        total += entry.size_bytes

    console.print(table)
    console.print(f"\n[bold]Total: {format_size(total)}[/bold] in {len(shown)} items")
    if limit and len(entries) > limit:
        console.print(f"[dim]... and {len(entries) - limit} more[/dim]")


def show_purge_candidates(candidates: list[PurgeCandidate]) -> None:
    """Display purgeable build and dependency directories."""
    if not candidates:
        console.print("[green]No purgeable directories found.[/green]")
        return

    table = Table(title="Purgeable Directories", show_header=True, header_style="bold")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("Path")

    total = 0
    for candidate in candidates:
        table.add_row(
            f"[yellow]{candidate.matched_pattern}[/yellow]",
            format_size(candidate.size_bytes),
            candidate.path,
        )
        total += candidate.size_bytes

    console.print(table)
    console.print(f"\n[bold]Total reclaimable: {format_size(total)}[/bold]")


def show_status(status: SystemStatus) -> None:
    """Display a metrics snapshot."""
    disk_color = usage_color(status.disk.percent)
    mem_color = usage_color(status.memory.percent)

    console.print(f"[bold]{status.hostname}[/bold] ({status.os}, up {status.uptime})")

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("CPU", f"{status.cpu.usage:.0f}% of {status.cpu.cores} cores")
    table.add_row(
        "Memory",
        f"[{mem_color}]{format_size(status.memory.used)} / {format_size(status.memory.total)}[/{mem_color}]",
    )
    table.add_row(
        "Disk",
        f"[{disk_color}]{format_size(status.disk.used)} / {format_size(status.disk.total)} "
        f"({status.disk.percent:.0f}%)[/{disk_color}]",
    )
    table.add_row("Free", f"[bold]{format_size(status.disk.free)}[/bold]")
    table.add_row("Local IP", status.local_ip)

    console.print(table)


def show_scanning_progress() -> Progress:
    """Spinner shown while a scan runs."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
