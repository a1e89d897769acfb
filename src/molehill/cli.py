"""CLI interface for molehill."""

import logging
import threading
import webbrowser
from typing import Optional

import typer
import uvicorn
from rich.logging import RichHandler

from molehill import __version__
from molehill.config import Settings, expand_path
from molehill.context import AppContext
from molehill.display import (
    console,
    show_entries,
    show_purge_candidates,
    show_scanning_progress,
    show_status,
)
from molehill.metrics import collect_status, get_local_ip
from molehill.recursive_scanner import DEFAULT_ITEM_CAP, find_large_items, scan_for_purge
from molehill.scanner import top_level_breakdown
from molehill.server import create_app

app = typer.Typer(
    name="molehill",
    help="Local disk usage dashboard and maintenance server",
    add_completion=False,
)

# Delay before opening the browser so the server is accepting connections
BROWSER_OPEN_DELAY = 0.5


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"molehill version {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _require_directory(path: str):
    root = expand_path(path)
    if not root.is_dir():
        console.print(f"[red]Not a directory: {root}[/red]")
        raise typer.Exit(1)
    return root


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """molehill - see what is filling your disk, and clean it up."""
    setup_logging(verbose)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default: localhost)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (default: 8080)"),
    no_open: bool = typer.Option(False, "--no-open", help="Do not open a browser"),
) -> None:
    """Start the dashboard server."""
    settings = Settings.from_env()
    overrides: dict = {}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    if no_open:
        overrides["open_browser"] = False
    settings = settings.model_copy(update=overrides)

    ctx = AppContext(settings)
    display_host = get_local_ip() if settings.host == "0.0.0.0" else settings.host
    url = f"http://{display_host}:{settings.port}"

    console.print()
    console.print("  [bold]molehill[/bold]")
    console.print("  [dim]-----------------------------[/dim]")
    console.print(f"  Server:  {url}")
    console.print(f"  Bind:    {settings.host}:{settings.port}")
    console.print(f"  Mole:    {ctx.find_mole() or '[yellow]not found[/yellow]'}")
    console.print(f"  Log:     {settings.log_file}")
    console.print("  [dim]-----------------------------[/dim]")
    console.print()

    if settings.open_browser and settings.host == "localhost":
        threading.Timer(
            BROWSER_OPEN_DELAY, webbrowser.open, args=[f"http://localhost:{settings.port}"]
        ).start()

    uvicorn.run(create_app(ctx), host=settings.host, port=settings.port, log_level="info")


@app.command()
def analyze(
    path: str = typer.Argument("~", help="Directory to break down"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """Show the size of each item directly inside a directory."""
    root = _require_directory(path)
    settings = Settings.from_env()

    with show_scanning_progress() as progress:
        progress.add_task(f"Sizing {root}...", total=None)
        entries = top_level_breakdown(root, max_workers=settings.scan_workers)

    show_entries(entries, title=f"Breakdown of {root}", limit=limit)


@app.command()
def large(
    path: str = typer.Argument("~", help="Directory to search"),
    min_size: int = typer.Option(100, "--min-size", help="Minimum size in MB"),
    limit: int = typer.Option(DEFAULT_ITEM_CAP, "--limit", "-n", help="Maximum items to report"),
) -> None:
    """Find large files and dependency/cache folders."""
    root = _require_directory(path)
    settings = Settings.from_env()

    with show_scanning_progress() as progress:
        progress.add_task(f"Searching {root} for items over {min_size} MB...", total=None)
        items = find_large_items(
            root,
            min_size=min_size * 1024 * 1024,
            item_cap=limit,
            max_workers=settings.scan_workers,
        )

    if not items:
        console.print(f"[green]No items over {min_size} MB found.[/green]")
        return
    show_entries(items, title="Large Items")


@app.command()
def purge(
    path: str = typer.Argument(".", help="Directory to search for build artifacts"),
) -> None:
    """List node_modules, build output and virtualenvs that can be removed."""
    root = _require_directory(path)

    with show_scanning_progress() as progress:
        progress.add_task(f"Scanning {root}...", total=None)
        candidates = scan_for_purge(root)

    show_purge_candidates(candidates)


@app.command()
def status() -> None:
    """Show a system metrics snapshot."""
    show_status(collect_status())


if __name__ == "__main__":
    app()
