"""HTTP API and server-sent event streams for the dashboard."""

import asyncio
import io
import logging
import os
import queue
import zipfile
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from molehill import __version__, cleaner, storage, updates
from molehill.broadcast import BroadcastHub
from molehill.config import list_log_files
from molehill.context import AppContext
from molehill.errors import UpdateCheckError
from molehill.models import (
    AppInfo,
    CommandOutcome,
    DeleteResult,
    OtherBreakdown,
    PermissionsStatus,
    PurgeCandidate,
    ScanEntry,
    StorageBreakdown,
    SystemStatus,
    UpdateInfo,
    Volume,
    VolumeAnalysis,
)
from molehill.recursive_scanner import (
    DEFAULT_ITEM_CAP,
    DEFAULT_MIN_SIZE,
    find_large_items,
    scan_for_purge,
)
from molehill.scanner import analyze_downloads, top_level_breakdown

logger = logging.getLogger(__name__)

LOG_STREAM_HELLO = "Connected to log stream"
NO_LOG_FILE = "No log file found yet."
LOG_BUNDLE_FILENAME = "Mole-logs.zip"
LOG_BUNDLE_README = "No logs were found yet.\n"

# How long an idle log stream sleeps before checking its queue again
LOG_POLL_INTERVAL = 0.1

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}


class PathsRequest(BaseModel):
    paths: list[str] = Field(default_factory=list, description="Absolute paths to act on")


class AppsRequest(BaseModel):
    apps: list[str] = Field(default_factory=list, description="Application bundle paths")


class UpdateRequest(BaseModel):
    name: str = Field(..., description="Update to apply: 'Mole' or 'Homebrew'")


def sse_event(payload: str) -> str:
    """Frame a payload as one server-sent event (multi-line payloads get one data: per line)."""
    lines = payload.splitlines() or [""]
    return "".join(f"data: {line}\n" for line in lines) + "\n"


async def log_events(
    request: Request,
    hub: BroadcastHub,
    poll_interval: float = LOG_POLL_INTERVAL,
) -> AsyncIterator[str]:
    """
    Relay hub lines to one client until it disconnects.

    The subscription is registered before the hello is sent and released when
    the generator is closed, so a dropped client leaves nothing behind. An idle
    stream sleeps on the event loop between queue checks and holds no worker
    thread.
    """
    with hub.subscribe() as subscription:
        yield sse_event(LOG_STREAM_HELLO)
        while not await request.is_disconnected():
            try:
                line = subscription.get_nowait()
            except queue.Empty:
                await asyncio.sleep(poll_interval)
                continue
            yield sse_event(line)


async def status_events(
    request: Request,
    provider: Callable[[], SystemStatus],
    interval: float,
) -> AsyncIterator[str]:
    """Push a metrics snapshot on connect and then every ``interval`` seconds."""
    while not await request.is_disconnected():
        status = await run_in_threadpool(provider)
        yield sse_event(status.model_dump_json())
        await asyncio.sleep(interval)


def build_log_bundle(files: list[tuple[str, Path]]) -> bytes:
    """Zip the log files that exist; a README stands in when none do."""
    buffer = io.BytesIO()
    written = 0
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as bundle:
        for name, path in files:
            try:
                bundle.write(path, arcname=name)
            except (PermissionError, OSError):
                continue
            written += 1
        if not written:
            bundle.writestr("README.txt", LOG_BUNDLE_README)
    logger.debug("Log bundle holds %d files", written)
    return buffer.getvalue()


def _event_stream(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


def _default_path(path: Optional[str]) -> str:
    return path or os.environ.get("HOME") or str(Path.home())


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    """Build the FastAPI application around an AppContext."""
    ctx = ctx or AppContext()
    settings = ctx.settings
    workers = settings.scan_workers

    app = FastAPI(title="molehill", version=__version__)
    app.state.ctx = ctx

    # -------------------------------------------------------------------------
    # Health, status and logs
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.get("/api/status", response_model=SystemStatus)
    def status():
        return ctx.status_provider()

    @app.get("/api/status/stream")
    async def status_stream(request: Request):
        return _event_stream(
            status_events(request, ctx.status_provider, settings.status_interval)
        )

    @app.get("/api/logs")
    async def logs_stream(request: Request):
        return _event_stream(log_events(request, ctx.hub))

    @app.get("/api/debug/logs", response_class=PlainTextResponse)
    def debug_logs():
        content = ctx.hub.read_log()
        return NO_LOG_FILE if content is None else content

    @app.get("/api/logs/bundle")
    def logs_bundle():
        return Response(
            content=build_log_bundle(list_log_files(settings.log_file)),
            media_type="application/zip",
            headers={
                "Content-Disposition": f'attachment; filename="{LOG_BUNDLE_FILENAME}"',
                "Cache-Control": "no-store",
            },
        )

    # -------------------------------------------------------------------------
    # Scans
    # -------------------------------------------------------------------------

    @app.get("/api/analyze", response_model=list[ScanEntry])
    def analyze(path: Optional[str] = None):
        return top_level_breakdown(_default_path(path), max_workers=workers)

    @app.get("/api/analyze/large", response_model=list[ScanEntry])
    def analyze_large(
        path: Optional[str] = None,
        min_size: int = DEFAULT_MIN_SIZE,
        limit: int = DEFAULT_ITEM_CAP,
    ):
        root = _default_path(path)
        ctx.hub.log("Scanning for large items in %s", root)
        return find_large_items(root, min_size=min_size, item_cap=limit, max_workers=workers)

    @app.get("/api/analyze/downloads", response_model=list[ScanEntry])
    def downloads():
        return analyze_downloads(max_workers=workers)

    @app.get("/api/storage/breakdown", response_model=StorageBreakdown)
    def storage_breakdown():
        return storage.get_storage_breakdown(max_workers=workers)

    @app.get("/api/storage/analyze-other", response_model=OtherBreakdown)
    def storage_analyze_other():
        return storage.analyze_other(max_workers=workers)

    @app.get("/api/volumes", response_model=list[Volume])
    def volumes():
        return storage.list_volumes()

    @app.get("/api/volumes/analyze", response_model=VolumeAnalysis)
    def volume_analyze(path: str = "/"):
        return storage.analyze_volume(path, max_workers=workers)

    @app.get("/api/purge/scan", response_model=list[PurgeCandidate])
    def purge_scan(path: Optional[str] = None):
        root = _default_path(path)
        ctx.hub.log("Scanning for purgeable directories in %s", root)
        return scan_for_purge(root)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    @app.post("/api/purge", response_model=CommandOutcome)
    def purge(body: PathsRequest):
        return cleaner.purge_paths(body.paths, ctx.hub)

    @app.api_route("/api/files", methods=["POST", "DELETE"], response_model=DeleteResult)
    def delete_files(body: PathsRequest):
        return cleaner.delete_files(body.paths, ctx.hub)

    @app.post("/api/clean", response_model=CommandOutcome)
    def clean(category: str = ""):
        return cleaner.clean(ctx, category)

    @app.get("/api/clean/preview", response_model=CommandOutcome)
    def clean_preview():
        return cleaner.clean_preview(ctx)

    @app.get("/api/uninstall/apps", response_model=list[AppInfo])
    def uninstall_list():
        return storage.list_applications()

    @app.post("/api/uninstall", response_model=CommandOutcome)
    def uninstall(body: AppsRequest):
        return cleaner.uninstall_apps(ctx, body.apps)

    @app.get("/api/permissions/check", response_model=PermissionsStatus)
    def permissions():
        return storage.check_permissions()

    @app.get("/api/updates/check", response_model=UpdateInfo)
    def updates_check():
        try:
            return updates.check_for_updates(__version__, settings.update_repo)
        except UpdateCheckError as e:
            logger.warning("Update check failed: %s", e)
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/updates/perform", response_model=CommandOutcome)
    def updates_perform(body: UpdateRequest):
        return updates.perform_update(ctx, body.name)

    return app
