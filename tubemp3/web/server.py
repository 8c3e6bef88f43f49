"""
HTTP service exposing the conversion pipeline.

Routes:
- GET  /api/health   : service identity, current timestamp and job counters
- POST /api/download : body {"url": ...}; responds with the MP3 file or {"error": ...}
"""

import json
import logging
from datetime import datetime, timezone

import aiofiles
from aiohttp import web

from tubemp3.core.job_manager import JobManager
from tubemp3.models.config import ServiceConfig
from tubemp3.models.job import Job

log = logging.getLogger(__name__)

SERVICE_MESSAGE = "YouTube MP3 Downloader API is running"

CONFIG_KEY = web.AppKey("config", ServiceConfig)
MANAGER_KEY = web.AppKey("manager", JobManager)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T12:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def content_disposition(filename: str) -> str:
    safe = filename.replace('"', "").replace("\r", "").replace("\n", "")
    return f'attachment; filename="{safe}"'


async def health(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    return web.json_response(
        {
            "status": "OK",
            "message": SERVICE_MESSAGE,
            "timestamp": utc_timestamp(),
            "active_jobs": manager.active_jobs,
            "stats": manager.stats.to_dict(),
        }
    )


async def _read_url(request: web.Request) -> str | None:
    """Extracts `url` from a JSON body; an unreadable body counts as no URL."""
    try:
        body = json.loads(await request.text() or "null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    url = body.get("url")
    if url is None or isinstance(url, str):
        return url
    return str(url)


async def download(request: web.Request) -> web.StreamResponse:
    manager = request.app[MANAGER_KEY]
    config = request.app[CONFIG_KEY]
    url = await _read_url(request)
    log.info(f"📥 Download request received: {url!r}")

    response = web.StreamResponse(status=200)

    async def deliver(job: Job) -> int:
        size = job.output_path.stat().st_size
        response.content_type = config.output_mime
        response.content_length = size
        response.headers["Content-Disposition"] = content_disposition(
            job.download_filename
        )
        await response.prepare(request)

        sent = 0
        async with aiofiles.open(job.output_path, "rb") as f:
            while chunk := await f.read(config.chunk_size):
                await response.write(chunk)
                sent += len(chunk)
        await response.write_eof()
        return sent

    job = await manager.submit(url, deliver)

    if job.error is None or response.prepared:
        # Once headers are out the outcome has been decided; a failed transfer
        # has been logged by the pipeline.
        return response

    return web.json_response(
        {"error": job.error.user_message}, status=job.error.status_code
    )


async def preflight(request: web.Request) -> web.Response:
    return web.Response(status=204)


async def add_cors_headers(request: web.Request, response: web.StreamResponse) -> None:
    """Allows the configured front-end origin, with credentials."""
    allowed = request.app[CONFIG_KEY].cors_origin
    if not allowed or request.headers.get("Origin") != allowed:
        return
    response.headers["Access-Control-Allow-Origin"] = allowed
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Vary"] = "Origin"
    if request.method == "OPTIONS":
        response.headers["Access-Control-Allow-Methods"] = "GET,HEAD,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = request.headers.get(
            "Access-Control-Request-Headers", "Content-Type"
        )


def create_app(config: ServiceConfig, manager: JobManager | None = None) -> web.Application:
    """Builds the aiohttp application around a `JobManager`."""
    app = web.Application()
    app[CONFIG_KEY] = config
    app[MANAGER_KEY] = manager or JobManager(config)

    app.router.add_get("/api/health", health)
    app.router.add_post("/api/download", download)
    app.router.add_route("OPTIONS", "/api/{tail:.*}", preflight)
    app.on_response_prepare.append(add_cors_headers)

    async def on_startup(app: web.Application) -> None:
        await app[MANAGER_KEY].start()

    async def on_cleanup(app: web.Application) -> None:
        await app[MANAGER_KEY].stop()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def run_server(config: ServiceConfig) -> None:
    """Runs the service until interrupted."""
    app = create_app(config)
    base_url = f"http://localhost:{config.port}"
    log.info("[bold]🚀 YouTube MP3 Downloader API Server[/bold]")
    log.info(f"📡 Server running on: {base_url}")
    log.info(f"🏥 Health check: {base_url}/api/health")
    log.info(f"📁 Temp directory: {config.temp_dir}")
    log.info("⚠️  Educational purposes only - Respect YouTube ToS")
    # A client that disconnects cancels its handler and with it the job
    web.run_app(
        app,
        host=config.host,
        port=config.port,
        print=None,
        handler_cancellation=True,
    )
