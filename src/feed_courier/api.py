from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .dispatcher import SourceDispatcher
from .models import utc_now

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@dataclass
class RequestStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    started_at: datetime = field(default_factory=utc_now)


def build_app(
    dispatchers: Sequence[SourceDispatcher],
    *,
    clock: Optional[Callable[[], datetime]] = None,
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    """Control surface for a running courier.

    Manual runs are awaited on the serving loop, so they share the in-flight
    guard of the dispatcher that the schedule drives.
    """
    clock = clock or utc_now
    app_logger = logger or logging.getLogger(__name__)
    by_key = {dispatcher.key: dispatcher for dispatcher in dispatchers}
    stats = RequestStats(started_at=clock())

    app = FastAPI(
        title="feed-courier",
        description="Health, per-source status and manual runs",
        version="0.1.0",
    )

    @app.middleware("http")
    async def count_requests(request: Request, call_next):
        if request.url.path == "/health":
            return await call_next(request)
        stats.total_requests += 1
        response = await call_next(request)
        if response.status_code < 400:
            stats.successful_requests += 1
        else:
            stats.failed_requests += 1
        return response

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
        error_message = exc.detail if isinstance(exc.detail, str) else "request_error"
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": error_message})

    def _dispatcher(key: str) -> SourceDispatcher:
        dispatcher = by_key.get(key.strip())
        if dispatcher is None:
            raise HTTPException(status_code=404, detail="unknown_source")
        return dispatcher

    @app.get("/health")
    def health() -> dict[str, object]:
        now = clock()
        return {
            "ok": True,
            "status": "healthy",
            "uptime_sec": int((now - stats.started_at).total_seconds()),
            "sources": len(by_key),
            "running": sorted(key for key, dispatcher in by_key.items() if dispatcher.is_running),
            "stats": {
                "total_requests": stats.total_requests,
                "successful_requests": stats.successful_requests,
                "failed_requests": stats.failed_requests,
            },
            "timestamp": now.isoformat(),
        }

    @app.get("/sources")
    def list_sources() -> dict[str, object]:
        items = [dispatcher.status() for dispatcher in by_key.values()]
        return {"ok": True, "items": items, "count": len(items)}

    @app.get("/sources/{key}/status")
    def source_status(key: str) -> dict[str, object]:
        return {"ok": True, "item": _dispatcher(key).status()}

    @app.post("/sources/{key}/run")
    async def run_source(key: str, bypass_dedup: bool = Query(default=False)) -> dict[str, object]:
        dispatcher = _dispatcher(key)
        app_logger.info("manual run requested: source=%s bypass_dedup=%s", dispatcher.key, bypass_dedup)
        result = await dispatcher.run_manual(bypass_dedup=bypass_dedup)
        return {"ok": result.success, "result": asdict(result)}

    return app


async def serve_api(
    app: FastAPI,
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    background: Optional[Awaitable[object]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Serve ``app`` on the current loop, next to an optional background job.

    The background job is cancelled once the server shuts down.
    """
    if port < 1 or port > 65535:
        raise ValueError("port must be in [1, 65535]")

    app_logger = logger or logging.getLogger(__name__)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    task = asyncio.ensure_future(background) if background is not None else None
    app_logger.info("api started: http://%s:%s", host, port)
    try:
        await server.serve()
    finally:
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif task is not None and not task.cancelled() and task.exception() is not None:
            app_logger.error("background job failed: error=%s", task.exception())
        app_logger.info("api stopped: http://%s:%s", host, port)
