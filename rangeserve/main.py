from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rangeserve import __version__
from rangeserve.api import streams
from rangeserve.api.v1.router import router as v1_router
from rangeserve.core import Settings, settings
from rangeserve.core.log import setup_logging
from rangeserve.runtime.client_sessions import ClientSessionRegistry
from rangeserve.services.concurrency_governor import ConcurrencyGovernor, sweep_forever
from rangeserve.services.range_streamer import RangeStreamer
from rangeserve.services.resource_locator import ResourceLocator
from rangeserve.services.response_assembler import ResponseAssembler
from rangeserve.services.stream_service import StreamService


def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Build the app. Nothing is created at import time; serve it with
    `python -m rangeserve` or `uvicorn rangeserve.main:create_app --factory`.
    """
    config = config or settings
    setup_logging(config.LOG_LEVEL)

    Path(config.RESOURCE_ROOT).mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="rangeserve API", version=__version__)
    if config.CORS_ALLOW_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.CORS_ALLOW_ORIGINS,
            allow_methods=["GET", "HEAD"],
            allow_headers=["*"],
            expose_headers=["Accept-Ranges", "Content-Range", "Content-Length", "ETag"],
        )

    governor = ConcurrencyGovernor(config.MAX_CONCURRENT_STREAMS)
    client_sessions = ClientSessionRegistry(config.CLIENT_SESSION_TTL_SECONDS)

    app.state.settings = config
    app.state.governor = governor
    app.state.client_sessions = client_sessions
    app.state.stream_service = StreamService(
        locator=ResourceLocator(config.RESOURCE_ROOT, default_content_type=config.DEFAULT_CONTENT_TYPE),
        governor=governor,
        streamer=RangeStreamer(chunk_size=config.CHUNK_SIZE, idle_timeout=config.IDLE_TIMEOUT_SECONDS),
        assembler=ResponseAssembler(
            cache_control=config.CACHE_CONTROL,
            reject_status_code=config.REJECT_STATUS_CODE,
            retry_after_seconds=config.RETRY_AFTER_SECONDS,
        ),
        client_sessions=client_sessions,
    )

    app.include_router(v1_router, prefix="/v1")
    app.include_router(streams.router, prefix=config.RESOURCE_BASE_URL, tags=["streams"])

    @app.on_event("startup")
    async def startup_event():
        """Start background sweep of stale transfers."""
        app.state.sweeper = asyncio.create_task(
            sweep_forever(
                governor,
                interval=config.SESSION_SWEEP_INTERVAL_SECONDS,
                max_idle=config.STALE_SESSION_SECONDS,
            )
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        sweeper = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    return app

