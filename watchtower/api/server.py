"""FastAPI server for the sidecar monitor."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from watchtower import __version__
from watchtower.api.routes import router
from watchtower.config import Settings, settings
from watchtower.monitor.client import NetworkClient
from watchtower.monitor.probe import HealthProbe
from watchtower.monitor.recovery import RecoveryAttempter
from watchtower.monitor.scheduler import MonitorScheduler
from watchtower.monitor.store import SQLiteGateway
from watchtower.monitor.tracker import StateTracker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire storage, tracker and scheduler; tear them down on shutdown."""
    cfg: Settings = app.state.settings

    # Fatal before any timer is armed
    cfg.require()
    gateway = SQLiteGateway(cfg.db_path)
    logger.info("Monitoring storage connected: %s", cfg.db_path)

    # Single worker keeps writes in submission order
    persist_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="persist")
    tracker = StateTracker(
        gateway,
        service_name=cfg.service_name,
        executor=persist_executor,
        record_failures=cfg.record_failures,
    )

    def _cleanup() -> None:
        removed = gateway.cleanup_old(cfg.retention_days)
        if removed:
            logger.info("Removed %d status record(s) older than %d days", removed, cfg.retention_days)

    client = NetworkClient()
    scheduler = MonitorScheduler(
        probe=HealthProbe(client),
        tracker=tracker,
        attempter=RecoveryAttempter(client, tracker),
        target_url=cfg.primary_url,
        probe_interval=float(cfg.probe_interval),
        recovery_interval=float(cfg.recovery_interval),
        probe_timeout_ms=cfg.probe_timeout_ms,
        recovery_endpoints=cfg.recovery_endpoints,
        recovery_timeout_ms=cfg.recovery_timeout_ms,
        recovery_delay_ms=cfg.recovery_delay_ms,
        shutdown_grace=cfg.shutdown_grace,
        housekeeping=_cleanup if cfg.retention_days > 0 else None,
    )

    app.state.tracker = tracker
    app.state.scheduler = scheduler

    tracker.record_startup({"port": cfg.api_port, "primaryUrl": cfg.primary_url})
    await scheduler.start()
    logger.info("Monitoring primary: %s", cfg.primary_url)

    yield

    # Shutdown
    await scheduler.stop()
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, persist_executor.shutdown, True)
    gateway.close()


def create_app(config: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="Watchtower - Sidecar Monitor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config or settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    return app


app = create_app()
