"""FastAPI application factory with lifespan and routers."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from intelgate import __version__
from intelgate.services import Services

logger = logging.getLogger(__name__)

_start_time: float = 0.0


def get_uptime() -> float:
    return time.time() - _start_time if _start_time else 0.0


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("services not initialised")
    return services


@asynccontextmanager
async def _lifespan(app: FastAPI):
    global _start_time
    _start_time = time.time()

    owned = app.state.services is None
    if owned:
        from intelgate.db.database import init_db
        from intelgate.services import build_services

        try:
            await init_db()
            logger.info("Database initialised")
        except Exception as exc:
            logger.warning("Database init failed (running in degraded mode): %s", exc)
        app.state.services = build_services()

    logger.info("intelgate API v%s starting", __version__)
    yield
    logger.info("intelgate API shutting down")

    if owned:
        from intelgate.db.database import dispose_db

        await app.state.services.close()
        await dispose_db()


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI app; pass *services* to skip building them at startup."""
    global _start_time
    app = FastAPI(
        title="intelgate",
        description="Quality-gated market intelligence collection and analysis",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.services = services
    if services is not None and not _start_time:
        _start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from intelgate.api.routes import analysis, system
    app.include_router(analysis.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app
