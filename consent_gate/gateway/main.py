"""consent-gate – Gateway.

FastAPI app hosting the process-scoped ConsentCoordinator. The coordinator is
built and loaded on startup and torn down on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI

from config.settings import get_settings
from consent_gate.core.coordinator import ConsentCoordinator
from consent_gate.core.factory import build_coordinator
from consent_gate.core.instrumentation import router as metrics_router
from consent_gate.core.instrumentation import setup_logging
from consent_gate.gateway.routers.consent import router as consent_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[type-arg]
    """Build and load the coordinator on startup, tear it down on shutdown."""
    if getattr(app.state, "coordinator", None) is None:
        coordinator = await build_coordinator(get_settings())
        await coordinator.load()
        app.state.coordinator = coordinator
    logger.info("gateway.started", state=app.state.coordinator.state.value)
    try:
        yield
    finally:
        await app.state.coordinator.teardown()
        logger.info("gateway.stopped")


def create_app(coordinator: ConsentCoordinator | None = None) -> FastAPI:
    """Create the gateway app, optionally around an existing coordinator."""
    settings = get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="consent-gate",
        description="Two-layer consent gate for analytics events",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.coordinator = coordinator
    app.include_router(consent_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        current = app.state.coordinator
        return {
            "status": "ok" if current is not None else "starting",
            "consent_state": current.state.value if current is not None else None,
        }

    return app


app = create_app()
