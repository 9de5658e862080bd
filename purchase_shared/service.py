"""FastAPI application shell shared by both services.

Each service builds its `ServiceLifecycle` and routes; this module adds the
parts that are identical everywhere:

- lifespan: start the lifecycle on startup, stop/drain it on shutdown
- `/health` (liveness), `/ready` (readiness), `/metrics`
- request metrics middleware and `{"error": ...}` error handlers
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .errors import install_error_handlers
from .lifecycle import ServiceLifecycle
from .logger_config import log
from .metrics import create_metrics_endpoint
from .middleware import metrics_middleware


def create_service_app(title: str, lifecycle: ServiceLifecycle) -> FastAPI:
    """Build a FastAPI app whose startup/shutdown drive `lifecycle`."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting service", service=title)
        lifecycle.start()

        yield

        log.info("Shutting down service", service=title)
        # stop() joins the supervisor thread; keep it off the event loop.
        await run_in_threadpool(lifecycle.stop)

    app = FastAPI(title=title, lifespan=lifespan)
    app.state.lifecycle = lifecycle

    install_error_handlers(app)
    app.middleware("http")(metrics_middleware)

    @app.get("/health")
    def health() -> dict:
        """Liveness: the process is up. Dependency flags are informational."""
        snapshot = lifecycle.snapshot
        body = {"status": "ok"}
        for name, connected in snapshot.dependencies.items():
            body[f"{name}Ready"] = connected
        return body

    @app.get("/ready")
    def ready():
        """Readiness: 200 only while every dependency is connected."""
        snapshot = lifecycle.snapshot
        if snapshot.ready:
            return {"status": "ready", "state": snapshot.state.value}
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "state": snapshot.state.value,
                "reason": snapshot.reason,
            },
        )

    app.add_api_route(
        "/metrics", create_metrics_endpoint(), name="metrics", include_in_schema=False
    )
    return app
