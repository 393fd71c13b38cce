"""FastAPI application factory."""

from fastapi import FastAPI

from .. import __version__
from ..metrics import Metrics
from .app_state import AppState


def create_app(app_state: AppState, metrics: Metrics) -> FastAPI:
    """Create the HTTP app exposing metrics and poller status."""
    app = FastAPI(
        title="torrent-retention",
        version=__version__,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )

    # Store shared context for the routers
    app.state.app_state = app_state
    app.state.metrics = metrics

    from .routers import metrics as metrics_router, status

    app.include_router(metrics_router.router, tags=["metrics"])
    app.include_router(status.router, prefix="/api", tags=["status"])

    return app
