"""Status and health-check router for the torrent-retention web API."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from ... import __version__
from ..app_state import AppState
from ..models import HealthResponse, InstanceStatusResponse, StatusResponse

router = APIRouter()

_start_time = time.time()


def get_app_state(request: Request) -> AppState:
    """Retrieve the shared AppState from the application."""
    return request.app.state.app_state


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Health-check endpoint."""
    return HealthResponse(
        status="ok",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
    )


@router.get("/status", response_model=StatusResponse)
def status(request: Request) -> StatusResponse:
    """Per-instance results of the latest ticks."""
    app_state = get_app_state(request)
    return StatusResponse(
        version=__version__,
        take_action=app_state.take_action,
        instances=[InstanceStatusResponse(**entry) for entry in app_state.get_status()],
    )
