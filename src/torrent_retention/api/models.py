"""Pydantic response models for the torrent-retention web API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Response model for the health-check endpoint."""

    status: str = "ok"
    version: str
    uptime_seconds: float


class InstanceStatusResponse(BaseModel):
    """Response model for one instance's polling status."""

    instance: str
    running: bool
    ticks: int
    failures: int
    last_tick_time: Optional[datetime] = None
    last_tick_success: Optional[bool] = None
    last_torrent_count: int = 0
    last_matched_count: int = 0
    last_removed_count: int = 0
    last_error: Optional[str] = None


class StatusResponse(BaseModel):
    """Response model for the status endpoint."""

    version: str
    take_action: bool
    instances: List[InstanceStatusResponse]
