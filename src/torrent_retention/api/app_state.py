#!/usr/bin/env python3
"""Thread-safe application state shared between the pollers and the API."""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional

from ..models import TickResult


@dataclass
class InstanceStatus:
    """Latest known state of one instance's poller."""
    instance: str
    running: bool = False
    ticks: int = 0
    failures: int = 0
    last_tick_time: Optional[datetime] = None
    last_tick_success: Optional[bool] = None
    last_torrent_count: int = 0
    last_matched_count: int = 0
    last_removed_count: int = 0
    last_error: Optional[str] = None


class AppState:
    """Thread-safe bridge between the poller threads and the web API.

    Each poller writes only its own instance's entry; the API reads
    snapshots under the same lock.
    """

    def __init__(self, take_action: bool = False) -> None:
        self.take_action = take_action
        self._instances: Dict[str, InstanceStatus] = {}
        self._lock = threading.Lock()

    def register_instance(self, instance: str) -> None:
        """Add an instance before its first tick."""
        with self._lock:
            self._instances.setdefault(instance, InstanceStatus(instance=instance))

    def set_running(self, instance: str) -> None:
        """Mark an instance's poller as currently inside a tick."""
        with self._lock:
            self._instances.setdefault(instance, InstanceStatus(instance=instance)).running = True

    def update_after_tick(self, result: TickResult) -> None:
        """Record the result of a completed tick.

        Args:
            result: Result reported by the instance's poller.
        """
        with self._lock:
            status = self._instances.setdefault(result.instance, InstanceStatus(instance=result.instance))
            status.running = False
            status.ticks += 1
            status.last_tick_time = result.started_at
            status.last_tick_success = result.success
            status.last_torrent_count = result.torrent_count
            status.last_matched_count = len(result.evaluation.matches) if result.evaluation else 0
            status.last_removed_count = len(result.removed)
            status.last_error = result.error
            if not result.success:
                status.failures += 1

    def get_status(self) -> List[dict]:
        """Return a snapshot of every instance's status, in registration order."""
        with self._lock:
            return [asdict(status) for status in self._instances.values()]
