#!/usr/bin/env python3
"""Runs every instance poller, and the metrics server, for the life of the process."""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import uvicorn

from .poller import InstancePoller

logger = logging.getLogger(__name__)


class TaskExitedError(RuntimeError):
    """A task that should run forever has returned."""


@dataclass
class TaskExit:
    """Report of a finished task."""
    name: str
    error: Optional[BaseException] = None


class Supervisor:
    """Owns the long-running tasks of the process.

    Every task is expected to run forever. The first one to return, with or
    without an exception, ends :meth:`run` with :class:`TaskExitedError`:
    an instance that silently stops being polled is worse than a crash.
    """

    def __init__(self, pollers: List[InstancePoller],
                 metrics_server: Optional[uvicorn.Server] = None):
        """
        Initialize supervisor.

        Args:
            pollers: One poller per configured instance
            metrics_server: Optional HTTP server exposing metrics and status
        """
        self.pollers = pollers
        self.metrics_server = metrics_server
        self._exits: "queue.Queue[TaskExit]" = queue.Queue()
        self._threads: List[threading.Thread] = []

    def _tasks(self) -> List[Tuple[str, Callable[[], None]]]:
        tasks = [(f"poller:{p.label}", p.run_forever) for p in self.pollers]
        if self.metrics_server is not None:
            tasks.append(("metrics-server", self.metrics_server.run))
        return tasks

    def _watch(self, name: str, target: Callable[[], None]) -> None:
        """Run a task and report how it ended."""
        try:
            target()
        except BaseException as e:
            self._exits.put(TaskExit(name=name, error=e))
        else:
            self._exits.put(TaskExit(name=name))

    def start(self) -> None:
        """Start every task in its own daemon thread."""
        for name, target in self._tasks():
            thread = threading.Thread(target=self._watch, args=(name, target),
                                      name=name, daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {len(self._threads)} task(s)")

    def wait(self, timeout: Optional[float] = None) -> None:
        """
        Block until a task exits.

        Args:
            timeout: Give up waiting after this many seconds (None waits forever)

        Raises:
            TaskExitedError: When any task returned or raised
        """
        try:
            exit_report = self._exits.get(timeout=timeout)
        except queue.Empty:
            return

        if exit_report.error is not None:
            raise TaskExitedError(
                f"Task {exit_report.name} exited prematurely: {exit_report.error}"
            ) from exit_report.error
        raise TaskExitedError(f"Task {exit_report.name} exited unexpectedly, but with a success")

    def run(self) -> None:
        """Start all tasks and block until one of them exits."""
        self.start()
        self.wait()

    def stop(self) -> None:
        """Ask every task to finish; used when shutting down on request."""
        for poller in self.pollers:
            poller.stop()
        if self.metrics_server is not None:
            self.metrics_server.should_exit = True
