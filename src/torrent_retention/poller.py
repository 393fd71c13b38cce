#!/usr/bin/env python3
"""Per-instance polling loop: fetch, evaluate, act, report."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from .classifier import DeletionPolicySet
from .config import Instance
from .constants import PollerState
from .metrics import Metrics
from .models import Evaluation, TickResult
from .notifier import Notifier
from .utils import truncate_name

if TYPE_CHECKING:
    from .api.app_state import AppState
    from .client import TorrentRepository

logger = logging.getLogger(__name__)


class TickError(Exception):
    """A tick that could not complete; the loop carries on."""


class InstancePoller:
    """Drives one instance's policies over time.

    Ticks are strictly sequential: the next one starts only after the
    previous one finished, even when it overran the poll interval. Runtime
    failures end the tick, never the loop.
    """

    def __init__(self, instance: Instance, repository: "TorrentRepository",
                 metrics: Metrics, take_action: bool = False,
                 notifier: Optional[Notifier] = None,
                 app_state: Optional["AppState"] = None):
        """
        Initialize poller.

        Args:
            instance: Instance to poll
            repository: Download client access for the instance
            metrics: Process-wide metrics context
            take_action: Remove matched torrents; otherwise only log them
            notifier: Optional notification sender
            app_state: Optional status board for the web API
        """
        self.instance = instance
        self.label = instance.label
        self.repository = repository
        self.metrics = metrics
        self.take_action = take_action
        self.notifier = notifier
        self.app_state = app_state
        self.policy_set = DeletionPolicySet(instance.policies)
        self.state = PollerState.IDLE
        self.ticks = 0
        self._stop = threading.Event()

        self.metrics.register_instance(self.label)
        if self.app_state is not None:
            self.app_state.register_instance(self.label)

    def stop(self) -> None:
        """Make ``run_forever`` return after the current tick."""
        self._stop.set()

    def run_forever(self) -> None:
        """Tick now, then once per poll interval until stopped."""
        interval = self.instance.poll_interval.total_seconds()
        logger.info(
            f"Polling {self.instance.connection} every {self.instance.poll_interval} "
            f"with {len(self.policy_set)} policies"
        )

        while not self._stop.is_set():
            started = time.monotonic()
            logger.debug(f"[{self.label}] Polling")
            self.tick()

            # An overrunning tick is followed by the next one right away
            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                self._stop.wait(timeout=remaining)

        logger.info(f"[{self.label}] Poller stopped")

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Run one fetch-evaluate-act cycle.

        Args:
            now: Evaluation instant; defaults to the current time

        Returns:
            Result of the tick. Failures are reported in it, not raised.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        result = TickResult(instance=self.label, success=False, started_at=now,
                            dry_run=not self.take_action)

        if self.app_state is not None:
            self.app_state.set_running(self.label)

        with self.metrics.time_tick(self.label):
            try:
                self._run(now, result)
                result.success = True
            except TickError as e:
                result.error = str(e)
                logger.error(f"[{self.label}] {e}")
            except Exception as e:
                result.error = f"Unexpected error: {e}"
                logger.error(f"[{self.label}] Tick failed: {e}", exc_info=True)
            finally:
                self.state = PollerState.IDLE
                self.ticks += 1

        if result.success:
            logger.debug(f"[{self.label}] Polling succeeded")
        else:
            self.metrics.record_failure(self.label)

        if self.app_state is not None:
            self.app_state.update_after_tick(result)
        if self.notifier is not None:
            self.notifier.notify_tick(result)
        return result

    def _run(self, now: datetime, result: TickResult) -> None:
        self.state = PollerState.FETCHING
        torrents = self.repository.list_torrents()
        if torrents is None:
            raise TickError("Could not retrieve list of torrents")
        result.torrent_count = len(torrents)

        self.state = PollerState.EVALUATING
        evaluation = self.policy_set.evaluate(torrents, now)
        result.evaluation = evaluation
        self.metrics.record_evaluation(self.label, evaluation)
        self._log_matches(evaluation)

        self.state = PollerState.ACTING
        if not self.take_action:
            if evaluation.total_deletions:
                logger.info(
                    f"[{self.label}] [DRY RUN] Would delete "
                    f"{len(evaluation.delete_with_data)} torrent(s) with data, "
                    f"{len(evaluation.delete_without_data)} without"
                )
            return

        if evaluation.delete_with_data:
            logger.info(f"[{self.label}] Deleting {len(evaluation.delete_with_data)} torrent(s) with data...")
            if not self.repository.remove(evaluation.delete_with_data, delete_data=True):
                raise TickError("Deleting torrents with local data failed")
            result.removed.extend(sorted(evaluation.delete_with_data))

        if evaluation.delete_without_data:
            logger.info(f"[{self.label}] Deleting {len(evaluation.delete_without_data)} torrent(s) without data...")
            if not self.repository.remove(evaluation.delete_without_data, delete_data=False):
                raise TickError("Deleting torrent metadata alone failed")
            result.removed.extend(sorted(evaluation.delete_without_data))

    def _log_matches(self, evaluation: Evaluation) -> None:
        """Log each matched torrent."""
        for match in evaluation.matches:
            logger.info(
                f"[{self.label}] → matched {truncate_name(match.torrent.name)} "
                f"(policy={match.policy}, {match.outcome}, "
                f"take_action={self.take_action}, delete_data={match.delete_data})"
            )
