#!/usr/bin/env python3
"""Prometheus metrics for instance polling and policy evaluation."""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest
)

from .constants import SIZE_BUCKETS
from .models import Evaluation


class Metrics:
    """Metric families of one process, registered in a private registry.

    Created once at startup and handed to every poller and to the HTTP
    app. Each poller only touches series labelled with its own instance,
    and the prometheus_client metric objects are safe to update from
    several threads.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.tick_duration = Histogram(
            "instance_tick_duration_seconds",
            "Time it took to fetch, evaluate and act on one instance",
            ["instance"],
            registry=self.registry,
        )
        self.tick_failures = Counter(
            "instance_tick_failures",
            "Number of times that polling the instance failed",
            ["instance"],
            registry=self.registry,
        )
        self.torrent_sizes = Histogram(
            "torrent_sizes_bytes",
            "Sizes of torrents governed by a policy. Use sum and count to see "
            "total size on a tracker, and count of torrents.",
            ["instance", "policy"],
            buckets=SIZE_BUCKETS,
            registry=self.registry,
        )
        self.torrent_deletions = Counter(
            "torrent_deletions",
            "Number of torrents matched for deletion, per instance/policy",
            ["instance", "policy"],
            registry=self.registry,
        )
        self.policy_torrents = Gauge(
            "policy_torrent_count",
            "Torrents governed by a policy during the latest tick",
            ["instance", "policy"],
            registry=self.registry,
        )
        self.policy_size = Gauge(
            "policy_torrent_size_bytes",
            "Total size of torrents governed by a policy during the latest tick",
            ["instance", "policy"],
            registry=self.registry,
        )

    def register_instance(self, instance: str) -> None:
        """Create the instance's series so they export zero before the first tick."""
        self.tick_duration.labels(instance)
        self.tick_failures.labels(instance)

    def time_tick(self, instance: str):
        """Context manager timing one tick of an instance."""
        return self.tick_duration.labels(instance).time()

    def record_failure(self, instance: str) -> None:
        """Count a tick that failed without raising."""
        self.tick_failures.labels(instance).inc()

    def record_evaluation(self, instance: str, evaluation: Evaluation) -> None:
        """
        Export what each policy saw and matched during a tick.

        Args:
            instance: Instance label
            evaluation: Evaluation of the tick
        """
        for policy, tally in evaluation.tallies.items():
            sizes = self.torrent_sizes.labels(instance, policy)
            for size in tally.sizes:
                sizes.observe(size)
            if tally.matched:
                self.torrent_deletions.labels(instance, policy).inc(tally.matched)
            self.policy_torrents.labels(instance, policy).set(tally.count)
            self.policy_size.labels(instance, policy).set(tally.total_size)

    def export(self) -> bytes:
        """Encode all metrics in the Prometheus text format."""
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
