#!/usr/bin/env python3
"""Configuration management for torrent retention."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Tuple

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_POLL_INTERVAL, ClientKind
from .policy import DeletePolicy
from .utils import parse_bool, parse_list


class ConfigError(Exception):
    """Rules file could not be loaded."""


@dataclass(frozen=True)
class Connection:
    """Download client connection configuration."""
    kind: ClientKind
    url: str
    user: Optional[str] = None
    password: Optional[str] = None
    verify_ssl: bool = False

    def __str__(self) -> str:
        if self.user and self.password:
            return f"{self.url} # u:{self.user}:***"
        if self.user:
            return f"{self.url} # u:{self.user}"
        return self.url


@dataclass(frozen=True)
class Instance:
    """A download client together with the policies applied to it."""
    connection: Connection
    policies: Tuple[DeletePolicy, ...] = ()
    poll_interval: timedelta = DEFAULT_POLL_INTERVAL
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "policies", tuple(self.policies))
        if self.poll_interval <= timedelta(0):
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        labels = [policy.name_or_index(index) for index, policy in enumerate(self.policies)]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            raise ConfigError(
                f"Policy labels must be unique per instance, repeated: {', '.join(duplicates)}"
            )

    @property
    def label(self) -> str:
        """Identity of the instance in logs, metrics and status."""
        return self.name or self.connection.url


@dataclass
class NotifyConfig:
    """Apprise notification configuration."""
    enabled: bool = field(default_factory=lambda: parse_bool("NOTIFY_ENABLED", False))
    urls: list[str] = field(default_factory=lambda: parse_list("NOTIFY_URLS"))
    on_delete: bool = field(default_factory=lambda: parse_bool("NOTIFY_ON_DELETE", True))
    on_error: bool = field(default_factory=lambda: parse_bool("NOTIFY_ON_ERROR", True))


@dataclass
class RuntimeConfig:
    """Process-level configuration; CLI flags override these."""
    config_path: str = field(default_factory=lambda: os.environ.get("RETENTION_CONFIG", DEFAULT_CONFIG_FILE))
    take_action: bool = field(default_factory=lambda: parse_bool("TAKE_ACTION", False))
    metrics_listen_addr: Optional[str] = field(default_factory=lambda: os.environ.get("METRICS_LISTEN_ADDR") or None)
    debug: bool = field(default_factory=lambda: parse_bool("DEBUG", False))
    notify: NotifyConfig = field(default_factory=NotifyConfig)

    @classmethod
    def from_environment(cls) -> "RuntimeConfig":
        """Create configuration from environment variables."""
        return cls()


def parse_listen_addr(addr: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` listen address.

    Args:
        addr: Address such as ``0.0.0.0:9100``, ``[::]:9100`` or ``:9100``

    Returns:
        Tuple of (host, port)

    Raises:
        ConfigError: If the address has no valid port
    """
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ConfigError(f"Listen address {addr!r} must be host:port")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f"Invalid port in listen address {addr!r}") from None
    if not 0 < port_number < 65536:
        raise ConfigError(f"Port out of range in listen address {addr!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port_number
