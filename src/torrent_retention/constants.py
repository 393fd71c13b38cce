#!/usr/bin/env python3
"""Constants and enumerations for torrent retention."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Final

# Time constants
SECONDS_PER_DAY: Final[int] = 86400
SECONDS_PER_HOUR: Final[int] = 3600
SECONDS_PER_MINUTE: Final[int] = 60

# Scheduling
DEFAULT_POLL_INTERVAL: Final[timedelta] = timedelta(minutes=5)

# Network constants
DEFAULT_TIMEOUT: Final[int] = 30

# File paths
DEFAULT_CONFIG_FILE: Final[str] = "/config/retention.yaml"

# Clients report a zero epoch for torrents that never finished downloading.
NEVER_COMPLETED: Final[datetime] = datetime.fromtimestamp(0, tz=timezone.utc)

# Size histogram buckets: 500MB doubling up to ~1TB
SIZE_BUCKETS: Final[tuple] = tuple(0.5e9 * 2 ** i for i in range(11))


class TorrentStatus(int, Enum):
    """Torrent lifecycle status, numbered as in the Transmission RPC."""
    STOPPED = 0
    QUEUED_TO_CHECK = 1
    CHECKING = 2
    QUEUED_TO_DOWNLOAD = 3
    DOWNLOADING = 4
    QUEUED_TO_SEED = 5
    SEEDING = 6


class QbtState(str, Enum):
    """qBittorrent torrent states."""
    PAUSED_UP = "pausedUP"
    STOPPED_UP = "stoppedUP"
    PAUSED_DL = "pausedDL"
    STOPPED_DL = "stoppedDL"
    DOWNLOADING = "downloading"
    FORCED_DL = "forcedDL"
    STALLED_DL = "stalledDL"
    QUEUED_DL = "queuedDL"
    ALLOCATING = "allocating"
    META_DL = "metaDL"
    UPLOADING = "uploading"
    FORCED_UP = "forcedUP"
    STALLED_UP = "stalledUP"
    QUEUED_UP = "queuedUP"
    CHECKING_UP = "checkingUP"
    CHECKING_DL = "checkingDL"
    CHECKING_RESUME = "checkingResumeData"
    QUEUED_CHECK = "queuedForChecking"
    MOVING = "moving"
    ERROR = "error"
    MISSING_FILES = "missingFiles"
    UNKNOWN = "unknown"

    @classmethod
    def seeding_states(cls) -> set:
        """Return set of states in which a torrent is actively seeding."""
        return {cls.UPLOADING, cls.FORCED_UP, cls.STALLED_UP}

    @classmethod
    def downloading_states(cls) -> set:
        """Return set of downloading states."""
        return {cls.DOWNLOADING, cls.FORCED_DL, cls.STALLED_DL,
                cls.ALLOCATING, cls.META_DL}

    @classmethod
    def checking_states(cls) -> set:
        """Return set of checking states."""
        return {cls.CHECKING_UP, cls.CHECKING_DL, cls.CHECKING_RESUME}


class ClientKind(str, Enum):
    """Supported download clients."""
    TRANSMISSION = "transmission"
    QBITTORRENT = "qbittorrent"


class PollerState(str, Enum):
    """Phases of an instance poller's tick cycle."""
    IDLE = "idle"
    FETCHING = "fetching"
    EVALUATING = "evaluating"
    ACTING = "acting"
