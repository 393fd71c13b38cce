#!/usr/bin/env python3
"""Data models for torrent retention."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from .constants import TorrentStatus
from .utils import format_duration, tracker_host


@dataclass(frozen=True)
class TorrentSnapshot:
    """A torrent on a download client, as seen during one tick."""
    id: str
    name: str
    status: TorrentStatus
    done_date: Optional[datetime]
    upload_ratio: float
    num_files: int
    total_size: int
    trackers: Tuple[str, ...] = ()
    uploaded_bytes: int = 0

    @property
    def is_seeding(self) -> bool:
        """Check if torrent is seeding."""
        return self.status == TorrentStatus.SEEDING

    @property
    def tracker_hosts(self) -> FrozenSet[str]:
        """Hosts of all trackers with a parseable announce URL."""
        hosts = (tracker_host(url) for url in self.trackers)
        return frozenset(host for host in hosts if host)

    @property
    def computed_ratio(self) -> Optional[float]:
        """Uploaded bytes over total size, or None for empty torrents."""
        if self.total_size <= 0:
            return None
        return self.uploaded_bytes / self.total_size


class MatchKind(str, Enum):
    """Result tag of testing a policy against a torrent."""
    NOT_APPLICABLE = "not_applicable"
    NO_MATCH = "no_match"
    RATIO = "ratio"
    SEED_TIME = "seed_time"


class RatioSource(str, Enum):
    """Where a matching ratio came from."""
    REPORTED = "reported"
    COMPUTED = "computed"


@dataclass(frozen=True)
class MatchOutcome:
    """Closed result of evaluating a deletion condition.

    Use the constructors rather than building instances directly; they
    guarantee that only the payload belonging to ``kind`` is set.
    """
    kind: MatchKind
    ratio: Optional[float] = None
    ratio_source: Optional[RatioSource] = None
    seed_time: Optional[timedelta] = None

    @classmethod
    def not_applicable(cls) -> "MatchOutcome":
        return cls(MatchKind.NOT_APPLICABLE)

    @classmethod
    def no_match(cls) -> "MatchOutcome":
        return cls(MatchKind.NO_MATCH)

    @classmethod
    def by_ratio(cls, ratio: float,
                 source: RatioSource = RatioSource.REPORTED) -> "MatchOutcome":
        return cls(MatchKind.RATIO, ratio=ratio, ratio_source=source)

    @classmethod
    def by_seed_time(cls, seed_time: timedelta) -> "MatchOutcome":
        return cls(MatchKind.SEED_TIME, seed_time=seed_time)

    @property
    def is_match(self) -> bool:
        """True if the torrent qualifies for deletion."""
        return self.kind in (MatchKind.RATIO, MatchKind.SEED_TIME)

    @property
    def is_applicable(self) -> bool:
        """True if the policy's preconditions held."""
        return self.kind != MatchKind.NOT_APPLICABLE

    def __str__(self) -> str:
        if self.kind == MatchKind.RATIO:
            suffix = ", computed" if self.ratio_source == RatioSource.COMPUTED else ""
            return f"Ratio({self.ratio:g}{suffix})"
        if self.kind == MatchKind.SEED_TIME:
            return f"SeedTime({format_duration(self.seed_time)})"
        if self.kind == MatchKind.NO_MATCH:
            return "None"
        return "PreconditionsMismatch"


@dataclass
class PolicyTally:
    """What one policy watched during a tick."""
    count: int = 0
    total_size: int = 0
    matched: int = 0
    sizes: List[int] = field(default_factory=list)

    def observe(self, size: int) -> None:
        """Record one governed torrent."""
        self.count += 1
        self.total_size += size
        self.sizes.append(size)


@dataclass(frozen=True)
class Match:
    """A torrent that qualified for deletion under a policy."""
    torrent: TorrentSnapshot
    policy: str
    outcome: MatchOutcome
    delete_data: bool


@dataclass
class Evaluation:
    """Aggregated result of resolving all torrents against a policy set."""
    tallies: Dict[str, PolicyTally] = field(default_factory=dict)
    matches: List[Match] = field(default_factory=list)
    delete_with_data: set = field(default_factory=set)
    delete_without_data: set = field(default_factory=set)

    @property
    def total_deletions(self) -> int:
        """Number of distinct torrents scheduled for removal."""
        return len(self.delete_with_data | self.delete_without_data)

    def get_deletion_stats(self) -> dict:
        """Get deletion statistics."""
        return {
            "matched": len(self.matches),
            "with_data": len(self.delete_with_data),
            "without_data": len(self.delete_without_data),
            "policies": {
                label: {"count": tally.count, "size": tally.total_size,
                        "matched": tally.matched}
                for label, tally in self.tallies.items()
            },
        }


@dataclass
class TickResult:
    """Outcome of one fetch-evaluate-act cycle on an instance."""
    instance: str
    success: bool
    started_at: datetime
    torrent_count: int = 0
    evaluation: Optional[Evaluation] = None
    removed: List[str] = field(default_factory=list)
    dry_run: bool = True
    error: Optional[str] = None
