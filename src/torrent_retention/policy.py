#!/usr/bin/env python3
"""Deletion policies and the rules deciding which torrents they match."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional

from .constants import NEVER_COMPLETED
from .models import MatchOutcome, RatioSource, TorrentSnapshot
from .utils import truncate_name

logger = logging.getLogger(__name__)


class InvalidPolicyError(ValueError):
    """A policy that could never be applied safely."""


@dataclass(frozen=True)
class Precondition:
    """Decides which torrents a policy looks at.

    Attributes:
        trackers: Tracker hostnames (only the host, not path or port) the
            policy applies to.
        min_file_count: Fewest files a torrent may have, inclusive.
        max_file_count: Most files a torrent may have, inclusive.
    """
    trackers: FrozenSet[str] = field(default_factory=frozenset)
    min_file_count: Optional[int] = None
    max_file_count: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "trackers", frozenset(self.trackers))
        if (self.min_file_count is not None and self.max_file_count is not None
                and self.min_file_count > self.max_file_count):
            raise InvalidPolicyError(
                f"min_file_count {self.min_file_count} exceeds "
                f"max_file_count {self.max_file_count}"
            )

    def __str__(self) -> str:
        parts = [",".join(sorted(self.trackers))]
        if self.min_file_count is not None or self.max_file_count is not None:
            low = self.min_file_count if self.min_file_count is not None else ""
            high = self.max_file_count if self.max_file_count is not None else ""
            parts.append(f"files=[{low}..{high}]")
        return " ".join(parts)


@dataclass(frozen=True)
class Condition:
    """Decides whether a governed torrent may be deleted.

    Attributes:
        max_ratio: Ratio at which a torrent qualifies for deletion, even if
            it has seeded for less than ``max_seeding_time``.
        min_seeding_time: Grace period. Nothing younger is deleted, however
            high its ratio.
        max_seeding_time: Seeding time at which a torrent qualifies for
            deletion regardless of ratio.

    Raises:
        InvalidPolicyError: If no threshold is set. Such a condition would
            delete every governed torrent immediately.
    """
    max_ratio: Optional[float] = None
    min_seeding_time: Optional[timedelta] = None
    max_seeding_time: Optional[timedelta] = None

    def __post_init__(self):
        if (self.max_ratio is None and self.min_seeding_time is None
                and self.max_seeding_time is None):
            raise InvalidPolicyError(
                "Set at least one of min_seeding_time, max_seeding_time, max_ratio - "
                "otherwise this deletes all a tracker's torrents immediately."
            )

    def __str__(self) -> str:
        parts = []
        if self.min_seeding_time is not None:
            parts.append(f"t>={self.min_seeding_time}")
        if self.max_seeding_time is not None:
            parts.append(f"t<{self.max_seeding_time}")
        if self.max_ratio is not None:
            parts.append(f"r<{self.max_ratio:g}")
        return " ".join(parts)


@dataclass(frozen=True)
class DeletePolicy:
    """A named precondition/condition pair and what deleting means for it."""
    precondition: Precondition
    condition: Condition
    name: Optional[str] = None
    delete_data: bool = True

    def name_or_index(self, index: int) -> str:
        """Reporting label: the policy name, or its position in the instance."""
        return self.name if self.name is not None else str(index)

    def __str__(self) -> str:
        return (f"DeletePolicy[{self.name!r}, when {self.precondition}: "
                f"{self.condition}, delete_data={self.delete_data}]")


def governs(precondition: Precondition, torrent: TorrentSnapshot) -> bool:
    """
    Check whether a policy's precondition covers a torrent.

    Args:
        precondition: Applicability gate of the policy
        torrent: Torrent snapshot

    Returns:
        True if the torrent is seeding, announces to one of the trackers
        and has an acceptable number of files
    """
    if not torrent.is_seeding:
        logger.debug(f"Not seeding ({torrent.status.name}): {truncate_name(torrent.name)}")
        return False

    if precondition.trackers.isdisjoint(torrent.tracker_hosts):
        logger.debug(
            f"No matching tracker on {truncate_name(torrent.name)}: "
            f"has {sorted(torrent.tracker_hosts)}, expected {sorted(precondition.trackers)}"
        )
        return False

    if precondition.min_file_count is not None and torrent.num_files < precondition.min_file_count:
        logger.debug(f"Too few files ({torrent.num_files}): {truncate_name(torrent.name)}")
        return False
    if precondition.max_file_count is not None and torrent.num_files > precondition.max_file_count:
        logger.debug(f"Too many files ({torrent.num_files}): {truncate_name(torrent.name)}")
        return False

    return True


def matches(condition: Condition, torrent: TorrentSnapshot,
            now: Optional[datetime] = None) -> MatchOutcome:
    """
    Test a governed torrent against a deletion condition.

    The checks run in a fixed order: the minimum seeding time is a hard
    gate, and ratio is tested before maximum seeding time, so a torrent
    exceeding both is reported as a ratio match.

    Args:
        condition: Deletion condition
        torrent: Torrent snapshot that already passed the precondition
        now: Evaluation instant; defaults to the current time

    Returns:
        NO_MATCH, RATIO or SEED_TIME outcome
    """
    if torrent.done_date is None:
        logger.debug(f"Never finished downloading: {truncate_name(torrent.name)}")
        return MatchOutcome.no_match()

    if torrent.done_date == NEVER_COMPLETED and condition.min_seeding_time is not None:
        logger.debug(f"Unset 'done' time, leaving it alone: {truncate_name(torrent.name)}")
        return MatchOutcome.no_match()

    if now is None:
        now = datetime.now(timezone.utc)
    seed_time = now - torrent.done_date

    if condition.min_seeding_time is not None and seed_time < condition.min_seeding_time:
        logger.debug(f"Below minimum seeding time: {truncate_name(torrent.name)}")
        return MatchOutcome.no_match()

    if condition.max_ratio is not None:
        if torrent.upload_ratio >= 0:
            if torrent.upload_ratio >= condition.max_ratio:
                logger.debug(f"Ratio {torrent.upload_ratio:.2f} qualifies: {truncate_name(torrent.name)}")
                return MatchOutcome.by_ratio(torrent.upload_ratio, RatioSource.REPORTED)
        else:
            computed = torrent.computed_ratio
            if computed is not None and computed >= condition.max_ratio:
                logger.debug(
                    f"Computed ratio {computed:.2f} qualifies (reported {torrent.upload_ratio}): "
                    f"{truncate_name(torrent.name)}"
                )
                return MatchOutcome.by_ratio(computed, RatioSource.COMPUTED)

    if condition.max_seeding_time is not None and seed_time >= condition.max_seeding_time:
        logger.debug(f"Seed time qualifies: {truncate_name(torrent.name)}")
        return MatchOutcome.by_seed_time(seed_time)

    return MatchOutcome.no_match()


def evaluate(policy: DeletePolicy, torrent: TorrentSnapshot,
             now: Optional[datetime] = None) -> MatchOutcome:
    """Resolve a torrent against one policy, preconditions included."""
    if not governs(policy.precondition, torrent):
        return MatchOutcome.not_applicable()
    return matches(policy.condition, torrent, now)
