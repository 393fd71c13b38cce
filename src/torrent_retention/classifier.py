#!/usr/bin/env python3
"""Resolution of torrents against an instance's deletion policies."""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from .models import Evaluation, Match, PolicyTally, TorrentSnapshot
from .policy import DeletePolicy, governs, matches
from .utils import truncate_name

logger = logging.getLogger(__name__)


class DeletionPolicySet:
    """Ordered deletion policies bound to one instance."""

    def __init__(self, policies: Sequence[DeletePolicy]):
        """
        Initialize policy set.

        Args:
            policies: Deletion policies in configuration order
        """
        self.policies = tuple(policies)
        self.labels = tuple(
            policy.name_or_index(index) for index, policy in enumerate(self.policies)
        )

    def __len__(self) -> int:
        return len(self.policies)

    def evaluate(self, torrents: Iterable[TorrentSnapshot],
                 now: Optional[datetime] = None) -> Evaluation:
        """
        Resolve every torrent against every policy.

        Torrents outside a policy's preconditions are invisible to it. Every
        governed torrent is tallied, matched or not; matched torrents are
        routed by the policy's ``delete_data`` flag. A torrent may be matched
        by several policies.

        Args:
            torrents: Torrent snapshots from one fetch
            now: Evaluation instant shared by all torrents

        Returns:
            Aggregated evaluation
        """
        if now is None:
            now = datetime.now(timezone.utc)

        result = Evaluation(tallies={label: PolicyTally() for label in self.labels})

        for torrent in torrents:
            for label, policy in zip(self.labels, self.policies):
                if not governs(policy.precondition, torrent):
                    continue

                tally = result.tallies[label]
                tally.observe(torrent.total_size)

                outcome = matches(policy.condition, torrent, now)
                if not outcome.is_match:
                    continue

                tally.matched += 1
                result.matches.append(Match(
                    torrent=torrent,
                    policy=label,
                    outcome=outcome,
                    delete_data=policy.delete_data,
                ))
                if policy.delete_data:
                    result.delete_with_data.add(torrent.id)
                else:
                    result.delete_without_data.add(torrent.id)

                logger.debug(
                    f"Matched {truncate_name(torrent.name)} under policy {label}: {outcome}"
                )

        return result
