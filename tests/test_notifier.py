"""Tests for Apprise notifications."""

from datetime import timedelta

import pytest

from torrent_retention.config import NotifyConfig
from torrent_retention.models import Evaluation, Match, MatchOutcome, TickResult
from torrent_retention.notifier import Notifier


class FakeApprise:
    def __init__(self):
        self.sent = []

    def notify(self, title, body, notify_type):
        self.sent.append((title, body))
        return True

    def __len__(self):
        return 1


@pytest.fixture
def notifier():
    notifier = Notifier(NotifyConfig(enabled=True, urls=["json://localhost"],
                                     on_delete=True, on_error=True))
    notifier._apprise = FakeApprise()
    return notifier


def matched_result(make_torrent, now, names, dry_run=True):
    evaluation = Evaluation(matches=[
        Match(torrent=make_torrent(id=name, name=name), policy="p",
              outcome=MatchOutcome.by_seed_time(timedelta(days=3)), delete_data=True)
        for name in names
    ])
    return TickResult(instance="seedbox", success=True, started_at=now,
                      evaluation=evaluation, dry_run=dry_run)


class TestNotifier:
    def test_disabled(self):
        assert not Notifier(None).is_active
        assert not Notifier(NotifyConfig(enabled=False, urls=["json://localhost"])).is_active
        assert not Notifier(NotifyConfig(enabled=True, urls=[])).is_active

    def test_inactive_notifier_sends_nothing(self, now):
        result = TickResult(instance="seedbox", success=False, started_at=now, error="boom")
        assert Notifier(None).notify_tick(result) == 0

    def test_dry_run_matches(self, notifier, make_torrent, now):
        names = [f"torrent-{i}" for i in range(7)]

        assert notifier.notify_tick(matched_result(make_torrent, now, names)) == 1

        [(title, body)] = notifier._apprise.sent
        assert "Matched" in title
        assert body.startswith("[DRY RUN] Would delete 7 torrent(s) on seedbox")
        assert "... and 2 more" in body

    def test_taking_action(self, notifier, make_torrent, now):
        notifier.notify_tick(matched_result(make_torrent, now, ["a"], dry_run=False))
        [(_, body)] = notifier._apprise.sent
        assert body.startswith("Deleted 1 torrent(s)")

    def test_no_matches_no_message(self, notifier, make_torrent, now):
        assert notifier.notify_tick(matched_result(make_torrent, now, [])) == 0
        assert notifier._apprise.sent == []

    def test_failed_tick(self, notifier, now):
        result = TickResult(instance="seedbox", success=False, started_at=now,
                            error="Could not retrieve list of torrents")

        notifier.notify_tick(result)

        [(title, body)] = notifier._apprise.sent
        assert title == "torrent-retention: seedbox failed"
        assert body == "Error: Could not retrieve list of torrents"
