"""Shared fixtures for torrent retention tests."""

from datetime import datetime, timedelta, timezone

import pytest

from torrent_retention.constants import TorrentStatus
from torrent_retention.metrics import Metrics
from torrent_retention.models import TorrentSnapshot

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeRepository:
    """In-memory torrent repository recording every call."""

    def __init__(self, torrents=(), fail_list=False, list_error=None,
                 fail_remove_with_data=False, fail_remove_without_data=False):
        self.torrents = list(torrents)
        self.fail_list = fail_list
        self.list_error = list_error
        self.fail_remove = {True: fail_remove_with_data, False: fail_remove_without_data}
        self.list_calls = 0
        self.removals = []

    def list_torrents(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        if self.fail_list:
            return None
        return list(self.torrents)

    def remove(self, ids, delete_data):
        self.removals.append((set(ids), delete_data))
        return not self.fail_remove[delete_data]


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_torrent():
    """Factory for seeding torrents on ``tracker``, finished 12 days before NOW."""
    def factory(**overrides):
        fields = dict(
            id="abcd",
            name="testcase",
            status=TorrentStatus.SEEDING,
            done_date=NOW - timedelta(days=12),
            upload_ratio=2.0,
            num_files=1,
            total_size=30000,
            trackers=("https://tracker:8080/announce",),
        )
        fields.update(overrides)
        return TorrentSnapshot(**fields)
    return factory


@pytest.fixture
def metrics():
    return Metrics()
