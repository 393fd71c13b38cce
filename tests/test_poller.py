"""Tests for the per-instance poller."""

import threading
import time
from datetime import timedelta

from conftest import FakeRepository

from torrent_retention.api.app_state import AppState
from torrent_retention.config import Instance
from torrent_retention.constants import PollerState
from torrent_retention.poller import InstancePoller
from torrent_retention.rules import delete_policy, matching, on_trackers, transmission


def make_instance(name="seedbox", poll_interval=timedelta(minutes=5)):
    return Instance(
        connection=transmission(f"http://{name}:9091/transmission/rpc"),
        policies=(
            delete_policy("data", on_trackers(["a.example"]), matching().max_ratio(1.0)),
            delete_policy("meta", on_trackers(["b.example"]), matching().max_ratio(1.0),
                          delete_data=False),
        ),
        poll_interval=poll_interval,
        name=name,
    )


def matching_torrents(make_torrent):
    return [
        make_torrent(id="t1", trackers=("http://a.example/announce",), total_size=100),
        make_torrent(id="t2", trackers=("http://b.example/announce",), total_size=200),
        make_torrent(id="t3", trackers=("http://a.example/announce",), upload_ratio=0.1),
    ]


def failures(metrics, instance="seedbox"):
    return metrics.registry.get_sample_value("instance_tick_failures_total", {"instance": instance})


class RecordingNotifier:
    def __init__(self):
        self.results = []

    def notify_tick(self, result):
        self.results.append(result)
        return 0


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestTick:
    def test_dry_run_never_removes(self, make_torrent, metrics, now):
        repository = FakeRepository(matching_torrents(make_torrent))
        poller = InstancePoller(make_instance(), repository, metrics, take_action=False)

        result = poller.tick(now)

        assert result.success
        assert result.dry_run
        assert result.torrent_count == 3
        assert result.evaluation.delete_with_data == {"t1"}
        assert result.evaluation.delete_without_data == {"t2"}
        assert result.removed == []
        assert repository.removals == []
        assert poller.state == PollerState.IDLE

    def test_take_action_removes_with_data_first(self, make_torrent, metrics, now):
        repository = FakeRepository(matching_torrents(make_torrent))
        poller = InstancePoller(make_instance(), repository, metrics, take_action=True)

        result = poller.tick(now)

        assert result.success
        assert not result.dry_run
        assert repository.removals == [({"t1"}, True), ({"t2"}, False)]
        assert result.removed == ["t1", "t2"]

    def test_nothing_matched_makes_no_remove_calls(self, make_torrent, metrics, now):
        repository = FakeRepository([make_torrent(trackers=("http://a.example/x",), upload_ratio=0.1)])
        poller = InstancePoller(make_instance(), repository, metrics, take_action=True)

        assert poller.tick(now).success
        assert repository.removals == []

    def test_fetch_failure_is_counted(self, metrics, now):
        repository = FakeRepository(fail_list=True)
        poller = InstancePoller(make_instance(), repository, metrics, take_action=True)

        result = poller.tick(now)

        assert not result.success
        assert result.error == "Could not retrieve list of torrents"
        assert result.evaluation is None
        assert failures(metrics) == 1
        assert repository.removals == []

    def test_unexpected_exception_is_contained(self, metrics, now):
        repository = FakeRepository(list_error=RuntimeError("boom"))
        poller = InstancePoller(make_instance(), repository, metrics)

        result = poller.tick(now)

        assert not result.success
        assert "boom" in result.error
        assert failures(metrics) == 1
        assert poller.state == PollerState.IDLE

    def test_failed_removal_skips_the_rest(self, make_torrent, metrics, now):
        repository = FakeRepository(matching_torrents(make_torrent), fail_remove_with_data=True)
        poller = InstancePoller(make_instance(), repository, metrics, take_action=True)

        result = poller.tick(now)

        assert not result.success
        assert repository.removals == [({"t1"}, True)]
        assert result.removed == []
        assert failures(metrics) == 1

    def test_failed_second_removal_keeps_first(self, make_torrent, metrics, now):
        repository = FakeRepository(matching_torrents(make_torrent), fail_remove_without_data=True)
        poller = InstancePoller(make_instance(), repository, metrics, take_action=True)

        result = poller.tick(now)

        assert not result.success
        assert result.removed == ["t1"]
        assert len(repository.removals) == 2

    def test_failures_start_at_zero(self, metrics):
        InstancePoller(make_instance(), FakeRepository(), metrics)
        assert failures(metrics) == 0

    def test_evaluation_is_exported(self, make_torrent, metrics, now):
        poller = InstancePoller(make_instance(), FakeRepository(matching_torrents(make_torrent)), metrics)

        poller.tick(now)

        labels = {"instance": "seedbox", "policy": "data"}
        sample = metrics.registry.get_sample_value
        assert sample("policy_torrent_count", labels) == 2
        assert sample("policy_torrent_size_bytes", labels) == 100 + 30000
        assert sample("torrent_sizes_bytes_count", labels) == 2
        assert sample("torrent_deletions_total", labels) == 1
        assert sample("instance_tick_duration_seconds_count", {"instance": "seedbox"}) == 1

    def test_gauges_reset_when_policy_sees_nothing(self, make_torrent, metrics, now):
        repository = FakeRepository(matching_torrents(make_torrent))
        poller = InstancePoller(make_instance(), repository, metrics)
        poller.tick(now)

        repository.torrents = []
        poller.tick(now)

        labels = {"instance": "seedbox", "policy": "data"}
        assert metrics.registry.get_sample_value("policy_torrent_count", labels) == 0
        assert metrics.registry.get_sample_value("torrent_deletions_total", labels) == 1

    def test_reports_to_app_state_and_notifier(self, make_torrent, metrics, now):
        app_state = AppState(take_action=False)
        notifier = RecordingNotifier()
        poller = InstancePoller(make_instance(), FakeRepository(matching_torrents(make_torrent)),
                                metrics, notifier=notifier, app_state=app_state)

        poller.tick(now)

        [status] = app_state.get_status()
        assert status["instance"] == "seedbox"
        assert status["ticks"] == 1
        assert status["last_tick_success"] is True
        assert status["last_torrent_count"] == 3
        assert status["last_matched_count"] == 2
        assert status["running"] is False
        assert [r.instance for r in notifier.results] == ["seedbox"]


class TestRunForever:
    def test_stop_ends_the_loop(self, metrics):
        repository = FakeRepository()
        poller = InstancePoller(make_instance(), repository, metrics)
        thread = threading.Thread(target=poller.run_forever, daemon=True)
        thread.start()

        assert wait_until(lambda: repository.list_calls >= 1)
        poller.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        # The five minute interval was cut short by stop()
        assert repository.list_calls == 1

    def test_stopped_poller_does_not_tick(self, metrics):
        repository = FakeRepository()
        poller = InstancePoller(make_instance(), repository, metrics)
        poller.stop()

        poller.run_forever()

        assert repository.list_calls == 0

    def test_failing_instance_does_not_affect_others(self, make_torrent, metrics):
        interval = timedelta(milliseconds=10)
        broken = InstancePoller(make_instance("broken", interval), FakeRepository(fail_list=True), metrics)
        healthy_repository = FakeRepository(matching_torrents(make_torrent))
        healthy = InstancePoller(make_instance("healthy", interval), healthy_repository, metrics)

        threads = [threading.Thread(target=p.run_forever, daemon=True) for p in (broken, healthy)]
        for thread in threads:
            thread.start()

        assert wait_until(lambda: broken.ticks >= 3 and healthy.ticks >= 3)
        broken.stop()
        healthy.stop()
        for thread in threads:
            thread.join(timeout=5)

        assert failures(metrics, "broken") == broken.ticks
        assert failures(metrics, "healthy") == 0
        assert healthy_repository.list_calls == healthy.ticks
