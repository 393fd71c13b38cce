"""Tests for resolving torrents against a policy set."""

from datetime import timedelta

from torrent_retention.classifier import DeletionPolicySet
from torrent_retention.constants import TorrentStatus
from torrent_retention.rules import delete_policy, matching, on_trackers


def policies():
    return [
        delete_policy("movies", on_trackers(["a.example"]), matching().max_ratio(1.0)),
        delete_policy(None, on_trackers(["b.example"]),
                      matching().max_seeding_time("1 day"), delete_data=False),
    ]


class TestDeletionPolicySet:
    def test_labels_follow_configuration_order(self):
        policy_set = DeletionPolicySet(policies())
        assert policy_set.labels == ("movies", "1")
        assert len(policy_set) == 2

    def test_tallies_and_routing(self, make_torrent, now):
        torrents = [
            make_torrent(id="t1", trackers=("http://a.example/announce",),
                         upload_ratio=2.0, total_size=100),
            make_torrent(id="t2", trackers=("http://a.example/announce",),
                         upload_ratio=0.5, total_size=200),
            make_torrent(id="t3", trackers=("http://b.example/announce",),
                         upload_ratio=0.0, total_size=400),
            make_torrent(id="t4", trackers=("http://c.example/announce",),
                         upload_ratio=9.0, total_size=800),
            make_torrent(id="t5", trackers=("http://a.example/announce",),
                         status=TorrentStatus.DOWNLOADING, total_size=1600),
        ]

        evaluation = DeletionPolicySet(policies()).evaluate(torrents, now)

        movies = evaluation.tallies["movies"]
        assert (movies.count, movies.total_size, movies.matched) == (2, 300, 1)
        assert sorted(movies.sizes) == [100, 200]

        unnamed = evaluation.tallies["1"]
        assert (unnamed.count, unnamed.total_size, unnamed.matched) == (1, 400, 1)

        assert evaluation.delete_with_data == {"t1"}
        assert evaluation.delete_without_data == {"t3"}
        assert [(m.torrent.id, m.policy) for m in evaluation.matches] == [("t1", "movies"), ("t3", "1")]

    def test_policy_without_governed_torrents_has_empty_tally(self, make_torrent, now):
        evaluation = DeletionPolicySet(policies()).evaluate([make_torrent()], now)
        assert evaluation.tallies["movies"].count == 0
        assert evaluation.tallies["1"].count == 0
        assert evaluation.matches == []
        assert evaluation.total_deletions == 0

    def test_torrent_matched_by_several_policies(self, make_torrent, now):
        policy_set = DeletionPolicySet([
            delete_policy("by-ratio", on_trackers(["tracker"]), matching().max_ratio(1.0)),
            delete_policy("by-age", on_trackers(["tracker"]), matching().max_seeding_time("2 days")),
        ])

        evaluation = policy_set.evaluate([make_torrent(id="dup")], now)

        assert len(evaluation.matches) == 2
        assert evaluation.delete_with_data == {"dup"}
        assert evaluation.total_deletions == 1

    def test_torrent_routed_both_ways(self, make_torrent, now):
        policy_set = DeletionPolicySet([
            delete_policy("data", on_trackers(["tracker"]), matching().max_ratio(1.0)),
            delete_policy("meta", on_trackers(["tracker"]), matching().max_ratio(1.0),
                          delete_data=False),
        ])

        evaluation = policy_set.evaluate([make_torrent(id="both")], now)

        assert evaluation.delete_with_data == {"both"}
        assert evaluation.delete_without_data == {"both"}
        assert evaluation.total_deletions == 1

    def test_min_seeding_time_protects_young_torrents(self, make_torrent, now):
        policy_set = DeletionPolicySet([
            delete_policy("p", on_trackers(["tracker"]),
                          matching().max_ratio(1.0).min_seeding_time("1 hr")),
        ])
        young = make_torrent(id="young", done_date=now - timedelta(minutes=5), upload_ratio=50.0)

        evaluation = policy_set.evaluate([young], now)

        assert evaluation.tallies["p"].count == 1
        assert evaluation.tallies["p"].matched == 0
        assert evaluation.total_deletions == 0

    def test_deletion_stats(self, make_torrent, now):
        evaluation = DeletionPolicySet(policies()).evaluate(
            [make_torrent(id="t1", trackers=("http://a.example/x",), total_size=10)], now
        )
        stats = evaluation.get_deletion_stats()
        assert stats["matched"] == 1
        assert stats["with_data"] == 1
        assert stats["without_data"] == 0
        assert stats["policies"]["movies"] == {"count": 1, "size": 10, "matched": 1}
