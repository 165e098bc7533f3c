from __future__ import annotations

import datetime
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone

from voting import offline_services, voting_services
from voting.models import Candidate, Vote, Voter
from voting.results_cache import (
    ACTIVITY_CACHE_KEY,
    ALL_CACHE_KEYS,
    ResultsCache,
    compute_recent_activity,
    compute_results,
    compute_stats,
)
from voting.signals import notify_ledger_changed_on_commit
from voting.tests.utils_test_data import make_candidate, make_voter


class ResultsCacheBehaviorTests(TestCase):
    def setUp(self) -> None:
        cache.clear()

    def test_reads_through_until_invalidated(self) -> None:
        loader = MagicMock(return_value={"votesCast": 1})
        service = ResultsCache(compute_stats=loader)

        self.assertEqual(service.stats(), {"votesCast": 1})
        self.assertEqual(service.stats(), {"votesCast": 1})
        loader.assert_called_once_with()

        service.invalidate()
        service.stats()

        self.assertEqual(loader.call_count, 2)

    def test_invalidate_evicts_all_keys(self) -> None:
        for key in ALL_CACHE_KEYS:
            cache.set(key, ["stale"])

        ResultsCache().invalidate()

        for key in ALL_CACHE_KEYS:
            self.assertIsNone(cache.get(key))

    def test_invalidate_never_raises(self) -> None:
        broken = MagicMock()
        broken.delete_many.side_effect = ConnectionError("redis down")

        with patch("voting.results_cache.cache", broken), self.assertLogs("voting.results_cache", level="ERROR"):
            ResultsCache().invalidate()

    def test_cache_read_failure_falls_back_to_query(self) -> None:
        broken = MagicMock()
        broken.get.side_effect = ConnectionError("redis down")
        broken.set.side_effect = ConnectionError("redis down")
        service = ResultsCache(compute_activity=MagicMock(return_value=[]))

        with patch("voting.results_cache.cache", broken), self.assertLogs("voting.results_cache", level="ERROR"):
            self.assertEqual(service.activity(), [])

    @override_settings(RESULTS_CACHE_TTL_SECONDS=30)
    def test_uses_configured_ttl(self) -> None:
        spy = MagicMock()
        spy.get.return_value = None

        with patch("voting.results_cache.cache", spy):
            ResultsCache(compute_activity=MagicMock(return_value=[])).activity()

        spy.set.assert_called_once_with(ACTIVITY_CACHE_KEY, [], timeout=30)

    def test_ledger_signal_evicts_after_commit_only(self) -> None:
        cache.set(ACTIVITY_CACHE_KEY, ["stale"])

        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            notify_ledger_changed_on_commit(reason="test")

        self.assertEqual(cache.get(ACTIVITY_CACHE_KEY), ["stale"])
        for callback in callbacks:
            callback()
        self.assertIsNone(cache.get(ACTIVITY_CACHE_KEY))


class AggregateQueryTests(TestCase):
    def setUp(self) -> None:
        self.operator = make_voter(role=Voter.Role.operator_tps)
        self.x = make_candidate(name="X", order_number=1)
        self.y = make_candidate(name="Y", order_number=2)

    def test_stats_with_no_voters(self) -> None:
        Voter.objects.all().delete()

        stats = compute_stats()

        self.assertEqual(stats["totalVoters"], 0)
        self.assertEqual(stats["turnout"], "0%")

    def test_stats_split_by_source(self) -> None:
        voters = [make_voter() for _ in range(4)]
        voting_services.cast_vote(voters[0].id, self.y.id)
        offline_services.check_in(voters[1].nim, self.operator.id)
        offline_services.manual_vote(self.x.id, 1, self.operator.id)

        stats = compute_stats()

        self.assertEqual(
            stats,
            {
                "totalVoters": 4,
                "votesCast": 2,
                "turnout": "50.00%",
                "onlineVotes": 1,
                "offlineVotes": 1,
                "checkedIn": 1,
            },
        )

    def test_results_per_candidate(self) -> None:
        voter = make_voter()
        voting_services.cast_vote(voter.id, self.y.id)
        make_candidate(name="Withdrawn", order_number=3, deleted_at=timezone.now())

        results = compute_results()

        self.assertEqual([r["name"] for r in results], ["X", "Y", "Withdrawn"])
        self.assertTrue(results[2]["deleted"])
        self.assertEqual(
            results[1],
            {
                "id": str(self.y.id),
                "name": "Y",
                "orderNumber": 2,
                "onlineVotes": 1,
                "offlineVotes": 0,
                "votes": 1,
                "deleted": False,
            },
        )

    def test_soft_deleted_candidate_keeps_its_votes_in_results(self) -> None:
        gone = make_candidate(name="Gone", order_number=3)
        voting_services.cast_vote(make_voter().id, self.x.id)
        voting_services.cast_vote(make_voter().id, gone.id)
        Candidate.objects.filter(pk=gone.pk).update(deleted_at=timezone.now())

        results = compute_results()

        self.assertEqual(sum(r["votes"] for r in results), compute_stats()["votesCast"])
        withdrawn = next(r for r in results if r["id"] == str(gone.id))
        self.assertEqual((withdrawn["votes"], withdrawn["deleted"]), (1, True))

    @override_settings(RESULTS_ACTIVITY_LIMIT=2)
    def test_recent_activity_is_newest_first_and_limited(self) -> None:
        for _ in range(3):
            Vote.objects.create(candidate=self.x, source=Vote.Source.offline)
        Vote.objects.update(timestamp=timezone.now() - datetime.timedelta(minutes=5))
        newest = Vote.objects.create(candidate=self.y, source=Vote.Source.online)

        activity = compute_recent_activity()

        self.assertEqual(len(activity), 2)
        self.assertEqual(activity[0]["id"], str(newest.id))
        self.assertEqual(activity[0]["candidateName"], "Y")
        self.assertEqual(activity[0]["source"], "online")
