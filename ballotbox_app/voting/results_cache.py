"""Short-TTL read-through cache over the aggregate tally queries.

Writers evict all keys after commit through ``vote_ledger_changed``; the TTL
bounds staleness if an eviction is lost.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count, Q

from voting.models import Candidate, Vote, Voter

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = "voting_stats"
RESULTS_CACHE_KEY = "voting_results"
ACTIVITY_CACHE_KEY = "voting_recent_activity"

ALL_CACHE_KEYS: tuple[str, ...] = (STATS_CACHE_KEY, RESULTS_CACHE_KEY, ACTIVITY_CACHE_KEY)


def compute_stats() -> dict[str, Any]:
    total_voters = Voter.objects.active().filter(role=Voter.Role.voter).count()
    vote_counts = Vote.objects.aggregate(
        total=Count("id"),
        online=Count("id", filter=Q(source=Vote.Source.online)),
        offline=Count("id", filter=Q(source=Vote.Source.offline)),
    )
    votes_cast = int(vote_counts["total"] or 0)
    turnout = f"{(votes_cast / total_voters) * 100:.2f}%" if total_voters > 0 else "0%"

    return {
        "totalVoters": total_voters,
        "votesCast": votes_cast,
        "turnout": turnout,
        "onlineVotes": int(vote_counts["online"] or 0),
        "offlineVotes": int(vote_counts["offline"] or 0),
        "checkedIn": Voter.objects.checked_in().count(),
    }


def compute_results() -> list[dict[str, Any]]:
    counts: dict[tuple[str, str], int] = {}
    for row in Vote.objects.values("candidate_id", "source").annotate(n=Count("id")):
        counts[(str(row["candidate_id"]), str(row["source"]))] = int(row["n"])

    # Withdrawn candidates stay listed so historical tallies add up to votesCast.
    results: list[dict[str, Any]] = []
    for candidate in Candidate.objects.only("id", "name", "order_number", "deleted_at"):
        online = counts.get((str(candidate.id), Vote.Source.online), 0)
        offline = counts.get((str(candidate.id), Vote.Source.offline), 0)
        results.append(
            {
                "id": str(candidate.id),
                "name": candidate.name,
                "orderNumber": candidate.order_number,
                "onlineVotes": online,
                "offlineVotes": offline,
                "votes": online + offline,
                "deleted": candidate.deleted_at is not None,
            }
        )
    return results


def compute_recent_activity() -> list[dict[str, Any]]:
    recent = Vote.objects.select_related("candidate").order_by("-timestamp", "-id")[: settings.RESULTS_ACTIVITY_LIMIT]
    return [
        {
            "id": str(vote.id),
            "timestamp": vote.timestamp.isoformat(),
            "candidateId": str(vote.candidate_id),
            "candidateName": vote.candidate.name,
            "source": vote.source,
        }
        for vote in recent
    ]


class ResultsCache:
    def __init__(
        self,
        *,
        compute_stats: Callable[[], dict[str, Any]] = compute_stats,
        compute_results: Callable[[], list[dict[str, Any]]] = compute_results,
        compute_activity: Callable[[], list[dict[str, Any]]] = compute_recent_activity,
    ) -> None:
        self._loaders: dict[str, Callable[[], Any]] = {
            STATS_CACHE_KEY: compute_stats,
            RESULTS_CACHE_KEY: compute_results,
            ACTIVITY_CACHE_KEY: compute_activity,
        }

    def _read_through(self, key: str) -> Any:
        try:
            cached = cache.get(key)
        except Exception:
            logger.exception("Results cache read failed key=%s", key)
            cached = None
        if cached is not None:
            return cached

        value = self._loaders[key]()
        try:
            cache.set(key, value, timeout=settings.RESULTS_CACHE_TTL_SECONDS)
        except Exception:
            logger.exception("Results cache write failed key=%s", key)
        return value

    def stats(self) -> dict[str, Any]:
        return self._read_through(STATS_CACHE_KEY)

    def results(self) -> list[dict[str, Any]]:
        return self._read_through(RESULTS_CACHE_KEY)

    def activity(self) -> list[dict[str, Any]]:
        return self._read_through(ACTIVITY_CACHE_KEY)

    def invalidate(self) -> None:
        """Best-effort eviction; a failure here is healed by TTL expiry."""
        try:
            cache.delete_many(list(ALL_CACHE_KEYS))
        except Exception:
            logger.exception(
                "Results cache eviction failed",
                extra={
                    "event": "ballotbox.results_cache.evict_failed",
                    "component": "results_cache",
                    "outcome": "error",
                },
            )

    def on_ledger_changed(self, sender, *, reason: str = "", **kwargs) -> None:
        logger.debug("Evicting results cache reason=%s", reason)
        self.invalidate()


results_cache = ResultsCache()
