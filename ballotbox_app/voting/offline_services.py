"""In-person voting: polling-station check-in and tally entry.

Check-in consumes a voter's voting right without recording a choice. Paper
ballots are later entered per candidate through ``manual_vote``, which never
lets the number of offline votes exceed the number of checked-in voters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import connection, transaction
from django.utils import timezone

from voting.exceptions import AlreadyVotedError, ForbiddenError, InflationGuardError, NotFoundError, VotingError
from voting.models import Candidate, OfflineVoteLog, Vote, Voter
from voting.signals import notify_ledger_changed_on_commit

logger = logging.getLogger(__name__)

# Transaction-scoped advisory lock serializing everything that moves the
# offline tally or the checked-in count downwards.
_TALLY_LOCK_KEY_1 = 507311942
_TALLY_LOCK_KEY_2 = 338190275


@dataclass(frozen=True)
class TallySummary:
    candidate_id: str
    count: int
    present: int
    tallied: int

    @property
    def remaining(self) -> int:
        return max(0, self.present - self.tallied)


def _serialize_tally_input() -> None:
    if not settings.OFFLINE_TALLY_SERIALIZE or connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute("SELECT pg_advisory_xact_lock(%s, %s)", [_TALLY_LOCK_KEY_1, _TALLY_LOCK_KEY_2])


def _lock_voter_by_nim(nim: str) -> Voter:
    value = str(nim or "").strip()
    if not value:
        raise VotingError("Roll number is required.")
    try:
        return Voter.objects.select_for_update().get(nim=value, deleted_at__isnull=True)
    except Voter.DoesNotExist as exc:
        raise NotFoundError("Voter not found.") from exc


def offline_counts() -> tuple[int, int]:
    """(checked-in voters, offline votes recorded). Soft-deleted voters still count as present."""
    present = Voter.objects.checked_in().count()
    tallied = Vote.objects.filter(source=Vote.Source.offline).count()
    return present, tallied


@transaction.atomic
def check_in(nim: str, operator_id: object) -> Voter:
    voter = _lock_voter_by_nim(nim)

    if voter.has_voted:
        if voter.vote_method == Voter.VoteMethod.online:
            raise AlreadyVotedError("Voter has already voted online.")
        raise AlreadyVotedError("Voter has already checked in at the polling station.")

    now = timezone.now()
    voter.has_voted = True
    voter.vote_method = Voter.VoteMethod.offline
    voter.access_type = Voter.AccessType.offline
    voter.voted_at = now
    voter.checked_in_at = now
    voter.checked_in_by = operator_id
    voter.save(
        update_fields=["has_voted", "vote_method", "access_type", "voted_at", "checked_in_at", "checked_in_by"]
    )

    notify_ledger_changed_on_commit(reason="voter_checked_in")
    return voter


@transaction.atomic
def un_check_in(nim: str) -> Voter:
    """Undo a check-in. The voter stays on the offline channel."""
    _serialize_tally_input()
    voter = _lock_voter_by_nim(nim)

    if voter.vote_method == Voter.VoteMethod.online:
        raise ForbiddenError("Cannot undo an online vote.")
    if voter.vote_method != Voter.VoteMethod.offline:
        raise VotingError("Voter is not checked in.")

    present, tallied = offline_counts()
    if tallied > present - 1:
        raise ForbiddenError(
            "Every checked-in ballot has already been tallied; removing this check-in would leave "
            f"{tallied} offline vote(s) for {present - 1} voter(s)."
        )

    voter.has_voted = False
    voter.vote_method = None
    voter.voted_at = None
    voter.checked_in_at = None
    voter.checked_in_by = None
    voter.save(update_fields=["has_voted", "vote_method", "voted_at", "checked_in_at", "checked_in_by"])

    notify_ledger_changed_on_commit(reason="voter_unchecked_in")
    return voter


def _validate_count(count: object) -> int:
    if isinstance(count, bool):
        raise ValueError("count must be a positive integer")
    try:
        value = int(count)
    except (TypeError, ValueError) as exc:
        raise ValueError("count must be a positive integer") from exc
    if isinstance(count, float) and not count.is_integer():
        raise ValueError("count must be a positive integer")
    if value < 1:
        raise ValueError("count must be a positive integer")
    if value > settings.OFFLINE_TALLY_MAX_BATCH:
        raise ValueError(f"count must not exceed {settings.OFFLINE_TALLY_MAX_BATCH}")
    return value


@transaction.atomic
def manual_vote(candidate_id: object, count: object, operator_id: object) -> TallySummary:
    """Record ``count`` paper ballots for a candidate, bounded by check-ins.

    Raises ``InflationGuardError`` when the offline tally would exceed the
    number of checked-in voters.
    """
    value = _validate_count(count)
    _serialize_tally_input()

    try:
        candidate = Candidate.objects.active().get(pk=candidate_id)
    except (Candidate.DoesNotExist, ValidationError, ValueError) as exc:
        raise NotFoundError("Candidate not found.") from exc

    present, tallied = offline_counts()
    if tallied + value > present:
        excess = tallied + value - present
        remaining = max(0, present - tallied)
        logger.warning(
            "Offline tally rejected present=%d tallied=%d attempted=%d",
            present,
            tallied,
            value,
            extra={"event": "ballotbox.tally.inflation_guard", "component": "offline", "outcome": "denied"},
        )
        raise InflationGuardError(
            f"Tally exceeds checked-in voters by {excess}: {present} present, {tallied} already tallied, "
            f"{remaining} remaining.",
            present=present,
            tallied=tallied,
            attempted=value,
        )

    OfflineVoteLog.objects.create(candidate=candidate, count=value, input_by=operator_id)
    Vote.objects.bulk_create([Vote(candidate=candidate, source=Vote.Source.offline) for _ in range(value)])

    notify_ledger_changed_on_commit(reason="offline_tally")
    logger.info(
        "Offline tally recorded count=%d",
        value,
        extra={"event": "ballotbox.tally.recorded", "component": "offline", "outcome": "success"},
    )
    return TallySummary(candidate_id=str(candidate.id), count=value, present=present, tallied=tallied + value)
