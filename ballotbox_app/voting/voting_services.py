from __future__ import annotations

import datetime
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from voting.exceptions import AlreadyVotedError, ForbiddenError, NotFoundError
from voting.models import Candidate, Vote, Voter
from voting.signals import notify_ledger_changed_on_commit

logger = logging.getLogger(__name__)


def _get_active_candidate(candidate_id: object) -> Candidate:
    try:
        return Candidate.objects.active().get(pk=candidate_id)
    except (Candidate.DoesNotExist, ValidationError, ValueError) as exc:
        raise NotFoundError("Candidate not found.") from exc


@transaction.atomic
def cast_vote(voter_id: object, candidate_id: object) -> Vote:
    """Record one online vote for ``voter_id``.

    The voter row lock is the only gate against double voting: votes carry no
    voter reference, so there is no uniqueness constraint to fall back on.
    Concurrent calls for the same voter wait on the lock and then see
    ``has_voted``.
    """
    try:
        voter = Voter.objects.select_for_update().get(pk=voter_id, deleted_at__isnull=True)
    except (Voter.DoesNotExist, ValidationError, ValueError) as exc:
        raise NotFoundError("Voter not found.") from exc

    if voter.has_voted:
        raise AlreadyVotedError("User has already voted.")
    if voter.access_type == Voter.AccessType.offline:
        raise ForbiddenError("You are registered to vote in person at the polling station.")

    candidate = _get_active_candidate(candidate_id)

    vote = Vote.objects.create(candidate=candidate, source=Vote.Source.online)

    voter.has_voted = True
    voter.vote_method = Voter.VoteMethod.online
    voter.voted_at = timezone.now()
    voter.save(update_fields=["has_voted", "vote_method", "voted_at"])

    notify_ledger_changed_on_commit(reason="vote_cast")
    logger.info(
        "Vote cast",
        extra={"event": "ballotbox.vote.cast", "component": "voting", "outcome": "success", "source": "online"},
    )
    return vote


def vote_status(voter_id: object) -> dict[str, object]:
    try:
        voter = Voter.objects.active().only("has_voted", "vote_method", "access_type").get(pk=voter_id)
    except (Voter.DoesNotExist, ValidationError, ValueError) as exc:
        raise NotFoundError("Voter not found.") from exc
    return {
        "hasVoted": voter.has_voted,
        "voteMethod": voter.vote_method,
        "accessType": voter.access_type,
    }


@transaction.atomic
def delete_vote(vote_id: object) -> None:
    """Delete a vote recorded within the last ``VOTE_DELETE_GRACE_SECONDS``.

    Votes are not linked to voters, so no voter's ``has_voted`` flag changes.
    """
    try:
        vote = Vote.objects.select_for_update().get(pk=vote_id)
    except (Vote.DoesNotExist, ValidationError, ValueError) as exc:
        raise NotFoundError("Vote not found.") from exc

    grace = datetime.timedelta(seconds=settings.VOTE_DELETE_GRACE_SECONDS)
    if vote.timestamp <= timezone.now() - grace:
        raise ForbiddenError(
            f"Cannot delete a vote older than {settings.VOTE_DELETE_GRACE_SECONDS} seconds."
        )

    vote.delete()
    notify_ledger_changed_on_commit(reason="vote_deleted")


def list_candidates() -> list[dict[str, object]]:
    return [
        {
            "id": str(candidate.id),
            "orderNumber": candidate.order_number,
            "name": candidate.name,
            "vision": candidate.vision,
            "mission": candidate.mission,
            "photoUrl": candidate.photo_url,
        }
        for candidate in Candidate.objects.active().order_by("order_number")
    ]
