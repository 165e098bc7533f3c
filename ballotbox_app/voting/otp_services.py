from __future__ import annotations

import datetime
import logging
import secrets
from dataclasses import dataclass

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from voting.delivery_queue import enqueue_otp_email
from voting.exceptions import (
    AlreadyVotedError,
    ForbiddenError,
    InvalidOrExpiredError,
    NotFoundError,
    RateLimitedError,
    VotingError,
)
from voting.models import OtpCode, Voter
from voting.rate_limit import check_rate_limit, emit_rate_limit_denial_log, reset_rate_limit
from voting.tokens import make_session_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtpIssue:
    email: str
    code: str
    expires_at: datetime.datetime


@dataclass(frozen=True)
class VoterSession:
    token: str
    voter: Voter


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def otp_limit_key(email: str) -> str:
    return f"otp_limit:{normalize_email(email)}"


def otp_cooldown_key(email: str) -> str:
    return f"otp_cooldown:{normalize_email(email)}"


def generate_otp_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _check_eligible(voter: Voter) -> None:
    if voter.has_voted:
        raise AlreadyVotedError("You have already used your vote.")
    if voter.access_type == Voter.AccessType.offline:
        raise ForbiddenError("You are registered to vote in person at the polling station.")


def _enforce_otp_limits(email: str) -> None:
    # Strict quota first; a cooldown denial only consumes its own counter.
    quota = check_rate_limit(
        otp_limit_key(email),
        settings.OTP_RATE_LIMIT_LIMIT,
        settings.OTP_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not quota.allowed:
        emit_rate_limit_denial_log(
            scope="otp_limit",
            subject=email,
            limit=settings.OTP_RATE_LIMIT_LIMIT,
            window_seconds=settings.OTP_RATE_LIMIT_WINDOW_SECONDS,
            ttl=quota.ttl,
        )
        minutes = max(1, -(-quota.ttl // 60))
        raise RateLimitedError(
            f"OTP request limit reached. Try again in {minutes} minute(s) or contact the help desk.",
            retry_after=quota.ttl,
        )

    cooldown = check_rate_limit(
        otp_cooldown_key(email),
        settings.OTP_COOLDOWN_LIMIT,
        settings.OTP_COOLDOWN_WINDOW_SECONDS,
    )
    if not cooldown.allowed:
        emit_rate_limit_denial_log(
            scope="otp_cooldown",
            subject=email,
            limit=settings.OTP_COOLDOWN_LIMIT,
            window_seconds=settings.OTP_COOLDOWN_WINDOW_SECONDS,
            ttl=cooldown.ttl,
        )
        raise RateLimitedError(
            f"Please wait {cooldown.ttl} seconds before requesting another code.",
            retry_after=cooldown.ttl,
        )


def _enqueue_delivery(*, email: str, code: str, name: str, ttl_seconds: int) -> None:
    try:
        enqueue_otp_email(email, code, name, expires_in_minutes=max(1, ttl_seconds // 60))
    except Exception:
        # The code is already stored; the voter can request another one.
        logger.exception(
            "Failed to enqueue OTP delivery",
            extra={"event": "ballotbox.otp.enqueue_failed", "component": "auth", "outcome": "error"},
        )


def _issue_code(voter: Voter, *, email: str, ttl_seconds: int) -> OtpIssue:
    code = generate_otp_code()
    expires_at = timezone.now() + datetime.timedelta(seconds=ttl_seconds)

    with transaction.atomic():
        # Earlier outstanding codes stay valid until one of them is consumed.
        OtpCode.objects.create(email=email, code=code, expires_at=expires_at)
        name = voter.name
        transaction.on_commit(
            lambda: _enqueue_delivery(email=email, code=code, name=name, ttl_seconds=ttl_seconds)
        )

    return OtpIssue(email=email, code=code, expires_at=expires_at)


def request_otp(email: str) -> OtpIssue:
    """Self-service OTP issuance, rate limited per email."""
    normalized = normalize_email(email)
    voter = Voter.objects.active().filter(email=normalized).first()
    if voter is None:
        raise NotFoundError("Email is not registered on the voter roll.")
    _check_eligible(voter)
    _enforce_otp_limits(normalized)

    issue = _issue_code(voter, email=normalized, ttl_seconds=settings.OTP_TTL_SECONDS)
    logger.info(
        "OTP issued",
        extra={"event": "ballotbox.otp.issued", "component": "auth", "outcome": "issued", "channel": "self_service"},
    )
    return issue


def issue_manual_otp(identifier: str) -> OtpIssue:
    """Operator-issued OTP for help-desk use: no rate limit, longer TTL.

    ``identifier`` is a roll number or an email address.
    """
    value = str(identifier or "").strip()
    if not value:
        raise VotingError("Roll number or email is required.")

    voter = Voter.objects.active().filter(Q(nim=value) | Q(email=value.lower())).first()
    if voter is None:
        raise NotFoundError("Voter not found.")
    _check_eligible(voter)
    if not voter.email:
        raise VotingError("This voter has no email address on file.")

    issue = _issue_code(voter, email=voter.email, ttl_seconds=settings.OTP_MANUAL_TTL_SECONDS)
    logger.info(
        "OTP issued",
        extra={"event": "ballotbox.otp.issued", "component": "auth", "outcome": "issued", "channel": "manual"},
    )
    return issue


def verify_otp(email: str, code: str) -> VoterSession:
    """Exchange a valid code for a session token. Consumes every code for the email."""
    normalized = normalize_email(email)
    now = timezone.now()

    with transaction.atomic():
        match = (
            OtpCode.objects.select_for_update()
            .filter(email=normalized, code=str(code or "").strip(), expires_at__gt=now)
            .first()
        )
        if match is None:
            raise InvalidOrExpiredError("The code is invalid or has expired.")
        OtpCode.objects.filter(email=normalized).delete()
        voter = Voter.objects.active().filter(email=normalized).first()

    if voter is None:
        raise NotFoundError("Voter not found.")
    if voter.access_type == Voter.AccessType.offline:
        raise ForbiddenError("You are registered to vote in person at the polling station.")

    token = make_session_token(voter_id=str(voter.id), nim=voter.nim, role=voter.role)
    logger.info(
        "OTP verified",
        extra={"event": "ballotbox.otp.verified", "component": "auth", "outcome": "success"},
    )
    return VoterSession(token=token, voter=voter)


def reset_otp_limit(email: str) -> None:
    normalized = normalize_email(email)
    reset_rate_limit(otp_limit_key(normalized))
    reset_rate_limit(otp_cooldown_key(normalized))
