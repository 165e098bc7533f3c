"""Voting exception classes.

Services raise these; views translate them into JSON responses carrying
``message`` (and ``detail`` where present) with ``status_code``.
"""

from __future__ import annotations


class VotingError(Exception):
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(VotingError):
    """Unknown (or soft-deleted) voter, candidate or vote."""

    status_code = 404


class AlreadyVotedError(VotingError):
    """The voter's single voting right has already been consumed."""


class RateLimitedError(VotingError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InvalidOrExpiredError(VotingError):
    """No outstanding OTP matches the submitted code."""


class InflationGuardError(VotingError):
    """Offline tally would exceed the number of checked-in voters."""

    def __init__(self, message: str, *, present: int, tallied: int, attempted: int) -> None:
        super().__init__(message)
        self.present = present
        self.tallied = tallied
        self.attempted = attempted

    @property
    def excess(self) -> int:
        return self.tallied + self.attempted - self.present

    @property
    def remaining(self) -> int:
        return max(0, self.present - self.tallied)

    @property
    def detail(self) -> dict[str, int]:
        return {
            "present": self.present,
            "tallied": self.tallied,
            "attempted": self.attempted,
            "excess": self.excess,
            "remaining": self.remaining,
        }


class ForbiddenError(VotingError):
    """Role or channel mismatch, or an action outside its allowed window."""

    status_code = 403


class TransientInfraError(VotingError):
    """Database, cache or queue backend unavailable."""

    status_code = 503


class DeliveryFailedError(RuntimeError):
    """Raised by delivery job handlers when the mail transport reports failure."""


__all__ = [
    "VotingError",
    "NotFoundError",
    "AlreadyVotedError",
    "RateLimitedError",
    "InvalidOrExpiredError",
    "InflationGuardError",
    "ForbiddenError",
    "TransientInfraError",
    "DeliveryFailedError",
]
