from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.core import signing

SESSION_TOKEN_PURPOSE = "ballotbox.session"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as supplied by the session layer."""

    id: str
    nim: str
    role: str


def make_signed_token(payload: dict[str, Any], *, purpose: str) -> str:
    return signing.dumps(payload, salt=f"{settings.SECRET_KEY}:{purpose}")


def read_signed_token(token: str, *, purpose: str, max_age: int) -> dict[str, Any]:
    """Raises signing.BadSignature (or SignatureExpired) on invalid tokens."""
    data = signing.loads(token, salt=f"{settings.SECRET_KEY}:{purpose}", max_age=max_age)
    if not isinstance(data, dict):
        raise signing.BadSignature("token payload is not an object")
    return data


def make_session_token(*, voter_id: str, nim: str, role: str) -> str:
    return make_signed_token(
        {"id": str(voter_id), "nim": str(nim), "role": str(role)},
        purpose=SESSION_TOKEN_PURPOSE,
    )


def read_session_token(token: str) -> Principal:
    data = read_signed_token(
        token,
        purpose=SESSION_TOKEN_PURPOSE,
        max_age=settings.VOTER_SESSION_MAX_AGE_SECONDS,
    )
    try:
        return Principal(id=str(data["id"]), nim=str(data["nim"]), role=str(data["role"]))
    except KeyError as exc:
        raise signing.BadSignature("token payload is incomplete") from exc
