from collections.abc import Callable, Collection
from enum import StrEnum
from functools import wraps
from typing import ParamSpec, TypeVar

from django.http import HttpRequest, HttpResponse, JsonResponse

from voting.models import Voter


class Capability(StrEnum):
    CAST_VOTE = "cast_vote"
    CHECK_IN_VOTERS = "check_in_voters"
    ENTER_OFFLINE_TALLY = "enter_offline_tally"
    VIEW_ACTIVITY = "view_activity"
    DELETE_VOTES = "delete_votes"
    ISSUE_MANUAL_OTP = "issue_manual_otp"
    RESET_OTP_LIMIT = "reset_otp_limit"
    SEND_BROADCAST = "send_broadcast"


_OPERATOR_BASE: frozenset[Capability] = frozenset({Capability.VIEW_ACTIVITY})

ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    Voter.Role.voter: frozenset({Capability.CAST_VOTE}),
    Voter.Role.operator_tps: _OPERATOR_BASE
    | {
        Capability.CHECK_IN_VOTERS,
        Capability.ISSUE_MANUAL_OTP,
        Capability.RESET_OTP_LIMIT,
    },
    Voter.Role.operator_suara: _OPERATOR_BASE | {Capability.ENTER_OFFLINE_TALLY},
    Voter.Role.operator_chat: _OPERATOR_BASE | {Capability.RESET_OTP_LIMIT},
    Voter.Role.panitia: _OPERATOR_BASE
    | {
        Capability.CHECK_IN_VOTERS,
        Capability.ENTER_OFFLINE_TALLY,
        Capability.ISSUE_MANUAL_OTP,
        Capability.RESET_OTP_LIMIT,
        Capability.SEND_BROADCAST,
    },
    Voter.Role.super_admin: _OPERATOR_BASE
    | {
        Capability.CHECK_IN_VOTERS,
        Capability.ENTER_OFFLINE_TALLY,
        Capability.ISSUE_MANUAL_OTP,
        Capability.RESET_OTP_LIMIT,
        Capability.SEND_BROADCAST,
        Capability.DELETE_VOTES,
    },
}


def capabilities_for_role(role: str) -> frozenset[Capability]:
    return ROLE_CAPABILITIES.get(str(role or ""), frozenset())


def has_capability(principal: object, capability: Capability) -> bool:
    role = getattr(principal, "role", None)
    if not role:
        return False
    return capability in capabilities_for_role(role)


P = ParamSpec("P")
R = TypeVar("R", bound=HttpResponse)


def capability_required(capability: Capability) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints that require a single capability.

    Returns 401 when no session credential was presented and 403 when the
    caller's role lacks the capability.
    """
    return capability_required_any({capability})


def capability_required_any(capabilities: Collection[Capability]) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    caps = tuple(capabilities)
    if not caps:
        raise ValueError("capabilities must not be empty")

    def decorator(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
        @wraps(view_func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
            request = args[0] if args else None
            if not isinstance(request, HttpRequest):
                return JsonResponse({"message": "Permission denied."}, status=403)

            principal = getattr(request, "principal", None)
            if principal is None:
                return JsonResponse({"message": "Authentication required."}, status=401)

            if not any(has_capability(principal, cap) for cap in caps):
                return JsonResponse({"message": "Permission denied."}, status=403)

            return view_func(*args, **kwargs)

        wrapper.required_capabilities = frozenset(caps)  # type: ignore[attr-defined]
        return wrapper

    return decorator
