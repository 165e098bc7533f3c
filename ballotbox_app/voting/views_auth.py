import re

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from voting import otp_services
from voting.action_log import log_action
from voting.exceptions import VotingError
from voting.permissions import Capability, capability_required
from voting.views_utils import bad_request, error_response, parse_json_body

_OTP_RE = re.compile(r"^\d{6}$")


def _validated_email(data: dict[str, object]) -> tuple[str, list[str]]:
    email = str(data.get("email") or "").strip()
    try:
        validate_email(email)
    except ValidationError:
        return email, ["Invalid email format"]
    return email, []


@csrf_exempt
@require_POST
def otp_request(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    email, errors = _validated_email(data)
    if errors:
        return bad_request("Validation failed", errors=errors)

    try:
        issue = otp_services.request_otp(email)
    except VotingError as exc:
        return error_response(exc)

    return JsonResponse(
        {
            "message": "A sign-in code has been sent to your email.",
            "expiresAt": issue.expires_at.isoformat(),
        }
    )


@csrf_exempt
@require_POST
def otp_verify(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    email, errors = _validated_email(data)
    otp = str(data.get("otp") or "").strip()
    if not _OTP_RE.match(otp):
        errors.append("OTP must be 6 digits")
    if errors:
        return bad_request("Validation failed", errors=errors)

    try:
        session = otp_services.verify_otp(email, otp)
    except VotingError as exc:
        return error_response(exc)

    voter = session.voter
    return JsonResponse(
        {
            "token": session.token,
            "user": {
                "id": str(voter.id),
                "nim": voter.nim,
                "role": voter.role,
                "hasVoted": voter.has_voted,
            },
        }
    )


@csrf_exempt
@require_POST
@capability_required(Capability.ISSUE_MANUAL_OTP)
def otp_manual(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    identifier = str(data.get("identifier") or data.get("nim") or data.get("email") or "").strip()
    try:
        issue = otp_services.issue_manual_otp(identifier)
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "ISSUE_MANUAL_OTP", target=identifier)
    return JsonResponse(
        {
            "message": "OTP issued.",
            "otp": issue.code,
            "email": issue.email,
            "expiresAt": issue.expires_at.isoformat(),
        }
    )


@csrf_exempt
@require_POST
@capability_required(Capability.RESET_OTP_LIMIT)
def reset_otp_limit(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    email, errors = _validated_email(data)
    if errors:
        return bad_request("Validation failed", errors=errors)

    try:
        otp_services.reset_otp_limit(email)
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "RESET_OTP_LIMIT", target=email)
    return JsonResponse({"message": f"OTP limit for {email} has been reset. The voter can request a new code."})
