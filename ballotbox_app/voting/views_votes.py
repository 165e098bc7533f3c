"""Vote ledger endpoints: casting, status, tallies and polling-station operations."""

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from voting import offline_services, voting_services
from voting.action_log import log_action
from voting.exceptions import VotingError
from voting.permissions import Capability, capability_required
from voting.results_cache import results_cache
from voting.views_utils import bad_request, error_response, parse_json_body, principal_id


@require_GET
def candidates(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"candidates": voting_services.list_candidates()})


@csrf_exempt
@require_POST
@capability_required(Capability.CAST_VOTE)
def cast(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    candidate_id = str(data.get("candidateId") or "").strip()
    if not candidate_id:
        return bad_request("Candidate ID is required.")

    try:
        voting_services.cast_vote(principal_id(request), candidate_id)
    except VotingError as exc:
        return error_response(exc)

    return JsonResponse({"message": "Vote cast successfully."})


@require_GET
@capability_required(Capability.CAST_VOTE)
def status(request: HttpRequest) -> JsonResponse:
    try:
        return JsonResponse(voting_services.vote_status(principal_id(request)))
    except VotingError as exc:
        return error_response(exc)


@require_GET
def stats(request: HttpRequest) -> JsonResponse:
    return JsonResponse(results_cache.stats())


@require_GET
def results(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"results": results_cache.results()})


@require_GET
@capability_required(Capability.VIEW_ACTIVITY)
def activity(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"activity": results_cache.activity()})


@csrf_exempt
@require_http_methods(["DELETE"])
@capability_required(Capability.DELETE_VOTES)
def delete(request: HttpRequest, vote_id: str) -> JsonResponse:
    try:
        voting_services.delete_vote(vote_id)
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "DELETE_VOTE", target=str(vote_id))
    return JsonResponse({"message": "Vote deleted successfully."})


def _nim_from_body(request: HttpRequest) -> str:
    data = parse_json_body(request)
    return str(data.get("nim") or "").strip()


@csrf_exempt
@require_POST
@capability_required(Capability.CHECK_IN_VOTERS)
def checkin(request: HttpRequest) -> JsonResponse:
    try:
        nim = _nim_from_body(request)
    except ValueError as exc:
        return bad_request(str(exc))
    if not nim:
        return bad_request("Roll number is required.")

    try:
        voter = offline_services.check_in(nim, principal_id(request))
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "CHECK_IN", target=nim)
    return JsonResponse(
        {
            "message": f"{voter.name or voter.nim} checked in.",
            "voter": {
                "nim": voter.nim,
                "name": voter.name,
                "checkedInAt": voter.checked_in_at.isoformat() if voter.checked_in_at else None,
            },
        }
    )


@csrf_exempt
@require_POST
@capability_required(Capability.CHECK_IN_VOTERS)
def uncheckin(request: HttpRequest) -> JsonResponse:
    try:
        nim = _nim_from_body(request)
    except ValueError as exc:
        return bad_request(str(exc))
    if not nim:
        return bad_request("Roll number is required.")

    try:
        voter = offline_services.un_check_in(nim)
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "UNCHECK_IN", target=nim)
    return JsonResponse({"message": f"Check-in for {voter.name or voter.nim} has been undone."})


@csrf_exempt
@require_POST
@capability_required(Capability.ENTER_OFFLINE_TALLY)
def offline_tally(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    candidate_id = str(data.get("candidateId") or "").strip()
    if not candidate_id:
        return bad_request("Candidate ID is required.")

    try:
        summary = offline_services.manual_vote(candidate_id, data.get("count", 1), principal_id(request))
    except ValueError as exc:
        return bad_request(str(exc))
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "OFFLINE_TALLY", target=candidate_id, details=f"count={summary.count}")
    return JsonResponse(
        {
            "message": f"{summary.count} offline vote(s) tallied.",
            "present": summary.present,
            "tallied": summary.tallied,
            "remaining": summary.remaining,
        }
    )
