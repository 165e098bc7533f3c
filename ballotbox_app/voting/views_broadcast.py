from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from voting import broadcast_services
from voting.action_log import log_action
from voting.exceptions import VotingError
from voting.permissions import Capability, capability_required
from voting.views_utils import bad_request, error_response, parse_json_body


def _text(data: dict[str, object], key: str) -> str:
    return str(data.get(key) or "")


@csrf_exempt
@require_POST
@capability_required(Capability.SEND_BROADCAST)
def preview(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    try:
        rendered = broadcast_services.preview_broadcast(
            template=_text(data, "template"),
            subject=_text(data, "subject"),
            nim=_text(data, "nim").strip(),
            cta_text=_text(data, "ctaText"),
            cta_url=_text(data, "ctaUrl"),
        )
    except VotingError as exc:
        return error_response(exc)

    return JsonResponse(rendered)


@csrf_exempt
@require_POST
@capability_required(Capability.SEND_BROADCAST)
def send(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    nims = data.get("nims")
    if nims is not None and not isinstance(nims, list):
        return bad_request("nims must be a list.")

    subject = _text(data, "subject")
    try:
        summary = broadcast_services.queue_broadcast(
            subject=subject,
            template=_text(data, "template"),
            target=_text(data, "target") or "all",
            nims=nims,
            cta_text=_text(data, "ctaText"),
            cta_url=_text(data, "ctaUrl"),
        )
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "SEND_BROADCAST", details=f"Subject: {subject}, Targets: {summary.recipient_count}")
    return JsonResponse(
        {
            "message": "Broadcast processing started.",
            "recipientCount": summary.recipient_count,
            "skippedCount": summary.skipped_count,
        }
    )


@csrf_exempt
@require_POST
@capability_required(Capability.SEND_BROADCAST)
def send_test(request: HttpRequest) -> JsonResponse:
    try:
        data = parse_json_body(request)
    except ValueError as exc:
        return bad_request(str(exc))

    to = _text(data, "to").strip()
    try:
        broadcast_services.send_test_email(
            to=to,
            subject=_text(data, "subject"),
            template=_text(data, "template"),
            cta_text=_text(data, "ctaText"),
            cta_url=_text(data, "ctaUrl"),
        )
    except VotingError as exc:
        return error_response(exc)

    log_action(request, "SEND_TEST_EMAIL", target=to)
    return JsonResponse({"message": f"Test email sent to {to}."})
