"""Shared helpers for the JSON API views."""

import json
from typing import Any

from django.http import HttpRequest, JsonResponse

from voting.exceptions import InflationGuardError, RateLimitedError, VotingError


def parse_json_body(request: HttpRequest) -> dict[str, Any]:
    """Decode a JSON object body. Raises ValueError on anything else."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError("Request body must be valid JSON.") from exc
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object.")
    return data


def bad_request(message: str, *, errors: list[str] | None = None) -> JsonResponse:
    body: dict[str, Any] = {"message": message}
    if errors:
        body["errors"] = errors
    return JsonResponse(body, status=400)


def error_response(exc: VotingError) -> JsonResponse:
    body: dict[str, Any] = {"message": exc.message}
    if isinstance(exc, InflationGuardError):
        body["detail"] = exc.detail
    if isinstance(exc, RateLimitedError):
        body["retryAfter"] = exc.retry_after

    response = JsonResponse(body, status=exc.status_code)
    if isinstance(exc, RateLimitedError):
        response["Retry-After"] = str(exc.retry_after)
    return response


def principal_id(request: HttpRequest) -> str | None:
    principal = getattr(request, "principal", None)
    return principal.id if principal is not None else None
