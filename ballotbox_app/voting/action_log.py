from __future__ import annotations

import logging

from django.http import HttpRequest

from voting.models import ActionLog, Voter

logger = logging.getLogger(__name__)


def _client_ip(request: HttpRequest) -> str:
    forwarded = str(request.META.get("HTTP_X_FORWARDED_FOR") or "").split(",")[0].strip()
    return forwarded or str(request.META.get("REMOTE_ADDR") or "Unknown")


def log_action(request: HttpRequest | None, action: str, target: str = "", details: str = "") -> None:
    """Record an operator action. Called after the business change has committed.

    Failing to write the audit row never undoes the action it describes.
    """
    principal = getattr(request, "principal", None) if request is not None else None
    try:
        actor_name = ""
        actor_id = None
        if principal is not None:
            actor_id = principal.id
            voter = Voter.objects.filter(pk=principal.id).only("name", "nim").first()
            actor_name = (voter.name or voter.nim) if voter is not None else principal.nim

        ActionLog.objects.create(
            actor_id=actor_id,
            actor_name=actor_name or "System/Guest",
            action=action,
            target=target,
            details=details,
            ip_address=_client_ip(request) if request is not None else "",
            user_agent=str(request.headers.get("User-Agent") or "") if request is not None else "",
        )
    except Exception:
        logger.exception("Failed to log action action=%s target=%s", action, target)
