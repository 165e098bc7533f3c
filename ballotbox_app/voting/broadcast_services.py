from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from django.template.exceptions import TemplateSyntaxError

from voting.delivery_queue import broadcast_payload, enqueue_broadcast_emails, render_broadcast
from voting.email_rendering import format_email_html
from voting.exceptions import TransientInfraError, VotingError
from voting.mail_transport import send_email
from voting.models import Voter

logger = logging.getLogger(__name__)

SAMPLE_RECIPIENT: dict[str, str] = {
    "name": "Sample Student",
    "nim": "0110221001",
    "email": "sample@student.example.org",
}


@dataclass(frozen=True)
class BroadcastSummary:
    recipient_count: int
    skipped_count: int


def recipient_data(voter: Voter) -> dict[str, str]:
    return {
        "name": voter.name or "Student",
        "nim": voter.nim,
        "email": voter.email or "-",
    }


def _render(payload: dict[str, object]) -> tuple[str, str]:
    try:
        return render_broadcast(payload)
    except TemplateSyntaxError as exc:
        raise VotingError(f"Template error: {exc}") from exc


def preview_broadcast(
    *,
    template: str,
    subject: str = "",
    nim: str = "",
    cta_text: str = "",
    cta_url: str = "",
) -> dict[str, str]:
    """Render a broadcast for one voter (or sample data) without sending it."""
    if not str(template or "").strip():
        raise VotingError("Template is required.")

    data = dict(SAMPLE_RECIPIENT)
    if nim:
        voter = Voter.objects.filter(nim=str(nim).strip()).first()
        if voter is not None:
            data = recipient_data(voter)

    rendered_subject, body = _render(
        broadcast_payload(
            email=data["email"], subject=subject, template=template, data=data, cta_text=cta_text, cta_url=cta_url
        )
    )
    return {"subject": rendered_subject, "html": format_email_html(body)}


def queue_broadcast(
    *,
    subject: str,
    template: str,
    target: str = "all",
    nims: Iterable[str] | None = None,
    cta_text: str = "",
    cta_url: str = "",
) -> BroadcastSummary:
    if not str(subject or "").strip() or not str(template or "").strip():
        raise VotingError("Subject and template are required.")

    # Fail fast on template errors instead of in every delivery job.
    _render(broadcast_payload(email="", subject=subject, template=template, data=SAMPLE_RECIPIENT))

    voters = Voter.objects.active().filter(role=Voter.Role.voter)
    if target == "selection":
        selected = [str(n).strip() for n in (nims or []) if str(n).strip()]
        if not selected:
            raise VotingError("Select at least one recipient.")
        voters = voters.filter(nim__in=selected)
    elif target != "all":
        raise VotingError("target must be 'all' or 'selection'.")

    targets = list(voters.only("nim", "name", "email"))
    valid = [voter for voter in targets if voter.email and "@" in voter.email]
    if not valid:
        raise VotingError("No valid recipients found based on criteria.")

    enqueue_broadcast_emails(
        broadcast_payload(
            email=str(voter.email),
            subject=subject,
            template=template,
            data=recipient_data(voter),
            cta_text=cta_text,
            cta_url=cta_url,
        )
        for voter in valid
    )
    summary = BroadcastSummary(recipient_count=len(valid), skipped_count=len(targets) - len(valid))
    logger.info(
        "Broadcast queued recipients=%d skipped=%d",
        summary.recipient_count,
        summary.skipped_count,
        extra={"event": "ballotbox.broadcast.queued", "component": "broadcast"},
    )
    return summary


def send_test_email(
    *,
    to: str,
    subject: str,
    template: str,
    cta_text: str = "",
    cta_url: str = "",
) -> None:
    """Send one rendered broadcast synchronously, bypassing the queue."""
    recipient = str(to or "").strip()
    if "@" not in recipient:
        raise VotingError("A valid recipient email is required.")
    if not str(subject or "").strip() or not str(template or "").strip():
        raise VotingError("Subject and template are required.")

    data = {**SAMPLE_RECIPIENT, "email": recipient}
    rendered_subject, body = _render(
        broadcast_payload(
            email=recipient, subject=subject, template=template, data=data, cta_text=cta_text, cta_url=cta_url
        )
    )
    if not send_email(recipient, rendered_subject, body):
        raise TransientInfraError("The mail server rejected the test message.")
