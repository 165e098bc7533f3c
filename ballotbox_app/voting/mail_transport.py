"""Synchronous mail transport over django-post-office.

Only the delivery worker and the explicit test-send endpoint call this;
request handlers enqueue jobs instead.
"""

from __future__ import annotations

import logging

import post_office.mail
from django.conf import settings
from django.utils.html import strip_tags
from post_office.models import PRIORITY, STATUS

from voting.email_rendering import format_email_html

logger = logging.getLogger(__name__)


def _backend_aliases() -> list[str]:
    configured = dict(getattr(settings, "POST_OFFICE", {}).get("BACKENDS") or {})
    aliases = ["default"]
    if "backup" in configured:
        aliases.append("backup")
    return aliases


def send_email(to: str, subject: str, html: str) -> bool:
    """Send one message now, trying the backup relay if the primary fails.

    Returns True when any backend accepted the message. post_office records
    an Email row and delivery log per attempt.
    """
    for alias in _backend_aliases():
        try:
            email = post_office.mail.send(
                recipients=[to],
                sender=settings.DEFAULT_FROM_EMAIL,
                subject=subject,
                message=strip_tags(html),
                html_message=format_email_html(html),
                priority=PRIORITY.now,
                backend=alias,
            )
        except Exception:
            logger.exception("Mail transport raised backend=%s", alias)
            continue

        if email.status == STATUS.sent:
            if alias != "default":
                logger.warning("Message delivered via backup relay recipient_domain=%s", to.rpartition("@")[2])
            return True

        logger.warning(
            "Mail backend refused message backend=%s",
            alias,
            extra={
                "event": "ballotbox.mail.send_failed",
                "component": "mail",
                "outcome": "failed",
                "backend": alias,
            },
        )

    return False
