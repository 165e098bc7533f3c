import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# Sent after a write to the vote ledger has committed. Receivers must not
# assume they run inside a transaction. ``reason`` names the mutation.
vote_ledger_changed = Signal()


def notify_ledger_changed_on_commit(*, reason: str) -> None:
    def _send() -> None:
        responses = vote_ledger_changed.send_robust(sender=None, reason=reason)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "vote_ledger_changed receiver failed receiver=%r reason=%s",
                    receiver,
                    reason,
                    exc_info=response,
                )

    transaction.on_commit(_send)
