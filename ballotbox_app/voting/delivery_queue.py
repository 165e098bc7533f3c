"""Durable, retrying mail delivery queues backed by the ``delivery_jobs`` table.

Request handlers only enqueue; ``DeliveryWorker`` (run by the
``run_delivery_worker`` management command) claims due jobs, sends them via
``voting.mail_transport`` and reschedules failures with exponential backoff.
Completed jobs are deleted; failed jobs are kept for inspection up to each
queue's retention count.
"""

from __future__ import annotations

import datetime
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db import close_old_connections, transaction
from django.utils import timezone

from voting.email_rendering import button_html, render_email_template, render_template_string
from voting.exceptions import DeliveryFailedError
from voting.mail_transport import send_email
from voting.models import DeliveryJob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueConfig:
    name: str
    concurrency: int
    attempts: int
    backoff_seconds: float
    failed_retention: int
    throttle_max_jobs: int | None = None
    throttle_window_seconds: float | None = None


def queue_config(queue: str) -> QueueConfig:
    try:
        raw = dict(settings.DELIVERY_QUEUES[queue])
    except KeyError as exc:
        raise ValueError(f"unknown delivery queue: {queue!r}") from exc

    throttle = raw.get("throttle") or None
    return QueueConfig(
        name=queue,
        concurrency=max(1, int(raw.get("concurrency", 1))),
        attempts=max(1, int(raw.get("attempts", 1))),
        backoff_seconds=float(raw.get("backoff_seconds", 1)),
        failed_retention=max(0, int(raw.get("failed_retention", 0))),
        throttle_max_jobs=int(throttle["max_jobs"]) if throttle else None,
        throttle_window_seconds=float(throttle["window_seconds"]) if throttle else None,
    )


def backoff_delay(attempts_made: int, base_seconds: float) -> float:
    """Delay before the next attempt: base, 2*base, 4*base, ..."""
    return float(base_seconds) * (2 ** max(0, attempts_made - 1))


def _recipient_domain(email: str) -> str:
    return str(email or "").rpartition("@")[2]


def _enqueue(queue: str, kind: str, payloads: Iterable[Mapping[str, Any]]) -> list[DeliveryJob]:
    config = queue_config(queue)
    now = timezone.now()
    jobs = [
        DeliveryJob(
            queue=queue,
            kind=kind,
            payload=dict(payload),
            max_attempts=config.attempts,
            available_at=now,
        )
        for payload in payloads
    ]
    if not jobs:
        return []
    created = DeliveryJob.objects.bulk_create(jobs)
    logger.info(
        "Queued delivery jobs queue=%s kind=%s count=%d",
        queue,
        kind,
        len(created),
        extra={"event": "ballotbox.delivery.enqueued", "component": "delivery", "queue": queue},
    )
    return created


def enqueue_otp_email(email: str, otp: str, name: str = "", expires_in_minutes: int = 5) -> DeliveryJob:
    return _enqueue(
        DeliveryJob.Queue.otp,
        DeliveryJob.Kind.send_otp,
        [{"email": email, "otp": otp, "name": name, "expires_in_minutes": int(expires_in_minutes)}],
    )[0]


def broadcast_payload(
    *,
    email: str,
    subject: str,
    template: str,
    data: Mapping[str, str],
    cta_text: str = "",
    cta_url: str = "",
) -> dict[str, Any]:
    return {
        "email": email,
        "subject": subject,
        "template": template,
        "data": dict(data),
        "cta_text": cta_text,
        "cta_url": cta_url,
    }


def enqueue_broadcast_emails(payloads: Iterable[Mapping[str, Any]]) -> list[DeliveryJob]:
    return _enqueue(DeliveryJob.Queue.broadcast, DeliveryJob.Kind.send_broadcast, payloads)


def render_broadcast(payload: Mapping[str, Any]) -> tuple[str, str]:
    data = dict(payload.get("data") or {})
    subject = render_template_string(str(payload.get("subject") or ""), data).strip()
    body = render_template_string(str(payload.get("template") or ""), data)
    cta_text = str(payload.get("cta_text") or "").strip()
    cta_url = str(payload.get("cta_url") or "").strip()
    if cta_text and cta_url:
        body += button_html(cta_text, cta_url)
    return subject, body


def _handle_send_otp(payload: Mapping[str, Any]) -> None:
    email = str(payload["email"])
    rendered = render_email_template(
        settings.OTP_EMAIL_TEMPLATE_NAME,
        {
            "name": str(payload.get("name") or "Voter"),
            "otp": str(payload["otp"]),
            "expires_in_minutes": int(payload.get("expires_in_minutes") or 5),
        },
    )
    if not send_email(email, rendered.subject, rendered.html):
        raise DeliveryFailedError(f"Failed to send OTP email to {email}")


def _handle_send_broadcast(payload: Mapping[str, Any]) -> None:
    email = str(payload["email"])
    subject, body = render_broadcast(payload)
    if not send_email(email, subject, body):
        raise DeliveryFailedError(f"Failed to send broadcast email to {email}")


JOB_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    DeliveryJob.Kind.send_otp: _handle_send_otp,
    DeliveryJob.Kind.send_broadcast: _handle_send_broadcast,
}


def claim_jobs(queue: str, limit: int) -> list[DeliveryJob]:
    """Claim up to ``limit`` due jobs; concurrent workers skip each other's rows."""
    now = timezone.now()
    with transaction.atomic():
        jobs = list(
            DeliveryJob.objects.select_for_update(skip_locked=True)
            .filter(queue=queue, status=DeliveryJob.Status.queued, available_at__lte=now)
            .order_by("available_at", "id")[:limit]
        )
        if not jobs:
            return []
        DeliveryJob.objects.filter(pk__in=[job.pk for job in jobs]).update(
            status=DeliveryJob.Status.active,
            started_at=now,
        )
    for job in jobs:
        job.status = DeliveryJob.Status.active
        job.started_at = now
    return jobs


def requeue_stale_jobs(queue: str, *, stale_after_seconds: int | None = None) -> int:
    """Return jobs stuck in ``active`` (crashed worker) to the queue."""
    if stale_after_seconds is None:
        stale_after_seconds = int(settings.DELIVERY_STALE_JOB_SECONDS)
    now = timezone.now()
    count = DeliveryJob.objects.filter(
        queue=queue,
        status=DeliveryJob.Status.active,
        started_at__lt=now - datetime.timedelta(seconds=stale_after_seconds),
    ).update(status=DeliveryJob.Status.queued, started_at=None, available_at=now)
    if count:
        logger.warning("Re-queued stale delivery jobs queue=%s count=%d", queue, count)
    return count


def prune_failed_jobs(queue: str, *, keep: int) -> int:
    stale_ids = list(
        DeliveryJob.objects.filter(queue=queue, status=DeliveryJob.Status.failed)
        .order_by("-failed_at", "-id")
        .values_list("pk", flat=True)[keep:]
    )
    if not stale_ids:
        return 0
    deleted, _ = DeliveryJob.objects.filter(pk__in=stale_ids).delete()
    return deleted


def _record_failure(job: DeliveryJob, exc: BaseException) -> None:
    config = queue_config(job.queue)
    now = timezone.now()
    attempts_made = job.attempts_made + 1
    error = f"{type(exc).__name__}: {exc}"[:2000]

    if attempts_made < job.max_attempts:
        delay = backoff_delay(attempts_made, config.backoff_seconds)
        DeliveryJob.objects.filter(pk=job.pk).update(
            status=DeliveryJob.Status.queued,
            attempts_made=attempts_made,
            available_at=now + datetime.timedelta(seconds=delay),
            started_at=None,
            last_error=error,
            updated_at=now,
        )
        logger.warning(
            "Delivery job failed; retrying job_id=%s attempt=%d/%d delay=%.1fs",
            job.pk,
            attempts_made,
            job.max_attempts,
            delay,
            extra={
                "event": "ballotbox.delivery.retry_scheduled",
                "component": "delivery",
                "outcome": "retry",
                "queue": job.queue,
                "kind": job.kind,
            },
        )
        return

    DeliveryJob.objects.filter(pk=job.pk).update(
        status=DeliveryJob.Status.failed,
        attempts_made=attempts_made,
        started_at=None,
        failed_at=now,
        last_error=error,
        updated_at=now,
    )
    logger.error(
        "Delivery job failed permanently job_id=%s attempts=%d recipient_domain=%s",
        job.pk,
        attempts_made,
        _recipient_domain(str(job.payload.get("email") or "")),
        extra={
            "event": "ballotbox.delivery.failed",
            "component": "delivery",
            "outcome": "failed",
            "queue": job.queue,
            "kind": job.kind,
        },
    )
    prune_failed_jobs(job.queue, keep=config.failed_retention)


def process_job(job: DeliveryJob) -> bool:
    """Run one claimed job. Returns True on success; failures are recorded, not raised."""
    handler = JOB_HANDLERS.get(job.kind)
    try:
        if handler is None:
            raise DeliveryFailedError(f"Unknown delivery job kind: {job.kind!r}")
        handler(job.payload)
    except Exception as exc:
        _record_failure(job, exc)
        return False

    DeliveryJob.objects.filter(pk=job.pk).delete()
    logger.info("Delivery job completed job_id=%s queue=%s kind=%s", job.pk, job.queue, job.kind)
    return True


def retry_failed_jobs(job_ids: Iterable[int]) -> int:
    """Put failed jobs back on their queue with a fresh attempt budget."""
    now = timezone.now()
    return DeliveryJob.objects.filter(pk__in=list(job_ids), status=DeliveryJob.Status.failed).update(
        status=DeliveryJob.Status.queued,
        attempts_made=0,
        available_at=now,
        failed_at=None,
        updated_at=now,
    )


class ThroughputLimiter:
    """Rolling-window limit on job starts, shared by all threads of one worker."""

    def __init__(
        self,
        max_jobs: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_jobs <= 0 or window_seconds <= 0:
            raise ValueError("max_jobs and window_seconds must be positive")
        self.max_jobs = max_jobs
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = threading.Lock()

    def try_acquire(self) -> float:
        """Admit a start and return 0, or return the seconds to wait before retrying."""
        with self._lock:
            now = self._clock()
            while self._starts and self._starts[0] <= now - self.window_seconds:
                self._starts.popleft()
            if len(self._starts) < self.max_jobs:
                self._starts.append(now)
                return 0.0
            return max(0.0, self._starts[0] + self.window_seconds - now)

    def acquire(self) -> None:
        while True:
            wait = self.try_acquire()
            if wait <= 0:
                return
            self._sleep(wait)


class DeliveryWorker:
    def __init__(
        self,
        queue: str,
        *,
        limiter: ThroughputLimiter | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.config = queue_config(queue)
        if limiter is None and self.config.throttle_max_jobs and self.config.throttle_window_seconds:
            limiter = ThroughputLimiter(self.config.throttle_max_jobs, self.config.throttle_window_seconds)
        self.limiter = limiter
        self.poll_interval = (
            float(settings.DELIVERY_POLL_INTERVAL_SECONDS) if poll_interval is None else float(poll_interval)
        )
        self._stop = threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def _run_job(self, job: DeliveryJob) -> bool:
        try:
            if self.limiter is not None:
                self.limiter.acquire()
            return process_job(job)
        finally:
            close_old_connections()

    def run_once(self) -> int:
        """Claim one batch of due jobs and process it. Returns the batch size."""
        requeue_stale_jobs(self.config.name)
        jobs = claim_jobs(self.config.name, limit=self.config.concurrency)
        if not jobs:
            return 0

        with ThreadPoolExecutor(
            max_workers=self.config.concurrency,
            thread_name_prefix=f"delivery-{self.config.name}",
        ) as pool:
            results = list(pool.map(self._run_job, jobs))

        logger.info(
            "Delivery batch done queue=%s claimed=%d succeeded=%d",
            self.config.name,
            len(jobs),
            sum(1 for ok in results if ok),
        )
        return len(jobs)

    def run_forever(self) -> None:
        logger.info(
            "Delivery worker started queue=%s concurrency=%d", self.config.name, self.config.concurrency
        )
        while not self._stop.is_set():
            if self.run_once() == 0:
                self._stop.wait(self.poll_interval)
        logger.info("Delivery worker stopped queue=%s", self.config.name)
