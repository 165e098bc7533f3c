import logging
from typing import Any, override

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from voting.delivery_queue import DeliveryWorker

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Process queued OTP and broadcast mail delivery jobs."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--queue",
            choices=sorted(settings.DELIVERY_QUEUES),
            default="otp",
            help="Queue to drain (default: otp).",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Process a single batch of due jobs and exit.",
        )

    @override
    def handle(self, *args: Any, **options: Any) -> Any:
        queue = str(options["queue"])
        try:
            worker = DeliveryWorker(queue)
        except ValueError as exc:
            raise CommandError(str(exc)) from exc

        if options["once"]:
            processed = worker.run_once()
            self.stdout.write(f"run_delivery_worker: processed {processed} job(s) from {queue}")
            return None

        try:
            worker.run_forever()
        except KeyboardInterrupt:
            logger.info("run_delivery_worker: interrupted; stopping queue=%s", queue)
            worker.stop()
        return None
