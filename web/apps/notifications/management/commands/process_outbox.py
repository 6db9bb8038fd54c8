"""
Management command that delivers pending outbox notifications.
"""
import signal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.notifications.outbox import OutboxRepository
from apps.notifications.providers import get_outbox_worker


class Command(BaseCommand):
    help = "Deliver pending notification outbox rows (e-mail)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum rows per batch (1-50, default OUTBOX_BATCH_SIZE)",
        )
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Keep polling until SIGINT/SIGTERM",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between batches in loop mode (>= 1, default OUTBOX_POLL_INTERVAL)",
        )
        parser.add_argument(
            "--requeue-failed",
            action="store_true",
            help="Move failed rows back to pending and exit",
        )
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=None,
            help="With --requeue-failed, only requeue rows with fewer attempts",
        )

    def handle(self, *args, **options):
        if options["requeue_failed"]:
            moved = OutboxRepository().requeue_failed(options["max_attempts"])
            self.stdout.write(self.style.SUCCESS(f"Requeued {moved} failed notifications"))
            return
        if options["max_attempts"] is not None:
            raise CommandError("--max-attempts only applies together with --requeue-failed")

        worker = get_outbox_worker(
            batch_size=options["limit"],
            interval=options["interval"],
        )

        if not options["loop"]:
            handled = worker.run_once()
            self.stdout.write(self.style.SUCCESS(f"Processed {handled} notifications"))
            return

        def _shutdown(signum, frame):
            self.stdout.write(self.style.WARNING("Stopping after the current batch"))
            worker.stop()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        self.stdout.write(
            f"Outbox worker started (provider: {getattr(settings, 'EMAIL_PROVIDER', 'smtp')}, "
            f"batch: {worker.batch_size}, interval: {worker.interval}s)"
        )
        worker.run_forever()
        self.stdout.write(self.style.SUCCESS("Outbox worker stopped"))
