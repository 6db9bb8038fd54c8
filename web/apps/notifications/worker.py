"""Background delivery of pending outbox notifications.

The worker leases a small batch of ``pending`` rows in a short transaction
and delivers them outside of it, so a slow mail provider never holds row
locks. Delivery errors mark the row ``failed`` with a truncated reason; such
rows stay put until an operator requeues them with
``process_outbox --requeue-failed``.
"""

import logging
import threading

from django.db import close_old_connections

from gateway.pii import mask_email

from .mailer import MailSender, OutboundEmail, text_to_html
from .outbox import OutboxRepository

logger = logging.getLogger(__name__)


class OutboxWorker:
    """Drain the notification outbox in batches.

    Args:
        mailer: Transport used to deliver each message.
        outbox: Repository that owns outbox status transitions.
        batch_size: Rows leased per cycle, clamped to 1..50.
        interval: Seconds to sleep between cycles, at least 1.
        lease_secs: How long a leased row is hidden from other workers.
    """

    def __init__(self, mailer: MailSender, outbox: OutboxRepository | None = None,
                 batch_size: int = 10, interval: float = 4.0, lease_secs: int = 300):
        self.mailer = mailer
        self.outbox = outbox or OutboxRepository()
        self.batch_size = max(1, min(50, int(batch_size)))
        self.interval = max(1.0, float(interval))
        self.lease_secs = lease_secs
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Finish the in-flight batch, then leave ``run_forever``."""
        self._stop.set()

    def deliver(self, row) -> bool:
        message = OutboundEmail(
            to=row.to_addr,
            subject=row.subject,
            text=row.body,
            html=text_to_html(row.body),
        )
        try:
            self.mailer.send(message)
        except Exception as e:
            self.outbox.mark_failed(row.pk, str(e) or type(e).__name__)
            logger.warning(
                "outbox_delivery_failed",
                extra={"outbox_id": row.pk, "to": mask_email(row.to_addr), "error_type": type(e).__name__},
                exc_info=True,
            )
            return False
        self.outbox.mark_sent(row.pk)
        logger.info("outbox_delivered", extra={"outbox_id": row.pk, "to": mask_email(row.to_addr)})
        return True

    def run_once(self) -> int:
        """Deliver one batch; returns the number of rows handled."""
        rows = self.outbox.claim_batch(self.batch_size, self.lease_secs)
        if not rows:
            return 0
        sent = sum(1 for row in rows if self.deliver(row))
        logger.info("outbox_batch_done", extra={"handled": len(rows), "sent": sent, "failed": len(rows) - sent})
        return len(rows)

    def run_forever(self) -> None:
        logger.info(
            "outbox_worker_started",
            extra={"batch_size": self.batch_size, "interval": self.interval},
        )
        while not self._stop.is_set():
            close_old_connections()
            try:
                self.run_once()
            except Exception:
                # keep polling; the next cycle starts from fresh leases
                logger.exception("outbox_cycle_failed")
            self._stop.wait(self.interval)
        logger.info("outbox_worker_stopped")
