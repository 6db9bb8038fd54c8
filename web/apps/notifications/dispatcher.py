"""Purchase notifications for buyers and course creators.

``NotificationDispatcher.dispatch`` runs inside the order transaction right
after fulfillment. For every message it first writes an outbox row, then
tries to deliver it synchronously. A successful send marks the row ``sent``
so the outbox worker will not deliver it a second time; a failed send leaves
it ``pending`` for the worker. Delivery problems are recorded as order
events and never propagate to the caller.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.catalog.access import safe_download_name
from apps.catalog.download_tokens import build_download_url
from apps.catalog.models import CourseAsset
from apps.orders.domain import EventType
from apps.orders.events import log_order_event
from gateway.pii import mask_email

from .mailer import Attachment, MailSender, OutboundEmail
from .outbox import OutboxRepository

logger = logging.getLogger(__name__)

SIGNATURE = "Elitearn"


@dataclass
class DispatchReport:
    buyer_sent: bool = False
    sellers_sent: int = 0
    sellers_failed: int = 0
    attachments: int = 0


def _money(amount, currency: str) -> str:
    return f"{amount:.2f} {currency}"


def _order_date(order) -> str:
    return timezone.localtime(order.created_at).strftime("%Y-%m-%d %H:%M")


class NotificationDispatcher:
    def __init__(self, mailer: MailSender, outbox: OutboxRepository | None = None):
        self.mailer = mailer
        self.outbox = outbox or OutboxRepository()

    # ---- composition ----

    def _load(self, order):
        lines = list(
            order.items.select_related("course", "course__creator").order_by("id")
        )
        course_ids = list(OrderedDict.fromkeys(line.course_id for line in lines))
        assets_by_course: dict[int, list[CourseAsset]] = {cid: [] for cid in course_ids}
        for asset in CourseAsset.objects.filter(course_id__in=course_ids).order_by("course_id", "id"):
            assets_by_course[asset.course_id].append(asset)
        return lines, course_ids, assets_by_course

    def _collect_attachments(self, course_ids, assets_by_course) -> list[Attachment]:
        """Attach materials within the per-file and total size caps.

        Empty, oversized, over-budget and missing files are skipped; buyers
        still get a download link for every asset.
        """
        max_file = getattr(settings, "EMAIL_ATTACH_MAX_FILE_BYTES", 8 * 1024 * 1024)
        max_total = getattr(settings, "EMAIL_ATTACH_MAX_TOTAL_BYTES", 15 * 1024 * 1024)
        total = 0
        attachments = []
        for course_id in course_ids:
            for asset in assets_by_course.get(course_id, []):
                size = int(asset.file_size or 0)
                if size <= 0 or size > max_file or total + size > max_total:
                    continue
                if not asset.file or not asset.file.storage.exists(asset.file.name):
                    continue
                try:
                    with asset.file.storage.open(asset.file.name, "rb") as fh:
                        content = fh.read()
                except OSError:
                    logger.warning("attachment_read_failed", extra={"asset_id": asset.pk}, exc_info=True)
                    continue
                attachments.append(Attachment(
                    filename=safe_download_name(asset.title or f"material_{asset.pk}"),
                    content=content,
                    content_type=asset.mime_type or "application/octet-stream",
                ))
                total += size
        return attachments

    def compose_buyer_email(self, order, buyer_email, lines, course_ids, assets_by_course) -> OutboundEmail:
        currency = order.currency
        item_lines = "\n".join(
            _("- %(title)s x%(qty)s: %(unit)s (line total %(line)s)") % {
                "title": line.course.title,
                "qty": line.quantity,
                "unit": _money(line.unit_price, currency),
                "line": _money(line.line_total, currency),
            }
            for line in lines
        )

        titles = {line.course_id: line.course.title for line in lines}
        material_lines = []
        for course_id in course_ids:
            assets = assets_by_course.get(course_id) or []
            if not assets:
                continue
            material_lines.append(f"\n{titles.get(course_id) or _('Course #%s') % course_id}:")
            for asset in assets:
                url = build_download_url(asset.pk, order.buyer_id)
                material_lines.append(f"- {asset.title or _('File #%s') % asset.pk}: {url}")

        attachments = self._collect_attachments(course_ids, assets_by_course)

        parts = [
            _("Hello!"),
            "",
            _("We confirm your purchase."),
            _("Order: %s") % order.order_number,
            _("Date: %s") % _order_date(order),
            _("Total: %s") % _money(order.total, currency),
            "",
            _("Courses:"),
            item_lines,
            "",
        ]
        if material_lines:
            parts += [_("Download links for your materials (valid for a limited time):"), *material_lines, ""]
        if attachments:
            parts.append(_("The materials are attached to this e-mail (files: %d).") % len(attachments))
        else:
            parts.append(_("Your course materials are available on the site under \"My courses\"."))
        parts += ["", _("Thank you!"), SIGNATURE]

        return OutboundEmail(
            to=buyer_email,
            subject=_("Purchase confirmation %s") % order.order_number,
            text="\n".join(parts),
            attachments=attachments,
        )

    def compose_seller_emails(self, order, buyer_email, lines) -> list[tuple[object, OutboundEmail]]:
        by_seller: "OrderedDict[int, list]" = OrderedDict()
        for line in lines:
            by_seller.setdefault(line.course.creator_id, []).append(line)

        messages = []
        for seller_lines in by_seller.values():
            seller = seller_lines[0].course.creator
            seller_total = sum(line.line_total for line in seller_lines)
            items = "\n".join(
                f"- {line.course.title} x{line.quantity}: {_money(line.line_total, order.currency)}"
                for line in seller_lines
            )
            text = "\n".join([
                _("Hello!"),
                "",
                _("You have a new purchase on Elitearn."),
                _("Order: %s") % order.order_number,
                _("Date: %s") % _order_date(order),
                _("Buyer: %s") % buyer_email,
                "",
                _("Your courses in this order:"),
                items,
                "",
                _("Your total: %s") % _money(seller_total, order.currency),
                "",
                SIGNATURE,
            ])
            messages.append((seller, OutboundEmail(
                to=seller.email,
                subject=_("New purchase: %s") % order.order_number,
                text=text,
            )))
        return messages

    # ---- delivery ----

    def _enqueue(self, message: OutboundEmail, user_id):
        try:
            with transaction.atomic():
                return self.outbox.add(
                    to_addr=message.to,
                    subject=message.subject,
                    body=message.text,
                    user_id=user_id,
                )
        except DatabaseError:
            logger.warning("outbox_enqueue_failed", extra={"to": mask_email(message.to)}, exc_info=True)
            return None

    def _deliver(self, order, message: OutboundEmail, user_id, ok_event, fail_event, meta) -> bool:
        if not message.to:
            log_order_event(order.pk, fail_event, "Recipient has no e-mail address", {**meta, "error": "missing_address"})
            return False

        row = self._enqueue(message, user_id)
        try:
            self.mailer.send(message)
        except Exception as e:
            logger.warning(
                "notification_send_failed",
                extra={"order_id": order.pk, "to": mask_email(message.to), "error_type": type(e).__name__},
                exc_info=True,
            )
            log_order_event(order.pk, fail_event, "E-mail delivery failed", {
                **meta, "to": message.to, "error": str(e)[:250],
            })
            return False

        if row is not None:
            self.outbox.mark_sent(row.pk)
        log_order_event(order.pk, ok_event, "E-mail sent", {**meta, "to": message.to})
        return True

    def dispatch(self, order, buyer_email: str | None) -> DispatchReport:
        report = DispatchReport()
        lines, course_ids, assets_by_course = self._load(order)

        buyer_msg = self.compose_buyer_email(order, buyer_email or "", lines, course_ids, assets_by_course)
        report.attachments = len(buyer_msg.attachments)
        report.buyer_sent = self._deliver(
            order, buyer_msg, order.buyer_id,
            EventType.EMAIL_SENT, EventType.EMAIL_SEND_FAIL,
            {"attachments": report.attachments},
        )

        for seller, msg in self.compose_seller_emails(order, buyer_email or "", lines):
            sent = self._deliver(
                order, msg, seller.pk,
                EventType.SELLER_EMAIL_SENT, EventType.SELLER_EMAIL_FAIL,
                {"seller_id": seller.pk},
            )
            if sent:
                report.sellers_sent += 1
            else:
                report.sellers_failed += 1

        logger.info(
            "order_notifications_dispatched",
            extra={
                "order_id": order.pk,
                "buyer": mask_email(buyer_email),
                "buyer_sent": report.buyer_sent,
                "sellers_sent": report.sellers_sent,
                "sellers_failed": report.sellers_failed,
            },
        )
        return report
