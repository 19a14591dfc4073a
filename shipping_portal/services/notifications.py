"""Customer and team email notifications.

Direct notifications (quote saved, booking confirmed, callback requests) are
sent inline by :meth:`Notifier.dispatch`, which never raises: the action that
triggered the email has already committed and must not fail because of mail.
Shipment status notifications are queued in ``notification_logs`` by
:func:`shipping_portal.services.shipments.record_event` and delivered in
batches by :meth:`Notifier.process_pending` (``flask process-notifications``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from flask import render_template

from ..database import utcnow
from ..errors import NotFoundError
from ..models import NotificationLog, Shipment
from ..repositories import NotificationLogRepository, ShipmentRepository
from ..tracking import ShipmentStatus, status_label
from .mail import send_email

logger = logging.getLogger(__name__)

QUOTE_SAVED = "quote_saved"
BOOKING_CONFIRMED = "booking_confirmed"
STATUS_UPDATE = "status_update"
DELIVERY_COMPLETE = "delivery_complete"
CALLBACK_TEAM = "callback_team"
CALLBACK_CUSTOMER = "callback_customer"

TEMPLATES = (
    QUOTE_SAVED,
    BOOKING_CONFIRMED,
    STATUS_UPDATE,
    DELIVERY_COMPLETE,
    CALLBACK_TEAM,
    CALLBACK_CUSTOMER,
)

DEFAULT_BATCH_SIZE = 10

BRAND = "Global Embrace"


@dataclass
class NotificationPayload:
    """Values interpolated into the email templates."""

    origin: str
    destination: str
    service: str = ""
    price: Optional[float] = None
    delivery_days: str = ""
    weight: Optional[float] = None
    tracking_number: Optional[str] = None
    new_status: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    current_location: Optional[str] = None
    customer_name: Optional[str] = None
    contact: Dict[str, str] = field(default_factory=dict)

    @property
    def status_label(self) -> str:
        return status_label(self.new_status) if self.new_status else ""


@dataclass
class DrainResult:
    """Outcome of one :meth:`Notifier.process_pending` batch."""

    sent: List[int] = field(default_factory=list)
    failed: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.sent) + len(self.failed)


def format_long_date(value: Optional[datetime], default: str = "TBD") -> str:
    """Format ``value`` as ``Monday, March 4, 2024``."""

    if value is None:
        return default
    return f"{value:%A}, {value:%B} {value.day}, {value:%Y}"


def _subject(template: str, payload: NotificationPayload) -> str:
    route = f"{payload.origin} → {payload.destination}"
    reference = payload.tracking_number or "Your Package"
    if template == QUOTE_SAVED:
        return f"Your {BRAND} Quote: {route}"
    if template == BOOKING_CONFIRMED:
        suffix = f" | {payload.tracking_number}" if payload.tracking_number else ""
        return f"Booking Confirmed: {route}{suffix}"
    if template == STATUS_UPDATE:
        return f"Shipment Update: {reference} - {payload.status_label or 'In Transit'}"
    if template == DELIVERY_COMPLETE:
        return f"Delivered: {reference} has arrived!"
    if template == CALLBACK_TEAM:
        return f"New Booking Request - {payload.origin} to {payload.destination}"
    if template == CALLBACK_CUSTOMER:
        return "Your Booking Request Has Been Received!"
    raise ValueError(f"Unknown notification template '{template}'")


def render_notification(template: str, payload: NotificationPayload) -> Tuple[str, str, str]:
    """Return ``(subject, text, html)`` for a notification template.

    Raises:
        ValueError: For an unknown template id.
    """

    subject = _subject(template, payload)
    context: Dict[str, Any] = {"payload": payload, "brand": BRAND, "subject": subject}
    text = render_template(f"emails/{template}.txt", **context)
    html = render_template(f"emails/{template}.html", **context)
    return subject, text, html


def notification_type_for_status(status: str) -> str:
    if status == ShipmentStatus.DELIVERED.value:
        return DELIVERY_COMPLETE
    return STATUS_UPDATE


def payload_for_shipment(shipment: Shipment) -> NotificationPayload:
    return NotificationPayload(
        origin=shipment.origin,
        destination=shipment.destination,
        service=shipment.service_type,
        weight=shipment.weight,
        tracking_number=shipment.tracking_number,
        new_status=shipment.status,
        estimated_delivery=shipment.estimated_delivery,
        actual_delivery=shipment.actual_delivery,
        current_location=shipment.current_location,
        customer_name=shipment.customer_name or "Customer",
    )


class Notifier:
    """Renders and sends notifications, recording each one."""

    def __init__(
        self,
        logs: NotificationLogRepository,
        shipments: Optional[ShipmentRepository] = None,
    ):
        self._logs = logs
        self._shipments = shipments

    def dispatch(
        self,
        template: str,
        recipient: Optional[str],
        payload: NotificationPayload,
        *,
        shipment_id: Optional[int] = None,
    ) -> bool:
        """Send a notification without ever raising.

        Returns:
            bool: ``True`` when the email was handed to the relay.
        """

        if not recipient:
            logger.info("No recipient for %s notification; skipped", template)
            return False
        try:
            subject, text, html = render_notification(template, payload)
            if not send_email(recipient, subject, text, html=html, logs=self._logs):
                return False
            self._logs.add(
                NotificationLog(
                    email=recipient,
                    notification_type=template,
                    status="sent",
                    shipment_id=shipment_id,
                    sent_at=utcnow(),
                )
            )
        except Exception:
            logger.exception("Failed to send %s notification to %s", template, recipient)
            return False
        logger.info("Sent %s notification to %s", template, recipient)
        return True

    def process_pending(self, limit: int = DEFAULT_BATCH_SIZE) -> DrainResult:
        """Deliver up to ``limit`` queued notifications, oldest first.

        Each row ends ``sent`` or ``failed`` with an error message. Rows whose
        shipment no longer exists fail with ``"Shipment not found"``.
        """

        if self._shipments is None:
            raise RuntimeError("process_pending requires a ShipmentRepository")

        result = DrainResult()
        for entry in self._logs.pending(limit):
            shipment = self._load_shipment(entry.shipment_id)
            if shipment is None:
                self._fail(result, entry.id, "Shipment not found")
                continue
            try:
                subject, text, html = render_notification(
                    entry.notification_type, payload_for_shipment(shipment)
                )
                sent = send_email(entry.email, subject, text, html=html, logs=self._logs)
            except Exception as exc:
                logger.exception("Failed to deliver queued notification %s", entry.id)
                self._fail(result, entry.id, str(exc) or exc.__class__.__name__)
                continue
            if not sent:
                self._fail(result, entry.id, "Mail delivery is disabled")
                continue
            self._logs.mark_sent(entry.id)
            result.sent.append(entry.id)
        return result

    def _load_shipment(self, shipment_id: Optional[int]) -> Optional[Shipment]:
        if shipment_id is None:
            return None
        try:
            return self._shipments.get(shipment_id)
        except NotFoundError:
            return None

    def _fail(self, result: DrainResult, log_id: int, message: str) -> None:
        self._logs.mark_failed(log_id, message)
        result.failed.append((log_id, message))


__all__ = [
    "BOOKING_CONFIRMED",
    "CALLBACK_CUSTOMER",
    "CALLBACK_TEAM",
    "DELIVERY_COMPLETE",
    "DrainResult",
    "NotificationPayload",
    "Notifier",
    "QUOTE_SAVED",
    "STATUS_UPDATE",
    "TEMPLATES",
    "format_long_date",
    "notification_type_for_status",
    "payload_for_shipment",
    "render_notification",
]
