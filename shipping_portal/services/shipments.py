"""Shipment status updates, timelines and public tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import ValidationError
from ..models import Shipment, ShipmentEvent
from ..realtime import ChangeFeed
from ..repositories import ShipmentRepository
from ..tracking import (
    StatusDisplay,
    normalise_tracking_number,
    parse_status,
    progress_percent,
    sort_timeline,
    status_display,
    status_label,
    validate_transition,
)
from .notifications import notification_type_for_status

logger = logging.getLogger(__name__)

SHIPMENTS_TABLE = "shipments"
EVENTS_TABLE = "shipment_events"

# Omitted from the public tracking payload.
PRIVATE_FIELDS = frozenset({"user_id", "customer_email", "customer_name", "saved_quote_id"})


@dataclass(frozen=True)
class TrackingResult:
    """Everything the tracking page shows for one shipment."""

    shipment: Shipment
    events: List[ShipmentEvent]
    display: StatusDisplay
    progress: int

    def to_dict(self) -> dict:
        shipment = {
            key: value
            for key, value in self.shipment.to_dict().items()
            if key not in PRIVATE_FIELDS
        }
        return {
            "shipment": shipment,
            "status_label": self.display.label,
            "progress": self.progress,
            "events": [event.to_dict() for event in self.events],
        }


def record_event(
    shipments: ShipmentRepository,
    shipment_id: int,
    status: object,
    location: str,
    description: Optional[str] = None,
    *,
    enforce_transitions: bool = False,
    feed: Optional[ChangeFeed] = None,
    notify: bool = True,
) -> Tuple[ShipmentEvent, Shipment]:
    """Append an event and update the shipment to match it.

    This is the only write path for shipment status. The event insert, the
    shipment's new ``status``/``current_location``/``updated_at``, the
    ``actual_delivery`` stamp (set on ``delivered``, cleared otherwise) and
    the queued customer notification commit in one transaction. Subscribers
    on ``feed`` are told after the commit.

    Args:
        shipments: Shipment storage.
        shipment_id: Shipment receiving the event.
        status: Any of the seven shipment statuses.
        location: Free-text location recorded on the event.
        description: Optional note shown on the timeline.
        enforce_transitions: Reject backwards and post-terminal changes.
        feed: Change feed notified after the write.
        notify: Queue a status email for the shipment's customer.

    Raises:
        ValidationError: For an unknown status or blank location.
        StatusTransitionError: When ``enforce_transitions`` rejects the change.
        NotFoundError: When the shipment does not exist.
        PersistenceError: When the write fails; nothing is stored.
    """

    resolved = parse_status(status).value
    location = (location or "").strip()
    if not location:
        raise ValidationError({"location": "Location is required."})

    event, shipment = shipments.append_event(
        shipment_id,
        resolved,
        location,
        description,
        check_transition=validate_transition if enforce_transitions else None,
        notification_type=notification_type_for_status(resolved) if notify else None,
    )
    logger.info(
        "Shipment %s moved to %s at %s", shipment.tracking_number, resolved, location
    )

    if feed is not None:
        feed.publish(EVENTS_TABLE, event.to_dict(), event="INSERT")
        feed.publish(SHIPMENTS_TABLE, shipment.to_dict(), event="UPDATE")
    return event, shipment


def update_shipment(
    shipments: ShipmentRepository,
    shipment_id: int,
    status: object,
    location: str,
    **kwargs,
) -> Tuple[ShipmentEvent, Shipment]:
    """Apply an admin edit of status and location.

    The edit is recorded as an event described ``"Status updated to
    <Label>"`` so the timeline always explains the shipment's state.
    """

    resolved = parse_status(status)
    return record_event(
        shipments,
        shipment_id,
        resolved,
        location,
        f"Status updated to {status_label(resolved)}",
        **kwargs,
    )


def get_timeline(shipments: ShipmentRepository, shipment_id: int) -> List[ShipmentEvent]:
    """Return a shipment's events oldest first."""

    return shipments.events(shipment_id)


def track(shipments: ShipmentRepository, tracking_number: str) -> Optional[TrackingResult]:
    """Look up a shipment by tracking number for public display.

    Returns:
        Optional[TrackingResult]: ``None`` when nothing matches; an unknown
        tracking number is a normal outcome, not an error. Events are newest
        first.
    """

    number = normalise_tracking_number(tracking_number)
    if not number:
        return None
    shipment = shipments.get_by_tracking_number(number)
    if shipment is None:
        return None
    events = sort_timeline(shipments.events(shipment.id), newest_first=True)
    return TrackingResult(
        shipment=shipment,
        events=events,
        display=status_display(shipment.status),
        progress=progress_percent(shipment.status),
    )


__all__ = [
    "EVENTS_TABLE",
    "SHIPMENTS_TABLE",
    "TrackingResult",
    "get_timeline",
    "record_event",
    "track",
    "update_shipment",
]
