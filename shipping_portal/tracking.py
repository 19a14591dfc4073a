"""Shipment status vocabulary, display metadata and timeline helpers.

Status is a plain enumeration. Any status may be written from any other by
an authorised actor; transition legality is an operator convention. Setting
``ENFORCE_STATUS_TRANSITIONS`` switches :func:`validate_transition` on, which
rejects leaving a terminal state and moving backwards along
:data:`PROGRESS_STEPS`.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence

from .errors import StatusTransitionError, ValidationError


class ShipmentStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    CUSTOMS = "customs"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED})

PROGRESS_STEPS: Sequence[ShipmentStatus] = (
    ShipmentStatus.PENDING,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.CUSTOMS,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
)

# Width of the customer progress bar per step, in percent.
_PROGRESS_PERCENT = (5, 20, 40, 60, 80, 100)


@dataclass(frozen=True)
class StatusDisplay:
    """Label and CSS hints used when rendering a status badge."""

    label: str
    color: str
    bg_color: str


STATUS_DISPLAY: Mapping[ShipmentStatus, StatusDisplay] = MappingProxyType(
    {
        ShipmentStatus.PENDING: StatusDisplay("Pending", "text-gray-600", "bg-gray-100"),
        ShipmentStatus.PICKED_UP: StatusDisplay("Picked Up", "text-blue-600", "bg-blue-100"),
        ShipmentStatus.IN_TRANSIT: StatusDisplay(
            "In Transit", "text-amber-600", "bg-amber-100"
        ),
        ShipmentStatus.CUSTOMS: StatusDisplay("Customs", "text-orange-600", "bg-orange-100"),
        ShipmentStatus.OUT_FOR_DELIVERY: StatusDisplay(
            "Out for Delivery", "text-green-600", "bg-green-100"
        ),
        ShipmentStatus.DELIVERED: StatusDisplay("Delivered", "text-green-700", "bg-green-200"),
        ShipmentStatus.CANCELLED: StatusDisplay("Cancelled", "text-red-600", "bg-red-100"),
    }
)


def parse_status(value: object) -> ShipmentStatus:
    """Coerce ``value`` to a :class:`ShipmentStatus`.

    Raises:
        ValidationError: When ``value`` is not one of the seven statuses.
    """

    if isinstance(value, ShipmentStatus):
        return value
    try:
        return ShipmentStatus(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError({"status": f"Unknown shipment status '{value}'."}) from None


def _coerce(status: object) -> Optional[ShipmentStatus]:
    try:
        return ShipmentStatus(status)
    except ValueError:
        return None


def status_display(status: object) -> StatusDisplay:
    """Return display metadata, falling back to the pending entry."""

    return STATUS_DISPLAY[_coerce(status) or ShipmentStatus.PENDING]


def status_label(status: object) -> str:
    return status_display(status).label


def is_terminal(status: object) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def progress_index(status: object) -> int:
    """Return the position of ``status`` on the progress bar (0 when off it)."""

    resolved = _coerce(status)
    if resolved in PROGRESS_STEPS:
        return PROGRESS_STEPS.index(resolved)
    return 0


def progress_percent(status: object) -> int:
    return _PROGRESS_PERCENT[progress_index(status)]


def validate_transition(current: object, requested: object) -> None:
    """Reject a status change under hardened transition rules.

    Re-recording the current status (for example a second ``in_transit``
    scan at a new location) is always allowed.

    Raises:
        StatusTransitionError: When leaving a terminal state, or moving
            backwards along :data:`PROGRESS_STEPS`.
    """

    current_status = parse_status(current)
    requested_status = parse_status(requested)
    if current_status == requested_status:
        return
    if current_status in TERMINAL_STATUSES:
        raise StatusTransitionError(current_status.value, requested_status.value)
    if requested_status == ShipmentStatus.CANCELLED:
        return
    if PROGRESS_STEPS.index(requested_status) < PROGRESS_STEPS.index(current_status):
        raise StatusTransitionError(current_status.value, requested_status.value)


def sort_timeline(events: Iterable, *, newest_first: bool = True) -> List:
    """Order events for display.

    Storage always returns events oldest first; each view picks its own
    order here. Ties on ``created_at`` fall back to insertion id.
    """

    return sorted(
        events,
        key=lambda event: (event.created_at, event.id or 0),
        reverse=newest_first,
    )


TRACKING_PREFIX = "GE"
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def generate_tracking_number(length: int = 10) -> str:
    """Return a random tracking number such as ``GE7K2M9Q4ZP1X``.

    Uniqueness is guaranteed by the ``tracking_number`` unique constraint;
    :class:`~shipping_portal.repositories.ShipmentRepository` retries on
    collision.
    """

    body = "".join(secrets.choice(_TRACKING_ALPHABET) for _ in range(length))
    return f"{TRACKING_PREFIX}{body}"


def normalise_tracking_number(value: Optional[str]) -> str:
    return "".join((value or "").split()).upper()
