"""Domain records exchanged between repositories, services and views.

These dataclasses intentionally avoid persistence concerns; the
repositories convert SQLAlchemy rows into them and back.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

SAVED_QUOTE_STATUSES = ("saved", "callback_requested", "booked")

NOTIFICATION_TYPES = (
    "quote_saved",
    "booking_confirmed",
    "status_update",
    "delivery_complete",
)


def _serialise(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in values.items()
    }


@dataclass(slots=True)
class SavedQuote:
    """A computed quote and chosen offer persisted for a user."""

    user_id: str
    origin: str
    destination: str
    actual_weight: float
    volumetric_weight: float
    chargeable_weight: float
    length: float
    width: float
    height: float
    selected_service: str
    price: float
    delivery_days: str
    status: str = "saved"
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return _serialise(asdict(self))


@dataclass(slots=True)
class Shipment:
    """A booked shipment. ``status`` and ``current_location`` mirror the
    latest :class:`ShipmentEvent`."""

    tracking_number: str
    origin: str
    destination: str
    current_location: str
    status: str
    service_type: str
    weight: float
    user_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    saved_quote_id: Optional[int] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return _serialise(asdict(self))


@dataclass(slots=True)
class ShipmentEvent:
    """Append-only history entry for a shipment."""

    shipment_id: int
    status: str
    location: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return _serialise(asdict(self))


@dataclass(slots=True)
class Profile:
    """Contact details kept for a customer account."""

    user_id: str
    full_name: str = ""
    phone: str = ""
    company: str = ""


@dataclass(slots=True)
class NotificationLog:
    """Audit/queue entry for an outbound customer email."""

    email: str
    notification_type: str
    status: str = "pending"
    shipment_id: Optional[int] = None
    error_message: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None


__all__ = [
    "SAVED_QUOTE_STATUSES",
    "NOTIFICATION_TYPES",
    "SavedQuote",
    "Shipment",
    "ShipmentEvent",
    "Profile",
    "NotificationLog",
]
