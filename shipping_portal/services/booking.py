"""Saved quote and booking workflow.

A saved quote is booked exactly once. :func:`book_saved_quote` creates the
shipment, its first event and the quote's ``booked`` status in one
transaction; repeating the call for a booked quote returns the original
shipment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app

from ..database import utcnow
from ..errors import PersistenceError, ValidationError
from ..forms import BookingFormData
from ..identity import PortalUser
from ..models import SavedQuote, Shipment
from ..quote import Offer, Quote, leading_delivery_days
from ..quote.pricing import round_half_up
from ..repositories import ProfileRepository, SavedQuoteRepository, ShipmentRepository
from ..tracking import ShipmentStatus
from .notifications import (
    BOOKING_CONFIRMED,
    CALLBACK_CUSTOMER,
    CALLBACK_TEAM,
    QUOTE_SAVED,
    NotificationPayload,
    Notifier,
)

logger = logging.getLogger(__name__)

INSURANCE_RATE = Decimal("0.02")
INITIAL_EVENT_DESCRIPTION = "Shipment booked, awaiting pickup"


@dataclass(frozen=True)
class BookingTotal:
    """Amounts shown on the booking review step."""

    shipping: Decimal
    insurance: Decimal
    total: Decimal


@dataclass(frozen=True)
class BookingResult:
    shipment: Shipment
    created: bool
    total: BookingTotal


def booking_total(
    price: float | Decimal,
    declared_value: Optional[Decimal] = None,
    insurance: bool = False,
) -> BookingTotal:
    """Return the shipping price plus optional insurance at 2% of value.

    The saved quote's price is never changed by insurance.
    """

    shipping = round_half_up(Decimal(str(price)))
    premium = Decimal("0.00")
    if insurance and declared_value:
        premium = round_half_up(declared_value * INSURANCE_RATE)
    return BookingTotal(shipping=shipping, insurance=premium, total=shipping + premium)


def quote_payload(quote: SavedQuote, **extra) -> NotificationPayload:
    return NotificationPayload(
        origin=quote.origin,
        destination=quote.destination,
        service=quote.selected_service,
        price=quote.price,
        delivery_days=quote.delivery_days,
        weight=quote.chargeable_weight,
        **extra,
    )


def save_quote(
    quotes: SavedQuoteRepository,
    user: PortalUser,
    quote: Quote,
    offer: Offer,
    *,
    notifier: Optional[Notifier] = None,
) -> SavedQuote:
    """Persist the chosen offer for ``user`` and send the quote email."""

    saved = quotes.create(
        SavedQuote(
            user_id=user.id,
            origin=quote.origin,
            destination=quote.destination,
            actual_weight=float(quote.actual_weight),
            volumetric_weight=float(quote.display_volumetric_weight),
            chargeable_weight=float(quote.display_chargeable_weight),
            length=float(quote.length),
            width=float(quote.width),
            height=float(quote.height),
            selected_service=offer.name,
            price=float(offer.price),
            delivery_days=offer.days,
        )
    )
    logger.info("Saved quote %s for user %s", saved.id, user.id)
    if notifier is not None:
        notifier.dispatch(QUOTE_SAVED, user.email, quote_payload(saved))
    return saved


def get_bookable_quote(
    quotes: SavedQuoteRepository, saved_quote_id: int, user: PortalUser
) -> SavedQuote:
    """Return the user's quote if it exists.

    Raises:
        NotFoundError: When the quote is missing or owned by someone else.
    """

    return quotes.get(saved_quote_id, user_id=user.id)


def book_saved_quote(
    quotes: SavedQuoteRepository,
    shipments: ShipmentRepository,
    saved_quote_id: int,
    booking: BookingFormData,
    user: PortalUser,
    *,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> BookingResult:
    """Book a saved quote into a shipment.

    Args:
        quotes: Saved quote storage.
        shipments: Shipment storage.
        saved_quote_id: Quote being booked.
        booking: Validated booking form.
        user: Owner of the quote.
        notifier: Sends the confirmation email when provided.
        now: Reference time for the estimated delivery date.

    Returns:
        BookingResult: The shipment and whether this call created it. A
        retried booking returns the existing shipment with ``created`` false
        and sends no second email.

    Raises:
        NotFoundError: When the quote is missing or not owned by ``user``.
        PersistenceError: When the booking transaction fails; nothing is
            written in that case.
    """

    saved = get_bookable_quote(quotes, saved_quote_id, user)
    total = booking_total(saved.price, booking.declared_value, booking.insurance)

    reference = now or utcnow()
    days = leading_delivery_days(saved.delivery_days)
    origin = booking.sender.city_country
    shipment, created = shipments.book(
        saved.id,
        Shipment(
            tracking_number="",
            origin=origin,
            destination=booking.recipient.city_country,
            current_location=origin,
            status=ShipmentStatus.PENDING.value,
            service_type=saved.selected_service,
            weight=saved.chargeable_weight,
            user_id=user.id,
            customer_email=booking.sender.email or user.email or None,
            customer_name=booking.sender.full_name,
            estimated_delivery=reference + timedelta(days=days),
        ),
        initial_description=INITIAL_EVENT_DESCRIPTION,
    )

    if not created:
        logger.info(
            "Quote %s already booked as %s; returning existing shipment",
            saved.id,
            shipment.tracking_number,
        )
        return BookingResult(shipment=shipment, created=False, total=total)

    logger.info("Booked quote %s as shipment %s", saved.id, shipment.tracking_number)
    if notifier is not None:
        notifier.dispatch(
            BOOKING_CONFIRMED,
            shipment.customer_email,
            quote_payload(
                saved,
                tracking_number=shipment.tracking_number,
                estimated_delivery=shipment.estimated_delivery,
                customer_name=shipment.customer_name,
            ),
            shipment_id=shipment.id,
        )
    return BookingResult(shipment=shipment, created=True, total=total)


def request_callback(
    quotes: SavedQuoteRepository,
    saved_quote_id: int,
    user: PortalUser,
    *,
    profiles: Optional[ProfileRepository] = None,
    notifier: Optional[Notifier] = None,
) -> SavedQuote:
    """Ask the team to call the customer about a saved quote.

    The quote moves ``saved`` → ``callback_requested``. The team email and
    the customer acknowledgement are best-effort and never undo the status
    change.

    Raises:
        NotFoundError: When the quote is missing or not owned by ``user``.
        ValidationError: When the quote is not in the ``saved`` state.
    """

    saved = quotes.get(saved_quote_id, user_id=user.id)
    if saved.status == "callback_requested":
        return saved
    changed = quotes.update_status(
        saved.id, "callback_requested", user_id=user.id, expected=("saved",)
    )
    if not changed:
        raise ValidationError(
            {"status": "A callback can only be requested for a saved quote."}
        )
    saved.status = "callback_requested"

    if notifier is not None:
        profile = None
        if profiles is not None:
            try:
                profile = profiles.get(user.id)
            except PersistenceError:
                logger.warning("Profile lookup failed for %s; emailing without it", user.id)
        contact = {
            "email": user.email,
            "full_name": profile.full_name if profile else "",
            "phone": profile.phone if profile else "",
            "company": profile.company if profile else "",
        }
        payload = quote_payload(
            saved,
            customer_name=contact["full_name"] or None,
            contact=contact,
        )
        notifier.dispatch(CALLBACK_TEAM, current_app.config.get("SUPPORT_EMAIL"), payload)
        notifier.dispatch(CALLBACK_CUSTOMER, user.email, payload)
    return saved


def delete_saved_quote(
    quotes: SavedQuoteRepository, saved_quote_id: int, user: PortalUser
) -> None:
    """Delete one of the user's saved quotes.

    Raises:
        NotFoundError: When the quote is missing or not owned by ``user``.
    """

    quotes.delete(saved_quote_id, user_id=user.id)
    logger.info("Deleted saved quote %s for user %s", saved_quote_id, user.id)


__all__ = [
    "INITIAL_EVENT_DESCRIPTION",
    "INSURANCE_RATE",
    "BookingResult",
    "BookingTotal",
    "book_saved_quote",
    "booking_total",
    "delete_saved_quote",
    "get_bookable_quote",
    "request_callback",
    "save_quote",
]
