"""Form parsing and validation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Mapping, Optional, Tuple

from .errors import ValidationError
from .quote import Offer, Quote, compute_quote, find_offer
from .tracking import ShipmentStatus, parse_status

ADDRESS_REQUIRED_FIELDS = (
    ("full_name", "full name"),
    ("phone", "phone"),
    ("address_line1", "address line 1"),
    ("city", "city"),
    ("postal_code", "postal code"),
    ("country", "country"),
)

TRUE_VALUES = {"on", "true", "1", "yes", "y"}


@dataclass(slots=True)
class Address:
    """Sender or recipient details captured on the booking form."""

    full_name: str
    phone: str
    address_line1: str
    city: str
    postal_code: str
    country: str
    company: str = ""
    email: str = ""
    address_line2: str = ""
    state: str = ""

    @property
    def city_country(self) -> str:
        return f"{self.city}, {self.country}"


@dataclass(slots=True)
class BookingFormData:
    """Validated booking form returned by :func:`parse_booking_form`."""

    package_description: str
    sender: Address
    recipient: Address
    declared_value: Optional[Decimal] = None
    insurance: bool = False
    special_instructions: str = ""


@dataclass(slots=True)
class SaveQuoteFormData:
    quote: Quote
    offer: Offer


@dataclass(slots=True)
class EventFormData:
    """Validated admin status/event submission."""

    status: ShipmentStatus
    location: str
    description: Optional[str] = None


def _text(form: Mapping[str, str], key: str) -> str:
    return (form.get(key) or "").strip()


def _checked(form: Mapping[str, str], key: str) -> bool:
    return _text(form, key).lower() in TRUE_VALUES


def parse_quote_form(form: Mapping[str, str]) -> Tuple[Optional[Quote], List[str]]:
    """Validate the calculator form and price every service.

    Returns a tuple of ``(quote, errors)``. ``quote`` is ``None`` when
    validation fails.
    """

    try:
        quote = compute_quote(
            _text(form, "origin"),
            _text(form, "destination"),
            _text(form, "weight"),
            _text(form, "length"),
            _text(form, "width"),
            _text(form, "height"),
        )
    except ValidationError as exc:
        return None, exc.messages
    return quote, []


def parse_save_quote_form(
    form: Mapping[str, str]
) -> Tuple[Optional[SaveQuoteFormData], List[str]]:
    """Re-price the submitted package and pick the chosen service.

    Prices are always recomputed from the physical inputs; the client never
    supplies an amount.
    """

    quote, errors = parse_quote_form(form)
    if quote is None:
        return None, errors
    offer = find_offer(quote, _text(form, "service"))
    if offer is None:
        return None, ["Please choose one of the offered services."]
    return SaveQuoteFormData(quote=quote, offer=offer), []


def _parse_address(
    form: Mapping[str, str], prefix: str, label: str, errors: List[str]
) -> Address:
    values = {
        name: _text(form, f"{prefix}_{name}")
        for name in (
            "full_name",
            "company",
            "phone",
            "email",
            "address_line1",
            "address_line2",
            "city",
            "state",
            "postal_code",
            "country",
        )
    }
    missing = [title for name, title in ADDRESS_REQUIRED_FIELDS if not values[name]]
    if missing:
        errors.append(f"{label} {', '.join(missing)} required.")
    return Address(**values)


def parse_booking_form(
    form: Mapping[str, str]
) -> Tuple[Optional[BookingFormData], List[str]]:
    """Validate a booking submission.

    Returns a tuple of ``(result, errors)``. ``result`` is ``None`` when
    validation fails.
    """

    errors: List[str] = []
    description = _text(form, "package_description")
    if not description:
        errors.append("Package description is required.")

    sender = _parse_address(form, "sender", "Sender", errors)
    if _checked(form, "recipient_same_as_sender"):
        recipient = Address(
            full_name=sender.full_name,
            phone=sender.phone,
            address_line1=sender.address_line1,
            city=sender.city,
            postal_code=sender.postal_code,
            country=sender.country,
            company=sender.company,
            email=sender.email,
            address_line2=sender.address_line2,
            state=sender.state,
        )
    else:
        recipient = _parse_address(form, "recipient", "Recipient", errors)

    declared_value: Optional[Decimal] = None
    raw_value = _text(form, "declared_value")
    if raw_value:
        try:
            declared_value = Decimal(raw_value)
        except InvalidOperation:
            errors.append("Declared value must be a number.")
        else:
            if not declared_value.is_finite() or declared_value < 0:
                errors.append("Declared value cannot be negative.")
                declared_value = None

    if not _checked(form, "agreed_to_terms"):
        errors.append("Please agree to the terms and conditions.")

    if errors:
        return None, errors
    return (
        BookingFormData(
            package_description=description,
            sender=sender,
            recipient=recipient,
            declared_value=declared_value,
            insurance=_checked(form, "insurance"),
            special_instructions=_text(form, "special_instructions"),
        ),
        [],
    )


def parse_event_form(
    form: Mapping[str, str]
) -> Tuple[Optional[EventFormData], List[str]]:
    """Validate the admin status/event form."""

    errors: List[str] = []
    status: Optional[ShipmentStatus] = None
    try:
        status = parse_status(_text(form, "status"))
    except ValidationError as exc:
        errors.extend(exc.messages)
    location = _text(form, "location")
    if not location:
        errors.append("Location is required.")
    if errors:
        return None, errors
    return (
        EventFormData(
            status=status,
            location=location,
            description=_text(form, "description") or None,
        ),
        [],
    )


__all__ = [
    "Address",
    "BookingFormData",
    "EventFormData",
    "SaveQuoteFormData",
    "parse_booking_form",
    "parse_event_form",
    "parse_quote_form",
    "parse_save_quote_form",
]
