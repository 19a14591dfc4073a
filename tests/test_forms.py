"""Tests for form parsing helpers."""

from __future__ import annotations

from decimal import Decimal

from shipping_portal.forms import (
    parse_booking_form,
    parse_event_form,
    parse_quote_form,
    parse_save_quote_form,
)
from shipping_portal.tracking import ShipmentStatus

QUOTE_FORM = {
    "origin": "United States",
    "destination": "Germany",
    "weight": "5.5",
    "length": "30",
    "width": "20",
    "height": "15",
}


def _booking_form(**overrides) -> dict:
    form = {
        "package_description": "Books",
        "sender_full_name": "Ada Lovelace",
        "sender_phone": "555-0100",
        "sender_email": "ada@example.com",
        "sender_address_line1": "1 Main St",
        "sender_city": "New York",
        "sender_postal_code": "10001",
        "sender_country": "United States",
        "recipient_full_name": "Charles Babbage",
        "recipient_phone": "555-0200",
        "recipient_address_line1": "2 Hauptstrasse",
        "recipient_city": "Berlin",
        "recipient_postal_code": "10115",
        "recipient_country": "Germany",
        "agreed_to_terms": "on",
    }
    form.update(overrides)
    return form


def test_parse_quote_form():
    quote, errors = parse_quote_form(QUOTE_FORM)
    assert errors == []
    assert len(quote.offers) == 4

    quote, errors = parse_quote_form({**QUOTE_FORM, "weight": "-2", "origin": ""})
    assert quote is None
    assert "Origin country is required." in errors
    assert "Weight must be a number greater than zero." in errors


def test_parse_save_quote_form_recomputes_price():
    data, errors = parse_save_quote_form({**QUOTE_FORM, "service": "express", "price": "1"})
    assert errors == []
    assert data.offer.price == Decimal("195.62")

    data, errors = parse_save_quote_form({**QUOTE_FORM, "service": "teleport"})
    assert data is None
    assert errors == ["Please choose one of the offered services."]


def test_parse_booking_form_valid():
    data, errors = parse_booking_form(
        _booking_form(declared_value="250", insurance="on", special_instructions=" Fragile ")
    )

    assert errors == []
    assert data.sender.city_country == "New York, United States"
    assert data.recipient.city_country == "Berlin, Germany"
    assert data.declared_value == Decimal("250")
    assert data.insurance is True
    assert data.special_instructions == "Fragile"


def test_recipient_same_as_sender():
    form = _booking_form(recipient_same_as_sender="on")
    for key in list(form):
        if key.startswith("recipient_") and key != "recipient_same_as_sender":
            del form[key]

    data, errors = parse_booking_form(form)

    assert errors == []
    assert data.recipient.full_name == "Ada Lovelace"
    assert data.recipient.city_country == data.sender.city_country


def test_parse_booking_form_errors():
    data, errors = parse_booking_form(
        _booking_form(
            package_description="",
            sender_phone="",
            recipient_city="",
            declared_value="-5",
            agreed_to_terms="",
        )
    )

    assert data is None
    assert "Package description is required." in errors
    assert "Sender phone required." in errors
    assert "Recipient city required." in errors
    assert "Declared value cannot be negative." in errors
    assert "Please agree to the terms and conditions." in errors


def test_parse_booking_form_rejects_non_numeric_value():
    data, errors = parse_booking_form(_booking_form(declared_value="lots"))

    assert data is None
    assert errors == ["Declared value must be a number."]


def test_parse_event_form():
    data, errors = parse_event_form({"status": "customs", "location": "Frankfurt"})
    assert errors == []
    assert data.status is ShipmentStatus.CUSTOMS
    assert data.description is None

    data, errors = parse_event_form({"status": "lost", "location": ""})
    assert data is None
    assert len(errors) == 2
