"""Repository integration tests against SQLite."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shipping_portal.database import utcnow
from shipping_portal.errors import NotFoundError, PersistenceError, StatusTransitionError
from shipping_portal.models import NotificationLog, Profile, Shipment
from shipping_portal.tracking import validate_transition


def _shipment_record(**overrides) -> Shipment:
    values = dict(
        tracking_number="",
        origin="New York, United States",
        destination="Berlin, Germany",
        current_location="New York, United States",
        status="pending",
        service_type="Express Air",
        weight=5.5,
        user_id="user-1",
        customer_email="ada@example.com",
    )
    values.update(overrides)
    return Shipment(**values)


def test_saved_quote_crud(quote_repo, make_saved_quote):
    first = make_saved_quote()
    second = make_saved_quote(selected_service="Ground", price=40.0)
    make_saved_quote(user_id="user-2")

    assert first.id is not None and first.created_at is not None
    assert quote_repo.get(first.id).selected_service == "Express Air"
    assert [quote.id for quote in quote_repo.list_for_user("user-1")] == [second.id, first.id]

    with pytest.raises(NotFoundError):
        quote_repo.get(first.id, user_id="user-2")

    assert quote_repo.update_status(first.id, "callback_requested", expected=("saved",))
    assert not quote_repo.update_status(first.id, "callback_requested", expected=("saved",))
    assert [quote.id for quote in quote_repo.list_all(status="callback_requested")] == [first.id]

    with pytest.raises(NotFoundError):
        quote_repo.delete(second.id, user_id="user-2")
    quote_repo.delete(second.id, user_id="user-1")
    with pytest.raises(NotFoundError):
        quote_repo.get(second.id)


def test_book_creates_shipment_event_and_marks_quote(quote_repo, shipment_repo, make_saved_quote):
    saved = make_saved_quote()

    shipment, created = shipment_repo.book(
        saved.id, _shipment_record(), initial_description="Shipment booked, awaiting pickup"
    )

    assert created
    assert shipment.tracking_number.startswith("GE")
    assert shipment.saved_quote_id == saved.id
    assert quote_repo.get(saved.id).status == "booked"
    events = shipment_repo.events(shipment.id)
    assert len(events) == 1
    assert events[0].status == "pending"
    assert events[0].location == "New York, United States"
    assert events[0].description == "Shipment booked, awaiting pickup"


def test_booking_twice_returns_existing_shipment(shipment_repo, make_saved_quote):
    saved = make_saved_quote()
    first, created = shipment_repo.book(saved.id, _shipment_record(), initial_description="Booked")

    again, created_again = shipment_repo.book(
        saved.id, _shipment_record(), initial_description="Booked"
    )

    assert created and not created_again
    assert again.id == first.id
    assert again.tracking_number == first.tracking_number
    assert len(shipment_repo.events(first.id)) == 1
    assert len(shipment_repo.list_all()) == 1


def test_tracking_number_collision_is_retried(monkeypatch, shipment_repo, make_saved_quote):
    numbers = iter(["GEDUPLICATE1", "GEDUPLICATE1", "GEFRESH00001"])
    monkeypatch.setattr(
        "shipping_portal.repositories.generate_tracking_number", lambda: next(numbers)
    )

    first, _ = shipment_repo.book(
        make_saved_quote().id, _shipment_record(), initial_description="Booked"
    )
    second, created = shipment_repo.book(
        make_saved_quote().id, _shipment_record(), initial_description="Booked"
    )

    assert first.tracking_number == "GEDUPLICATE1"
    assert created
    assert second.tracking_number == "GEFRESH00001"


def test_booking_a_deleted_quote_is_not_retried(monkeypatch, quote_repo, shipment_repo, make_saved_quote):
    drawn = []

    def fake_number():
        drawn.append(f"GEDELETED{len(drawn):03d}")
        return drawn[-1]

    monkeypatch.setattr("shipping_portal.repositories.generate_tracking_number", fake_number)
    saved = make_saved_quote()
    quote_repo.delete(saved.id, user_id=saved.user_id)

    with pytest.raises(NotFoundError):
        shipment_repo.book(saved.id, _shipment_record(), initial_description="Booked")
    assert len(drawn) == 1
    assert shipment_repo.get_by_saved_quote(saved.id) is None


def test_exhausted_tracking_numbers_raise(monkeypatch, shipment_repo, make_saved_quote):
    monkeypatch.setattr(
        "shipping_portal.repositories.generate_tracking_number", lambda: "GESAMENUMBER"
    )
    shipment_repo.book(make_saved_quote().id, _shipment_record(), initial_description="Booked")
    saved = make_saved_quote()

    with pytest.raises(PersistenceError):
        shipment_repo.book(saved.id, _shipment_record(), initial_description="Booked")
    assert shipment_repo.get_by_saved_quote(saved.id) is None


def test_append_event_mirrors_shipment_and_queues_notification(
    shipment_repo, log_repo, make_shipment
):
    shipment = make_shipment()

    event, updated = shipment_repo.append_event(
        shipment.id, "delivered", "Berlin, Germany", "Left at front desk",
        notification_type="delivery_complete",
    )

    assert event.id is not None
    assert updated.status == "delivered"
    assert updated.current_location == "Berlin, Germany"
    assert updated.actual_delivery is not None
    pending = log_repo.pending()
    assert [(log.email, log.notification_type) for log in pending] == [
        ("ada@example.com", "delivery_complete")
    ]

    _, reopened = shipment_repo.append_event(shipment.id, "in_transit", "Hamburg, Germany")
    assert reopened.actual_delivery is None
    assert [e.status for e in shipment_repo.events(shipment.id)] == [
        "pending",
        "delivered",
        "in_transit",
    ]


def test_append_event_without_customer_email_queues_nothing(
    shipment_repo, log_repo, make_shipment
):
    shipment = make_shipment(customer_email=None)

    shipment_repo.append_event(
        shipment.id, "picked_up", "Newark", notification_type="status_update"
    )

    assert log_repo.pending() == []


def test_rejected_transition_writes_nothing(shipment_repo, make_shipment):
    shipment = make_shipment()
    shipment_repo.append_event(shipment.id, "delivered", "Berlin, Germany")

    with pytest.raises(StatusTransitionError):
        shipment_repo.append_event(
            shipment.id, "in_transit", "Hamburg", check_transition=validate_transition
        )

    assert shipment_repo.get(shipment.id).status == "delivered"
    assert len(shipment_repo.events(shipment.id)) == 2


def test_append_event_for_missing_shipment(shipment_repo):
    with pytest.raises(NotFoundError):
        shipment_repo.append_event(999, "in_transit", "Nowhere")


def test_list_all_search_filter_and_counts(shipment_repo, make_shipment):
    berlin = make_shipment()
    tokyo = make_shipment(destination="Tokyo, Japan")
    shipment_repo.append_event(tokyo.id, "in_transit", "Anchorage")

    assert {s.id for s in shipment_repo.list_all(search="BERLIN")} == {berlin.id}
    assert shipment_repo.list_all(search=berlin.tracking_number.lower())[0].id == berlin.id
    assert shipment_repo.list_all(search="%") == []
    assert [s.id for s in shipment_repo.list_all(status="in_transit")] == [tokyo.id]
    assert [s.id for s in shipment_repo.list_all(newest_first=False)] == [berlin.id, tokyo.id]

    counts = shipment_repo.status_counts()
    assert counts["pending"] == 1
    assert counts["in_transit"] == 1
    assert counts["cancelled"] == 0


def test_deleting_quote_keeps_shipment(quote_repo, shipment_repo, make_shipment):
    shipment = make_shipment()

    quote_repo.delete(shipment.saved_quote_id, user_id="user-1")

    assert shipment_repo.get(shipment.id).saved_quote_id is None


def test_lookup_helpers(shipment_repo, make_shipment):
    shipment = make_shipment()
    make_shipment(user_id="user-2")

    assert shipment_repo.get_by_tracking_number(shipment.tracking_number).id == shipment.id
    assert shipment_repo.get_by_tracking_number("GENOTHING000") is None
    assert [s.id for s in shipment_repo.list_for_user("user-1")] == [shipment.id]
    with pytest.raises(NotFoundError):
        shipment_repo.get(12345)


def test_notification_log_lifecycle(log_repo):
    first = log_repo.add(NotificationLog(email="Ada@Example.com", notification_type="status_update"))
    second = log_repo.add(NotificationLog(email="bob@example.com", notification_type="status_update"))

    assert [log.id for log in log_repo.pending()] == [first.id, second.id]
    assert [log.id for log in log_repo.pending(limit=1)] == [first.id]

    log_repo.mark_sent(first.id)
    log_repo.mark_failed(second.id, "SMTP down")

    assert log_repo.get(first.id).sent_at is not None
    assert log_repo.get(second.id).status == "failed"
    assert log_repo.get(second.id).error_message == "SMTP down"
    assert log_repo.pending() == []
    assert log_repo.count_sent_since("ada@example.com", utcnow() - timedelta(days=1)) == 1
    assert log_repo.count_sent_since("ada@example.com", utcnow() + timedelta(minutes=1)) == 0


def test_profile_upsert(profile_repo):
    assert profile_repo.get("user-1") is None

    profile_repo.upsert(Profile(user_id="user-1", full_name="Ada", phone="555"))
    profile_repo.upsert(Profile(user_id="user-1", full_name="Ada Lovelace", company="Engines"))

    stored = profile_repo.get("user-1")
    assert stored.full_name == "Ada Lovelace"
    assert stored.phone == ""
    assert stored.company == "Engines"
