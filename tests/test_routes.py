"""End-to-end tests for the HTTP routes."""

from __future__ import annotations

from shipping_portal.services.shipments import record_event

QUOTE_FORM = {
    "origin": "United States",
    "destination": "Germany",
    "weight": "5.5",
    "length": "30",
    "width": "20",
    "height": "15",
}

BOOKING_FORM = {
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


def test_index_redirects_to_calculator(client):
    response = client.get("/")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/quotes/")


def test_calculator_prices_every_service(client):
    assert client.get("/quotes/").status_code == 200

    response = client.post("/quotes/", data=QUOTE_FORM)

    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "195.62" in body
    assert "Economy Sea" in body


def test_calculator_reports_invalid_input(client):
    response = client.post("/quotes/", data={**QUOTE_FORM, "height": "0"})

    assert response.status_code == 400
    assert "Height must be a number greater than zero." in response.get_data(as_text=True)


def test_quote_api(client):
    response = client.post("/quotes/api", json=QUOTE_FORM)

    assert response.status_code == 200
    payload = response.get_json()
    assert [option["id"] for option in payload["options"]] == [
        "express",
        "standard",
        "ground",
        "economy",
    ]
    assert payload["options"][0]["price"] == 195.62

    invalid = client.post("/quotes/api", json={**QUOTE_FORM, "weight": "heavy"})
    assert invalid.status_code == 400
    assert set(invalid.get_json()["errors"]) == {"weight"}


def test_quote_api_rejects_non_object_body(client):
    response = client.post("/quotes/api", json=[1, 2])

    assert response.status_code == 400
    assert response.get_json() == {"errors": {"body": "Expected a JSON object."}}

    empty = client.post("/quotes/api", json={})
    assert empty.status_code == 400
    assert "origin" in empty.get_json()["errors"]


def test_saving_requires_identity(client):
    response = client.post("/quotes/save", data={**QUOTE_FORM, "service": "express"})

    assert response.status_code == 401


def test_save_book_and_track_flow(client, customer_headers, quote_repo):
    saved = client.post(
        "/quotes/save", data={**QUOTE_FORM, "service": "express"}, headers=customer_headers
    )
    assert saved.status_code == 302
    assert saved.headers["Location"].endswith("/quotes/mine")

    dashboard = client.get("/quotes/mine", headers=customer_headers)
    assert "Express Air" in dashboard.get_data(as_text=True)
    quote_id = quote_repo.list_for_user("user-1")[0].id

    form_page = client.get(f"/book/{quote_id}", headers=customer_headers)
    assert form_page.status_code == 200

    booked = client.post(f"/book/{quote_id}", data=BOOKING_FORM, headers=customer_headers)
    assert booked.status_code == 302
    location = booked.headers["Location"]
    assert "/book/confirmed/GE" in location
    tracking_number = location.rsplit("/", 1)[-1]

    confirmed = client.get(f"/book/confirmed/{tracking_number}", headers=customer_headers)
    assert confirmed.status_code == 200
    assert tracking_number in confirmed.get_data(as_text=True)

    rebook = client.get(f"/book/{quote_id}", headers=customer_headers)
    assert rebook.status_code == 302
    assert rebook.headers["Location"].endswith(f"/book/confirmed/{tracking_number}")

    again = client.post(f"/book/{quote_id}", data=BOOKING_FORM, headers=customer_headers)
    assert again.headers["Location"].endswith(f"/book/confirmed/{tracking_number}")

    tracking = client.get(f"/track/{tracking_number}")
    assert tracking.status_code == 200
    assert "Shipment booked, awaiting pickup" in tracking.get_data(as_text=True)

    mine = client.get("/shipments/mine", headers=customer_headers)
    assert tracking_number in mine.get_data(as_text=True)


def test_booking_form_errors(client, customer_headers, make_saved_quote):
    saved = make_saved_quote()

    response = client.post(
        f"/book/{saved.id}",
        data={**BOOKING_FORM, "agreed_to_terms": ""},
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert "Please agree to the terms and conditions." in response.get_data(as_text=True)


def test_other_users_cannot_see_quotes(client, other_customer_headers, make_saved_quote):
    saved = make_saved_quote()

    assert client.get(f"/book/{saved.id}", headers=other_customer_headers).status_code == 404
    delete = client.post(f"/quotes/{saved.id}/delete", headers=other_customer_headers)
    assert delete.status_code == 404


def test_confirmation_page_is_private(client, other_customer_headers, make_shipment):
    shipment = make_shipment()

    response = client.get(
        f"/book/confirmed/{shipment.tracking_number}", headers=other_customer_headers
    )

    assert response.status_code == 404


def test_callback_and_delete(client, customer_headers, quote_repo, make_saved_quote):
    saved = make_saved_quote()

    response = client.post(f"/quotes/{saved.id}/callback", headers=customer_headers)
    assert response.status_code == 302
    assert quote_repo.get(saved.id).status == "callback_requested"

    response = client.post(f"/quotes/{saved.id}/delete", headers=customer_headers)
    assert response.status_code == 302
    assert quote_repo.list_for_user("user-1") == []


def test_tracking_search_and_unknown_number(client, make_shipment):
    shipment = make_shipment()

    search = client.get(f"/track/?number={shipment.tracking_number.lower()}")
    assert search.status_code == 302
    assert search.headers["Location"].endswith(f"/track/{shipment.tracking_number}")

    missing = client.get("/track/GE0000000000")
    assert missing.status_code == 404
    assert "No shipment found for tracking number GE0000000000" in missing.get_data(
        as_text=True
    )


def test_tracking_json(client, shipment_repo, make_shipment):
    shipment = make_shipment()
    record_event(shipment_repo, shipment.id, "in_transit", "Atlantic")

    response = client.get(f"/track/{shipment.tracking_number}.json")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["shipment"]["status"] == "in_transit"
    assert payload["progress"] == 40
    assert "customer_email" not in payload["shipment"]
    assert [event["status"] for event in payload["events"]] == ["in_transit", "pending"]

    assert client.get("/track/GE0000000000.json").status_code == 404


def test_admin_routes_require_admin_role(client, customer_headers):
    assert client.get("/admin/shipments").status_code == 401
    assert client.get("/admin/shipments", headers=customer_headers).status_code == 403
    assert client.get("/admin/analytics", headers=customer_headers).status_code == 403


def test_admin_lists_and_filters_shipments(client, admin_headers, make_shipment):
    berlin = make_shipment()
    tokyo = make_shipment(destination="Tokyo, Japan")

    listing = client.get("/admin/shipments", headers=admin_headers)
    assert listing.status_code == 200
    body = listing.get_data(as_text=True)
    assert berlin.tracking_number in body and tokyo.tracking_number in body

    filtered = client.get("/admin/shipments?q=tokyo", headers=admin_headers)
    body = filtered.get_data(as_text=True)
    assert tokyo.tracking_number in body
    assert berlin.tracking_number not in body

    detail = client.get(f"/admin/shipments/{berlin.id}", headers=admin_headers)
    assert detail.status_code == 200


def test_admin_updates_status_and_adds_events(client, admin_headers, shipment_repo, make_shipment):
    shipment = make_shipment()

    response = client.post(
        f"/admin/shipments/{shipment.id}/status",
        data={"status": "picked_up", "location": "Newark, NJ"},
        headers=admin_headers,
    )
    assert response.status_code == 302

    response = client.post(
        f"/admin/shipments/{shipment.id}/events",
        data={"status": "customs", "location": "Frankfurt", "description": "Held for inspection"},
        headers=admin_headers,
    )
    assert response.status_code == 302

    updated = shipment_repo.get(shipment.id)
    assert updated.status == "customs"
    assert updated.current_location == "Frankfurt"
    descriptions = [event.description for event in shipment_repo.events(shipment.id)]
    assert descriptions[1:] == ["Status updated to Picked Up", "Held for inspection"]


def test_admin_form_errors(client, admin_headers, make_shipment):
    shipment = make_shipment()

    response = client.post(
        f"/admin/shipments/{shipment.id}/events",
        data={"status": "teleported", "location": ""},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert "Location is required." in response.get_data(as_text=True)


def test_admin_transition_enforcement(app, client, admin_headers, shipment_repo, make_shipment):
    app.config["ENFORCE_STATUS_TRANSITIONS"] = True
    shipment = make_shipment()
    record_event(shipment_repo, shipment.id, "delivered", "Berlin")

    response = client.post(
        f"/admin/shipments/{shipment.id}/status",
        data={"status": "in_transit", "location": "Hamburg"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert "Cannot move a shipment" in response.get_data(as_text=True)
    assert shipment_repo.get(shipment.id).status == "delivered"


def test_admin_analytics(client, admin_headers, make_shipment):
    make_shipment()

    response = client.get("/admin/analytics?period=7", headers=admin_headers)

    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "Total shipments" in body
    assert "Last 7 days" in body
