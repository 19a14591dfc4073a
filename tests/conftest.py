"""Test fixtures for the shipping portal."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from shipping_portal import AppConfig, create_app
from shipping_portal.models import SavedQuote, Shipment
from shipping_portal.repositories import (
    NotificationLogRepository,
    ProfileRepository,
    SavedQuoteRepository,
    ShipmentRepository,
)
from shipping_portal.services.booking import INITIAL_EVENT_DESCRIPTION

CUSTOMER_HEADERS = {
    "X-Auth-User-Id": "user-1",
    "X-Auth-User-Email": "ada@example.com",
    "X-Auth-User-Role": "customer",
}
OTHER_CUSTOMER_HEADERS = {
    "X-Auth-User-Id": "user-2",
    "X-Auth-User-Email": "grace@example.com",
}
ADMIN_HEADERS = {
    "X-Auth-User-Id": "admin-1",
    "X-Auth-User-Email": "ops@globalembrace.example",
    "X-Auth-User-Role": "admin",
}


@pytest.fixture()
def app(tmp_path: Path):
    """Return a Flask app backed by a throwaway SQLite database."""

    db_path = tmp_path / "test.db"
    config = AppConfig(
        database_url=f"sqlite:///{db_path}",
        secret_key="testing",
        mail_enabled=False,
        csrf_enabled=False,
        ratelimit_enabled=False,
    )
    application = create_app(config)
    application.config.update(TESTING=True)
    yield application


@pytest.fixture()
def client(app):
    """Return a Flask test client."""

    return app.test_client()


@pytest.fixture()
def customer_headers():
    return dict(CUSTOMER_HEADERS)


@pytest.fixture()
def other_customer_headers():
    return dict(OTHER_CUSTOMER_HEADERS)


@pytest.fixture()
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture()
def quote_repo(app) -> SavedQuoteRepository:
    return SavedQuoteRepository(app.config["DB_ENGINE"])


@pytest.fixture()
def shipment_repo(app) -> ShipmentRepository:
    return ShipmentRepository(app.config["DB_ENGINE"])


@pytest.fixture()
def log_repo(app) -> NotificationLogRepository:
    return NotificationLogRepository(app.config["DB_ENGINE"])


@pytest.fixture()
def profile_repo(app) -> ProfileRepository:
    return ProfileRepository(app.config["DB_ENGINE"])


@pytest.fixture()
def make_saved_quote(quote_repo):
    """Return a factory persisting an Express Air quote US → Germany."""

    def _make(user_id: str = "user-1", **overrides) -> SavedQuote:
        values = dict(
            user_id=user_id,
            origin="United States",
            destination="Germany",
            actual_weight=5.5,
            volumetric_weight=1.8,
            chargeable_weight=5.5,
            length=30.0,
            width=20.0,
            height=15.0,
            selected_service="Express Air",
            price=195.62,
            delivery_days="1-2",
        )
        values.update(overrides)
        return quote_repo.create(SavedQuote(**values))

    return _make


@pytest.fixture()
def make_shipment(make_saved_quote, shipment_repo):
    """Return a factory that books a fresh saved quote into a shipment."""

    def _make(user_id: str = "user-1", **overrides) -> Shipment:
        saved = make_saved_quote(user_id=user_id)
        values = dict(
            tracking_number="",
            origin="New York, United States",
            destination="Berlin, Germany",
            current_location="New York, United States",
            status="pending",
            service_type="Express Air",
            weight=5.5,
            user_id=user_id,
            customer_email="ada@example.com",
            customer_name="Ada Lovelace",
        )
        values.update(overrides)
        shipment, _ = shipment_repo.book(
            saved.id,
            Shipment(**values),
            initial_description=INITIAL_EVENT_DESCRIPTION,
        )
        return shipment

    return _make
