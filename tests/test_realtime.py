"""Tests for the in-process change feed."""

from __future__ import annotations

from shipping_portal.realtime import ChangeFeed, get_change_feed


def test_publish_reaches_matching_subscribers_only():
    feed = ChangeFeed()
    received: list = []
    feed.subscribe("shipments", received.append, {"id": 1})
    feed.subscribe("shipment_events", received.append)

    delivered = feed.publish("shipments", {"id": 1, "status": "in_transit"})
    feed.publish("shipments", {"id": 2, "status": "in_transit"})

    assert delivered == 1
    assert len(received) == 1
    assert received[0].table == "shipments"
    assert received[0].event == "UPDATE"
    assert received[0].row["status"] == "in_transit"


def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    received: list = []

    def _broken(_change):
        raise RuntimeError("socket closed")

    feed.subscribe("shipment_events", _broken)
    feed.subscribe("shipment_events", received.append)

    delivered = feed.publish("shipment_events", {"shipment_id": 7}, event="INSERT")

    assert delivered == 1
    assert received[0].event == "INSERT"


def test_unsubscribe_stops_delivery():
    feed = ChangeFeed()
    received: list = []
    subscription = feed.subscribe("shipments", received.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    feed.publish("shipments", {"id": 1})

    assert received == []
    assert len(feed) == 0


def test_application_exposes_its_feed(app):
    with app.app_context():
        assert get_change_feed() is app.extensions["change_feed"]
