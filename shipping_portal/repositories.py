"""Database access layer for quotes, shipments and notifications."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .database import (
    notification_logs,
    profiles,
    saved_quotes,
    session_scope,
    shipment_events,
    shipments,
    utcnow,
)
from .errors import NotFoundError, PersistenceError
from .models import NotificationLog, Profile, SavedQuote, Shipment, ShipmentEvent
from .tracking import ShipmentStatus, generate_tracking_number

logger = logging.getLogger(__name__)

MAX_TRACKING_NUMBER_ATTEMPTS = 5

TransitionCheck = Callable[[str, str], None]


@contextmanager
def _persistence_guard(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into :class:`PersistenceError`."""

    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Database error while trying to %s", action)
        raise PersistenceError(f"Could not {action}. Please try again.") from exc


class SavedQuoteRepository:
    """CRUD operations for quotes saved from the calculator."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def create(self, quote: SavedQuote) -> SavedQuote:
        """Persist ``quote`` and return it with its id and timestamp."""

        created_at = utcnow()
        payload = {
            "user_id": quote.user_id,
            "origin": quote.origin,
            "destination": quote.destination,
            "actual_weight": quote.actual_weight,
            "volumetric_weight": quote.volumetric_weight,
            "chargeable_weight": quote.chargeable_weight,
            "length": quote.length,
            "width": quote.width,
            "height": quote.height,
            "selected_service": quote.selected_service,
            "price": quote.price,
            "delivery_days": quote.delivery_days,
            "status": quote.status,
            "created_at": created_at,
        }
        with _persistence_guard("save the quote"):
            with session_scope(self._engine) as session:
                quote_id = session.execute(
                    insert(saved_quotes).values(**payload).returning(saved_quotes.c.id)
                ).scalar_one()
        return replace(quote, id=quote_id, created_at=created_at)

    def get(self, quote_id: int, *, user_id: Optional[str] = None) -> SavedQuote:
        """Return a saved quote, optionally scoped to its owner.

        Raises:
            NotFoundError: When no quote matches (including a quote owned by
                another user).
        """

        query = select(saved_quotes).where(saved_quotes.c.id == quote_id)
        if user_id is not None:
            query = query.where(saved_quotes.c.user_id == user_id)
        with _persistence_guard("load the quote"):
            with session_scope(self._engine) as session:
                row = session.execute(query).one_or_none()
        if row is None:
            raise NotFoundError(f"Saved quote {quote_id} not found")
        return self._row_to_quote(row)

    def list_for_user(self, user_id: str) -> List[SavedQuote]:
        """Return a user's quotes, newest first."""

        with _persistence_guard("load your quotes"):
            with session_scope(self._engine) as session:
                rows = session.execute(
                    select(saved_quotes)
                    .where(saved_quotes.c.user_id == user_id)
                    .order_by(saved_quotes.c.created_at.desc(), saved_quotes.c.id.desc())
                ).all()
        return [self._row_to_quote(row) for row in rows]

    def list_all(self, *, status: Optional[str] = None) -> List[SavedQuote]:
        query = select(saved_quotes).order_by(saved_quotes.c.created_at)
        if status:
            query = query.where(saved_quotes.c.status == status)
        with _persistence_guard("load quotes"):
            with session_scope(self._engine) as session:
                rows = session.execute(query).all()
        return [self._row_to_quote(row) for row in rows]

    def update_status(
        self,
        quote_id: int,
        status: str,
        *,
        user_id: Optional[str] = None,
        expected: Optional[Iterable[str]] = None,
    ) -> bool:
        """Move a quote to ``status``.

        Args:
            quote_id: Quote to update.
            status: New status value.
            user_id: When given, only the owner's quote is updated.
            expected: When given, the update only applies while the current
                status is one of these values.

        Returns:
            bool: ``True`` when a row changed.
        """

        statement = update(saved_quotes).where(saved_quotes.c.id == quote_id)
        if user_id is not None:
            statement = statement.where(saved_quotes.c.user_id == user_id)
        if expected is not None:
            statement = statement.where(saved_quotes.c.status.in_(list(expected)))
        with _persistence_guard("update the quote"):
            with session_scope(self._engine) as session:
                result = session.execute(statement.values(status=status))
        return result.rowcount > 0

    def delete(self, quote_id: int, *, user_id: str) -> None:
        """Remove one of ``user_id``'s quotes.

        Raises:
            NotFoundError: When the quote does not exist or is not owned by
                ``user_id``.
        """

        with _persistence_guard("delete the quote"):
            with session_scope(self._engine) as session:
                result = session.execute(
                    delete(saved_quotes).where(
                        saved_quotes.c.id == quote_id,
                        saved_quotes.c.user_id == user_id,
                    )
                )
        if result.rowcount == 0:
            raise NotFoundError(f"Saved quote {quote_id} not found")

    @staticmethod
    def _row_to_quote(row) -> SavedQuote:
        data = row._mapping
        return SavedQuote(
            id=data["id"],
            user_id=data["user_id"],
            origin=data["origin"],
            destination=data["destination"],
            actual_weight=data["actual_weight"],
            volumetric_weight=data["volumetric_weight"],
            chargeable_weight=data["chargeable_weight"],
            length=data["length"],
            width=data["width"],
            height=data["height"],
            selected_service=data["selected_service"],
            price=data["price"],
            delivery_days=data["delivery_days"],
            status=data["status"],
            created_at=data["created_at"],
        )


class ShipmentRepository:
    """Shipments and their append-only event history."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def book(
        self,
        saved_quote_id: int,
        shipment: Shipment,
        *,
        initial_description: str,
    ) -> Tuple[Shipment, bool]:
        """Create the shipment for a saved quote in a single transaction.

        The shipment row, its first event and the quote's move to ``booked``
        commit together. A quote that already has a shipment returns that
        shipment instead, so a retried or concurrent booking never produces a
        second one.

        Args:
            saved_quote_id: Quote being booked.
            shipment: Shipment fields; ``tracking_number`` is assigned here.
            initial_description: Description of the first timeline event.

        Returns:
            Tuple[Shipment, bool]: The shipment and whether it was created by
            this call.

        Raises:
            PersistenceError: When the transaction fails or no unique tracking
                number could be allocated.
            NotFoundError: When the saved quote was deleted before the
                shipment could be inserted.
        """

        for attempt in range(1, MAX_TRACKING_NUMBER_ATTEMPTS + 1):
            tracking_number = generate_tracking_number()
            try:
                with session_scope(self._engine) as session:
                    existing = session.execute(
                        select(shipments).where(
                            shipments.c.saved_quote_id == saved_quote_id
                        )
                    ).one_or_none()
                    if existing is not None:
                        return self._row_to_shipment(existing), False

                    now = utcnow()
                    shipment_id = session.execute(
                        insert(shipments)
                        .values(
                            tracking_number=tracking_number,
                            user_id=shipment.user_id,
                            customer_email=shipment.customer_email,
                            customer_name=shipment.customer_name,
                            saved_quote_id=saved_quote_id,
                            origin=shipment.origin,
                            destination=shipment.destination,
                            current_location=shipment.current_location,
                            status=shipment.status,
                            service_type=shipment.service_type,
                            weight=shipment.weight,
                            estimated_delivery=shipment.estimated_delivery,
                            created_at=now,
                            updated_at=now,
                        )
                        .returning(shipments.c.id)
                    ).scalar_one()
                    session.execute(
                        insert(shipment_events).values(
                            shipment_id=shipment_id,
                            status=shipment.status,
                            location=shipment.current_location,
                            description=initial_description,
                            created_at=now,
                        )
                    )
                    session.execute(
                        update(saved_quotes)
                        .where(saved_quotes.c.id == saved_quote_id)
                        .values(status="booked")
                    )
                    row = session.execute(
                        select(shipments).where(shipments.c.id == shipment_id)
                    ).one()
                return self._row_to_shipment(row), True
            except IntegrityError:
                winner = self.get_by_saved_quote(saved_quote_id)
                if winner is not None:
                    logger.info(
                        "Saved quote %s was booked concurrently as %s",
                        saved_quote_id,
                        winner.tracking_number,
                    )
                    return winner, False
                if not self._saved_quote_exists(saved_quote_id):
                    raise NotFoundError(f"Saved quote {saved_quote_id} not found")
                logger.warning(
                    "Tracking number collision on attempt %s for quote %s",
                    attempt,
                    saved_quote_id,
                )
            except SQLAlchemyError as exc:
                logger.exception("Database error while booking quote %s", saved_quote_id)
                raise PersistenceError(
                    "Could not book the shipment. Please try again."
                ) from exc

        raise PersistenceError("Could not allocate a tracking number. Please try again.")

    def _saved_quote_exists(self, saved_quote_id: int) -> bool:
        with _persistence_guard("load the saved quote"):
            with session_scope(self._engine) as session:
                found = session.execute(
                    select(saved_quotes.c.id).where(saved_quotes.c.id == saved_quote_id)
                ).first()
        return found is not None

    def get(self, shipment_id: int) -> Shipment:
        """Return a shipment by id or raise :class:`NotFoundError`."""

        with _persistence_guard("load the shipment"):
            with session_scope(self._engine) as session:
                row = session.execute(
                    select(shipments).where(shipments.c.id == shipment_id)
                ).one_or_none()
        if row is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return self._row_to_shipment(row)

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        with _persistence_guard("look up the tracking number"):
            with session_scope(self._engine) as session:
                row = session.execute(
                    select(shipments).where(
                        shipments.c.tracking_number == tracking_number
                    )
                ).one_or_none()
        return self._row_to_shipment(row) if row is not None else None

    def get_by_saved_quote(self, saved_quote_id: int) -> Optional[Shipment]:
        with _persistence_guard("load the shipment"):
            with session_scope(self._engine) as session:
                row = session.execute(
                    select(shipments).where(shipments.c.saved_quote_id == saved_quote_id)
                ).one_or_none()
        return self._row_to_shipment(row) if row is not None else None

    def list_for_user(self, user_id: str) -> List[Shipment]:
        """Return a customer's shipments, newest first."""

        with _persistence_guard("load your shipments"):
            with session_scope(self._engine) as session:
                rows = session.execute(
                    select(shipments)
                    .where(shipments.c.user_id == user_id)
                    .order_by(shipments.c.created_at.desc(), shipments.c.id.desc())
                ).all()
        return [self._row_to_shipment(row) for row in rows]

    def list_all(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        newest_first: bool = True,
    ) -> List[Shipment]:
        """Return shipments for the admin list.

        Args:
            search: Case-insensitive substring matched against the tracking
                number, origin and destination.
            status: Only return shipments in this status.
            newest_first: Sort direction on ``created_at``.
        """

        query = select(shipments)
        term = (search or "").strip().lower()
        if term:
            query = query.where(
                or_(
                    func.lower(shipments.c.tracking_number).contains(term, autoescape=True),
                    func.lower(shipments.c.origin).contains(term, autoescape=True),
                    func.lower(shipments.c.destination).contains(term, autoescape=True),
                )
            )
        if status:
            query = query.where(shipments.c.status == status)
        if newest_first:
            query = query.order_by(shipments.c.created_at.desc(), shipments.c.id.desc())
        else:
            query = query.order_by(shipments.c.created_at, shipments.c.id)
        with _persistence_guard("load shipments"):
            with session_scope(self._engine) as session:
                rows = session.execute(query).all()
        return [self._row_to_shipment(row) for row in rows]

    def status_counts(self) -> Dict[str, int]:
        """Return the number of shipments per status, zero-filled."""

        counts = {status.value: 0 for status in ShipmentStatus}
        with _persistence_guard("count shipments"):
            with session_scope(self._engine) as session:
                rows = session.execute(
                    select(shipments.c.status, func.count(shipments.c.id)).group_by(
                        shipments.c.status
                    )
                ).all()
        for status, total in rows:
            counts[status] = int(total)
        return counts

    def events(self, shipment_id: int) -> List[ShipmentEvent]:
        """Return the shipment's events oldest first, ties broken by id."""

        with _persistence_guard("load the shipment history"):
            with session_scope(self._engine) as session:
                rows = session.execute(
                    select(shipment_events)
                    .where(shipment_events.c.shipment_id == shipment_id)
                    .order_by(shipment_events.c.created_at, shipment_events.c.id)
                ).all()
        return [self._row_to_event(row) for row in rows]

    def append_event(
        self,
        shipment_id: int,
        status: str,
        location: str,
        description: Optional[str] = None,
        *,
        check_transition: Optional[TransitionCheck] = None,
        notification_type: Optional[str] = None,
    ) -> Tuple[ShipmentEvent, Shipment]:
        """Append an event and mirror it onto the shipment atomically.

        ``status``, ``current_location`` and ``updated_at`` always follow the
        new event. ``actual_delivery`` is stamped when the status is
        ``delivered`` and cleared for every other status. When
        ``notification_type`` is given and the shipment has a customer email,
        a pending notification is queued in the same transaction.

        Raises:
            NotFoundError: When the shipment does not exist.
            StatusTransitionError: Raised by ``check_transition``.
        """

        with _persistence_guard("record the shipment event"):
            with session_scope(self._engine) as session:
                current = session.execute(
                    select(shipments).where(shipments.c.id == shipment_id)
                ).one_or_none()
                if current is None:
                    raise NotFoundError(f"Shipment {shipment_id} not found")
                if check_transition is not None:
                    check_transition(current._mapping["status"], status)

                now = utcnow()
                event_id = session.execute(
                    insert(shipment_events)
                    .values(
                        shipment_id=shipment_id,
                        status=status,
                        location=location,
                        description=description,
                        created_at=now,
                    )
                    .returning(shipment_events.c.id)
                ).scalar_one()
                delivered = status == ShipmentStatus.DELIVERED.value
                session.execute(
                    update(shipments)
                    .where(shipments.c.id == shipment_id)
                    .values(
                        status=status,
                        current_location=location,
                        updated_at=now,
                        actual_delivery=now if delivered else None,
                    )
                )
                email = current._mapping["customer_email"]
                if notification_type and email:
                    session.execute(
                        insert(notification_logs).values(
                            shipment_id=shipment_id,
                            email=email,
                            notification_type=notification_type,
                            status="pending",
                            created_at=now,
                        )
                    )
                row = session.execute(
                    select(shipments).where(shipments.c.id == shipment_id)
                ).one()

        event = ShipmentEvent(
            id=event_id,
            shipment_id=shipment_id,
            status=status,
            location=location,
            description=description,
            created_at=now,
        )
        return event, self._row_to_shipment(row)

    @staticmethod
    def _row_to_shipment(row) -> Shipment:
        data = row._mapping
        return Shipment(
            id=data["id"],
            tracking_number=data["tracking_number"],
            user_id=data["user_id"],
            customer_email=data["customer_email"],
            customer_name=data["customer_name"],
            saved_quote_id=data["saved_quote_id"],
            origin=data["origin"],
            destination=data["destination"],
            current_location=data["current_location"],
            status=data["status"],
            service_type=data["service_type"],
            weight=data["weight"],
            estimated_delivery=data["estimated_delivery"],
            actual_delivery=data["actual_delivery"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    @staticmethod
    def _row_to_event(row) -> ShipmentEvent:
        data = row._mapping
        return ShipmentEvent(
            id=data["id"],
            shipment_id=data["shipment_id"],
            status=data["status"],
            location=data["location"],
            description=data["description"],
            created_at=data["created_at"],
        )


class NotificationLogRepository:
    """Queue and audit trail for outbound customer emails."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def add(self, log: NotificationLog) -> NotificationLog:
        created_at = log.created_at or utcnow()
        with _persistence_guard("record the notification"):
            with session_scope(self._engine) as session:
                log_id = session.execute(
                    insert(notification_logs)
                    .values(
                        shipment_id=log.shipment_id,
                        email=log.email,
                        notification_type=log.notification_type,
                        status=log.status,
                        error_message=log.error_message,
                        created_at=created_at,
                        sent_at=log.sent_at,
                    )
                    .returning(notification_logs.c.id)
                ).scalar_one()
        return replace(log, id=log_id, created_at=created_at)

    def get(self, log_id: int) -> NotificationLog:
        with _persistence_guard("load the notification"):
            with session_scope(self._engine) as session:
                row = session.execute(
                    select(notification_logs).where(notification_logs.c.id == log_id)
                ).one_or_none()
        if row is None:
            raise NotFoundError(f"Notification {log_id} not found")
        return self._row_to_log(row)

    def pending(self, limit: int = 10) -> List[NotificationLog]:
        """Return the oldest pending notifications."""

        with _persistence_guard("load pending notifications"):
            with session_scope(self._engine) as session:
                rows = session.execute(
                    select(notification_logs)
                    .where(notification_logs.c.status == "pending")
                    .order_by(notification_logs.c.created_at, notification_logs.c.id)
                    .limit(limit)
                ).all()
        return [self._row_to_log(row) for row in rows]

    def mark_sent(self, log_id: int) -> None:
        self._set_status(log_id, status="sent", sent_at=utcnow(), error_message=None)

    def mark_failed(self, log_id: int, error_message: str) -> None:
        self._set_status(log_id, status="failed", error_message=error_message)

    def count_sent_since(self, email: str, since: datetime) -> int:
        """Return how many emails went to ``email`` after ``since``."""

        with _persistence_guard("count notifications"):
            with session_scope(self._engine) as session:
                total = session.execute(
                    select(func.count(notification_logs.c.id)).where(
                        func.lower(notification_logs.c.email) == email.strip().lower(),
                        notification_logs.c.status == "sent",
                        notification_logs.c.sent_at >= since,
                    )
                ).scalar_one()
        return int(total or 0)

    def _set_status(self, log_id: int, **values) -> None:
        with _persistence_guard("update the notification"):
            with session_scope(self._engine) as session:
                session.execute(
                    update(notification_logs)
                    .where(notification_logs.c.id == log_id)
                    .values(**values)
                )

    @staticmethod
    def _row_to_log(row) -> NotificationLog:
        data = row._mapping
        return NotificationLog(
            id=data["id"],
            shipment_id=data["shipment_id"],
            email=data["email"],
            notification_type=data["notification_type"],
            status=data["status"],
            error_message=data["error_message"],
            created_at=data["created_at"],
            sent_at=data["sent_at"],
        )


class ProfileRepository:
    """Customer contact details read by the callback workflow."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def get(self, user_id: str) -> Optional[Profile]:
        with _persistence_guard("load the profile"):
            with session_scope(self._engine) as session:
                row = session.execute(
                    select(profiles).where(profiles.c.user_id == user_id)
                ).one_or_none()
        if row is None:
            return None
        data = row._mapping
        return Profile(
            user_id=data["user_id"],
            full_name=data["full_name"],
            phone=data["phone"],
            company=data["company"],
        )

    def upsert(self, profile: Profile) -> Profile:
        values = {
            "full_name": profile.full_name,
            "phone": profile.phone,
            "company": profile.company,
        }
        with _persistence_guard("save the profile"):
            with session_scope(self._engine) as session:
                result = session.execute(
                    update(profiles)
                    .where(profiles.c.user_id == profile.user_id)
                    .values(**values)
                )
                if result.rowcount == 0:
                    session.execute(
                        insert(profiles).values(user_id=profile.user_id, **values)
                    )
        return profile


__all__ = [
    "MAX_TRACKING_NUMBER_ATTEMPTS",
    "SavedQuoteRepository",
    "ShipmentRepository",
    "NotificationLogRepository",
    "ProfileRepository",
]
