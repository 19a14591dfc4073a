"""Database schema and session utilities for the shipping portal."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

metadata = MetaData()

saved_quotes = Table(
    "saved_quotes",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", String(64), nullable=False, index=True),
    Column("origin", String(120), nullable=False),
    Column("destination", String(120), nullable=False),
    Column("actual_weight", Float, nullable=False),
    Column("volumetric_weight", Float, nullable=False),
    Column("chargeable_weight", Float, nullable=False),
    Column("length", Float, nullable=False),
    Column("width", Float, nullable=False),
    Column("height", Float, nullable=False),
    Column("selected_service", String(64), nullable=False),
    Column("price", Float, nullable=False),
    Column("delivery_days", String(16), nullable=False),
    Column("status", String(32), nullable=False, default="saved"),
    Column("created_at", DateTime, server_default=func.now(), nullable=False),
)

shipments = Table(
    "shipments",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("tracking_number", String(32), nullable=False, unique=True),
    Column("user_id", String(64), nullable=True, index=True),
    Column("customer_email", String(255), nullable=True),
    Column("customer_name", String(255), nullable=True),
    # At most one shipment per saved quote; concurrent bookings collide here.
    Column(
        "saved_quote_id",
        ForeignKey("saved_quotes.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    ),
    Column("origin", String(255), nullable=False),
    Column("destination", String(255), nullable=False),
    Column("current_location", String(255), nullable=False),
    Column("status", String(32), nullable=False, default="pending"),
    Column("service_type", String(64), nullable=False),
    Column("weight", Float, nullable=False),
    Column("estimated_delivery", DateTime, nullable=True),
    Column("actual_delivery", DateTime, nullable=True),
    Column("created_at", DateTime, server_default=func.now(), nullable=False),
    Column("updated_at", DateTime, server_default=func.now(), nullable=False),
)

shipment_events = Table(
    "shipment_events",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "shipment_id",
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("status", String(32), nullable=False),
    Column("location", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=lambda: utcnow()),
    Index("ix_shipment_events_shipment_created", "shipment_id", "created_at"),
)

profiles = Table(
    "profiles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", String(64), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False, default=""),
    Column("phone", String(64), nullable=False, default=""),
    Column("company", String(255), nullable=False, default=""),
)

notification_logs = Table(
    "notification_logs",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "shipment_id",
        ForeignKey("shipments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("email", String(255), nullable=False, index=True),
    Column("notification_type", String(32), nullable=False),
    Column("status", String(16), nullable=False, default="pending", index=True),
    Column("error_message", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, default=lambda: utcnow()),
    Column("sent_at", DateTime, nullable=True),
)


def utcnow() -> datetime:
    """Return the current UTC time as a naive timestamp.

    All timestamp columns store naive UTC so values compare consistently
    across SQLite and server-side defaults.
    """

    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(database_url: str) -> Engine:
    """Return a SQLAlchemy engine for the provided URL.

    SQLite connections enable foreign key enforcement so cascading deletes
    behave as they do on server databases.
    """

    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    if engine.url.get_backend_name() == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def ensure_database_schema(engine: Engine) -> None:
    """Provision the tables required by the portal.

    SQLite databases (development and tests) are created directly from
    :data:`metadata`. Every other backend is brought to the latest Alembic
    revision found in ``migrations/`` so production schemas only change
    through migrations.
    """

    if engine.url.get_backend_name() == "sqlite":
        metadata.create_all(engine)
        return

    _run_alembic_upgrade(engine)


def _run_alembic_upgrade(engine: Engine) -> None:
    """Apply Alembic migrations for the database bound to ``engine``.

    Databases that already contain the portal tables but no
    ``alembic_version`` table were created from :data:`metadata` and are
    stamped at the latest revision instead of being recreated.
    """

    root_path = Path(__file__).resolve().parent.parent
    config = AlembicConfig(str(root_path / "alembic.ini"))
    config.set_main_option("script_location", str(root_path / "migrations"))
    config.set_main_option(
        "sqlalchemy.url", engine.url.render_as_string(hide_password=False)
    )

    existing_tables = set(inspect(engine).get_table_names())
    if "alembic_version" not in existing_tables and "shipments" in existing_tables:
        command.stamp(config, "head")
        return

    command.upgrade(config, "head")


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Context manager that yields a SQLAlchemy :class:`Session`.

    The session commits when the block exits cleanly and rolls back on any
    exception, so every ``with`` block is a single transaction.
    """

    with Session(engine, future=True) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
