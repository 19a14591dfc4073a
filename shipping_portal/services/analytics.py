"""Admin dashboard metrics computed with :mod:`pandas`."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..database import utcnow
from ..models import SavedQuote, Shipment
from ..tracking import ShipmentStatus

PERIOD_CHOICES = (7, 30, 90)
DEFAULT_PERIOD = 30


@dataclass
class AnalyticsSummary:
    period_days: int
    total_shipments: int = 0
    total_revenue: float = 0.0
    total_customers: int = 0
    shipments_this_month: int = 0
    revenue_this_month: float = 0.0
    shipments_in_period: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_service: Dict[str, int] = field(default_factory=dict)
    daily_shipments: List[Tuple[str, int]] = field(default_factory=list)


def resolve_period(raw: Optional[str]) -> int:
    """Return a supported period in days, defaulting to 30."""

    try:
        value = int(raw or DEFAULT_PERIOD)
    except ValueError:
        return DEFAULT_PERIOD
    return value if value in PERIOD_CHOICES else DEFAULT_PERIOD


def _shipments_frame(shipments: Sequence[Shipment]) -> pd.DataFrame:
    frame = pd.DataFrame(
        [
            {
                "status": item.status,
                "service_type": item.service_type,
                "user_id": item.user_id,
                "created_at": item.created_at,
            }
            for item in shipments
        ],
        columns=["status", "service_type", "user_id", "created_at"],
    )
    frame["created_at"] = pd.to_datetime(frame["created_at"])
    return frame


def _quotes_frame(quotes: Sequence[SavedQuote]) -> pd.DataFrame:
    frame = pd.DataFrame(
        [
            {
                "status": item.status,
                "price": item.price,
                "user_id": item.user_id,
                "created_at": item.created_at,
            }
            for item in quotes
        ],
        columns=["status", "price", "user_id", "created_at"],
    )
    frame["created_at"] = pd.to_datetime(frame["created_at"])
    frame["price"] = pd.to_numeric(frame["price"])
    return frame


def summarize(
    shipments: Sequence[Shipment],
    quotes: Sequence[SavedQuote],
    *,
    period_days: int = DEFAULT_PERIOD,
    now: Optional[datetime] = None,
) -> AnalyticsSummary:
    """Aggregate shipment and revenue metrics for the admin dashboard.

    Revenue is the sum of booked quote prices. "This month" starts at
    midnight on the first day of ``now``'s month. Daily counts cover every
    day in the period, including days without shipments. The period is
    ``period_days`` calendar days ending today, so the daily series always
    adds up to ``shipments_in_period``.
    """

    now = now or utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    days = pd.date_range(
        end=pd.Timestamp(now).normalize(), periods=period_days, freq="D"
    )
    period_start = days[0]
    period_end = days[-1] + pd.Timedelta(days=1)

    ship_df = _shipments_frame(shipments)
    quote_df = _quotes_frame(quotes)
    booked = quote_df[quote_df["status"] == "booked"]
    in_period = ship_df[
        (ship_df["created_at"] >= period_start) & (ship_df["created_at"] < period_end)
    ]

    by_status = {status.value: 0 for status in ShipmentStatus}
    by_status.update({str(k): int(v) for k, v in ship_df["status"].value_counts().items()})
    by_service = {
        str(k): int(v) for k, v in ship_df["service_type"].value_counts().sort_index().items()
    }

    daily = (
        in_period["created_at"].dt.normalize().value_counts().reindex(days, fill_value=0)
    )
    customers = pd.concat([ship_df["user_id"], quote_df["user_id"]]).dropna().nunique()

    return AnalyticsSummary(
        period_days=period_days,
        total_shipments=int(len(ship_df)),
        total_revenue=round(float(booked["price"].sum()), 2),
        total_customers=int(customers),
        shipments_this_month=int((ship_df["created_at"] >= month_start).sum()),
        revenue_this_month=round(
            float(booked.loc[booked["created_at"] >= month_start, "price"].sum()), 2
        ),
        shipments_in_period=int(len(in_period)),
        by_status=by_status,
        by_service=by_service,
        daily_shipments=[(day.strftime("%b %d"), int(count)) for day, count in daily.items()],
    )


__all__ = [
    "AnalyticsSummary",
    "DEFAULT_PERIOD",
    "PERIOD_CHOICES",
    "resolve_period",
    "summarize",
]
