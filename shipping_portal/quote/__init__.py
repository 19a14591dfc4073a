"""Quote calculation package."""

from .pricing import (
    COUNTRY_ZONES,
    SERVICE_LEVELS,
    ZONE_RATES,
    CostBreakdown,
    Offer,
    Quote,
    ServiceLevel,
    compute_quote,
    country_choices,
    find_offer,
    leading_delivery_days,
    zone_for_country,
)

__all__ = [
    "COUNTRY_ZONES",
    "SERVICE_LEVELS",
    "ZONE_RATES",
    "CostBreakdown",
    "Offer",
    "Quote",
    "ServiceLevel",
    "compute_quote",
    "country_choices",
    "find_offer",
    "leading_delivery_days",
    "zone_for_country",
]
