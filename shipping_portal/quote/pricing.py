"""International parcel pricing based on zone rates and dimensional weight.

The engine is a pure function of the shipment's route and physical
parameters: no database access, no I/O. All arithmetic uses
:class:`decimal.Decimal` so the published rate constants are applied exactly
and rounding is half-up to the cent.

Rounding is two-stage. ``base_rate`` and ``fuel_surcharge`` are rounded
individually for the breakdown, while the offer ``price`` is rounded from the
*unrounded* sum of base rate, fuel surcharge and handling fee. A breakdown may
therefore differ from the displayed total by a cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import ValidationError

CENT = Decimal("0.01")
VOLUMETRIC_DIVISOR = Decimal("5000")
DEFAULT_ZONE = 4
SAME_ZONE_MODIFIER = Decimal("0.85")
CROSS_ZONE_MODIFIER = Decimal("1.0")

COUNTRY_ZONES: Mapping[str, int] = MappingProxyType(
    {
        "United States": 1,
        "Canada": 1,
        "Mexico": 2,
        "United Kingdom": 2,
        "Germany": 2,
        "France": 2,
        "Netherlands": 2,
        "Spain": 2,
        "Italy": 2,
        "Sweden": 2,
        "Australia": 3,
        "New Zealand": 3,
        "Japan": 3,
        "South Korea": 3,
        "Singapore": 3,
        "China": 3,
        "India": 4,
        "Brazil": 4,
        "South Africa": 4,
        "United Arab Emirates": 3,
    }
)

# Per-kg USD rate by destination zone.
ZONE_RATES: Mapping[int, Decimal] = MappingProxyType(
    {
        1: Decimal("4.50"),
        2: Decimal("8.25"),
        3: Decimal("12.50"),
        4: Decimal("15.75"),
    }
)


@dataclass(frozen=True)
class ServiceLevel:
    """Static definition of a shipping service offered by the calculator."""

    id: str
    name: str
    days: str
    multiplier: Decimal
    fuel_rate: Decimal
    handling_fee: Decimal
    description: str = ""


SERVICE_LEVELS: Tuple[ServiceLevel, ...] = (
    ServiceLevel(
        id="express",
        name="Express Air",
        days="1-2",
        multiplier=Decimal("3.5"),
        fuel_rate=Decimal("0.15"),
        handling_fee=Decimal("12.99"),
        description="Fastest delivery with priority handling",
    ),
    ServiceLevel(
        id="standard",
        name="Standard Air",
        days="3-5",
        multiplier=Decimal("2.2"),
        fuel_rate=Decimal("0.12"),
        handling_fee=Decimal("8.99"),
        description="Reliable air freight service",
    ),
    ServiceLevel(
        id="ground",
        name="Ground",
        days="5-7",
        multiplier=Decimal("1.5"),
        fuel_rate=Decimal("0.08"),
        handling_fee=Decimal("5.99"),
        description="Cost-effective overland transport",
    ),
    ServiceLevel(
        id="economy",
        name="Economy Sea",
        days="14-21",
        multiplier=Decimal("1.0"),
        fuel_rate=Decimal("0.05"),
        handling_fee=Decimal("24.99"),
        description="Best value for non-urgent shipments",
    ),
)


@dataclass(frozen=True)
class CostBreakdown:
    """Individually rounded price components shown next to an offer."""

    base_rate: Decimal
    fuel_surcharge: Decimal
    handling_fee: Decimal


@dataclass(frozen=True)
class Offer:
    """Priced service option for a single quote."""

    service_id: str
    name: str
    days: str
    description: str
    price: Decimal
    breakdown: CostBreakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.service_id,
            "name": self.name,
            "days": self.days,
            "description": self.description,
            "price": float(self.price),
            "breakdown": {
                "baseRate": float(self.breakdown.base_rate),
                "fuelSurcharge": float(self.breakdown.fuel_surcharge),
                "handlingFee": float(self.breakdown.handling_fee),
            },
        }


@dataclass(frozen=True)
class Quote:
    """Result of :func:`compute_quote`.

    ``volumetric_weight`` and ``chargeable_weight`` keep full precision; use
    the ``display_*`` properties for the two-decimal values shown to
    customers and stored on saved quotes.
    """

    origin: str
    destination: str
    actual_weight: Decimal
    length: Decimal
    width: Decimal
    height: Decimal
    volumetric_weight: Decimal
    chargeable_weight: Decimal
    origin_zone: int
    destination_zone: int
    distance_modifier: Decimal
    offers: Tuple[Offer, ...]

    @property
    def display_volumetric_weight(self) -> Decimal:
        return round_half_up(self.volumetric_weight)

    @property
    def display_chargeable_weight(self) -> Decimal:
        return round_half_up(self.chargeable_weight)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "destination": self.destination,
            "actualWeight": float(self.actual_weight),
            "volumetricWeight": float(self.display_volumetric_weight),
            "chargeableWeight": float(self.display_chargeable_weight),
            "zone": self.destination_zone,
            "distanceModifier": float(self.distance_modifier),
            "options": [offer.to_dict() for offer in self.offers],
        }


def round_half_up(value: Decimal) -> Decimal:
    """Round ``value`` to cents, with halves rounded away from zero."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def zone_for_country(country: Optional[str]) -> int:
    """Return the pricing zone for ``country``.

    Names must match a :data:`COUNTRY_ZONES` key exactly, apart from
    surrounding whitespace. Anything else is treated as a remote region and
    priced in :data:`DEFAULT_ZONE`.
    """

    return COUNTRY_ZONES.get((country or "").strip(), DEFAULT_ZONE)


def country_choices() -> list[str]:
    """Return the supported countries in calculator display order."""

    return list(COUNTRY_ZONES)


def volumetric_weight(length: Decimal, width: Decimal, height: Decimal) -> Decimal:
    """Return the dimensional weight in kg for centimetre dimensions."""

    return (length * width * height) / VOLUMETRIC_DIVISOR


def distance_modifier(origin_zone: int, destination_zone: int) -> Decimal:
    """Return the same-zone discount factor for a route."""

    if origin_zone == destination_zone:
        return SAME_ZONE_MODIFIER
    return CROSS_ZONE_MODIFIER


def price_service(
    service: ServiceLevel,
    chargeable_weight: Decimal,
    zone_rate: Decimal,
    modifier: Decimal,
) -> Offer:
    """Price ``service`` for the supplied weight, zone rate and modifier."""

    base_rate = chargeable_weight * zone_rate * service.multiplier * modifier
    fuel_surcharge = base_rate * service.fuel_rate
    total = base_rate + fuel_surcharge + service.handling_fee
    return Offer(
        service_id=service.id,
        name=service.name,
        days=service.days,
        description=service.description,
        price=round_half_up(total),
        breakdown=CostBreakdown(
            base_rate=round_half_up(base_rate),
            fuel_surcharge=round_half_up(fuel_surcharge),
            handling_fee=service.handling_fee,
        ),
    )


def _parse_positive(raw: Any) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def compute_quote(
    origin: Optional[str],
    destination: Optional[str],
    actual_weight_kg: Any,
    length_cm: Any,
    width_cm: Any,
    height_cm: Any,
) -> Quote:
    """Price every service level for a package travelling ``origin`` → ``destination``.

    Args:
        origin: Origin country name. Used only for the same-zone discount.
        destination: Destination country name. Selects the per-kg zone rate.
        actual_weight_kg: Scale weight in kilograms.
        length_cm: Package length in centimetres.
        width_cm: Package width in centimetres.
        height_cm: Package height in centimetres.

    Numeric arguments may be numbers or numeric strings; each must be a
    finite value greater than zero.

    Returns:
        Quote: Offers for all :data:`SERVICE_LEVELS` in declaration order
        (fastest first, never re-sorted by price).

    Raises:
        ValidationError: Naming every invalid field.
    """

    errors: Dict[str, str] = {}
    origin_name = (origin or "").strip()
    destination_name = (destination or "").strip()
    if not origin_name:
        errors["origin"] = "Origin country is required."
    if not destination_name:
        errors["destination"] = "Destination country is required."

    numbers: Dict[str, Optional[Decimal]] = {}
    for field, raw, label in (
        ("weight", actual_weight_kg, "Weight"),
        ("length", length_cm, "Length"),
        ("width", width_cm, "Width"),
        ("height", height_cm, "Height"),
    ):
        numbers[field] = _parse_positive(raw)
        if numbers[field] is None:
            errors[field] = f"{label} must be a number greater than zero."

    if errors:
        raise ValidationError(errors)

    weight = numbers["weight"]
    length = numbers["length"]
    width = numbers["width"]
    height = numbers["height"]

    volumetric = volumetric_weight(length, width, height)
    chargeable = max(weight, volumetric)

    destination_zone = zone_for_country(destination_name)
    origin_zone = zone_for_country(origin_name)
    modifier = distance_modifier(origin_zone, destination_zone)
    zone_rate = ZONE_RATES[destination_zone]

    offers = tuple(
        price_service(service, chargeable, zone_rate, modifier)
        for service in SERVICE_LEVELS
    )
    return Quote(
        origin=origin_name,
        destination=destination_name,
        actual_weight=weight,
        length=length,
        width=width,
        height=height,
        volumetric_weight=volumetric,
        chargeable_weight=chargeable,
        origin_zone=origin_zone,
        destination_zone=destination_zone,
        distance_modifier=modifier,
        offers=offers,
    )


def find_offer(quote: Quote, service: Optional[str]) -> Optional[Offer]:
    """Return the offer matching a service id or display name."""

    wanted = (service or "").strip().casefold()
    for offer in quote.offers:
        if wanted in (offer.service_id.casefold(), offer.name.casefold()):
            return offer
    return None


def leading_delivery_days(days: Optional[str]) -> int:
    """Return the first day count in a range such as ``"3-5"``.

    Booking schedules the estimated delivery from the start of the range.
    Returns ``0`` when no leading number is present.
    """

    digits = ""
    for ch in (days or "").strip():
        if not ch.isdigit():
            break
        digits += ch
    return int(digits) if digits else 0
