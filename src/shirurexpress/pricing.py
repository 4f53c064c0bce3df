from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from .config import BusinessConfig

EARTH_RADIUS_KM = 6371.0
PAISE = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(PAISE, rounding=ROUND_HALF_UP)


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float, road_factor: float = 1.2) -> float:
    """Haversine distance scaled by a road factor to approximate travel distance."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c * road_factor


def delivery_fee(distance: Optional[float], business: BusinessConfig) -> Decimal:
    if distance is None:
        return money(business.flat_delivery_fee)
    km = Decimal(str(distance)).quantize(Decimal("0.1"), rounding=ROUND_DOWN)
    return money(business.delivery_base_fee + km * business.delivery_per_km_fee)


def delivery_fee_between(pickup: tuple, dropoff: tuple, business: BusinessConfig) -> Decimal:
    """Fee for a pickup/dropoff pair of (lat, lon); either side may be missing."""
    if None in pickup or None in dropoff:
        return delivery_fee(None, business)
    d = distance_km(
        float(pickup[0]), float(pickup[1]), float(dropoff[0]), float(dropoff[1]), business.road_distance_factor
    )
    return delivery_fee(d, business)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    platform_fee: Decimal
    delivery_fee: Decimal
    total: Decimal


def cart_totals(lines: Iterable[CartLine], platform_fee_rate: Decimal, delivery: Decimal) -> CartTotals:
    subtotal = money(sum((ln.line_total for ln in lines), Decimal("0")))
    platform_fee = money(subtotal * Decimal(str(platform_fee_rate)))
    delivery = money(delivery)
    return CartTotals(
        subtotal=subtotal,
        platform_fee=platform_fee,
        delivery_fee=delivery,
        total=subtotal + platform_fee + delivery,
    )


def within_radius(
    rows: Iterable[dict],
    latitude: float,
    longitude: float,
    radius_km: float,
    *,
    lat_key: str = "latitude",
    lon_key: str = "longitude",
    road_factor: float = 1.0,
) -> list[dict]:
    """Keep rows within ``radius_km``; rows without coordinates are kept."""
    out = []
    for r in rows:
        lat, lon = r.get(lat_key), r.get(lon_key)
        if lat is None or lon is None:
            out.append(r)
            continue
        d = distance_km(latitude, longitude, float(lat), float(lon), road_factor)
        if d <= radius_km:
            out.append({**r, "distance_km": round(d, 2)})
    return out
