from __future__ import annotations

import logging
from decimal import InvalidOperation

from psycopg import Connection

from ..domain import FURNISHING_TYPES
from ..errors import NotFound, ValidationError
from ..pricing import money
from ..repositories.rental_repo import RentalRepository
from .provider_service import optional_coordinates

log = logging.getLogger(__name__)


def _count(value, name: str) -> int | None:
    if value is None:
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.") from None
    if n < 0:
        raise ValidationError(f"{name} must be >= 0.")
    return n


class RentalService:
    def __init__(self, *, rental_repo: RentalRepository) -> None:
        self.rental_repo = rental_repo

    def create_listing(
        self,
        conn: Connection,
        *,
        owner_id: int,
        title: str,
        property_type: str,
        rent,
        address: str,
        description: str | None = None,
        area_sqft=None,
        bedrooms=None,
        bathrooms=None,
        furnishing: str | None = None,
        locality: str | None = None,
        latitude=None,
        longitude=None,
        amenities: list | None = None,
    ) -> dict:
        title = (title or "").strip()
        property_type = (property_type or "").strip()
        address = (address or "").strip()
        if not title or not property_type or not address:
            raise ValidationError("Title, property type and address are required.")
        try:
            rent = money(rent)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Rent must be a number.") from None
        if rent <= 0:
            raise ValidationError("Rent must be greater than zero.")
        area_sqft = _count(area_sqft, "area_sqft")
        if area_sqft == 0:
            raise ValidationError("area_sqft must be greater than zero.")
        furnishing = (furnishing or "").strip().lower() or None
        if furnishing is not None and furnishing not in FURNISHING_TYPES:
            raise ValidationError(f"furnishing must be one of {', '.join(FURNISHING_TYPES)}.")
        if amenities is not None and not isinstance(amenities, list):
            raise ValidationError("amenities must be a list.")
        latitude, longitude = optional_coordinates(latitude, longitude)

        rental_id = self.rental_repo.create(
            conn,
            owner_id=owner_id,
            title=title,
            property_type=property_type,
            rent=rent,
            address=address,
            description=(description or "").strip() or None,
            area_sqft=area_sqft,
            bedrooms=_count(bedrooms, "bedrooms"),
            bathrooms=_count(bathrooms, "bathrooms"),
            furnishing=furnishing,
            locality=(locality or "").strip() or None,
            latitude=latitude,
            longitude=longitude,
            amenities=[str(a) for a in amenities] if amenities is not None else None,
        )
        log.info("rental listing %s created by user %s", rental_id, owner_id)
        return self.rental_repo.get(conn, rental_id)

    def get_listing(self, conn: Connection, rental_id: int) -> dict:
        row = self.rental_repo.get(conn, rental_id)
        if row is None:
            raise NotFound(f"Property {rental_id} not found.")
        return row

    def list_listings(self, conn: Connection, **filters) -> list[dict]:
        if filters.get("furnishing") and filters["furnishing"] not in FURNISHING_TYPES:
            raise ValidationError(f"furnishing must be one of {', '.join(FURNISHING_TYPES)}.")
        return self.rental_repo.list(conn, **filters)

    def list_owner_listings(self, conn: Connection, owner_id: int) -> list[dict]:
        return self.rental_repo.list_for_owner(conn, owner_id)
