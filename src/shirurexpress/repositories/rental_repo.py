from __future__ import annotations

from decimal import Decimal

from psycopg import Connection
from psycopg.types.json import Jsonb

from .rows import fetch_all, fetch_one

RENTAL_SELECT = """
    SELECT rp.id, rp.owner_id, u.username AS owner_name, u.phone AS owner_phone,
           rp.title, rp.description, rp.property_type, rp.rent, rp.area_sqft, rp.bedrooms, rp.bathrooms,
           rp.furnishing, rp.address, rp.locality, rp.latitude, rp.longitude, rp.amenities,
           rp.is_available, rp.created_at
    FROM rental_property rp
    JOIN app_user u ON u.id = rp.owner_id
"""


class RentalRepository:
    def create(
        self,
        conn: Connection,
        *,
        owner_id: int,
        title: str,
        property_type: str,
        rent: Decimal,
        address: str,
        description: str | None = None,
        area_sqft: int | None = None,
        bedrooms: int | None = None,
        bathrooms: int | None = None,
        furnishing: str | None = None,
        locality: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        amenities: list[str] | None = None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO rental_property(
              owner_id, title, description, property_type, rent, area_sqft, bedrooms, bathrooms,
              furnishing, address, locality, latitude, longitude, amenities
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                owner_id,
                title,
                description,
                property_type,
                rent,
                area_sqft,
                bedrooms,
                bathrooms,
                furnishing,
                address,
                locality,
                latitude,
                longitude,
                Jsonb(amenities) if amenities is not None else None,
            ),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, rental_id: int) -> dict | None:
        cur = conn.execute(RENTAL_SELECT + " WHERE rp.id = %s;", (rental_id,))
        return fetch_one(cur)

    def list(
        self,
        conn: Connection,
        *,
        property_type: str | None = None,
        min_rent: Decimal | None = None,
        max_rent: Decimal | None = None,
        furnishing: str | None = None,
        locality: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        where = ["rp.is_available"]
        params: list = []
        if property_type:
            where.append("rp.property_type = %s")
            params.append(property_type)
        if min_rent is not None:
            where.append("rp.rent >= %s")
            params.append(min_rent)
        if max_rent is not None:
            where.append("rp.rent <= %s")
            params.append(max_rent)
        if furnishing:
            where.append("rp.furnishing = %s")
            params.append(furnishing)
        if locality:
            where.append("rp.locality ILIKE %s")
            params.append(f"%{locality}%")
        params.append(limit)
        cur = conn.execute(
            RENTAL_SELECT + f" WHERE {' AND '.join(where)} ORDER BY rp.created_at DESC LIMIT %s;",
            params,
        )
        return fetch_all(cur)

    def list_for_owner(self, conn: Connection, owner_id: int) -> list[dict]:
        cur = conn.execute(RENTAL_SELECT + " WHERE rp.owner_id = %s ORDER BY rp.created_at DESC;", (owner_id,))
        return fetch_all(cur)
