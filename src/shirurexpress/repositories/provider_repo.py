from __future__ import annotations

from psycopg import Connection

from .rows import fetch_all, fetch_one

PROVIDER_SELECT = """
    SELECT sp.id, sp.user_id, sp.category_slug, c.name AS category_name, sp.business_name, sp.description,
           sp.address, sp.latitude, sp.longitude, sp.is_available, sp.rating, sp.review_count, sp.created_at,
           u.username AS owner_name, u.phone AS owner_phone
    FROM service_provider sp
    JOIN service_category c ON c.slug = sp.category_slug
    JOIN app_user u ON u.id = sp.user_id
"""


class ProviderRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: int,
        category_slug: str,
        business_name: str,
        address: str,
        description: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO service_provider(user_id, category_slug, business_name, description, address, latitude, longitude)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (user_id, category_slug, business_name, description, address, latitude, longitude),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, provider_id: int) -> dict | None:
        cur = conn.execute(PROVIDER_SELECT + " WHERE sp.id = %s;", (provider_id,))
        return fetch_one(cur)

    def get_by_user_id(self, conn: Connection, user_id: int) -> dict | None:
        cur = conn.execute(PROVIDER_SELECT + " WHERE sp.user_id = %s ORDER BY sp.id LIMIT 1;", (user_id,))
        return fetch_one(cur)

    def list(self, conn: Connection, *, category_slug: str | None = None, limit: int = 50) -> list[dict]:
        if category_slug:
            cur = conn.execute(
                PROVIDER_SELECT + " WHERE sp.category_slug = %s AND sp.is_available ORDER BY sp.rating DESC LIMIT %s;",
                (category_slug, limit),
            )
        else:
            cur = conn.execute(
                PROVIDER_SELECT + " WHERE sp.is_available ORDER BY sp.rating DESC LIMIT %s;",
                (limit,),
            )
        return fetch_all(cur)

    def list_categories(self, conn: Connection) -> list[dict]:
        cur = conn.execute("SELECT slug, name, icon, description FROM service_category ORDER BY name;")
        return fetch_all(cur)

    def get_category(self, conn: Connection, slug: str) -> dict | None:
        cur = conn.execute("SELECT slug, name, icon, description FROM service_category WHERE slug = %s;", (slug,))
        return fetch_one(cur)

    def add_rating(self, conn: Connection, *, provider_id: int, rating: int) -> None:
        # running average; review_count on the right-hand side is the pre-update value
        conn.execute(
            """
            UPDATE service_provider
            SET rating = ROUND((rating * review_count + %s) / (review_count + 1), 2),
                review_count = review_count + 1
            WHERE id = %s;
            """,
            (rating, provider_id),
        )
