from __future__ import annotations

from psycopg import Connection

from .rows import fetch_all


class ReviewRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: int,
        provider_id: int,
        booking_id: int | None,
        rating: int,
        comment: str | None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO review(user_id, provider_id, booking_id, rating, comment)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (user_id, provider_id, booking_id, rating, comment),
        )
        return int(cur.fetchone()[0])

    def list_for_provider(self, conn: Connection, provider_id: int, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT r.id, r.rating, r.comment, r.created_at, u.username AS user_name
            FROM review r
            JOIN app_user u ON u.id = r.user_id
            WHERE r.provider_id = %s
            ORDER BY r.created_at DESC
            LIMIT %s;
            """,
            (provider_id, limit),
        )
        return fetch_all(cur)
