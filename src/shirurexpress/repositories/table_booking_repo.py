from __future__ import annotations

from datetime import datetime

from psycopg import Connection

from .rows import fetch_all, fetch_one

TABLE_BOOKING_COLUMNS = (
    "id, user_id, provider_id, booking_date, time_slot, number_of_guests, special_requests, status, created_at"
)


class TableBookingRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: int,
        provider_id: int,
        booking_date: datetime,
        time_slot: str,
        number_of_guests: int,
        special_requests: str | None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO table_booking(user_id, provider_id, booking_date, time_slot, number_of_guests, special_requests)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (user_id, provider_id, booking_date, time_slot, number_of_guests, special_requests),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, table_booking_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {TABLE_BOOKING_COLUMNS} FROM table_booking WHERE id = %s;", (table_booking_id,))
        return fetch_one(cur)

    def transition(self, conn: Connection, *, table_booking_id: int, from_status: str, to_status: str) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE table_booking SET status = %s
            WHERE id = %s AND status = %s
            RETURNING {TABLE_BOOKING_COLUMNS};
            """,
            (to_status, table_booking_id, from_status),
        )
        return fetch_one(cur)

    def list_for_user(self, conn: Connection, user_id: int, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT tb.id, tb.provider_id, sp.business_name AS provider_name, tb.booking_date, tb.time_slot,
                   tb.number_of_guests, tb.status, tb.created_at
            FROM table_booking tb
            JOIN service_provider sp ON sp.id = tb.provider_id
            WHERE tb.user_id = %s
            ORDER BY tb.booking_date DESC
            LIMIT %s;
            """,
            (user_id, limit),
        )
        return fetch_all(cur)
