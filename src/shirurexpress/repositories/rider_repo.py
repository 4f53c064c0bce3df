from __future__ import annotations

from psycopg import Connection

from .rows import fetch_one

PARTNER_COLUMNS = """
    id, user_id, vehicle_type, vehicle_number, license_number, is_online,
    current_latitude, current_longitude, last_location_at, total_deliveries, created_at
"""


class RiderRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: int,
        vehicle_type: str,
        vehicle_number: str | None,
        license_number: str | None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO delivery_partner(user_id, vehicle_type, vehicle_number, license_number)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (user_id) DO NOTHING
            RETURNING id;
            """,
            (user_id, vehicle_type, vehicle_number, license_number),
        )
        row = cur.fetchone()
        if not row:
            raise ValueError("Delivery partner profile already exists for user_id=%s" % user_id)
        return int(row[0])

    def get_by_user_id(self, conn: Connection, user_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {PARTNER_COLUMNS} FROM delivery_partner WHERE user_id = %s;", (user_id,))
        return fetch_one(cur)

    def set_online(self, conn: Connection, *, user_id: int, is_online: bool) -> dict | None:
        cur = conn.execute(
            f"UPDATE delivery_partner SET is_online = %s WHERE user_id = %s RETURNING {PARTNER_COLUMNS};",
            (is_online, user_id),
        )
        return fetch_one(cur)

    def update_location(self, conn: Connection, *, user_id: int, latitude: float, longitude: float) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE delivery_partner
            SET current_latitude = %s, current_longitude = %s, last_location_at = now()
            WHERE user_id = %s
            RETURNING {PARTNER_COLUMNS};
            """,
            (latitude, longitude, user_id),
        )
        return fetch_one(cur)

    def increment_deliveries(self, conn: Connection, *, user_id: int) -> None:
        conn.execute(
            "UPDATE delivery_partner SET total_deliveries = total_deliveries + 1 WHERE user_id = %s;",
            (user_id,),
        )
