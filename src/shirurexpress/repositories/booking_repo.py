from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from psycopg import Connection
from psycopg.types.json import Jsonb

from .rows import fetch_all, fetch_one

BOOKING_COLUMNS = """
    id, user_id, provider_id, service_type, problem_id, status, scheduled_at, preferred_time_slots,
    user_address, user_phone, notes, is_urgent, estimated_cost, service_otp, service_otp_expires_at,
    invoice_id, created_at
"""


class BookingRepository:
    def create(
        self,
        conn: Connection,
        *,
        user_id: int,
        provider_id: int | None,
        service_type: str,
        problem_id: int | None,
        scheduled_at: datetime | None,
        preferred_time_slots: list[str] | None,
        user_address: str,
        user_phone: str,
        notes: str | None,
        is_urgent: bool,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO booking(
              user_id, provider_id, service_type, problem_id, scheduled_at, preferred_time_slots,
              user_address, user_phone, notes, is_urgent
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                user_id,
                provider_id,
                service_type,
                problem_id,
                scheduled_at,
                Jsonb(preferred_time_slots) if preferred_time_slots is not None else None,
                user_address,
                user_phone,
                notes,
                is_urgent,
            ),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, booking_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {BOOKING_COLUMNS} FROM booking WHERE id = %s;", (booking_id,))
        return fetch_one(cur)

    def transition(self, conn: Connection, *, booking_id: int, from_status: str, to_status: str) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE booking SET status = %s
            WHERE id = %s AND status = %s
            RETURNING {BOOKING_COLUMNS};
            """,
            (to_status, booking_id, from_status),
        )
        return fetch_one(cur)

    def accept(
        self, conn: Connection, *, booking_id: int, provider_id: int, estimated_cost: Decimal | None
    ) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE booking
            SET status = 'accepted', provider_id = %s, estimated_cost = COALESCE(%s, estimated_cost)
            WHERE id = %s AND status = 'pending' AND (provider_id IS NULL OR provider_id = %s)
            RETURNING {BOOKING_COLUMNS};
            """,
            (provider_id, estimated_cost, booking_id, provider_id),
        )
        return fetch_one(cur)

    def set_service_otp(
        self, conn: Connection, *, booking_id: int, from_status: str, otp: str, expires_at: datetime
    ) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE booking
            SET status = 'awaiting_otp', service_otp = %s, service_otp_expires_at = %s
            WHERE id = %s AND status = %s
            RETURNING {BOOKING_COLUMNS};
            """,
            (otp, expires_at, booking_id, from_status),
        )
        return fetch_one(cur)

    def confirm_service_otp(self, conn: Connection, *, booking_id: int, otp: str) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE booking
            SET status = 'awaiting_billing', service_otp = NULL, service_otp_expires_at = NULL
            WHERE id = %s AND status = 'awaiting_otp' AND service_otp = %s
            RETURNING {BOOKING_COLUMNS};
            """,
            (booking_id, otp),
        )
        return fetch_one(cur)

    def attach_invoice(self, conn: Connection, *, booking_id: int, invoice_id: int) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE booking
            SET status = 'pending_payment', invoice_id = %s
            WHERE id = %s AND status = 'awaiting_billing'
            RETURNING {BOOKING_COLUMNS};
            """,
            (invoice_id, booking_id),
        )
        return fetch_one(cur)

    def list_for_user(self, conn: Connection, user_id: int, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT b.id, b.service_type, b.status, b.scheduled_at, b.user_address, b.is_urgent,
                   b.estimated_cost, b.invoice_id, b.created_at,
                   sp.business_name AS provider_name, i.total_amount AS invoice_total,
                   i.payment_status AS invoice_payment_status
            FROM booking b
            LEFT JOIN service_provider sp ON sp.id = b.provider_id
            LEFT JOIN invoice i ON i.id = b.invoice_id
            WHERE b.user_id = %s
            ORDER BY b.created_at DESC
            LIMIT %s;
            """,
            (user_id, limit),
        )
        return fetch_all(cur)

    def list_for_provider(self, conn: Connection, provider_id: int, limit: int = 100) -> list[dict]:
        cur = conn.execute(
            """
            SELECT b.id, b.service_type, b.status, b.scheduled_at, b.user_address, b.user_phone, b.notes,
                   b.is_urgent, b.estimated_cost, b.invoice_id, b.created_at,
                   u.username AS customer_name, i.payment_status AS invoice_payment_status
            FROM booking b
            JOIN app_user u ON u.id = b.user_id
            LEFT JOIN invoice i ON i.id = b.invoice_id
            WHERE b.provider_id = %s OR (b.provider_id IS NULL AND b.status = 'pending')
            ORDER BY b.created_at DESC
            LIMIT %s;
            """,
            (provider_id, limit),
        )
        return fetch_all(cur)
