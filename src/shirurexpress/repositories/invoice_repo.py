from __future__ import annotations

from decimal import Decimal

from psycopg import Connection, errors
from psycopg.types.json import Jsonb

from .rows import fetch_one

INVOICE_COLUMNS = """
    id, booking_id, provider_id, user_id, spare_parts, spare_parts_total, service_charge, total_amount,
    payment_status, gateway_order_id, gateway_payment_id, paid_at, created_at
"""


class InvoiceRepository:
    def create(
        self,
        conn: Connection,
        *,
        booking_id: int,
        provider_id: int,
        user_id: int,
        spare_parts: list[dict],
        spare_parts_total: Decimal,
        service_charge: Decimal,
        total_amount: Decimal,
    ) -> int:
        parts = [{"part": p["part"], "cost": str(p["cost"])} for p in spare_parts]
        try:
            cur = conn.execute(
                """
                INSERT INTO invoice(booking_id, provider_id, user_id, spare_parts, spare_parts_total,
                                    service_charge, total_amount)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id;
                """,
                (booking_id, provider_id, user_id, Jsonb(parts), spare_parts_total, service_charge, total_amount),
            )
        except errors.UniqueViolation:
            raise ValueError("Invoice already exists for booking_id=%s" % booking_id) from None
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, invoice_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {INVOICE_COLUMNS} FROM invoice WHERE id = %s;", (invoice_id,))
        return fetch_one(cur)

    def get_by_booking(self, conn: Connection, booking_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {INVOICE_COLUMNS} FROM invoice WHERE booking_id = %s;", (booking_id,))
        return fetch_one(cur)

    def set_gateway_order(self, conn: Connection, *, invoice_id: int, gateway_order_id: str) -> None:
        conn.execute(
            "UPDATE invoice SET gateway_order_id = %s WHERE id = %s AND payment_status = 'pending';",
            (gateway_order_id, invoice_id),
        )

    def mark_paid(self, conn: Connection, *, invoice_id: int, gateway_order_id: str, gateway_payment_id: str) -> bool:
        cur = conn.execute(
            """
            UPDATE invoice
            SET payment_status = 'paid', gateway_payment_id = %s, paid_at = now()
            WHERE id = %s AND payment_status = 'pending' AND gateway_order_id = %s;
            """,
            (gateway_payment_id, invoice_id, gateway_order_id),
        )
        return cur.rowcount == 1
