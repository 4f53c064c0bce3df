from __future__ import annotations

from decimal import Decimal

from psycopg import Connection


class PaymentRepository:
    def create(
        self,
        conn: Connection,
        *,
        amount: Decimal,
        method: str,
        invoice_id: int | None = None,
        order_id: int | None = None,
        gateway_payment_id: str | None = None,
        is_refund: bool = False,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO payment(invoice_id, order_id, amount, method, gateway_payment_id, is_refund)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (invoice_id, order_id, amount, method, gateway_payment_id, is_refund),
        )
        return int(cur.fetchone()[0])
