from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from .rows import fetch_all, fetch_one

ORDER_COLUMNS = """
    id, kind, fulfillment, customer_id, provider_id, rider_id, status,
    subtotal, platform_fee, delivery_fee, total,
    delivery_address, delivery_latitude, delivery_longitude, delivery_otp,
    payment_method, payment_status, gateway_order_id, gateway_payment_id,
    created_at, status_changed_at, rider_accepted_at, picked_up_at, delivered_at
"""


class OrderRepository:
    def create(
        self,
        conn: Connection,
        *,
        kind: str,
        fulfillment: str,
        customer_id: int,
        provider_id: int,
        subtotal: Decimal,
        platform_fee: Decimal,
        delivery_fee: Decimal,
        total: Decimal,
        delivery_address: str,
        delivery_latitude: float | None,
        delivery_longitude: float | None,
        payment_method: str,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO customer_order(
              kind, fulfillment, customer_id, provider_id,
              subtotal, platform_fee, delivery_fee, total,
              delivery_address, delivery_latitude, delivery_longitude, payment_method
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (
                kind,
                fulfillment,
                customer_id,
                provider_id,
                subtotal,
                platform_fee,
                delivery_fee,
                total,
                delivery_address,
                delivery_latitude,
                delivery_longitude,
                payment_method,
            ),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, order_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {ORDER_COLUMNS} FROM customer_order WHERE id = %s;", (order_id,))
        return fetch_one(cur)

    def transition(self, conn: Connection, *, order_id: int, from_status: str, to_status: str) -> dict | None:
        """Move the order only if it is still in ``from_status``; None otherwise."""
        cur = conn.execute(
            f"""
            UPDATE customer_order
            SET status = %s,
                status_changed_at = now(),
                delivered_at = CASE WHEN %s = 'delivered' THEN now() ELSE delivered_at END
            WHERE id = %s AND status = %s
            RETURNING {ORDER_COLUMNS};
            """,
            (to_status, to_status, order_id, from_status),
        )
        return fetch_one(cur)

    def claim_for_rider(self, conn: Connection, *, order_id: int, rider_id: int) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE customer_order
            SET rider_id = %s, status = 'assigned', rider_accepted_at = now(), status_changed_at = now()
            WHERE id = %s AND status = 'ready_for_pickup' AND rider_id IS NULL
            RETURNING {ORDER_COLUMNS};
            """,
            (rider_id, order_id),
        )
        return fetch_one(cur)

    def mark_picked_up(self, conn: Connection, *, order_id: int, rider_id: int, otp: str) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE customer_order
            SET status = 'out_for_delivery', delivery_otp = %s, picked_up_at = now(), status_changed_at = now()
            WHERE id = %s AND rider_id = %s AND status = 'arrived_at_pickup' AND delivery_otp IS NULL
            RETURNING {ORDER_COLUMNS};
            """,
            (otp, order_id, rider_id),
        )
        return fetch_one(cur)

    def complete_delivery(self, conn: Connection, *, order_id: int, rider_id: int, otp: str) -> dict | None:
        cur = conn.execute(
            f"""
            UPDATE customer_order
            SET status = 'delivered', delivery_otp = NULL, delivered_at = now(), status_changed_at = now()
            WHERE id = %s AND rider_id = %s AND status = 'out_for_delivery' AND delivery_otp = %s
            RETURNING {ORDER_COLUMNS};
            """,
            (order_id, rider_id, otp),
        )
        return fetch_one(cur)

    def list_available_for_riders(self, conn: Connection, limit: int = 100) -> list[dict]:
        cur = conn.execute(
            """
            SELECT o.id, o.kind, o.status, o.total, o.delivery_fee, o.delivery_address,
                   o.delivery_latitude, o.delivery_longitude, o.created_at,
                   sp.id AS provider_id, sp.business_name AS provider_name, sp.address AS pickup_address,
                   sp.latitude AS pickup_latitude, sp.longitude AS pickup_longitude
            FROM customer_order o
            JOIN service_provider sp ON sp.id = o.provider_id
            WHERE o.status = 'ready_for_pickup' AND o.rider_id IS NULL AND o.fulfillment = 'delivery'
            ORDER BY o.created_at DESC
            LIMIT %s;
            """,
            (limit,),
        )
        return fetch_all(cur)

    def list_for_rider(self, conn: Connection, rider_id: int, limit: int = 100) -> list[dict]:
        cur = conn.execute(
            """
            SELECT o.id, o.kind, o.status, o.total, o.delivery_fee, o.delivery_address,
                   o.created_at, o.rider_accepted_at, o.picked_up_at, o.delivered_at,
                   sp.business_name AS provider_name, sp.address AS pickup_address
            FROM customer_order o
            JOIN service_provider sp ON sp.id = o.provider_id
            WHERE o.rider_id = %s
            ORDER BY o.created_at DESC
            LIMIT %s;
            """,
            (rider_id, limit),
        )
        return fetch_all(cur)

    def list_for_customer(self, conn: Connection, customer_id: int, limit: int = 50) -> list[dict]:
        cur = conn.execute(
            """
            SELECT o.id, o.kind, o.fulfillment, o.status, o.total, o.payment_status, o.created_at,
                   sp.business_name AS provider_name
            FROM customer_order o
            JOIN service_provider sp ON sp.id = o.provider_id
            WHERE o.customer_id = %s
            ORDER BY o.created_at DESC
            LIMIT %s;
            """,
            (customer_id, limit),
        )
        return fetch_all(cur)

    def list_for_provider(self, conn: Connection, provider_id: int, limit: int = 100) -> list[dict]:
        cur = conn.execute(
            """
            SELECT o.id, o.kind, o.fulfillment, o.status, o.total, o.rider_id, o.delivery_address, o.created_at,
                   u.username AS customer_name
            FROM customer_order o
            JOIN app_user u ON u.id = o.customer_id
            WHERE o.provider_id = %s
            ORDER BY o.created_at DESC
            LIMIT %s;
            """,
            (provider_id, limit),
        )
        return fetch_all(cur)

    def set_gateway_order(self, conn: Connection, *, order_id: int, gateway_order_id: str) -> None:
        conn.execute(
            "UPDATE customer_order SET gateway_order_id = %s WHERE id = %s AND payment_status = 'pending';",
            (gateway_order_id, order_id),
        )

    def mark_paid(self, conn: Connection, *, order_id: int, gateway_order_id: str, gateway_payment_id: str) -> bool:
        cur = conn.execute(
            """
            UPDATE customer_order
            SET payment_status = 'paid', gateway_payment_id = %s
            WHERE id = %s AND payment_status = 'pending' AND gateway_order_id = %s;
            """,
            (gateway_payment_id, order_id, gateway_order_id),
        )
        return cur.rowcount == 1

    def list_totals_view(self, conn: Connection, limit: int = 30) -> list[dict]:
        cur = conn.execute(
            "SELECT * FROM v_order_totals ORDER BY order_id DESC LIMIT %s;",
            (limit,),
        )
        return fetch_all(cur)
