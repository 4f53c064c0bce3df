from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from .rows import fetch_all


class OrderItemRepository:
    def add_item(
        self,
        conn: Connection,
        *,
        order_id: int,
        product_id: int,
        name: str,
        quantity: int,
        unit_price: Decimal,
    ) -> None:
        conn.execute(
            """
            INSERT INTO order_item(order_id, product_id, name, quantity, unit_price)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (order_id, product_id) DO UPDATE SET
              quantity = order_item.quantity + EXCLUDED.quantity;
            """,
            (order_id, product_id, name, quantity, unit_price),
        )

    def list_for_order(self, conn: Connection, order_id: int) -> list[dict]:
        cur = conn.execute(
            """
            SELECT order_id, product_id, name, quantity, unit_price
            FROM order_item
            WHERE order_id = %s
            ORDER BY name;
            """,
            (order_id,),
        )
        return fetch_all(cur)
