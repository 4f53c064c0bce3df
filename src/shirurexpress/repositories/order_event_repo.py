from __future__ import annotations

from psycopg import Connection

from .rows import fetch_all


class OrderEventRepository:
    def add(
        self,
        conn: Connection,
        *,
        order_id: int,
        from_status: str | None,
        to_status: str,
        actor_role: str,
        actor_id: int | None,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO order_event(order_id, from_status, to_status, actor_role, actor_id)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id;
            """,
            (order_id, from_status, to_status, actor_role, actor_id),
        )
        return int(cur.fetchone()[0])

    def list_for_order(self, conn: Connection, order_id: int) -> list[dict]:
        cur = conn.execute(
            """
            SELECT id, order_id, from_status, to_status, actor_role, actor_id, created_at
            FROM order_event
            WHERE order_id = %s
            ORDER BY id;
            """,
            (order_id,),
        )
        return fetch_all(cur)
