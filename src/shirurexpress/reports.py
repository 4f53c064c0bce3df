from __future__ import annotations

from datetime import datetime

from psycopg import Connection

from .repositories.rows import fetch_all, fetch_one


def revenue_report(conn: Connection, date_from: datetime, date_to: datetime) -> dict:
    # orders and invoices are summed in separate subqueries so neither fans out the other
    cur = conn.execute(
        """
        SELECT
          o.orders_delivered,
          o.order_revenue,
          o.platform_fees,
          o.delivery_fees,
          i.invoices_paid,
          i.invoice_revenue
        FROM (
          SELECT
            COUNT(*) AS orders_delivered,
            COALESCE(SUM(total), 0) AS order_revenue,
            COALESCE(SUM(platform_fee), 0) AS platform_fees,
            COALESCE(SUM(delivery_fee), 0) AS delivery_fees
          FROM customer_order
          WHERE status = 'delivered' AND delivered_at >= %s AND delivered_at < %s
        ) o
        CROSS JOIN (
          SELECT
            COUNT(*) AS invoices_paid,
            COALESCE(SUM(total_amount), 0) AS invoice_revenue
          FROM invoice
          WHERE payment_status = 'paid' AND paid_at >= %s AND paid_at < %s
        ) i;
        """,
        (date_from, date_to, date_from, date_to),
    )
    return fetch_one(cur)


def rider_leaderboard(conn: Connection, limit: int = 10) -> list[dict]:
    cur = conn.execute(
        """
        SELECT
          dp.user_id,
          u.username,
          dp.vehicle_type,
          dp.total_deliveries,
          COALESCE(SUM(o.delivery_fee), 0) AS delivery_fees_earned
        FROM delivery_partner dp
        JOIN app_user u ON u.id = dp.user_id
        LEFT JOIN customer_order o ON o.rider_id = dp.user_id AND o.status = 'delivered'
        GROUP BY dp.user_id, u.username, dp.vehicle_type, dp.total_deliveries
        ORDER BY dp.total_deliveries DESC, dp.user_id
        LIMIT %s;
        """,
        (limit,),
    )
    return fetch_all(cur)
