from __future__ import annotations

from decimal import Decimal

from psycopg import Connection, errors

from .rows import fetch_all, fetch_one

PRODUCT_COLUMNS = "id, provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available, created_at"
UPDATABLE_COLUMNS = ("name", "category", "unit", "unit_price", "stock_qty", "is_available")


class ProductRepository:
    def upsert_by_sku(
        self,
        conn: Connection,
        *,
        provider_id: int,
        kind: str,
        sku: str,
        name: str,
        category: str | None,
        unit: str | None,
        unit_price: Decimal,
        stock_qty: int | None,
        is_available: bool = True,
    ) -> int:
        cur = conn.execute(
            """
            INSERT INTO product(provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (provider_id, sku) DO UPDATE SET
              kind = EXCLUDED.kind,
              name = EXCLUDED.name,
              category = EXCLUDED.category,
              unit = EXCLUDED.unit,
              unit_price = EXCLUDED.unit_price,
              stock_qty = EXCLUDED.stock_qty,
              is_available = EXCLUDED.is_available
            RETURNING id;
            """,
            (provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available),
        )
        return int(cur.fetchone()[0])

    def get(self, conn: Connection, product_id: int) -> dict | None:
        cur = conn.execute(f"SELECT {PRODUCT_COLUMNS} FROM product WHERE id = %s;", (product_id,))
        return fetch_one(cur)

    def list(
        self,
        conn: Connection,
        *,
        provider_id: int | None = None,
        kind: str | None = None,
        category: str | None = None,
        min_price: Decimal | None = None,
        max_price: Decimal | None = None,
        search: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        where = ["is_available"]
        params: list = []
        if provider_id is not None:
            where.append("provider_id = %s")
            params.append(provider_id)
        if kind:
            where.append("kind = %s")
            params.append(kind)
        if category:
            where.append("lower(category) = lower(%s)")
            params.append(category)
        if min_price is not None:
            where.append("unit_price >= %s")
            params.append(min_price)
        if max_price is not None:
            where.append("unit_price <= %s")
            params.append(max_price)
        if search:
            where.append("name ILIKE %s")
            params.append(f"%{search}%")
        params.append(limit)
        cur = conn.execute(
            f"""
            SELECT id, provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available
            FROM product
            WHERE {" AND ".join(where)}
            ORDER BY name
            LIMIT %s;
            """,
            params,
        )
        return fetch_all(cur)

    def decrease_stock(self, conn: Connection, *, product_id: int, qty: int) -> None:
        cur = conn.execute(
            """
            UPDATE product
            SET stock_qty = stock_qty - %s
            WHERE id = %s AND stock_qty >= %s;
            """,
            (qty, product_id, qty),
        )
        if cur.rowcount != 1:
            raise ValueError("Not enough stock for product_id=%s" % product_id)

    def create(
        self,
        conn: Connection,
        *,
        provider_id: int,
        kind: str,
        sku: str,
        name: str,
        category: str | None,
        unit: str | None,
        unit_price: Decimal,
        stock_qty: int | None,
        is_available: bool = True,
    ) -> int:
        try:
            cur = conn.execute(
                """
                INSERT INTO product(provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id;
                """,
                (provider_id, kind, sku, name, category, unit, unit_price, stock_qty, is_available),
            )
        except errors.UniqueViolation:
            raise ValueError("Product with sku=%s already exists" % sku) from None
        return int(cur.fetchone()[0])

    def list_for_provider(self, conn: Connection, provider_id: int) -> list[dict]:
        # includes unavailable items, for the provider's own menu screen
        cur = conn.execute(
            f"SELECT {PRODUCT_COLUMNS} FROM product WHERE provider_id = %s ORDER BY name;",
            (provider_id,),
        )
        return fetch_all(cur)

    def update(self, conn: Connection, *, product_id: int, provider_id: int, changes: dict) -> dict | None:
        """Apply ``changes`` to one of the provider's products; None if it is not theirs."""
        columns = [c for c in UPDATABLE_COLUMNS if c in changes]
        if not columns:
            return self.get_owned(conn, product_id=product_id, provider_id=provider_id)
        assignments = ", ".join(f"{c} = %s" for c in columns)
        cur = conn.execute(
            f"""
            UPDATE product SET {assignments}
            WHERE id = %s AND provider_id = %s
            RETURNING {PRODUCT_COLUMNS};
            """,
            [changes[c] for c in columns] + [product_id, provider_id],
        )
        return fetch_one(cur)

    def get_owned(self, conn: Connection, *, product_id: int, provider_id: int) -> dict | None:
        cur = conn.execute(
            f"SELECT {PRODUCT_COLUMNS} FROM product WHERE id = %s AND provider_id = %s;",
            (product_id, provider_id),
        )
        return fetch_one(cur)

    def delete(self, conn: Connection, *, product_id: int, provider_id: int) -> str | None:
        """Delete an item, or retire it when past orders still point at it.

        Returns "deleted", "retired", or None when the provider owns no such item.
        """
        cur = conn.execute(
            """
            DELETE FROM product
            WHERE id = %s AND provider_id = %s
              AND NOT EXISTS (SELECT 1 FROM order_item WHERE product_id = %s);
            """,
            (product_id, provider_id, product_id),
        )
        if cur.rowcount == 1:
            return "deleted"
        cur = conn.execute(
            "UPDATE product SET is_available = false WHERE id = %s AND provider_id = %s;",
            (product_id, provider_id),
        )
        return "retired" if cur.rowcount == 1 else None
