"""SQL-level checks with a recording connection; no database required."""
from collections import namedtuple
from decimal import Decimal

import pytest
from psycopg import errors

from shirurexpress.repositories.invoice_repo import InvoiceRepository
from shirurexpress.repositories.order_repo import OrderRepository
from shirurexpress.repositories.product_repo import ProductRepository
from shirurexpress.repositories.rental_repo import RentalRepository
from shirurexpress.repositories.rows import fetch_all, fetch_one

Column = namedtuple("Column", "name")


class RecordingCursor:
    def __init__(self, rows=(), columns=(), rowcount=0):
        self.rows = list(rows)
        self.description = [Column(c) for c in columns]
        self.rowcount = rowcount

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def fetchall(self):
        return self.rows


class RecordingConn:
    def __init__(self, cursor=None, error=None, cursors=None):
        self.cursor = cursor or RecordingCursor()
        self.cursors = list(cursors or [])
        self.error = error
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((" ".join(sql.split()), params))
        if self.error is not None:
            raise self.error
        if self.cursors:
            return self.cursors.pop(0)
        return self.cursor


def test_fetch_helpers_zip_columns():
    cur = RecordingCursor(rows=[(1, "rice"), (2, "dal")], columns=("id", "name"))
    assert fetch_one(cur) == {"id": 1, "name": "rice"}
    assert fetch_all(cur) == [{"id": 1, "name": "rice"}, {"id": 2, "name": "dal"}]
    assert fetch_one(RecordingCursor(columns=("id",))) is None


def test_claim_is_conditional_on_unassigned_ready_order():
    conn = RecordingConn()
    assert OrderRepository().claim_for_rider(conn, order_id=7, rider_id=3) is None
    sql, params = conn.executed[0]
    assert "WHERE id = %s AND status = 'ready_for_pickup' AND rider_id IS NULL" in sql
    assert params == (3, 7)


def test_complete_delivery_matches_rider_state_and_otp():
    conn = RecordingConn(cursor=RecordingCursor(rows=[(7, "delivered")], columns=("id", "status")))
    row = OrderRepository().complete_delivery(conn, order_id=7, rider_id=3, otp="4821")
    assert row == {"id": 7, "status": "delivered"}
    sql, params = conn.executed[0]
    assert "rider_id = %s AND status = 'out_for_delivery' AND delivery_otp = %s" in sql
    assert "delivery_otp = NULL" in sql
    assert params == (7, 3, "4821")


def test_transition_guards_on_previous_status():
    conn = RecordingConn()
    OrderRepository().transition(conn, order_id=5, from_status="pending", to_status="accepted")
    sql, params = conn.executed[0]
    assert sql.startswith("UPDATE customer_order")
    assert "WHERE id = %s AND status = %s" in sql
    assert params == ("accepted", "accepted", 5, "pending")


@pytest.mark.parametrize("rowcount, expected", [(1, True), (0, False)])
def test_invoice_mark_paid_reports_rowcount(rowcount, expected):
    conn = RecordingConn(cursor=RecordingCursor(rowcount=rowcount))
    assert InvoiceRepository().mark_paid(
        conn, invoice_id=9, gateway_order_id="order_1", gateway_payment_id="pay_1"
    ) is expected
    assert "payment_status = 'pending' AND gateway_order_id = %s" in conn.executed[0][0]


def test_decrease_stock_refuses_to_go_negative():
    conn = RecordingConn(cursor=RecordingCursor(rowcount=0))
    with pytest.raises(ValueError, match="Not enough stock"):
        ProductRepository().decrease_stock(conn, product_id=4, qty=3)
    assert "stock_qty >= %s" in conn.executed[0][0]


def test_duplicate_invoice_is_a_value_error():
    conn = RecordingConn(error=errors.UniqueViolation("duplicate key value"))
    with pytest.raises(ValueError, match="already exists"):
        InvoiceRepository().create(
            conn,
            booking_id=1,
            provider_id=2,
            user_id=3,
            spare_parts=[{"part": "Tap", "cost": Decimal("50.00")}],
            spare_parts_total=Decimal("50.00"),
            service_charge=Decimal("200.00"),
            total_amount=Decimal("250.00"),
        )


def test_product_update_only_sets_whitelisted_columns():
    conn = RecordingConn()
    changes = {"unit_price": Decimal("18.00"), "provider_id": 99, "name": "Vada Pav"}
    assert ProductRepository().update(conn, product_id=5, provider_id=2, changes=changes) is None
    sql, params = conn.executed[0]
    assert "SET name = %s, unit_price = %s WHERE id = %s AND provider_id = %s" in sql
    assert params == ["Vada Pav", Decimal("18.00"), 5, 2]


@pytest.mark.parametrize(
    "rowcounts, expected, statements",
    [((1,), "deleted", 1), ((0, 1), "retired", 2), ((0, 0), None, 2)],
)
def test_product_delete_falls_back_to_retiring(rowcounts, expected, statements):
    conn = RecordingConn(cursors=[RecordingCursor(rowcount=n) for n in rowcounts])
    assert ProductRepository().delete(conn, product_id=5, provider_id=2) == expected
    assert len(conn.executed) == statements
    assert "NOT EXISTS (SELECT 1 FROM order_item WHERE product_id = %s)" in conn.executed[0][0]
    if statements == 2:
        assert conn.executed[1][0].startswith("UPDATE product SET is_available = false")


def test_rental_list_builds_filters():
    conn = RecordingConn()
    RentalRepository().list(conn, property_type="flat", max_rent=Decimal("9000"), locality="Karde")
    sql, params = conn.executed[0]
    assert "WHERE rp.is_available AND rp.property_type = %s AND rp.rent <= %s AND rp.locality ILIKE %s" in sql
    assert params == ["flat", Decimal("9000"), "%Karde%", 50]
