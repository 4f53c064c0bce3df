from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from psycopg import Connection

from ..domain import BookingStatus, Invoice, Order, OrderStatus, PaymentMethod, PaymentStatus
from ..errors import InvalidTransition, NotFound, PaymentVerificationFailed, ValidationError
from ..gateway import RazorpayGateway
from ..repositories.booking_repo import BookingRepository
from ..repositories.invoice_repo import InvoiceRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.payment_repo import PaymentRepository

log = logging.getLogger(__name__)


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class PaymentService:
    """Gateway hand-off for invoices and online-paid orders.

    Completion is idempotent: the gateway may call back more than once for
    the same payment, and only the first callback changes anything.
    """

    def __init__(
        self,
        *,
        gateway: RazorpayGateway,
        invoice_repo: InvoiceRepository,
        booking_repo: BookingRepository,
        order_repo: OrderRepository,
        payment_repo: PaymentRepository,
        currency: str = "INR",
    ) -> None:
        self.gateway = gateway
        self.invoice_repo = invoice_repo
        self.booking_repo = booking_repo
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.currency = currency

    def _get_invoice(self, conn: Connection, invoice_id: int) -> Invoice:
        row = self.invoice_repo.get(conn, invoice_id)
        if row is None:
            raise NotFound(f"Invoice {invoice_id} not found.")
        return Invoice.from_row(row)

    def _get_order(self, conn: Connection, order_id: int) -> Order:
        row = self.order_repo.get(conn, order_id)
        if row is None:
            raise NotFound(f"Order {order_id} not found.")
        return Order.from_row(row)

    # ---- invoices ----

    def create_invoice_payment_order(self, conn: Connection, *, invoice_id: int, user_id: int) -> dict:
        invoice = self._get_invoice(conn, invoice_id)
        if invoice.user_id != user_id:
            raise NotFound(f"Invoice {invoice_id} not found.")
        if invoice.payment_status is PaymentStatus.PAID:
            raise InvalidTransition("This invoice has already been paid.")

        data = self.gateway.create_order(
            amount_paise=to_paise(invoice.total_amount),
            currency=self.currency,
            receipt=f"invoice-{invoice.id}",
            notes={"invoice_id": invoice.id, "booking_id": invoice.booking_id, "user_id": user_id},
        )
        self.invoice_repo.set_gateway_order(conn, invoice_id=invoice.id, gateway_order_id=data["id"])
        return {
            "gateway_order_id": data["id"],
            "amount": to_paise(invoice.total_amount),
            "currency": self.currency,
            "key_id": self.gateway.cfg.key_id,
            "invoice_id": invoice.id,
        }

    def verify_invoice_payment(
        self,
        conn: Connection,
        *,
        invoice_id: int,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Invoice:
        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
            log.warning("invoice %s: payment signature rejected (order %s)", invoice_id, gateway_order_id)
            raise PaymentVerificationFailed("Payment verification failed.")
        return self.record_invoice_payment(
            conn,
            invoice_id=invoice_id,
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
        )

    def record_invoice_payment(
        self, conn: Connection, *, invoice_id: int, gateway_order_id: str, gateway_payment_id: str
    ) -> Invoice:
        invoice = self._get_invoice(conn, invoice_id)
        if invoice.payment_status is PaymentStatus.PAID:
            log.info("invoice %s: repeated payment callback ignored", invoice_id)
            return invoice
        if invoice.gateway_order_id != gateway_order_id:
            raise ValidationError("Gateway order does not belong to this invoice.")

        if not self.invoice_repo.mark_paid(
            conn, invoice_id=invoice_id, gateway_order_id=gateway_order_id, gateway_payment_id=gateway_payment_id
        ):
            # a concurrent callback got there first
            current = self._get_invoice(conn, invoice_id)
            if current.payment_status is PaymentStatus.PAID:
                return current
            raise ValidationError("Gateway order does not belong to this invoice.")

        self.payment_repo.create(
            conn,
            amount=invoice.total_amount,
            method=PaymentMethod.ONLINE.value,
            invoice_id=invoice_id,
            gateway_payment_id=gateway_payment_id,
        )
        row = self.booking_repo.transition(
            conn,
            booking_id=invoice.booking_id,
            from_status=BookingStatus.PENDING_PAYMENT.value,
            to_status=BookingStatus.COMPLETED.value,
        )
        if row is None:
            raise InvalidTransition(f"Booking {invoice.booking_id} is not awaiting payment.")
        log.info("invoice %s paid, booking %s completed", invoice_id, invoice.booking_id)
        return self._get_invoice(conn, invoice_id)

    # ---- orders ----

    def create_order_payment_order(self, conn: Connection, *, order_id: int, user_id: int) -> dict:
        order = self._get_order(conn, order_id)
        if order.customer_id != user_id:
            raise NotFound(f"Order {order_id} not found.")
        if order.payment_method is not PaymentMethod.ONLINE:
            raise ValidationError("This order is paid on delivery.")
        if order.payment_status is PaymentStatus.PAID:
            raise InvalidTransition("This order has already been paid.")
        if order.status in (OrderStatus.CANCELLED, OrderStatus.DECLINED):
            raise InvalidTransition(f"Order is {order.status.value}.")

        data = self.gateway.create_order(
            amount_paise=to_paise(order.total),
            currency=self.currency,
            receipt=f"order-{order.id}",
            notes={"order_id": order.id, "user_id": user_id},
        )
        self.order_repo.set_gateway_order(conn, order_id=order.id, gateway_order_id=data["id"])
        return {
            "gateway_order_id": data["id"],
            "amount": to_paise(order.total),
            "currency": self.currency,
            "key_id": self.gateway.cfg.key_id,
            "order_id": order.id,
        }

    def verify_order_payment(
        self,
        conn: Connection,
        *,
        order_id: int,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order:
        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
            log.warning("order %s: payment signature rejected (order %s)", order_id, gateway_order_id)
            raise PaymentVerificationFailed("Payment verification failed.")

        order = self._get_order(conn, order_id)
        if order.payment_status is PaymentStatus.PAID:
            log.info("order %s: repeated payment callback ignored", order_id)
            return order
        if order.gateway_order_id != gateway_order_id:
            raise ValidationError("Gateway order does not belong to this order.")

        if not self.order_repo.mark_paid(
            conn, order_id=order_id, gateway_order_id=gateway_order_id, gateway_payment_id=gateway_payment_id
        ):
            current = self._get_order(conn, order_id)
            if current.payment_status is PaymentStatus.PAID:
                return current
            raise ValidationError("Gateway order does not belong to this order.")

        self.payment_repo.create(
            conn,
            amount=order.total,
            method=PaymentMethod.ONLINE.value,
            order_id=order_id,
            gateway_payment_id=gateway_payment_id,
        )
        log.info("order %s paid online", order_id)
        return self._get_order(conn, order_id)
