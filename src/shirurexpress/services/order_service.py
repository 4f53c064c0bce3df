from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg import Connection

from ..config import BusinessConfig
from ..domain import Actor, Fulfillment, Order, OrderItem, OrderKind, OrderStatus, PaymentMethod, Role
from ..errors import InvalidTransition, NotAssignedRider, NotEligible, NotFound, ValidationError
from ..lifecycle import ORDER_ROLE_TARGETS, check_order_transition, is_terminal_order_status, order_timeline
from ..pricing import CartLine, cart_totals, delivery_fee_between
from ..repositories.order_event_repo import OrderEventRepository
from ..repositories.order_item_repo import OrderItemRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.product_repo import ProductRepository
from ..repositories.provider_repo import ProviderRepository
from ..repositories.rider_repo import RiderRepository
from .access import require_provider

log = logging.getLogger(__name__)

STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.ACCEPTED: "Order Accepted",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.ASSIGNED: "Rider Assigned",
    OrderStatus.ARRIVED_AT_PICKUP: "Rider at Pickup",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.DECLINED: "Declined",
    OrderStatus.CANCELLED: "Cancelled",
}

# seconds a tracking client should wait before polling again
TRACK_POLL_SECONDS = 10


@dataclass
class CreateOrderItemInput:
    product_id: int
    quantity: int


def record_event(events: OrderEventRepository, conn: Connection, order: Order, from_status, actor: Actor) -> None:
    events.add(
        conn,
        order_id=order.id,
        from_status=from_status.value if from_status is not None else None,
        to_status=order.status.value,
        actor_role=actor.role.value,
        actor_id=actor.user_id,
    )
    log.info(
        "order %s: %s -> %s by %s#%s",
        order.id,
        from_status.value if from_status is not None else "-",
        order.status.value,
        actor.role.value,
        actor.user_id,
    )


class OrderService:
    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        order_item_repo: OrderItemRepository,
        order_event_repo: OrderEventRepository,
        product_repo: ProductRepository,
        provider_repo: ProviderRepository,
        rider_repo: RiderRepository,
        business: BusinessConfig,
    ) -> None:
        self.order_repo = order_repo
        self.order_item_repo = order_item_repo
        self.order_event_repo = order_event_repo
        self.product_repo = product_repo
        self.provider_repo = provider_repo
        self.rider_repo = rider_repo
        self.business = business

    def create_order(
        self,
        conn: Connection,
        *,
        customer_id: int,
        provider_id: int,
        kind: str,
        items: list[CreateOrderItemInput],
        delivery_address: str,
        fulfillment: str = Fulfillment.DELIVERY.value,
        delivery_latitude: float | None = None,
        delivery_longitude: float | None = None,
        payment_method: str = PaymentMethod.COD.value,
    ) -> Order:
        try:
            kind = OrderKind(kind)
            fulfillment = Fulfillment(fulfillment)
            payment_method = PaymentMethod(payment_method)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        if not items:
            raise ValidationError("Order must contain at least one item.")
        if not (delivery_address and delivery_address.strip()):
            raise ValidationError("Delivery address cannot be empty.")

        provider = self.provider_repo.get(conn, provider_id)
        if provider is None:
            raise NotFound(f"Provider {provider_id} not found.")

        quantities: dict[int, int] = {}
        for it in items:
            if it.quantity <= 0:
                raise ValidationError("Item quantity must be > 0.")
            quantities[it.product_id] = quantities.get(it.product_id, 0) + int(it.quantity)

        lines: list[CartLine] = []
        for product_id, qty in quantities.items():
            product = self.product_repo.get(conn, product_id)
            if product is None or int(product["provider_id"]) != provider_id:
                raise ValidationError(f"Unknown product for this provider: {product_id}")
            if not product["is_available"]:
                raise ValidationError(f"Product is not available: {product['name']}")
            if product["stock_qty"] is not None:
                try:
                    self.product_repo.decrease_stock(conn, product_id=product_id, qty=qty)
                except ValueError:
                    raise ValidationError(f"Not enough stock for {product['name']}.") from None
            lines.append(
                CartLine(product_id=product_id, name=product["name"], quantity=qty, unit_price=product["unit_price"])
            )

        if fulfillment is Fulfillment.SELF:
            fee = 0
        else:
            fee = delivery_fee_between(
                (provider["latitude"], provider["longitude"]),
                (delivery_latitude, delivery_longitude),
                self.business,
            )
        totals = cart_totals(lines, self.business.platform_fee_rate, fee)

        order_id = self.order_repo.create(
            conn,
            kind=kind.value,
            fulfillment=fulfillment.value,
            customer_id=customer_id,
            provider_id=provider_id,
            subtotal=totals.subtotal,
            platform_fee=totals.platform_fee,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            delivery_address=delivery_address.strip(),
            delivery_latitude=delivery_latitude,
            delivery_longitude=delivery_longitude,
            payment_method=payment_method.value,
        )
        for ln in lines:
            self.order_item_repo.add_item(
                conn,
                order_id=order_id,
                product_id=ln.product_id,
                name=ln.name,
                quantity=ln.quantity,
                unit_price=ln.unit_price,
            )

        order = self.get_order(conn, order_id)
        record_event(self.order_event_repo, conn, order, None, Actor(customer_id, Role.CUSTOMER))
        return order

    def get_order(self, conn: Connection, order_id: int) -> Order:
        row = self.order_repo.get(conn, order_id)
        if row is None:
            raise NotFound(f"Order {order_id} not found.")
        return Order.from_row(row)

    def check_access(self, conn: Connection, order: Order, actor: Actor) -> None:
        if actor.role is Role.ADMIN:
            return
        if actor.role is Role.CUSTOMER:
            if order.customer_id != actor.user_id:
                raise NotEligible("This order belongs to another customer.")
        elif actor.role is Role.PROVIDER:
            provider = require_provider(conn, self.provider_repo, actor.user_id)
            if int(provider["id"]) != order.provider_id:
                raise NotEligible("This order belongs to another provider.")
        elif actor.role is Role.RIDER:
            if order.rider_id != actor.user_id:
                raise NotAssignedRider("You are not the assigned rider for this order.")

    def get_order_detail(self, conn: Connection, order_id: int, actor: Actor) -> dict:
        order = self.get_order(conn, order_id)
        self.check_access(conn, order, actor)
        items = [OrderItem.from_row(r) for r in self.order_item_repo.list_for_order(conn, order_id)]
        return {"order": order, "items": items}

    def advance_status(self, conn: Connection, *, order_id: int, target: str, actor: Actor) -> Order:
        try:
            target = OrderStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown order status: {target!r}") from None

        order = self.get_order(conn, order_id)
        self.check_access(conn, order, actor)

        if target not in ORDER_ROLE_TARGETS[actor.role]:
            raise NotEligible(f"Role {actor.role.value} cannot set status {target.value}.")
        if target is OrderStatus.DELIVERED and order.fulfillment is Fulfillment.DELIVERY:
            raise NotEligible("Delivery orders are completed by the rider with the customer's OTP.")

        check_order_transition(order.fulfillment, order.status, target)
        return self._apply(conn, order, target, actor)

    def cancel_order(self, conn: Connection, *, order_id: int, actor: Actor) -> Order:
        return self.advance_status(conn, order_id=order_id, target=OrderStatus.CANCELLED.value, actor=actor)

    def _apply(self, conn: Connection, order: Order, target: OrderStatus, actor: Actor) -> Order:
        row = self.order_repo.transition(
            conn, order_id=order.id, from_status=order.status.value, to_status=target.value
        )
        if row is None:
            log.warning("order %s: lost update moving %s -> %s", order.id, order.status.value, target.value)
            raise InvalidTransition("Order status changed since it was read; re-fetch and retry.")
        updated = Order.from_row(row)
        record_event(self.order_event_repo, conn, updated, order.status, actor)
        return updated

    def list_customer_orders(self, conn: Connection, customer_id: int) -> list[dict]:
        return self.order_repo.list_for_customer(conn, customer_id)

    def list_provider_orders(self, conn: Connection, provider_user_id: int) -> list[dict]:
        provider = require_provider(conn, self.provider_repo, provider_user_id)
        return self.order_repo.list_for_provider(conn, int(provider["id"]))

    def track_order(self, conn: Connection, *, order_id: int, customer_id: int) -> dict:
        """Customer-facing snapshot: status, timeline, rider position and the handoff OTP."""
        order = self.get_order(conn, order_id)
        if order.customer_id != customer_id:
            raise NotFound(f"Order {order_id} not found.")

        reached_at = {}
        for ev in self.order_event_repo.list_for_order(conn, order_id):
            reached_at.setdefault(ev["to_status"], ev["created_at"])

        timeline = []
        for status in order_timeline(order.fulfillment):
            timeline.append(
                {
                    "key": status.value,
                    "label": STATUS_LABELS[status],
                    "completed": status.value in reached_at,
                    "time": reached_at.get(status.value),
                }
            )
        if order.status in (OrderStatus.CANCELLED, OrderStatus.DECLINED):
            timeline.append(
                {
                    "key": order.status.value,
                    "label": STATUS_LABELS[order.status],
                    "completed": True,
                    "time": reached_at.get(order.status.value),
                }
            )

        rider_location = None
        if order.rider_id is not None and not is_terminal_order_status(order.status):
            partner = self.rider_repo.get_by_user_id(conn, order.rider_id)
            if partner and partner["current_latitude"] is not None and partner["current_longitude"] is not None:
                rider_location = {
                    "latitude": partner["current_latitude"],
                    "longitude": partner["current_longitude"],
                    "last_update": partner["last_location_at"],
                }

        return {
            "order_id": order.id,
            "status": order.status,
            "kind": order.kind,
            "total": order.total,
            "timeline": timeline,
            "rider_location": rider_location,
            # shown to the customer, who reads it out to the rider at the door
            "delivery_otp": order.delivery_otp if order.status is OrderStatus.OUT_FOR_DELIVERY else None,
            "items": self.order_item_repo.list_for_order(conn, order_id),
            "poll_after_seconds": TRACK_POLL_SECONDS,
        }
