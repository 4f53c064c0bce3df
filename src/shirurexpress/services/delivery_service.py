from __future__ import annotations

import logging

from psycopg import Connection

from ..config import BusinessConfig
from ..domain import Actor, DeliveryPartner, Fulfillment, Order, OrderStatus, Role
from ..errors import (
    AlreadyAssigned,
    InvalidOtp,
    InvalidTransition,
    NotAssignedRider,
    NotEligible,
    NotFound,
    NotInDeliverableState,
    ValidationError,
)
from ..lifecycle import check_order_transition, is_terminal_order_status
from ..otp import generate_otp, otp_matches
from ..pricing import within_radius
from ..repositories.order_event_repo import OrderEventRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.rider_repo import RiderRepository
from .order_service import record_event

log = logging.getLogger(__name__)


class DeliveryService:
    """Rider side of the delivery path: claim, pickup and the OTP handoff."""

    def __init__(
        self,
        *,
        order_repo: OrderRepository,
        order_event_repo: OrderEventRepository,
        rider_repo: RiderRepository,
        business: BusinessConfig,
    ) -> None:
        self.order_repo = order_repo
        self.order_event_repo = order_event_repo
        self.rider_repo = rider_repo
        self.business = business

    # ---- partner profile ----

    def register_partner(
        self,
        conn: Connection,
        *,
        user_id: int,
        vehicle_type: str,
        vehicle_number: str | None = None,
        license_number: str | None = None,
    ) -> DeliveryPartner:
        vehicle_type = (vehicle_type or "").strip()
        if not vehicle_type:
            raise ValidationError("Vehicle type cannot be empty.")
        try:
            self.rider_repo.create(
                conn,
                user_id=user_id,
                vehicle_type=vehicle_type,
                vehicle_number=(vehicle_number or "").strip() or None,
                license_number=(license_number or "").strip() or None,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from None
        log.info("rider %s registered (%s)", user_id, vehicle_type)
        return self.get_partner(conn, user_id)

    def get_partner(self, conn: Connection, user_id: int) -> DeliveryPartner:
        row = self.rider_repo.get_by_user_id(conn, user_id)
        if row is None:
            raise NotFound("Delivery partner profile not found.")
        return DeliveryPartner.from_row(row)

    def set_online(self, conn: Connection, *, user_id: int, is_online: bool) -> DeliveryPartner:
        row = self.rider_repo.set_online(conn, user_id=user_id, is_online=bool(is_online))
        if row is None:
            raise NotFound("Delivery partner profile not found.")
        log.info("rider %s is now %s", user_id, "online" if is_online else "offline")
        return DeliveryPartner.from_row(row)

    def update_location(self, conn: Connection, *, user_id: int, latitude: float, longitude: float) -> DeliveryPartner:
        try:
            latitude, longitude = float(latitude), float(longitude)
        except (TypeError, ValueError):
            raise ValidationError("Latitude and longitude must be numbers.") from None
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise ValidationError("Coordinates out of range.")
        row = self.rider_repo.update_location(conn, user_id=user_id, latitude=latitude, longitude=longitude)
        if row is None:
            raise NotFound("Delivery partner profile not found.")
        return DeliveryPartner.from_row(row)

    # ---- order pool ----

    def list_available_orders(self, conn: Connection, rider_id: int) -> list[dict]:
        partner = self.rider_repo.get_by_user_id(conn, rider_id)
        if partner is None:
            raise NotEligible("Register as a delivery partner first.")
        rows = self.order_repo.list_available_for_riders(conn)
        lat, lon = partner["current_latitude"], partner["current_longitude"]
        if lat is None or lon is None:
            return rows
        return within_radius(
            rows,
            float(lat),
            float(lon),
            self.business.rider_radius_km,
            lat_key="pickup_latitude",
            lon_key="pickup_longitude",
            road_factor=self.business.road_distance_factor,
        )

    def list_active_orders(self, conn: Connection, rider_id: int) -> list[dict]:
        return [r for r in self.order_repo.list_for_rider(conn, rider_id) if not is_terminal_order_status(r["status"])]

    def list_history(self, conn: Connection, rider_id: int) -> list[dict]:
        return [r for r in self.order_repo.list_for_rider(conn, rider_id) if is_terminal_order_status(r["status"])]

    # ---- lifecycle ----

    def _get_order(self, conn: Connection, order_id: int) -> Order:
        row = self.order_repo.get(conn, order_id)
        if row is None:
            raise NotFound(f"Order {order_id} not found.")
        return Order.from_row(row)

    @staticmethod
    def _require_assigned(order: Order, rider_id: int) -> None:
        if order.rider_id != rider_id:
            raise NotAssignedRider("You are not the assigned rider for this order.")

    def accept_order(self, conn: Connection, *, order_id: int, rider_id: int) -> Order:
        partner = self.rider_repo.get_by_user_id(conn, rider_id)
        if partner is None or not partner["is_online"]:
            raise NotEligible("Only online delivery partners can accept orders.")

        order = self._get_order(conn, order_id)
        if order.fulfillment is not Fulfillment.DELIVERY:
            raise InvalidTransition("Self-fulfilled orders are not delivered by riders.")
        if order.rider_id is not None:
            raise AlreadyAssigned("Order already accepted by another rider.")
        if order.status is not OrderStatus.READY_FOR_PICKUP:
            raise InvalidTransition(f"Order is {order.status.value}, not ready for pickup.")

        row = self.order_repo.claim_for_rider(conn, order_id=order_id, rider_id=rider_id)
        if row is None:
            # someone else moved the order between our read and the claim
            current = self._get_order(conn, order_id)
            if current.rider_id is not None:
                log.info("order %s: claim by rider %s lost to rider %s", order_id, rider_id, current.rider_id)
                raise AlreadyAssigned("Order already accepted by another rider.")
            raise InvalidTransition(f"Order is {current.status.value}, not ready for pickup.")

        claimed = Order.from_row(row)
        record_event(self.order_event_repo, conn, claimed, order.status, Actor(rider_id, Role.RIDER))
        return claimed

    def mark_arrived(self, conn: Connection, *, order_id: int, rider_id: int) -> Order:
        order = self._get_order(conn, order_id)
        self._require_assigned(order, rider_id)
        check_order_transition(order.fulfillment, order.status, OrderStatus.ARRIVED_AT_PICKUP)

        row = self.order_repo.transition(
            conn,
            order_id=order_id,
            from_status=order.status.value,
            to_status=OrderStatus.ARRIVED_AT_PICKUP.value,
        )
        if row is None:
            raise InvalidTransition("Order status changed since it was read; re-fetch and retry.")
        updated = Order.from_row(row)
        record_event(self.order_event_repo, conn, updated, order.status, Actor(rider_id, Role.RIDER))
        return updated

    def mark_picked_up(self, conn: Connection, *, order_id: int, rider_id: int) -> tuple[Order, str]:
        """Move to out_for_delivery and issue the handoff OTP.

        The code is generated once here and is also shown on the customer's
        tracking view until the delivery is verified.
        """
        order = self._get_order(conn, order_id)
        self._require_assigned(order, rider_id)
        check_order_transition(order.fulfillment, order.status, OrderStatus.OUT_FOR_DELIVERY)

        otp = generate_otp(self.business.delivery_otp_length)
        row = self.order_repo.mark_picked_up(conn, order_id=order_id, rider_id=rider_id, otp=otp)
        if row is None:
            raise InvalidTransition("Order status changed since it was read; re-fetch and retry.")
        updated = Order.from_row(row)
        record_event(self.order_event_repo, conn, updated, order.status, Actor(rider_id, Role.RIDER))
        log.info("order %s: delivery OTP issued", order_id)
        return updated, otp

    def verify_delivery(self, conn: Connection, *, order_id: int, rider_id: int, otp: str) -> Order:
        order = self._get_order(conn, order_id)
        self._require_assigned(order, rider_id)
        if order.status is not OrderStatus.OUT_FOR_DELIVERY:
            raise NotInDeliverableState(f"Order is {order.status.value}, not out for delivery.")
        if not otp_matches(order.delivery_otp, otp):
            log.warning("order %s: wrong delivery OTP from rider %s", order_id, rider_id)
            raise InvalidOtp("Invalid OTP.")

        row = self.order_repo.complete_delivery(conn, order_id=order_id, rider_id=rider_id, otp=order.delivery_otp)
        if row is None:
            raise NotInDeliverableState("Order is no longer out for delivery.")
        self.rider_repo.increment_deliveries(conn, user_id=rider_id)

        delivered = Order.from_row(row)
        record_event(self.order_event_repo, conn, delivered, order.status, Actor(rider_id, Role.RIDER))
        return delivered
