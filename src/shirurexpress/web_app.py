from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from werkzeug.exceptions import HTTPException

from shirurexpress.config import AppConfig, ConfigError, config_path_from_env, load_config
from shirurexpress.db import Db, DbError
from shirurexpress.domain import Actor, Role
from shirurexpress.errors import MarketplaceError, NotEligible, NotFound, ValidationError
from shirurexpress.gateway import RazorpayGateway
from shirurexpress.main import configure_logging
from shirurexpress.notify import SmsNotifier
from shirurexpress.pricing import within_radius
from shirurexpress.repositories.booking_repo import BookingRepository
from shirurexpress.repositories.invoice_repo import InvoiceRepository
from shirurexpress.repositories.order_event_repo import OrderEventRepository
from shirurexpress.repositories.order_item_repo import OrderItemRepository
from shirurexpress.repositories.order_repo import OrderRepository
from shirurexpress.repositories.payment_repo import PaymentRepository
from shirurexpress.repositories.problem_repo import ProblemRepository
from shirurexpress.repositories.product_repo import ProductRepository
from shirurexpress.repositories.provider_repo import ProviderRepository
from shirurexpress.repositories.rental_repo import RentalRepository
from shirurexpress.repositories.review_repo import ReviewRepository
from shirurexpress.repositories.rider_repo import RiderRepository
from shirurexpress.repositories.table_booking_repo import TableBookingRepository
from shirurexpress.services.access import parse_role, require_role
from shirurexpress.services.booking_service import BookingService
from shirurexpress.services.delivery_service import DeliveryService
from shirurexpress.services.order_service import CreateOrderItemInput, OrderService
from shirurexpress.services.payment_service import PaymentService
from shirurexpress.services.provider_service import ProviderService
from shirurexpress.services.rental_service import RentalService
from shirurexpress.services.table_booking_service import TableBookingService

log = logging.getLogger(__name__)


class MarketplaceJSONProvider(DefaultJSONProvider):
    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, Decimal):
            return str(o)
        if is_dataclass(o) and not isinstance(o, type):
            return asdict(o)
        return DefaultJSONProvider.default(o)


app = Flask(__name__)
app.json = MarketplaceJSONProvider(app)
app.secret_key = "change-this-secret-key-in-production"


@dataclass
class Repositories:
    order: OrderRepository = field(default_factory=OrderRepository)
    order_item: OrderItemRepository = field(default_factory=OrderItemRepository)
    order_event: OrderEventRepository = field(default_factory=OrderEventRepository)
    product: ProductRepository = field(default_factory=ProductRepository)
    provider: ProviderRepository = field(default_factory=ProviderRepository)
    rider: RiderRepository = field(default_factory=RiderRepository)
    booking: BookingRepository = field(default_factory=BookingRepository)
    invoice: InvoiceRepository = field(default_factory=InvoiceRepository)
    payment: PaymentRepository = field(default_factory=PaymentRepository)
    table_booking: TableBookingRepository = field(default_factory=TableBookingRepository)
    review: ReviewRepository = field(default_factory=ReviewRepository)
    problem: ProblemRepository = field(default_factory=ProblemRepository)
    rental: RentalRepository = field(default_factory=RentalRepository)


db: Db = None
cfg: AppConfig = None
repos = Repositories()
order_service: OrderService = None
delivery_service: DeliveryService = None
booking_service: BookingService = None
payment_service: PaymentService = None
table_booking_service: TableBookingService = None
provider_service: ProviderService = None
rental_service: RentalService = None


def init_app(
    config: AppConfig,
    database,
    *,
    repositories: Repositories | None = None,
    gateway: RazorpayGateway | None = None,
    notifier: SmsNotifier | None = None,
) -> Flask:
    """Wire the services onto the module-level app.

    ``database`` only needs ``session()`` and ``transaction()`` context managers.
    """
    global db, cfg, repos, order_service, delivery_service, booking_service, payment_service
    global table_booking_service, provider_service, rental_service

    cfg = config
    db = database
    repos = repositories or Repositories()
    app.secret_key = config.web.secret_key

    order_service = OrderService(
        order_repo=repos.order,
        order_item_repo=repos.order_item,
        order_event_repo=repos.order_event,
        product_repo=repos.product,
        provider_repo=repos.provider,
        rider_repo=repos.rider,
        business=config.business,
    )
    delivery_service = DeliveryService(
        order_repo=repos.order,
        order_event_repo=repos.order_event,
        rider_repo=repos.rider,
        business=config.business,
    )
    booking_service = BookingService(
        booking_repo=repos.booking,
        invoice_repo=repos.invoice,
        provider_repo=repos.provider,
        problem_repo=repos.problem,
        notifier=notifier or SmsNotifier(config.sms),
        business=config.business,
    )
    payment_service = PaymentService(
        gateway=gateway or RazorpayGateway(config.payment),
        invoice_repo=repos.invoice,
        booking_repo=repos.booking,
        order_repo=repos.order,
        payment_repo=repos.payment,
        currency=config.business.currency,
    )
    table_booking_service = TableBookingService(
        table_booking_repo=repos.table_booking, provider_repo=repos.provider
    )
    provider_service = ProviderService(
        provider_repo=repos.provider, product_repo=repos.product, problem_repo=repos.problem
    )
    rental_service = RentalService(rental_repo=repos.rental)
    return app


# ---- errors ----


@app.errorhandler(MarketplaceError)
def handle_marketplace_error(e: MarketplaceError):
    return jsonify(error=e.kind, message=str(e)), e.http_status


@app.errorhandler(DbError)
def handle_db_error(e: DbError):
    log.error("Database unavailable: %s", e)
    return jsonify(error="database_unavailable", message=str(e)), 503


@app.errorhandler(HTTPException)
def handle_http_error(e: HTTPException):
    return jsonify(error=e.name.lower().replace(" ", "_"), message=e.description), e.code


# ---- request helpers ----


def current_actor() -> Actor:
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw:
        raise NotEligible("Authentication required.")
    try:
        user_id = int(raw)
    except ValueError:
        raise ValidationError("X-User-Id must be an integer.") from None
    return Actor(user_id=user_id, role=parse_role(request.headers.get("X-Role")))


def actor_with(*roles: Role) -> Actor:
    actor = current_actor()
    require_role(actor, *roles)
    return actor


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _int(value, name: str, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} is required.")
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.") from None


def _float(value, name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number.") from None


def _decimal(value, name: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number.") from None


def _datetime(value, name: str) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date or datetime.") from None


def _required_str(data: dict, name: str) -> str:
    value = str(data.get(name) or "").strip()
    if not value:
        raise ValidationError(f"{name} is required.")
    return value


# ---- catalog ----


@app.route("/health")
def health():
    return jsonify(status="ok")


@app.route("/service-categories")
def service_categories():
    with db.session() as conn:
        rows = repos.provider.list_categories(conn)
    return jsonify(categories=rows)


@app.route("/service-providers")
def service_providers():
    category = request.args.get("category") or None
    lat = _float(request.args.get("lat"), "lat")
    lng = _float(request.args.get("lng"), "lng")
    radius = _float(request.args.get("radius"), "radius") or cfg.business.rider_radius_km
    with db.session() as conn:
        rows = repos.provider.list(conn, category_slug=category, limit=200)
    if lat is not None and lng is not None:
        rows = within_radius(rows, lat, lng, radius, road_factor=cfg.business.road_distance_factor)
    return jsonify(providers=rows)


@app.route("/service-providers/<int:provider_id>")
def service_provider_detail(provider_id: int):
    with db.session() as conn:
        row = repos.provider.get(conn, provider_id)
    if row is None:
        raise NotFound(f"Provider {provider_id} not found.")
    return jsonify(provider=row)


@app.route("/products")
def products_list():
    args = request.args
    with db.session() as conn:
        rows = repos.product.list(
            conn,
            provider_id=_int(args.get("provider_id"), "provider_id", required=False),
            kind=args.get("kind") or None,
            category=args.get("category") or None,
            min_price=_decimal(args.get("min_price"), "min_price"),
            max_price=_decimal(args.get("max_price"), "max_price"),
            search=(args.get("q") or "").strip() or None,
            limit=200,
        )
    return jsonify(products=rows)


@app.route("/service-problems/<category_slug>")
def service_problems(category_slug: str):
    parent_id = _int(request.args.get("parent_id"), "parent_id", required=False)
    with db.session() as conn:
        rows = provider_service.list_problems(conn, category_slug, parent_id)
    return jsonify(problems=rows)


# ---- provider profile / menu ----


@app.route("/provider/profile", methods=["POST"])
def provider_register():
    actor = actor_with(Role.PROVIDER)
    data = _body()
    with db.transaction() as conn:
        provider = provider_service.register_provider(
            conn,
            user_id=actor.user_id,
            category_slug=str(data.get("category_slug") or ""),
            business_name=str(data.get("business_name") or ""),
            address=str(data.get("address") or ""),
            description=data.get("description"),
            latitude=_float(data.get("latitude"), "latitude"),
            longitude=_float(data.get("longitude"), "longitude"),
        )
    return jsonify(provider=provider), 201


@app.route("/provider/profile")
def provider_profile():
    actor = actor_with(Role.PROVIDER)
    with db.session() as conn:
        provider = provider_service.get_profile(conn, actor.user_id)
    return jsonify(provider=provider)


@app.route("/provider/menu")
def provider_menu():
    actor = actor_with(Role.PROVIDER)
    with db.session() as conn:
        rows = provider_service.list_menu(conn, actor.user_id)
    return jsonify(items=rows)


@app.route("/menu-items", methods=["POST"])
def menu_items_create():
    actor = actor_with(Role.PROVIDER)
    data = _body()
    if "unit_price" not in data:
        raise ValidationError("unit_price is required.")
    with db.transaction() as conn:
        item = provider_service.create_menu_item(
            conn,
            provider_user_id=actor.user_id,
            name=str(data.get("name") or ""),
            unit_price=data.get("unit_price"),
            sku=data.get("sku"),
            category=data.get("category"),
            unit=data.get("unit"),
            stock_qty=data.get("stock_qty"),
            is_available=bool(data.get("is_available", True)),
        )
    return jsonify(item=item), 201


@app.route("/menu-items/<int:product_id>", methods=["PATCH"])
def menu_items_update(product_id: int):
    actor = actor_with(Role.PROVIDER)
    data = _body()
    if not data:
        raise ValidationError("Nothing to update.")
    with db.transaction() as conn:
        item = provider_service.update_menu_item(
            conn, provider_user_id=actor.user_id, product_id=product_id, changes=data
        )
    return jsonify(item=item)


@app.route("/menu-items/<int:product_id>", methods=["DELETE"])
def menu_items_delete(product_id: int):
    actor = actor_with(Role.PROVIDER)
    with db.transaction() as conn:
        outcome = provider_service.delete_menu_item(conn, provider_user_id=actor.user_id, product_id=product_id)
    return jsonify(product_id=product_id, outcome=outcome)


# ---- orders (customer / provider) ----


@app.route("/orders", methods=["POST"])
def orders_create():
    actor = actor_with(Role.CUSTOMER)
    data = _body()
    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list.")
    items = [
        CreateOrderItemInput(
            product_id=_int(it.get("product_id"), "product_id"),
            quantity=_int(it.get("quantity"), "quantity"),
        )
        for it in raw_items
        if isinstance(it, dict)
    ]
    if len(items) != len(raw_items):
        raise ValidationError("Each item must be an object with product_id and quantity.")

    with db.transaction() as conn:
        order = order_service.create_order(
            conn,
            customer_id=actor.user_id,
            provider_id=_int(data.get("provider_id"), "provider_id"),
            kind=str(data.get("kind") or ""),
            fulfillment=str(data.get("fulfillment") or "delivery"),
            items=items,
            delivery_address=str(data.get("delivery_address") or ""),
            delivery_latitude=_float(data.get("delivery_latitude"), "delivery_latitude"),
            delivery_longitude=_float(data.get("delivery_longitude"), "delivery_longitude"),
            payment_method=str(data.get("payment_method") or "cod"),
        )
    return jsonify(order=order), 201


@app.route("/orders/mine")
def orders_mine():
    actor = actor_with(Role.CUSTOMER)
    with db.session() as conn:
        rows = order_service.list_customer_orders(conn, actor.user_id)
    return jsonify(orders=rows)


@app.route("/provider/orders")
def provider_orders():
    actor = actor_with(Role.PROVIDER)
    with db.session() as conn:
        rows = order_service.list_provider_orders(conn, actor.user_id)
    return jsonify(orders=rows)


@app.route("/orders/<int:order_id>")
def orders_detail(order_id: int):
    actor = current_actor()
    with db.session() as conn:
        detail = order_service.get_order_detail(conn, order_id, actor)
    return jsonify(detail)


@app.route("/orders/<int:order_id>/status", methods=["PATCH"])
def orders_status(order_id: int):
    actor = current_actor()
    target = _required_str(_body(), "status")
    with db.transaction() as conn:
        order = order_service.advance_status(conn, order_id=order_id, target=target, actor=actor)
    return jsonify(order=order)


@app.route("/orders/<int:order_id>/cancel", methods=["POST"])
def orders_cancel(order_id: int):
    actor = current_actor()
    with db.transaction() as conn:
        order = order_service.cancel_order(conn, order_id=order_id, actor=actor)
    return jsonify(order=order)


@app.route("/orders/<int:order_id>/track")
def orders_track(order_id: int):
    actor = actor_with(Role.CUSTOMER)
    with db.session() as conn:
        snapshot = order_service.track_order(conn, order_id=order_id, customer_id=actor.user_id)
    return jsonify(snapshot)


@app.route("/orders/<int:order_id>/create-payment-order", methods=["POST"])
def orders_create_payment_order(order_id: int):
    actor = actor_with(Role.CUSTOMER)
    with db.transaction() as conn:
        result = payment_service.create_order_payment_order(conn, order_id=order_id, user_id=actor.user_id)
    return jsonify(result)


@app.route("/orders/verify-payment", methods=["POST"])
def orders_verify_payment():
    current_actor()
    data = _body()
    with db.transaction() as conn:
        order = payment_service.verify_order_payment(
            conn,
            order_id=_int(data.get("order_id"), "order_id"),
            gateway_order_id=_required_str(data, "razorpay_order_id"),
            gateway_payment_id=_required_str(data, "razorpay_payment_id"),
            signature=_required_str(data, "razorpay_signature"),
        )
    return jsonify(success=True, order=order)


# ---- rider ----


@app.route("/rider/profile", methods=["POST"])
def rider_register():
    actor = actor_with(Role.RIDER)
    data = _body()
    with db.transaction() as conn:
        partner = delivery_service.register_partner(
            conn,
            user_id=actor.user_id,
            vehicle_type=str(data.get("vehicle_type") or ""),
            vehicle_number=data.get("vehicle_number"),
            license_number=data.get("license_number"),
        )
    return jsonify(partner=partner), 201


@app.route("/rider/profile")
def rider_profile():
    actor = actor_with(Role.RIDER)
    with db.session() as conn:
        partner = delivery_service.get_partner(conn, actor.user_id)
    return jsonify(partner=partner)


@app.route("/rider/status", methods=["PATCH"])
def rider_status():
    actor = actor_with(Role.RIDER)
    data = _body()
    if "is_online" not in data or not isinstance(data["is_online"], bool):
        raise ValidationError("is_online must be true or false.")
    with db.transaction() as conn:
        partner = delivery_service.set_online(conn, user_id=actor.user_id, is_online=data["is_online"])
    return jsonify(partner=partner)


@app.route("/rider/location", methods=["POST"])
def rider_location():
    actor = actor_with(Role.RIDER)
    data = _body()
    with db.transaction() as conn:
        partner = delivery_service.update_location(
            conn, user_id=actor.user_id, latitude=data.get("latitude"), longitude=data.get("longitude")
        )
    return jsonify(partner=partner)


@app.route("/rider/orders/available")
def rider_orders_available():
    actor = actor_with(Role.RIDER)
    with db.session() as conn:
        rows = delivery_service.list_available_orders(conn, actor.user_id)
    return jsonify(orders=rows)


@app.route("/rider/orders/my-active")
def rider_orders_active():
    actor = actor_with(Role.RIDER)
    with db.session() as conn:
        rows = delivery_service.list_active_orders(conn, actor.user_id)
    return jsonify(orders=rows)


@app.route("/rider/orders/history")
def rider_orders_history():
    actor = actor_with(Role.RIDER)
    with db.session() as conn:
        rows = delivery_service.list_history(conn, actor.user_id)
    return jsonify(orders=rows)


@app.route("/rider/orders/<int:order_id>/accept", methods=["POST"])
def rider_accept(order_id: int):
    actor = actor_with(Role.RIDER)
    with db.transaction() as conn:
        order = delivery_service.accept_order(conn, order_id=order_id, rider_id=actor.user_id)
    return jsonify(order=order)


@app.route("/rider/orders/<int:order_id>/arrived-at-pickup", methods=["POST"])
def rider_arrived(order_id: int):
    actor = actor_with(Role.RIDER)
    with db.transaction() as conn:
        order = delivery_service.mark_arrived(conn, order_id=order_id, rider_id=actor.user_id)
    return jsonify(order=order)


@app.route("/rider/orders/<int:order_id>/picked-up", methods=["POST"])
def rider_picked_up(order_id: int):
    actor = actor_with(Role.RIDER)
    with db.transaction() as conn:
        order, otp = delivery_service.mark_picked_up(conn, order_id=order_id, rider_id=actor.user_id)
    return jsonify(order=order, otp=otp)


@app.route("/rider/orders/<int:order_id>/verify-delivery", methods=["POST"])
def rider_verify_delivery(order_id: int):
    actor = actor_with(Role.RIDER)
    otp = _required_str(_body(), "otp")
    with db.transaction() as conn:
        order = delivery_service.verify_delivery(conn, order_id=order_id, rider_id=actor.user_id, otp=otp)
    return jsonify(order=order)


# ---- bookings ----


@app.route("/bookings", methods=["POST"])
def bookings_create():
    actor = actor_with(Role.CUSTOMER)
    data = _body()
    slots = data.get("preferred_time_slots")
    if slots is not None and not isinstance(slots, list):
        raise ValidationError("preferred_time_slots must be a list.")
    with db.transaction() as conn:
        booking = booking_service.create_booking(
            conn,
            user_id=actor.user_id,
            service_type=str(data.get("service_type") or ""),
            user_address=str(data.get("user_address") or ""),
            user_phone=str(data.get("user_phone") or ""),
            provider_id=_int(data.get("provider_id"), "provider_id", required=False),
            problem_id=_int(data.get("problem_id"), "problem_id", required=False),
            scheduled_at=_datetime(data.get("scheduled_at"), "scheduled_at"),
            preferred_time_slots=[str(s) for s in slots] if slots else None,
            notes=data.get("notes"),
            is_urgent=bool(data.get("is_urgent", False)),
        )
    return jsonify(booking=booking), 201


@app.route("/bookings/mine")
def bookings_mine():
    actor = actor_with(Role.CUSTOMER)
    with db.session() as conn:
        rows = booking_service.list_user_bookings(conn, actor.user_id)
    return jsonify(bookings=rows)


@app.route("/provider/bookings")
def provider_bookings():
    actor = actor_with(Role.PROVIDER)
    with db.session() as conn:
        rows = booking_service.list_provider_bookings(conn, actor.user_id)
    return jsonify(bookings=rows)


@app.route("/bookings/<int:booking_id>")
def bookings_detail(booking_id: int):
    actor = current_actor()
    with db.session() as conn:
        detail = booking_service.get_booking_detail(conn, booking_id, actor)
    return jsonify(detail)


@app.route("/bookings/<int:booking_id>/status", methods=["PATCH"])
def bookings_status(booking_id: int):
    actor = current_actor()
    data = _body()
    with db.transaction() as conn:
        booking = booking_service.update_status(
            conn,
            booking_id=booking_id,
            status=_required_str(data, "status"),
            actor=actor,
            estimated_cost=data.get("estimated_cost"),
        )
    return jsonify(booking=booking)


@app.route("/bookings/<int:booking_id>/service-otp", methods=["POST"])
def bookings_issue_otp(booking_id: int):
    actor = actor_with(Role.PROVIDER)
    with db.transaction() as conn:
        booking = booking_service.issue_service_otp(conn, booking_id=booking_id, provider_user_id=actor.user_id)
    return jsonify(booking=booking, message="OTP sent to the customer.")


@app.route("/bookings/<int:booking_id>/verify-otp", methods=["POST"])
def bookings_verify_otp(booking_id: int):
    actor = actor_with(Role.PROVIDER)
    otp = _required_str(_body(), "otp")
    with db.transaction() as conn:
        booking, invoice = booking_service.verify_service_otp(
            conn, booking_id=booking_id, provider_user_id=actor.user_id, otp=otp
        )
    return jsonify(booking=booking, invoice=invoice)


@app.route("/bookings/<int:booking_id>/invoice", methods=["POST"])
def bookings_invoice(booking_id: int):
    actor = actor_with(Role.PROVIDER)
    data = _body()
    parts = data.get("spare_parts") or []
    if not isinstance(parts, list):
        raise ValidationError("spare_parts must be a list.")
    with db.transaction() as conn:
        invoice = booking_service.create_invoice(
            conn,
            booking_id=booking_id,
            provider_user_id=actor.user_id,
            service_charge=data.get("service_charge"),
            spare_parts=parts,
        )
    return jsonify(invoice=invoice), 201


# ---- invoices ----


@app.route("/invoices/<int:invoice_id>")
def invoices_detail(invoice_id: int):
    actor = current_actor()
    with db.session() as conn:
        invoice = booking_service.get_invoice(conn, invoice_id, actor)
    return jsonify(invoice=invoice)


@app.route("/invoices/<int:invoice_id>/create-payment-order", methods=["POST"])
def invoices_create_payment_order(invoice_id: int):
    actor = actor_with(Role.CUSTOMER)
    with db.transaction() as conn:
        result = payment_service.create_invoice_payment_order(conn, invoice_id=invoice_id, user_id=actor.user_id)
    return jsonify(result)


@app.route("/invoices/verify-payment", methods=["POST"])
def invoices_verify_payment():
    current_actor()
    data = _body()
    with db.transaction() as conn:
        invoice = payment_service.verify_invoice_payment(
            conn,
            invoice_id=_int(data.get("invoice_id"), "invoice_id"),
            gateway_order_id=_required_str(data, "razorpay_order_id"),
            gateway_payment_id=_required_str(data, "razorpay_payment_id"),
            signature=_required_str(data, "razorpay_signature"),
        )
    return jsonify(success=True, invoice=invoice)


# ---- table bookings ----


@app.route("/table-bookings", methods=["POST"])
def table_bookings_create():
    actor = actor_with(Role.CUSTOMER)
    data = _body()
    with db.transaction() as conn:
        tb = table_booking_service.create_table_booking(
            conn,
            user_id=actor.user_id,
            provider_id=_int(data.get("provider_id"), "provider_id"),
            booking_date=_datetime(data.get("booking_date"), "booking_date"),
            time_slot=str(data.get("time_slot") or ""),
            number_of_guests=_int(data.get("number_of_guests"), "number_of_guests"),
            special_requests=data.get("special_requests"),
        )
    return jsonify(table_booking=tb), 201


@app.route("/table-bookings/mine")
def table_bookings_mine():
    actor = actor_with(Role.CUSTOMER)
    with db.session() as conn:
        rows = table_booking_service.list_user_table_bookings(conn, actor.user_id)
    return jsonify(table_bookings=rows)


@app.route("/table-bookings/<int:table_booking_id>")
def table_bookings_detail(table_booking_id: int):
    actor = current_actor()
    with db.session() as conn:
        tb = table_booking_service.get_table_booking(conn, table_booking_id, actor)
    return jsonify(table_booking=tb)


@app.route("/table-bookings/<int:table_booking_id>/status", methods=["PATCH"])
def table_bookings_status(table_booking_id: int):
    actor = current_actor()
    status = _required_str(_body(), "status")
    with db.transaction() as conn:
        tb = table_booking_service.update_status(
            conn, table_booking_id=table_booking_id, status=status, actor=actor
        )
    return jsonify(table_booking=tb)


# ---- reviews ----


@app.route("/reviews", methods=["POST"])
def reviews_create():
    actor = actor_with(Role.CUSTOMER)
    data = _body()
    provider_id = _int(data.get("provider_id"), "provider_id")
    booking_id = _int(data.get("booking_id"), "booking_id", required=False)
    rating = _int(data.get("rating"), "rating")
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5.")
    comment = (data.get("comment") or "").strip() or None

    with db.transaction() as conn:
        if repos.provider.get(conn, provider_id) is None:
            raise NotFound(f"Provider {provider_id} not found.")
        if booking_id is not None:
            booking = repos.booking.get(conn, booking_id)
            if booking is None or booking["user_id"] != actor.user_id:
                raise ValidationError("booking_id does not refer to one of your bookings.")
        review_id = repos.review.create(
            conn,
            user_id=actor.user_id,
            provider_id=provider_id,
            booking_id=booking_id,
            rating=rating,
            comment=comment,
        )
        repos.provider.add_rating(conn, provider_id=provider_id, rating=rating)
    log.info("review %s for provider %s (rating %s)", review_id, provider_id, rating)
    return jsonify(review_id=review_id), 201


@app.route("/reviews/provider/<int:provider_id>")
def reviews_for_provider(provider_id: int):
    with db.session() as conn:
        rows = repos.review.list_for_provider(conn, provider_id)
    return jsonify(reviews=rows)


# ---- rental properties ----


@app.route("/rental-properties")
def rental_properties_list():
    args = request.args
    with db.session() as conn:
        rows = rental_service.list_listings(
            conn,
            property_type=args.get("property_type") or None,
            min_rent=_decimal(args.get("min_rent"), "min_rent"),
            max_rent=_decimal(args.get("max_rent"), "max_rent"),
            furnishing=args.get("furnishing") or None,
            locality=(args.get("locality") or "").strip() or None,
        )
    return jsonify(properties=rows)


@app.route("/rental-properties/mine")
def rental_properties_mine():
    actor = current_actor()
    with db.session() as conn:
        rows = rental_service.list_owner_listings(conn, actor.user_id)
    return jsonify(properties=rows)


@app.route("/rental-properties/<int:rental_id>")
def rental_properties_detail(rental_id: int):
    with db.session() as conn:
        row = rental_service.get_listing(conn, rental_id)
    return jsonify(property=row)


@app.route("/rental-properties", methods=["POST"])
def rental_properties_create():
    actor = current_actor()
    data = _body()
    amenities = data.get("amenities")
    if amenities is not None and not isinstance(amenities, list):
        raise ValidationError("amenities must be a list.")
    with db.transaction() as conn:
        row = rental_service.create_listing(
            conn,
            owner_id=actor.user_id,
            title=str(data.get("title") or ""),
            property_type=str(data.get("property_type") or ""),
            rent=data.get("rent"),
            address=str(data.get("address") or ""),
            description=data.get("description"),
            area_sqft=_int(data.get("area_sqft"), "area_sqft", required=False),
            bedrooms=_int(data.get("bedrooms"), "bedrooms", required=False),
            bathrooms=_int(data.get("bathrooms"), "bathrooms", required=False),
            furnishing=data.get("furnishing"),
            locality=data.get("locality"),
            latitude=_float(data.get("latitude"), "latitude"),
            longitude=_float(data.get("longitude"), "longitude"),
            amenities=amenities,
        )
    return jsonify(property=row), 201


def main() -> int:
    try:
        config = load_config(config_path_from_env())
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    configure_logging(config.log_level)
    init_app(config, Db(config.db))
    app.run(host=config.web.host, port=config.web.port, debug=config.web.debug)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
