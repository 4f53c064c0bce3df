from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class OrderKind(str, Enum):
    GROCERY = "grocery"
    RESTAURANT = "restaurant"
    STREET_FOOD = "street_food"


# product kinds a provider catalog may hold; cakes and beauty services are browsed but not delivered as orders
CATALOG_KINDS = frozenset({k.value for k in OrderKind} | {"cake", "beauty"})

FURNISHING_TYPES = ("furnished", "semi_furnished", "unfurnished")


class Fulfillment(str, Enum):
    DELIVERY = "delivery"
    SELF = "self"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    ASSIGNED = "assigned"
    ARRIVED_AT_PICKUP = "arrived_at_pickup"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    AWAITING_OTP = "awaiting_otp"
    AWAITING_BILLING = "awaiting_billing"
    PENDING_PAYMENT = "pending_payment"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class TableBookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, Enum):
    COD = "cod"
    ONLINE = "online"


class Role(str, Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    RIDER = "rider"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role


class _FromRow:
    @classmethod
    def from_row(cls, row: dict):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in names})


@dataclass(frozen=True)
class ServiceProvider(_FromRow):
    id: int
    user_id: int
    category_slug: str
    business_name: str
    address: str
    category_name: Optional[str] = None
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_available: bool = True
    rating: Decimal = Decimal("0.00")
    review_count: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class OrderItem(_FromRow):
    order_id: int
    product_id: int
    name: str
    quantity: int
    # captured when the order is placed, never re-read from the catalog
    unit_price: Decimal


@dataclass(frozen=True)
class Order(_FromRow):
    id: int
    kind: OrderKind
    fulfillment: Fulfillment
    customer_id: int
    provider_id: int
    status: OrderStatus
    subtotal: Decimal
    platform_fee: Decimal
    delivery_fee: Decimal
    total: Decimal
    delivery_address: str
    rider_id: Optional[int] = None
    delivery_otp: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.COD
    payment_status: PaymentStatus = PaymentStatus.PENDING
    gateway_order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    rider_accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", OrderKind(self.kind))
        object.__setattr__(self, "fulfillment", Fulfillment(self.fulfillment))
        object.__setattr__(self, "status", OrderStatus(self.status))
        object.__setattr__(self, "payment_method", PaymentMethod(self.payment_method))
        object.__setattr__(self, "payment_status", PaymentStatus(self.payment_status))


@dataclass(frozen=True)
class DeliveryPartner(_FromRow):
    id: int
    user_id: int
    vehicle_type: str
    vehicle_number: Optional[str]
    is_online: bool = False
    current_latitude: Optional[float] = None
    current_longitude: Optional[float] = None
    last_location_at: Optional[datetime] = None
    total_deliveries: int = 0


@dataclass(frozen=True)
class Booking(_FromRow):
    id: int
    user_id: int
    service_type: str
    status: BookingStatus
    user_address: str
    user_phone: str
    provider_id: Optional[int] = None
    problem_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    preferred_time_slots: Optional[list] = None
    notes: Optional[str] = None
    is_urgent: bool = False
    estimated_cost: Optional[Decimal] = None
    service_otp: Optional[str] = None
    service_otp_expires_at: Optional[datetime] = None
    invoice_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", BookingStatus(self.status))


@dataclass(frozen=True)
class SparePart:
    part: str
    cost: Decimal


@dataclass(frozen=True)
class Invoice(_FromRow):
    id: int
    booking_id: int
    provider_id: int
    user_id: int
    service_charge: Decimal
    spare_parts_total: Decimal
    total_amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.PENDING
    spare_parts: tuple = ()
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payment_status", PaymentStatus(self.payment_status))
        parts = tuple(
            p if isinstance(p, SparePart) else SparePart(part=str(p["part"]), cost=Decimal(str(p["cost"])))
            for p in (self.spare_parts or ())
        )
        object.__setattr__(self, "spare_parts", parts)


@dataclass(frozen=True)
class TableBooking(_FromRow):
    id: int
    user_id: int
    provider_id: int
    booking_date: datetime
    time_slot: str
    number_of_guests: int
    status: TableBookingStatus
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", TableBookingStatus(self.status))
