"""Transition tables for every status-bearing record.

Each table maps a status to the statuses it may move to next. Services ask
this module before they write, and the repositories then apply the change
with a conditional UPDATE on the status they read, so a transition is both
legal and applied against the state it was checked on.
"""
from __future__ import annotations

from .domain import BookingStatus, Fulfillment, OrderStatus, Role, TableBookingStatus
from .errors import InvalidTransition

_O = OrderStatus
_B = BookingStatus
_T = TableBookingStatus

DELIVERY_PATH = (
    _O.PENDING,
    _O.ACCEPTED,
    _O.PREPARING,
    _O.READY_FOR_PICKUP,
    _O.ASSIGNED,
    _O.ARRIVED_AT_PICKUP,
    _O.OUT_FOR_DELIVERY,
    _O.DELIVERED,
)
SELF_PATH = (_O.PENDING, _O.CONFIRMED, _O.DELIVERED)
BOOKING_PATH = (
    _B.PENDING,
    _B.ACCEPTED,
    _B.IN_PROGRESS,
    _B.AWAITING_OTP,
    _B.AWAITING_BILLING,
    _B.PENDING_PAYMENT,
    _B.COMPLETED,
)
TABLE_BOOKING_PATH = (_T.PENDING, _T.CONFIRMED, _T.COMPLETED)


def _build(path, failures, failure_sources) -> dict:
    table = {status: set() for status in path}
    for current, nxt in zip(path, path[1:]):
        table[current].add(nxt)
    for status in failure_sources:
        table[status].update(failures)
    for status in failures:
        table[status] = set()
    return {k: frozenset(v) for k, v in table.items()}


ORDER_TRANSITIONS = {
    Fulfillment.DELIVERY: _build(
        DELIVERY_PATH,
        (_O.DECLINED, _O.CANCELLED),
        DELIVERY_PATH[: DELIVERY_PATH.index(_O.OUT_FOR_DELIVERY)],
    ),
    Fulfillment.SELF: _build(SELF_PATH, (_O.DECLINED, _O.CANCELLED), SELF_PATH[:2]),
}

BOOKING_TRANSITIONS = _build(BOOKING_PATH, (_B.DECLINED, _B.CANCELLED), BOOKING_PATH[:2])

TABLE_BOOKING_TRANSITIONS = _build(TABLE_BOOKING_PATH, (_T.DECLINED, _T.CANCELLED), TABLE_BOOKING_PATH[:2])

# Statuses each role may request through the generic advance operation.
# Rider statuses are only reachable through the dedicated rider operations,
# which carry their own side effects (claim, OTP issue, OTP check).
ORDER_ROLE_TARGETS = {
    Role.PROVIDER: frozenset(
        {_O.ACCEPTED, _O.PREPARING, _O.READY_FOR_PICKUP, _O.CONFIRMED, _O.DELIVERED, _O.DECLINED}
    ),
    Role.CUSTOMER: frozenset({_O.CANCELLED}),
    Role.ADMIN: frozenset({_O.CANCELLED, _O.DECLINED}),
    Role.RIDER: frozenset(),
}

TABLE_BOOKING_ROLE_TARGETS = {
    Role.PROVIDER: frozenset({_T.CONFIRMED, _T.COMPLETED, _T.DECLINED}),
    Role.CUSTOMER: frozenset({_T.CANCELLED}),
    Role.ADMIN: frozenset({_T.CANCELLED, _T.DECLINED}),
    Role.RIDER: frozenset(),
}


def order_transitions(fulfillment: Fulfillment) -> dict:
    return ORDER_TRANSITIONS[Fulfillment(fulfillment)]


def next_order_statuses(fulfillment: Fulfillment, current: OrderStatus) -> frozenset:
    return order_transitions(fulfillment).get(OrderStatus(current), frozenset())


def check_order_transition(fulfillment: Fulfillment, current: OrderStatus, target: OrderStatus) -> None:
    current, target = OrderStatus(current), OrderStatus(target)
    if target not in next_order_statuses(fulfillment, current):
        raise InvalidTransition(f"Order cannot move from {current.value} to {target.value}.")


def is_terminal_order_status(status: OrderStatus) -> bool:
    return OrderStatus(status) in (_O.DELIVERED, _O.DECLINED, _O.CANCELLED)


def order_timeline(fulfillment: Fulfillment) -> tuple:
    return DELIVERY_PATH if Fulfillment(fulfillment) is Fulfillment.DELIVERY else SELF_PATH


def check_booking_transition(current: BookingStatus, target: BookingStatus) -> None:
    current, target = BookingStatus(current), BookingStatus(target)
    if target not in BOOKING_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Booking cannot move from {current.value} to {target.value}.")


def check_table_booking_transition(current: TableBookingStatus, target: TableBookingStatus) -> None:
    current, target = TableBookingStatus(current), TableBookingStatus(target)
    if target not in TABLE_BOOKING_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Table booking cannot move from {current.value} to {target.value}.")
