import threading

import pytest

from fakes import SHIRUR, SHIRUR_NORTH
from shirurexpress.domain import Actor, OrderStatus, Role
from shirurexpress.errors import (
    AlreadyAssigned,
    InvalidOtp,
    InvalidTransition,
    NotAssignedRider,
    NotEligible,
    NotFound,
    NotInDeliverableState,
    ValidationError,
)
from shirurexpress.services.order_service import CreateOrderItemInput


@pytest.fixture
def ready_order(order_service, market):
    order = order_service.create_order(
        None,
        customer_id=market["customer"],
        provider_id=market["provider"],
        kind="grocery",
        items=[CreateOrderItemInput(market["dal"], 1)],
        delivery_address="Station Road, Shirur",
        delivery_latitude=SHIRUR_NORTH[0],
        delivery_longitude=SHIRUR_NORTH[1],
    )
    owner = Actor(market["owner"], Role.PROVIDER)
    for target in ("accepted", "preparing", "ready_for_pickup"):
        order = order_service.advance_status(None, order_id=order.id, target=target, actor=owner)
    return order


def make_rider(store, delivery_service, name="ravi", online=True, location=SHIRUR):
    rider = store.add_user(name, role="rider")
    delivery_service.register_partner(None, user_id=rider, vehicle_type="bike", vehicle_number="MH12AB1234")
    if online:
        delivery_service.set_online(None, user_id=rider, is_online=True)
    if location:
        delivery_service.update_location(None, user_id=rider, latitude=location[0], longitude=location[1])
    return rider


def deliver_to_door(delivery_service, order_id, rider):
    delivery_service.accept_order(None, order_id=order_id, rider_id=rider)
    delivery_service.mark_arrived(None, order_id=order_id, rider_id=rider)
    return delivery_service.mark_picked_up(None, order_id=order_id, rider_id=rider)


def test_register_partner_twice_is_rejected(store, delivery_service):
    rider = make_rider(store, delivery_service)
    with pytest.raises(ValidationError):
        delivery_service.register_partner(None, user_id=rider, vehicle_type="bike")


def test_register_partner_needs_vehicle(store, delivery_service):
    with pytest.raises(ValidationError):
        delivery_service.register_partner(None, user_id=store.add_user("x"), vehicle_type="  ")


def test_partner_not_found(delivery_service):
    with pytest.raises(NotFound):
        delivery_service.get_partner(None, 4242)


def test_location_is_validated(store, delivery_service):
    rider = make_rider(store, delivery_service, location=None)
    with pytest.raises(ValidationError):
        delivery_service.update_location(None, user_id=rider, latitude=123, longitude=0)


def test_available_orders_within_radius(store, delivery_service, ready_order):
    near = make_rider(store, delivery_service, "near", location=SHIRUR_NORTH)
    far = make_rider(store, delivery_service, "far", location=(19.9975, 73.7898))
    nowhere = make_rider(store, delivery_service, "nowhere", location=None)

    assert [o["id"] for o in delivery_service.list_available_orders(None, near)] == [ready_order.id]
    assert delivery_service.list_available_orders(None, far) == []
    assert [o["id"] for o in delivery_service.list_available_orders(None, nowhere)] == [ready_order.id]


def test_available_orders_needs_profile(store, delivery_service):
    with pytest.raises(NotEligible):
        delivery_service.list_available_orders(None, store.add_user("walker"))


def test_full_delivery_flow(store, delivery_service, order_service, market, ready_order):
    rider = make_rider(store, delivery_service)

    order = delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider)
    assert order.status is OrderStatus.ASSIGNED
    assert order.rider_id == rider
    assert order.rider_accepted_at is not None

    order = delivery_service.mark_arrived(None, order_id=order.id, rider_id=rider)
    assert order.status is OrderStatus.ARRIVED_AT_PICKUP

    order, otp = delivery_service.mark_picked_up(None, order_id=order.id, rider_id=rider)
    assert order.status is OrderStatus.OUT_FOR_DELIVERY
    assert len(otp) == 4 and otp.isdigit()

    snap = order_service.track_order(None, order_id=order.id, customer_id=market["customer"])
    assert snap["delivery_otp"] == otp
    assert snap["rider_location"]["latitude"] == SHIRUR[0]

    order = delivery_service.verify_delivery(None, order_id=order.id, rider_id=rider, otp=otp)
    assert order.status is OrderStatus.DELIVERED
    assert order.delivery_otp is None
    assert order.delivered_at is not None
    assert store.partners[rider]["total_deliveries"] == 1

    assert [o["id"] for o in delivery_service.list_history(None, rider)] == [order.id]
    assert delivery_service.list_active_orders(None, rider) == []


def test_offline_rider_cannot_accept(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service, online=False)
    with pytest.raises(NotEligible):
        delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider)


def test_unregistered_rider_cannot_accept(store, delivery_service, ready_order):
    with pytest.raises(NotEligible):
        delivery_service.accept_order(None, order_id=ready_order.id, rider_id=store.add_user("stranger"))


def test_accept_requires_ready_for_pickup(store, delivery_service, order_service, market):
    rider = make_rider(store, delivery_service)
    order = order_service.create_order(
        None,
        customer_id=market["customer"],
        provider_id=market["provider"],
        kind="grocery",
        items=[CreateOrderItemInput(market["dal"], 1)],
        delivery_address="Station Road",
    )
    with pytest.raises(InvalidTransition):
        delivery_service.accept_order(None, order_id=order.id, rider_id=rider)
    assert store.orders[order.id]["rider_id"] is None


def test_second_rider_gets_already_assigned(store, delivery_service, ready_order):
    first = make_rider(store, delivery_service, "first")
    second = make_rider(store, delivery_service, "second")
    delivery_service.accept_order(None, order_id=ready_order.id, rider_id=first)
    with pytest.raises(AlreadyAssigned):
        delivery_service.accept_order(None, order_id=ready_order.id, rider_id=second)
    assert store.orders[ready_order.id]["rider_id"] == first


def test_concurrent_claims_have_exactly_one_winner(store, delivery_service, ready_order):
    riders = [make_rider(store, delivery_service, f"rider{i}") for i in range(8)]
    barrier = threading.Barrier(len(riders))
    results = {}

    def claim(rider_id):
        barrier.wait()
        try:
            delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider_id)
            results[rider_id] = "won"
        except AlreadyAssigned:
            results[rider_id] = "lost"

    threads = [threading.Thread(target=claim, args=(r,)) for r in riders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r, outcome in results.items() if outcome == "won"]
    assert len(winners) == 1
    assert sorted(results.values()).count("lost") == len(riders) - 1
    assert store.orders[ready_order.id]["rider_id"] == winners[0]
    assert [e["to_status"] for e in store.events if e["order_id"] == ready_order.id].count("assigned") == 1


def test_only_assigned_rider_can_progress(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service, "owner_rider")
    other = make_rider(store, delivery_service, "other_rider")
    delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider)
    with pytest.raises(NotAssignedRider):
        delivery_service.mark_arrived(None, order_id=ready_order.id, rider_id=other)


def test_pickup_requires_arrival(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service)
    delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider)
    with pytest.raises(InvalidTransition):
        delivery_service.mark_picked_up(None, order_id=ready_order.id, rider_id=rider)
    assert store.orders[ready_order.id]["delivery_otp"] is None


def test_otp_is_issued_once(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service)
    _, otp = deliver_to_door(delivery_service, ready_order.id, rider)
    with pytest.raises(InvalidTransition):
        delivery_service.mark_picked_up(None, order_id=ready_order.id, rider_id=rider)
    assert store.orders[ready_order.id]["delivery_otp"] == otp


def test_wrong_otp_does_not_mutate(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service)
    _, otp = deliver_to_door(delivery_service, ready_order.id, rider)
    wrong = "0000" if otp != "0000" else "1111"

    with pytest.raises(InvalidOtp):
        delivery_service.verify_delivery(None, order_id=ready_order.id, rider_id=rider, otp=wrong)

    row = store.orders[ready_order.id]
    assert row["status"] == "out_for_delivery"
    assert row["delivery_otp"] == otp
    assert store.partners[rider]["total_deliveries"] == 0


def test_verify_twice_is_not_deliverable(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service)
    _, otp = deliver_to_door(delivery_service, ready_order.id, rider)
    delivery_service.verify_delivery(None, order_id=ready_order.id, rider_id=rider, otp=otp)
    with pytest.raises(NotInDeliverableState):
        delivery_service.verify_delivery(None, order_id=ready_order.id, rider_id=rider, otp=otp)
    assert store.partners[rider]["total_deliveries"] == 1


def test_verify_before_pickup_is_not_deliverable(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service)
    delivery_service.accept_order(None, order_id=ready_order.id, rider_id=rider)
    with pytest.raises(NotInDeliverableState):
        delivery_service.verify_delivery(None, order_id=ready_order.id, rider_id=rider, otp="1234")


def test_other_rider_cannot_verify(store, delivery_service, ready_order):
    rider = make_rider(store, delivery_service, "a")
    other = make_rider(store, delivery_service, "b")
    _, otp = deliver_to_door(delivery_service, ready_order.id, rider)
    with pytest.raises(NotAssignedRider):
        delivery_service.verify_delivery(None, order_id=ready_order.id, rider_id=other, otp=otp)


def test_customer_cannot_cancel_out_for_delivery(store, delivery_service, order_service, market, ready_order):
    rider = make_rider(store, delivery_service)
    deliver_to_door(delivery_service, ready_order.id, rider)
    with pytest.raises(InvalidTransition):
        order_service.cancel_order(None, order_id=ready_order.id, actor=Actor(market["customer"], Role.CUSTOMER))
