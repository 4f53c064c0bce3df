from datetime import datetime

import pytest

from shirurexpress.domain import Actor, Role, TableBookingStatus
from shirurexpress.errors import InvalidTransition, NotEligible, NotFound, ValidationError


@pytest.fixture
def restaurant(store):
    owner = store.add_user("hotel_owner", role="provider")
    provider = store.add_provider(owner, business_name="Hotel Ganesh", category_slug="restaurant")
    customer = store.add_user("priya")
    return {"owner": Actor(owner, Role.PROVIDER), "provider": provider, "customer": Actor(customer, Role.CUSTOMER)}


def book(service, restaurant, **kw):
    params = dict(
        user_id=restaurant["customer"].user_id,
        provider_id=restaurant["provider"],
        booking_date=datetime(2026, 11, 2, 20, 0),
        time_slot="20:00-21:00",
        number_of_guests=4,
        special_requests=" window seat ",
    )
    params.update(kw)
    return service.create_table_booking(None, **params)


def test_create_table_booking(table_booking_service, restaurant):
    tb = book(table_booking_service, restaurant)
    assert tb.status is TableBookingStatus.PENDING
    assert tb.number_of_guests == 4
    assert tb.special_requests == "window seat"


@pytest.mark.parametrize(
    "override",
    [
        {"time_slot": "  "},
        {"number_of_guests": 0},
        {"number_of_guests": "many"},
        {"booking_date": None},
    ],
)
def test_create_table_booking_validation(table_booking_service, restaurant, override):
    with pytest.raises(ValidationError):
        book(table_booking_service, restaurant, **override)


def test_create_table_booking_unknown_restaurant(table_booking_service, restaurant):
    with pytest.raises(NotFound):
        book(table_booking_service, restaurant, provider_id=9999)


def test_restaurant_confirms_then_completes(table_booking_service, restaurant):
    tb = book(table_booking_service, restaurant)
    tb = table_booking_service.update_status(
        None, table_booking_id=tb.id, status="confirmed", actor=restaurant["owner"]
    )
    assert tb.status is TableBookingStatus.CONFIRMED
    tb = table_booking_service.update_status(
        None, table_booking_id=tb.id, status="completed", actor=restaurant["owner"]
    )
    assert tb.status is TableBookingStatus.COMPLETED

    with pytest.raises(InvalidTransition):
        table_booking_service.update_status(
            None, table_booking_id=tb.id, status="cancelled", actor=restaurant["customer"]
        )


def test_customer_cannot_confirm(table_booking_service, restaurant):
    tb = book(table_booking_service, restaurant)
    with pytest.raises(NotEligible):
        table_booking_service.update_status(
            None, table_booking_id=tb.id, status="confirmed", actor=restaurant["customer"]
        )


def test_customer_cancels_pending(table_booking_service, restaurant, store):
    tb = book(table_booking_service, restaurant)
    tb = table_booking_service.update_status(
        None, table_booking_id=tb.id, status="cancelled", actor=restaurant["customer"]
    )
    assert tb.status is TableBookingStatus.CANCELLED
    assert store.table_bookings[tb.id]["status"] == "cancelled"


def test_other_restaurant_cannot_see_booking(table_booking_service, restaurant, store):
    rival = store.add_user("rival_owner", role="provider")
    store.add_provider(rival, business_name="Hotel Rival", category_slug="restaurant")
    tb = book(table_booking_service, restaurant)
    with pytest.raises(NotEligible):
        table_booking_service.get_table_booking(None, tb.id, Actor(rival, Role.PROVIDER))


def test_unknown_status(table_booking_service, restaurant):
    tb = book(table_booking_service, restaurant)
    with pytest.raises(ValidationError):
        table_booking_service.update_status(None, table_booking_id=tb.id, status="seated", actor=restaurant["owner"])


def test_list_user_table_bookings(table_booking_service, restaurant):
    book(table_booking_service, restaurant)
    book(table_booking_service, restaurant, time_slot="13:00-14:00")
    assert len(table_booking_service.list_user_table_bookings(None, restaurant["customer"].user_id)) == 2
