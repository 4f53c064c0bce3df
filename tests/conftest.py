from __future__ import annotations

import pytest

from fakes import (
    FakeBookingRepository,
    FakeDb,
    FakeHttp,
    FakeInvoiceRepository,
    FakeOrderEventRepository,
    FakeOrderItemRepository,
    FakeOrderRepository,
    FakePaymentRepository,
    FakeProblemRepository,
    FakeProductRepository,
    FakeProviderRepository,
    FakeRentalRepository,
    FakeReviewRepository,
    FakeRiderRepository,
    FakeTableBookingRepository,
    RecordingNotifier,
    SHIRUR,
    Store,
)
from shirurexpress.config import AppConfig, BusinessConfig, DbConfig, PaymentConfig
from shirurexpress.gateway import RazorpayGateway
from shirurexpress.services.booking_service import BookingService
from shirurexpress.services.delivery_service import DeliveryService
from shirurexpress.services.order_service import OrderService
from shirurexpress.services.payment_service import PaymentService
from shirurexpress.services.provider_service import ProviderService
from shirurexpress.services.rental_service import RentalService
from shirurexpress.services.table_booking_service import TableBookingService
from shirurexpress.web_app import Repositories


@pytest.fixture
def store():
    return Store()


@pytest.fixture
def business():
    return BusinessConfig()


@pytest.fixture
def payment_cfg():
    return PaymentConfig(key_id="rzp_test_key", key_secret="rzp_test_secret", base_url="https://gateway.test/v1")


@pytest.fixture
def app_cfg(business, payment_cfg):
    return AppConfig(
        name="Shirur Express",
        log_level="DEBUG",
        db=DbConfig(host="localhost", port=5432, name="test", user="test", password="test"),
        business=business,
        payment=payment_cfg,
    )


@pytest.fixture
def repos(store):
    return Repositories(
        order=FakeOrderRepository(store),
        order_item=FakeOrderItemRepository(store),
        order_event=FakeOrderEventRepository(store),
        product=FakeProductRepository(store),
        provider=FakeProviderRepository(store),
        rider=FakeRiderRepository(store),
        booking=FakeBookingRepository(store),
        invoice=FakeInvoiceRepository(store),
        payment=FakePaymentRepository(store),
        table_booking=FakeTableBookingRepository(store),
        review=FakeReviewRepository(store),
        problem=FakeProblemRepository(store),
        rental=FakeRentalRepository(store),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def gateway(payment_cfg, http):
    return RazorpayGateway(payment_cfg, http=http)


@pytest.fixture
def order_service(repos, business):
    return OrderService(
        order_repo=repos.order,
        order_item_repo=repos.order_item,
        order_event_repo=repos.order_event,
        product_repo=repos.product,
        provider_repo=repos.provider,
        rider_repo=repos.rider,
        business=business,
    )


@pytest.fixture
def delivery_service(repos, business):
    return DeliveryService(
        order_repo=repos.order, order_event_repo=repos.order_event, rider_repo=repos.rider, business=business
    )


@pytest.fixture
def booking_service(repos, business, notifier):
    return BookingService(
        booking_repo=repos.booking,
        invoice_repo=repos.invoice,
        provider_repo=repos.provider,
        problem_repo=repos.problem,
        notifier=notifier,
        business=business,
    )


@pytest.fixture
def payment_service(repos, gateway):
    return PaymentService(
        gateway=gateway,
        invoice_repo=repos.invoice,
        booking_repo=repos.booking,
        order_repo=repos.order,
        payment_repo=repos.payment,
    )


@pytest.fixture
def table_booking_service(repos):
    return TableBookingService(table_booking_repo=repos.table_booking, provider_repo=repos.provider)


@pytest.fixture
def provider_service(repos):
    return ProviderService(provider_repo=repos.provider, product_repo=repos.product, problem_repo=repos.problem)


@pytest.fixture
def rental_service(repos):
    return RentalService(rental_repo=repos.rental)


@pytest.fixture
def market(store):
    """A customer, a grocery shop with two products, and its owner."""
    customer = store.add_user("asha", phone="9876543210")
    owner = store.add_user("kirana_owner", role="provider")
    provider = store.add_provider(owner, latitude=SHIRUR[0], longitude=SHIRUR[1])
    rice = store.add_product(provider, "Rice 1kg", "60.00", stock_qty=10)
    dal = store.add_product(provider, "Toor Dal 1kg", "140.00")
    return {"customer": customer, "owner": owner, "provider": provider, "rice": rice, "dal": dal}


@pytest.fixture
def fake_db(store):
    return FakeDb(store)
