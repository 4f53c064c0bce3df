from contextlib import contextmanager

import pytest

from fakes import SHIRUR, SHIRUR_NORTH
from shirurexpress import web_app
from shirurexpress.db import DbError


@pytest.fixture
def client(app_cfg, fake_db, repos, gateway, notifier):
    app = web_app.init_app(app_cfg, fake_db, repositories=repos, gateway=gateway, notifier=notifier)
    app.config["TESTING"] = True
    return app.test_client()


def as_user(user_id, role):
    return {"X-User-Id": str(user_id), "X-Role": role}


def place_order(client, market, **extra):
    body = {
        "provider_id": market["provider"],
        "kind": "grocery",
        "items": [{"product_id": market["rice"], "quantity": 2}, {"product_id": market["dal"], "quantity": 1}],
        "delivery_address": "Station Road, Shirur",
        "delivery_latitude": SHIRUR_NORTH[0],
        "delivery_longitude": SHIRUR_NORTH[1],
    }
    body.update(extra)
    return client.post("/orders", json=body, headers=as_user(market["customer"], "customer"))


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_missing_identity_is_rejected(client, market):
    resp = client.post("/orders", json={})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "not_eligible"


def test_unknown_role_is_a_validation_error(client):
    resp = client.get("/orders/mine", headers=as_user(1, "superuser"))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_wrong_role_for_endpoint(client, market):
    resp = client.get("/rider/orders/available", headers=as_user(market["customer"], "customer"))
    assert resp.status_code == 403


def test_unknown_route_is_json(client):
    resp = client.get("/nowhere")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "not_found"


def test_database_outage_is_503(app_cfg, repos):
    class DownDb:
        @contextmanager
        def session(self):
            raise DbError("Cannot connect to database.")
            yield

        transaction = session

    client = web_app.init_app(app_cfg, DownDb(), repositories=repos).test_client()
    resp = client.get("/service-categories")
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "database_unavailable"


def test_catalog(client, market):
    providers = client.get(f"/service-providers?lat={SHIRUR[0]}&lng={SHIRUR[1]}").get_json()["providers"]
    assert [p["id"] for p in providers] == [market["provider"]]
    assert providers[0]["distance_km"] == 0

    products = client.get(f"/products?provider_id={market['provider']}&max_price=100").get_json()["products"]
    assert [p["name"] for p in products] == ["Rice 1kg"]
    assert products[0]["unit_price"] == "60.00"

    assert client.get("/service-providers/99999").status_code == 404


def test_create_order(client, market, store):
    resp = place_order(client, market)
    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["status"] == "pending"
    assert order["total"] == "302.20"
    assert store.products[market["rice"]]["stock_qty"] == 8

    detail = client.get(f"/orders/{order['id']}", headers=as_user(market["customer"], "customer")).get_json()
    assert len(detail["items"]) == 2


def test_create_order_bad_items(client, market):
    resp = place_order(client, market, items=[{"product_id": "rice", "quantity": 1}])
    assert resp.status_code == 400
    resp = place_order(client, market, items="rice")
    assert resp.status_code == 400


def test_failed_request_rolls_back(client, market, store, monkeypatch):
    def boom(*args, **kwargs):
        raise web_app.ValidationError("event log unavailable")

    monkeypatch.setattr(web_app.repos.order_event, "add", boom)
    resp = place_order(client, market)
    assert resp.status_code == 400
    assert store.orders == {}
    assert store.products[market["rice"]]["stock_qty"] == 10


def test_full_delivery_over_http(client, market, store):
    order_id = place_order(client, market).get_json()["order"]["id"]
    owner = as_user(market["owner"], "provider")
    for target in ("accepted", "preparing", "ready_for_pickup"):
        resp = client.patch(f"/orders/{order_id}/status", json={"status": target}, headers=owner)
        assert resp.status_code == 200, resp.get_json()

    rider_id = store.add_user("ravi", role="rider")
    rider = as_user(rider_id, "rider")
    assert client.post("/rider/profile", json={"vehicle_type": "bike"}, headers=rider).status_code == 201
    assert client.patch("/rider/status", json={"is_online": True}, headers=rider).status_code == 200
    client.post("/rider/location", json={"latitude": SHIRUR[0], "longitude": SHIRUR[1]}, headers=rider)

    available = client.get("/rider/orders/available", headers=rider).get_json()["orders"]
    assert [o["id"] for o in available] == [order_id]

    resp = client.post(f"/rider/orders/{order_id}/accept", headers=rider)
    assert resp.get_json()["order"]["status"] == "assigned"

    other_id = store.add_user("second", role="rider")
    other = as_user(other_id, "rider")
    client.post("/rider/profile", json={"vehicle_type": "cycle"}, headers=other)
    client.patch("/rider/status", json={"is_online": True}, headers=other)
    resp = client.post(f"/rider/orders/{order_id}/accept", headers=other)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_assigned"

    client.post(f"/rider/orders/{order_id}/arrived-at-pickup", headers=rider)
    otp = client.post(f"/rider/orders/{order_id}/picked-up", headers=rider).get_json()["otp"]

    track = client.get(f"/orders/{order_id}/track", headers=as_user(market["customer"], "customer")).get_json()
    assert track["delivery_otp"] == otp
    assert track["status"] == "out_for_delivery"

    wrong = "0000" if otp != "0000" else "1111"
    resp = client.post(f"/rider/orders/{order_id}/verify-delivery", json={"otp": wrong}, headers=rider)
    assert resp.status_code == 422
    assert resp.get_json()["error"] == "invalid_otp"
    assert store.orders[order_id]["status"] == "out_for_delivery"

    resp = client.post(f"/rider/orders/{order_id}/verify-delivery", json={"otp": f" {otp} "}, headers=rider)
    assert resp.get_json()["order"]["status"] == "delivered"

    resp = client.post(f"/rider/orders/{order_id}/verify-delivery", json={"otp": otp}, headers=rider)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "not_in_deliverable_state"


def test_booking_and_invoice_payment_over_http(client, store, gateway, notifier):
    customer_id = store.add_user("meera", phone="9822000000")
    owner_id = store.add_user("plumber", role="provider")
    provider_id = store.add_provider(owner_id, business_name="Shirur Plumbing", category_slug="plumber")
    customer = as_user(customer_id, "customer")
    owner = as_user(owner_id, "provider")

    resp = client.post(
        "/bookings",
        json={"service_type": "leak repair", "provider_id": provider_id, "user_address": "Shirur",
              "user_phone": "9822000000", "scheduled_at": "2026-11-02T10:00:00"},
        headers=customer,
    )
    assert resp.status_code == 201
    booking_id = resp.get_json()["booking"]["id"]

    resp = client.patch(f"/bookings/{booking_id}/status", json={"status": "accepted", "estimated_cost": "450"},
                        headers=owner)
    assert resp.get_json()["booking"]["status"] == "accepted"
    client.patch(f"/bookings/{booking_id}/status", json={"status": "in_progress"}, headers=owner)
    client.post(f"/bookings/{booking_id}/service-otp", headers=owner)
    phone, otp = notifier.sent[-1]
    assert phone == "9822000000"

    resp = client.post(f"/bookings/{booking_id}/verify-otp", json={"otp": otp}, headers=owner)
    body = resp.get_json()
    assert body["booking"]["status"] == "pending_payment"
    invoice_id = body["invoice"]["id"]
    assert body["invoice"]["total_amount"] == "450.00"

    resp = client.post(f"/invoices/{invoice_id}/create-payment-order", headers=customer)
    assert resp.get_json()["amount"] == 45000

    payload = {
        "invoice_id": invoice_id,
        "razorpay_order_id": "order_TEST123",
        "razorpay_payment_id": "pay_42",
        "razorpay_signature": "forged",
    }
    resp = client.post("/invoices/verify-payment", json=payload, headers=customer)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "payment_verification_failed"

    payload["razorpay_signature"] = gateway.expected_signature("order_TEST123", "pay_42")
    for _ in range(2):
        resp = client.post("/invoices/verify-payment", json=payload, headers=customer)
        assert resp.get_json()["invoice"]["payment_status"] == "paid"
    assert len(store.payments) == 1

    detail = client.get(f"/bookings/{booking_id}", headers=customer).get_json()
    assert detail["booking"]["status"] == "completed"

    resp = client.post("/reviews", json={"provider_id": provider_id, "booking_id": booking_id, "rating": 5},
                       headers=customer)
    assert resp.status_code == 201
    assert store.providers[provider_id]["review_count"] == 1
    assert len(client.get(f"/reviews/provider/{provider_id}").get_json()["reviews"]) == 1


def test_review_rating_range(client, market):
    resp = client.post("/reviews", json={"provider_id": market["provider"], "rating": 6},
                       headers=as_user(market["customer"], "customer"))
    assert resp.status_code == 400


def test_table_booking_over_http(client, store):
    owner_id = store.add_user("hotel_owner", role="provider")
    provider_id = store.add_provider(owner_id, business_name="Hotel Ganesh", category_slug="restaurant")
    customer = as_user(store.add_user("priya"), "customer")

    resp = client.post(
        "/table-bookings",
        json={"provider_id": provider_id, "booking_date": "2026-11-02T20:00:00", "time_slot": "20:00-21:00",
              "number_of_guests": 3},
        headers=customer,
    )
    assert resp.status_code == 201
    tb_id = resp.get_json()["table_booking"]["id"]

    resp = client.patch(f"/table-bookings/{tb_id}/status", json={"status": "confirmed"},
                        headers=as_user(owner_id, "provider"))
    assert resp.get_json()["table_booking"]["status"] == "confirmed"
    assert len(client.get("/table-bookings/mine", headers=customer).get_json()["table_bookings"]) == 1


def test_provider_onboarding_and_menu_over_http(client, store):
    store.add_category("street_food")
    owner = as_user(store.add_user("vada_cart", role="provider"), "provider")

    assert client.get("/provider/profile", headers=owner).status_code == 404
    resp = client.post(
        "/provider/profile",
        json={"category_slug": "street_food", "business_name": "Vada Pav Cart", "address": "Bus Stand, Shirur"},
        headers=owner,
    )
    assert resp.status_code == 201
    provider_id = resp.get_json()["provider"]["id"]
    assert client.get("/provider/profile", headers=owner).get_json()["provider"]["id"] == provider_id

    resp = client.post("/menu-items", json={"name": "Vada Pav", "unit_price": "15", "sku": "VP"}, headers=owner)
    assert resp.status_code == 201
    item = resp.get_json()["item"]
    assert item["unit_price"] == "15.00"
    assert item["kind"] == "street_food"

    resp = client.patch(f"/menu-items/{item['id']}", json={"unit_price": 18}, headers=owner)
    assert resp.get_json()["item"]["unit_price"] == "18.00"
    products = client.get(f"/products?provider_id={provider_id}").get_json()["products"]
    assert [p["name"] for p in products] == ["Vada Pav"]

    resp = client.delete(f"/menu-items/{item['id']}", headers=owner)
    assert resp.get_json() == {"product_id": item["id"], "outcome": "deleted"}
    assert client.get("/provider/menu", headers=owner).get_json()["items"] == []


def test_menu_items_require_provider_role(client, store):
    customer = as_user(store.add_user("asha"), "customer")
    resp = client.post("/menu-items", json={"name": "Tea", "unit_price": "10"}, headers=customer)
    assert resp.status_code == 403
    assert store.products == {}


def test_menu_item_of_another_provider_is_not_found(client, market, store):
    rival = store.add_user("rival", role="provider")
    store.add_provider(rival, business_name="Rival Kirana")
    resp = client.delete(f"/menu-items/{market['rice']}", headers=as_user(rival, "provider"))
    assert resp.status_code == 404
    assert store.products[market["rice"]]["is_available"] is True


def test_menu_item_without_price(client, market):
    resp = client.post("/menu-items", json={"name": "Sugar"}, headers=as_user(market["owner"], "provider"))
    assert resp.status_code == 400


def test_service_problems_over_http(client, store):
    fan = store.add_problem("electrician", "Fan")
    store.add_problem("electrician", "Fan not spinning", parent_id=fan)
    top = client.get("/service-problems/electrician").get_json()["problems"]
    assert [p["name"] for p in top] == ["Fan"]
    sub = client.get(f"/service-problems/electrician?parent_id={fan}").get_json()["problems"]
    assert [p["name"] for p in sub] == ["Fan not spinning"]
    assert client.get("/service-problems/electrician?parent_id=x").status_code == 400


def test_rental_properties_over_http(client, store):
    landlord = as_user(store.add_user("landlord"), "customer")
    resp = client.post(
        "/rental-properties",
        json={"title": "Shop near market", "property_type": "shop", "rent": 12000, "address": "Market Yard",
              "locality": "Market Yard", "amenities": ["shutter"]},
        headers=landlord,
    )
    assert resp.status_code == 201
    listing = resp.get_json()["property"]
    assert listing["rent"] == "12000.00"

    assert client.get("/rental-properties?max_rent=10000").get_json()["properties"] == []
    found = client.get("/rental-properties?property_type=shop&locality=market").get_json()["properties"]
    assert [p["id"] for p in found] == [listing["id"]]
    assert client.get(f"/rental-properties/{listing['id']}").get_json()["property"]["title"] == "Shop near market"
    assert len(client.get("/rental-properties/mine", headers=landlord).get_json()["properties"]) == 1
    assert client.get("/rental-properties/999").status_code == 404

    resp = client.post("/rental-properties", json={"title": "Free room", "property_type": "room", "rent": 0,
                                                   "address": "Shirur"}, headers=landlord)
    assert resp.status_code == 400
    assert client.post("/rental-properties", json={}).status_code == 403
