"""
Tests for the storefront and admin HTTP API.
"""

import pytest
from fastapi.testclient import TestClient

from auth import ensure_admin
from main import app
from models import get_db


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client, db_session):
    ensure_admin(db_session, "admin", "correct-horse")
    response = client.post("/api/admin/login", json={"username": "admin", "password": "correct-horse"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def place(client, product_id, quantity=1, email="buyer@example.com", **extra):
    return client.post("/api/orders", json={
        "email": email,
        "items": [{"product_id": product_id, "quantity": quantity}],
        **extra,
    })


class TestStorefront:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_list_products_with_filters(self, client, catalog):
        response = client.get("/api/products", params={"brand": ["SONOFF", "Aqara"], "sort": "price-asc"})
        assert response.status_code == 200
        assert [p["slug"] for p in response.json()] == [
            "sonoff-smart-bulb", "zigbee-motion-sensor", "security-camera-pro",
        ]

    def test_bad_sort_is_400(self, client, catalog):
        assert client.get("/api/products", params={"sort": "random"}).status_code == 400

    def test_product_by_slug_and_facets(self, client, catalog):
        response = client.get("/api/products/led-strip-5m")
        assert response.status_code == 200
        assert response.json()["price"] == 850.0
        assert client.get("/api/products/nope").status_code == 404

        facets = client.get("/api/products/facets").json()
        assert facets["protocols"] == ["WiFi", "Zigbee"]

    def test_categories(self, client, catalog):
        slugs = [c["slug"] for c in client.get("/api/categories").json()]
        assert slugs == ["sensors", "smart-lighting"]

    def test_price_cart(self, client, catalog):
        response = client.post("/api/cart", json={"items": [
            {"product_id": catalog["strip"].id, "quantity": 9},
        ]})
        assert response.status_code == 200
        body = response.json()
        assert body["items"][0]["quantity"] == 5  # capped at stock
        assert body["subtotal"] == 4250.0
        assert body["shipping_cost"] == 0.0

        missing = client.post("/api/cart", json={"items": [{"product_id": 999, "quantity": 1}]})
        assert missing.status_code == 404

        partial = client.post("/api/cart", json={
            "items": [{"product_id": catalog["bulb"].id, "quantity": 1}],
            "redeem_points": 15,
        })
        assert partial.status_code == 400
        assert "multiple of 10" in partial.json()["detail"]

    def test_place_and_look_up_order(self, client, catalog):
        response = place(client, catalog["bulb"].id, 2, shipping_address={"city": "Giza"})
        assert response.status_code == 200
        order = response.json()
        assert order["total"] == 950.0
        assert order["points_earned"] == 95

        detail = client.get(f"/api/orders/{order['id']}", params={"email": "buyer@example.com"})
        assert detail.status_code == 200
        assert detail.json()["items"][0]["quantity"] == 2

        other = client.get(f"/api/orders/{order['id']}", params={"email": "else@example.com"})
        assert other.status_code == 404

        # Orders are only listed in the admin console
        assert client.get("/api/orders", params={"email": "buyer@example.com"}).status_code == 405

    def test_order_errors(self, client, catalog):
        assert place(client, catalog["camera"].id).status_code == 400  # sold out
        assert place(client, 12345).status_code == 404
        assert place(client, catalog["bulb"].id, 0).status_code == 422

    def test_loyalty_account_and_redemption(self, client, catalog, member):
        response = client.get(f"/api/loyalty/{member.email}")
        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "silver"
        assert body["next_tier"] == {"next": "gold", "points": 3800, "threshold": 5000}

        preview = client.get(f"/api/loyalty/{member.email}/redemption", params={"max_discount": 12.5})
        assert preview.json()["max_redeemable_points"] == 120
        assert preview.json()["max_discount"] == 12.0

        assert client.get("/api/loyalty/ghost@example.com").status_code == 404

    def test_calculator_estimate(self, client):
        response = client.post("/api/calculator/estimate", json={
            "property_type": "apartment",
            "rooms": [
                {"type": "bedroom", "name": "Main"},
                {"type": "bathroom", "features": [{"type": "water_leak_sensor", "quantity": 2}]},
            ],
        })
        assert response.status_code == 200
        quote = response.json()
        # Bedroom 3800 + two leak sensors 1000
        assert quote["subtotal"] == 4800
        assert quote["installation_fee"] == 720
        assert quote["total"] == 5520

    def test_calculator_rejects_unknown_types(self, client):
        response = client.post("/api/calculator/estimate", json={"property_type": "castle"})
        assert response.status_code == 400
        response = client.post("/api/calculator/estimate", json={
            "property_type": "villa",
            "rooms": [{"type": "bedroom", "features": [{"type": "moat"}]}],
        })
        assert response.status_code == 400

    def test_calculator_with_floor_plan_analysis(self, client):
        response = client.post("/api/calculator/estimate", json={
            "property_type": "villa",
            "analysis": {"rooms_detected": [{"type": "garden", "name": "Garden", "count": 2}]},
        })
        rooms = response.json()["rooms"]
        assert [r["name"] for r in rooms] == ["Garden 1", "Garden 2"]

    def test_malformed_floor_plan_analysis_is_422(self, client):
        missing_type = client.post("/api/calculator/estimate", json={
            "property_type": "villa",
            "analysis": {"rooms_detected": [{"name": "Hall", "count": 1}]},
        })
        assert missing_type.status_code == 422
        null_count = client.post("/api/calculator/estimate", json={
            "property_type": "villa",
            "analysis": {"rooms_detected": [{"type": "hallway", "count": None}]},
        })
        assert null_count.status_code == 422

    def test_calculator_match(self, client, catalog):
        response = client.post("/api/calculator/match", json={
            "property_type": "apartment",
            "rooms": [{"type": "hallway"}],
        })
        assert response.status_code == 200
        body = response.json()
        products = body["rooms"][0]["products"]
        assert [p["product"]["slug"] for p in products] == ["sonoff-smart-bulb", "zigbee-motion-sensor"]
        assert body["subtotal"] == 1000.0
        assert body["installation_fee"] == 500
        assert body["unmatched"] == 0
        assert body["cart_items"][0] == {"product_id": catalog["bulb"].id, "quantity": 1}

    def test_submit_quote(self, client):
        response = client.post("/api/quotes", json={
            "property_type": "duplex",
            "rooms": [{"type": "entrance"}],
            "email": "lead@example.com",
        })
        assert response.status_code == 201
        assert response.json()["status"] == "submitted"
        # entrance: 500 + 3500 + 1500 + 4000 + 600
        assert response.json()["subtotal"] == 10100

        no_contact = client.post("/api/quotes", json={"property_type": "duplex", "rooms": [{"type": "entrance"}]})
        assert no_contact.status_code == 400


class TestAdmin:

    def test_login_rejects_bad_password(self, client, db_session):
        ensure_admin(db_session, "admin", "correct-horse")
        response = client.post("/api/admin/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 401

    def test_requires_token(self, client):
        assert client.get("/api/admin/orders").status_code == 401
        bad = client.get("/api/admin/orders", headers={"Authorization": "Token abc"})
        assert bad.status_code == 401
        assert bad.json()["detail"] == "Invalid token format"

    def test_lowercase_bearer_accepted(self, client, admin_headers):
        token = admin_headers["Authorization"].split()[1]
        response = client.get("/api/admin/me", headers={"Authorization": f"bearer {token}"})
        assert response.status_code == 200
        assert response.json()["username"] == "admin"

    def test_logout_revokes_token(self, client, admin_headers):
        assert client.post("/api/admin/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/admin/me", headers=admin_headers).status_code == 401

    def test_new_login_replaces_old_session(self, client, admin_headers):
        client.post("/api/admin/login", json={"username": "admin", "password": "correct-horse"})
        assert client.get("/api/admin/me", headers=admin_headers).status_code == 401

    def test_change_password(self, client, admin_headers):
        short = client.post("/api/admin/change-password", headers=admin_headers, json={
            "current_password": "correct-horse", "new_password": "short",
        })
        assert short.status_code == 400

        ok = client.post("/api/admin/change-password", headers=admin_headers, json={
            "current_password": "correct-horse", "new_password": "battery-staple",
        })
        assert ok.status_code == 200
        login = client.post("/api/admin/login", json={"username": "admin", "password": "battery-staple"})
        assert login.status_code == 200

    def test_order_management(self, client, admin_headers, catalog):
        order_id = place(client, catalog["bulb"].id, 2).json()["id"]

        listed = client.get("/api/admin/orders", params={"status": "pending"}, headers=admin_headers)
        assert [o["id"] for o in listed.json()] == [order_id]
        by_email = client.get("/api/admin/orders", params={"email": "Buyer@example.com"}, headers=admin_headers)
        assert [o["id"] for o in by_email.json()] == [order_id]

        response = client.put(f"/api/admin/orders/{order_id}/status",
                              json={"status": "cancelled"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.get("/api/products/sonoff-smart-bulb").json()["stock"] == 20

        again = client.put(f"/api/admin/orders/{order_id}/status",
                           json={"status": "processing"}, headers=admin_headers)
        assert again.status_code == 400
        assert client.get("/api/admin/orders/999", headers=admin_headers).status_code == 404

    def test_product_crud(self, client, admin_headers, catalog):
        created = client.post("/api/admin/products", headers=admin_headers, json={
            "name": "Aqara Hub M2", "price": 2100, "stock": 4, "brand": "Aqara", "protocol": "Zigbee",
        })
        assert created.status_code == 201
        product = created.json()
        assert product["slug"] == "aqara-hub-m2"

        duplicate = client.post("/api/admin/products", headers=admin_headers,
                                json={"name": "Aqara Hub M2", "price": 1})
        assert duplicate.status_code == 400

        updated = client.patch(f"/api/admin/products/{product['id']}", headers=admin_headers,
                               json={"price": 1999, "featured": True})
        assert updated.json()["price"] == 1999
        assert updated.json()["featured"] is True
        assert updated.json()["stock"] == 4

        cleared = client.patch(f"/api/admin/products/{product['id']}", headers=admin_headers,
                               json={"price": None})
        assert cleared.status_code == 422
        assert client.get("/api/products/aqara-hub-m2").json()["price"] == 1999
        unbranded = client.patch(f"/api/admin/products/{product['id']}", headers=admin_headers,
                                 json={"brand": None})
        assert unbranded.status_code == 200
        assert unbranded.json()["brand"] is None

        deleted = client.delete(f"/api/admin/products/{product['id']}", headers=admin_headers)
        assert deleted.json() == {"deleted": True}
        assert client.get("/api/products/aqara-hub-m2").status_code == 404

    def test_deleting_ordered_product_keeps_order_snapshot(self, client, admin_headers, catalog):
        order_id = place(client, catalog["motion"].id).json()["id"]
        client.delete(f"/api/admin/products/{catalog['motion'].id}", headers=admin_headers)

        item = client.get(f"/api/admin/orders/{order_id}", headers=admin_headers).json()["items"][0]
        assert item["product_id"] is None
        assert item["product_name"] == "Zigbee Motion Sensor"

    def test_create_category(self, client, admin_headers):
        response = client.post("/api/admin/categories", headers=admin_headers, json={"name": "Smart Hubs"})
        assert response.status_code == 201
        assert response.json()["slug"] == "smart-hubs"

    def test_quotes_and_settings(self, client, admin_headers):
        client.post("/api/quotes", json={
            "property_type": "office", "rooms": [{"type": "office"}], "phone": "01000000000",
        })
        quotes = client.get("/api/admin/quotes", headers=admin_headers).json()
        assert len(quotes) == 1

        response = client.put(f"/api/admin/quotes/{quotes[0]['id']}/status",
                              json={"status": "contacted"}, headers=admin_headers)
        assert response.json()["status"] == "contacted"

        client.put("/api/admin/settings", json={"key": "logo_size", "value": "120"}, headers=admin_headers)
        settings = client.get("/api/admin/settings", headers=admin_headers).json()
        # Session ids are stored in the same table but never exposed
        assert settings == {"logo_size": "120"}

    def test_bonus_points(self, client, admin_headers, member):
        response = client.post("/api/admin/loyalty/bonus", headers=admin_headers, json={
            "email": member.email, "points": 3800,
        })
        assert response.status_code == 200
        assert response.json()["tier"] == "gold"
        assert response.json()["points_balance"] == 4100

    def test_import_products(self, client, admin_headers):
        csv_content = (
            "Type,Name,Published,Regular price,Sale price\n"
            "simple,SONOFF SNZB-02 Temperature Sensor,1,9,\n"
            "simple,Lounge Table,1,3000,\n"
        )
        assert client.post("/api/admin/products/import", json={"csv_content": csv_content}).status_code == 401

        response = client.post("/api/admin/products/import", headers=admin_headers,
                               json={"csv_content": csv_content})
        assert response.status_code == 200
        assert response.json()["inserted"] == 1
        assert response.json()["skipped"] == 1

        product = client.get("/api/products/sonoff-snzb-02-temperature-sensor").json()
        assert product["price"] == 450.0
        assert product["brand"] == "SONOFF"

        empty = client.post("/api/admin/products/import", headers=admin_headers, json={"csv_content": ""})
        assert empty.status_code == 400
