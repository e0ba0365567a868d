"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Role checks return 403
- Order ownership is enforced on view and cancel
- Domain errors map to 400/404/409 JSON bodies
- Unexpected failures return a JSON 500
"""

import pytest

from bazaar.models import ManufacturerStatus, OrderStatus
from bazaar.services import manufacturer_service, order_service

from conftest import TEST_PASSWORD, auth_headers, make_manufacturer, make_user


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/orders/"),
            ("GET", "/api/orders/"),
            ("GET", "/api/orders/my-orders"),
            ("GET", "/api/orders/1"),
            ("PUT", "/api/orders/1/status"),
            ("PUT", "/api/orders/1/cancel"),
            ("DELETE", "/api/orders/1"),
            ("GET", "/api/manufacturers/"),
            ("PUT", "/api/manufacturers/1/verify"),
            ("DELETE", "/api/manufacturers/1"),
            ("POST", "/api/admin/manufacturer-accounts/reset-password"),
            ("GET", "/api/products/"),
            ("POST", "/api/products/"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"


# =============================================================================
# ROLE CHECKS - 403
# =============================================================================


class TestRoleChecks:

    def test_retailer_cannot_list_all_orders(self, client, retailer_headers):
        resp = client.get("/api/orders/", headers=retailer_headers)
        assert resp.status_code == 403
        assert resp.json["error"] == "Permission denied"

    def test_retailer_cannot_change_status(self, client, retailer, retailer_headers, sparkler):
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        resp = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": OrderStatus.SHIPPED},
            headers=retailer_headers,
        )
        assert resp.status_code == 403

    def test_retailer_cannot_verify_manufacturer(self, client, retailer_headers, manufacturer):
        resp = client.put(
            f"/api/manufacturers/{manufacturer.id}/verify",
            json={"status": ManufacturerStatus.APPROVED},
            headers=retailer_headers,
        )
        assert resp.status_code == 403

    def test_dashboard_admin_cannot_delete(self, client, db_session, manufacturer):
        dash = make_user("dash", role="DASHBOARD_ADMIN")
        resp = client.delete(f"/api/manufacturers/{manufacturer.id}", headers=auth_headers(dash))
        assert resp.status_code == 403


# =============================================================================
# AUTH FLOW
# =============================================================================


class TestAuthFlow:

    def test_register_login_logout(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "deepa",
            "email": "deepa@example.com",
            "password": TEST_PASSWORD,
            "confirm_password": TEST_PASSWORD,
        })
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "RETAILER"
        assert "password_hash" not in resp.json["user"]

        resp = client.post("/api/auth/login", json={"email": "deepa@example.com", "password": TEST_PASSWORD})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        assert client.get("/api/auth/me", headers=headers).json["user"]["username"] == "deepa"
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_wrong_password(self, client, retailer):
        resp = client.post("/api/auth/login", json={"username": "retailer", "password": "Wrong12345"})
        assert resp.status_code == 401

    def test_duplicate_registration_conflict(self, client, retailer):
        resp = client.post("/api/auth/register", json={
            "username": "retailer",
            "email": "new@example.com",
            "password": TEST_PASSWORD,
        })
        assert resp.status_code == 409


# =============================================================================
# MANUFACTURER ONBOARDING
# =============================================================================


class TestManufacturerOnboarding:

    def test_register_verify_then_login(self, client, admin_headers):
        resp = client.post("/api/manufacturers/register", json={
            "company_name": "Lakshmi Crackers",
            "contact_person": "Lakshmi N",
            "email": "lakshmi@crackers.example",
            "username": "lakshmi",
            "password": TEST_PASSWORD,
            "confirm_password": TEST_PASSWORD,
        })
        assert resp.status_code == 201
        manufacturer_id = resp.json["manufacturer"]["id"]
        assert resp.json["manufacturer"]["status"] == "PENDING"

        resp = client.put(
            f"/api/manufacturers/{manufacturer_id}/verify",
            json={"status": "REJECTED", "notes": "License expired"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        login = client.post("/api/auth/login", json={"username": "lakshmi", "password": TEST_PASSWORD})
        assert login.status_code == 401

        resp = client.put(
            f"/api/manufacturers/{manufacturer_id}/verify",
            json={"status": "APPROVED"},
            headers=admin_headers,
        )
        assert resp.json["manufacturer"]["is_verified"] is True
        login = client.post("/api/auth/login", json={"username": "lakshmi", "password": TEST_PASSWORD})
        assert login.status_code == 200

        headers = {"Authorization": f"Bearer {login.json['token']}"}
        profile = client.get("/api/manufacturers/profile", headers=headers)
        assert profile.json["manufacturer"]["id"] == manufacturer_id

    def test_register_password_mismatch(self, client, db_session):
        resp = client.post("/api/manufacturers/register", json={
            "company_name": "Lakshmi Crackers",
            "contact_person": "Lakshmi N",
            "email": "lakshmi@crackers.example",
            "username": "lakshmi",
            "password": TEST_PASSWORD,
            "confirm_password": "Password999",
        })
        assert resp.status_code == 400

    def test_verify_unknown_status(self, client, admin_headers, manufacturer):
        resp = client.put(
            f"/api/manufacturers/{manufacturer.id}/verify",
            json={"status": "SOMETIMES"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_reset_password(self, client, admin_headers, manufacturer):
        resp = client.post(
            "/api/admin/manufacturer-accounts/reset-password",
            json={"email": manufacturer.email},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        temp_password = resp.json["temporary_password"]

        login = client.post("/api/auth/login", json={"email": manufacturer.email, "password": temp_password})
        assert login.status_code == 200

    def test_admin_delete(self, client, admin_headers, manufacturer):
        resp = client.delete(f"/api/manufacturers/{manufacturer.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/manufacturers/{manufacturer.id}", headers=admin_headers).status_code == 404


# =============================================================================
# ORDERS
# =============================================================================


class TestOrderEndpoints:

    def test_place_and_view_own_order(self, client, retailer_headers, sparkler):
        resp = client.post("/api/orders/", json={
            "items": [{"product_id": sparkler.id, "quantity": 3}],
            "shipping_address": "4 Temple Street",
        }, headers=retailer_headers)
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["total"] == "30.00"
        assert order["items"][0]["quantity"] == 3

        resp = client.get(f"/api/orders/{order['id']}", headers=retailer_headers)
        assert resp.status_code == 200
        resp = client.get(f"/api/orders/number/{order['order_number']}", headers=retailer_headers)
        assert resp.json["order"]["id"] == order["id"]

        mine = client.get("/api/orders/my-orders", headers=retailer_headers)
        assert mine.json["count"] == 1

    def test_insufficient_stock_is_409(self, client, retailer_headers, sparkler):
        resp = client.post("/api/orders/", json={
            "items": [{"product_id": sparkler.id, "quantity": 11}],
        }, headers=retailer_headers)
        assert resp.status_code == 409
        assert resp.json["details"]["available"] == 10

    def test_unknown_product_is_404(self, client, retailer_headers, db_session):
        resp = client.post("/api/orders/", json={
            "items": [{"product_id": 777, "quantity": 1}],
        }, headers=retailer_headers)
        assert resp.status_code == 404

    def test_empty_items_is_400(self, client, retailer_headers):
        resp = client.post("/api/orders/", json={"items": []}, headers=retailer_headers)
        assert resp.status_code == 400

    def test_other_user_cannot_view_or_cancel(self, client, retailer, other_retailer, sparkler):
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        headers = auth_headers(other_retailer)

        assert client.get(f"/api/orders/{order.id}", headers=headers).status_code == 403
        assert client.put(f"/api/orders/{order.id}/cancel", json={}, headers=headers).status_code == 403
        assert order_service.get_order(order.id).status == OrderStatus.PENDING

    def test_owner_cancels(self, client, retailer, retailer_headers, sparkler):
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 4}])
        resp = client.put(
            f"/api/orders/{order.id}/cancel",
            json={"reason": "Ordered twice"},
            headers=retailer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == OrderStatus.CANCELLED

        resp = client.put(f"/api/orders/{order.id}/cancel", json={}, headers=retailer_headers)
        assert resp.status_code == 409

    def test_manufacturer_moves_status(self, client, retailer, manufacturer_headers, sparkler):
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        resp = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": OrderStatus.SHIPPED, "tracking_number": "IP-4411"},
            headers=manufacturer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["tracking_number"] == "IP-4411"

        resp = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": OrderStatus.DELIVERED},
            headers=manufacturer_headers,
        )
        resp = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": OrderStatus.CANCELLED},
            headers=manufacturer_headers,
        )
        assert resp.status_code == 409

        listed = client.get("/api/orders/manufacturer/my-orders", headers=manufacturer_headers)
        assert listed.json["count"] == 1
        stats = client.get("/api/orders/stats/manufacturer", headers=manufacturer_headers)
        assert stats.json["revenue"] == "10.00"

    def test_admin_delete_order(self, client, admin_headers, retailer, sparkler):
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        resp = client.delete(f"/api/orders/{order.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/orders/{order.id}", headers=admin_headers).status_code == 404

    def test_rival_manufacturer_cannot_move_status(self, client, db_session, retailer, sparkler):
        rival = make_manufacturer(db_session, "Rival Crackers")
        order = order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        resp = client.put(
            f"/api/orders/{order.id}/status",
            json={"status": OrderStatus.CONFIRMED},
            headers=auth_headers(rival.user),
        )
        assert resp.status_code == 403
        assert order_service.get_order(order.id).status == OrderStatus.PENDING

    def test_rival_manufacturer_sees_no_orders(self, client, db_session, retailer, sparkler):
        rival = make_manufacturer(db_session, "Rival Crackers")
        order_service.create_order(retailer.id, [{"product_id": sparkler.id, "quantity": 1}])
        listed = client.get("/api/orders/manufacturer/my-orders", headers=auth_headers(rival.user))
        assert listed.json["count"] == 0

    def test_oversized_amount_is_400(self, client, retailer_headers, sparkler):
        for amount in ("1e30", "100000000.00"):
            resp = client.post("/api/orders/", json={
                "items": [{"product_id": sparkler.id, "quantity": 1}],
                "shipping_cost": amount,
            }, headers=retailer_headers)
            assert resp.status_code == 400
            assert "shipping_cost" in resp.json["error"]
        assert order_service.list_orders()["count"] == 0


# =============================================================================
# ACCOUNT ADMINISTRATION
# =============================================================================


class TestAccountAdminEndpoints:

    def test_suspend_logs_user_out(self, client, admin_headers, retailer, retailer_headers):
        assert client.get("/api/orders/my-orders", headers=retailer_headers).status_code == 200

        resp = client.put(f"/api/admin/users/{retailer.id}/suspend", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is False
        assert client.get("/api/orders/my-orders", headers=retailer_headers).status_code == 401

        resp = client.post("/api/auth/login", json={"username": "retailer", "password": TEST_PASSWORD})
        assert resp.status_code == 401

        resp = client.put(f"/api/admin/users/{retailer.id}/activate", headers=admin_headers)
        assert resp.json["user"]["is_active"] is True
        resp = client.post("/api/auth/login", json={"username": "retailer", "password": TEST_PASSWORD})
        assert resp.status_code == 200

    def test_deactivate_alias(self, client, admin_headers, retailer):
        resp = client.put(f"/api/admin/users/{retailer.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["is_active"] is False

    def test_change_role_and_list_by_role(self, client, admin_headers, retailer):
        resp = client.put(
            f"/api/admin/users/{retailer.id}/role",
            json={"role": "DASHBOARD_ADMIN"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        listed = client.get("/api/admin/users?role=DASHBOARD_ADMIN", headers=admin_headers)
        assert [u["id"] for u in listed.json["items"]] == [retailer.id]

        resp = client.put(f"/api/admin/users/{retailer.id}/role", json={}, headers=admin_headers)
        assert resp.status_code == 400
        resp = client.put(
            f"/api/admin/users/{retailer.id}/role", json={"role": "OWNER"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_admin_cannot_suspend_self(self, client, admin, admin_headers):
        resp = client.put(f"/api/admin/users/{admin.id}/suspend", headers=admin_headers)
        assert resp.status_code == 409

    def test_dashboard_admin_reads_but_cannot_suspend(self, client, db_session, retailer):
        headers = auth_headers(make_user("dash", role="DASHBOARD_ADMIN"))
        assert client.get("/api/admin/users", headers=headers).status_code == 200
        assert client.get(f"/api/admin/users/{retailer.id}", headers=headers).status_code == 200
        assert client.put(f"/api/admin/users/{retailer.id}/suspend", headers=headers).status_code == 403

    def test_unknown_user_is_404(self, client, admin_headers):
        assert client.get("/api/admin/users/9999", headers=admin_headers).status_code == 404

    def test_pending_approvals(self, client, db_session, admin_headers, manufacturer):
        pending = make_manufacturer(db_session, "New Pyro", verified=False)
        resp = client.get("/api/admin/dashboard/pending-approvals", headers=admin_headers)
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json["items"]] == [pending.id]


# =============================================================================
# CATALOG QUERIES
# =============================================================================


class TestCatalogEndpoints:

    def test_lookup_and_filters(self, client, retailer_headers, sparkler, rocket):
        resp = client.get("/api/products/sku/RKT-001", headers=retailer_headers)
        assert resp.json["product"]["id"] == rocket.id
        assert client.get("/api/products/barcode/000", headers=retailer_headers).status_code == 404

        resp = client.get("/api/products/?search=spark", headers=retailer_headers)
        assert [p["id"] for p in resp.json["items"]] == [sparkler.id]
        resp = client.get("/api/products/?min_price=20&max_price=30", headers=retailer_headers)
        assert [p["id"] for p in resp.json["items"]] == [rocket.id]
        resp = client.get("/api/products/?min_price=30&max_price=20", headers=retailer_headers)
        assert resp.status_code == 400

    def test_featured_toggle(self, client, retailer_headers, manufacturer_headers, sparkler):
        assert client.get("/api/products/featured", headers=retailer_headers).json["count"] == 0
        resp = client.put(f"/api/products/{sparkler.id}/toggle-featured", headers=manufacturer_headers)
        assert resp.json["product"]["is_featured"] is True
        featured = client.get("/api/products/featured", headers=retailer_headers)
        assert [p["id"] for p in featured.json["items"]] == [sparkler.id]

        resp = client.put(f"/api/products/{sparkler.id}/toggle-featured", headers=retailer_headers)
        assert resp.status_code == 403

    def test_own_low_and_out_of_stock(self, client, retailer, manufacturer_headers, sparkler, rocket):
        order_service.create_order(retailer.id, [{"product_id": rocket.id, "quantity": 5}])

        low = client.get("/api/products/mine/low-stock?threshold=6", headers=manufacturer_headers)
        assert [p["id"] for p in low.json["items"]] == [rocket.id]
        out = client.get("/api/products/mine/out-of-stock", headers=manufacturer_headers)
        assert [p["stock_quantity"] for p in out.json["items"]] == [0]

    def test_retailer_has_no_stock_views(self, client, retailer_headers):
        assert client.get("/api/products/mine/low-stock", headers=retailer_headers).status_code == 403


# =============================================================================
# UNEXPECTED FAILURES - 500
# =============================================================================


def test_unexpected_error_returns_json_500(client, admin_headers, monkeypatch):
    def _boom(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(manufacturer_service, "list_manufacturers", _boom)
    resp = client.get("/api/manufacturers/", headers=admin_headers)
    assert resp.status_code == 500
    assert resp.json == {"error": "Internal server error"}
