"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Customers are denied admin operations (403)
- Admins can perform privileged operations
- Cookie sessions work alongside bearer tokens
"""

import pytest


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/cart"),
            ("POST", "/api/cart/items"),
            ("POST", "/api/cart/checkout"),
            ("GET", "/api/debts"),
            ("POST", "/api/debts/1/payments"),
            ("GET", "/api/reports"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/expenditures"),
            ("POST", "/api/expenditures"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_rejected(self, client, headers_for):
        resp = client.get("/api/cart", headers=headers_for("not-a-real-token"))
        assert resp.status_code == 401


# =============================================================================
# CUSTOMER DENIED ADMIN OPERATIONS (403)
# =============================================================================


class TestCustomerDeniedAdminOperations:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("DELETE", "/api/products/1"),
            ("GET", "/api/products/low-stock"),
            ("GET", "/api/cart/all"),
            ("GET", "/api/debts/all"),
            ("GET", "/api/debts/overdue"),
            ("POST", "/api/debts/1/remind"),
            ("DELETE", "/api/debts"),
            ("GET", "/api/reports"),
            ("GET", "/api/reports/inventory"),
            ("DELETE", "/api/reports"),
            ("POST", "/api/expenditures/1/approve"),
            ("POST", "/api/expenditures/1/complete"),
            ("GET", "/api/expenditures/statistics"),
        ],
    )
    def test_admin_only(self, client, user_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=user_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_admin_can_create_product(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={
                "sku": "TIRE-205",
                "name": "Road Tire 205",
                "category": "tires",
                "buying_price_cents": 3000,
                "selling_price_cents": 5000,
                "quantity": 8,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["product"]["sku"] == "TIRE-205"

    def test_duplicate_sku_conflicts(self, client, admin_headers, make_product):
        make_product(sku="TIRE-205")
        resp = client.post(
            "/api/products",
            json={
                "sku": "TIRE-205",
                "name": "Again",
                "category": "tires",
                "buying_price_cents": 1,
                "selling_price_cents": 2,
                "quantity": 1,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_admin_can_read_reports(self, client, admin_headers):
        for path in ("/api/reports", "/api/reports/sales", "/api/reports/inventory", "/api/debts/overdue"):
            assert client.get(path, headers=admin_headers).status_code == 200, path


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_register_then_me(self, client, user_password, headers_for):
        resp = client.post(
            "/api/auth/register",
            json={"username": "newbie", "email": "newbie@bilkro.test", "password": user_password},
        )
        assert resp.status_code == 201
        token = resp.get_json()["token"]

        me = client.get("/api/auth/me", headers=headers_for(token))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "newbie"
        assert me.get_json()["user"]["is_admin"] is False

    def test_weak_password_rejected(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"username": "weak", "email": "weak@bilkro.test", "password": "password"},
        )
        assert resp.status_code == 400

    def test_login_sets_cookie_session(self, client, user, user_password):
        resp = client.post("/api/auth/login", json={"username": user.username, "password": user_password})
        assert resp.status_code == 200
        assert "bilkro_session=" in resp.headers.get("Set-Cookie", "")

        # No Authorization header: the cookie alone authenticates
        assert client.get("/api/cart").status_code == 200

    def test_wrong_password(self, client, user):
        resp = client.post("/api/auth/login", json={"username": user.username, "password": "Nope123!x"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, user_headers):
        assert client.post("/api/auth/logout", headers=user_headers).status_code == 200
        assert client.get("/api/auth/me", headers=user_headers).status_code == 401
