"""
Authorization tests for the JewelERP API.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied back-office operations (403)
- Admin role can perform privileged operations
- Revoked and deactivated sessions stop working
"""

import pytest

from conftest import auth_headers, get_auth_token


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, "cashier"))


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/auth/users"),
            ("GET", "/api/customers/"),
            ("POST", "/api/customers/"),
            ("GET", "/api/products"),
            ("POST", "/api/products/1/stock"),
            ("GET", "/api/metal-rates/latest"),
            ("POST", "/api/invoices/"),
            ("GET", "/api/invoices/summary"),
            ("GET", "/api/gold-loans/"),
            ("GET", "/api/karigars/"),
            ("GET", "/api/sync/status"),
            ("POST", "/api/sync/trigger"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["success"] is False

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid or expired token"


# =============================================================================
# CASHIER DENIED BACK-OFFICE OPERATIONS - 403
# =============================================================================


class TestCashierDenied:
    """Cashier role can bill but not run the back office."""

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("GET", "/api/auth/users", None),
            ("POST", "/api/auth/users", {"username": "x", "email": "x@x.com", "password": "P@ssw0rd123!"}),
            ("POST", "/api/products", {"product_name": "Chain"}),
            ("POST", "/api/products/1/stock", {"delta": 1}),
            ("POST", "/api/metal-rates/", {"rates": {"1": 6000}}),
            ("POST", "/api/invoices/1/cancel", {"reason": "x"}),
            ("GET", "/api/invoices/summary", None),
            ("POST", "/api/gold-loans/", {}),
            ("POST", "/api/karigars/orders", {}),
            ("POST", "/api/sync/toggle", {"enabled": False}),
            ("POST", "/api/sync/cleanup", {}),
        ],
    )
    def test_forbidden(self, client, cashier_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=cashier_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["details"]["role"] == "cashier"

    def test_cashier_can_create_customer(self, client, cashier_headers):
        resp = client.post(
            "/api/customers/",
            json={"first_name": "Meena", "mobile": "9000000001"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["customer"]["customer_code"] == "CUST0100001"


# =============================================================================
# ADMIN ACCESS
# =============================================================================


class TestAdminAccess:

    def test_admin_lists_users(self, client, admin_headers, cashier_user):
        resp = client.get("/api/auth/users", headers=admin_headers)
        assert resp.status_code == 200
        usernames = [u["username"] for u in resp.json["data"]["users"]]
        assert usernames == ["admin", "cashier"]
        assert all("password_hash" not in u for u in resp.json["data"]["users"])

    def test_admin_creates_user(self, client, admin_headers):
        resp = client.post(
            "/api/auth/users",
            json={"username": "asha", "email": "asha@shop.local", "password": "Asha#2026x", "role": "accountant"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["data"]["user"]["role"] == "accountant"

    def test_weak_password_is_400(self, client, admin_headers):
        resp = client.post(
            "/api/auth/users",
            json={"username": "asha", "email": "asha@shop.local", "password": "weak"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_admin_cannot_deactivate_self(self, client, admin_headers, admin_user):
        resp = client.post(f"/api/auth/users/{admin_user.id}/active", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================


class TestSessionLifecycle:

    def test_login_failure(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Nope123!x"})
        assert resp.status_code == 401
        assert resp.json == {"success": False, "message": "Invalid credentials"}

    def test_login_requires_fields(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin"})
        assert resp.status_code == 400

    def test_me_and_logout(self, client, admin_headers):
        me = client.get("/api/auth/me", headers=admin_headers)
        assert me.status_code == 200
        assert me.json["data"]["user"]["username"] == "admin"
        assert me.json["data"]["branch_id"] == 1

        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401

    def test_deactivation_ends_sessions(self, client, admin_headers, cashier_user):
        cashier_token = get_auth_token(client, "cashier")

        resp = client.post(f"/api/auth/users/{cashier_user.id}/active", json={"is_active": False}, headers=admin_headers)

        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(cashier_token)).status_code == 401
        assert get_auth_token(client, "cashier") is None

    def test_password_change_logs_out_everywhere(self, client, cashier_user):
        token = get_auth_token(client, "cashier")
        resp = client.post(
            "/api/auth/change-password",
            json={"old_password": "Password123!", "new_password": "Changed#456"},
            headers=auth_headers(token),
        )

        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401
        assert get_auth_token(client, "cashier", "Changed#456") is not None
