"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Each role is admitted or denied (403) by its (action, subject) grants
- Denials are written to the security audit trail
"""

import pytest

from haven.models import SecurityEvent


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/inventory"),
            ("POST", "/api/inventory"),
            ("GET", "/api/inventory/stats"),
            ("DELETE", "/api/inventory/1"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/expenses"),
            ("GET", "/api/users"),
            ("GET", "/api/notifications"),
            ("GET", "/api/notifications/preferences"),
            ("GET", "/api/reports/inventory-value"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_public_endpoints(self, client, db_session):
        assert client.get("/health").status_code == 200
        assert client.get("/api/auth/lockout-status/nobody").status_code == 200


# =============================================================================
# ATTENDANT: sells and reads stock, nothing else
# =============================================================================


class TestAttendant:
    def test_can_read_inventory(self, client, attendant_headers, item):
        assert client.get("/api/inventory", headers=attendant_headers).status_code == 200
        assert client.get(f"/api/inventory/{item.id}", headers=attendant_headers).status_code == 200
        assert client.get("/api/inventory/low-stock", headers=attendant_headers).status_code == 200

    def test_can_sell(self, client, attendant_headers, item):
        resp = client.post(
            "/api/sales",
            json={"item_id": item.id, "quantity": 1, "selling_price_cents": 9500},
            headers=attendant_headers,
        )
        assert resp.status_code == 201

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/inventory", {"name": "X"}),
            ("PUT", "/api/inventory/1", {"quantity": 10}),
            ("DELETE", "/api/inventory/1", None),
            ("GET", "/api/inventory/stats", None),
            ("GET", "/api/sales", None),
            ("GET", "/api/sales/stats", None),
            ("GET", "/api/expenses", None),
            ("POST", "/api/expenses", {"description": "x"}),
            ("GET", "/api/users", None),
            ("POST", "/api/notifications", {"title": "x"}),
            ("GET", "/api/reports/inventory-value", None),
        ],
    )
    def test_denied(self, client, attendant_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=attendant_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["error"] == "Permission denied"


# =============================================================================
# OWNER: stock, expenses and reports; no selling, no user admin
# =============================================================================


class TestOwner:
    def test_can_manage_stock_and_read_reports(self, client, owner_headers, item):
        assert client.put(
            f"/api/inventory/{item.id}", json={"quantity": 8}, headers=owner_headers
        ).status_code == 200
        assert client.get("/api/inventory/stats", headers=owner_headers).status_code == 200
        assert client.get("/api/sales", headers=owner_headers).status_code == 200
        assert client.get("/api/reports/inventory-value", headers=owner_headers).status_code == 200
        assert client.delete(f"/api/inventory/{item.id}", headers=owner_headers).status_code == 204

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/sales", {"item_id": 1, "quantity": 1, "selling_price_cents": 100}),
            ("GET", "/api/users", None),
            ("POST", "/api/users", {"username": "x"}),
            ("DELETE", "/api/notifications/1", None),
        ],
    )
    def test_denied(self, client, owner_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=owner_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# ADMIN: everything
# =============================================================================


class TestAdmin:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/inventory",
            "/api/inventory/stats",
            "/api/sales",
            "/api/sales/stats",
            "/api/expenses",
            "/api/expenses/stats",
            "/api/users",
            "/api/notifications",
            "/api/reports/inventory-value",
        ],
    )
    def test_can_read_everything(self, client, admin_headers, path):
        assert client.get(path, headers=admin_headers).status_code == 200

    def test_can_sell(self, client, admin_headers, item):
        resp = client.post(
            "/api/sales",
            json={"item_id": item.id, "quantity": 1, "selling_price_cents": 9500},
            headers=admin_headers,
        )
        assert resp.status_code == 201


def test_denial_is_audited(client, attendant_headers, attendant_user, db_session):
    client.get("/api/users", headers=attendant_headers)

    event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
    assert event.user_id == attendant_user.id
    assert event.action == "manage:users"
    assert event.resource == "/api/users"
    assert event.success is False
