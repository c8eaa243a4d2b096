"""
Authentication and session tests.

Verifies:
- Login by username or email; the session carries the role claim
- Failed logins are throttled and lock the account with 429
- Logout, role change and deactivation revoke sessions
"""

from datetime import timedelta

import pytest

from haven.models import SecurityEvent, SessionToken
from haven.services import auth_service, session_service, login_throttle_service
from haven.services.auth_service import PasswordValidationError
from haven.time_utils import utcnow

from conftest import PASSWORD, auth_headers, get_auth_token


class TestLogin:
    def test_login_with_username(self, client, attendant_user):
        resp = client.post("/api/auth/login", json={"username": "attendant", "password": PASSWORD})
        assert resp.status_code == 200
        assert len(resp.json["token"]) == 64
        assert resp.json["session"]["role"] == "ATTENDANT"
        assert {"action": "manage", "subject": "sales"} in resp.json["grants"]

    def test_login_with_email(self, client, owner_user):
        resp = client.post("/api/auth/login", json={"email": "owner@haven.test", "password": PASSWORD})
        assert resp.status_code == 200

    def test_wrong_password(self, client, owner_user):
        resp = client.post("/api/auth/login", json={"username": "owner", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"username": "owner"})
        assert resp.status_code == 400

    def test_me(self, client, owner_headers):
        resp = client.get("/api/auth/me", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["role"] == "OWNER"
        assert resp.json["user"]["username"] == "owner"

    def test_bad_token(self, client):
        resp = client.get("/api/auth/me", headers=auth_headers("nope"))
        assert resp.status_code == 401

    def test_inactive_user_cannot_login(self, client, db_session, owner_user):
        owner_user.status = "INACTIVE"
        db_session.commit()
        resp = client.post("/api/auth/login", json={"username": "owner", "password": PASSWORD})
        assert resp.status_code == 401


class TestLockout:
    def test_lockout_after_repeated_failures(self, client, owner_user, db_session):
        for _ in range(login_throttle_service.MAX_FAILED_ATTEMPTS - 1):
            resp = client.post("/api/auth/login", json={"username": "owner", "password": "Wrong123!"})
            assert resp.status_code == 401

        resp = client.post("/api/auth/login", json={"username": "owner", "password": "Wrong123!"})
        assert resp.status_code == 429

        # Even the right password is refused while locked
        resp = client.post("/api/auth/login", json={"username": "owner", "password": PASSWORD})
        assert resp.status_code == 429
        assert resp.json["locked"] is True

        status = client.get("/api/auth/lockout-status/owner").json
        assert status["locked"] is True
        assert status["failed_attempts"] == login_throttle_service.MAX_FAILED_ATTEMPTS

        failures = db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count()
        assert failures == login_throttle_service.MAX_FAILED_ATTEMPTS

    def test_warning_near_lockout(self, client, owner_user):
        resp = None
        for _ in range(login_throttle_service.MAX_FAILED_ATTEMPTS - 3):
            resp = client.post("/api/auth/login", json={"username": "owner", "password": "Wrong123!"})
        assert "warning" in resp.json


class TestSessions:
    def test_logout_revokes(self, client, owner_user):
        token = get_auth_token(client, "owner")
        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_role_change_revokes_sessions(self, client, admin_headers, attendant_user):
        token = get_auth_token(client, "attendant")
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 200

        resp = client.put(
            f"/api/users/{attendant_user.id}",
            json={"role": "OWNER"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "OWNER"

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

        new_token = get_auth_token(client, "attendant")
        assert client.get("/api/auth/me", headers=auth_headers(new_token)).json["role"] == "OWNER"

    def test_idle_session_expires(self, db_session, owner_user):
        session, token = session_service.create_session(owner_user.id)
        session.last_used_at = utcnow() - session_service.SESSION_IDLE_TIMEOUT * 2
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.expire_all()
        assert db_session.get(SessionToken, session.id).is_revoked is True

    def test_cleanup_removes_old_revoked_sessions(self, db_session, owner_user):
        session, _ = session_service.create_session(owner_user.id)
        session.is_revoked = True
        session.created_at = utcnow() - timedelta(days=60)
        db_session.commit()

        assert session_service.cleanup_expired_sessions(older_than_days=30) == 1


class TestPasswords:
    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_roundtrip(self):
        hashed = auth_service.hash_password(PASSWORD)
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Other123!", hashed)
        assert not auth_service.verify_password(PASSWORD, "not-a-hash")
