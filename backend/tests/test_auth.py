"""
Authentication and authorization tests.

Verifies:
- Login issues a bearer token; bad credentials are 401
- Logout revokes the token
- Parent self-registration enforces password strength
- Unauthenticated requests are 401, wrong roles are 403
"""

import pytest

from academy.extensions import db
from academy.models import User
from academy.services import auth_service
from academy.services.auth_service import PasswordValidationError

from conftest import PASSWORD, auth_headers


def _login(client, email, password=PASSWORD):
    return client.post('/api/auth/login', json={"email": email, "password": password})


class TestPasswordRules:
    @pytest.mark.parametrize("password", [
        "Short1!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecials123",
        None,
    ])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong123!", hashed)
        assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")


class TestLogin:
    def test_login_and_me(self, client, parent_user):
        resp = _login(client, "PARENT@example.com")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["user"]["email"] == "parent@example.com"
        assert data["user"]["role"] == "parent"
        assert data["expiresAt"].endswith("Z")

        me = client.get('/api/auth/me', headers=auth_headers(data["token"]))
        assert me.status_code == 200
        assert me.get_json()["data"]["user"]["id"] == parent_user.id

    def test_wrong_password(self, client, parent_user):
        resp = _login(client, "parent@example.com", "Wrong123!")
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Invalid credentials"}

    def test_missing_fields(self, client, db_session):
        assert client.post('/api/auth/login', json={"email": "x@example.com"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, parent_user):
        parent_user.is_active = False
        db.session.commit()
        assert _login(client, "parent@example.com").status_code == 401

    def test_logout_revokes_token(self, client, parent_user):
        token = _login(client, "parent@example.com").get_json()["data"]["token"]
        headers = auth_headers(token)

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        me = client.get('/api/auth/me', headers=headers)
        assert me.status_code == 401
        assert me.get_json()["error"] == "Invalid or expired token"
        assert client.post('/api/auth/logout', headers=headers).status_code == 401


class TestRegister:
    def test_register_parent(self, client, db_session):
        resp = client.post('/api/auth/register', json={
            "email": "New.Parent@Example.com",
            "password": PASSWORD,
            "firstName": "Nia",
            "role": "admin",
        })

        assert resp.status_code == 201
        user = db.session.query(User).filter_by(email="new.parent@example.com").one()
        assert user.role == "parent"

    def test_duplicate_email(self, client, parent_user):
        resp = client.post('/api/auth/register', json={"email": "parent@example.com", "password": PASSWORD})
        assert resp.status_code == 409

    def test_weak_password(self, client, db_session):
        resp = client.post('/api/auth/register', json={"email": "a@example.com", "password": "password"})
        assert resp.status_code == 400


class TestAccessControl:
    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/auth/me"),
        ("GET", "/api/admin/bookings"),
        ("POST", "/api/admin/payments/record"),
        ("GET", "/api/admin/block-bookings"),
        ("GET", "/api/admin/coupons"),
        ("GET", "/api/admin/payment-plans"),
        ("GET", "/api/admin/sessions"),
        ("GET", "/api/admin/payment-links"),
        ("GET", "/api/admin/webhook-events"),
        ("GET", "/api/admin/dashboard/stats"),
        ("GET", "/api/portal/bookings"),
    ])
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["error"] == "Authentication required"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/admin/bookings"),
        ("POST", "/api/admin/payments/record"),
        ("POST", "/api/admin/block-bookings"),
        ("POST", "/api/admin/coupons"),
        ("GET", "/api/admin/payment-links"),
        ("GET", "/api/admin/webhook-events"),
        ("GET", "/api/admin/dashboard/stats"),
    ])
    def test_parent_denied_admin_routes(self, client, parent_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=parent_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get('/api/auth/me', headers=auth_headers("nope"))
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_coach_can_read_sessions(self, client, db_session):
        coach = auth_service.create_user("coach@ttnts.local", PASSWORD, role="coach")
        token = _login(client, coach.email).get_json()["data"]["token"]

        assert client.get('/api/admin/sessions', headers=auth_headers(token)).status_code == 200
        assert client.post('/api/admin/sessions', json={}, headers=auth_headers(token)).status_code == 403


class TestHealth:
    def test_health_is_public(self, client, db_session):
        resp = client.get('/health')
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
