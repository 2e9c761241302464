"""
Session endpoint tests: registration, login and lockout, the reserved admin,
profile/password changes and the reset-token flow.

Run: pytest backend/test_auth_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from backend.config import ADMIN_EMAIL, ADMIN_PASSWORD, IS_DEV, MAX_LOGIN_ATTEMPTS
from backend.main import app
from backend.repositories import UserRepository

client = TestClient(app)


def register_payload(**overrides):
    payload = {
        "full_name": "John Doe",
        "email": "john@greenearthngo.org",
        "password": "password123",
        "confirm_password": "password123",
        "organization": "Green Earth NGO",
        "phone": "9876543210",
    }
    payload.update(overrides)
    return payload


def login(email, password, role="field"):
    return client.post("/api/auth/login", json={"email": email, "password": password, "role": role})


class TestRegister:
    def test_register_creates_field_user(self, db):
        resp = client.post("/api/auth/register", json=register_payload())
        assert resp.status_code == 201
        body = resp.json()
        assert body["token"]
        assert body["user"]["role"] == "field"
        assert body["user"]["email"] == "john@greenearthngo.org"
        assert "password_hash" not in body["user"]

        stored = UserRepository(db).find_active_by_email("john@greenearthngo.org")
        assert stored is not None
        assert stored.password_hash != "password123"

    def test_email_normalized_and_unique(self):
        assert client.post("/api/auth/register", json=register_payload()).status_code == 201
        resp = client.post("/api/auth/register", json=register_payload(email="  JOHN@GreenEarthNGO.org "))
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    def test_reserved_admin_email_cannot_register(self):
        resp = client.post("/api/auth/register", json=register_payload(email=ADMIN_EMAIL))
        assert resp.status_code == 409

    def test_password_mismatch(self):
        resp = client.post("/api/auth/register", json=register_payload(confirm_password="different"))
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "validation"
        assert any(e["field"] == "confirm_password" for e in body["errors"])

    def test_markup_stripped_from_names(self):
        resp = client.post("/api/auth/register", json=register_payload(full_name="<b>John</b> Doe"))
        assert resp.status_code == 201
        assert resp.json()["user"]["full_name"] == "John Doe"

    def test_bad_phone(self):
        resp = client.post("/api/auth/register", json=register_payload(phone="12345"))
        assert resp.status_code == 400


class TestLogin:
    def test_login_success_resets_attempts(self, db, make_user):
        user = make_user(email="sarah@blueoceantrust.org", login_attempts=2)
        resp = login("sarah@blueoceantrust.org", "password123")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user.id

        stored = UserRepository(db).get(user.id)
        assert stored.login_attempts == 0
        assert stored.last_login is not None

    def test_unknown_email(self):
        resp = login("nobody@example.org", "password123")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthenticated"

    def test_wrong_password_counts_attempts(self, db, make_user):
        user = make_user(email="ravi@ecocare.org")
        assert login("ravi@ecocare.org", "wrong").status_code == 401
        assert UserRepository(db).get(user.id).login_attempts == 1

    def test_lockout_after_max_attempts(self, db, make_user):
        user = make_user(email="priya@oceancare.org")
        for _ in range(MAX_LOGIN_ATTEMPTS):
            assert login("priya@oceancare.org", "wrong").status_code == 401

        assert UserRepository(db).get(user.id).lock_until is not None

        # Even the right password is refused while locked
        resp = login("priya@oceancare.org", "password123")
        assert resp.status_code == 423
        assert resp.json()["error"] == "account_locked"

    def test_deactivated_user(self, make_user):
        make_user(email="gone@example.org", status="deactivated")
        resp = login("gone@example.org", "password123")
        assert resp.status_code == 401
        assert resp.json()["error"] == "account_deactivated"

    def test_reserved_admin_login(self, db):
        resp = login(ADMIN_EMAIL, ADMIN_PASSWORD, role="admin")
        assert resp.status_code == 200
        token = resp.json()["token"]
        assert resp.json()["user"]["role"] == "admin"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["user"]["id"] == "admin"

        # Never written to the users collection
        assert UserRepository(db).count({}) == 0

    def test_reserved_admin_wrong_password(self):
        assert login(ADMIN_EMAIL, "nope", role="admin").status_code == 401

    def test_admin_credentials_need_admin_role(self):
        assert login(ADMIN_EMAIL, ADMIN_PASSWORD, role="field").status_code == 401


class TestSession:
    def test_me_requires_token(self):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthenticated"

    def test_invalid_token(self):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_token"

    def test_cookie_token_accepted(self, make_user):
        user = make_user()
        token = login(user.email, "password123").json()["token"]
        resp = TestClient(app, cookies={"token": token}).get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == user.id

    def test_verify_and_logout(self, make_user, headers_for):
        user = make_user()
        headers = headers_for(user)
        verify = client.get("/api/auth/verify", headers=headers)
        assert verify.status_code == 200
        assert verify.json()["user"]["id"] == user.id
        assert client.post("/api/auth/logout", headers=headers).status_code == 200

    def test_profile_update(self, make_user, headers_for):
        user = make_user()
        resp = client.put("/api/auth/profile", headers=headers_for(user),
                          json={"organization": "Blue Ocean Trust", "location": "Mumbai"})
        assert resp.status_code == 200
        assert resp.json()["user"]["organization"] == "Blue Ocean Trust"
        assert resp.json()["user"]["role"] == "field"

    def test_admin_profile_is_fixed(self, headers_for):
        resp = client.put("/api/auth/profile", headers=headers_for("admin"), json={"full_name": "Someone"})
        assert resp.status_code == 403

    def test_change_password(self, make_user, headers_for):
        user = make_user()
        headers = headers_for(user)
        wrong = client.put("/api/auth/password", headers=headers,
                           json={"current_password": "nope", "new_password": "newpass456"})
        assert wrong.status_code == 400

        ok = client.put("/api/auth/password", headers=headers,
                        json={"current_password": "password123", "new_password": "newpass456"})
        assert ok.status_code == 200
        assert login(user.email, "newpass456").status_code == 200
        assert login(user.email, "password123").status_code == 401


class TestPasswordReset:
    def test_unknown_email_gets_generic_answer(self):
        resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.org"})
        assert resp.status_code == 200
        assert "reset_token" not in resp.json()

    @pytest.mark.skipif(not IS_DEV, reason="Reset token is only echoed in DEV")
    def test_reset_flow(self, db, make_user):
        user = make_user(email="reset@example.org", login_attempts=3)
        resp = client.post("/api/auth/forgot-password", json={"email": "reset@example.org"})
        token = resp.json()["reset_token"]

        # Only the hash is stored
        assert UserRepository(db).get(user.id).reset_password_token != token

        done = client.put(f"/api/auth/reset-password/{token}", json={"password": "freshpass1"})
        assert done.status_code == 200
        assert login("reset@example.org", "freshpass1").status_code == 200

        # Tokens are single use
        again = client.put(f"/api/auth/reset-password/{token}", json={"password": "another1"})
        assert again.status_code == 400

    def test_bad_reset_token(self):
        resp = client.put("/api/auth/reset-password/bogus", json={"password": "freshpass1"})
        assert resp.status_code == 400
