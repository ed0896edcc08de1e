"""
Tests for auth.py and routers/auth_router.py: tokens, login, refresh and logout.
"""

from datetime import timedelta

from jose import jwt

import auth
import config
from auth import create_access_token, create_refresh_token, decode_token, InvalidToken


def _refresh_cookie(client):
    return client.cookies.get(config.REFRESH_COOKIE_NAME)


class TestTokens:
    def test_access_token_claims(self, user_ids):
        user = {"id": user_ids["doctor1"], "role": "doctor", "token_version": 0}
        payload = decode_token(create_access_token(user), "access")
        assert payload["sub"] == str(user_ids["doctor1"])
        assert payload["role"] == "doctor"

    def test_refresh_token_not_accepted_as_access(self, user_ids):
        user = {"id": user_ids["doctor1"], "role": "doctor", "token_version": 0}
        token = create_refresh_token(user)
        try:
            decode_token(token, "access")
        except InvalidToken:
            pass
        else:
            raise AssertionError("refresh token decoded as access token")

    def test_expired_token_rejected(self, client, user_ids):
        token = auth._encode({"sub": str(user_ids["admin"]), "type": "access"}, timedelta(seconds=-10))
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_wrong_signature_rejected(self, client, user_ids):
        token = jwt.encode({"sub": str(user_ids["admin"]), "type": "access"}, "other-key", algorithm="HS256")
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestLogin:
    def test_login_sets_refresh_cookie(self, client):
        resp = client.post("/auth/login", json={"username": "doctor1", "password": "doctor123"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == config.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert _refresh_cookie(client)

    def test_wrong_password(self, client):
        resp = client.post("/auth/login", json={"username": "doctor1", "password": "nope"})
        assert resp.status_code == 401

    def test_unknown_user(self, client):
        resp = client.post("/auth/login", json={"username": "ghost", "password": "x"})
        assert resp.status_code == 401

    def test_me_returns_role_permissions(self, client, login):
        resp = client.get("/auth/me", headers=login("pharmacist1"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "pharmacist"
        names = {p["name"] for p in data["permissions"]}
        assert names == {
            "view_pharmacies", "view_assigned_prescriptions", "update_prescription_status",
            "dispense_prescriptions", "view_all_prescriptions",
        }
        assert data["disabled_permissions"] == []


class TestRegister:
    def test_register_creates_patient(self, client):
        resp = client.post("/auth/register", json={
            "username": "newpatient", "password": "secret1",
            "first_name": "Ada", "last_name": "Lovelace",
        })
        assert resp.status_code == 201
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        me = client.get("/auth/me", headers=headers).json()
        assert me["role"] == "patient"
        assert client.get(f"/patients/{me['id']}", headers=headers).status_code == 200

    def test_duplicate_username(self, client):
        resp = client.post("/auth/register", json={
            "username": "patient1", "password": "secret1",
            "first_name": "A", "last_name": "B",
        })
        assert resp.status_code == 409


class TestMiddleware:
    def test_missing_header(self, client):
        resp = client.get("/patients/")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing or invalid authorization header"

    def test_malformed_header(self, client):
        resp = client.get("/patients/", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_garbage_token(self, client):
        resp = client.get("/patients/", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_public_paths(self, client):
        assert client.get("/").status_code == 200
        assert client.get("/openapi.json").status_code == 200


class TestRefresh:
    def test_refresh_issues_new_access_token(self, client):
        client.post("/auth/login", json={"username": "nurse1", "password": "nurse123"})
        resp = client.post("/auth/refresh-token")
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        assert client.get("/auth/me", headers=headers).json()["username"] == "nurse1"

    def test_refresh_without_cookie(self, client):
        assert client.post("/auth/refresh-token").status_code == 401

    def test_logout_revokes_refresh_token(self, client):
        client.post("/auth/login", json={"username": "nurse1", "password": "nurse123"})
        old_cookie = _refresh_cookie(client)
        assert client.post("/auth/logout").status_code == 204
        assert not _refresh_cookie(client)

        client.cookies.set(config.REFRESH_COOKIE_NAME, old_cookie, path=config.REFRESH_COOKIE_PATH)
        assert client.post("/auth/refresh-token").status_code == 401

    def test_access_token_rejected_as_refresh(self, client, login):
        headers = login("nurse1")
        access = headers["Authorization"].split(" ", 1)[1]
        client.cookies.clear()
        client.cookies.set(config.REFRESH_COOKIE_NAME, access, path=config.REFRESH_COOKIE_PATH)
        assert client.post("/auth/refresh-token").status_code == 401


class TestSuspension:
    def test_suspended_user_locked_out(self, client, login, user_ids):
        nurse_headers = login("nurse1")
        admin_headers = login("admin")
        resp = client.patch(f"/users/{user_ids['nurse1']}/status", json={"is_active": False},
                            headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        # Existing access token no longer resolves to an active user
        assert client.get("/auth/me", headers=nurse_headers).status_code == 401
        resp = client.post("/auth/login", json={"username": "nurse1", "password": "nurse123"})
        assert resp.status_code == 403
