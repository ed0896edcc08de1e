"""
Tests for client.py: refresh-and-retry and error mapping.
"""

import base64
import threading
from datetime import timedelta

import httpx
import pytest

import auth
from client import ApiError, CareFlowClient, SessionExpired, error_message


@pytest.fixture
def api(client):
    """CareFlowClient talking to the app through the TestClient transport."""
    events = {"logout": 0, "refreshed": []}
    api = CareFlowClient(
        http=client,
        on_logout=lambda: events.__setitem__("logout", events["logout"] + 1),
        on_token_refreshed=events["refreshed"].append,
    )
    api.events = events
    return api


def _expired_token(user_id):
    return auth._encode({"sub": str(user_id), "role": "nurse", "type": "access"}, timedelta(seconds=-10))


def _mock_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://api.test")


class TestSession:
    def test_login_and_me(self, api):
        data = api.login("nurse1", "nurse123")
        assert api.access_token == data["access_token"]
        assert api.me()["username"] == "nurse1"

    def test_register(self, api):
        api.register("newpatient", "secret1", "Ada", "Lovelace")
        assert api.me()["role"] == "patient"

    def test_logout_clears_token(self, api):
        api.login("nurse1", "nurse123")
        api.logout()
        assert api.access_token is None
        with pytest.raises(SessionExpired):
            api.refresh()


class TestRefreshAndRetry:
    def test_expired_token_is_refreshed(self, api, user_ids):
        api.login("nurse1", "nurse123")
        api.access_token = _expired_token(user_ids["nurse1"])

        assert api.me()["username"] == "nurse1"
        assert api.events["refreshed"] == [api.access_token]
        assert api.events["logout"] == 0

    def test_failed_refresh_logs_out(self, api, client, user_ids):
        api.login("nurse1", "nurse123")
        client.cookies.clear()
        api.access_token = _expired_token(user_ids["nurse1"])

        with pytest.raises(SessionExpired) as exc:
            api.me()
        assert exc.value.status_code == 401
        assert exc.value.user_message == "Session expired. Please login again."
        assert api.access_token is None
        assert api.events["logout"] == 1

    def test_suspension_ends_session(self, api, client, login, user_ids):
        admin_headers = login("admin")
        api.login("nurse1", "nurse123")
        client.patch(f"/users/{user_ids['nurse1']}/status", json={"is_active": False}, headers=admin_headers)
        with pytest.raises(SessionExpired):
            api.me()

    def test_bad_login_does_not_refresh(self, api):
        with pytest.raises(ApiError) as exc:
            api.login("nurse1", "wrong")
        assert not isinstance(exc.value, SessionExpired)
        assert exc.value.status_code == 401
        assert exc.value.user_message == "Incorrect username or password"
        assert api.events["logout"] == 0

    def test_stale_token_skips_refresh(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(500)

        api = CareFlowClient(http=_mock_client(handler))
        api.access_token = "fresh"
        assert api.refresh(stale_token="old") == "fresh"
        assert calls == []

    def test_concurrent_401s_share_one_refresh(self):
        refreshes = []

        def handler(request):
            if request.url.path == "/auth/refresh-token":
                refreshes.append(1)
                return httpx.Response(200, json={"access_token": "new", "token_type": "bearer"})
            if request.headers.get("Authorization") == "Bearer new":
                return httpx.Response(200, json={"ok": True})
            return httpx.Response(401, json={"detail": "Invalid token"})

        api = CareFlowClient(http=_mock_client(handler))
        api.access_token = "old"
        results = []
        threads = [threading.Thread(target=lambda: results.append(api.get("/patients/"))) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [{"ok": True}] * 5
        assert len(refreshes) == 1

    def test_malformed_refresh_response_logs_out(self):
        logouts = []

        def handler(request):
            if request.url.path == "/auth/refresh-token":
                return httpx.Response(200, json={"unexpected": 1})
            return httpx.Response(401, json={"detail": "Invalid token"})

        api = CareFlowClient(http=_mock_client(handler), on_logout=lambda: logouts.append(1))
        api.access_token = "old"
        with pytest.raises(SessionExpired):
            api.get("/patients/")
        assert api.access_token is None
        assert logouts == [1]


class TestErrors:
    def test_forbidden_message(self, api):
        api.login("nurse1", "nurse123")
        with pytest.raises(ApiError) as exc:
            api.get("/users/")
        assert exc.value.status_code == 403
        assert exc.value.user_message == "Permission required: view_all_users"
        assert isinstance(exc.value.original_error, httpx.HTTPStatusError)

    def test_not_found_message(self, api):
        api.login("admin", "admin123")
        with pytest.raises(ApiError) as exc:
            api.get("/users/9999")
        assert exc.value.user_message == "User not found"

    def test_validation_errors_joined(self, api):
        api.login("admin", "admin123")
        with pytest.raises(ApiError) as exc:
            api.post("/users/", json={"username": "x"})
        assert exc.value.status_code == 422
        assert "Field required" in exc.value.user_message

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = CareFlowClient(http=_mock_client(handler))
        with pytest.raises(ApiError) as exc:
            api.get("/")
        assert exc.value.status_code is None
        assert exc.value.user_message == "connection refused"
        assert isinstance(exc.value.original_error, httpx.ConnectError)

    def test_error_message_fallbacks(self):
        assert error_message(httpx.Response(500, text="oops")) == "An error occurred"
        assert error_message(httpx.Response(400, json={"message": "Bad"})) == "Bad"
        assert error_message(httpx.Response(400, json={"error": "Worse"})) == "Worse"
        assert error_message(httpx.Response(400, json={})) == "An error occurred"


class TestBodies:
    def test_binary_download(self, api, user_ids):
        api.login("patient1", "patient123")
        document = api.post("/documents/", json={
            "title": "Scan", "category": "imaging", "patient_id": user_ids["patient1"],
            "file_name": "scan.png", "mime_type": "image/png",
            "content": base64.b64encode(b"\x89PNG").decode(),
        })
        assert api.get(f"/documents/{document['id']}/download") == b"\x89PNG"

    def test_no_content(self, api, user_ids):
        api.login("admin", "admin123")
        consultation = api.post("/consultations/", json={
            "patient_id": user_ids["patient1"], "consultation_date": "2026-11-02",
            "consultation_type": "routine_checkup", "chief_complaint": "Annual",
        })
        assert api.delete(f"/consultations/{consultation['id']}") is None
