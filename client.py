"""HTTP client for the CareFlow API.

Sends the bearer token on every request. On a 401 it refreshes the access
token through the refresh cookie and retries the request once. Concurrent
401s share a single refresh. If the refresh fails the session is dropped and
``SessionExpired`` is raised.
"""

import logging
import threading
from typing import Any, Callable, Optional

import httpx

from config import API_BASE_URL, API_TIMEOUT

logger = logging.getLogger(__name__)

# Endpoints whose 401 means bad credentials, not an expired session
NO_REFRESH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh-token", "/auth/logout")


class ApiError(Exception):
    """Failed API call with a message suitable for display"""

    def __init__(self, user_message: str, status_code: Optional[int] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(user_message)
        self.user_message = user_message
        self.status_code = status_code
        self.original_error = original_error


class SessionExpired(ApiError):
    pass


def error_message(response: httpx.Response) -> str:
    """Pull a readable message out of an error response body"""
    try:
        data = response.json()
    except ValueError:
        return "An error occurred"
    if isinstance(data, dict):
        message = data.get("detail") or data.get("message") or data.get("error")
        if isinstance(message, list):
            # FastAPI validation errors
            return "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                             for item in message)
        if message:
            return str(message)
    return "An error occurred"


class CareFlowClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        http: Optional[httpx.Client] = None,
        timeout: float = API_TIMEOUT,
        on_logout: Optional[Callable[[], Any]] = None,
        on_token_refreshed: Optional[Callable[[str], Any]] = None,
    ):
        self._owns_http = http is None
        self._http = http if http is not None else httpx.Client(base_url=base_url, timeout=timeout)
        self.on_logout = on_logout
        self.on_token_refreshed = on_token_refreshed
        self.access_token: Optional[str] = None
        self._refresh_lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        if self._owns_http:
            self._http.close()

    # Transport

    def _send(self, method: str, url: str, token: Optional[str], **kwargs) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return self._http.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise ApiError(str(e) or "Network error occurred", original_error=e) from e

    def refresh(self, stale_token: Optional[str] = None) -> str:
        """Obtain a new access token, sharing the work with concurrent callers.

        A caller whose request went out with ``stale_token`` skips the refresh
        if another caller has already replaced that token.
        """
        with self._refresh_lock:
            if self.access_token is not None and self.access_token != stale_token:
                return self.access_token
            try:
                response = self._http.post("/auth/refresh-token")
            except httpx.RequestError as e:
                self._expire_session(e)
            if response.status_code != 200:
                self._expire_session(ApiError(error_message(response), response.status_code))

            try:
                self.access_token = response.json()["access_token"]
            except (ValueError, KeyError, TypeError) as e:
                self._expire_session(e)
            logger.debug("Access token refreshed")
            if self.on_token_refreshed:
                self.on_token_refreshed(self.access_token)
            return self.access_token

    def _expire_session(self, cause: Exception):
        self.access_token = None
        logger.info("Token refresh failed, logging out: %s", cause)
        if self.on_logout:
            self.on_logout()
        raise SessionExpired("Session expired. Please login again.", 401, cause) from cause

    def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, refreshing and retrying once on 401"""
        token = self.access_token
        response = self._send(method, url, token, **kwargs)
        if response.status_code == 401 and not url.startswith(NO_REFRESH_PATHS):
            self.refresh(stale_token=token)
            response = self._send(method, url, self.access_token, **kwargs)

        if response.is_error:
            raise ApiError(
                error_message(response),
                response.status_code,
                httpx.HTTPStatusError(f"HTTP {response.status_code}", request=response.request, response=response),
            )
        return response

    @staticmethod
    def _body(response: httpx.Response):
        if response.status_code == 204 or not response.content:
            return None
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.content

    def get(self, url: str, **kwargs):
        return self._body(self.request("GET", url, **kwargs))

    def post(self, url: str, json: Any = None, **kwargs):
        return self._body(self.request("POST", url, json=json, **kwargs))

    def put(self, url: str, json: Any = None, **kwargs):
        return self._body(self.request("PUT", url, json=json, **kwargs))

    def patch(self, url: str, json: Any = None, **kwargs):
        return self._body(self.request("PATCH", url, json=json, **kwargs))

    def delete(self, url: str, **kwargs):
        return self._body(self.request("DELETE", url, **kwargs))

    # Session

    def login(self, username: str, password: str) -> dict:
        data = self.post("/auth/login", json={"username": username, "password": password})
        self.access_token = data["access_token"]
        return data

    def register(self, username: str, password: str, first_name: str, last_name: str,
                 email: Optional[str] = None) -> dict:
        data = self.post("/auth/register", json={
            "username": username,
            "password": password,
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
        })
        self.access_token = data["access_token"]
        return data

    def logout(self):
        try:
            self.post("/auth/logout")
        finally:
            self.access_token = None

    def me(self) -> dict:
        return self.get("/auth/me")
