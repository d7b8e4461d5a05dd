"""OAuth refresh-token flow and a thin authenticated client for Google APIs."""
import logging
import threading
from datetime import datetime, timedelta

import httpx

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleApiError(Exception):
    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class GoogleTokenSource:
    """Hands out a valid access token, refreshing it 5 minutes before expiry.

    Shared by the side-effect worker threads, hence the lock.
    """

    def __init__(self, client_id, client_secret, refresh_token, timeout=15, transport=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.timeout = timeout
        self.transport = transport
        self._access_token = None
        self._expires_at = datetime.min
        self._lock = threading.Lock()

    def token(self) -> str:
        with self._lock:
            if self._access_token and self._expires_at > datetime.now() + timedelta(minutes=5):
                return self._access_token
            return self._refresh()

    def _refresh(self) -> str:
        logger.info("refreshing Google access token")
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        if response.status_code != 200:
            raise GoogleApiError(f"Token refresh failed: {response.text[:200]}", response.status_code)

        payload = response.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise GoogleApiError("No access token in refresh response")

        self._access_token = access_token
        self._expires_at = datetime.now() + timedelta(seconds=int(payload.get("expires_in", 3600)))
        return access_token


class GoogleApi:
    """Base for the REST providers: bearer auth plus status checking."""

    def __init__(self, tokens: GoogleTokenSource, timeout=15, transport=None):
        self.tokens = tokens
        self.timeout = timeout
        self.transport = transport

    def request(self, method: str, url: str, allow_status=(), **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.tokens.token()}"
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.request(method, url, headers=headers, **kwargs)
        if response.status_code >= 400 and response.status_code not in allow_status:
            raise GoogleApiError(
                f"{method} {url} -> {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        return response


def rfc3339(value: datetime) -> str:
    """Naive UTC datetime -> RFC 3339 string."""
    return value.replace(microsecond=0).isoformat() + "Z"
