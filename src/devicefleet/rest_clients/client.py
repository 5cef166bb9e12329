"""
ThingsBoard-style device management REST client.

Provides login and the create / set-credentials / delete device calls used by
the bulk lifecycle driver.

Usage:
    from devicefleet.rest_clients import DeviceRestClient

    client = DeviceRestClient("http://localhost:8080", "tenant@thingsboard.org", "tenant")
    client.login()
    device = client.create_device("Device 00000000000000000000")
    client.update_device_credentials(device.id, "00000000000000000000")
    client.delete_device(device.id)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import ConnectionError, RequestException, Timeout

logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Authorization"


class RestClientError(Exception):
    """Base exception for REST client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RestClientError):
    """Login failed or the server rejected the current token."""

    pass


class ApiConnectionError(RestClientError):
    """Cannot reach the management server."""

    pass


@dataclass(frozen=True)
class AuthToken:
    """Immutable snapshot of the credentials returned by a login."""

    token: str
    refresh_token: Optional[str] = None
    issued_at: float = field(default_factory=time.time)

    @property
    def header_value(self) -> str:
        return f"Bearer {self.token}"


@dataclass
class Device:
    """Device entity as returned by the management API."""

    id: str
    name: str
    type: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Device":
        """Build from an API response body.

        The API nests entity IDs as ``{"id": {"entityType": ..., "id": ...}}``.
        """
        device_id = data.get("id")
        if isinstance(device_id, dict):
            device_id = device_id.get("id")
        if not device_id:
            raise RestClientError(f"Device response has no id: {data!r}")
        return cls(id=device_id, name=data.get("name", ""), type=data.get("type", ""), raw=data)


class DeviceRestClient:
    """
    REST client holding one authenticated session.

    The session token is stored as an immutable AuthToken. login() replaces
    the reference; every request reads it once, so a refresh running on
    another thread never tears a header that is being built.

    Attributes:
        base_url: Server base URL without trailing slash
        username: Login username
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 30,
        verify_ssl: bool = True,
        max_connections: int = 100,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Server base URL (e.g. http://localhost:8080)
            username: Login username
            password: Login password
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
            max_connections: Connection pool size; match the worker count
            session: Preconfigured requests session (mainly for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.username = username
        self._password = password
        self.timeout = timeout

        self.session = session or requests.Session()
        if session is None:
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max_connections)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)
        self.session.verify = verify_ssl
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

        self._auth: Optional[AuthToken] = None
        self._login_lock = threading.Lock()

    @property
    def auth_token(self) -> Optional[AuthToken]:
        """Current token snapshot, or None before the first login."""
        return self._auth

    @property
    def authenticated(self) -> bool:
        return self._auth is not None

    def login(self) -> AuthToken:
        """
        Authenticate and replace the session token.

        Safe to call repeatedly and from several threads.

        Returns:
            The new token snapshot

        Raises:
            AuthenticationError: Credentials rejected or no token returned
            ApiConnectionError: Server unreachable
        """
        with self._login_lock:
            data = self._request(
                "POST",
                "/api/auth/login",
                data={"username": self.username, "password": self._password},
                authenticated=False,
            )
            token = (data or {}).get("token")
            if not token:
                raise AuthenticationError("Login response did not contain a token")

            self._auth = AuthToken(token=token, refresh_token=data.get("refreshToken"))
            logger.debug(f"Logged in to {self.base_url} as {self.username}")
            return self._auth

    def create_device(self, name: str, device_type: str = "default") -> Device:
        """Create a device and return it."""
        data = self._request("POST", "/api/device", data={"name": name, "type": device_type})
        return Device.from_api(data or {})

    def get_device_credentials(self, device_id: str) -> Dict[str, Any]:
        """Fetch the credentials entity of a device."""
        return self._request("GET", f"/api/device/{device_id}/credentials") or {}

    def update_device_credentials(self, device_id: str, token: str) -> Dict[str, Any]:
        """Set the device's access token.

        Args:
            device_id: Device ID
            token: Access token to assign

        Returns:
            The saved credentials entity
        """
        credentials = self.get_device_credentials(device_id)
        credentials["credentialsType"] = "ACCESS_TOKEN"
        credentials["credentialsId"] = token
        return self._request("POST", "/api/device/credentials", data=credentials) or {}

    def delete_device(self, device_id: str) -> None:
        """Delete a device by ID."""
        self._request("DELETE", f"/api/device/{device_id}")

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """
        Make an API request.

        Args:
            method: HTTP method
            endpoint: Path below the base URL, starting with '/'
            data: JSON body
            authenticated: Send the current session token

        Returns:
            Parsed JSON body, or None for empty responses

        Raises:
            AuthenticationError: 401 response, or no login yet
            ApiConnectionError: Connection error or timeout
            RestClientError: Any other error response
        """
        headers = {}
        if authenticated:
            auth = self._auth
            if auth is None:
                raise AuthenticationError("Not logged in - call login() first")
            headers[AUTH_HEADER] = auth.header_value

        url = f"{self.base_url}{endpoint}"
        try:
            logger.debug(f"{method} {endpoint}")
            response = self.session.request(
                method=method,
                url=url,
                json=data,
                headers=headers,
                timeout=self.timeout,
            )
        except (ConnectionError, Timeout) as e:
            raise ApiConnectionError(f"Cannot reach {self.base_url}: {e}") from e
        except RequestException as e:
            raise RestClientError(f"Request {method} {endpoint} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(
                f"{method} {endpoint} was rejected as unauthorized", status_code=401
            )

        if response.status_code >= 400:
            error_msg = f"API error {response.status_code}"
            try:
                error_data = response.json()
                if isinstance(error_data, dict) and "message" in error_data:
                    error_msg = f"{error_msg}: {error_data['message']}"
            except ValueError:
                if response.text:
                    error_msg = f"{error_msg}: {response.text}"
            raise RestClientError(f"{method} {endpoint} failed - {error_msg}", response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None
