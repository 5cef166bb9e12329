"""REST API clients for devicefleet."""

from .client import (
    ApiConnectionError,
    AuthenticationError,
    AuthToken,
    Device,
    DeviceRestClient,
    RestClientError,
)

__all__ = [
    "ApiConnectionError",
    "AuthenticationError",
    "AuthToken",
    "Device",
    "DeviceRestClient",
    "RestClientError",
]
