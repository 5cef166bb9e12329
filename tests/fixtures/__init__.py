"""Test fixtures package for devicefleet.

- device_api: In-memory stand-in for the management API with failure injection
- common: Shared fixtures (isolated configuration, polling helper)

Usage:
    from tests.fixtures.device_api import FakeDeviceApi
"""

from .common import isolated_config, wait_until
from .device_api import FakeDeviceApi, device_id_for

__all__ = [
    "FakeDeviceApi",
    "device_id_for",
    "isolated_config",
    "wait_until",
]
