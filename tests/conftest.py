"""Shared pytest configuration for devicefleet tests."""

from tests.fixtures import isolated_config, wait_until  # noqa: F401
