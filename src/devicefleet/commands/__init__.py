"""Command modules for devicefleet."""

from . import config, devices

__all__ = [
    "config",
    "devices",
]
