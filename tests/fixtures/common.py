"""Shared fixtures for devicefleet tests."""

import time

import pytest
import yaml

from devicefleet.utils import config as config_module


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point Config at a temporary directory with fast bulk timings.

    Returns the path of the YAML file so tests can add their own settings.
    """
    config_dir = tmp_path / ".devicefleet"
    config_file = config_dir / "config.yaml"
    config_dir.mkdir()
    with open(config_file, "w", encoding="utf-8") as f:
        yaml.dump(
            {
                "bulk": {
                    "workers": 4,
                    "progress_interval": 0.05,
                    "refresh_interval": 60.0,
                    "settle_interval": 0.0,
                }
            },
            f,
        )

    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE_YAML", config_file)
    for var in (
        "DEVICEFLEET_REST_URL",
        "DEVICEFLEET_REST_USERNAME",
        "DEVICEFLEET_REST_PASSWORD",
        "DEVICEFLEET_REST_TIMEOUT",
        "DEVICEFLEET_REST_VERIFY_SSL",
        "DEVICEFLEET_BULK_WORKERS",
        "DEVICEFLEET_DEVICE_START_IDX",
        "DEVICEFLEET_DEVICE_END_IDX",
        "DEVICEFLEET_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return config_file


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
