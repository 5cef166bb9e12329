"""Thread-safe shared state for bulk phases.

Creation and removal tasks run on many worker threads at once. The containers
here keep their own locks so callers never synchronize externally.
"""

import json
import threading
from pathlib import Path
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from .models import DeviceRecord

T = TypeVar("T")


class ProgressCounter:
    """Monotonic counter incremented by worker threads and sampled by the reporter."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        """Increment the counter and return the new value."""
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        """Current counter value."""
        with self._lock:
            return self._value


class AppendOnlyLog(Generic[T]):
    """Ordered collection that only supports appends and snapshot reads.

    With max_items set, items past the limit are counted but not stored.
    """

    def __init__(self, max_items: Optional[int] = None):
        self._items: List[T] = []
        self._dropped = 0
        self.max_items = max_items
        self._lock = threading.Lock()

    def add(self, item: T) -> bool:
        """Append an item. Safe under concurrent writers.

        Returns:
            True if stored, False if the log was full
        """
        with self._lock:
            if self.max_items is not None and len(self._items) >= self.max_items:
                self._dropped += 1
                return False
            self._items.append(item)
            return True

    @property
    def dropped(self) -> int:
        """Number of items rejected because the log was full."""
        with self._lock:
            return self._dropped

    def snapshot(self) -> Tuple[T, ...]:
        """Return an immutable copy of the items in insertion order."""
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())


class DeviceRegistry(AppendOnlyLog[DeviceRecord]):
    """Devices created during the run, in completion order.

    Removal sweeps a snapshot of the registry and leaves it intact, so the
    registry always describes everything the run created.
    """

    def device_ids(self) -> List[str]:
        """IDs of all registered devices."""
        return [record.device_id for record in self.snapshot()]

    def tokens(self) -> List[str]:
        """Access tokens of all registered devices."""
        return [record.token for record in self.snapshot()]

    def save(self, path: Union[str, Path]) -> Path:
        """Write the registry to a JSON file.

        Args:
            path: Destination file

        Returns:
            Path the registry was written to
        """
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {"devices": [record.to_dict() for record in self.snapshot()]}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "DeviceRegistry":
        """Load a registry previously written by save().

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a valid registry document
        """
        path = Path(path).expanduser()
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Registry file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("devices"), list):
            raise ValueError(f"Registry file {path} has no 'devices' list")

        registry = cls()
        for entry in data["devices"]:
            try:
                registry.add(DeviceRecord.from_dict(entry))
            except (KeyError, TypeError) as e:
                raise ValueError(f"Invalid device entry in {path}: {entry!r}") from e
        return registry
