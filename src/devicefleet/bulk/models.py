"""Data models for bulk device lifecycle operations."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True)
class IndexRange:
    """Half-open range of device indices ``[start, end)``."""

    start: int
    end: int

    def __post_init__(self):
        """Validate range bounds."""
        if self.start < 0:
            raise ValueError(f"Range start must be non-negative, got {self.start}")
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is greater than end {self.end}")

    @property
    def count(self) -> int:
        """Number of indices in the range."""
        return self.end - self.start

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end))

    def __len__(self) -> int:
        return self.count


@dataclass(frozen=True)
class DeviceRecord:
    """A device that was created and had its access token assigned."""

    device_id: str
    token: str
    index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"device_id": self.device_id, "token": self.token, "index": self.index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceRecord":
        """Create from dictionary."""
        return cls(device_id=data["device_id"], token=data["token"], index=data.get("index"))


@dataclass
class PhaseResult:
    """Outcome of one create-all or remove-all phase.

    A phase always completes; partial failure is reported through the counts
    and the collected failures rather than raised.
    """

    operation: str  # 'create' or 'remove'
    succeeded: int
    attempted: int
    duration: float = 0.0
    failures: List[Exception] = field(default_factory=list)

    @property
    def failed(self) -> int:
        """Number of operations that did not succeed."""
        return self.attempted - self.succeeded

    @property
    def success_rate(self) -> float:
        """Success rate as a percentage."""
        if self.attempted == 0:
            return 0.0
        return (self.succeeded / self.attempted) * 100

    @property
    def summary(self) -> str:
        """Short ``succeeded/attempted`` form used in log lines."""
        return f"{self.succeeded}/{self.attempted}"

    def __iter__(self) -> Iterator[int]:
        # Allows ``created, attempted = orchestrator.create_all(...)``
        return iter((self.succeeded, self.attempted))
