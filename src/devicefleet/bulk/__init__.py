"""Bulk device lifecycle components.

This package contains the concurrent orchestration layer used to create and
remove a contiguous range of devices: bounded-parallel dispatch, countdown
barrier, periodic progress reporting and session refresh.
"""

from .barrier import CompletionBarrier
from .batch import BoundedDispatcher, DeviceLifecycleOrchestrator
from .exceptions import AuthRefreshFailure, CreationFailure, DeletionFailure, FleetError
from .models import DeviceRecord, IndexRange, PhaseResult
from .registry import AppendOnlyLog, DeviceRegistry, ProgressCounter
from .reporting import ReportGenerator
from .scheduler import PeriodicTask, ProgressReporter, SessionRefresher
from .tokens import TOKEN_WIDTH, decode_token, device_name, encode_token

__all__ = [
    "AppendOnlyLog",
    "AuthRefreshFailure",
    "BoundedDispatcher",
    "CompletionBarrier",
    "CreationFailure",
    "DeletionFailure",
    "DeviceLifecycleOrchestrator",
    "DeviceRecord",
    "DeviceRegistry",
    "FleetError",
    "IndexRange",
    "PeriodicTask",
    "PhaseResult",
    "ProgressCounter",
    "ProgressReporter",
    "ReportGenerator",
    "SessionRefresher",
    "TOKEN_WIDTH",
    "decode_token",
    "device_name",
    "encode_token",
]
