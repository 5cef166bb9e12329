"""Exception classes for bulk device lifecycle operations.

None of these propagate out of a phase once dispatch has begun. They are
logged by the task or refresh cycle that produced them and collected on the
phase result.
"""

from typing import Any, Dict, Optional


class FleetError(Exception):
    """Base exception for device fleet operations."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize fleet error.

        Args:
            message: Error message
            context: Additional context information
        """
        super().__init__(message)
        self.context = context or {}

    def release_traceback(self) -> "FleetError":
        """Drop the traceback frames held by this error and its cause chain.

        Returns:
            This error, for chaining
        """
        seen = set()
        exc = getattr(self, "cause", None)
        while exc is not None and id(exc) not in seen:
            seen.add(id(exc))
            exc.with_traceback(None)
            exc = exc.__cause__ or exc.__context__
        self.with_traceback(None)
        return self


class CreationFailure(FleetError):
    """A device could not be created or have its credentials assigned."""

    def __init__(self, index: int, cause: Exception, device_id: Optional[str] = None):
        """Initialize creation failure.

        Args:
            index: Device index whose creation failed
            cause: Underlying error
            device_id: ID of the partially created device, if the create call succeeded
        """
        message = f"Failed to create device #{index}"
        if device_id:
            message += f" (id {device_id})"
        super().__init__(
            f"{message}: {cause}",
            context={"index": index, "device_id": device_id},
        )
        self.index = index
        self.device_id = device_id
        self.cause = cause


class DeletionFailure(FleetError):
    """A device could not be deleted."""

    def __init__(self, device_id: str, cause: Exception):
        super().__init__(
            f"Failed to delete device {device_id}: {cause}",
            context={"device_id": device_id},
        )
        self.device_id = device_id
        self.cause = cause


class AuthRefreshFailure(FleetError):
    """A periodic re-login failed. The next scheduled attempt runs regardless."""

    def __init__(self, cause: Exception):
        super().__init__(f"Session refresh failed: {cause}")
        self.cause = cause
