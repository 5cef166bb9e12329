"""devicefleet - bulk device lifecycle driver for ThingsBoard-style management APIs."""

from .bulk.batch import BoundedDispatcher, DeviceLifecycleOrchestrator
from .bulk.models import DeviceRecord, IndexRange, PhaseResult
from .bulk.registry import DeviceRegistry, ProgressCounter
from .bulk.tokens import decode_token, encode_token
from .rest_clients.client import DeviceRestClient


# Version will be set by build system
def _get_version():
    """Get the version from package metadata or pyproject.toml."""
    try:
        from importlib.metadata import PackageNotFoundError, version

        return version("devicefleet")
    except PackageNotFoundError:
        # Fallback for development checkouts that were never installed
        import re
        from pathlib import Path

        pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
        if not pyproject_path.exists():
            raise RuntimeError(f"Could not find pyproject.toml at {pyproject_path}")

        with open(pyproject_path, "r", encoding="utf-8") as f:
            content = f.read()
            version_match = re.search(r'version\s*=\s*["\']([^"\']+)["\']', content)
            if not version_match:
                raise RuntimeError("Could not find version in pyproject.toml")
            return version_match.group(1)


__version__ = _get_version()

__all__ = [
    "__version__",
    # Orchestration
    "DeviceLifecycleOrchestrator",
    "BoundedDispatcher",
    # Models
    "IndexRange",
    "DeviceRecord",
    "PhaseResult",
    "DeviceRegistry",
    "ProgressCounter",
    # Tokens
    "encode_token",
    "decode_token",
    # REST collaborator
    "DeviceRestClient",
]
