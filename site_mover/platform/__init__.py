"""Host platform access for Site Mover."""

from .in_memory import InMemoryHostPlatform  # noqa: F401
from .interface import HostPlatform  # noqa: F401
from .remote_env import RemoteEnvHostPlatform  # noqa: F401

__all__ = ["HostPlatform", "InMemoryHostPlatform", "RemoteEnvHostPlatform"]
