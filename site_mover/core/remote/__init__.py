"""Remote command execution and file transfer."""

from .executor import RemoteExecutor  # noqa: F401
from .ssh import SSHConnectionPool, SSHRemoteExecutor  # noqa: F401

__all__ = ["RemoteExecutor", "SSHConnectionPool", "SSHRemoteExecutor"]
