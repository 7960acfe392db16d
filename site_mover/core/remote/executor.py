"""Remote execution abstraction shared by every pipeline stage.

Implementations run a shell command on a host and move files between local
storage and that host. Callers build commands with ``shlex.quote`` around every
dynamic argument; implementations pass the string through unchanged.
"""

import shlex
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from ...models.host import Host
from ..exceptions import SafetyError, SiteMoverError
from ..safety import RemoteCleanupSafety
from ..settings import SiteMoverSettings, site_mover_settings

logger = structlog.get_logger()


class RemoteExecutor(ABC):
    """Run commands on and transfer files to/from managed hosts."""

    def __init__(self, settings: SiteMoverSettings | None = None):
        self.settings = settings or site_mover_settings
        self.safety = RemoteCleanupSafety(self.settings.remote_tmp_dir)
        self.logger = logger.bind(component=self.__class__.__name__)

    @abstractmethod
    async def exec(self, host: Host, command: str, as_user: str | None = None) -> str:
        """Run ``command`` on ``host`` and return its stdout.

        Raises:
            RemoteExecutionError: On non-zero exit or when the host is unreachable.
        """

    @abstractmethod
    async def upload(self, host: Host, local_path: Path | str, remote_path: str) -> None:
        """Copy a local file to ``remote_path`` on ``host``.

        Raises:
            TransferError: On I/O or connectivity failure.
        """

    @abstractmethod
    async def download(self, host: Host, remote_path: str, local_path: Path | str) -> None:
        """Copy ``remote_path`` on ``host`` to a local file.

        Raises:
            TransferError: On I/O or connectivity failure.
        """

    async def try_exec(
        self,
        host: Host,
        command: str,
        as_user: str | None = None,
        *,
        step: str,
    ) -> str | None:
        """Run a best-effort command; failures are logged and None is returned."""
        try:
            return await self.exec(host, command, as_user=as_user)
        except SiteMoverError as e:
            self.logger.warning(
                "Best-effort remote step failed",
                step=step,
                host=host.hostname,
                error=str(e),
            )
            return None

    async def delete_remote_file(self, host: Host, path: str) -> bool:
        """Remove a remote temp file. Never raises; returns whether it succeeded."""
        try:
            safe_path = self.safety.require_safe_path(path)
        except SafetyError as e:
            self.logger.warning("Refusing remote deletion", host=host.hostname, reason=str(e))
            return False

        output = await self.try_exec(
            host, f"rm -f {shlex.quote(safe_path)}", step="delete_remote_file"
        )
        return output is not None

    async def close(self) -> None:
        """Release any held connections."""
