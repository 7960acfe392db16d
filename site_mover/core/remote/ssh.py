"""Paramiko-backed remote executor with pooled SSH connections."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncGenerator

import structlog
from paramiko import AutoAddPolicy, SSHClient
from paramiko.ssh_exception import SSHException

from ...models.host import Host
from ...utils import redact_command
from ..exceptions import RemoteExecutionError, TransferError
from ..settings import SiteMoverSettings
from .executor import RemoteExecutor

logger = structlog.get_logger()


class SSHConnectionError(RemoteExecutionError):
    """SSH connection could not be established."""


@dataclass
class PooledConnection:
    """Wrapper for a pooled SSH connection."""

    client: SSHClient
    key: str
    created_at: datetime = field(default_factory=datetime.now)
    last_used_at: datetime = field(default_factory=datetime.now)
    in_use: bool = False
    use_count: int = 0

    def is_alive(self) -> bool:
        """Check if the connection is still alive."""
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            return False
        try:
            transport.send_ignore()
        except (SSHException, OSError, EOFError):
            return False
        return True

    def touch(self):
        """Update last used timestamp."""
        self.last_used_at = datetime.now()
        self.use_count += 1


class SSHConnectionPool:
    """Reuses SSH connections per ``user@hostname:port``."""

    def __init__(
        self,
        connect_timeout: int = 30,
        max_connections_per_host: int = 5,
        max_idle_time: int = 300,  # 5 minutes
        max_lifetime: int = 3600,  # 1 hour
    ):
        self.connect_timeout = connect_timeout
        self.max_connections_per_host = max_connections_per_host
        self.max_idle_time = max_idle_time
        self.max_lifetime = max_lifetime

        # Pool storage: host_key -> list of connections
        self._pools: dict[str, list[PooledConnection]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self._stats = {
            "connections_created": 0,
            "connections_reused": 0,
            "connections_closed": 0,
            "connection_errors": 0,
        }

    @staticmethod
    def host_key(host: Host, username: str) -> str:
        return f"{username}@{host.hostname}:{host.port}"

    async def _create_connection(self, host: Host, username: str) -> SSHClient:
        """Create a new SSH connection to the host."""
        client = SSHClient()
        client.set_missing_host_key_policy(AutoAddPolicy())

        connect_kwargs: dict[str, Any] = {
            "hostname": host.hostname,
            "port": host.port,
            "username": username,
            "timeout": self.connect_timeout,
            "banner_timeout": self.connect_timeout,
            "auth_timeout": self.connect_timeout,
        }

        if host.identity_file:
            connect_kwargs["key_filename"] = host.identity_file
        elif host.password:
            connect_kwargs["password"] = host.password

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: client.connect(**connect_kwargs))
        except (SSHException, OSError) as e:
            self._stats["connection_errors"] += 1
            client.close()
            raise SSHConnectionError(f"Failed to connect to {host.hostname}: {e}") from e

        transport = client.get_transport()
        if transport:
            transport.set_keepalive(30)

        self._stats["connections_created"] += 1
        logger.debug(
            "Created new SSH connection",
            host=self.host_key(host, username),
            total_created=self._stats["connections_created"],
        )
        return client

    async def _get_or_create_connection(self, host: Host, username: str) -> PooledConnection:
        """Get an existing connection or create a new one."""
        key = self.host_key(host, username)
        pool = self._pools[key]

        for conn in list(pool):
            if conn.in_use:
                continue

            now = datetime.now()
            idle_time = (now - conn.last_used_at).total_seconds()
            lifetime = (now - conn.created_at).total_seconds()
            if conn.is_alive() and idle_time < self.max_idle_time and lifetime < self.max_lifetime:
                conn.in_use = True
                conn.touch()
                self._stats["connections_reused"] += 1
                return conn

            self._close_connection(conn)
            pool.remove(conn)

        active_connections = sum(1 for c in pool if c.in_use)
        if active_connections >= self.max_connections_per_host:
            raise SSHConnectionError(
                f"Maximum connections ({self.max_connections_per_host}) reached for {key}"
            )

        client = await self._create_connection(host, username)
        conn = PooledConnection(client=client, key=key, in_use=True)
        conn.touch()
        pool.append(conn)
        return conn

    def _close_connection(self, conn: PooledConnection):
        conn.client.close()
        self._stats["connections_closed"] += 1
        logger.debug("Closed SSH connection", host=conn.key, use_count=conn.use_count)

    @asynccontextmanager
    async def get_connection(self, host: Host, username: str) -> AsyncGenerator[SSHClient, None]:
        """Get an SSH connection from the pool.

        Args:
            host: Host to connect to
            username: Login to authenticate as

        Yields:
            SSHClient instance
        """
        async with self._lock:
            conn = await self._get_or_create_connection(host, username)

        try:
            yield conn.client
        finally:
            async with self._lock:
                conn.in_use = False
                conn.touch()

    async def close_all(self):
        """Close all pooled connections."""
        async with self._lock:
            for pool in self._pools.values():
                for conn in pool:
                    self._close_connection(conn)
            self._pools.clear()

        logger.info("SSH connection pool closed", stats=self._stats)

    def get_stats(self) -> dict[str, Any]:
        """Get connection pool statistics."""
        return {
            **self._stats,
            "active_pools": len(self._pools),
            "total_connections": sum(len(p) for p in self._pools.values()),
        }


class SSHRemoteExecutor(RemoteExecutor):
    """Executes commands over SSH and transfers files over SFTP."""

    def __init__(self, settings: SiteMoverSettings | None = None, pool: SSHConnectionPool | None = None):
        super().__init__(settings)
        self.pool = pool or SSHConnectionPool(connect_timeout=self.settings.connect_timeout)

    async def exec(self, host: Host, command: str, as_user: str | None = None) -> str:
        username = as_user or host.user
        timeout = self.settings.command_timeout

        def _execute(client: SSHClient) -> tuple[int, str, str]:
            _stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
            stdout_data = stdout.read().decode("utf-8", errors="replace")
            stderr_data = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
            return exit_code, stdout_data, stderr_data

        self.logger.debug(
            "Executing SSH command",
            host=SSHConnectionPool.host_key(host, username),
            command=redact_command(command)[:100],
        )

        async with self.pool.get_connection(host, username) as client:
            loop = asyncio.get_running_loop()
            try:
                exit_code, stdout_data, stderr_data = await loop.run_in_executor(
                    None, _execute, client
                )
            except (SSHException, OSError) as e:
                raise RemoteExecutionError(
                    f"Command execution failed on {host.hostname}: {e}", command=command
                ) from e

        if exit_code != 0:
            self.logger.warning(
                "SSH command exited non-zero",
                host=host.hostname,
                command=redact_command(command)[:100],
                exit_code=exit_code,
            )
            raise RemoteExecutionError(
                f"Command failed on {host.hostname} with exit status {exit_code}",
                exit_status=exit_code,
                stderr=stderr_data,
                command=command,
            )

        return stdout_data

    async def _sftp(self, host: Host, operation: str, local_path: str, remote_path: str) -> None:
        timeout = self.settings.transfer_timeout

        def _transfer(client: SSHClient) -> None:
            sftp = client.open_sftp()
            try:
                sftp.get_channel().settimeout(timeout)
                if operation == "upload":
                    sftp.put(local_path, remote_path)
                else:
                    sftp.get(remote_path, local_path)
            finally:
                sftp.close()

        try:
            async with self.pool.get_connection(host, host.user) as client:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, _transfer, client)
        except (RemoteExecutionError, SSHException, OSError) as e:
            raise TransferError(
                f"Failed to {operation} {remote_path} on {host.hostname}: {e}"
            ) from e

        self.logger.debug(
            "SFTP transfer complete",
            operation=operation,
            host=host.hostname,
            remote_path=remote_path,
        )

    async def upload(self, host: Host, local_path: Path | str, remote_path: str) -> None:
        await self._sftp(host, "upload", str(local_path), remote_path)

    async def download(self, host: Host, remote_path: str, local_path: Path | str) -> None:
        await self._sftp(host, "download", str(local_path), remote_path)

    async def close(self) -> None:
        await self.pool.close_all()

