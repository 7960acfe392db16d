"""Inventory platform whose instance ``.env`` files live on the hosts themselves.

Hosts, instances and services still come from the YAML inventory. Environment
text is read with ``cat`` and written by uploading a temp file that the instance
user installs over ``{path}/.env``.
"""

import shlex
import tempfile
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from ..constants import REMOTE_ARTIFACT_PREFIX
from ..core.exceptions import MigrationRuntimeError
from ..core.remote.executor import RemoteExecutor
from ..models.host import Host, Site
from ..utils import resolve_under_root
from .in_memory import InMemoryHostPlatform

if TYPE_CHECKING:
    from ..core.config_loader import SiteMoverConfig

ENV_FILENAME = ".env"


class RemoteEnvHostPlatform(InMemoryHostPlatform):
    """Inventory-backed platform that keeps ``.env`` files on the managed hosts."""

    def __init__(self, executor: RemoteExecutor, **inventory):
        super().__init__(**inventory)
        self.executor = executor
        self.logger = self.logger.bind(component="remote_env_platform")

    @classmethod
    def from_config(
        cls, config: "SiteMoverConfig", executor: RemoteExecutor
    ) -> "RemoteEnvHostPlatform":
        return cls(
            executor,
            hosts=config.hosts,
            sites=config.instances,
            databases=config.databases,
            database_users=config.database_users,
            cron_jobs=config.cron_jobs,
            workers=config.workers,
        )

    async def read_env(self, site: Site) -> str:
        env_path = shlex.quote(self.env_path(site))
        return await self.executor.exec(
            self._site_host(site),
            f"if [ -f {env_path} ]; then cat {env_path}; fi",
            as_user=site.user,
        )

    async def write_env(self, site: Site, text: str) -> None:
        host = self._site_host(site)
        env_path = self.env_path(site)
        tmp_dir = self.executor.settings.remote_tmp_dir.rstrip("/")
        remote_path = f"{tmp_dir}/{REMOTE_ARTIFACT_PREFIX}-env-{site.id}-{uuid.uuid4().hex[:8]}"

        with tempfile.TemporaryDirectory(prefix="site-mover-env-") as local_dir:
            local_path = Path(local_dir) / ENV_FILENAME
            local_path.write_text(text)
            await self.executor.upload(host, local_path, remote_path)

        try:
            await self.executor.exec(
                host,
                f"install -m 600 {shlex.quote(remote_path)} {shlex.quote(env_path)}",
                as_user=site.user,
            )
        finally:
            await self.executor.delete_remote_file(host, remote_path)

        self.logger.info("Environment file written", site_id=site.id, path=env_path)

    @staticmethod
    def env_path(site: Site) -> str:
        return resolve_under_root(site.path, ENV_FILENAME)

    def _site_host(self, site: Site) -> Host:
        host = self.hosts.get(site.server_id)
        if host is None:
            raise MigrationRuntimeError(f"Server #{site.server_id} not found for site #{site.id}.")
        return host
