"""
Discovery Service

Inspects a source instance and produces the immutable Manifest that every
later stage works from. Discovery never mutates anything and may be re-run
at any time.
"""

import structlog

from ..constants import (
    CACHE_STORE,
    DB_CONNECTION,
    DB_DATABASE,
    DB_HOST,
    DB_PORT,
    DEFAULT_CONNECTION,
    DEFAULT_REDIS_HOST,
    DEFAULT_REDIS_PORT,
    DEFAULT_STORAGE_PATH,
    HORIZON_MARKER,
    QUEUE_CONNECTION,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    REDIS_URL,
)
from ..core.env_codec import EnvironmentCodec
from ..core.exceptions import SiteMoverError
from ..core.remote.executor import RemoteExecutor
from ..models.host import Host, Site
from ..models.manifest import (
    CronJobSnapshot,
    DatabaseSnapshot,
    DatabaseUserSnapshot,
    HorizonSnapshot,
    Manifest,
    RedisSnapshot,
    SiteSnapshot,
    WorkerSnapshot,
)
from ..platform.interface import HostPlatform
from ..utils import redis_ping_command, utc_now_iso

logger = structlog.get_logger()


def redis_used(env: dict[str, str]) -> bool:
    """Whether the environment points the queue, the cache or a client at Redis."""
    if env.get(QUEUE_CONNECTION, "") == "redis":
        return True
    if env.get(CACHE_STORE, "") == "redis":
        return True
    return env.get(REDIS_HOST, "") != "" or env.get(REDIS_URL, "") != ""


class DiscoveryService:
    """Builds a Manifest describing everything needed to replicate an instance."""

    def __init__(
        self,
        platform: HostPlatform,
        executor: RemoteExecutor,
        codec: EnvironmentCodec | None = None,
    ):
        self.platform = platform
        self.executor = executor
        self.codec = codec or EnvironmentCodec()
        self.logger = logger.bind(component="discovery")

    async def discover(
        self,
        source_site: Site,
        extra_storage_paths: list[str] | None = None,
        source_env: str = "",
    ) -> Manifest:
        """Snapshot ``source_site``.

        Args:
            source_site: Instance to inspect
            extra_storage_paths: Caller-supplied storage paths, added to the default
            source_env: Raw ``.env`` text of the source instance

        Returns:
            Frozen Manifest
        """
        storage_paths = self.codec.normalize_storage_paths(
            [DEFAULT_STORAGE_PATH, *(extra_storage_paths or [])]
        )
        env = self.codec.parse(source_env)
        host = await self.platform.get_host(source_site.server_id)

        database = await self._database_snapshot(source_site, env)
        cron_jobs = [
            CronJobSnapshot(id=job.id, command=job.command, frequency=job.frequency, user=job.user)
            for job in await self.platform.list_cron_jobs(source_site.id)
            if not job.hidden
        ]
        workers = [
            WorkerSnapshot(
                id=worker.id,
                name=worker.name,
                command=worker.command,
                user=worker.user,
                auto_start=worker.auto_start,
                auto_restart=worker.auto_restart,
                numprocs=worker.numprocs,
                redirect_stderr=worker.redirect_stderr,
            )
            for worker in await self.platform.list_workers(source_site.id)
        ]
        horizon_detected = any(HORIZON_MARKER in w.command.lower() for w in workers)

        manifest = Manifest(
            discovered_at=utc_now_iso(),
            site=SiteSnapshot(
                id=source_site.id,
                server_id=source_site.server_id,
                type=source_site.type,
                domain=source_site.domain,
                aliases=source_site.aliases,
                path=source_site.path,
                user=source_site.user,
                php_version=source_site.php_version,
                web_directory=source_site.web_directory,
                repository=source_site.repository,
                branch=source_site.branch,
                source_control_id=source_site.source_control_id,
                deployment_script=source_site.deployment_script,
                deployment_restart_workers=source_site.deployment_restart_workers,
                composer=source_site.composer,
            ),
            storage_paths=storage_paths,
            database=database,
            cron_jobs=cron_jobs,
            workers=workers,
            horizon=HorizonSnapshot(detected=horizon_detected),
            redis=await self._redis_snapshot(host, env),
        )

        self.logger.info(
            "Discovery complete",
            site_id=source_site.id,
            storage_paths=len(storage_paths),
            cron_jobs=len(cron_jobs),
            workers=len(workers),
            database=database.name or None,
            horizon=horizon_detected,
        )
        return manifest

    async def _database_snapshot(self, site: Site, env: dict[str, str]) -> DatabaseSnapshot:
        db_name = env.get(DB_DATABASE, "")

        charset = collation = None
        users: list[DatabaseUserSnapshot] = []
        if db_name:
            database = await self.platform.find_database(site.server_id, db_name)
            if database is not None:
                charset, collation = database.charset, database.collation

            users = [
                DatabaseUserSnapshot(username=user.username, host=user.host, permission=user.permission)
                for user in await self.platform.list_database_users(site.server_id)
                if db_name in user.databases
            ]

        return DatabaseSnapshot(
            connection=env.get(DB_CONNECTION, DEFAULT_CONNECTION).lower(),
            name=db_name,
            host=self.codec.mask_value(env.get(DB_HOST, "")),
            port=self.codec.mask_value(env.get(DB_PORT, "")),
            charset=charset,
            collation=collation,
            users=users,
        )

    async def _redis_snapshot(self, host: Host | None, env: dict[str, str]) -> RedisSnapshot:
        used = redis_used(env)

        connectivity = None
        if used and host is not None:
            connectivity = await self._check_redis_connectivity(host, env)

        return RedisSnapshot(
            used=used,
            service_installed=host is not None and await self.platform.has_memory_database(host),
            host=self.codec.mask_value(env.get(REDIS_HOST, "")),
            port=self.codec.mask_value(env.get(REDIS_PORT, "")),
            connectivity=connectivity,
        )

    async def _check_redis_connectivity(self, host: Host, env: dict[str, str]) -> bool | None:
        """Ping Redis from the source host: True on PONG, None if the probe itself fails."""
        command = redis_ping_command(
            env.get(REDIS_HOST, DEFAULT_REDIS_HOST),
            env.get(REDIS_PORT, DEFAULT_REDIS_PORT),
            env.get(REDIS_PASSWORD, ""),
        )
        try:
            output = await self.executor.exec(host, command)
        except SiteMoverError as e:
            self.logger.warning("Redis probe failed", host=host.hostname, error=str(e))
            return None
        return "PONG" in output.strip().upper()
