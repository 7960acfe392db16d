"""In-memory host platform seeded from the YAML inventory.

Useful for tests, dry runs and single-operator setups where the host inventory
is declared in ``config/hosts.yml`` rather than fetched from a control plane.
"""

import asyncio
from itertools import count
from typing import TYPE_CHECKING

import structlog

from ..models.enums import DatabaseStatus
from ..models.host import CronJob, Database, DatabaseUser, Host, Site, Worker
from .interface import HostPlatform

if TYPE_CHECKING:
    from ..core.config_loader import SiteMoverConfig

logger = structlog.get_logger()

DEFAULT_DEPLOYMENT_SCRIPT = """cd $SITE_PATH
git pull origin $BRANCH
composer install --no-interaction --prefer-dist --optimize-autoloader
php artisan migrate --force
"""


class InMemoryHostPlatform(HostPlatform):
    """Dictionary-backed host inventory guarded by an asyncio lock."""

    def __init__(
        self,
        hosts: list[Host] | None = None,
        sites: list[Site] | None = None,
        environments: dict[int, str] | None = None,
        databases: list[Database] | None = None,
        database_users: list[DatabaseUser] | None = None,
        cron_jobs: list[CronJob] | None = None,
        workers: list[Worker] | None = None,
    ):
        self.hosts: dict[int, Host] = {host.id: host for host in hosts or []}
        self.sites: dict[int, Site] = {site.id: site for site in sites or []}
        self.environments: dict[int, str] = dict(environments or {})
        self.databases: list[Database] = list(databases or [])
        self.database_users: list[DatabaseUser] = list(database_users or [])
        self.cron_jobs: list[CronJob] = list(cron_jobs or [])
        self.workers: dict[int, Worker] = {worker.id: worker for worker in workers or []}
        self.registered_workers: list[int] = []

        self._lock = asyncio.Lock()
        self._site_ids = count(max(self.sites, default=0) + 1)
        self._database_ids = count(max((d.id for d in self.databases), default=0) + 1)
        self._database_user_ids = count(max((u.id for u in self.database_users), default=0) + 1)
        self._cron_ids = count(max((c.id for c in self.cron_jobs), default=0) + 1)
        self._worker_ids = count(max(self.workers, default=0) + 1)
        self.logger = logger.bind(component="in_memory_platform")

    @classmethod
    def from_config(cls, config: "SiteMoverConfig") -> "InMemoryHostPlatform":
        """Build a platform from a loaded inventory configuration."""
        return cls(
            hosts=config.hosts,
            sites=config.instances,
            environments=config.environments,
            databases=config.databases,
            database_users=config.database_users,
            cron_jobs=config.cron_jobs,
            workers=config.workers,
        )

    # Hosts

    async def get_host(self, host_id: int) -> Host | None:
        return self.hosts.get(host_id)

    async def has_webserver(self, host: Host) -> bool:
        return bool(host.webserver)

    async def has_database_engine(self, host: Host) -> bool:
        return bool(host.database)

    async def has_process_supervisor(self, host: Host) -> bool:
        return bool(host.process_manager)

    async def has_runtime(self, host: Host, version: str) -> bool:
        return version in host.php_versions

    async def has_memory_database(self, host: Host) -> bool:
        return bool(host.memory_database)

    async def login_users(self, host: Host) -> list[str]:
        users = [host.user, *host.ssh_users]
        users.extend(site.user for site in self.sites.values() if site.server_id == host.id)
        return list(dict.fromkeys(users))

    # Instances

    async def get_site(self, site_id: int) -> Site | None:
        return self.sites.get(site_id)

    async def find_site_by_domain(self, server_id: int, domain: str) -> Site | None:
        for site in self.sites.values():
            if site.server_id == server_id and site.domain == domain:
                return site
        return None

    async def site_user_taken(self, server_id: int, user: str) -> bool:
        return any(
            site.server_id == server_id and site.user == user for site in self.sites.values()
        )

    async def create_site(self, site: Site) -> Site:
        async with self._lock:
            site.id = next(self._site_ids)
            self.sites[site.id] = site
        self.logger.info("Site created", site_id=site.id, domain=site.domain, server_id=site.server_id)
        return site

    async def save_site(self, site: Site) -> Site:
        async with self._lock:
            self.sites[site.id] = site
        return site

    async def provision_site(self, site: Site) -> None:
        if site.deployment_script is None:
            site.deployment_script = DEFAULT_DEPLOYMENT_SCRIPT
        self.logger.info("Site provisioned", site_id=site.id, path=site.path)

    async def read_env(self, site: Site) -> str:
        return self.environments.get(site.id, "")

    async def write_env(self, site: Site, text: str) -> None:
        async with self._lock:
            self.environments[site.id] = text

    async def update_deployment_script(
        self, site: Site, script: str, restart_workers: bool
    ) -> None:
        site.deployment_script = script
        site.deployment_restart_workers = restart_workers
        await self.save_site(site)

    # Databases

    async def find_database(self, server_id: int, name: str) -> Database | None:
        for database in self.databases:
            if database.server_id == server_id and database.name == name:
                return database
        return None

    async def create_database(
        self, server_id: int, name: str, charset: str, collation: str
    ) -> Database:
        async with self._lock:
            database = Database(
                id=next(self._database_ids),
                server_id=server_id,
                name=name,
                charset=charset,
                collation=collation,
                status=DatabaseStatus.READY,
            )
            self.databases.append(database)
        self.logger.info("Database created", server_id=server_id, database=name)
        return database

    async def list_database_users(self, server_id: int) -> list[DatabaseUser]:
        return [user for user in self.database_users if user.server_id == server_id]

    async def database_user_exists(self, server_id: int, username: str) -> bool:
        return any(
            user.server_id == server_id and user.username == username
            for user in self.database_users
        )

    async def create_database_user(
        self,
        server_id: int,
        username: str,
        password: str,
        permission: str,
        remote: bool,
        host: str,
        databases: list[str],
    ) -> DatabaseUser:
        async with self._lock:
            user = DatabaseUser(
                id=next(self._database_user_ids),
                server_id=server_id,
                username=username,
                password=password,
                host=host if remote else "localhost",
                permission=permission,
                databases=list(databases),
            )
            self.database_users.append(user)
        self.logger.info(
            "Database user created", server_id=server_id, username=username, remote=remote
        )
        return user

    # Scheduled commands and workers

    async def list_cron_jobs(self, site_id: int) -> list[CronJob]:
        return [job for job in self.cron_jobs if job.site_id == site_id]

    async def create_cron_job(
        self, site: Site, command: str, user: str, frequency: str
    ) -> CronJob:
        async with self._lock:
            job = CronJob(
                id=next(self._cron_ids),
                server_id=site.server_id,
                site_id=site.id,
                command=command,
                user=user,
                frequency=frequency,
            )
            self.cron_jobs.append(job)
        return job

    async def list_workers(self, site_id: int) -> list[Worker]:
        return [worker for worker in self.workers.values() if worker.site_id == site_id]

    async def create_worker(self, worker: Worker) -> Worker:
        async with self._lock:
            worker.id = next(self._worker_ids)
            self.workers[worker.id] = worker
        return worker

    async def save_worker(self, worker: Worker) -> Worker:
        async with self._lock:
            self.workers[worker.id] = worker
        return worker

    async def register_worker(self, site: Site, worker: Worker) -> None:
        self.registered_workers.append(worker.id)
        self.logger.info(
            "Worker registered",
            site_id=site.id,
            worker_id=worker.id,
            log_file=worker.log_file(),
        )
