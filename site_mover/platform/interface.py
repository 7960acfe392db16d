"""Narrow interface to the host control plane.

Site Mover never manages webservers, database engines or process supervisors
itself. It asks the host platform for capability checks and for the create and
find operations below.
"""

from abc import ABC, abstractmethod

from ..models.host import CronJob, Database, DatabaseUser, Host, Site, Worker


class HostPlatform(ABC):
    """Host, instance and service inventory operations used during a migration."""

    # Hosts

    @abstractmethod
    async def get_host(self, host_id: int) -> Host | None:
        """Return the host with ``host_id`` or None."""

    @abstractmethod
    async def has_webserver(self, host: Host) -> bool: ...

    @abstractmethod
    async def has_database_engine(self, host: Host) -> bool: ...

    @abstractmethod
    async def has_process_supervisor(self, host: Host) -> bool: ...

    @abstractmethod
    async def has_runtime(self, host: Host, version: str) -> bool: ...

    @abstractmethod
    async def has_memory_database(self, host: Host) -> bool:
        """Whether a Redis-like service is installed on the host."""

    @abstractmethod
    async def login_users(self, host: Host) -> list[str]:
        """Return the system users that may own processes on the host."""

    # Instances

    @abstractmethod
    async def get_site(self, site_id: int) -> Site | None: ...

    @abstractmethod
    async def find_site_by_domain(self, server_id: int, domain: str) -> Site | None: ...

    @abstractmethod
    async def site_user_taken(self, server_id: int, user: str) -> bool:
        """Whether any instance on the host already runs as ``user``."""

    @abstractmethod
    async def create_site(self, site: Site) -> Site:
        """Persist a new instance record and return it with its id assigned."""

    @abstractmethod
    async def save_site(self, site: Site) -> Site: ...

    @abstractmethod
    async def provision_site(self, site: Site) -> None:
        """Run the host's installation routine for a new instance."""

    @abstractmethod
    async def read_env(self, site: Site) -> str:
        """Return the raw ``.env`` text of an instance, empty when absent."""

    @abstractmethod
    async def write_env(self, site: Site, text: str) -> None: ...

    @abstractmethod
    async def update_deployment_script(
        self, site: Site, script: str, restart_workers: bool
    ) -> None: ...

    # Databases

    @abstractmethod
    async def find_database(self, server_id: int, name: str) -> Database | None: ...

    @abstractmethod
    async def create_database(
        self, server_id: int, name: str, charset: str, collation: str
    ) -> Database: ...

    @abstractmethod
    async def list_database_users(self, server_id: int) -> list[DatabaseUser]: ...

    @abstractmethod
    async def database_user_exists(self, server_id: int, username: str) -> bool: ...

    @abstractmethod
    async def create_database_user(
        self,
        server_id: int,
        username: str,
        password: str,
        permission: str,
        remote: bool,
        host: str,
        databases: list[str],
    ) -> DatabaseUser: ...

    # Scheduled commands and workers

    @abstractmethod
    async def list_cron_jobs(self, site_id: int) -> list[CronJob]: ...

    @abstractmethod
    async def create_cron_job(
        self, site: Site, command: str, user: str, frequency: str
    ) -> CronJob: ...

    @abstractmethod
    async def list_workers(self, site_id: int) -> list[Worker]: ...

    @abstractmethod
    async def create_worker(self, worker: Worker) -> Worker:
        """Persist a new worker record and return it with its id assigned."""

    @abstractmethod
    async def save_worker(self, worker: Worker) -> Worker: ...

    @abstractmethod
    async def register_worker(self, site: Site, worker: Worker) -> None:
        """Register the worker with the host's process supervisor and start it."""
