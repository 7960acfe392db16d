"""Host inventory records: hosts, instances, databases, cron jobs and workers.

These mirror what the host control plane stores. Site Mover only creates and
looks them up through the ``HostPlatform`` interface.
"""

from pydantic import BaseModel, Field

from .enums import DatabaseStatus, SiteStatus, WorkerStatus


class Host(BaseModel):
    """A managed machine reachable over SSH."""

    id: int
    name: str = ""
    hostname: str
    user: str = "root"
    port: int = 22
    identity_file: str | None = None
    password: str | None = None
    webserver: str | None = None  # e.g. nginx
    database: str | None = None  # e.g. mysql, postgresql
    process_manager: str | None = None  # e.g. supervisor
    memory_database: str | None = None  # e.g. redis
    php_versions: list[str] = Field(default_factory=list)
    ssh_users: list[str] = Field(default_factory=list)


class Site(BaseModel):
    """A deployed application instance on a host."""

    id: int = 0
    server_id: int
    type: str = "laravel"
    domain: str
    aliases: list[str] = Field(default_factory=list)
    path: str
    user: str
    php_version: str = ""
    web_directory: str = "public"
    repository: str | None = None
    branch: str | None = None
    source_control_id: int | None = None
    composer: bool = True
    deployment_script: str | None = None
    deployment_restart_workers: bool = False
    status: SiteStatus = SiteStatus.READY


class Database(BaseModel):
    """A database on a host."""

    id: int = 0
    server_id: int
    name: str
    charset: str | None = None
    collation: str | None = None
    status: DatabaseStatus = DatabaseStatus.READY


class DatabaseUser(BaseModel):
    """A database login and the databases it can access."""

    id: int = 0
    server_id: int
    username: str
    password: str | None = None
    host: str = "localhost"
    permission: str = "admin"
    databases: list[str] = Field(default_factory=list)


class CronJob(BaseModel):
    """A scheduled command on a host."""

    id: int = 0
    server_id: int
    site_id: int | None = None
    command: str
    user: str
    frequency: str = "* * * * *"
    hidden: bool = False


class Worker(BaseModel):
    """A supervised background process."""

    id: int = 0
    server_id: int
    site_id: int | None = None
    name: str
    command: str
    user: str
    auto_start: bool = True
    auto_restart: bool = True
    numprocs: int = 1
    redirect_stderr: bool = True
    status: WorkerStatus = WorkerStatus.RUNNING

    def log_file(self) -> str:
        return f"/home/{self.user}/.logs/workers/{self.id}.log"
