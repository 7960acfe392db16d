"""Manifest: immutable snapshot of a source instance produced by discovery."""

from pydantic import BaseModel, ConfigDict, Field


class FrozenModel(BaseModel):
    """Base for manifest documents; attributes cannot be reassigned."""

    model_config = ConfigDict(frozen=True)


class SiteSnapshot(FrozenModel):
    id: int
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
    deployment_script: str | None = None
    deployment_restart_workers: bool = False
    composer: bool = True


class DatabaseUserSnapshot(FrozenModel):
    username: str
    host: str
    permission: str


class DatabaseSnapshot(FrozenModel):
    connection: str = "mysql"
    name: str = ""
    host: str = ""  # masked
    port: str = ""  # masked
    charset: str | None = None
    collation: str | None = None
    users: list[DatabaseUserSnapshot] = Field(default_factory=list)


class CronJobSnapshot(FrozenModel):
    id: int
    command: str
    frequency: str
    user: str


class WorkerSnapshot(FrozenModel):
    id: int
    name: str
    command: str
    user: str
    auto_start: bool = True
    auto_restart: bool = True
    numprocs: int = 1
    redirect_stderr: bool = True


class HorizonSnapshot(FrozenModel):
    detected: bool = False


class RedisSnapshot(FrozenModel):
    used: bool = False
    service_installed: bool = False
    host: str = ""  # masked
    port: str = ""  # masked
    connectivity: bool | None = None


class Manifest(FrozenModel):
    """Everything needed to replicate a source instance on another host."""

    discovered_at: str
    site: SiteSnapshot
    storage_paths: list[str]
    database: DatabaseSnapshot = Field(default_factory=DatabaseSnapshot)
    cron_jobs: list[CronJobSnapshot] = Field(default_factory=list)
    workers: list[WorkerSnapshot] = Field(default_factory=list)
    horizon: HorizonSnapshot = Field(default_factory=HorizonSnapshot)
    redis: RedisSnapshot = Field(default_factory=RedisSnapshot)
