"""
Restore Service

Provisions a new instance on the target host and fills it from a Manifest and
its backup artifacts: database, environment, storage, scheduled commands and
workers. Each step aborts the rest on failure. Resource names on the target are
uniquified before creation, so a retried migration never collides with what an
earlier attempt left behind.
"""

import re
import secrets
import shlex
from dataclasses import dataclass
from pathlib import Path

import structlog

from ..constants import (
    APP_URL,
    DB_CONNECTION,
    DB_DATABASE,
    DB_HOST,
    DB_PASSWORD,
    DB_PORT,
    DB_USER_FALLBACK,
    DB_USERNAME,
    DEFAULT_CHARSET,
    DEFAULT_COLLATION,
    DEFAULT_CONNECTION,
    DEFAULT_CRON_FREQUENCY,
    DEFAULT_MYSQL_PORT,
    DEFAULT_POSTGRES_PORT,
    DEFAULT_STORAGE_PATH,
    FALLBACK_DB_USER_PREFIX,
    LOCAL_DB_HOSTS,
    NAME_MAX_LENGTH,
    NAME_SUFFIX_BASE_LENGTH,
    REMOTE_ARTIFACT_PREFIX,
    SITE_USER_FALLBACK,
    WORKER_NAME_FALLBACK,
)
from ..core.env_codec import EnvironmentCodec
from ..core.exceptions import MigrationRuntimeError, PrerequisiteError
from ..core.remote.executor import RemoteExecutor
from ..core.settings import SiteMoverSettings, site_mover_settings
from ..models.enums import ArtifactType, DatabaseStatus, SiteStatus, WorkerStatus
from ..models.host import DatabaseUser, Host, Site, Worker
from ..models.manifest import Manifest
from ..models.migration import MigrationOptions, MigrationRecord
from ..platform.interface import HostPlatform
from ..repositories.interface import MigrationRepository
from ..utils import is_postgres, resolve_under_root

logger = structlog.get_logger()

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9_\-]")
_QUEUE_WORK = re.compile(r"artisan\s+queue:work[^\n]*", re.IGNORECASE)
_HORIZON = re.compile(r"artisan\s+horizon[^\n]*", re.IGNORECASE)


def database_restore_command(
    connection: str,
    host: str,
    port: str,
    username: str,
    password: str,
    database: str,
    input_path: str,
) -> str:
    """Build an engine-specific decompress-and-load command."""
    if is_postgres(connection):
        prefix = f"PGPASSWORD={shlex.quote(password)} " if password else ""
        return (
            f"gunzip -c {shlex.quote(input_path)} | {prefix}psql -h {shlex.quote(host)} "
            f"-p {shlex.quote(port)} -U {shlex.quote(username)} -d {shlex.quote(database)}"
        )

    prefix = f"MYSQL_PWD={shlex.quote(password)} " if password else ""
    return (
        f"gunzip -c {shlex.quote(input_path)} | {prefix}mysql -h {shlex.quote(host)} "
        f"-P {shlex.quote(port)} -u {shlex.quote(username)} {shlex.quote(database)}"
    )


def apply_worker_mode(command: str, mode: str) -> str:
    """Rewrite a worker command between ``queue:work`` and ``horizon``.

    ``auto`` leaves the command untouched; ``horizon`` turns a queue worker
    into the dashboard process; ``queue-work`` does the inverse.
    """
    mode = mode.lower()
    if mode == "auto":
        return command

    is_horizon = "artisan horizon" in command.lower()
    if mode == "horizon":
        return command if is_horizon else _QUEUE_WORK.sub("artisan horizon", command)

    return _HORIZON.sub("artisan queue:work", command) if is_horizon else command


def sanitize_name(base: str, fallback: str) -> str:
    """Lowercase, keep ``[a-z0-9_-]``, fall back when empty, cap the length."""
    name = _UNSAFE_NAME_CHARS.sub("", base.strip().lower()) or fallback
    return name[:NAME_MAX_LENGTH]


@dataclass
class DatabaseContext:
    """Connection settings of the database provisioned on the target."""

    connection: str
    database: str
    host: str
    port: str
    username: str
    password: str


class RestoreService:
    """Rebuilds a source instance on the target host."""

    def __init__(
        self,
        platform: HostPlatform,
        executor: RemoteExecutor,
        repository: MigrationRepository,
        settings: SiteMoverSettings | None = None,
        codec: EnvironmentCodec | None = None,
    ):
        self.platform = platform
        self.executor = executor
        self.repository = repository
        self.settings = settings or site_mover_settings
        self.codec = codec or EnvironmentCodec()
        self.logger = logger.bind(component="restore")

    async def restore(
        self,
        migration: MigrationRecord,
        source_site: Site,
        manifest: Manifest,
        source_env: str = "",
    ) -> Site:
        """Provision and fill the target instance, then record it on the migration.

        Raises:
            MigrationRuntimeError: Duplicate target domain, bad target host or a
                database that is not ready.
            PrerequisiteError: Target host lacks a required service or runtime.
            RemoteExecutionError: A restore command failed.
            TransferError: An upload failed.
        """
        options = migration.options
        target_host = await self._resolve_target_host(options, source_site)
        await self._assert_target_prerequisites(target_host, manifest.site.php_version)

        target_site = await self._provision_target_site(source_site, target_host, manifest, options)
        env = self.codec.parse(source_env)

        db_context = await self._setup_database(source_site, target_host, manifest, options, env)
        await self._restore_database_dump(migration, target_host, db_context)
        await self._copy_env(target_site, db_context, options.include_env, source_env)
        await self._restore_storage_archives(migration, target_host, target_site)
        await self._recreate_cron_jobs(source_site, target_host, target_site, manifest)
        await self._recreate_workers(
            source_site, target_host, target_site, manifest, options.horizon_mode
        )
        await self._run_post_migration_commands(
            target_host, target_site, options.run_database_migrations
        )

        migration.assign_target(target_host.id, target_site.id)
        await self.repository.save(migration)

        self.logger.info(
            "Restore complete",
            migration_id=migration.id,
            target_server_id=target_host.id,
            target_site_id=target_site.id,
            domain=target_site.domain,
        )
        return target_site

    # Target host

    async def _resolve_target_host(self, options: MigrationOptions, source_site: Site) -> Host:
        target_server_id = options.target_server_id or 0
        if target_server_id <= 0:
            raise MigrationRuntimeError("Target server is required for migration.")
        if target_server_id == source_site.server_id:
            raise MigrationRuntimeError("Target server must be different from source server.")

        host = await self.platform.get_host(target_server_id)
        if host is None:
            raise MigrationRuntimeError(f"Target server #{target_server_id} not found.")
        return host

    async def _assert_target_prerequisites(self, host: Host, php_version: str) -> None:
        if not await self.platform.has_webserver(host):
            raise PrerequisiteError("Target server does not have a webserver service.")
        if not await self.platform.has_database_engine(host):
            raise PrerequisiteError("Target server does not have a database service.")
        if not await self.platform.has_process_supervisor(host):
            raise PrerequisiteError("Target server does not have a process manager service.")
        if php_version and not await self.platform.has_runtime(host, php_version):
            raise PrerequisiteError(f"Target server does not have PHP {php_version} installed.")

    # Instance

    async def _provision_target_site(
        self,
        source_site: Site,
        target_host: Host,
        manifest: Manifest,
        options: MigrationOptions,
    ) -> Site:
        domain = options.target_domain.strip()
        if not domain:
            raise MigrationRuntimeError("Target domain is required.")

        if await self.platform.find_site_by_domain(target_host.id, domain) is not None:
            raise MigrationRuntimeError("Target domain already exists on target server.")

        user = options.target_user.strip() or await self.unique_site_user(
            target_host, source_site.user
        )

        snapshot = manifest.site
        site = await self.platform.create_site(
            Site(
                server_id=target_host.id,
                type="laravel",
                domain=domain,
                aliases=[],
                path=f"/home/{user}/{domain}",
                user=user,
                php_version=snapshot.php_version or source_site.php_version,
                web_directory=snapshot.web_directory,
                repository=snapshot.repository,
                branch=snapshot.branch,
                source_control_id=snapshot.source_control_id,
                composer=snapshot.composer,
                status=SiteStatus.INSTALLING,
            )
        )

        try:
            await self.platform.provision_site(site)
        except Exception:
            site.status = SiteStatus.INSTALLATION_FAILED
            await self.platform.save_site(site)
            self.logger.error("Target site provisioning failed", site_id=site.id, domain=domain)
            raise

        site.status = SiteStatus.READY
        await self.platform.save_site(site)

        if snapshot.deployment_script is not None and site.deployment_script is not None:
            await self.platform.update_deployment_script(
                site, snapshot.deployment_script, snapshot.deployment_restart_workers
            )

        self.logger.info("Target site provisioned", site_id=site.id, domain=domain, user=user)
        return site

    # Database

    async def _setup_database(
        self,
        source_site: Site,
        target_host: Host,
        manifest: Manifest,
        options: MigrationOptions,
        env: dict[str, str],
    ) -> DatabaseContext | None:
        source_db = env[DB_DATABASE] if DB_DATABASE in env else manifest.database.name
        if not source_db:
            return None

        target_db = options.db_name.strip() or source_db

        database = await self.platform.find_database(target_host.id, target_db)
        if database is None:
            database = await self.platform.create_database(
                target_host.id,
                target_db,
                manifest.database.charset or DEFAULT_CHARSET,
                manifest.database.collation or DEFAULT_COLLATION,
            )

        if database.status != DatabaseStatus.READY:
            raise MigrationRuntimeError("Target database is not ready for restore.")

        primary_user = None
        if options.db_user_strategy == "clone":
            primary_user = await self._clone_database_users(
                source_site, source_db, target_host, target_db
            )
        if primary_user is None:
            primary_user = await self._create_fallback_database_user(target_host, target_db, env)

        connection = (
            env[DB_CONNECTION] if DB_CONNECTION in env else manifest.database.connection
        ) or DEFAULT_CONNECTION
        connection = connection.lower()
        default_port = DEFAULT_POSTGRES_PORT if is_postgres(connection) else DEFAULT_MYSQL_PORT

        return DatabaseContext(
            connection=connection,
            database=target_db,
            # A wildcard grant host is not a connectable address
            host="localhost" if primary_user.host == "%" else primary_user.host,
            port=env.get(DB_PORT, default_port),
            username=primary_user.username,
            password=primary_user.password or "",
        )

    async def _clone_database_users(
        self,
        source_site: Site,
        source_db: str,
        target_host: Host,
        target_db: str,
    ) -> DatabaseUser | None:
        """Recreate every source user with access to ``source_db``; the first is primary."""
        primary = None
        for source_user in await self.platform.list_database_users(source_site.server_id):
            if source_db not in source_user.databases:
                continue

            username = await self.unique_database_username(target_host.id, source_user.username)
            host = source_user.host or "localhost"
            created = await self.platform.create_database_user(
                target_host.id,
                username=username,
                password=source_user.password or "",
                permission=source_user.permission,
                remote=host not in LOCAL_DB_HOSTS,
                host=host,
                databases=[target_db],
            )
            self.logger.info(
                "Database user cloned", source=source_user.username, target=username
            )
            primary = primary or created

        return primary

    async def _create_fallback_database_user(
        self, target_host: Host, target_db: str, env: dict[str, str]
    ) -> DatabaseUser:
        username = await self.unique_database_username(
            target_host.id, FALLBACK_DB_USER_PREFIX + target_db[:16]
        )
        password = env.get(DB_PASSWORD, "") or secrets.token_hex(16)
        self.logger.info("Creating fallback database user", username=username)
        return await self.platform.create_database_user(
            target_host.id,
            username=username,
            password=password,
            permission="admin",
            remote=False,
            host="localhost",
            databases=[target_db],
        )

    async def _restore_database_dump(
        self,
        migration: MigrationRecord,
        target_host: Host,
        db_context: DatabaseContext | None,
    ) -> None:
        if db_context is None:
            return

        dumps = await self.repository.list_artifacts(migration.id, ArtifactType.DB_DUMP)
        if not dumps or not Path(dumps[0].path).is_file():
            self.logger.info("No database dump to restore", migration_id=migration.id)
            return

        remote_path = self._remote_path(migration.id, "db-restore.sql.gz")
        await self.executor.upload(target_host, dumps[0].path, remote_path)
        try:
            await self.executor.exec(
                target_host,
                database_restore_command(
                    db_context.connection,
                    db_context.host,
                    db_context.port,
                    db_context.username,
                    db_context.password,
                    db_context.database,
                    remote_path,
                ),
            )
        finally:
            await self.executor.delete_remote_file(target_host, remote_path)

        self.logger.info("Database restored", migration_id=migration.id, database=db_context.database)

    # Environment and storage

    async def _copy_env(
        self,
        target_site: Site,
        db_context: DatabaseContext | None,
        include_env: bool,
        source_env: str,
    ) -> None:
        if not include_env or not source_env.strip():
            return

        text = source_env
        if db_context is not None:
            for key, value in (
                (DB_CONNECTION, db_context.connection),
                (DB_DATABASE, db_context.database),
                (DB_HOST, db_context.host),
                (DB_PORT, db_context.port),
                (DB_USERNAME, db_context.username),
                (DB_PASSWORD, db_context.password),
            ):
                text = self.codec.update(text, key, value)

        text = self.codec.update(text, APP_URL, f"https://{target_site.domain}")
        await self.platform.write_env(target_site, text)

    async def _restore_storage_archives(
        self, migration: MigrationRecord, target_host: Host, target_site: Site
    ) -> None:
        archives = await self.repository.list_artifacts(migration.id, ArtifactType.STORAGE_ARCHIVE)

        for index, archive in enumerate(archives):
            if not Path(archive.path).is_file():
                continue

            relative_path = archive.metadata.get("storage_path", DEFAULT_STORAGE_PATH)
            destination = resolve_under_root(target_site.path, relative_path)
            remote_path = self._remote_path(migration.id, f"storage-restore-{index}.tar.gz")

            await self.executor.upload(target_host, archive.path, remote_path)
            try:
                await self.executor.exec(
                    target_host,
                    f"set -e; mkdir -p {shlex.quote(destination)}; "
                    f"tar -xzf {shlex.quote(remote_path)} -C {shlex.quote(destination)}",
                    as_user=target_site.user,
                )
            finally:
                await self.executor.delete_remote_file(target_host, remote_path)

            self.logger.info("Storage restored", storage_path=relative_path, destination=destination)

        await self.executor.try_exec(
            target_host,
            f"cd {shlex.quote(target_site.path)} && php artisan storage:link",
            as_user=target_site.user,
            step="storage_link",
        )

    # Scheduled commands and workers

    async def _recreate_cron_jobs(
        self, source_site: Site, target_host: Host, target_site: Site, manifest: Manifest
    ) -> None:
        login_users = await self.platform.login_users(target_host)

        for job in manifest.cron_jobs:
            user = job.user if job.user in login_users else target_site.user
            await self.platform.create_cron_job(
                target_site,
                command=self._replace_source_path(job.command, source_site, target_site),
                user=user,
                frequency=job.frequency or DEFAULT_CRON_FREQUENCY,
            )

        if manifest.cron_jobs:
            self.logger.info("Cron jobs recreated", count=len(manifest.cron_jobs))

    async def _recreate_workers(
        self,
        source_site: Site,
        target_host: Host,
        target_site: Site,
        manifest: Manifest,
        worker_mode: str,
    ) -> None:
        if not manifest.workers or not await self.platform.has_process_supervisor(target_host):
            return

        login_users = await self.platform.login_users(target_host)

        for snapshot in manifest.workers:
            command = self._replace_source_path(snapshot.command, source_site, target_site)
            worker = await self.platform.create_worker(
                Worker(
                    server_id=target_site.server_id,
                    site_id=target_site.id,
                    name=await self.unique_worker_name(target_site, snapshot.name),
                    command=apply_worker_mode(command, worker_mode),
                    user=snapshot.user if snapshot.user in login_users else target_site.user,
                    auto_start=snapshot.auto_start,
                    auto_restart=snapshot.auto_restart,
                    numprocs=max(1, snapshot.numprocs),
                    redirect_stderr=snapshot.redirect_stderr,
                    status=WorkerStatus.CREATING,
                )
            )

            try:
                await self.platform.register_worker(target_site, worker)
            except Exception:
                worker.status = WorkerStatus.FAILED
                await self.platform.save_worker(worker)
                self.logger.error("Worker registration failed", worker=worker.name)
                raise

            worker.status = WorkerStatus.RUNNING
            await self.platform.save_worker(worker)
            self.logger.info("Worker recreated", worker=worker.name, worker_id=worker.id)

    async def _run_post_migration_commands(
        self, target_host: Host, target_site: Site, run_migrations: bool
    ) -> None:
        path = shlex.quote(target_site.path)

        if run_migrations:
            await self.executor.exec(
                target_host,
                f"cd {path} && php artisan migrate --force",
                as_user=target_site.user,
            )

        await self.executor.try_exec(
            target_host,
            f"cd {path} && php artisan config:clear && php artisan cache:clear "
            f"&& php artisan route:clear && php artisan view:clear",
            as_user=target_site.user,
            step="cache_clear",
        )

    # Naming

    async def unique_site_user(self, host: Host, base: str) -> str:
        """Derive a run-as user not used by any instance or login on ``host``."""
        base = sanitize_name(base, SITE_USER_FALLBACK)
        login_users = await self.platform.login_users(host)

        candidate = base
        counter = 1
        while candidate in login_users or await self.platform.site_user_taken(host.id, candidate):
            candidate = f"{base[:NAME_SUFFIX_BASE_LENGTH]}{counter}"
            counter += 1
        return candidate

    async def unique_database_username(self, server_id: int, base: str) -> str:
        """Derive a database username not yet present on the host."""
        base = sanitize_name(base, DB_USER_FALLBACK)

        candidate = base
        counter = 1
        while await self.platform.database_user_exists(server_id, candidate):
            candidate = f"{base[:NAME_SUFFIX_BASE_LENGTH]}{counter}"
            counter += 1
        return candidate

    async def unique_worker_name(self, site: Site, base: str) -> str:
        """Append ``-n`` to ``base`` until no worker of ``site`` uses it."""
        base = base.strip() or WORKER_NAME_FALLBACK
        taken = {worker.name for worker in await self.platform.list_workers(site.id)}

        candidate = base
        counter = 1
        while candidate in taken:
            candidate = f"{base}-{counter}"
            counter += 1
        return candidate

    # Helpers

    def _remote_path(self, migration_id: int, suffix: str) -> str:
        tmp_dir = self.settings.remote_tmp_dir.rstrip("/")
        return f"{tmp_dir}/{REMOTE_ARTIFACT_PREFIX}-{migration_id}-{suffix}"

    @staticmethod
    def _replace_source_path(value: str, source_site: Site, target_site: Site) -> str:
        if not source_site.path:
            return value
        return value.replace(source_site.path, target_site.path)
