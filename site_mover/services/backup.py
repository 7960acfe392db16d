"""
Backup Service

Turns a Manifest into durable local artifacts: one compressed database dump
and one tarball per storage path, each downloaded from the source host,
checksummed and recorded against the migration.
"""

import asyncio
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..constants import (
    DB_DUMP_FILENAME,
    DB_HOST,
    DB_PASSWORD,
    DB_PORT,
    DB_USERNAME,
    DEFAULT_DB_HOST,
    DEFAULT_MYSQL_PORT,
    DEFAULT_POSTGRES_PORT,
    REMOTE_ARTIFACT_PREFIX,
    STORAGE_ARCHIVE_FILENAME,
)
from ..core.env_codec import EnvironmentCodec
from ..core.exceptions import MigrationRuntimeError, MissingCredentialsError
from ..core.remote.executor import RemoteExecutor
from ..core.settings import SiteMoverSettings, site_mover_settings
from ..models.enums import ArtifactType
from ..models.host import Host, Site
from ..models.manifest import Manifest
from ..models.migration import Artifact, MigrationRecord
from ..platform.interface import HostPlatform
from ..repositories.interface import MigrationRepository
from ..utils import is_postgres, resolve_under_root, sha256_file

logger = structlog.get_logger()

STORAGE_ARCHIVE_SCRIPT = """set -e
SRC={source}
OUT={output}

if [ ! -e "$SRC" ]; then
  echo "Path not found: $SRC" >&2
  exit 1
fi

if [ -d "$SRC" ]; then
  tar -czf "$OUT" -C "$SRC" .
else
  PARENT=$(dirname "$SRC")
  NAME=$(basename "$SRC")
  tar -czf "$OUT" -C "$PARENT" "$NAME"
fi"""


def database_dump_command(
    connection: str,
    host: str,
    port: str,
    username: str,
    password: str,
    database: str,
    output_path: str,
) -> str:
    """Build an engine-specific dump command piped through gzip."""
    if is_postgres(connection):
        prefix = f"PGPASSWORD={shlex.quote(password)} " if password else ""
        return (
            f"{prefix}pg_dump -h {shlex.quote(host)} -p {shlex.quote(port)} "
            f"-U {shlex.quote(username)} -d {shlex.quote(database)} "
            f"| gzip > {shlex.quote(output_path)}"
        )

    prefix = f"MYSQL_PWD={shlex.quote(password)} " if password else ""
    return (
        f"{prefix}mysqldump --single-transaction --quick -h {shlex.quote(host)} "
        f"-P {shlex.quote(port)} -u {shlex.quote(username)} {shlex.quote(database)} "
        f"| gzip > {shlex.quote(output_path)}"
    )


@dataclass
class BackupResult:
    """Artifacts produced by one backup run."""

    database: Artifact | None = None
    storage: list[Artifact] = field(default_factory=list)

    @property
    def all(self) -> list[Artifact]:
        return ([self.database] if self.database else []) + self.storage


class BackupService:
    """Creates database dump and storage archive artifacts for a migration."""

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
        self.logger = logger.bind(component="backup")

    def artifact_directory(self, migration_id: int) -> Path:
        return Path(self.settings.artifact_dir) / str(migration_id)

    def _remote_path(self, migration_id: int, suffix: str) -> str:
        tmp_dir = self.settings.remote_tmp_dir.rstrip("/")
        return f"{tmp_dir}/{REMOTE_ARTIFACT_PREFIX}-{migration_id}-{suffix}"

    async def create_artifacts(
        self,
        migration: MigrationRecord,
        source_site: Site,
        manifest: Manifest,
        source_env: str = "",
    ) -> BackupResult:
        """Dump the database and archive every storage path of the source instance.

        Any failing artifact aborts the whole stage.

        Raises:
            MissingCredentialsError: If the source ``.env`` has no ``DB_USERNAME``.
            RemoteExecutionError: If a dump or archive command fails.
            TransferError: If a download fails.
        """
        host = await self.platform.get_host(source_site.server_id)
        if host is None:
            raise MigrationRuntimeError(f"Source server #{source_site.server_id} not found.")

        artifact_dir = self.artifact_directory(migration.id)
        await asyncio.to_thread(self._ensure_private_directory, artifact_dir)

        result = BackupResult()

        if manifest.database.name:
            result.database = await self._create_database_dump(
                migration, host, manifest, source_env, artifact_dir
            )

        for index, storage_path in enumerate(manifest.storage_paths):
            result.storage.append(
                await self._create_storage_archive(
                    migration, host, source_site, storage_path, artifact_dir, index
                )
            )

        self.logger.info(
            "Backup complete",
            migration_id=migration.id,
            database=result.database is not None,
            storage_archives=len(result.storage),
        )
        return result

    @staticmethod
    def _ensure_private_directory(path: Path) -> None:
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(path, 0o700)

    async def _create_database_dump(
        self,
        migration: MigrationRecord,
        host: Host,
        manifest: Manifest,
        source_env: str,
        artifact_dir: Path,
    ) -> Artifact:
        connection = manifest.database.connection.lower()
        database = manifest.database.name
        env = self.codec.parse(source_env)

        db_host = env.get(DB_HOST, DEFAULT_DB_HOST)
        default_port = DEFAULT_POSTGRES_PORT if is_postgres(connection) else DEFAULT_MYSQL_PORT
        db_port = env.get(DB_PORT, default_port)
        username = env.get(DB_USERNAME, "")
        password = env.get(DB_PASSWORD, "")

        if not username:
            raise MissingCredentialsError(
                "Cannot create database dump: DB_USERNAME is missing from source .env"
            )

        remote_path = self._remote_path(migration.id, DB_DUMP_FILENAME)
        local_path = artifact_dir / DB_DUMP_FILENAME

        command = database_dump_command(
            connection, db_host, db_port, username, password, database, remote_path
        )
        self.logger.info("Dumping source database", migration_id=migration.id, database=database)
        await self.executor.exec(host, command)

        checksum = await self._fetch(host, remote_path, local_path)

        return await self.repository.add_artifact(
            Artifact(
                migration_id=migration.id,
                type=ArtifactType.DB_DUMP,
                ref=local_path.name,
                path=str(local_path),
                checksum=checksum,
                metadata={
                    "connection": connection,
                    "database": database,
                    "host": db_host,
                    "port": db_port,
                },
            )
        )

    async def _create_storage_archive(
        self,
        migration: MigrationRecord,
        host: Host,
        source_site: Site,
        storage_path: str,
        artifact_dir: Path,
        index: int,
    ) -> Artifact:
        source_path = resolve_under_root(source_site.path, storage_path)
        archive_name = STORAGE_ARCHIVE_FILENAME.format(index=index)
        remote_path = self._remote_path(migration.id, archive_name)
        local_path = artifact_dir / archive_name

        command = STORAGE_ARCHIVE_SCRIPT.format(
            source=shlex.quote(source_path), output=shlex.quote(remote_path)
        )
        self.logger.info(
            "Archiving storage path",
            migration_id=migration.id,
            storage_path=storage_path,
            source_path=source_path,
        )
        await self.executor.exec(host, command)

        checksum = await self._fetch(host, remote_path, local_path)

        return await self.repository.add_artifact(
            Artifact(
                migration_id=migration.id,
                type=ArtifactType.STORAGE_ARCHIVE,
                ref=local_path.name,
                path=str(local_path),
                checksum=checksum,
                metadata={"storage_path": storage_path, "source_path": source_path},
            )
        )

    async def _fetch(self, host: Host, remote_path: str, local_path: Path) -> str:
        """Download a remote temp file, drop the remote copy and checksum the local one.

        A partially written local file is removed when the download or checksum fails.
        """
        try:
            await self.executor.download(host, remote_path, local_path)
            return await asyncio.to_thread(sha256_file, local_path)
        except Exception:
            local_path.unlink(missing_ok=True)
            raise
        finally:
            await self.executor.delete_remote_file(host, remote_path)
