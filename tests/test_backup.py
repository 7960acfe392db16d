"""Tests for the backup service."""

import hashlib
import stat

import pytest

from site_mover.core.exceptions import (
    MissingCredentialsError,
    RemoteExecutionError,
    TransferError,
)
from site_mover.models.enums import ArtifactType
from site_mover.services.backup import database_dump_command
from tests.fakes import SOURCE_ENV


@pytest.fixture
async def manifest(discovery, source_site, migration_options):
    return await discovery.discover(source_site, migration_options.storage_paths, SOURCE_ENV)


async def test_creates_dump_and_archives(backup, repository, queued_migration, source_site, manifest):
    result = await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    assert result.database.type == ArtifactType.DB_DUMP
    assert [a.metadata["storage_path"] for a in result.storage] == [
        "storage/app/public",
        "storage/app/private",
    ]

    artifact_dir = backup.artifact_directory(queued_migration.id)
    assert sorted(p.name for p in artifact_dir.iterdir()) == [
        "db.sql.gz",
        "storage-0.tar.gz",
        "storage-1.tar.gz",
    ]
    assert stat.S_IMODE(artifact_dir.stat().st_mode) == 0o700

    stored = await repository.list_artifacts(queued_migration.id)
    assert [a.ref for a in stored] == ["db.sql.gz", "storage-0.tar.gz", "storage-1.tar.gz"]
    for artifact in stored:
        with open(artifact.path, "rb") as f:
            assert artifact.checksum == hashlib.sha256(f.read()).hexdigest()


async def test_artifact_metadata(backup, queued_migration, source_site, manifest):
    result = await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    assert result.database.metadata == {
        "connection": "mysql",
        "database": "shop",
        "host": "127.0.0.1",
        "port": "3306",
    }
    assert result.storage[1].metadata == {
        "storage_path": "storage/app/private",
        "source_path": "/home/forge/shop.test/storage/app/private",
    }


async def test_remote_temp_files_are_namespaced_and_removed(
    backup, executor, queued_migration, source_site, manifest
):
    await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    prefix = f"/tmp/site-mover-{queued_migration.id}-"
    remote_paths = [remote for _, remote, _ in executor.downloads]
    assert remote_paths == [
        prefix + "db.sql.gz",
        prefix + "storage-0.tar.gz",
        prefix + "storage-1.tar.gz",
    ]

    commands = executor.commands(host_id=1)
    for remote in remote_paths:
        assert f"rm -f {remote}" in commands


async def test_dump_command_carries_password_in_env_prefix(
    backup, executor, queued_migration, source_site, manifest
):
    await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    dump = next(cmd for cmd in executor.commands() if "mysqldump" in cmd)
    assert dump.startswith("MYSQL_PWD=secret mysqldump --single-transaction --quick")
    assert "-u shop shop | gzip" in dump


async def test_missing_username_fails(backup, queued_migration, source_site, manifest):
    env = SOURCE_ENV.replace("DB_USERNAME=shop\n", "")

    with pytest.raises(MissingCredentialsError):
        await backup.create_artifacts(queued_migration, source_site, manifest, env)


async def test_dump_failure_aborts_stage(backup, executor, repository, queued_migration, source_site, manifest):
    executor.script("mysqldump", RemoteExecutionError("dump failed", exit_status=2, stderr="Access denied"))

    with pytest.raises(RemoteExecutionError, match="Access denied"):
        await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    assert await repository.list_artifacts(queued_migration.id) == []


async def test_failed_download_leaves_no_partial_file(
    backup, executor, queued_migration, source_site, manifest
):
    executor.download_errors["storage-1"] = TransferError("connection reset")

    with pytest.raises(TransferError):
        await backup.create_artifacts(queued_migration, source_site, manifest, SOURCE_ENV)

    artifact_dir = backup.artifact_directory(queued_migration.id)
    assert not (artifact_dir / "storage-1.tar.gz").exists()
    assert f"rm -f /tmp/site-mover-{queued_migration.id}-storage-1.tar.gz" in executor.commands()


async def test_no_database_skips_dump(backup, discovery, executor, queued_migration, source_site):
    manifest = await discovery.discover(source_site, source_env="APP_NAME=Shop\n")

    result = await backup.create_artifacts(queued_migration, source_site, manifest, "")

    assert result.database is None
    assert len(result.storage) == 1
    assert not any("mysqldump" in cmd for cmd in executor.commands())


def test_postgres_dump_command():
    command = database_dump_command(
        "pgsql", "db.internal", "5432", "app", "p w", "app_db", "/tmp/out.sql.gz"
    )
    assert command == (
        "PGPASSWORD='p w' pg_dump -h db.internal -p 5432 -U app -d app_db "
        "| gzip > /tmp/out.sql.gz"
    )


def test_dump_command_without_password_has_no_prefix():
    command = database_dump_command("mysql", "h", "3306", "u", "", "d", "/tmp/x")
    assert command.startswith("mysqldump ")
