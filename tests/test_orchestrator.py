"""Tests for the migration orchestrator."""

import asyncio

import pytest

from site_mover.core.exceptions import InvalidTransitionError, RemoteExecutionError
from site_mover.models.enums import MigrationStatus
from site_mover.services.orchestrator import MigrationOrchestrator
from tests.fakes import TARGET_DOMAIN, TARGET_SERVER_ID


class RecordingRepository:
    """Wraps a repository and remembers the status of every saved record."""

    def __init__(self, inner):
        self.inner = inner
        self.saved_statuses: list[MigrationStatus] = []

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def save(self, record):
        self.saved_statuses.append(record.status)
        await self.inner.save(record)


async def test_successful_pipeline(orchestrator, repository, platform, queued_migration):
    result = await orchestrator.run(queued_migration.id)

    assert result.status == MigrationStatus.SUCCESS
    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.SUCCESS
    assert stored.error is None
    assert stored.started_at is not None
    assert stored.finished_at is not None
    assert stored.manifest.site.domain == "shop.test"
    assert stored.report.summary.total == 6
    assert stored.report.summary.passed == 6

    target = platform.sites[stored.target_site_id]
    assert target.server_id == TARGET_SERVER_ID
    assert target.domain == TARGET_DOMAIN
    assert len(await repository.list_artifacts(queued_migration.id)) == 3


async def test_every_transition_is_saved(
    platform, repository, discovery, backup, restore, validation, settings, queued_migration
):
    recording = RecordingRepository(repository)
    orchestrator = MigrationOrchestrator(
        platform, recording, discovery, backup, restore, validation, settings
    )

    await orchestrator.run(queued_migration.id)

    statuses = list(dict.fromkeys(recording.saved_statuses))
    assert statuses == [
        MigrationStatus.DISCOVERING,
        MigrationStatus.BACKING_UP,
        MigrationStatus.RESTORING,
        MigrationStatus.VALIDATING,
        MigrationStatus.SUCCESS,
    ]


async def test_dump_failure_marks_record_failed(
    orchestrator, executor, repository, platform, queued_migration
):
    executor.script(
        "mysqldump",
        RemoteExecutionError(
            "Command failed on source.test with exit status 2",
            exit_status=2,
            stderr="mysqldump: Got error: 1045: Access denied for user 'shop'",
        ),
    )

    with pytest.raises(RemoteExecutionError):
        await orchestrator.run(queued_migration.id)

    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.FAILED
    assert "Access denied for user 'shop'" in stored.error
    assert stored.finished_at is not None
    assert stored.target_site_id is None
    assert stored.report is None
    assert not any(site.server_id == TARGET_SERVER_ID for site in platform.sites.values())


async def test_restore_failure_keeps_manifest(orchestrator, repository, platform, queued_migration):
    platform.hosts[TARGET_SERVER_ID].webserver = None

    with pytest.raises(RuntimeError, match="webserver"):
        await orchestrator.run(queued_migration.id)

    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.FAILED
    assert stored.manifest is not None


async def test_missing_record_returns_none(orchestrator):
    assert await orchestrator.run(404) is None


async def test_only_queued_records_run(orchestrator, repository, queued_migration):
    queued_migration.status = MigrationStatus.SCANNED
    await repository.save(queued_migration)

    with pytest.raises(InvalidTransitionError):
        await orchestrator.run(queued_migration.id)

    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.SCANNED


async def test_missing_source_site_fails(orchestrator, repository, platform, queued_migration):
    del platform.sites[queued_migration.source_site_id]

    with pytest.raises(RuntimeError, match="Source site"):
        await orchestrator.run(queued_migration.id)

    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.FAILED


async def test_timeout_leaves_last_stage(orchestrator, repository, settings, queued_migration):
    class HangingDiscovery:
        async def discover(self, *args, **kwargs):
            await asyncio.sleep(3600)

    orchestrator.discovery = HangingDiscovery()
    orchestrator.settings = settings.model_copy(update={"pipeline_timeout": 1})

    with pytest.raises(asyncio.TimeoutError):
        await orchestrator.run_with_timeout(queued_migration.id)

    stored = await repository.get(queued_migration.id)
    assert stored.status == MigrationStatus.DISCOVERING
    assert stored.finished_at is None
