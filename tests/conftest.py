"""Shared pytest fixtures for Site Mover tests."""

import pytest

from site_mover.core.settings import SiteMoverSettings
from site_mover.models.enums import MigrationStatus
from site_mover.models.migration import MigrationOptions, MigrationRecord
from site_mover.platform.in_memory import InMemoryHostPlatform
from site_mover.repositories.in_memory import InMemoryMigrationRepository
from site_mover.services import (
    BackupService,
    DiscoveryService,
    MigrationOrchestrator,
    RestoreService,
    SiteMoverActions,
    ValidationService,
)
from tests.fakes import (
    HEALTHY_TARGET_RULES,
    SOURCE_SERVER_ID,
    SOURCE_SITE_ID,
    TARGET_DOMAIN,
    TARGET_SERVER_ID,
    FakeRemoteExecutor,
    build_platform,
)


@pytest.fixture
def settings(tmp_path) -> SiteMoverSettings:
    """Settings with artifacts and records under a temporary directory."""
    return SiteMoverSettings(
        artifact_dir=tmp_path / "artifacts",
        data_dir=tmp_path / "data",
        remote_tmp_dir="/tmp",
        pipeline_timeout=30,
    )


@pytest.fixture
def executor(settings) -> FakeRemoteExecutor:
    executor = FakeRemoteExecutor(settings)
    for pattern, result in HEALTHY_TARGET_RULES:
        executor.script(pattern, result)
    return executor


@pytest.fixture
def platform() -> InMemoryHostPlatform:
    return build_platform()


@pytest.fixture
def repository() -> InMemoryMigrationRepository:
    return InMemoryMigrationRepository()


@pytest.fixture
def discovery(platform, executor) -> DiscoveryService:
    return DiscoveryService(platform, executor)


@pytest.fixture
def backup(platform, executor, repository, settings) -> BackupService:
    return BackupService(platform, executor, repository, settings)


@pytest.fixture
def restore(platform, executor, repository, settings) -> RestoreService:
    return RestoreService(platform, executor, repository, settings)


@pytest.fixture
def validation(platform, executor) -> ValidationService:
    return ValidationService(platform, executor)


@pytest.fixture
def orchestrator(
    platform, repository, discovery, backup, restore, validation, settings
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        platform, repository, discovery, backup, restore, validation, settings
    )


@pytest.fixture
def actions(platform, repository, discovery, validation) -> SiteMoverActions:
    return SiteMoverActions(platform, repository, discovery, validation)


@pytest.fixture
def source_site(platform):
    return platform.sites[SOURCE_SITE_ID]


@pytest.fixture
def migration_options() -> MigrationOptions:
    return MigrationOptions(
        target_server_id=TARGET_SERVER_ID,
        target_domain=TARGET_DOMAIN,
        storage_paths=["storage/app/private"],
    )


@pytest.fixture
async def queued_migration(repository, migration_options) -> MigrationRecord:
    """A persisted migration of shop.test to the target host."""
    return await repository.create(
        MigrationRecord(
            source_site_id=SOURCE_SITE_ID,
            source_server_id=SOURCE_SERVER_ID,
            target_server_id=TARGET_SERVER_ID,
            status=MigrationStatus.QUEUED,
            options=migration_options,
        )
    )
