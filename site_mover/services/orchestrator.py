"""
Migration Orchestrator

Drives one migration record through discover, backup, restore and validate.
The record in the repository is the authoritative state: every transition is
saved before the next stage starts, so progress can be polled from outside.
"""

import asyncio

import structlog

from ..core.exceptions import InvalidTransitionError, MigrationRuntimeError
from ..core.settings import SiteMoverSettings, site_mover_settings
from ..models.enums import MigrationStatus
from ..models.migration import MigrationRecord
from ..platform.interface import HostPlatform
from ..repositories.interface import MigrationRepository
from .backup import BackupService
from .discovery import DiscoveryService
from .restore import RestoreService
from .validation import ValidationService

logger = structlog.get_logger()


class MigrationOrchestrator:
    """State machine sequencing the four pipeline stages for a migration."""

    def __init__(
        self,
        platform: HostPlatform,
        repository: MigrationRepository,
        discovery: DiscoveryService,
        backup: BackupService,
        restore: RestoreService,
        validation: ValidationService,
        settings: SiteMoverSettings | None = None,
    ):
        self.platform = platform
        self.repository = repository
        self.discovery = discovery
        self.backup = backup
        self.restore = restore
        self.validation = validation
        self.settings = settings or site_mover_settings
        self.logger = logger.bind(component="orchestrator")

    async def _advance(self, migration: MigrationRecord, status: MigrationStatus) -> None:
        migration.transition(status)
        await self.repository.save(migration)
        self.logger.info("Migration stage started", migration_id=migration.id, status=status.value)

    async def run(self, migration_id: int) -> MigrationRecord | None:
        """Run the full pipeline for a queued migration.

        Any stage failure marks the record failed with the error message and is
        re-raised. There are no retries; a new attempt needs a new record.

        Returns:
            The finished record, or None if no record has ``migration_id``.
        """
        migration = await self.repository.get(migration_id)
        if migration is None:
            self.logger.warning("Migration record not found", migration_id=migration_id)
            return None

        if migration.status != MigrationStatus.QUEUED:
            raise InvalidTransitionError(
                f"Migration #{migration.id} is {migration.status.value}, expected queued"
            )

        options = migration.options

        try:
            source_site = await self.platform.get_site(migration.source_site_id)
            if source_site is None:
                raise MigrationRuntimeError(f"Source site #{migration.source_site_id} not found.")

            await self._advance(migration, MigrationStatus.DISCOVERING)
            source_env = await self.platform.read_env(source_site)
            manifest = await self.discovery.discover(source_site, options.storage_paths, source_env)
            migration.manifest = manifest
            await self.repository.save(migration)

            await self._advance(migration, MigrationStatus.BACKING_UP)
            artifacts = await self.backup.create_artifacts(migration, source_site, manifest, source_env)

            await self._advance(migration, MigrationStatus.RESTORING)
            target_site = await self.restore.restore(migration, source_site, manifest, source_env)

            await self._advance(migration, MigrationStatus.VALIDATING)
            target_env = await self.platform.read_env(target_site)
            report = await self.validation.run(target_site, options.healthcheck_url, target_env)

            migration.succeed(report)
            await self.repository.save(migration)
        except Exception as e:
            if not migration.status.is_terminal:
                migration.fail(str(e) or e.__class__.__name__)
                await self.repository.save(migration)
            self.logger.error(
                "Migration failed",
                migration_id=migration.id,
                error=migration.error,
                error_type=e.__class__.__name__,
            )
            raise

        self.logger.info(
            "Migration succeeded",
            migration_id=migration.id,
            target_site_id=migration.target_site_id,
            artifacts=len(artifacts.all),
            checks=f"{report.summary.passed}/{report.summary.total}",
        )
        return migration

    async def run_with_timeout(self, migration_id: int) -> MigrationRecord | None:
        """Run the pipeline bounded by the configured pipeline timeout.

        A timeout leaves the record in the last non-terminal state it reached.
        """
        try:
            return await asyncio.wait_for(
                self.run(migration_id), timeout=self.settings.pipeline_timeout
            )
        except asyncio.TimeoutError:
            self.logger.error(
                "Migration pipeline timed out",
                migration_id=migration_id,
                timeout=self.settings.pipeline_timeout,
            )
            raise
