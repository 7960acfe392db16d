"""
Site Mover Actions

Caller-facing entry points: scan an instance, queue a migration, re-run
validation and summarize migration history. Pipeline execution itself is left
to the caller so it can be scheduled in the background.
"""

from typing import Any

import structlog
from pydantic import ValidationError

from ..constants import HISTORY_DATETIME_FORMAT
from ..core.exceptions import ValidationInputError
from ..models.enums import MigrationStatus
from ..models.host import Site
from ..models.migration import MigrationOptions, MigrationRecord, utcnow
from ..models.report import Report
from ..platform.interface import HostPlatform
from ..repositories.interface import MigrationRepository
from .discovery import DiscoveryService
from .validation import ValidationService

logger = structlog.get_logger()

RECENT_RUNS_LIMIT = 5


def format_summary(record: MigrationRecord) -> str:
    """One-line status summary of a migration record."""

    def fmt(value: Any) -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(HISTORY_DATETIME_FORMAT)
        return str(value)

    parts = [
        f"Migration #{record.id}",
        f"status={record.status.value}",
        f"target_server={fmt(record.target_server_id)}",
        f"target_site={fmt(record.target_site_id)}",
        f"started={fmt(record.started_at)}",
        f"finished={fmt(record.finished_at)}",
    ]

    if record.error:
        parts.append(f"error={record.error}")

    if record.report is not None:
        summary = record.report.summary
        parts.append(f"checks={summary.passed}/{summary.total}")
        failed = record.report.failed_checks()
        if failed:
            parts.append(f"failed={','.join(failed)}")

    return " | ".join(parts)


class SiteMoverActions:
    """Operations exposed to callers, each returning a result and a message."""

    def __init__(
        self,
        platform: HostPlatform,
        repository: MigrationRepository,
        discovery: DiscoveryService,
        validation: ValidationService,
    ):
        self.platform = platform
        self.repository = repository
        self.discovery = discovery
        self.validation = validation
        self.logger = logger.bind(component="actions")

    async def _require_site(self, site_id: int, role: str) -> Site:
        site = await self.platform.get_site(site_id)
        if site is None:
            raise ValidationInputError(f"{role.capitalize()} site #{site_id} not found.")
        return site

    async def scan(
        self, source_site_id: int, storage_paths: str | list[str] | None = None
    ) -> tuple[MigrationRecord, str]:
        """Run discovery alone and store the result as a ``scanned`` record."""
        source_site = await self._require_site(source_site_id, "source")

        try:
            options = MigrationOptions.model_validate({"storage_paths": storage_paths})
        except ValidationError as e:
            raise ValidationInputError(f"Invalid storage paths: {e}") from e

        source_env = await self.platform.read_env(source_site)
        manifest = await self.discovery.discover(source_site, options.storage_paths, source_env)

        now = utcnow()
        record = await self.repository.create(
            MigrationRecord(
                source_site_id=source_site.id,
                source_server_id=source_site.server_id,
                status=MigrationStatus.SCANNED,
                manifest=manifest,
                options=options,
                started_at=now,
                finished_at=now,
            )
        )

        self.logger.info("Scan recorded", migration_id=record.id, source_site_id=source_site.id)
        message = (
            f"Scan complete. Migration #{record.id} created with "
            f"{len(manifest.storage_paths)} storage paths, "
            f"{len(manifest.cron_jobs)} cron job(s), and {len(manifest.workers)} worker(s)."
        )
        return record, message

    async def migrate(
        self, source_site_id: int, raw_options: dict[str, Any]
    ) -> tuple[MigrationRecord, str]:
        """Validate options and create a ``queued`` record.

        Raises:
            ValidationInputError: For malformed options or an unknown target host.
        """
        source_site = await self._require_site(source_site_id, "source")
        options = MigrationOptions.for_migration(raw_options, source_site.server_id)

        if await self.platform.get_host(options.target_server_id) is None:
            raise ValidationInputError(f"Target server #{options.target_server_id} not found.")

        record = await self.repository.create(
            MigrationRecord(
                source_site_id=source_site.id,
                source_server_id=source_site.server_id,
                target_server_id=options.target_server_id,
                status=MigrationStatus.QUEUED,
                options=options,
            )
        )

        self.logger.info(
            "Migration queued",
            migration_id=record.id,
            source_site_id=source_site.id,
            target_server_id=options.target_server_id,
            target_domain=options.target_domain,
        )
        message = (
            f"Migration #{record.id} queued. It will run in the background "
            "and update status when complete."
        )
        return record, message

    async def validate(
        self, source_site_id: int, target_site_id: int, healthcheck_url: str = "/"
    ) -> tuple[Report, str]:
        """Re-run validation and attach the report to the latest matching record."""
        await self._require_site(source_site_id, "source")
        target_site = await self._require_site(target_site_id, "target")

        target_env = await self.platform.read_env(target_site)
        report = await self.validation.run(target_site, healthcheck_url, target_env)

        record = await self.repository.latest(source_site_id, target_site_id)
        if record is not None:
            record.report = report
            await self.repository.save(record)

        message = (
            f"Validation complete. {report.summary.passed}/{report.summary.total} "
            f"checks passed for target site #{target_site_id}."
        )
        return report, message

    async def history(self, source_site_id: int, migration_id: int | None = None) -> str:
        """Summary line for one migration, or for the latest when no id is given."""
        if migration_id is None:
            record = await self.repository.latest(source_site_id)
            if record is None:
                return "No migration records found for this site yet."
        else:
            record = await self.repository.get(migration_id)
            if record is None or record.source_site_id != source_site_id:
                raise ValidationInputError(
                    f"Migration #{migration_id} not found for site #{source_site_id}."
                )

        return format_summary(record)

    async def recent_summary(self, source_site_id: int) -> str:
        records = await self.repository.list_for_site(source_site_id, limit=RECENT_RUNS_LIMIT)
        if not records:
            return "No migration runs yet. Use Scan/Migrate first."

        lines = []
        for record in records:
            checks = record.report.summary.passed if record.report else 0
            lines.append(
                f"#{record.id} {record.status.value} "
                f"target:{record.target_server_id or '-'}/{record.target_site_id or '-'} "
                f"checks={checks}"
            )
        return " || ".join(lines)
