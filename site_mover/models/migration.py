"""Migration record, options and artifact models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.env_codec import EnvironmentCodec
from ..core.exceptions import InvalidTransitionError, ValidationInputError
from .enums import (
    PIPELINE_TRANSITIONS,
    ArtifactType,
    DbUserStrategy,
    DowntimeMode,
    MigrationStatus,
    WorkerMode,
)
from .manifest import Manifest
from .report import Report


def utcnow() -> datetime:
    return datetime.now(UTC)


class MigrationOptions(BaseModel):
    """Caller input captured when a migration record is created."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    target_server_id: int | None = Field(default=None, description="Target host id")
    target_domain: str = Field(default="", max_length=255, description="Domain on the target")
    target_user: str = Field(default="", max_length=32, description="Run-as user on the target")
    db_name: str = Field(default="", max_length=255, description="Target database name")
    db_user_strategy: DbUserStrategy = Field(default="clone")
    storage_paths: list[str] = Field(default_factory=list)
    include_env: bool = Field(default=True, description="Copy .env to the target")
    horizon_mode: WorkerMode = Field(default="auto", description="Worker command rewrite mode")
    downtime_mode: DowntimeMode = Field(default="test")
    run_database_migrations: bool = Field(default=False)
    healthcheck_url: str = Field(default="/", max_length=255)

    @field_validator("storage_paths", mode="before")
    @classmethod
    def split_storage_paths(cls, value: Any) -> Any:
        """Accept newline separated text as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            return EnvironmentCodec().storage_paths_from_text(value)
        return value

    @field_validator("target_user", "db_name", "healthcheck_url", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def for_migration(cls, data: dict[str, Any], source_server_id: int) -> "MigrationOptions":
        """Validate options for a full migration run.

        Raises:
            ValidationInputError: If options are malformed, incomplete or point
                the migration back at the source host.
        """
        try:
            options = cls.model_validate(data)
        except ValidationError as e:
            raise ValidationInputError(f"Invalid migration options: {e}") from e

        if options.target_server_id is None or options.target_server_id <= 0:
            raise ValidationInputError("Target server is required for migration.")
        if options.target_server_id == source_server_id:
            raise ValidationInputError("Target server must be different from source server.")
        if not options.target_domain:
            raise ValidationInputError("Target domain is required.")

        # Both end up in /home/<user>/<domain> on the target host
        for label, value in (
            ("Target domain", options.target_domain),
            ("Target user", options.target_user),
        ):
            if "/" in value or ".." in value or any(ch.isspace() for ch in value):
                raise ValidationInputError(f"{label} may not contain '/', '..' or whitespace.")

        return options


class Artifact(BaseModel):
    """A durable backup byproduct written once during the backup stage."""

    id: int = 0
    migration_id: int
    type: ArtifactType
    ref: str | None = None
    path: str
    checksum: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class MigrationRecord(BaseModel):
    """The unit of work driven through the pipeline."""

    id: int = 0
    source_site_id: int
    source_server_id: int
    target_server_id: int | None = None
    target_site_id: int | None = None
    status: MigrationStatus = MigrationStatus.QUEUED
    manifest: Manifest | None = None
    options: MigrationOptions = Field(default_factory=MigrationOptions)
    report: Report | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def transition(self, status: MigrationStatus) -> None:
        """Move to ``status`` if the state machine allows it."""
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Migration #{self.id} is already {self.status.value}"
            )

        if status == MigrationStatus.FAILED:
            self.status = status
            return

        expected = PIPELINE_TRANSITIONS.get(status)
        if expected is None or expected != self.status:
            raise InvalidTransitionError(
                f"Migration #{self.id} cannot move from {self.status.value} to {status.value}"
            )

        if status == MigrationStatus.DISCOVERING:
            self.started_at = utcnow()
        self.status = status

    def succeed(self, report: Report) -> None:
        self.transition(MigrationStatus.SUCCESS)
        self.report = report
        self.finished_at = utcnow()

    def fail(self, error: str) -> None:
        self.transition(MigrationStatus.FAILED)
        self.error = error
        self.finished_at = utcnow()

    def assign_target(self, server_id: int, site_id: int) -> None:
        """Record the provisioned target; the target site is set at most once."""
        if self.target_site_id is not None and self.target_site_id != site_id:
            raise InvalidTransitionError(
                f"Migration #{self.id} already targets site #{self.target_site_id}"
            )
        self.target_server_id = server_id
        self.target_site_id = site_id
