"""Enum definitions for Site Mover."""

from enum import Enum
from typing import Literal

# Type aliases
DbUserStrategy = Literal["clone", "create"]
WorkerMode = Literal["auto", "horizon", "queue-work"]
DowntimeMode = Literal["test", "final-sync"]


class MigrationStatus(str, Enum):
    """Lifecycle states of a migration record."""

    SCANNED = "scanned"
    QUEUED = "queued"
    DISCOVERING = "discovering"
    BACKING_UP = "backing_up"
    RESTORING = "restoring"
    VALIDATING = "validating"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationStatus.SUCCESS, MigrationStatus.FAILED)


# Each pipeline state may only be entered from its predecessor.
PIPELINE_TRANSITIONS: dict[MigrationStatus, MigrationStatus] = {
    MigrationStatus.DISCOVERING: MigrationStatus.QUEUED,
    MigrationStatus.BACKING_UP: MigrationStatus.DISCOVERING,
    MigrationStatus.RESTORING: MigrationStatus.BACKING_UP,
    MigrationStatus.VALIDATING: MigrationStatus.RESTORING,
    MigrationStatus.SUCCESS: MigrationStatus.VALIDATING,
}


class ArtifactType(str, Enum):
    """Kinds of backup artifacts."""

    DB_DUMP = "db_dump"
    STORAGE_ARCHIVE = "storage_archive"


class CheckName(str, Enum):
    """Validation checks, in report order."""

    HTTP = "http"
    ARTISAN = "artisan"
    DATABASE = "database"
    REDIS = "redis"
    WORKERS = "workers"
    HORIZON = "horizon"


class SiteStatus(str, Enum):
    """Provisioning state of an instance on a host."""

    INSTALLING = "installing"
    READY = "ready"
    INSTALLATION_FAILED = "installation_failed"


class DatabaseStatus(str, Enum):
    """State of a database on a host."""

    CREATING = "creating"
    READY = "ready"
    FAILED = "failed"


class WorkerStatus(str, Enum):
    """State of a supervised worker."""

    CREATING = "creating"
    RUNNING = "running"
    FAILED = "failed"
