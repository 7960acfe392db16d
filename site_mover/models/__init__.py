"""Data models for Site Mover."""

from .enums import (  # noqa: F401
    ArtifactType,
    CheckName,
    DatabaseStatus,
    MigrationStatus,
    SiteStatus,
    WorkerStatus,
)
from .host import (  # noqa: F401
    CronJob,
    Database,
    DatabaseUser,
    Host,
    Site,
    Worker,
)
from .manifest import (  # noqa: F401
    CronJobSnapshot,
    DatabaseSnapshot,
    DatabaseUserSnapshot,
    HorizonSnapshot,
    Manifest,
    RedisSnapshot,
    SiteSnapshot,
    WorkerSnapshot,
)
from .migration import Artifact, MigrationOptions, MigrationRecord  # noqa: F401
from .report import CheckResult, Report, ReportSummary  # noqa: F401

__all__ = [
    # Enums
    "ArtifactType",
    "CheckName",
    "DatabaseStatus",
    "MigrationStatus",
    "SiteStatus",
    "WorkerStatus",
    # Host inventory
    "CronJob",
    "Database",
    "DatabaseUser",
    "Host",
    "Site",
    "Worker",
    # Manifest
    "CronJobSnapshot",
    "DatabaseSnapshot",
    "DatabaseUserSnapshot",
    "HorizonSnapshot",
    "Manifest",
    "RedisSnapshot",
    "SiteSnapshot",
    "WorkerSnapshot",
    # Migration
    "Artifact",
    "MigrationOptions",
    "MigrationRecord",
    # Report
    "CheckResult",
    "Report",
    "ReportSummary",
]
