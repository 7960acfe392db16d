"""In-memory migration repository for tests and development."""

import asyncio
from itertools import count

import structlog

from ..models.enums import ArtifactType
from ..models.migration import Artifact, MigrationRecord
from .interface import MigrationRepository

logger = structlog.get_logger()


class InMemoryMigrationRepository(MigrationRepository):
    """Stores deep copies of records so callers cannot mutate stored state."""

    def __init__(self):
        self._records: dict[int, MigrationRecord] = {}
        self._artifacts: dict[int, list[Artifact]] = {}
        self._record_ids = count(1)
        self._artifact_ids = count(1)
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="in_memory_repository")

    async def create(self, record: MigrationRecord) -> MigrationRecord:
        async with self._lock:
            record.id = next(self._record_ids)
            self._records[record.id] = record.model_copy(deep=True)
        self.logger.debug("Migration record created", migration_id=record.id)
        return record

    async def get(self, migration_id: int) -> MigrationRecord | None:
        record = self._records.get(migration_id)
        return record.model_copy(deep=True) if record else None

    async def save(self, record: MigrationRecord) -> None:
        async with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    async def list_for_site(
        self, source_site_id: int, limit: int | None = None
    ) -> list[MigrationRecord]:
        records = sorted(
            (r for r in self._records.values() if r.source_site_id == source_site_id),
            key=lambda r: r.id,
            reverse=True,
        )
        if limit is not None:
            records = records[:limit]
        return [record.model_copy(deep=True) for record in records]

    async def delete(self, migration_id: int) -> None:
        async with self._lock:
            self._records.pop(migration_id, None)
            self._artifacts.pop(migration_id, None)

    async def add_artifact(self, artifact: Artifact) -> Artifact:
        async with self._lock:
            artifact.id = next(self._artifact_ids)
            self._artifacts.setdefault(artifact.migration_id, []).append(artifact.model_copy())
        return artifact

    async def list_artifacts(
        self, migration_id: int, artifact_type: ArtifactType | None = None
    ) -> list[Artifact]:
        return [
            artifact.model_copy()
            for artifact in self._artifacts.get(migration_id, [])
            if artifact_type is None or artifact.type == artifact_type
        ]
