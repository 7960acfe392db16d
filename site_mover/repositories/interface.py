"""Migration record repository interface."""

from abc import ABC, abstractmethod

from ..models.enums import ArtifactType
from ..models.migration import Artifact, MigrationRecord


class MigrationRepository(ABC):
    """Durable store for migration records and their artifacts.

    Every ``save`` must be durable before it returns so that observers can
    poll pipeline progress while a migration is running.
    """

    @abstractmethod
    async def create(self, record: MigrationRecord) -> MigrationRecord:
        """Persist a new record and return it with its id assigned."""

    @abstractmethod
    async def get(self, migration_id: int) -> MigrationRecord | None: ...

    @abstractmethod
    async def save(self, record: MigrationRecord) -> None: ...

    @abstractmethod
    async def list_for_site(
        self, source_site_id: int, limit: int | None = None
    ) -> list[MigrationRecord]:
        """Return records for a source instance, newest first."""

    @abstractmethod
    async def delete(self, migration_id: int) -> None:
        """Delete a record together with all of its artifacts."""

    @abstractmethod
    async def add_artifact(self, artifact: Artifact) -> Artifact: ...

    @abstractmethod
    async def list_artifacts(
        self, migration_id: int, artifact_type: ArtifactType | None = None
    ) -> list[Artifact]:
        """Return artifacts of a migration in creation order."""

    async def latest(
        self, source_site_id: int, target_site_id: int | None = None
    ) -> MigrationRecord | None:
        """Return the newest record for a source, optionally for one target instance."""
        for record in await self.list_for_site(source_site_id):
            if target_site_id is None or record.target_site_id == target_site_id:
                return record
        return None
