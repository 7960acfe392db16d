"""JSON file migration repository.

One document per migration at ``{data_dir}/migrations/{id}.json`` holding the
record and its artifacts. The last issued id is kept in ``{data_dir}/last_id`` so
ids of deleted records are never handed out again. Every write goes to a temp
file that is then moved into place with ``os.replace`` so readers never see a
partial file.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any

import structlog

from ..models.enums import ArtifactType
from ..models.migration import Artifact, MigrationRecord
from .interface import MigrationRepository

logger = structlog.get_logger()


class JsonFileMigrationRepository(MigrationRepository):
    """File-backed repository suitable for a single Site Mover process."""

    def __init__(self, data_dir: Path | str):
        self.records_dir = Path(data_dir) / "migrations"
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self.sequence_path = Path(data_dir) / "last_id"
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="json_repository", path=str(self.records_dir))

    def _document_path(self, migration_id: int) -> Path:
        return self.records_dir / f"{migration_id}.json"

    def _read_document(self, migration_id: int) -> dict[str, Any] | None:
        path = self._document_path(migration_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_document(self, migration_id: int, document: dict[str, Any]) -> None:
        path = self._document_path(migration_id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    def _existing_ids(self) -> list[int]:
        return sorted(int(path.stem) for path in self.records_dir.glob("*.json") if path.stem.isdigit())

    def _next_id(self) -> int:
        existing = self._existing_ids()
        last_id = existing[-1] if existing else 0
        if self.sequence_path.exists():
            stored = self.sequence_path.read_text(encoding="utf-8").strip()
            last_id = max(last_id, int(stored or 0))

        next_id = last_id + 1
        tmp_path = self.sequence_path.with_suffix(".tmp")
        tmp_path.write_text(str(next_id), encoding="utf-8")
        os.replace(tmp_path, self.sequence_path)
        return next_id

    async def create(self, record: MigrationRecord) -> MigrationRecord:
        async with self._lock:
            record.id = await asyncio.to_thread(self._next_id)
            document = {"record": record.model_dump(mode="json"), "artifacts": []}
            await asyncio.to_thread(self._write_document, record.id, document)
        self.logger.debug("Migration record created", migration_id=record.id)
        return record

    async def get(self, migration_id: int) -> MigrationRecord | None:
        document = await asyncio.to_thread(self._read_document, migration_id)
        if document is None:
            return None
        return MigrationRecord.model_validate(document["record"])

    async def save(self, record: MigrationRecord) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._read_document, record.id)
            artifacts = document["artifacts"] if document else []
            await asyncio.to_thread(
                self._write_document,
                record.id,
                {"record": record.model_dump(mode="json"), "artifacts": artifacts},
            )

    async def list_for_site(
        self, source_site_id: int, limit: int | None = None
    ) -> list[MigrationRecord]:
        ids = await asyncio.to_thread(self._existing_ids)
        records: list[MigrationRecord] = []
        for migration_id in reversed(ids):
            record = await self.get(migration_id)
            if record is None or record.source_site_id != source_site_id:
                continue
            records.append(record)
            if limit is not None and len(records) >= limit:
                break
        return records

    async def delete(self, migration_id: int) -> None:
        async with self._lock:
            path = self._document_path(migration_id)
            await asyncio.to_thread(path.unlink, missing_ok=True)
        self.logger.info("Migration record deleted", migration_id=migration_id)

    async def add_artifact(self, artifact: Artifact) -> Artifact:
        async with self._lock:
            document = await asyncio.to_thread(self._read_document, artifact.migration_id)
            if document is None:
                raise KeyError(f"Migration #{artifact.migration_id} does not exist")
            artifacts = document["artifacts"]
            artifact.id = max((a["id"] for a in artifacts), default=0) + 1
            artifacts.append(artifact.model_dump(mode="json"))
            await asyncio.to_thread(self._write_document, artifact.migration_id, document)
        return artifact

    async def list_artifacts(
        self, migration_id: int, artifact_type: ArtifactType | None = None
    ) -> list[Artifact]:
        document = await asyncio.to_thread(self._read_document, migration_id)
        if document is None:
            return []
        artifacts = [Artifact.model_validate(data) for data in document["artifacts"]]
        if artifact_type is not None:
            artifacts = [a for a in artifacts if a.type == artifact_type]
        return artifacts
