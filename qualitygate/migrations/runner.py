from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from qualitygate.db import SessionLocal
from qualitygate.migrations.populate_condition_metric_uuid import PopulateConditionsMetricUuid
from qualitygate.migrations.step import DataChange
from qualitygate.models import SchemaMigrationModel


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

# Applied in list order.
DATA_CHANGES: list[DataChange] = [
    PopulateConditionsMetricUuid(),
]


def _batch_size() -> int:
    raw = os.getenv("QUALITYGATE_MIGRATION_BATCH_SIZE")
    if not raw:
        return DEFAULT_BATCH_SIZE
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"QUALITYGATE_MIGRATION_BATCH_SIZE must be an integer, got {raw!r}") from exc
    if value < 1:
        raise RuntimeError("QUALITYGATE_MIGRATION_BATCH_SIZE must be positive")
    return value


class MigrationRunner:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        changes: list[DataChange] | None = None,
        batch_size: int | None = None,
    ) -> None:
        if batch_size is not None and batch_size < 1:
            raise RuntimeError(f"batch_size must be positive, got {batch_size}")
        self._session_factory = session_factory
        self._changes = list(DATA_CHANGES if changes is None else changes)
        # None defers to QUALITYGATE_MIGRATION_BATCH_SIZE when a step runs.
        self._batch_size = batch_size
        versions = [change.version for change in self._changes]
        if len(set(versions)) != len(versions):
            raise RuntimeError(f"Duplicate data change versions: {versions}")

    def versions(self) -> list[str]:
        return [change.version for change in self._changes]

    def applied(self) -> set[str]:
        with self._session_factory() as session:
            return set(session.execute(select(SchemaMigrationModel.version)).scalars().all())

    def pending(self) -> list[str]:
        applied = self.applied()
        return [change.version for change in self._changes if change.version not in applied]

    def baseline(self) -> list[str]:
        """Record every pending change as applied without executing it."""
        with self._session_factory.begin() as session:
            applied = set(session.execute(select(SchemaMigrationModel.version)).scalars().all())
            marked = [change.version for change in self._changes if change.version not in applied]
            now = datetime.now(timezone.utc)
            for version in marked:
                session.add(SchemaMigrationModel(version=version, applied_at=now))
        if marked:
            logger.info("Baselined data migrations on a fresh schema: %s", ", ".join(marked))
        return marked

    def run_pending(self) -> dict[str, dict[str, int]]:
        results: dict[str, dict[str, int]] = {}
        for version in self.pending():
            results[version] = self.run(version)
        if not results:
            logger.info("No pending data migrations")
        return results

    def run(self, version: str, force: bool = False) -> dict[str, int]:
        change = self._change(version)
        with self._session_factory.begin() as session:
            record = session.get(SchemaMigrationModel, version)
            if record is not None and not force:
                logger.info("Data migration %s already applied at %s", version, record.applied_at)
                return {}

            logger.info("Running data migration %s: %s", version, change.description)
            stats = change.execute(session, batch_size=self._batch_size or _batch_size())
            if record is None:
                session.add(SchemaMigrationModel(version=version, applied_at=datetime.now(timezone.utc)))
            else:
                record.applied_at = datetime.now(timezone.utc)
        logger.info("Data migration %s done: %s", version, stats)
        return stats

    def _change(self, version: str) -> DataChange:
        for change in self._changes:
            if change.version == version:
                return change
        raise KeyError(f"Unknown data migration: {version}")
