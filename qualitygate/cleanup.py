"""Removal of quality gate conditions whose metric is missing or disabled."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from qualitygate.db import SessionLocal
from qualitygate.models import MetricModel, QualityGateConditionModel


logger = logging.getLogger(__name__)


class ReferentialCleaner:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def clean_invalid_references(self) -> int:
        """Delete every condition that does not reference an existing, enabled metric.

        Conditions with a null ``metric_uuid`` are removed as well. The whole pass
        runs in one transaction and returns the number of deleted conditions.
        """
        enabled_metric_uuids = select(MetricModel.uuid).where(MetricModel.enabled.is_(True))
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(QualityGateConditionModel)
                .where(
                    (QualityGateConditionModel.metric_uuid.is_(None))
                    | (QualityGateConditionModel.metric_uuid.not_in(enabled_metric_uuids))
                )
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount
        logger.info("Removed %d quality gate conditions with invalid metrics", deleted)
        return deleted
