from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from qualitygate.migrations.step import DataChange, MassUpdate
from qualitygate.models import MetricModel, QualityGateConditionModel


logger = logging.getLogger(__name__)


class PopulateConditionsMetricUuid(DataChange):
    """Backfill ``quality_gate_conditions.metric_uuid`` from the legacy ``metric_id``.

    Conditions with neither a legacy metric id nor a metric uuid cannot be
    recovered and are deleted first. Rows whose ``metric_id`` matches no
    metric keep their ``metric_uuid`` and are left for the referential cleaner.
    """

    version = "0001_populate_quality_gate_conditions_metric_uuid"
    description = "Populate quality_gate_conditions.metric_uuid from metrics.uuid"

    def execute(self, session: Session, *, batch_size: int) -> dict[str, int]:
        deleted = session.execute(
            delete(QualityGateConditionModel)
            .where(
                QualityGateConditionModel.metric_id.is_(None),
                QualityGateConditionModel.metric_uuid.is_(None),
            )
            .execution_options(synchronize_session=False)
        ).rowcount

        mass_update = MassUpdate(
            session,
            model=QualityGateConditionModel,
            key_column=QualityGateConditionModel.uuid,
            select=select(QualityGateConditionModel.uuid, MetricModel.uuid)
            .join(MetricModel, QualityGateConditionModel.metric_id == MetricModel.id)
            .where(
                or_(
                    QualityGateConditionModel.metric_uuid.is_(None),
                    QualityGateConditionModel.metric_uuid != MetricModel.uuid,
                )
            ),
            batch_size=batch_size,
        )
        result = mass_update.execute(lambda row: {"uuid": row[0], "metric_uuid": row[1]})

        logger.info(
            "Deleted %d conditions without metric, populated metric_uuid on %d conditions",
            deleted,
            result.rows_updated,
        )
        return {"deleted": deleted, "updated": result.rows_updated}
