from qualitygate.migrations.populate_condition_metric_uuid import PopulateConditionsMetricUuid
from qualitygate.migrations.runner import DATA_CHANGES, MigrationRunner
from qualitygate.migrations.step import DataChange, MassUpdate, MassUpdateResult

__all__ = [
    "DATA_CHANGES",
    "DataChange",
    "MassUpdate",
    "MassUpdateResult",
    "MigrationRunner",
    "PopulateConditionsMetricUuid",
]
