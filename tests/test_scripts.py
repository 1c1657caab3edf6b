import logging
import sys

import pytest

from qualitygate.db import SessionLocal
from qualitygate.logging_config import configure_logging
from qualitygate.migrations import PopulateConditionsMetricUuid
from qualitygate.models import QualityGateConditionModel
from qualitygate.store import STORE
from scripts import clean_conditions, migrate


def test_migrate_lists_then_applies_pending(monkeypatch, capsys, pending_data_changes):
    metric = STORE.insert_metric({"key": "coverage"})
    with SessionLocal.begin() as session:
        session.add(QualityGateConditionModel(quality_gate_id=1, metric_id=metric["id"], operator="LT", error_threshold="80"))

    monkeypatch.setattr(sys, "argv", ["migrate.py", "--list"])
    migrate.main()
    assert f"pending  {PopulateConditionsMetricUuid.version}" in capsys.readouterr().out

    monkeypatch.setattr(sys, "argv", ["migrate.py", "--batch-size", "1"])
    migrate.main()
    assert "'updated': 1" in capsys.readouterr().out

    monkeypatch.setattr(sys, "argv", ["migrate.py"])
    migrate.main()
    assert "No pending migrations." in capsys.readouterr().out


def test_migrate_unknown_version_exits_non_zero(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["migrate.py", "--version", "9999_unknown"])

    with pytest.raises(SystemExit) as exc_info:
        migrate.main()

    assert exc_info.value.code == 1


def test_clean_conditions_reports_count(monkeypatch, capsys):
    STORE.insert_condition({"quality_gate_id": 1, "metric_uuid": "299", "operator": "GT", "error_threshold": "1"})
    monkeypatch.setattr(sys, "argv", ["clean_conditions.py"])

    clean_conditions.main()

    assert "Deleted 1 condition(s)." in capsys.readouterr().out


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(RuntimeError, match="VERBOSE"):
        configure_logging("verbose")

    configure_logging("debug")
    assert logging.getLogger("qualitygate").level == logging.DEBUG
