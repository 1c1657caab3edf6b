import pytest
from sqlalchemy.exc import OperationalError

from qualitygate.cleanup import ReferentialCleaner
from qualitygate.db import SessionLocal
from qualitygate.models import QualityGateConditionModel
from qualitygate.store import STORE


def _insert_metric(key: str, enabled: bool = True) -> dict:
    return STORE.insert_metric({"key": key, "name": key.title(), "enabled": enabled})


def _insert_condition(quality_gate_id: int, metric_uuid: str) -> dict:
    return STORE.insert_condition(
        {
            "quality_gate_id": quality_gate_id,
            "metric_uuid": metric_uuid,
            "operator": "GT",
            "error_threshold": "10",
        }
    )


def test_clean_removes_conditions_on_disabled_or_missing_metrics():
    enabled_metric = _insert_metric("coverage", enabled=True)
    disabled_metric = _insert_metric("complexity", enabled=False)
    condition1 = _insert_condition(1, enabled_metric["uuid"])
    condition2 = _insert_condition(1, disabled_metric["uuid"])
    condition3 = _insert_condition(1, "299")

    deleted = ReferentialCleaner().clean_invalid_references()

    assert deleted == 2
    assert STORE.select_condition_by_uuid(condition1["uuid"]) is not None
    assert STORE.select_condition_by_uuid(condition2["uuid"]) is None
    assert STORE.select_condition_by_uuid(condition3["uuid"]) is None


def test_clean_removes_conditions_without_metric_uuid():
    metric = _insert_metric("coverage")
    kept = _insert_condition(3, metric["uuid"])
    with SessionLocal.begin() as session:
        session.add(
            QualityGateConditionModel(
                quality_gate_id=3, metric_id=metric["id"], metric_uuid=None, operator="LT", error_threshold="1"
            )
        )

    assert ReferentialCleaner().clean_invalid_references() == 1
    assert [item["uuid"] for item in STORE.select_conditions_for_quality_gate(3)] == [kept["uuid"]]


def test_clean_keeps_valid_conditions_across_quality_gates():
    metric = _insert_metric("coverage")
    conditions = [_insert_condition(gate_id, metric["uuid"]) for gate_id in (1, 2, 3)]

    assert ReferentialCleaner().clean_invalid_references() == 0
    for condition in conditions:
        assert STORE.select_condition_by_uuid(condition["uuid"]) is not None


def test_clean_after_disabling_metric():
    metric = _insert_metric("coverage")
    condition = _insert_condition(1, metric["uuid"])

    STORE.set_metric_enabled(metric["uuid"], False)
    ReferentialCleaner().clean_invalid_references()

    assert STORE.select_condition_by_uuid(condition["uuid"]) is None


def test_clean_rolls_back_when_storage_fails(monkeypatch):
    metric = _insert_metric("coverage", enabled=False)
    condition = _insert_condition(1, metric["uuid"])

    class FailingSession:
        def __init__(self, session):
            self._session = session

        def execute(self, *args, **kwargs):
            self._session.execute(*args, **kwargs)
            raise OperationalError("DELETE", {}, Exception("connection lost"))

        def __getattr__(self, name):
            return getattr(self._session, name)

    class FailingFactory:
        def begin(self):
            factory_cm = SessionLocal.begin()

            class _Ctx:
                def __enter__(self_inner):
                    return FailingSession(factory_cm.__enter__())

                def __exit__(self_inner, *exc):
                    return factory_cm.__exit__(*exc)

            return _Ctx()

    with pytest.raises(OperationalError):
        ReferentialCleaner(FailingFactory()).clean_invalid_references()

    assert STORE.select_condition_by_uuid(condition["uuid"]) is not None
