from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from qualitygate.db import SessionLocal, init_db, reset_db
from qualitygate.errors import ConstraintViolation, NotFound
from qualitygate.models import (
    ComponentModel,
    ComponentPermissionModel,
    MetricModel,
    MetricValueType,
    QualityGateConditionModel,
    QualityGateModel,
    UserModel,
)


logger = logging.getLogger(__name__)

CONDITION_REQUIRED_FIELDS = ("quality_gate_id", "metric_uuid", "operator", "error_threshold")
CONDITION_MUTABLE_FIELDS = ("metric_uuid", "metric_id", "operator", "error_threshold")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def _metric_to_dict(model: MetricModel) -> dict[str, Any]:
    return {
        "id": model.id,
        "uuid": model.uuid,
        "key": model.key,
        "name": model.name,
        "val_type": model.val_type,
        "domain": model.domain,
        "enabled": model.enabled,
        "user_managed": model.user_managed,
    }


def _quality_gate_to_dict(model: QualityGateModel) -> dict[str, Any]:
    return {
        "id": model.id,
        "uuid": model.uuid,
        "name": model.name,
        "is_built_in": model.is_built_in,
        "created_at": _iso(model.created_at),
        "updated_at": _iso(model.updated_at),
    }


def _condition_to_dict(model: QualityGateConditionModel) -> dict[str, Any]:
    return {
        "uuid": model.uuid,
        "quality_gate_id": model.quality_gate_id,
        "metric_id": model.metric_id,
        "metric_uuid": model.metric_uuid,
        "operator": model.operator,
        "error_threshold": model.error_threshold,
        "created_at": _iso(model.created_at),
        "updated_at": _iso(model.updated_at),
    }


def _component_to_dict(model: ComponentModel) -> dict[str, Any]:
    return {
        "uuid": model.uuid,
        "key": model.key,
        "name": model.name,
        "qualifier": model.qualifier,
    }


def _user_to_dict(model: UserModel) -> dict[str, Any]:
    return {
        "uuid": model.uuid,
        "login": model.login,
        "name": model.name,
        "active": model.active,
        "global_permissions": list(model.global_permissions or []),
        "created_at": _iso(model.created_at),
    }


def _legacy_metric_id(session: Session, metric_uuid: str) -> int | None:
    return session.execute(
        select(MetricModel.id).where(MetricModel.uuid == metric_uuid)
    ).scalar_one_or_none()


class SqlStore:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        init_db()

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory

    def reset(self) -> None:
        reset_db()

    # Metrics

    def insert_metric(self, payload: dict[str, Any]) -> dict[str, Any]:
        with self._session_factory.begin() as session:
            existing = session.execute(
                select(MetricModel.id).where(MetricModel.key == payload["key"])
            ).first()
            if existing is not None:
                raise ConstraintViolation(
                    f"Metric with key '{payload['key']}' already exists", code="METRIC_KEY_EXISTS"
                )
            metric = MetricModel(
                key=payload["key"],
                name=payload.get("name") or payload["key"],
                val_type=MetricValueType(payload.get("val_type", MetricValueType.INT.value)).value,
                domain=payload.get("domain"),
                enabled=payload.get("enabled", True),
                user_managed=payload.get("user_managed", False),
            )
            if payload.get("uuid"):
                metric.uuid = payload["uuid"]
            session.add(metric)
            session.flush()
            return _metric_to_dict(metric)

    def get_metric(self, metric_uuid: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            metric = session.execute(
                select(MetricModel).where(MetricModel.uuid == metric_uuid)
            ).scalar_one_or_none()
            if metric is None:
                return None
            return _metric_to_dict(metric)

    def set_metric_enabled(self, metric_uuid: str, enabled: bool) -> dict[str, Any]:
        with self._session_factory.begin() as session:
            metric = session.execute(
                select(MetricModel).where(MetricModel.uuid == metric_uuid)
            ).scalar_one_or_none()
            if metric is None:
                raise NotFound(f"Metric with uuid '{metric_uuid}' does not exist", code="METRIC_NOT_FOUND")
            metric.enabled = enabled
            session.flush()
            return _metric_to_dict(metric)

    # Quality gates

    def create_quality_gate(self, name: str, is_built_in: bool = False) -> dict[str, Any]:
        with self._session_factory.begin() as session:
            existing = session.execute(
                select(QualityGateModel.id).where(QualityGateModel.name == name)
            ).first()
            if existing is not None:
                raise ConstraintViolation(
                    f"Quality gate '{name}' already exists", code="QUALITY_GATE_NAME_EXISTS"
                )
            now = self._clock()
            gate = QualityGateModel(name=name, is_built_in=is_built_in, created_at=now, updated_at=now)
            session.add(gate)
            session.flush()
            return _quality_gate_to_dict(gate)

    def get_quality_gate(self, quality_gate_id: int) -> dict[str, Any] | None:
        with self._session_factory() as session:
            gate = session.get(QualityGateModel, quality_gate_id)
            if gate is None:
                return None
            return _quality_gate_to_dict(gate)

    # Conditions

    def insert_condition(self, payload: dict[str, Any]) -> dict[str, Any]:
        missing = [field for field in CONDITION_REQUIRED_FIELDS if payload.get(field) is None]
        if missing:
            raise ConstraintViolation(f"Missing required condition fields: {', '.join(missing)}")

        with self._session_factory.begin() as session:
            now = self._clock()
            if "metric_id" in payload:
                metric_id = payload["metric_id"]
            else:
                metric_id = _legacy_metric_id(session, payload["metric_uuid"])
            condition = QualityGateConditionModel(
                quality_gate_id=payload["quality_gate_id"],
                metric_id=metric_id,
                metric_uuid=payload["metric_uuid"],
                operator=payload["operator"],
                error_threshold=payload["error_threshold"],
                created_at=now,
                updated_at=now,
            )
            session.add(condition)
            session.flush()
            logger.debug(
                "Inserted condition %s on quality gate %s", condition.uuid, condition.quality_gate_id
            )
            return _condition_to_dict(condition)

    def select_condition_by_uuid(self, condition_uuid: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            condition = session.get(QualityGateConditionModel, condition_uuid)
            if condition is None:
                return None
            return _condition_to_dict(condition)

    def select_conditions_for_quality_gate(self, quality_gate_id: int) -> list[dict[str, Any]]:
        with self._session_factory() as session:
            conditions = session.execute(
                select(QualityGateConditionModel)
                .where(QualityGateConditionModel.quality_gate_id == quality_gate_id)
                .order_by(QualityGateConditionModel.created_at.asc(), QualityGateConditionModel.uuid.asc())
            ).scalars().all()
            return [_condition_to_dict(condition) for condition in conditions]

    def update_condition(self, payload: dict[str, Any]) -> dict[str, Any]:
        condition_uuid = payload.get("uuid")
        with self._session_factory.begin() as session:
            condition = session.get(QualityGateConditionModel, condition_uuid) if condition_uuid else None
            if condition is None:
                raise NotFound(
                    f"Condition with uuid '{condition_uuid}' does not exist", code="CONDITION_NOT_FOUND"
                )

            parent_id = payload.get("quality_gate_id")
            if parent_id is not None and parent_id != condition.quality_gate_id:
                raise ConstraintViolation("A condition cannot be moved to another quality gate")

            for field in CONDITION_MUTABLE_FIELDS:
                if field not in payload:
                    continue
                value = payload[field]
                if value is None and field in CONDITION_REQUIRED_FIELDS:
                    raise ConstraintViolation(f"Condition field '{field}' cannot be null")
                setattr(condition, field, value)
            if "metric_uuid" in payload and "metric_id" not in payload:
                # Keep the legacy id in step so a re-run backfill cannot revert the metric.
                condition.metric_id = _legacy_metric_id(session, condition.metric_uuid)

            condition.updated_at = self._clock()
            session.flush()
            logger.debug("Updated condition %s", condition.uuid)
            return _condition_to_dict(condition)

    def delete_condition(self, condition_uuid: str) -> bool:
        with self._session_factory.begin() as session:
            result = session.execute(
                delete(QualityGateConditionModel).where(QualityGateConditionModel.uuid == condition_uuid)
            )
            deleted = result.rowcount > 0
        if deleted:
            logger.debug("Deleted condition %s", condition_uuid)
        return deleted

    # Components, users and permissions

    def create_component(self, key: str, name: str, qualifier: str = "TRK") -> dict[str, Any]:
        with self._session_factory.begin() as session:
            component = ComponentModel(key=key, name=name, qualifier=qualifier)
            session.add(component)
            session.flush()
            return _component_to_dict(component)

    def create_user(
        self,
        login: str,
        name: str | None = None,
        key_hash: str | None = None,
        global_permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        with self._session_factory.begin() as session:
            user = UserModel(
                login=login,
                name=name,
                api_key_hash=key_hash,
                global_permissions=list(global_permissions or []),
                created_at=self._clock(),
            )
            session.add(user)
            session.flush()
            return _user_to_dict(user)

    def delete_user(self, user_uuid: str) -> None:
        with self._session_factory.begin() as session:
            session.execute(delete(UserModel).where(UserModel.uuid == user_uuid))

    def grant_component_permission(self, user_uuid: str, component_uuid: str, permission: str) -> None:
        with self._session_factory.begin() as session:
            existing = session.execute(
                select(ComponentPermissionModel.id).where(
                    ComponentPermissionModel.user_uuid == user_uuid,
                    ComponentPermissionModel.component_uuid == component_uuid,
                    ComponentPermissionModel.permission == permission,
                )
            ).first()
            if existing is None:
                session.add(
                    ComponentPermissionModel(
                        user_uuid=user_uuid, component_uuid=component_uuid, permission=permission
                    )
                )


STORE = SqlStore()
