"""Custom measures: manually entered metric values on a project.

Both operations run in a single transaction: entity lookups, the permission
check, value validation and the write either all happen or none do.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from qualitygate.auth import AuthContext
from qualitygate.auth.permissions import check_component_admin
from qualitygate.db import SessionLocal
from qualitygate.errors import BadRequest, ConstraintViolation, InvalidState, NotFound
from qualitygate.models import (
    ComponentModel,
    CustomMeasureModel,
    MetricModel,
    MetricValueType,
    UserModel,
)


logger = logging.getLogger(__name__)

LEVEL_VALUES = ("OK", "WARN", "ERROR")

_INTEGER_TYPES = {MetricValueType.INT, MetricValueType.MILLISEC, MetricValueType.WORK_DUR}
_DECIMAL_TYPES = {MetricValueType.FLOAT, MetricValueType.PERCENT, MetricValueType.RATING}
_TEXT_TYPES = {MetricValueType.STRING, MetricValueType.DATA, MetricValueType.DISTRIB}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def parse_measure_value(raw: str, val_type: str) -> tuple[float | None, str | None]:
    """Return the ``(value, text_value)`` pair stored for *raw* under *val_type*."""
    metric_type = MetricValueType(val_type)
    try:
        if metric_type in _INTEGER_TYPES:
            return float(int(raw)), None
        if metric_type in _DECIMAL_TYPES:
            return float(raw), None
    except ValueError:
        raise BadRequest(f"Value '{raw}' must be of type {metric_type.value}") from None
    if metric_type == MetricValueType.BOOL:
        lowered = raw.lower()
        if lowered not in ("true", "false"):
            raise BadRequest(f"Value '{raw}' must be one of: true, false")
        return (1.0 if lowered == "true" else 0.0), None
    if metric_type == MetricValueType.LEVEL:
        if raw not in LEVEL_VALUES:
            raise BadRequest(f"Value '{raw}' must be one of: {', '.join(LEVEL_VALUES)}")
        return None, raw
    if metric_type in _TEXT_TYPES:
        return None, raw
    raise BadRequest(f"Metric type {metric_type.value} is not supported for custom measures")


def format_measure_value(measure: CustomMeasureModel, metric: MetricModel) -> str | None:
    metric_type = MetricValueType(metric.val_type)
    if metric_type == MetricValueType.BOOL:
        return None if measure.value is None else ("true" if measure.value == 1.0 else "false")
    if metric_type in _INTEGER_TYPES:
        return None if measure.value is None else str(int(measure.value))
    if metric_type in _DECIMAL_TYPES:
        return None if measure.value is None else str(measure.value)
    return measure.text_value


def _custom_measure_to_dict(
    measure: CustomMeasureModel,
    metric: MetricModel,
    component: ComponentModel,
    user: UserModel,
) -> dict[str, Any]:
    return {
        "id": measure.uuid,
        "metric": {
            "id": metric.uuid,
            "key": metric.key,
            "type": metric.val_type,
            "name": metric.name,
            "domain": metric.domain,
        },
        "project_id": component.uuid,
        "project_key": component.key,
        "value": format_measure_value(measure, metric),
        "description": measure.description,
        "user": {"login": user.login, "name": user.name},
        "created_at": _iso(measure.created_at),
        "updated_at": _iso(measure.updated_at),
    }


class CustomMeasureService:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def create(
        self,
        auth: AuthContext,
        *,
        project_key: str,
        metric_key: str,
        value: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        with self._session_factory.begin() as session:
            component = session.execute(
                select(ComponentModel).where(ComponentModel.key == project_key)
            ).scalar_one_or_none()
            if component is None:
                raise NotFound(f"Project '{project_key}' not found", code="PROJECT_NOT_FOUND")
            check_component_admin(session, auth, component.uuid)

            metric = session.execute(
                select(MetricModel).where(MetricModel.key == metric_key)
            ).scalar_one_or_none()
            if metric is None:
                raise NotFound(f"Metric with key '{metric_key}' does not exist", code="METRIC_NOT_FOUND")
            if not metric.user_managed or not metric.enabled:
                raise BadRequest(f"Metric '{metric_key}' is not an enabled custom metric")

            duplicate = session.execute(
                select(CustomMeasureModel.uuid).where(
                    CustomMeasureModel.metric_uuid == metric.uuid,
                    CustomMeasureModel.component_uuid == component.uuid,
                )
            ).first()
            if duplicate is not None:
                raise ConstraintViolation(
                    f"A measure already exists for project '{project_key}' and metric '{metric_key}'"
                )

            user = self._current_user(session, auth)
            numeric, text = parse_measure_value(value, metric.val_type)
            now = self._clock()
            measure = CustomMeasureModel(
                metric_uuid=metric.uuid,
                component_uuid=component.uuid,
                value=numeric,
                text_value=text,
                description=description,
                user_uuid=user.uuid,
                created_at=now,
                updated_at=now,
            )
            session.add(measure)
            session.flush()
            logger.debug("Created custom measure %s on %s", measure.uuid, component.key)
            return _custom_measure_to_dict(measure, metric, component, user)

    def update(
        self,
        auth: AuthContext,
        measure_uuid: str,
        *,
        value: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        if value is None and description is None:
            raise BadRequest("Value or description must be provided.")

        with self._session_factory.begin() as session:
            measure = session.get(CustomMeasureModel, measure_uuid)
            if measure is None:
                raise NotFound(
                    f"Custom measure with id '{measure_uuid}' does not exist",
                    code="CUSTOM_MEASURE_NOT_FOUND",
                )
            metric = session.execute(
                select(MetricModel).where(MetricModel.uuid == measure.metric_uuid)
            ).scalar_one_or_none()
            if metric is None:
                raise InvalidState(f"Metric with uuid '{measure.metric_uuid}' does not exist")
            component = session.get(ComponentModel, measure.component_uuid)
            if component is None:
                raise NotFound(
                    f"Component with uuid '{measure.component_uuid}' not found",
                    code="COMPONENT_NOT_FOUND",
                )
            check_component_admin(session, auth, component.uuid)
            user = self._current_user(session, auth)

            if value is not None:
                measure.value, measure.text_value = parse_measure_value(value, metric.val_type)
            if description is not None:
                measure.description = description
            measure.user_uuid = user.uuid
            measure.updated_at = self._clock()
            session.flush()
            logger.debug("Updated custom measure %s by %s", measure.uuid, user.login)
            return _custom_measure_to_dict(measure, metric, component, user)

    def _current_user(self, session: Session, auth: AuthContext) -> UserModel:
        if auth.user_uuid is None:
            raise InvalidState("User uuid should not be null")
        user = session.get(UserModel, auth.user_uuid)
        if user is None:
            raise InvalidState(f"User with uuid '{auth.user_uuid}' does not exist")
        return user


SERVICE = CustomMeasureService()
