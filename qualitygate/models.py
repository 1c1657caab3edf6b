from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class MetricValueType(str, Enum):
    INT = "INT"
    FLOAT = "FLOAT"
    PERCENT = "PERCENT"
    BOOL = "BOOL"
    MILLISEC = "MILLISEC"
    WORK_DUR = "WORK_DUR"
    RATING = "RATING"
    LEVEL = "LEVEL"
    STRING = "STRING"
    DATA = "DATA"
    DISTRIB = "DISTRIB"


class GlobalPermission(str, Enum):
    ADMINISTER = "admin"
    ADMINISTER_QUALITY_GATES = "gateadmin"


UUID_STR = String(40)
TEXT_LIST = JSON().with_variant(ARRAY(Text), "postgresql")


class MetricModel(Base):
    __tablename__ = "metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(UUID_STR, unique=True, nullable=False, default=_new_id)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    val_type: Mapped[str] = mapped_column(String(8), nullable=False, default=MetricValueType.INT.value)
    domain: Mapped[str | None] = mapped_column(String(64), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    user_managed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class QualityGateModel(Base):
    __tablename__ = "quality_gates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(UUID_STR, unique=True, nullable=False, default=_new_id)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    is_built_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


class QualityGateConditionModel(Base):
    __tablename__ = "quality_gate_conditions"

    uuid: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=_new_id)
    # Parent gates are referenced by id only; conditions may exist for any gate id.
    quality_gate_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    metric_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metric_uuid: Mapped[str | None] = mapped_column(UUID_STR, nullable=True)
    operator: Mapped[str | None] = mapped_column(String(3), nullable=True)
    error_threshold: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


class ComponentModel(Base):
    __tablename__ = "components"

    uuid: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=_new_id)
    key: Mapped[str] = mapped_column(String(400), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    qualifier: Mapped[str] = mapped_column(String(10), nullable=False, default="TRK")


class UserModel(Base):
    __tablename__ = "users"

    uuid: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=_new_id)
    login: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    api_key_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    global_permissions: Mapped[list[str]] = mapped_column(TEXT_LIST, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


class ComponentPermissionModel(Base):
    __tablename__ = "component_permissions"
    __table_args__ = (UniqueConstraint("user_uuid", "component_uuid", "permission"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_uuid: Mapped[str] = mapped_column(UUID_STR, nullable=False, index=True)
    component_uuid: Mapped[str] = mapped_column(UUID_STR, nullable=False)
    permission: Mapped[str] = mapped_column(String(64), nullable=False)


class CustomMeasureModel(Base):
    __tablename__ = "custom_measures"

    uuid: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=_new_id)
    metric_uuid: Mapped[str] = mapped_column(UUID_STR, nullable=False)
    component_uuid: Mapped[str] = mapped_column(UUID_STR, nullable=False, index=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    text_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_uuid: Mapped[str] = mapped_column(UUID_STR, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


class SchemaMigrationModel(Base):
    __tablename__ = "schema_migrations"

    version: Mapped[str] = mapped_column(String(128), primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
