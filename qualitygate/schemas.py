from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from qualitygate.models import MetricValueType


class ApiError(BaseModel):
    code: str
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    error: ApiError


class CreateMetricRequest(BaseModel):
    key: str = Field(min_length=1, max_length=64)
    name: str | None = None
    val_type: MetricValueType = MetricValueType.INT
    domain: str | None = None
    enabled: bool = True
    user_managed: bool = False


class Metric(BaseModel):
    id: int
    uuid: str
    key: str
    name: str
    val_type: str
    domain: str | None = None
    enabled: bool
    user_managed: bool


class CreateQualityGateRequest(BaseModel):
    name: str = Field(min_length=1)


class QualityGate(BaseModel):
    id: int
    uuid: str
    name: str
    is_built_in: bool
    created_at: str
    updated_at: str


class CreateConditionRequest(BaseModel):
    metric_uuid: str = Field(min_length=1)
    operator: str = Field(min_length=1, max_length=3)
    error_threshold: str = Field(min_length=1, max_length=64)


class UpdateConditionRequest(BaseModel):
    metric_uuid: str | None = Field(default=None, min_length=1)
    operator: str | None = Field(default=None, min_length=1, max_length=3)
    error_threshold: str | None = Field(default=None, min_length=1, max_length=64)


class Condition(BaseModel):
    uuid: str
    quality_gate_id: int
    metric_id: int | None = None
    metric_uuid: str | None = None
    operator: str | None = None
    error_threshold: str | None = None
    created_at: str
    updated_at: str


class ListConditionsResponse(BaseModel):
    items: list[Condition]


class QualityGateDetails(QualityGate):
    conditions: list[Condition] = Field(default_factory=list)


class CleanConditionsResponse(BaseModel):
    deleted: int


class CreateCustomMeasureRequest(BaseModel):
    project_key: str = Field(min_length=1)
    metric_key: str = Field(min_length=1)
    value: str
    description: str | None = None


class UpdateCustomMeasureRequest(BaseModel):
    value: str | None = None
    description: str | None = None


class CustomMeasureMetric(BaseModel):
    id: str
    key: str
    type: str
    name: str
    domain: str | None = None


class CustomMeasureUser(BaseModel):
    login: str
    name: str | None = None


class CustomMeasure(BaseModel):
    id: str
    metric: CustomMeasureMetric
    project_id: str
    project_key: str
    value: str | None = None
    description: str | None = None
    user: CustomMeasureUser
    created_at: str
    updated_at: str
