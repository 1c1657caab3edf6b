from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from qualitygate.auth import AuthContext, get_auth_context
from qualitygate.auth.permissions import require_global_permission
from qualitygate.cleanup import ReferentialCleaner
from qualitygate.custom_measures import SERVICE as CUSTOM_MEASURES
from qualitygate.errors import NotFound, QualityGateError
from qualitygate.logging_config import configure_logging
from qualitygate.migrations import MigrationRunner
from qualitygate.models import GlobalPermission
from qualitygate.schemas import (
    CleanConditionsResponse,
    Condition,
    CreateConditionRequest,
    CreateCustomMeasureRequest,
    CreateMetricRequest,
    CreateQualityGateRequest,
    CustomMeasure,
    ErrorResponse,
    ListConditionsResponse,
    Metric,
    QualityGate,
    QualityGateDetails,
    UpdateConditionRequest,
    UpdateCustomMeasureRequest,
)
from qualitygate.store import STORE


logger = logging.getLogger(__name__)

_GATE_ADMIN = GlobalPermission.ADMINISTER_QUALITY_GATES.value


def _migrate_on_startup() -> bool:
    return os.getenv("QUALITYGATE_MIGRATE_ON_STARTUP", "").lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    if _migrate_on_startup():
        MigrationRunner(STORE.session_factory).run_pending()
    yield


app = FastAPI(title="Quality Gate Store", lifespan=lifespan)


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(QualityGateError)
async def quality_gate_error_handler(request: Request, exc: QualityGateError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=ErrorResponse(error=exc.to_dict()).model_dump(exclude_none=True),
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Metrics


@app.post("/v1/metrics", response_model=Metric, status_code=status.HTTP_201_CREATED)
def create_metric(payload: CreateMetricRequest, auth: AuthContext = Depends(get_auth_context)) -> Metric:
    require_global_permission(auth, _GATE_ADMIN)
    metric = STORE.insert_metric(payload.model_dump(mode="json"))
    return Metric(**metric)


@app.get("/v1/metrics/{metric_uuid}", response_model=Metric)
def get_metric(metric_uuid: str, _: AuthContext = Depends(get_auth_context)) -> Metric:
    metric = STORE.get_metric(metric_uuid)
    if metric is None:
        raise NotFound(f"Metric with uuid '{metric_uuid}' does not exist", code="METRIC_NOT_FOUND")
    return Metric(**metric)


# Quality gates and conditions


def _require_quality_gate(quality_gate_id: int) -> dict:
    gate = STORE.get_quality_gate(quality_gate_id)
    if gate is None:
        raise NotFound(f"No quality gate has been found for id {quality_gate_id}", code="QUALITY_GATE_NOT_FOUND")
    return gate


@app.post("/v1/quality-gates", response_model=QualityGate, status_code=status.HTTP_201_CREATED)
def create_quality_gate(
    payload: CreateQualityGateRequest, auth: AuthContext = Depends(get_auth_context)
) -> QualityGate:
    require_global_permission(auth, _GATE_ADMIN)
    gate = STORE.create_quality_gate(payload.name)
    return QualityGate(**gate)


@app.get("/v1/quality-gates/{quality_gate_id}", response_model=QualityGateDetails)
def get_quality_gate(quality_gate_id: int, _: AuthContext = Depends(get_auth_context)) -> QualityGateDetails:
    gate = _require_quality_gate(quality_gate_id)
    conditions = STORE.select_conditions_for_quality_gate(quality_gate_id)
    return QualityGateDetails(**gate, conditions=[Condition(**item) for item in conditions])


@app.post(
    "/v1/quality-gates/{quality_gate_id}/conditions",
    response_model=Condition,
    status_code=status.HTTP_201_CREATED,
)
def create_condition(
    quality_gate_id: int,
    payload: CreateConditionRequest,
    auth: AuthContext = Depends(get_auth_context),
) -> Condition:
    require_global_permission(auth, _GATE_ADMIN)
    _require_quality_gate(quality_gate_id)
    metric = STORE.get_metric(payload.metric_uuid)
    if metric is None:
        raise NotFound(f"Metric with uuid '{payload.metric_uuid}' does not exist", code="METRIC_NOT_FOUND")
    condition = STORE.insert_condition(
        {"quality_gate_id": quality_gate_id, "metric_id": metric["id"], **payload.model_dump()}
    )
    return Condition(**condition)


@app.get("/v1/quality-gates/{quality_gate_id}/conditions", response_model=ListConditionsResponse)
def list_conditions(quality_gate_id: int, _: AuthContext = Depends(get_auth_context)) -> ListConditionsResponse:
    items = STORE.select_conditions_for_quality_gate(quality_gate_id)
    return ListConditionsResponse(items=[Condition(**item) for item in items])


@app.post("/v1/conditions/clean", response_model=CleanConditionsResponse)
def clean_conditions(auth: AuthContext = Depends(get_auth_context)) -> CleanConditionsResponse:
    require_global_permission(auth, _GATE_ADMIN)
    deleted = ReferentialCleaner(STORE.session_factory).clean_invalid_references()
    return CleanConditionsResponse(deleted=deleted)


@app.get("/v1/conditions/{condition_uuid}", response_model=Condition)
def get_condition(condition_uuid: str, _: AuthContext = Depends(get_auth_context)) -> Condition:
    condition = STORE.select_condition_by_uuid(condition_uuid)
    if condition is None:
        raise NotFound(f"No quality gate condition with uuid '{condition_uuid}'", code="CONDITION_NOT_FOUND")
    return Condition(**condition)


@app.post("/v1/conditions/{condition_uuid}", response_model=Condition)
def update_condition(
    condition_uuid: str,
    payload: UpdateConditionRequest,
    auth: AuthContext = Depends(get_auth_context),
) -> Condition:
    require_global_permission(auth, _GATE_ADMIN)
    changes = payload.model_dump(exclude_none=True)
    if "metric_uuid" in changes:
        metric = STORE.get_metric(changes["metric_uuid"])
        if metric is None:
            raise NotFound(f"Metric with uuid '{changes['metric_uuid']}' does not exist", code="METRIC_NOT_FOUND")
        changes["metric_id"] = metric["id"]
    condition = STORE.update_condition({"uuid": condition_uuid, **changes})
    return Condition(**condition)


@app.delete("/v1/conditions/{condition_uuid}", status_code=status.HTTP_204_NO_CONTENT)
def delete_condition(condition_uuid: str, auth: AuthContext = Depends(get_auth_context)) -> Response:
    require_global_permission(auth, _GATE_ADMIN)
    STORE.delete_condition(condition_uuid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Custom measures


@app.post("/v1/custom-measures", response_model=CustomMeasure, status_code=status.HTTP_201_CREATED)
def create_custom_measure(
    payload: CreateCustomMeasureRequest, auth: AuthContext = Depends(get_auth_context)
) -> CustomMeasure:
    measure = CUSTOM_MEASURES.create(
        auth,
        project_key=payload.project_key,
        metric_key=payload.metric_key,
        value=payload.value,
        description=payload.description,
    )
    return CustomMeasure(**measure)


@app.post("/v1/custom-measures/{measure_id}", response_model=CustomMeasure)
def update_custom_measure(
    measure_id: str,
    payload: UpdateCustomMeasureRequest,
    auth: AuthContext = Depends(get_auth_context),
) -> CustomMeasure:
    measure = CUSTOM_MEASURES.update(
        auth,
        measure_id,
        value=payload.value,
        description=payload.description,
    )
    return CustomMeasure(**measure)
