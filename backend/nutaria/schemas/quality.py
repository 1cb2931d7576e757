"""Pydantic schemas for measurements, non-conformances, signoffs and step QC checks."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Metric = Literal["moisture_in", "moisture_out", "weight", "temp"]
Severity = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
SignoffRole = Literal["operator", "supervisor", "qa"]


# ── Measurements ─────────────────────────────────────────────

class MeasurementCreate(BaseModel):
    metric: Metric
    value: float
    unit: str = Field(..., min_length=1, max_length=20)
    # Defaults to now when omitted
    recorded_at: datetime | None = None


class MeasurementOut(BaseModel):
    id: int
    process_step_run_id: int
    metric: str
    value: float
    unit: str
    recorded_at: datetime

    model_config = {"from_attributes": True}


# ── Non-conformances ─────────────────────────────────────────

class NonConformanceCreate(BaseModel):
    nc_type: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    severity: Severity
    corrective_action: str | None = None


class NonConformanceOut(BaseModel):
    id: int
    process_step_run_id: int
    nc_type: str
    description: str
    severity: str
    corrective_action: str | None
    resolved: bool
    resolved_at: datetime | None

    model_config = {"from_attributes": True}


class NonConformanceListOut(BaseModel):
    unresolved: list[NonConformanceOut]
    resolved: list[NonConformanceOut]
    unresolved_count: int


# ── Signoffs ─────────────────────────────────────────────────

class SignoffCreate(BaseModel):
    role: SignoffRole


class SignoffOut(BaseModel):
    id: int
    process_lot_run_id: int
    role: str
    signed_by: str
    signed_at: datetime
    signed_by_name: str | None = None

    model_config = {"from_attributes": True}


class SignoffRoleOut(BaseModel):
    role: SignoffRole
    signoffs: list[SignoffOut]
    has_signed: bool


class SignoffBoardOut(BaseModel):
    process_lot_run_id: int
    roles: list[SignoffRoleOut]


# ── Step QC checks ───────────────────────────────────────────

class QualityParameterOut(BaseModel):
    id: int
    code: str
    name: str
    specification: str | None = None

    model_config = {"from_attributes": True}


class StepQualityItemSave(BaseModel):
    parameter_id: int
    # 1 reject, 2 needs improvement, 3 good, 4 N/A; 0 leaves it unscored
    score: int = Field(..., ge=0, le=4)
    remarks: str | None = None
    results: str | None = None


class StepQualityCheckSave(BaseModel):
    items: list[StepQualityItemSave] = Field(default_factory=list)
    remarks: str | None = None


class StepQualityItemOut(BaseModel):
    id: int
    parameter_id: int
    score: int
    remarks: str | None
    results: str | None
    quality_parameter: QualityParameterOut | None = None


class StepQualityCheckOut(BaseModel):
    id: int
    process_step_run_id: int
    status: str
    overall_score: float | None
    remarks: str | None
    evaluated_by: str | None
    evaluated_at: datetime | None

    model_config = {"from_attributes": True}


class StepQualityCheckViewOut(BaseModel):
    requires_qc: bool
    # Parameters configured on the step template
    parameters: list[QualityParameterOut]
    quality_check: StepQualityCheckOut | None
    items: list[StepQualityItemOut]
