"""Pydantic schemas for step runs."""

from datetime import datetime

from pydantic import BaseModel, Field

from nutaria.models.process import StepRunStatus


class StepNameOut(BaseModel):
    id: int
    code: str
    name: str

    model_config = {"from_attributes": True}


class ProcessStepOut(BaseModel):
    id: int
    process_id: int
    seq: int
    step_name_id: int | None = None
    step_code: str | None = None
    description: str | None = None
    requires_qc: bool = False
    can_be_skipped: bool = False
    default_location_id: int | None = None
    estimated_duration: int | None = None
    step_name: StepNameOut | None = None

    model_config = {"from_attributes": True}


class LocationOut(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class StepRunOut(BaseModel):
    """One step run, denormalised with its template, name and location.

    The same shape comes back whichever query path loaded it.
    """
    id: int
    process_lot_run_id: int
    process_step_id: int
    status: StepRunStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    performed_by: str | None = None
    location_id: int | None = None
    skipped_at: datetime | None = None
    skipped_by: str | None = None

    process_step: ProcessStepOut | None = None
    location: LocationOut | None = None
    # Flattened from process_step.step_name
    step_name: str | None = None
    step_code: str | None = None


class StepRunUpdate(BaseModel):
    """Partial update; only fields present in the body are written."""
    status: StepRunStatus | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    performed_by: str | None = Field(None, max_length=36)
    location_id: int | None = None
