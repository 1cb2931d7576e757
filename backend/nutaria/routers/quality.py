"""Measurements, non-conformances and step QC checks.

Endpoints:
    GET    /api/step-runs/{id}/measurements
    POST   /api/step-runs/{id}/measurements
    DELETE /api/step-runs/{id}/measurements/{measurement_id}
    GET    /api/step-runs/{id}/non-conformances
    POST   /api/step-runs/{id}/non-conformances
    POST   /api/non-conformances/{nc_id}/resolve     One way; a second call is 409
    GET    /api/step-runs/{id}/quality-check          Check, items and the step's parameters
    PUT    /api/step-runs/{id}/quality-check          Score and replace the check
"""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.quality import (
    MeasurementCreate,
    MeasurementOut,
    NonConformanceCreate,
    NonConformanceListOut,
    StepQualityCheckSave,
    StepQualityCheckViewOut,
)
from nutaria.services import quality

router = APIRouter()


class ResolveRequest(BaseModel):
    corrective_action: str | None = None


# ── Measurements ─────────────────────────────────────────────

@router.get("/step-runs/{step_run_id}/measurements", response_model=list[MeasurementOut])
async def list_measurements(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("quality.read")),
):
    return await quality.list_measurements(db, step_run_id)


@router.post(
    "/step-runs/{step_run_id}/measurements",
    response_model=list[MeasurementOut],
    status_code=status.HTTP_201_CREATED,
)
async def add_measurement(
    step_run_id: int,
    body: MeasurementCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("quality.write")),
):
    return await quality.add_measurement(db, step_run_id, body)


@router.delete(
    "/step-runs/{step_run_id}/measurements/{measurement_id}",
    response_model=list[MeasurementOut],
)
async def delete_measurement(
    step_run_id: int,
    measurement_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("quality.write")),
):
    return await quality.delete_measurement(db, step_run_id, measurement_id)


# ── Non-conformances ─────────────────────────────────────────

@router.get("/step-runs/{step_run_id}/non-conformances", response_model=NonConformanceListOut)
async def list_non_conformances(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("quality.read")),
):
    return await quality.list_non_conformances(db, step_run_id)


@router.post(
    "/step-runs/{step_run_id}/non-conformances",
    response_model=NonConformanceListOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_non_conformance(
    step_run_id: int,
    body: NonConformanceCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("quality.write")),
):
    return await quality.add_non_conformance(db, step_run_id, body, user)


@router.post("/non-conformances/{nc_id}/resolve", response_model=NonConformanceListOut)
async def resolve_non_conformance(
    nc_id: int,
    body: ResolveRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("quality.resolve")),
):
    return await quality.resolve(
        db, nc_id, body.corrective_action if body else None, user
    )


# ── Step QC checks ───────────────────────────────────────────

@router.get("/step-runs/{step_run_id}/quality-check", response_model=StepQualityCheckViewOut)
async def get_step_quality_check(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("quality.read")),
):
    return await quality.get_step_quality_check(db, step_run_id)


@router.put("/step-runs/{step_run_id}/quality-check", response_model=StepQualityCheckViewOut)
async def save_step_quality_check(
    step_run_id: int,
    body: StepQualityCheckSave,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("quality.write")),
):
    """FAIL raises a non-conformance for each failed parameter."""
    return await quality.save_step_quality_check(db, step_run_id, body, user)
