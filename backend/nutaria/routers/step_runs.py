"""Step run router: status changes and rework.

Endpoints:
    PATCH /api/step-runs/{id}            Partial update (status validated)
    POST  /api/step-runs/{id}/start      → IN_PROGRESS
    POST  /api/step-runs/{id}/complete   → COMPLETED
    POST  /api/step-runs/{id}/skip       → SKIPPED (template must allow it)
    POST  /api/step-runs/{id}/rework     Cut a rework lot from leftover sorting quantity

Every status endpoint returns the lot run's full, re-read step run list.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.lot_run import ReworkCreate, ReworkOut
from nutaria.schemas.step_run import StepRunOut, StepRunUpdate
from nutaria.services import lot_runs, step_runs

router = APIRouter()


@router.patch("/{step_run_id}", response_model=list[StepRunOut])
async def update_step_run(
    step_run_id: int,
    body: StepRunUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.write")),
):
    fields = body.model_dump(exclude_unset=True)
    if fields.get("status", "") is None:
        fields.pop("status")
    return await step_runs.update_step_run(db, step_run_id, fields, user)


@router.post("/{step_run_id}/start", response_model=list[StepRunOut])
async def start_step_run(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.write")),
):
    return await step_runs.start_step_run(db, step_run_id, user)


@router.post("/{step_run_id}/complete", response_model=list[StepRunOut])
async def complete_step_run(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.write")),
):
    return await step_runs.complete_step_run(db, step_run_id, user)


@router.post("/{step_run_id}/skip", response_model=list[StepRunOut])
async def skip_step_run(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.manage")),
):
    return await step_runs.skip_step_run(db, step_run_id, user)


@router.post(
    "/{step_run_id}/rework",
    response_model=ReworkOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_rework(
    step_run_id: int,
    body: ReworkCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.manage")),
):
    return await lot_runs.create_rework(
        db, step_run_id, body.quantity_kg, body.reason, user
    )
