"""Lot run router.

Endpoints:
    GET   /api/lot-runs/                          List lot runs (paginated)
    POST  /api/lot-runs/                          Start processing a supply batch
    GET   /api/lot-runs/{id}                      Lot run with batch, process, signoffs
    POST  /api/lot-runs/{id}/complete             Complete + create production batch
    GET   /api/lot-runs/{id}/step-runs            Step runs in sequence order
    GET   /api/lot-runs/{id}/available-quantity   Batch quantity left after step waste
    GET   /api/lot-runs/{id}/signoffs             Signoff board for the current user
    POST  /api/lot-runs/{id}/signoffs             Sign off in a role
    POST  /api/lot-runs/batch-transitions         Record a batch step transition
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.process import LotRunStatus
from nutaria.models.user import UserProfile
from nutaria.schemas.common import PaginatedResponse
from nutaria.schemas.lot_run import (
    BatchTransitionCreate,
    AvailableQuantityOut,
    BatchTransitionOut,
    LotRunCompletionOut,
    LotRunCreate,
    LotRunOut,
    LotRunSummary,
)
from nutaria.schemas.quality import SignoffBoardOut, SignoffCreate
from nutaria.schemas.step_run import StepRunOut
from nutaria.services import lot_runs, quality, quantities, step_runs

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[LotRunSummary])
async def list_lot_runs(
    lot_run_status: LotRunStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await lot_runs.list_lot_runs(
        db,
        status=lot_run_status.value if lot_run_status else None,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=LotRunOut, status_code=status.HTTP_201_CREATED)
async def create_lot_run(
    body: LotRunCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.manage")),
):
    """Create the lot run and its PENDING step runs from the product's default process."""
    return await lot_runs.create_lot_run(
        db, body.supply_batch_id, user, return_existing=body.return_existing
    )


@router.post(
    "/batch-transitions",
    response_model=BatchTransitionOut,
    status_code=status.HTTP_201_CREATED,
)
async def record_batch_transition(
    body: BatchTransitionCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.manage")),
):
    return await lot_runs.record_batch_transition(db, body, user)


@router.get("/{lot_run_id}", response_model=LotRunOut)
async def get_lot_run(
    lot_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await lot_runs.get_lot_run(db, lot_run_id)


@router.post("/{lot_run_id}/complete", response_model=LotRunCompletionOut)
async def complete_lot_run(
    lot_run_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.manage")),
):
    """Refused (409) until every step run is COMPLETED or SKIPPED."""
    return await lot_runs.complete_lot_run(db, lot_run_id, user)


@router.get("/{lot_run_id}/step-runs", response_model=list[StepRunOut])
async def list_step_runs(
    lot_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await step_runs.list_step_runs(db, lot_run_id)


@router.get("/{lot_run_id}/available-quantity", response_model=AvailableQuantityOut)
async def get_available_quantity(
    lot_run_id: int,
    up_to_step_run_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await quantities.calculate_available_quantity(db, lot_run_id, up_to_step_run_id)


# ── Signoffs ─────────────────────────────────────────────────

@router.get("/{lot_run_id}/signoffs", response_model=SignoffBoardOut)
async def get_signoffs(
    lot_run_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("process.read")),
):
    return await quality.get_signoff_board(db, lot_run_id, user)


@router.post(
    "/{lot_run_id}/signoffs",
    response_model=SignoffBoardOut,
    status_code=status.HTTP_201_CREATED,
)
async def sign_off(
    lot_run_id: int,
    body: SignoffCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("signoff.write")),
):
    return await quality.sign(db, lot_run_id, body.role, user)
