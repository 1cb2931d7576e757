"""Lot run lifecycle: create, read, complete, rework.

    create_lot_run     supply batch UNPROCESSED → PROCESSING,
                       run IN_PROGRESS with one PENDING step run per step
    complete_lot_run   every step COMPLETED/SKIPPED → run COMPLETED,
                       production batch created, supply batch PROCESSED
    create_rework      leftover sorting quantity → new supply batch with its
                       own rework lot run

Unresolved non-conformances never block completion; they are logged and
reported back in the completion response.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nutaria.middleware.exceptions import (
    BusinessLogicError, InvalidTransitionError, ResourceNotFoundError,
)
from nutaria.models.process import (
    BatchStepTransition,
    LotRunStatus,
    Process,
    ProcessLotRun,
    ProcessStep,
    ProcessStepRun,
    ProductionBatch,
    ProductProcess,
    ReworkedLot,
    StepRunStatus,
)
from nutaria.models.quality import ProcessNonConformance
from nutaria.models.step_details import ProcessSortingOutput
from nutaria.models.supply import SupplyBatch
from nutaria.models.user import UserProfile
from nutaria.schemas.common import PaginatedResponse
from nutaria.schemas.lot_run import (
    BatchTransitionCreate,
    BatchTransitionOut,
    LotRunCompletionOut,
    LotRunOut,
    LotRunSummary,
    ProductionBatchOut,
    ReworkedLotOut,
    ReworkOut,
)
from nutaria.services.quantities import sorting_balance
from nutaria.services.transitions import transition_lot_run
from nutaria.utils.activity import log_activity
from nutaria.utils.numbering import generate_production_batch_code, generate_rework_lot_no

logger = logging.getLogger(__name__)


# ── Reads ────────────────────────────────────────────────────

async def get_lot_run(db: AsyncSession, lot_run_id: int) -> LotRunOut:
    """Lot run with supply batch (product, unit), process and signoffs."""
    result = await db.execute(
        select(ProcessLotRun)
        .where(ProcessLotRun.id == lot_run_id)
        .options(
            selectinload(ProcessLotRun.supply_batch).selectinload(SupplyBatch.product),
            selectinload(ProcessLotRun.supply_batch).selectinload(SupplyBatch.unit),
            selectinload(ProcessLotRun.process),
            selectinload(ProcessLotRun.signoffs),
        )
        .execution_options(populate_existing=True)
    )
    lot_run = result.scalar_one_or_none()
    if not lot_run:
        raise ResourceNotFoundError("Lot run", lot_run_id)
    return LotRunOut.model_validate(lot_run)


async def list_lot_runs(
    db: AsyncSession,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> PaginatedResponse[LotRunSummary]:
    filters = []
    if status:
        filters.append(ProcessLotRun.status == status)

    total = (await db.execute(
        select(func.count(ProcessLotRun.id)).where(*filters)
    )).scalar() or 0

    rows = (await db.execute(
        select(ProcessLotRun, SupplyBatch.lot_no, Process.name)
        .join(SupplyBatch, SupplyBatch.id == ProcessLotRun.supply_batch_id)
        .join(Process, Process.id == ProcessLotRun.process_id)
        .where(*filters)
        .order_by(ProcessLotRun.created_at.desc(), ProcessLotRun.id.desc())
        .limit(limit)
        .offset(offset)
    )).all()

    items = [
        LotRunSummary(
            id=run.id,
            supply_batch_id=run.supply_batch_id,
            lot_no=lot_no,
            process_name=process_name,
            status=run.status,
            is_rework=run.is_rework,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )
        for run, lot_no, process_name in rows
    ]
    return PaginatedResponse[LotRunSummary](
        items=items, total=total, limit=limit, offset=offset,
    )


# ── Creation ─────────────────────────────────────────────────

async def get_default_process_id(db: AsyncSession, product_id: int) -> int | None:
    """Explicit default mapping first, then the lowest-id process listing the product."""
    mapped = (await db.execute(
        select(ProductProcess.process_id)
        .where(ProductProcess.product_id == product_id, ProductProcess.is_default.is_(True))
        .limit(1)
    )).scalar_one_or_none()
    if mapped is not None:
        return mapped

    processes = (await db.execute(select(Process).order_by(Process.id))).scalars().all()
    for process in processes:
        if product_id in (process.product_ids or []):
            return process.id
    return None


async def create_step_runs(db: AsyncSession, lot_run_id: int, process_id: int) -> int:
    """One PENDING step run per process step, in `seq` order."""
    steps = (await db.execute(
        select(ProcessStep.id)
        .where(ProcessStep.process_id == process_id)
        .order_by(ProcessStep.seq)
    )).scalars().all()

    for step_id in steps:
        db.add(ProcessStepRun(
            process_lot_run_id=lot_run_id,
            process_step_id=step_id,
            status=StepRunStatus.PENDING.value,
        ))
    await db.flush()
    return len(steps)


async def create_lot_run(
    db: AsyncSession,
    supply_batch_id: int,
    user: UserProfile | None = None,
    return_existing: bool = False,
) -> LotRunOut:
    batch = await db.get(SupplyBatch, supply_batch_id)
    if not batch:
        raise ResourceNotFoundError("Supply batch", supply_batch_id)

    existing = (await db.execute(
        select(ProcessLotRun.id)
        .where(ProcessLotRun.supply_batch_id == supply_batch_id)
        .limit(1)
    )).scalar_one_or_none()
    if existing is not None:
        if return_existing:
            return await get_lot_run(db, existing)
        raise BusinessLogicError(
            f"Supply batch {batch.lot_no} already has a lot run",
            error_code="LOT_RUN_EXISTS",
        )

    process_id = await get_default_process_id(db, batch.product_id)
    if process_id is None:
        raise BusinessLogicError(
            f"No process found for product {batch.product_id}",
            error_code="NO_PROCESS",
        )

    lot_run = ProcessLotRun(
        supply_batch_id=supply_batch_id,
        process_id=process_id,
        status=LotRunStatus.IN_PROGRESS.value,
        started_at=datetime.utcnow(),
    )
    db.add(lot_run)
    await db.flush()

    batch.process_status = "PROCESSING"
    created = await create_step_runs(db, lot_run.id, process_id)
    logger.info(
        "Lot run %s started for batch %s (%d steps)", lot_run.id, batch.lot_no, created
    )
    await log_activity(
        db, user,
        action="created",
        entity_type="lot_run",
        entity_id=lot_run.id,
        entity_code=batch.lot_no,
        summary=f"Started processing {batch.lot_no}",
    )
    await db.flush()
    return await get_lot_run(db, lot_run.id)


# ── Completion ───────────────────────────────────────────────

async def create_production_batch(db: AsyncSession, lot_run: ProcessLotRun) -> ProductionBatch:
    batch = (await db.execute(
        select(SupplyBatch)
        .where(SupplyBatch.id == lot_run.supply_batch_id)
        .options(selectinload(SupplyBatch.unit))
    )).scalar_one_or_none()
    if not batch:
        raise ResourceNotFoundError("Supply batch", lot_run.supply_batch_id)

    production_batch = ProductionBatch(
        batch_code=await generate_production_batch_code(db),
        process_lot_run_id=lot_run.id,
        product_id=batch.product_id,
        quantity=batch.current_qty or 0,
        unit=batch.unit.symbol if batch.unit and batch.unit.symbol else "",
        expiry_date=batch.expiry_date,
    )
    db.add(production_batch)
    batch.process_status = "PROCESSED"
    await db.flush()
    return production_batch


async def complete_lot_run(
    db: AsyncSession,
    lot_run_id: int,
    user: UserProfile | None = None,
) -> LotRunCompletionOut:
    lot_run = await db.get(ProcessLotRun, lot_run_id)
    if not lot_run:
        raise ResourceNotFoundError("Lot run", lot_run_id)

    steps = (await db.execute(
        select(ProcessStepRun.id, ProcessStepRun.status)
        .where(ProcessStepRun.process_lot_run_id == lot_run_id)
    )).all()

    if lot_run.status == LotRunStatus.COMPLETED.value:
        raise InvalidTransitionError("Lot run", lot_run.status, LotRunStatus.COMPLETED.value)
    # Refused with 409 while any step is still PENDING / IN_PROGRESS / FAILED
    transition_lot_run(
        lot_run.status, LotRunStatus.COMPLETED.value, [s.status for s in steps]
    )

    unresolved = 0
    if steps:
        unresolved = (await db.execute(
            select(func.count(ProcessNonConformance.id)).where(
                ProcessNonConformance.resolved.is_(False),
                ProcessNonConformance.process_step_run_id.in_([s.id for s in steps]),
            )
        )).scalar() or 0
    if unresolved:
        logger.warning(
            "Lot run %s completed with %d unresolved non-conformances", lot_run_id, unresolved
        )

    lot_run.status = LotRunStatus.COMPLETED.value
    lot_run.completed_at = datetime.utcnow()
    production_batch = await create_production_batch(db, lot_run)

    logger.info("Lot run %s completed → %s", lot_run_id, production_batch.batch_code)
    await log_activity(
        db, user,
        action="completed",
        entity_type="lot_run",
        entity_id=lot_run_id,
        entity_code=production_batch.batch_code,
        summary=f"Lot run completed, production batch {production_batch.batch_code}",
        details={"unresolved_non_conformances": unresolved},
    )
    await db.flush()

    return LotRunCompletionOut(
        lot_run=await get_lot_run(db, lot_run_id),
        production_batch=ProductionBatchOut.model_validate(production_batch),
        unresolved_non_conformances=unresolved,
    )


# ── Rework ───────────────────────────────────────────────────

async def create_rework(
    db: AsyncSession,
    step_run_id: int,
    quantity_kg: float,
    reason: str | None = None,
    user: UserProfile | None = None,
) -> ReworkOut:
    step_run = await db.get(ProcessStepRun, step_run_id)
    if not step_run:
        raise ResourceNotFoundError("Step run", step_run_id)
    lot_run = await db.get(ProcessLotRun, step_run.process_lot_run_id)
    if not lot_run:
        raise ResourceNotFoundError("Lot run", step_run.process_lot_run_id)
    original = await db.get(SupplyBatch, lot_run.supply_batch_id)
    if not original:
        raise ResourceNotFoundError("Supply batch", lot_run.supply_batch_id)

    if quantity_kg <= 0:
        raise BusinessLogicError("Rework quantity must be greater than zero")

    remaining = (await sorting_balance(db, step_run_id)).remaining_after_reworks
    if quantity_kg > remaining:
        raise BusinessLogicError(
            f"Rework quantity ({quantity_kg} kg) cannot exceed remaining quantity "
            f"after sorting outputs ({remaining:.2f} kg)",
            error_code="REWORK_EXCEEDS_REMAINING",
        )

    sorting_output_id = (await db.execute(
        select(ProcessSortingOutput.id)
        .where(ProcessSortingOutput.process_step_run_id == step_run_id)
        .order_by(ProcessSortingOutput.id)
        .limit(1)
    )).scalar_one_or_none()

    rework_batch = SupplyBatch(
        lot_no=await generate_rework_lot_no(db, original.lot_no),
        supplier_id=original.supplier_id,
        product_id=original.product_id,
        unit_id=original.unit_id,
        received_qty=quantity_kg,
        accepted_qty=quantity_kg,
        rejected_qty=0,
        current_qty=quantity_kg,
        quality_status="PASSED",
        process_status="UNPROCESSED",
        expiry_date=original.expiry_date,
    )
    db.add(rework_batch)
    await db.flush()

    reworked = ReworkedLot(
        original_supply_batch_id=original.id,
        rework_supply_batch_id=rework_batch.id,
        sorting_output_id=sorting_output_id,
        process_step_run_id=step_run_id,
        quantity_kg=quantity_kg,
        reason=reason or None,
        created_by=user.id if user else None,
    )
    rework_run = ProcessLotRun(
        supply_batch_id=rework_batch.id,
        process_id=lot_run.process_id,
        status=LotRunStatus.IN_PROGRESS.value,
        started_at=datetime.utcnow(),
        is_rework=True,
        original_process_lot_run_id=lot_run.id,
    )
    db.add_all([reworked, rework_run])
    await db.flush()

    await create_step_runs(db, rework_run.id, lot_run.process_id)
    rework_batch.process_status = "PROCESSING"

    logger.info(
        "Rework %s: %.2f kg from lot run %s → lot run %s",
        rework_batch.lot_no, quantity_kg, lot_run.id, rework_run.id,
    )
    await log_activity(
        db, user,
        action="reworked",
        entity_type="lot_run",
        entity_id=rework_run.id,
        entity_code=rework_batch.lot_no,
        summary=f"Reworked {quantity_kg} kg from {original.lot_no}",
    )
    await db.flush()

    return ReworkOut(
        rework_batch_id=rework_batch.id,
        rework_lot_run_id=rework_run.id,
        reworked_lot=ReworkedLotOut.model_validate(reworked),
    )


async def record_batch_transition(
    db: AsyncSession,
    body: BatchTransitionCreate,
    user: UserProfile | None = None,
) -> BatchTransitionOut:
    transition = BatchStepTransition(
        **body.model_dump(),
        created_by=user.id if user else None,
    )
    db.add(transition)
    await db.flush()
    return BatchTransitionOut.model_validate(transition)
