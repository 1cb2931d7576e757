"""Quantity tracking across the steps of a lot run.

The quantity available at a step is the supply batch's `current_qty` less
the waste recorded on every step up to and including it:

    WASH    washing waste
    DRY     drying waste
    METAL   foreign object rejections and metal detector waste
    PACK    packaging waste

Sorting waste shows up in the breakdown but is never deducted here.
Inside the sorting step the available quantity is spent in order:
outputs, then reworks, then waste (`sorting_balance`).
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.middleware.exceptions import ResourceNotFoundError
from nutaria.models.packaging import ProcessPackagingRun, ProcessPackagingWaste
from nutaria.models.process import (
    ProcessLotRun, ProcessStep, ProcessStepName, ProcessStepRun, ReworkedLot,
)
from nutaria.models.step_details import (
    ProcessDryingRun,
    ProcessDryingWaste,
    ProcessForeignObjectRejection,
    ProcessMetalDetector,
    ProcessMetalDetectorWaste,
    ProcessSortingOutput,
    ProcessSortingWaste,
    ProcessWashingRun,
    ProcessWashingWaste,
)
from nutaria.models.supply import SupplyBatch
from nutaria.schemas.lot_run import AvailableQuantityOut, WasteBreakdown
from nutaria.schemas.step_details import SortingBalanceOut
from nutaria.services.step_runs import get_step_run_row

logger = logging.getLogger(__name__)


async def _sum(db: AsyncSession, stmt) -> float:
    return float((await db.execute(stmt)).scalar() or 0.0)


async def _ordered_step_runs(db: AsyncSession, lot_run_id: int) -> list[tuple[int, str]]:
    """(step run id, upper-cased step code) in template order."""
    rows = (await db.execute(
        select(
            ProcessStepRun.id,
            func.coalesce(ProcessStep.seq, 0).label("seq"),
            func.coalesce(ProcessStep.step_code, ProcessStepName.code).label("code"),
        )
        .outerjoin(ProcessStep, ProcessStep.id == ProcessStepRun.process_step_id)
        .outerjoin(ProcessStepName, ProcessStepName.id == ProcessStep.step_name_id)
        .where(ProcessStepRun.process_lot_run_id == lot_run_id)
        .order_by("seq", ProcessStepRun.id)
    )).all()
    return [(r.id, (r.code or "").upper()) for r in rows]


async def _sorting_waste(db: AsyncSession, step_run_id: int) -> float:
    return await _sum(db, (
        select(func.coalesce(func.sum(ProcessSortingWaste.quantity_kg), 0.0))
        .join(ProcessSortingOutput, ProcessSortingOutput.id == ProcessSortingWaste.sorting_run_id)
        .where(ProcessSortingOutput.process_step_run_id == step_run_id)
    ))


async def _add_step_waste(
    db: AsyncSession, breakdown: WasteBreakdown, step_run_id: int, code: str
) -> None:
    if code == "WASH":
        breakdown.washing_waste += await _sum(db, (
            select(func.coalesce(func.sum(ProcessWashingWaste.quantity_kg), 0.0))
            .join(ProcessWashingRun, ProcessWashingRun.id == ProcessWashingWaste.washing_run_id)
            .where(ProcessWashingRun.process_step_run_id == step_run_id)
        ))
    elif code == "DRY":
        breakdown.drying_waste += await _sum(db, (
            select(func.coalesce(func.sum(ProcessDryingWaste.quantity_kg), 0.0))
            .join(ProcessDryingRun, ProcessDryingRun.id == ProcessDryingWaste.drying_run_id)
            .where(ProcessDryingRun.process_step_run_id == step_run_id)
        ))
    elif code == "METAL":
        breakdown.metal_rejections += await _sum(db, (
            select(func.coalesce(func.sum(ProcessForeignObjectRejection.weight), 0.0))
            .join(ProcessMetalDetector, ProcessMetalDetector.id == ProcessForeignObjectRejection.session_id)
            .where(ProcessMetalDetector.process_step_run_id == step_run_id)
        ))
        breakdown.metal_waste += await _sum(db, (
            select(func.coalesce(func.sum(ProcessMetalDetectorWaste.quantity_kg), 0.0))
            .where(ProcessMetalDetectorWaste.process_step_run_id == step_run_id)
        ))
    elif code == "SORT":
        breakdown.sorting_waste += await _sorting_waste(db, step_run_id)
    elif code == "PACK":
        breakdown.packaging_waste += await _sum(db, (
            select(func.coalesce(func.sum(ProcessPackagingWaste.quantity_kg), 0.0))
            .join(ProcessPackagingRun, ProcessPackagingRun.id == ProcessPackagingWaste.packaging_run_id)
            .where(ProcessPackagingRun.process_step_run_id == step_run_id)
        ))


async def calculate_available_quantity(
    db: AsyncSession, lot_run_id: int, up_to_step_run_id: int | None = None
) -> AvailableQuantityOut:
    """Available kg after the waste of every step up to `up_to_step_run_id`.

    Without a step run, or with one that is not part of the lot run, every
    step counts.
    """
    lot_run = await db.get(ProcessLotRun, lot_run_id)
    if lot_run is None:
        raise ResourceNotFoundError("Lot run", lot_run_id)
    batch = await db.get(SupplyBatch, lot_run.supply_batch_id)
    initial_qty = float(batch.current_qty or 0.0) if batch else 0.0

    steps = await _ordered_step_runs(db, lot_run_id)
    ids = [step_run_id for step_run_id, _ in steps]
    if up_to_step_run_id in ids:
        steps = steps[: ids.index(up_to_step_run_id) + 1]

    breakdown = WasteBreakdown()
    for step_run_id, code in steps:
        await _add_step_waste(db, breakdown, step_run_id, code)

    total_waste = (
        breakdown.washing_waste
        + breakdown.drying_waste
        + breakdown.metal_rejections
        + breakdown.metal_waste
        + breakdown.packaging_waste
    )
    return AvailableQuantityOut(
        lot_run_id=lot_run_id,
        up_to_step_run_id=up_to_step_run_id,
        initial_qty=initial_qty,
        total_waste=total_waste,
        available_qty=max(0.0, initial_qty - total_waste),
        breakdown=breakdown,
    )


async def sorting_balance(db: AsyncSession, step_run_id: int) -> SortingBalanceOut:
    step_run = await get_step_run_row(db, step_run_id)
    available = await calculate_available_quantity(
        db, step_run.process_lot_run_id, step_run_id
    )

    output_kg = await _sum(db, (
        select(func.coalesce(func.sum(ProcessSortingOutput.quantity_kg), 0.0))
        .where(ProcessSortingOutput.process_step_run_id == step_run_id)
    ))
    rework_kg = await _sum(db, (
        select(func.coalesce(func.sum(ReworkedLot.quantity_kg), 0.0))
        .where(ReworkedLot.process_step_run_id == step_run_id)
    ))
    waste_kg = await _sorting_waste(db, step_run_id)

    after_outputs = available.available_qty - output_kg
    return SortingBalanceOut(
        step_run_id=step_run_id,
        available_qty=available.available_qty,
        output_kg=output_kg,
        rework_kg=rework_kg,
        waste_kg=waste_kg,
        remaining_after_outputs=after_outputs,
        remaining_after_reworks=after_outputs - rework_kg,
        remaining_after_waste=after_outputs - rework_kg - waste_kg,
    )
