"""Step-specific run details: washing, drying, sorting, metal detection.

Every detail family follows the same shape:

- the parent row is the most recent one (highest id) for the step run;
  none is a valid state and reads back as `None`
- child rows are only listed when the parent exists, otherwise `[]`
- `save_*` inserts the parent when absent and updates it otherwise
- adding or deleting a child without a parent raises `PreconditionError`
  before anything is written

Every operation returns the freshly re-queried view for the step run.
Packaging follows the same pattern in `nutaria.services.packaging`.
"""

import logging

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nutaria.middleware.exceptions import (
    BusinessLogicError, PreconditionError, ResourceNotFoundError,
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
from nutaria.schemas.step_details import (
    DryingRunOut,
    DryingRunSave,
    DryingViewOut,
    DryingWasteOut,
    MetalDetectionViewOut,
    MetalDetectorOut,
    MetalDetectorSave,
    MetalDetectorWasteOut,
    RejectionCreate,
    RejectionOut,
    SortingOutputCreate,
    SortingOutputOut,
    SortingOutputUpdate,
    SortingViewOut,
    SortingWasteCreate,
    SortingWasteOut,
    WashingRunOut,
    WashingRunSave,
    WashingViewOut,
    WashingWasteOut,
    WasteCreate,
)
from nutaria.services.quantities import sorting_balance
from nutaria.services.step_runs import get_step_run_row

logger = logging.getLogger(__name__)


# ── Shared helpers ───────────────────────────────────────────

async def latest_detail(db: AsyncSession, model, step_run_id: int):
    """Most recent detail row for a step run, or None."""
    result = await db.execute(
        select(model)
        .where(model.process_step_run_id == step_run_id)
        .order_by(model.id.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _upsert_latest(db: AsyncSession, model, step_run_id: int, body: BaseModel):
    await get_step_run_row(db, step_run_id)
    row = await latest_detail(db, model, step_run_id)
    if row is None:
        row = model(process_step_run_id=step_run_id, **body.model_dump())
        db.add(row)
        logger.info("%s created for step run %s", model.__tablename__, step_run_id)
    else:
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(row, field, value)
    await db.flush()
    return row


async def _children(db: AsyncSession, model, fk_column, parent_id: int, *order_by):
    result = await db.execute(
        select(model)
        .where(fk_column == parent_id)
        .order_by(*(order_by or (model.created_at.desc(), model.id.desc())))
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def _delete_child(db: AsyncSession, model, fk_column, parent_id: int, child_id: int, label: str):
    result = await db.execute(
        delete(model).where(model.id == child_id, fk_column == parent_id)
    )
    if result.rowcount == 0:
        raise ResourceNotFoundError(label, child_id)
    await db.flush()


# ── Washing ──────────────────────────────────────────────────

async def get_washing(db: AsyncSession, step_run_id: int) -> WashingViewOut:
    run = await latest_detail(db, ProcessWashingRun, step_run_id)
    if run is None:
        return WashingViewOut(washing_run=None, waste=[])
    waste = await _children(
        db, ProcessWashingWaste, ProcessWashingWaste.washing_run_id, run.id
    )
    return WashingViewOut(
        washing_run=WashingRunOut.model_validate(run),
        waste=[WashingWasteOut.model_validate(w) for w in waste],
    )


async def save_washing_run(db: AsyncSession, step_run_id: int, body: WashingRunSave) -> WashingViewOut:
    await _upsert_latest(db, ProcessWashingRun, step_run_id, body)
    return await get_washing(db, step_run_id)


async def add_washing_waste(db: AsyncSession, step_run_id: int, body: WasteCreate) -> WashingViewOut:
    run = await latest_detail(db, ProcessWashingRun, step_run_id)
    if run is None:
        raise PreconditionError("Washing run must be created before adding waste")
    db.add(ProcessWashingWaste(washing_run_id=run.id, **body.model_dump()))
    await db.flush()
    return await get_washing(db, step_run_id)


async def delete_washing_waste(db: AsyncSession, step_run_id: int, waste_id: int) -> WashingViewOut:
    run = await latest_detail(db, ProcessWashingRun, step_run_id)
    if run is None:
        raise PreconditionError("Washing run must be created before deleting waste")
    await _delete_child(
        db, ProcessWashingWaste, ProcessWashingWaste.washing_run_id, run.id, waste_id,
        "Washing waste",
    )
    return await get_washing(db, step_run_id)


# ── Drying ───────────────────────────────────────────────────

async def get_drying(db: AsyncSession, step_run_id: int) -> DryingViewOut:
    run = await latest_detail(db, ProcessDryingRun, step_run_id)
    if run is None:
        return DryingViewOut(drying_run=None, waste=[])
    waste = await _children(
        db, ProcessDryingWaste, ProcessDryingWaste.drying_run_id, run.id
    )
    return DryingViewOut(
        drying_run=DryingRunOut.model_validate(run),
        waste=[DryingWasteOut.model_validate(w) for w in waste],
    )


async def save_drying_run(db: AsyncSession, step_run_id: int, body: DryingRunSave) -> DryingViewOut:
    await _upsert_latest(db, ProcessDryingRun, step_run_id, body)
    return await get_drying(db, step_run_id)


async def add_drying_waste(db: AsyncSession, step_run_id: int, body: WasteCreate) -> DryingViewOut:
    run = await latest_detail(db, ProcessDryingRun, step_run_id)
    if run is None:
        raise PreconditionError("Drying run must be created before adding waste")
    db.add(ProcessDryingWaste(drying_run_id=run.id, **body.model_dump()))
    await db.flush()
    return await get_drying(db, step_run_id)


async def delete_drying_waste(db: AsyncSession, step_run_id: int, waste_id: int) -> DryingViewOut:
    run = await latest_detail(db, ProcessDryingRun, step_run_id)
    if run is None:
        raise PreconditionError("Drying run must be created before deleting waste")
    await _delete_child(
        db, ProcessDryingWaste, ProcessDryingWaste.drying_run_id, run.id, waste_id,
        "Drying waste",
    )
    return await get_drying(db, step_run_id)


# ── Sorting ──────────────────────────────────────────────────
# Outputs are the parent rows here, several per step run; waste hangs
# off an individual output.

async def get_sorting(db: AsyncSession, step_run_id: int) -> SortingViewOut:
    outputs = (await db.execute(
        select(ProcessSortingOutput)
        .where(ProcessSortingOutput.process_step_run_id == step_run_id)
        .options(selectinload(ProcessSortingOutput.product))
        .order_by(ProcessSortingOutput.created_at.desc(), ProcessSortingOutput.id.desc())
        .execution_options(populate_existing=True)
    )).scalars().all()

    waste = []
    if outputs:
        waste = (await db.execute(
            select(ProcessSortingWaste)
            .where(ProcessSortingWaste.sorting_run_id.in_([o.id for o in outputs]))
            .order_by(ProcessSortingWaste.created_at.desc(), ProcessSortingWaste.id.desc())
            .execution_options(populate_existing=True)
        )).scalars().all()

    return SortingViewOut(
        outputs=[SortingOutputOut.model_validate(o) for o in outputs],
        waste=[SortingWasteOut.model_validate(w) for w in waste],
    )


async def _sorting_output_row(db: AsyncSession, step_run_id: int, output_id: int) -> ProcessSortingOutput | None:
    return (await db.execute(
        select(ProcessSortingOutput).where(
            ProcessSortingOutput.id == output_id,
            ProcessSortingOutput.process_step_run_id == step_run_id,
        )
    )).scalar_one_or_none()


def _check_outputs_fit(available_qty: float, attempted: float) -> None:
    if attempted > available_qty:
        raise BusinessLogicError(
            "Total outputs cannot exceed available quantity. "
            f"Available: {available_qty:.2f} kg, Attempted: {attempted:.2f} kg",
            error_code="SORTING_EXCEEDS_AVAILABLE",
        )


async def add_sorting_output(db: AsyncSession, step_run_id: int, body: SortingOutputCreate) -> SortingViewOut:
    balance = await sorting_balance(db, step_run_id)
    _check_outputs_fit(balance.available_qty, balance.output_kg + body.quantity_kg)
    db.add(ProcessSortingOutput(process_step_run_id=step_run_id, **body.model_dump()))
    await db.flush()
    return await get_sorting(db, step_run_id)


async def update_sorting_output(
    db: AsyncSession, step_run_id: int, output_id: int, body: SortingOutputUpdate
) -> SortingViewOut:
    output = await _sorting_output_row(db, step_run_id, output_id)
    if output is None:
        raise ResourceNotFoundError("Sorting output", output_id)
    if body.quantity_kg is not None:
        balance = await sorting_balance(db, step_run_id)
        _check_outputs_fit(
            balance.available_qty, balance.output_kg - output.quantity_kg + body.quantity_kg
        )
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(output, field, value)
    await db.flush()
    return await get_sorting(db, step_run_id)


async def delete_sorting_output(db: AsyncSession, step_run_id: int, output_id: int) -> SortingViewOut:
    output = await _sorting_output_row(db, step_run_id, output_id)
    if output is None:
        raise ResourceNotFoundError("Sorting output", output_id)
    await db.execute(delete(ProcessSortingWaste).where(ProcessSortingWaste.sorting_run_id == output_id))
    await db.delete(output)
    await db.flush()
    return await get_sorting(db, step_run_id)


async def add_sorting_waste(db: AsyncSession, step_run_id: int, body: SortingWasteCreate) -> SortingViewOut:
    output = await _sorting_output_row(db, step_run_id, body.sorting_run_id)
    if output is None:
        raise PreconditionError("Sorting output must be created before adding waste")
    balance = await sorting_balance(db, step_run_id)
    attempted = balance.waste_kg + body.quantity_kg
    if attempted > balance.remaining_after_reworks:
        raise BusinessLogicError(
            "Total waste cannot exceed remaining quantity after outputs and reworks. "
            f"Remaining: {balance.remaining_after_reworks:.2f} kg, Attempted: {attempted:.2f} kg",
            error_code="SORTING_WASTE_EXCEEDS_REMAINING",
        )
    db.add(ProcessSortingWaste(**body.model_dump()))
    await db.flush()
    return await get_sorting(db, step_run_id)


async def delete_sorting_waste(db: AsyncSession, step_run_id: int, waste_id: int) -> SortingViewOut:
    output_ids = select(ProcessSortingOutput.id).where(
        ProcessSortingOutput.process_step_run_id == step_run_id
    )
    result = await db.execute(
        delete(ProcessSortingWaste).where(
            ProcessSortingWaste.id == waste_id,
            ProcessSortingWaste.sorting_run_id.in_(output_ids),
        )
    )
    if result.rowcount == 0:
        raise ResourceNotFoundError("Sorting waste", waste_id)
    await db.flush()
    return await get_sorting(db, step_run_id)


# ── Metal detection ──────────────────────────────────────────

async def get_metal_detection(db: AsyncSession, step_run_id: int) -> MetalDetectionViewOut:
    session = await latest_detail(db, ProcessMetalDetector, step_run_id)
    if session is None:
        return MetalDetectionViewOut(session=None, rejections=[], waste=[])

    rejections = await _children(
        db, ProcessForeignObjectRejection, ProcessForeignObjectRejection.session_id, session.id,
        ProcessForeignObjectRejection.rejection_time.desc(),
        ProcessForeignObjectRejection.id.desc(),
    )
    waste = await _children(
        db, ProcessMetalDetectorWaste, ProcessMetalDetectorWaste.process_step_run_id, step_run_id
    )
    return MetalDetectionViewOut(
        session=MetalDetectorOut.model_validate(session),
        rejections=[RejectionOut.model_validate(r) for r in rejections],
        waste=[MetalDetectorWasteOut.model_validate(w) for w in waste],
    )


async def save_metal_detector_session(
    db: AsyncSession, step_run_id: int, body: MetalDetectorSave
) -> MetalDetectionViewOut:
    await _upsert_latest(db, ProcessMetalDetector, step_run_id, body)
    return await get_metal_detection(db, step_run_id)


async def _require_session(db: AsyncSession, step_run_id: int, adding: str) -> ProcessMetalDetector:
    session = await latest_detail(db, ProcessMetalDetector, step_run_id)
    if session is None:
        raise PreconditionError(
            f"Metal detection session must be created before {adding}"
        )
    return session


async def add_rejection(db: AsyncSession, step_run_id: int, body: RejectionCreate) -> MetalDetectionViewOut:
    session = await _require_session(db, step_run_id, "adding rejections")
    db.add(ProcessForeignObjectRejection(session_id=session.id, **body.model_dump()))
    await db.flush()
    logger.info(
        "Foreign object %r rejected on step run %s", body.object_type, step_run_id
    )
    return await get_metal_detection(db, step_run_id)


async def delete_rejection(db: AsyncSession, step_run_id: int, rejection_id: int) -> MetalDetectionViewOut:
    session = await _require_session(db, step_run_id, "deleting rejections")
    await _delete_child(
        db, ProcessForeignObjectRejection, ProcessForeignObjectRejection.session_id,
        session.id, rejection_id, "Rejection",
    )
    return await get_metal_detection(db, step_run_id)


async def add_metal_detector_waste(
    db: AsyncSession, step_run_id: int, body: WasteCreate
) -> MetalDetectionViewOut:
    await _require_session(db, step_run_id, "adding waste")
    db.add(ProcessMetalDetectorWaste(process_step_run_id=step_run_id, **body.model_dump()))
    await db.flush()
    return await get_metal_detection(db, step_run_id)


async def delete_metal_detector_waste(
    db: AsyncSession, step_run_id: int, waste_id: int
) -> MetalDetectionViewOut:
    await _require_session(db, step_run_id, "deleting waste")
    await _delete_child(
        db, ProcessMetalDetectorWaste, ProcessMetalDetectorWaste.process_step_run_id,
        step_run_id, waste_id, "Metal detector waste",
    )
    return await get_metal_detection(db, step_run_id)
