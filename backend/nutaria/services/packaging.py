"""Packaging step: QC run, weight checks, photos, waste, metal checks,
pack entries and storage allocations.

Everything except the run itself needs the run to exist first.  The run
is the latest `process_packaging_runs` row for the step run.

Pack flow for one sorting output (WIP):

    metal check attempt 1 (FAIL + rejections) → attempt 2 (PASS) → pack entry
                                                                 → storage allocation(s)

A pack entry copies the latest metal check onto itself so the packing
record stays valid if further attempts are recorded later.
"""

import logging
import math
from collections import defaultdict
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.middleware.exceptions import (
    BusinessLogicError, PreconditionError, ResourceNotFoundError,
)
from nutaria.models.packaging import (
    ProcessPackagingMetalCheck,
    ProcessPackagingMetalCheckRejection,
    ProcessPackagingPackEntry,
    ProcessPackagingPhoto,
    ProcessPackagingRun,
    ProcessPackagingStorageAllocation,
    ProcessPackagingWaste,
    ProcessPackagingWeightCheck,
)
from nutaria.models.step_details import ProcessSortingOutput
from nutaria.models.user import UserProfile
from nutaria.schemas.packaging import (
    MetalCheckAttemptCreate,
    MetalCheckOut,
    MetalCheckRejectionOut,
    PackagingRunOut,
    PackagingRunSave,
    PackagingViewOut,
    PackagingWasteCreate,
    PackagingWasteOut,
    PackEntryCreate,
    PackEntryOut,
    PhotoCreate,
    PhotoOut,
    StorageAllocationCreate,
    StorageAllocationOut,
    WeightCheckCreate,
    WeightCheckOut,
    WeightCheckUpdate,
)
from nutaria.services.step_details import latest_detail
from nutaria.services.step_runs import get_step_run_row
from nutaria.utils.activity import log_activity

logger = logging.getLogger(__name__)


async def _rows(db: AsyncSession, stmt):
    return (await db.execute(stmt.execution_options(populate_existing=True))).scalars().all()


async def _metal_checks(db: AsyncSession, run_id: int) -> dict[int, list[MetalCheckOut]]:
    """Attempts per sorting output, ascending, each with its rejections."""
    checks = await _rows(db, (
        select(ProcessPackagingMetalCheck)
        .where(ProcessPackagingMetalCheck.packaging_run_id == run_id)
        .order_by(ProcessPackagingMetalCheck.attempt_no, ProcessPackagingMetalCheck.id)
    ))
    if not checks:
        return {}

    rejections = await _rows(db, (
        select(ProcessPackagingMetalCheckRejection)
        .where(ProcessPackagingMetalCheckRejection.metal_check_id.in_([c.id for c in checks]))
        .order_by(
            ProcessPackagingMetalCheckRejection.created_at,
            ProcessPackagingMetalCheckRejection.id,
        )
    ))
    by_check: dict[int, list[MetalCheckRejectionOut]] = defaultdict(list)
    for r in rejections:
        by_check[r.metal_check_id].append(MetalCheckRejectionOut.model_validate(r))

    grouped: dict[int, list[MetalCheckOut]] = defaultdict(list)
    for c in checks:
        grouped[c.sorting_output_id].append(MetalCheckOut(
            id=c.id,
            packaging_run_id=c.packaging_run_id,
            sorting_output_id=c.sorting_output_id,
            attempt_no=c.attempt_no,
            status=c.status,
            remarks=c.remarks,
            checked_by=c.checked_by,
            checked_at=c.checked_at,
            rejections=by_check.get(c.id, []),
        ))
    return dict(grouped)


def failed_rejected_weight(checks: list[MetalCheckOut]) -> float:
    """Total rejected weight across FAIL attempts."""
    return sum(
        sum(r.weight_kg or 0 for r in check.rejections)
        for check in checks
        if check.status == "FAIL"
    )


def latest_metal_check(checks: list[MetalCheckOut]) -> MetalCheckOut | None:
    return max(checks, key=lambda c: c.attempt_no, default=None)


async def get_packaging(db: AsyncSession, step_run_id: int) -> PackagingViewOut:
    run = await latest_detail(db, ProcessPackagingRun, step_run_id)
    if run is None:
        return PackagingViewOut(
            packaging_run=None, weight_checks=[], photos=[], waste=[],
            pack_entries=[], storage_allocations=[],
            metal_checks={}, failed_rejected_weight_kg={},
        )

    weight_checks = await _rows(db, (
        select(ProcessPackagingWeightCheck)
        .where(ProcessPackagingWeightCheck.packaging_run_id == run.id)
        .order_by(ProcessPackagingWeightCheck.check_no, ProcessPackagingWeightCheck.id)
    ))
    photos = await _rows(db, (
        select(ProcessPackagingPhoto)
        .where(ProcessPackagingPhoto.packaging_run_id == run.id)
        .order_by(ProcessPackagingPhoto.created_at.desc(), ProcessPackagingPhoto.id.desc())
    ))
    waste = await _rows(db, (
        select(ProcessPackagingWaste)
        .where(ProcessPackagingWaste.packaging_run_id == run.id)
        .order_by(ProcessPackagingWaste.created_at.desc(), ProcessPackagingWaste.id.desc())
    ))
    entries = await _rows(db, (
        select(ProcessPackagingPackEntry)
        .where(ProcessPackagingPackEntry.packaging_run_id == run.id)
        .order_by(ProcessPackagingPackEntry.created_at.desc(), ProcessPackagingPackEntry.id.desc())
    ))
    allocations = await _rows(db, (
        select(ProcessPackagingStorageAllocation)
        .where(ProcessPackagingStorageAllocation.packaging_run_id == run.id)
        .order_by(
            ProcessPackagingStorageAllocation.created_at.desc(),
            ProcessPackagingStorageAllocation.id.desc(),
        )
    ))
    metal_checks = await _metal_checks(db, run.id)

    return PackagingViewOut(
        packaging_run=PackagingRunOut.model_validate(run),
        weight_checks=[WeightCheckOut.model_validate(w) for w in weight_checks],
        photos=[PhotoOut.model_validate(p) for p in photos],
        waste=[PackagingWasteOut.model_validate(w) for w in waste],
        pack_entries=[PackEntryOut.model_validate(e) for e in entries],
        storage_allocations=[StorageAllocationOut.model_validate(a) for a in allocations],
        metal_checks=metal_checks,
        failed_rejected_weight_kg={
            output_id: failed_rejected_weight(checks)
            for output_id, checks in metal_checks.items()
        },
    )


async def _require_run(db: AsyncSession, step_run_id: int, action: str) -> ProcessPackagingRun:
    run = await latest_detail(db, ProcessPackagingRun, step_run_id)
    if run is None:
        raise PreconditionError(f"Packaging run must be created before {action}")
    return run


async def _delete_child(db: AsyncSession, model, run_id: int, child_id: int, label: str):
    result = await db.execute(
        delete(model).where(model.id == child_id, model.packaging_run_id == run_id)
    )
    if result.rowcount == 0:
        raise ResourceNotFoundError(label, child_id)
    await db.flush()


# ── Run ──────────────────────────────────────────────────────

async def save_packaging_run(
    db: AsyncSession, step_run_id: int, body: PackagingRunSave
) -> PackagingViewOut:
    await get_step_run_row(db, step_run_id)
    run = await latest_detail(db, ProcessPackagingRun, step_run_id)
    if run is None:
        db.add(ProcessPackagingRun(process_step_run_id=step_run_id, **body.model_dump()))
        logger.info("Packaging run created for step run %s", step_run_id)
    else:
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(run, field, value)
    await db.flush()
    return await get_packaging(db, step_run_id)


# ── Weight checks / photos / waste ───────────────────────────

async def add_weight_check(db: AsyncSession, step_run_id: int, body: WeightCheckCreate) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "adding weight checks")
    db.add(ProcessPackagingWeightCheck(packaging_run_id=run.id, **body.model_dump()))
    await db.flush()
    return await get_packaging(db, step_run_id)


async def update_weight_check(
    db: AsyncSession, step_run_id: int, check_id: int, body: WeightCheckUpdate
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "updating weight checks")
    check = (await db.execute(
        select(ProcessPackagingWeightCheck).where(
            ProcessPackagingWeightCheck.id == check_id,
            ProcessPackagingWeightCheck.packaging_run_id == run.id,
        )
    )).scalar_one_or_none()
    if check is None:
        raise ResourceNotFoundError("Weight check", check_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(check, field, value)
    await db.flush()
    return await get_packaging(db, step_run_id)


async def delete_weight_check(db: AsyncSession, step_run_id: int, check_id: int) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "deleting weight checks")
    await _delete_child(db, ProcessPackagingWeightCheck, run.id, check_id, "Weight check")
    return await get_packaging(db, step_run_id)


async def add_photo(db: AsyncSession, step_run_id: int, body: PhotoCreate) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "adding photos")
    db.add(ProcessPackagingPhoto(packaging_run_id=run.id, **body.model_dump()))
    await db.flush()
    return await get_packaging(db, step_run_id)


async def delete_photo(db: AsyncSession, step_run_id: int, photo_id: int) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "deleting photos")
    await _delete_child(db, ProcessPackagingPhoto, run.id, photo_id, "Photo")
    return await get_packaging(db, step_run_id)


async def add_packaging_waste(
    db: AsyncSession, step_run_id: int, body: PackagingWasteCreate
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "adding waste")
    db.add(ProcessPackagingWaste(packaging_run_id=run.id, **body.model_dump()))
    await db.flush()
    return await get_packaging(db, step_run_id)


async def delete_packaging_waste(db: AsyncSession, step_run_id: int, waste_id: int) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "deleting waste")
    await _delete_child(db, ProcessPackagingWaste, run.id, waste_id, "Packaging waste")
    return await get_packaging(db, step_run_id)


# ── Metal checks ─────────────────────────────────────────────

async def record_metal_check(
    db: AsyncSession,
    step_run_id: int,
    body: MetalCheckAttemptCreate,
    user: UserProfile | None = None,
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "recording metal checks")
    if body.status == "FAIL" and not body.rejections:
        raise BusinessLogicError(
            "At least one foreign-object rejection is required for FAIL status",
            error_code="REJECTION_REQUIRED",
        )
    if await db.get(ProcessSortingOutput, body.sorting_output_id) is None:
        raise ResourceNotFoundError("Sorting output", body.sorting_output_id)

    last_attempt = (await db.execute(
        select(func.max(ProcessPackagingMetalCheck.attempt_no)).where(
            ProcessPackagingMetalCheck.packaging_run_id == run.id,
            ProcessPackagingMetalCheck.sorting_output_id == body.sorting_output_id,
        )
    )).scalar() or 0

    user_id = user.id if user else None
    check = ProcessPackagingMetalCheck(
        packaging_run_id=run.id,
        sorting_output_id=body.sorting_output_id,
        attempt_no=last_attempt + 1,
        status=body.status,
        remarks=(body.remarks or "").strip() or None,
        checked_by=user_id,
        checked_at=datetime.utcnow(),
    )
    db.add(check)
    await db.flush()

    if body.status == "FAIL":
        db.add_all([
            ProcessPackagingMetalCheckRejection(
                metal_check_id=check.id,
                object_type=r.object_type.strip(),
                weight_kg=r.weight_kg,
                corrective_action=(r.corrective_action or "").strip() or None,
                created_by=user_id,
            )
            for r in body.rejections
        ])
        await db.flush()

    logger.info(
        "Metal check attempt %d for sorting output %s: %s",
        check.attempt_no, body.sorting_output_id, body.status,
    )
    await log_activity(
        db, user,
        action="metal_check",
        entity_type="sorting_output",
        entity_id=body.sorting_output_id,
        summary=f"Attempt {check.attempt_no}: {body.status}",
    )
    return await get_packaging(db, step_run_id)


# ── Pack entries ─────────────────────────────────────────────

async def add_pack_entry(
    db: AsyncSession,
    step_run_id: int,
    body: PackEntryCreate,
    user: UserProfile | None = None,
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "adding pack entries")

    output = await db.get(ProcessSortingOutput, body.sorting_output_id)
    if output is None:
        raise ResourceNotFoundError("Sorting output", body.sorting_output_id)

    checks = (await _metal_checks(db, run.id)).get(body.sorting_output_id, [])
    latest = latest_metal_check(checks)
    if latest is None or latest.status != "PASS":
        raise BusinessLogicError(
            "Metal detection must pass before packing this sorted output.",
            error_code="METAL_CHECK_REQUIRED",
        )

    used = (await db.execute(
        select(func.coalesce(func.sum(ProcessPackagingPackEntry.quantity_kg), 0.0)).where(
            ProcessPackagingPackEntry.packaging_run_id == run.id,
            ProcessPackagingPackEntry.sorting_output_id == body.sorting_output_id,
        )
    )).scalar() or 0.0
    remaining = max(0.0, output.quantity_kg - used)
    if body.quantity_kg > remaining:
        raise BusinessLogicError(
            f"Quantity cannot exceed remaining {remaining:.2f} kg for this WIP",
            error_code="WIP_EXCEEDED",
        )

    pack_count = remainder = None
    if body.pack_size_kg:
        pack_count = math.floor(body.quantity_kg / body.pack_size_kg)
        remainder = max(0.0, body.quantity_kg - pack_count * body.pack_size_kg)

    entry = ProcessPackagingPackEntry(
        packaging_run_id=run.id,
        sorting_output_id=body.sorting_output_id,
        product_id=body.product_id if body.product_id is not None else output.product_id,
        pack_identifier=body.pack_identifier,
        quantity_kg=body.quantity_kg,
        packing_type=body.packing_type,
        pack_size_kg=body.pack_size_kg,
        pack_count=pack_count,
        remainder_kg=remainder,
        metal_check_status=latest.status,
        metal_check_attempts=len(checks),
        metal_check_last_id=latest.id,
        metal_check_last_checked_at=latest.checked_at,
        metal_check_last_checked_by=latest.checked_by,
    )
    db.add(entry)
    await db.flush()

    await log_activity(
        db, user,
        action="packed",
        entity_type="pack_entry",
        entity_id=entry.id,
        entity_code=body.pack_identifier,
        summary=f"Packed {body.quantity_kg} kg from sorting output {body.sorting_output_id}",
    )
    return await get_packaging(db, step_run_id)


async def delete_pack_entry(db: AsyncSession, step_run_id: int, entry_id: int) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "deleting pack entries")
    await db.execute(
        delete(ProcessPackagingStorageAllocation).where(
            ProcessPackagingStorageAllocation.pack_entry_id == entry_id,
            ProcessPackagingStorageAllocation.packaging_run_id == run.id,
        )
    )
    await _delete_child(db, ProcessPackagingPackEntry, run.id, entry_id, "Pack entry")
    return await get_packaging(db, step_run_id)


# ── Storage allocations ──────────────────────────────────────

async def add_storage_allocation(
    db: AsyncSession,
    step_run_id: int,
    body: StorageAllocationCreate,
    user: UserProfile | None = None,
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "adding storage allocations")
    entry = (await db.execute(
        select(ProcessPackagingPackEntry).where(
            ProcessPackagingPackEntry.id == body.pack_entry_id,
            ProcessPackagingPackEntry.packaging_run_id == run.id,
        )
    )).scalar_one_or_none()
    if entry is None:
        raise ResourceNotFoundError("Pack entry", body.pack_entry_id)

    allocated = (await db.execute(
        select(func.coalesce(func.sum(ProcessPackagingStorageAllocation.total_packs), 0))
        .where(ProcessPackagingStorageAllocation.pack_entry_id == entry.id)
    )).scalar() or 0
    unallocated = max(0, (entry.pack_count or 0) - allocated)

    total_packs = body.units_count * body.packs_per_unit
    if total_packs > unallocated:
        raise BusinessLogicError(
            f"Cannot allocate {total_packs} packs; only {unallocated} unallocated",
            error_code="ALLOCATION_EXCEEDED",
        )

    db.add(ProcessPackagingStorageAllocation(
        packaging_run_id=run.id,
        pack_entry_id=entry.id,
        storage_type=body.storage_type,
        box_unit_code=body.box_unit_code,
        units_count=body.units_count,
        packs_per_unit=body.packs_per_unit,
        total_packs=total_packs,
        total_quantity_kg=total_packs * (entry.pack_size_kg or 0),
        notes=body.notes,
        created_by=user.id if user else None,
    ))
    await db.flush()
    return await get_packaging(db, step_run_id)


async def delete_storage_allocation(
    db: AsyncSession, step_run_id: int, allocation_id: int
) -> PackagingViewOut:
    run = await _require_run(db, step_run_id, "deleting storage allocations")
    await _delete_child(
        db, ProcessPackagingStorageAllocation, run.id, allocation_id, "Storage allocation"
    )
    return await get_packaging(db, step_run_id)
