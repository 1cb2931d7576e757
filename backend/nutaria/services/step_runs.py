"""Step run data access and status changes.

`list_step_runs` is the only reader.  It tries one joined query (step
template, step name, location) and, if the store rejects it, falls back
to separate queries merged through id maps.  Inside the fallback a failing
bulk `IN (...)` lookup is retried one id at a time.  Both paths produce
the same `StepRunOut` list, ordered by template `seq` (missing template
sorts as 0).

Every mutation writes, flushes, and returns the full re-read list.
A step whose template has `requires_qc` cannot be completed until a QC
check has been recorded for the run, whatever its result.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from nutaria.middleware.exceptions import (
    BusinessLogicError, PreconditionError, ResourceNotFoundError,
)
from nutaria.models.catalog import Warehouse
from nutaria.models.process import (
    ProcessStep, ProcessStepName, ProcessStepRun, StepRunStatus,
)
from nutaria.models.quality import ProcessStepQualityCheck
from nutaria.models.user import UserProfile
from nutaria.schemas.step_run import (
    LocationOut, ProcessStepOut, StepNameOut, StepRunOut,
)
from nutaria.services.transitions import transition_step_run
from nutaria.utils.activity import log_activity

logger = logging.getLogger(__name__)

_STEP_COLUMNS = (
    "id", "process_id", "seq", "step_name_id", "step_code", "description",
    "requires_qc", "can_be_skipped", "default_location_id", "estimated_duration",
)


def _to_out(
    run: ProcessStepRun,
    step: ProcessStep | None,
    step_name: ProcessStepName | None,
    location: Warehouse | None,
) -> StepRunOut:
    step_out = None
    if step is not None:
        step_out = ProcessStepOut(
            **{col: getattr(step, col) for col in _STEP_COLUMNS},
            step_name=StepNameOut(id=step_name.id, code=step_name.code, name=step_name.name)
            if step_name else None,
        )

    return StepRunOut(
        id=run.id,
        process_lot_run_id=run.process_lot_run_id,
        process_step_id=run.process_step_id,
        status=run.status,
        started_at=run.started_at,
        completed_at=run.completed_at,
        performed_by=run.performed_by,
        location_id=run.location_id,
        skipped_at=run.skipped_at,
        skipped_by=run.skipped_by,
        process_step=step_out,
        location=LocationOut(id=location.id, name=location.name) if location else None,
        step_name=step_name.name if step_name else None,
        step_code=(step.step_code if step and step.step_code else None)
        or (step_name.code if step_name else None),
    )


def _sort_key(item: StepRunOut) -> tuple[int, int]:
    seq = item.process_step.seq if item.process_step else 0
    return (seq or 0, item.id)


# ── Query paths ──────────────────────────────────────────────

async def _load_joined(db: AsyncSession, lot_run_id: int) -> list[StepRunOut]:
    result = await db.execute(
        select(ProcessStepRun)
        .where(ProcessStepRun.process_lot_run_id == lot_run_id)
        .options(
            joinedload(ProcessStepRun.process_step).joinedload(ProcessStep.step_name),
            joinedload(ProcessStepRun.location),
        )
        .execution_options(populate_existing=True)
    )
    runs = result.scalars().unique().all()
    return [
        _to_out(
            run,
            run.process_step,
            run.process_step.step_name if run.process_step else None,
            run.location,
        )
        for run in runs
    ]


async def _fetch_by_ids(db: AsyncSession, model, ids: set[int]) -> dict[int, object]:
    """Bulk lookup by primary key, retried per id if the bulk query fails."""
    if not ids:
        return {}
    try:
        async with db.begin_nested():
            rows = (await db.execute(select(model).where(model.id.in_(ids)))).scalars().all()
        return {row.id: row for row in rows}
    except SQLAlchemyError as e:
        logger.warning(
            "Bulk %s lookup failed (%s); retrying %d ids one by one",
            model.__tablename__, e, len(ids),
        )

    found: dict[int, object] = {}
    for row_id in sorted(ids):
        try:
            async with db.begin_nested():
                row = (await db.execute(
                    select(model).where(model.id == row_id)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning("%s id=%s lookup failed: %s", model.__tablename__, row_id, e)
            continue
        if row is not None:
            found[row_id] = row
    return found


async def _load_unjoined(db: AsyncSession, lot_run_id: int) -> list[StepRunOut]:
    runs = (await db.execute(
        select(ProcessStepRun)
        .where(ProcessStepRun.process_lot_run_id == lot_run_id)
        .execution_options(populate_existing=True)
    )).scalars().all()

    steps = await _fetch_by_ids(db, ProcessStep, {r.process_step_id for r in runs})
    names = await _fetch_by_ids(
        db, ProcessStepName, {s.step_name_id for s in steps.values() if s.step_name_id}
    )
    locations = await _fetch_by_ids(db, Warehouse, {r.location_id for r in runs if r.location_id})

    out = []
    for run in runs:
        step = steps.get(run.process_step_id)
        name = names.get(step.step_name_id) if step and step.step_name_id else None
        out.append(_to_out(run, step, name, locations.get(run.location_id)))
    return out


async def list_step_runs(db: AsyncSession, lot_run_id: int) -> list[StepRunOut]:
    """All step runs of a lot run, ordered by step sequence."""
    try:
        async with db.begin_nested():
            items = await _load_joined(db, lot_run_id)
    except SQLAlchemyError as e:
        logger.warning(
            "Joined step run query failed for lot run %s, using fallback: %s",
            lot_run_id, e,
        )
        items = await _load_unjoined(db, lot_run_id)
    return sorted(items, key=_sort_key)


# ── Mutations ────────────────────────────────────────────────

async def get_step_run_row(db: AsyncSession, step_run_id: int) -> ProcessStepRun:
    step_run = await db.get(ProcessStepRun, step_run_id)
    if not step_run:
        raise ResourceNotFoundError("Step run", step_run_id)
    return step_run


async def _require_quality_check(db: AsyncSession, step_run: ProcessStepRun) -> None:
    step = await db.get(ProcessStep, step_run.process_step_id)
    if step is None or not step.requires_qc:
        return
    check_id = (await db.execute(
        select(ProcessStepQualityCheck.id)
        .where(ProcessStepQualityCheck.process_step_run_id == step_run.id)
    )).scalar_one_or_none()
    if check_id is None:
        raise PreconditionError("A QC check must be recorded before completing this step")


async def update_step_run(
    db: AsyncSession,
    step_run_id: int,
    fields: dict,
    user: UserProfile | None = None,
) -> list[StepRunOut]:
    """Write exactly `fields`, then return the re-read list for the lot run."""
    fields = dict(fields)
    step_run = await get_step_run_row(db, step_run_id)

    if "status" in fields and fields["status"] is not None:
        previous = step_run.status
        fields["status"] = transition_step_run(previous, fields["status"]).value
        if fields["status"] == StepRunStatus.COMPLETED.value and previous != fields["status"]:
            await _require_quality_check(db, step_run)
        if fields["status"] != previous:
            logger.info(
                "Step run %s: %s → %s", step_run_id, previous, fields["status"]
            )
            await log_activity(
                db, user,
                action="status_changed",
                entity_type="step_run",
                entity_id=step_run_id,
                summary=f"{previous} → {fields['status']}",
            )

    for field, value in fields.items():
        setattr(step_run, field, value)

    await db.flush()
    return await list_step_runs(db, step_run.process_lot_run_id)


async def start_step_run(
    db: AsyncSession, step_run_id: int, user: UserProfile
) -> list[StepRunOut]:
    step_run = await get_step_run_row(db, step_run_id)
    fields = {"status": StepRunStatus.IN_PROGRESS.value, "performed_by": user.id}
    if step_run.started_at is None:
        fields["started_at"] = datetime.utcnow()
    return await update_step_run(db, step_run_id, fields, user)


async def complete_step_run(
    db: AsyncSession, step_run_id: int, user: UserProfile
) -> list[StepRunOut]:
    return await update_step_run(
        db, step_run_id,
        {"status": StepRunStatus.COMPLETED.value, "completed_at": datetime.utcnow()},
        user,
    )


async def skip_step_run(
    db: AsyncSession, step_run_id: int, user: UserProfile
) -> list[StepRunOut]:
    """Skip a PENDING or IN_PROGRESS step whose template allows skipping."""
    step_run = await get_step_run_row(db, step_run_id)
    step = await db.get(ProcessStep, step_run.process_step_id)
    if step is None or not step.can_be_skipped:
        raise BusinessLogicError("This step cannot be skipped", error_code="STEP_NOT_SKIPPABLE")

    now = datetime.utcnow()
    return await update_step_run(
        db, step_run_id,
        {"status": StepRunStatus.SKIPPED.value, "skipped_at": now, "skipped_by": user.id},
        user,
    )
