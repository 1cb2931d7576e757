"""Measurements, non-conformances, signoffs and step QC checks.

Non-conformances resolve one way only; see `services.transitions`.

Signoffs: one signature per (role, user) is checked against the list as
fetched at request time.  Nothing in the store enforces it, so two
requests that both read before either writes will both insert.

Step QC checks: one per step run, replaced wholesale on every save.
Unscored items (score 0) are dropped.  The overall score averages the
scored items with N/A (4) left out, and any item below 3 fails the
check.  Each failed parameter raises a MEDIUM non-conformance unless an
unresolved one for that parameter is already open on the step run.
"""

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.middleware.exceptions import (
    BusinessLogicError, DuplicateSignoffError, ResourceNotFoundError,
)
from nutaria.models.process import ProcessLotRun, ProcessStep
from nutaria.models.quality import (
    ProcessMeasurement,
    ProcessNonConformance,
    ProcessSignoff,
    ProcessStepQualityCheck,
    ProcessStepQualityCheckItem,
    ProcessStepQualityParameter,
    QualityParameter,
)
from nutaria.models.user import UserProfile
from nutaria.schemas.quality import (
    MeasurementCreate,
    MeasurementOut,
    NonConformanceCreate,
    NonConformanceListOut,
    NonConformanceOut,
    QualityParameterOut,
    SignoffBoardOut,
    SignoffOut,
    SignoffRoleOut,
    StepQualityCheckOut,
    StepQualityCheckSave,
    StepQualityCheckViewOut,
    StepQualityItemOut,
)
from nutaria.services.step_runs import get_step_run_row
from nutaria.services.transitions import resolve_non_conformance
from nutaria.utils.activity import log_activity

logger = logging.getLogger(__name__)

SIGNOFF_ROLES = ("operator", "supervisor", "qa")

QC_NOT_APPLICABLE = 4
QC_PASS_MIN = 3


# ── Measurements ─────────────────────────────────────────────

async def list_measurements(db: AsyncSession, step_run_id: int) -> list[MeasurementOut]:
    rows = (await db.execute(
        select(ProcessMeasurement)
        .where(ProcessMeasurement.process_step_run_id == step_run_id)
        .order_by(ProcessMeasurement.recorded_at.desc(), ProcessMeasurement.id.desc())
        .execution_options(populate_existing=True)
    )).scalars().all()
    return [MeasurementOut.model_validate(r) for r in rows]


async def add_measurement(db: AsyncSession, step_run_id: int, body: MeasurementCreate) -> list[MeasurementOut]:
    await get_step_run_row(db, step_run_id)
    db.add(ProcessMeasurement(
        process_step_run_id=step_run_id,
        metric=body.metric,
        value=body.value,
        unit=body.unit,
        recorded_at=body.recorded_at or datetime.utcnow(),
    ))
    await db.flush()
    return await list_measurements(db, step_run_id)


async def delete_measurement(db: AsyncSession, step_run_id: int, measurement_id: int) -> list[MeasurementOut]:
    row = (await db.execute(
        select(ProcessMeasurement).where(
            ProcessMeasurement.id == measurement_id,
            ProcessMeasurement.process_step_run_id == step_run_id,
        )
    )).scalar_one_or_none()
    if row is None:
        raise ResourceNotFoundError("Measurement", measurement_id)
    await db.delete(row)
    await db.flush()
    return await list_measurements(db, step_run_id)


# ── Non-conformances ─────────────────────────────────────────

async def list_non_conformances(db: AsyncSession, step_run_id: int) -> NonConformanceListOut:
    rows = (await db.execute(
        select(ProcessNonConformance)
        .where(ProcessNonConformance.process_step_run_id == step_run_id)
        .order_by(ProcessNonConformance.created_at.desc(), ProcessNonConformance.id.desc())
        .execution_options(populate_existing=True)
    )).scalars().all()

    unresolved = [NonConformanceOut.model_validate(r) for r in rows if not r.resolved]
    resolved = [NonConformanceOut.model_validate(r) for r in rows if r.resolved]
    return NonConformanceListOut(
        unresolved=unresolved,
        resolved=resolved,
        unresolved_count=len(unresolved),
    )


async def add_non_conformance(
    db: AsyncSession,
    step_run_id: int,
    body: NonConformanceCreate,
    user: UserProfile | None = None,
) -> NonConformanceListOut:
    await get_step_run_row(db, step_run_id)
    nc = ProcessNonConformance(
        process_step_run_id=step_run_id,
        **body.model_dump(),
        resolved=False,
        resolved_at=None,
    )
    db.add(nc)
    await db.flush()

    logger.info("Non-conformance %s (%s) raised on step run %s", nc.id, nc.severity, step_run_id)
    await log_activity(
        db, user,
        action="raised",
        entity_type="non_conformance",
        entity_id=nc.id,
        summary=f"{nc.severity} {nc.nc_type}",
    )
    return await list_non_conformances(db, step_run_id)


async def resolve(
    db: AsyncSession,
    nc_id: int,
    corrective_action: str | None = None,
    user: UserProfile | None = None,
) -> NonConformanceListOut:
    """Mark resolved and stamp `resolved_at`; a second resolve is refused."""
    nc = await db.get(ProcessNonConformance, nc_id)
    if nc is None:
        raise ResourceNotFoundError("Non-conformance", nc_id)

    nc.resolved = resolve_non_conformance(nc.resolved)
    nc.resolved_at = datetime.utcnow()
    if corrective_action:
        nc.corrective_action = corrective_action
    await db.flush()

    logger.info("Non-conformance %s resolved", nc_id)
    await log_activity(
        db, user,
        action="resolved",
        entity_type="non_conformance",
        entity_id=nc_id,
    )
    return await list_non_conformances(db, nc.process_step_run_id)


# ── Signoffs ─────────────────────────────────────────────────

async def fetch_signoffs(db: AsyncSession, lot_run_id: int) -> list[SignoffOut]:
    rows = (await db.execute(
        select(ProcessSignoff, UserProfile.full_name)
        .outerjoin(UserProfile, UserProfile.id == ProcessSignoff.signed_by)
        .where(ProcessSignoff.process_lot_run_id == lot_run_id)
        .order_by(ProcessSignoff.signed_at, ProcessSignoff.id)
        .execution_options(populate_existing=True)
    )).all()
    return [
        SignoffOut(
            id=s.id,
            process_lot_run_id=s.process_lot_run_id,
            role=s.role,
            signed_by=s.signed_by,
            signed_at=s.signed_at,
            signed_by_name=name,
        )
        for s, name in rows
    ]


def build_board(lot_run_id: int, signoffs: list[SignoffOut], user_id: str) -> SignoffBoardOut:
    roles = []
    for role in SIGNOFF_ROLES:
        for_role = [s for s in signoffs if s.role == role]
        roles.append(SignoffRoleOut(
            role=role,
            signoffs=for_role,
            has_signed=any(s.signed_by == user_id for s in for_role),
        ))
    return SignoffBoardOut(process_lot_run_id=lot_run_id, roles=roles)


async def get_signoff_board(db: AsyncSession, lot_run_id: int, user: UserProfile) -> SignoffBoardOut:
    if await db.get(ProcessLotRun, lot_run_id) is None:
        raise ResourceNotFoundError("Lot run", lot_run_id)
    return build_board(lot_run_id, await fetch_signoffs(db, lot_run_id), user.id)


async def sign(db: AsyncSession, lot_run_id: int, role: str, user: UserProfile) -> SignoffBoardOut:
    if await db.get(ProcessLotRun, lot_run_id) is None:
        raise ResourceNotFoundError("Lot run", lot_run_id)

    current = await fetch_signoffs(db, lot_run_id)
    if any(s.role == role and s.signed_by == user.id for s in current):
        raise DuplicateSignoffError(role)

    db.add(ProcessSignoff(
        process_lot_run_id=lot_run_id,
        role=role,
        signed_by=user.id,
        signed_at=datetime.utcnow(),
    ))
    await db.flush()

    logger.info("Lot run %s signed off as %s by %s", lot_run_id, role, user.id)
    await log_activity(
        db, user,
        action="signed_off",
        entity_type="lot_run",
        entity_id=lot_run_id,
        summary=f"Signed off as {role}",
    )
    return await get_signoff_board(db, lot_run_id, user)


# ── Step QC checks ───────────────────────────────────────────

def evaluate_scores(scores: list[int]) -> tuple[str, float | None]:
    """(status, overall score) for a set of item scores."""
    counted = [s for s in scores if s > 0 and s != QC_NOT_APPLICABLE]
    overall = round(sum(counted) / len(counted), 2) if counted else None
    status = "FAIL" if any(s < QC_PASS_MIN for s in counted) else "PASS"
    return status, overall


async def get_step_quality_check(db: AsyncSession, step_run_id: int) -> StepQualityCheckViewOut:
    step_run = await get_step_run_row(db, step_run_id)
    step = await db.get(ProcessStep, step_run.process_step_id)

    parameters = (await db.execute(
        select(QualityParameter)
        .join(
            ProcessStepQualityParameter,
            ProcessStepQualityParameter.quality_parameter_id == QualityParameter.id,
        )
        .where(ProcessStepQualityParameter.process_step_id == step_run.process_step_id)
        .order_by(QualityParameter.id)
    )).scalars().all()

    check = (await db.execute(
        select(ProcessStepQualityCheck)
        .where(ProcessStepQualityCheck.process_step_run_id == step_run_id)
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()

    items = []
    if check is not None:
        rows = (await db.execute(
            select(ProcessStepQualityCheckItem, QualityParameter)
            .outerjoin(QualityParameter, QualityParameter.id == ProcessStepQualityCheckItem.parameter_id)
            .where(ProcessStepQualityCheckItem.quality_check_id == check.id)
            .order_by(ProcessStepQualityCheckItem.parameter_id)
        )).all()
        items = [
            StepQualityItemOut(
                id=item.id,
                parameter_id=item.parameter_id,
                score=item.score,
                remarks=item.remarks,
                results=item.results,
                quality_parameter=QualityParameterOut.model_validate(param) if param else None,
            )
            for item, param in rows
        ]

    return StepQualityCheckViewOut(
        requires_qc=bool(step and step.requires_qc),
        parameters=[QualityParameterOut.model_validate(p) for p in parameters],
        quality_check=StepQualityCheckOut.model_validate(check) if check else None,
        items=items,
    )


async def _raise_qc_failures(
    db: AsyncSession, step_run_id: int, failed: list[tuple[QualityParameter, str | None]],
    user: UserProfile | None,
) -> None:
    open_types = set((await db.execute(
        select(ProcessNonConformance.nc_type).where(
            ProcessNonConformance.process_step_run_id == step_run_id,
            ProcessNonConformance.resolved.is_(False),
        )
    )).scalars().all())

    for param, remarks in failed:
        nc_type = f"QC Failure: {param.name}"[:100]
        if nc_type in open_types:
            continue
        nc = ProcessNonConformance(
            process_step_run_id=step_run_id,
            nc_type=nc_type,
            description=remarks or f"Quality parameter {param.name} failed QC check",
            severity="MEDIUM",
            resolved=False,
        )
        db.add(nc)
        await db.flush()
        await log_activity(
            db, user,
            action="raised",
            entity_type="non_conformance",
            entity_id=nc.id,
            summary=f"MEDIUM {nc_type}",
        )


async def save_step_quality_check(
    db: AsyncSession,
    step_run_id: int,
    body: StepQualityCheckSave,
    user: UserProfile | None = None,
) -> StepQualityCheckViewOut:
    await get_step_run_row(db, step_run_id)

    scored = [item for item in body.items if item.score > 0]
    param_ids = [item.parameter_id for item in scored]
    if len(set(param_ids)) != len(param_ids):
        raise BusinessLogicError(
            "Each quality parameter can only be scored once",
            error_code="DUPLICATE_QUALITY_PARAMETER",
        )
    params = {}
    if param_ids:
        params = {p.id: p for p in (await db.execute(
            select(QualityParameter).where(QualityParameter.id.in_(param_ids))
        )).scalars().all()}
    missing = sorted(set(param_ids) - params.keys())
    if missing:
        raise ResourceNotFoundError("Quality parameter", missing[0])

    status, overall = evaluate_scores([item.score for item in scored])
    now = datetime.utcnow()

    check = (await db.execute(
        select(ProcessStepQualityCheck)
        .where(ProcessStepQualityCheck.process_step_run_id == step_run_id)
    )).scalar_one_or_none()
    if check is None:
        check = ProcessStepQualityCheck(process_step_run_id=step_run_id)
        db.add(check)
    check.status = status
    check.overall_score = overall
    check.remarks = body.remarks
    check.evaluated_by = user.id if user else None
    check.evaluated_at = now
    await db.flush()

    await db.execute(
        delete(ProcessStepQualityCheckItem)
        .where(ProcessStepQualityCheckItem.quality_check_id == check.id)
    )
    for item in scored:
        db.add(ProcessStepQualityCheckItem(
            quality_check_id=check.id,
            parameter_id=item.parameter_id,
            score=item.score,
            remarks=(item.remarks or "").strip() or None,
            results=(item.results or "").strip() or None,
        ))
    await db.flush()

    failed = [
        (params[item.parameter_id], item.remarks)
        for item in scored
        if item.score != QC_NOT_APPLICABLE and item.score < QC_PASS_MIN
    ]
    if failed:
        await _raise_qc_failures(db, step_run_id, failed, user)

    logger.info(
        "QC check on step run %s: %s (score %s, %d failed)",
        step_run_id, status, overall, len(failed),
    )
    await log_activity(
        db, user,
        action="qc_checked",
        entity_type="step_run",
        entity_id=step_run_id,
        summary=f"QC {status}",
    )
    return await get_step_quality_check(db, step_run_id)
