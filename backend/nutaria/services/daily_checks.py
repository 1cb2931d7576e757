"""Daily facility checklist.

The checklist is a fixed template of three categories.  The first read on
a given day inserts that day's rows; after that only `completed`,
`completed_at`, `completed_by` and `note` change.

Hourly metal detector checks are separate: one reading per hour from
08:00 to 17:00, keyed on (date, hour).  Saving an hour that already has a
reading overwrites it and stamps who checked it and when.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.middleware.exceptions import ResourceNotFoundError
from nutaria.models.daily_check import DailyCheck, MetalDetectorHourlyCheck
from nutaria.models.user import UserProfile
from nutaria.schemas.daily_check import (
    DailyCheckCategoryOut,
    DailyCheckItemOut,
    DailyChecklistOut,
    MetalDetectorCheckOut,
    MetalDetectorCheckSave,
    MetalDetectorDayOut,
)

logger = logging.getLogger(__name__)

CHECKLIST_TEMPLATE = [
    {
        "id": "equipment",
        "title": "Equipment",
        "description": "Ensure all equipment is cleaned, calibrated, and ready for production.",
        "items": [
            ("dryer", "Dryer Sanitised", "Inspect and sanitise dryer drum and lint traps."),
            ("roaster", "Roaster Heat Check", "Verify roaster reach operating temp and record reading."),
            ("packaging", "Packaging Line Prepared", "Check conveyor belts and sealers for debris."),
        ],
    },
    {
        "id": "facility",
        "title": "Facility",
        "description": "Daily housekeeping items to keep the facility compliant.",
        "items": [
            ("floor", "Production Floor Clean", "Sweep and sanitise processing areas."),
            ("storeroom", "Storeroom Secured", "Confirm cold storage doors sealed and locked."),
            ("waste", "Waste Disposal Cleared", "Remove waste bins and replace liners."),
        ],
    },
    {
        "id": "documentation",
        "title": "Documentation",
        "description": "Paperwork and quality checks that must be logged daily.",
        "items": [
            ("logs", "Production Logs Updated", "Record batch counts and downtimes."),
            ("qc", "Quality Control Sign-off", "Complete QC checklist and capture signatures."),
            ("shipments", "Outgoing Shipments Verified", "Match shipment paperwork with physical orders."),
        ],
    },
]

ITEM_KEYS = {key for category in CHECKLIST_TEMPLATE for key, _, _ in category["items"]}

METAL_DETECTOR_HOURS = [time(hour) for hour in range(8, 18)]


async def _rows_for(db: AsyncSession, day: date) -> dict[str, DailyCheck]:
    rows = (await db.execute(
        select(DailyCheck)
        .where(DailyCheck.check_date == day)
        .execution_options(populate_existing=True)
    )).scalars().all()
    return {r.item_key: r for r in rows}


async def seed_day(db: AsyncSession, day: date) -> int:
    """Insert the template rows missing for `day`; returns how many were added."""
    existing = await _rows_for(db, day)
    added = 0
    for category in CHECKLIST_TEMPLATE:
        for key, name, note in category["items"]:
            if key in existing:
                continue
            db.add(DailyCheck(
                check_date=day,
                category=category["title"],
                item_key=key,
                item_name=name,
                note=note,
                completed=False,
            ))
            added += 1
    if added:
        await db.flush()
        logger.info("Seeded %d daily check items for %s", added, day)
    return added


async def get_checklist(db: AsyncSession, day: date | None = None) -> DailyChecklistOut:
    day = day or date.today()
    await seed_day(db, day)
    rows = await _rows_for(db, day)

    categories = []
    for category in CHECKLIST_TEMPLATE:
        categories.append(DailyCheckCategoryOut(
            id=category["id"],
            title=category["title"],
            description=category["description"],
            items=[
                DailyCheckItemOut.model_validate(rows[key])
                for key, _, _ in category["items"]
                if key in rows
            ],
        ))

    total = sum(len(c.items) for c in categories)
    completed = sum(1 for c in categories for item in c.items if item.completed)
    return DailyChecklistOut(
        check_date=day,
        categories=categories,
        total=total,
        completed=completed,
        remaining=total - completed,
    )


async def _item(db: AsyncSession, item_key: str, day: date) -> DailyCheck:
    if item_key not in ITEM_KEYS:
        raise ResourceNotFoundError("Checklist item", item_key)
    await seed_day(db, day)
    return (await _rows_for(db, day))[item_key]


async def toggle_item(
    db: AsyncSession, item_key: str, user: UserProfile, day: date | None = None
) -> DailyChecklistOut:
    day = day or date.today()
    row = await _item(db, item_key, day)
    row.completed = not row.completed
    row.completed_at = datetime.utcnow() if row.completed else None
    row.completed_by = user.id if row.completed else None
    await db.flush()
    return await get_checklist(db, day)


async def set_note(
    db: AsyncSession, item_key: str, note: str | None, day: date | None = None
) -> DailyChecklistOut:
    day = day or date.today()
    row = await _item(db, item_key, day)
    row.note = note
    await db.flush()
    return await get_checklist(db, day)


async def reset_day(db: AsyncSession, day: date | None = None) -> DailyChecklistOut:
    day = day or date.today()
    await db.execute(
        update(DailyCheck)
        .where(DailyCheck.check_date == day)
        .values(completed=False, completed_at=None, completed_by=None)
    )
    await db.flush()
    logger.info("Daily checks reset for %s", day)
    return await get_checklist(db, day)


# ── Hourly metal detector checks ─────────────────────────────

async def list_metal_detector_checks(db: AsyncSession, day: date | None = None) -> MetalDetectorDayOut:
    day = day or date.today()
    rows = (await db.execute(
        select(MetalDetectorHourlyCheck)
        .where(MetalDetectorHourlyCheck.check_date == day)
        .order_by(MetalDetectorHourlyCheck.check_hour)
        .execution_options(populate_existing=True)
    )).scalars().all()

    recorded = {r.check_hour for r in rows}
    return MetalDetectorDayOut(
        check_date=day,
        checks=[MetalDetectorCheckOut.model_validate(r) for r in rows],
        missing_hours=[h for h in METAL_DETECTOR_HOURS if h not in recorded],
    )


async def save_metal_detector_check(
    db: AsyncSession, body: MetalDetectorCheckSave, user: UserProfile
) -> MetalDetectorDayOut:
    row = (await db.execute(
        select(MetalDetectorHourlyCheck).where(
            MetalDetectorHourlyCheck.check_date == body.check_date,
            MetalDetectorHourlyCheck.check_hour == body.check_hour,
        )
    )).scalar_one_or_none()
    if row is None:
        row = MetalDetectorHourlyCheck(created_by=user.id, **body.model_dump())
        db.add(row)
    else:
        for field, value in body.model_dump().items():
            setattr(row, field, value)
    row.checked_by = user.id
    row.checked_at = datetime.utcnow()
    await db.flush()

    if "No" in (body.fe_1_5mm, body.non_fe_1_5mm, body.ss_1_5mm):
        logger.warning(
            "Metal detector missed a test piece at %s %s",
            body.check_date, body.check_hour.strftime("%H:%M"),
        )
    return await list_metal_detector_checks(db, body.check_date)
