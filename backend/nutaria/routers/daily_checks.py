"""Daily checklist router.

Endpoints:
    GET  /api/daily-checks/                   Today's checklist (seeded on first read)
    POST /api/daily-checks/{item_key}/toggle  Flip completion
    PUT  /api/daily-checks/{item_key}/note    Replace the item note
    POST /api/daily-checks/reset              Clear all of today's completions
    GET  /api/daily-checks/metal-detector     Hourly metal detector readings for a day
    PUT  /api/daily-checks/metal-detector     Record (or overwrite) one hour's reading
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.daily_check import (
    DailyChecklistOut, DailyCheckNote, MetalDetectorCheckSave, MetalDetectorDayOut,
)
from nutaria.services import daily_checks

router = APIRouter()


@router.get("/", response_model=DailyChecklistOut)
async def get_checklist(
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("checks.read")),
):
    return await daily_checks.get_checklist(db)


@router.post("/reset", response_model=DailyChecklistOut)
async def reset_checklist(
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("checks.write")),
):
    return await daily_checks.reset_day(db)


@router.get("/metal-detector", response_model=MetalDetectorDayOut)
async def list_metal_detector_checks(
    check_date: date | None = Query(None, description="Defaults to today"),
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("checks.read")),
):
    return await daily_checks.list_metal_detector_checks(db, check_date)


@router.put("/metal-detector", response_model=MetalDetectorDayOut)
async def save_metal_detector_check(
    body: MetalDetectorCheckSave,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("checks.write")),
):
    return await daily_checks.save_metal_detector_check(db, body, user)


@router.post("/{item_key}/toggle", response_model=DailyChecklistOut)
async def toggle_item(
    item_key: str,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(require_permission("checks.write")),
):
    return await daily_checks.toggle_item(db, item_key, user)


@router.put("/{item_key}/note", response_model=DailyChecklistOut)
async def set_note(
    item_key: str,
    body: DailyCheckNote,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("checks.write")),
):
    return await daily_checks.set_note(db, item_key, body.note)
