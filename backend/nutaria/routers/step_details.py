"""Step detail router: washing, drying, sorting and metal detection.

All routes live under /api/step-runs/{step_run_id}/...  A GET on a step
run without a detail record returns the empty view (`null` parent,
empty child lists), never a 404.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.step_details import (
    DryingRunSave,
    DryingViewOut,
    MetalDetectionViewOut,
    MetalDetectorSave,
    RejectionCreate,
    SortingBalanceOut,
    SortingOutputCreate,
    SortingOutputUpdate,
    SortingViewOut,
    SortingWasteCreate,
    WashingRunSave,
    WashingViewOut,
    WasteCreate,
)
from nutaria.services import quantities, step_details

router = APIRouter()

_read = require_permission("process.read")
_write = require_permission("process.write")


# ── Washing ──────────────────────────────────────────────────

@router.get("/{step_run_id}/washing", response_model=WashingViewOut)
async def get_washing(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_read),
):
    return await step_details.get_washing(db, step_run_id)


@router.put("/{step_run_id}/washing", response_model=WashingViewOut)
async def save_washing(
    step_run_id: int,
    body: WashingRunSave,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.save_washing_run(db, step_run_id, body)


@router.post("/{step_run_id}/washing/waste", response_model=WashingViewOut)
async def add_washing_waste(
    step_run_id: int,
    body: WasteCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_washing_waste(db, step_run_id, body)


@router.delete("/{step_run_id}/washing/waste/{waste_id}", response_model=WashingViewOut)
async def delete_washing_waste(
    step_run_id: int,
    waste_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_washing_waste(db, step_run_id, waste_id)


# ── Drying ───────────────────────────────────────────────────

@router.get("/{step_run_id}/drying", response_model=DryingViewOut)
async def get_drying(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_read),
):
    return await step_details.get_drying(db, step_run_id)


@router.put("/{step_run_id}/drying", response_model=DryingViewOut)
async def save_drying(
    step_run_id: int,
    body: DryingRunSave,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.save_drying_run(db, step_run_id, body)


@router.post("/{step_run_id}/drying/waste", response_model=DryingViewOut)
async def add_drying_waste(
    step_run_id: int,
    body: WasteCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_drying_waste(db, step_run_id, body)


@router.delete("/{step_run_id}/drying/waste/{waste_id}", response_model=DryingViewOut)
async def delete_drying_waste(
    step_run_id: int,
    waste_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_drying_waste(db, step_run_id, waste_id)


# ── Sorting ──────────────────────────────────────────────────

@router.get("/{step_run_id}/sorting", response_model=SortingViewOut)
async def get_sorting(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_read),
):
    return await step_details.get_sorting(db, step_run_id)


@router.get("/{step_run_id}/sorting/balance", response_model=SortingBalanceOut)
async def get_sorting_balance(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_read),
):
    return await quantities.sorting_balance(db, step_run_id)


@router.post("/{step_run_id}/sorting/outputs", response_model=SortingViewOut)
async def add_sorting_output(
    step_run_id: int,
    body: SortingOutputCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_sorting_output(db, step_run_id, body)


@router.patch("/{step_run_id}/sorting/outputs/{output_id}", response_model=SortingViewOut)
async def update_sorting_output(
    step_run_id: int,
    output_id: int,
    body: SortingOutputUpdate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.update_sorting_output(db, step_run_id, output_id, body)


@router.delete("/{step_run_id}/sorting/outputs/{output_id}", response_model=SortingViewOut)
async def delete_sorting_output(
    step_run_id: int,
    output_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_sorting_output(db, step_run_id, output_id)


@router.post("/{step_run_id}/sorting/waste", response_model=SortingViewOut)
async def add_sorting_waste(
    step_run_id: int,
    body: SortingWasteCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_sorting_waste(db, step_run_id, body)


@router.delete("/{step_run_id}/sorting/waste/{waste_id}", response_model=SortingViewOut)
async def delete_sorting_waste(
    step_run_id: int,
    waste_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_sorting_waste(db, step_run_id, waste_id)


# ── Metal detection ──────────────────────────────────────────

@router.get("/{step_run_id}/metal-detection", response_model=MetalDetectionViewOut)
async def get_metal_detection(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_read),
):
    return await step_details.get_metal_detection(db, step_run_id)


@router.put("/{step_run_id}/metal-detection", response_model=MetalDetectionViewOut)
async def save_metal_detection(
    step_run_id: int,
    body: MetalDetectorSave,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.save_metal_detector_session(db, step_run_id, body)


@router.post("/{step_run_id}/metal-detection/rejections", response_model=MetalDetectionViewOut)
async def add_rejection(
    step_run_id: int,
    body: RejectionCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_rejection(db, step_run_id, body)


@router.delete(
    "/{step_run_id}/metal-detection/rejections/{rejection_id}",
    response_model=MetalDetectionViewOut,
)
async def delete_rejection(
    step_run_id: int,
    rejection_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_rejection(db, step_run_id, rejection_id)


@router.post("/{step_run_id}/metal-detection/waste", response_model=MetalDetectionViewOut)
async def add_metal_detection_waste(
    step_run_id: int,
    body: WasteCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.add_metal_detector_waste(db, step_run_id, body)


@router.delete(
    "/{step_run_id}/metal-detection/waste/{waste_id}",
    response_model=MetalDetectionViewOut,
)
async def delete_metal_detection_waste(
    step_run_id: int,
    waste_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await step_details.delete_metal_detector_waste(db, step_run_id, waste_id)
