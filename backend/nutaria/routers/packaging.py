"""Packaging step router.

Endpoints (all under /api/step-runs/{step_run_id}/packaging):
    GET    /                               Full packaging view
    PUT    /                               Create or update the packaging run
    POST   /weight-checks                  Add weight check
    PATCH  /weight-checks/{id}             Update weight check
    DELETE /weight-checks/{id}
    POST   /photos                         Register a photo
    DELETE /photos/{id}
    POST   /waste                          Add waste
    DELETE /waste/{id}
    POST   /metal-checks                   Record a metal-check attempt
    POST   /pack-entries                   Pack a sorting output (metal check must PASS)
    DELETE /pack-entries/{id}
    POST   /storage-allocations            Allocate packs to boxes / bags / shop packing
    DELETE /storage-allocations/{id}
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.auth.deps import require_permission
from nutaria.database import get_db
from nutaria.models.user import UserProfile
from nutaria.schemas.packaging import (
    MetalCheckAttemptCreate,
    PackagingRunSave,
    PackagingViewOut,
    PackagingWasteCreate,
    PackEntryCreate,
    PhotoCreate,
    StorageAllocationCreate,
    WeightCheckCreate,
    WeightCheckUpdate,
)
from nutaria.services import packaging

router = APIRouter()

_write = require_permission("process.write")


@router.get("/{step_run_id}/packaging", response_model=PackagingViewOut)
async def get_packaging(
    step_run_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(require_permission("process.read")),
):
    return await packaging.get_packaging(db, step_run_id)


@router.put("/{step_run_id}/packaging", response_model=PackagingViewOut)
async def save_packaging(
    step_run_id: int,
    body: PackagingRunSave,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.save_packaging_run(db, step_run_id, body)


# ── Weight checks ────────────────────────────────────────────

@router.post("/{step_run_id}/packaging/weight-checks", response_model=PackagingViewOut)
async def add_weight_check(
    step_run_id: int,
    body: WeightCheckCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.add_weight_check(db, step_run_id, body)


@router.patch("/{step_run_id}/packaging/weight-checks/{check_id}", response_model=PackagingViewOut)
async def update_weight_check(
    step_run_id: int,
    check_id: int,
    body: WeightCheckUpdate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.update_weight_check(db, step_run_id, check_id, body)


@router.delete("/{step_run_id}/packaging/weight-checks/{check_id}", response_model=PackagingViewOut)
async def delete_weight_check(
    step_run_id: int,
    check_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.delete_weight_check(db, step_run_id, check_id)


# ── Photos / waste ───────────────────────────────────────────

@router.post("/{step_run_id}/packaging/photos", response_model=PackagingViewOut)
async def add_photo(
    step_run_id: int,
    body: PhotoCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.add_photo(db, step_run_id, body)


@router.delete("/{step_run_id}/packaging/photos/{photo_id}", response_model=PackagingViewOut)
async def delete_photo(
    step_run_id: int,
    photo_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.delete_photo(db, step_run_id, photo_id)


@router.post("/{step_run_id}/packaging/waste", response_model=PackagingViewOut)
async def add_waste(
    step_run_id: int,
    body: PackagingWasteCreate,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.add_packaging_waste(db, step_run_id, body)


@router.delete("/{step_run_id}/packaging/waste/{waste_id}", response_model=PackagingViewOut)
async def delete_waste(
    step_run_id: int,
    waste_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.delete_packaging_waste(db, step_run_id, waste_id)


# ── Metal checks / packing / storage ─────────────────────────

@router.post("/{step_run_id}/packaging/metal-checks", response_model=PackagingViewOut)
async def record_metal_check(
    step_run_id: int,
    body: MetalCheckAttemptCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(_write),
):
    return await packaging.record_metal_check(db, step_run_id, body, user)


@router.post("/{step_run_id}/packaging/pack-entries", response_model=PackagingViewOut)
async def add_pack_entry(
    step_run_id: int,
    body: PackEntryCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(_write),
):
    return await packaging.add_pack_entry(db, step_run_id, body, user)


@router.delete("/{step_run_id}/packaging/pack-entries/{entry_id}", response_model=PackagingViewOut)
async def delete_pack_entry(
    step_run_id: int,
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.delete_pack_entry(db, step_run_id, entry_id)


@router.post("/{step_run_id}/packaging/storage-allocations", response_model=PackagingViewOut)
async def add_storage_allocation(
    step_run_id: int,
    body: StorageAllocationCreate,
    db: AsyncSession = Depends(get_db),
    user: UserProfile = Depends(_write),
):
    return await packaging.add_storage_allocation(db, step_run_id, body, user)


@router.delete(
    "/{step_run_id}/packaging/storage-allocations/{allocation_id}",
    response_model=PackagingViewOut,
)
async def delete_storage_allocation(
    step_run_id: int,
    allocation_id: int,
    db: AsyncSession = Depends(get_db),
    _user: UserProfile = Depends(_write),
):
    return await packaging.delete_storage_allocation(db, step_run_id, allocation_id)
