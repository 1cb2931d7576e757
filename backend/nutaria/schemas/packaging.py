"""Pydantic schemas for the packaging step."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

YesNoNA = Literal["Yes", "No", "NA"]


# ── Packaging run ────────────────────────────────────────────

class PackagingRunSave(BaseModel):
    visual_status: str | None = None
    rework_destination: str | None = None
    pest_status: str | None = None
    foreign_object_status: str | None = None
    mould_status: str | None = None
    damaged_kernels_pct: float | None = Field(None, ge=0, le=100)
    insect_damaged_kernels_pct: float | None = Field(None, ge=0, le=100)
    nitrogen_used: float | None = None
    nitrogen_batch_number: str | None = None
    primary_packaging_type: str | None = None
    primary_packaging_batch: str | None = None
    secondary_packaging: str | None = None
    secondary_packaging_type: str | None = None
    secondary_packaging_batch: str | None = None
    label_correct: YesNoNA | None = None
    label_legible: YesNoNA | None = None
    pallet_integrity: YesNoNA | None = None
    allergen_swab_result: str | None = None
    remarks: str | None = None


class PackagingRunOut(PackagingRunSave):
    id: int
    process_step_run_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── Child rows ───────────────────────────────────────────────

class WeightCheckCreate(BaseModel):
    check_no: int = Field(..., ge=1)
    weight_kg: float = Field(..., gt=0)


class WeightCheckUpdate(BaseModel):
    check_no: int | None = Field(None, ge=1)
    weight_kg: float | None = Field(None, gt=0)


class WeightCheckOut(BaseModel):
    id: int
    packaging_run_id: int
    check_no: int
    weight_kg: float
    created_at: datetime

    model_config = {"from_attributes": True}


class PhotoCreate(BaseModel):
    photo_type: Literal["product", "label", "pallet"]
    file_path: str = Field(..., min_length=1, max_length=500)


class PhotoOut(BaseModel):
    id: int
    packaging_run_id: int
    photo_type: str
    file_path: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PackagingWasteCreate(BaseModel):
    waste_type: str = Field(..., min_length=1, max_length=100)
    quantity_kg: float = Field(..., ge=0)


class PackagingWasteOut(BaseModel):
    id: int
    packaging_run_id: int
    waste_type: str
    quantity_kg: float
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Metal checks ─────────────────────────────────────────────

class MetalCheckRejectionIn(BaseModel):
    object_type: str = Field(..., min_length=1, max_length=100)
    weight_kg: float = Field(..., ge=0)
    corrective_action: str | None = None


class MetalCheckRejectionOut(BaseModel):
    id: int
    metal_check_id: int
    object_type: str
    weight_kg: float
    corrective_action: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MetalCheckAttemptCreate(BaseModel):
    sorting_output_id: int
    status: Literal["PASS", "FAIL"]
    remarks: str | None = None
    rejections: list[MetalCheckRejectionIn] = []


class MetalCheckOut(BaseModel):
    id: int
    packaging_run_id: int
    sorting_output_id: int
    attempt_no: int
    status: str
    remarks: str | None
    checked_by: str | None
    checked_at: datetime
    rejections: list[MetalCheckRejectionOut] = []


# ── Pack entries ─────────────────────────────────────────────

class PackEntryCreate(BaseModel):
    sorting_output_id: int
    product_id: int | None = None
    pack_identifier: str = Field(..., min_length=1, max_length=50)
    quantity_kg: float = Field(..., gt=0)
    packing_type: str | None = None
    pack_size_kg: float | None = Field(None, gt=0)


class PackEntryOut(BaseModel):
    id: int
    packaging_run_id: int
    sorting_output_id: int
    product_id: int | None
    pack_identifier: str
    quantity_kg: float
    packing_type: str | None
    pack_size_kg: float | None
    pack_count: int | None
    remainder_kg: float | None
    metal_check_status: str | None
    metal_check_attempts: int
    metal_check_last_id: int | None
    metal_check_last_checked_at: datetime | None
    metal_check_last_checked_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Storage allocations ──────────────────────────────────────

class StorageAllocationCreate(BaseModel):
    pack_entry_id: int
    storage_type: Literal["BOX", "BAG", "SHOP_PACKING"]
    box_unit_code: str | None = Field(None, max_length=50)
    units_count: int = Field(..., gt=0)
    packs_per_unit: int = Field(..., gt=0)
    notes: str | None = None

    @model_validator(mode="after")
    def unit_code_only_for_boxes(self):
        if self.storage_type != "BOX":
            self.box_unit_code = None
        return self


class StorageAllocationOut(BaseModel):
    id: int
    packaging_run_id: int
    pack_entry_id: int
    storage_type: str
    box_unit_code: str | None
    units_count: int
    packs_per_unit: int
    total_packs: int
    total_quantity_kg: float
    notes: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Aggregate view ───────────────────────────────────────────

class PackagingViewOut(BaseModel):
    packaging_run: PackagingRunOut | None
    weight_checks: list[WeightCheckOut]
    photos: list[PhotoOut]
    waste: list[PackagingWasteOut]
    pack_entries: list[PackEntryOut]
    storage_allocations: list[StorageAllocationOut]
    # Keyed by sorting output id, attempts ascending
    metal_checks: dict[int, list[MetalCheckOut]]
    failed_rejected_weight_kg: dict[int, float]
