"""Pydantic schemas for washing, drying, sorting and metal detection.

Each `*ViewOut` is what the corresponding service returns after every
read or write: the parent record (or null when none exists yet) plus
its child rows.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from nutaria.schemas.lot_run import ProductBrief

YesNoNA = Literal["Yes", "No", "NA"]


class WasteCreate(BaseModel):
    waste_type: str = Field(..., min_length=1, max_length=100)
    quantity_kg: float = Field(..., ge=0)
    remarks: str | None = None


# ── Washing ──────────────────────────────────────────────────

class WashingRunSave(BaseModel):
    washing_water_litres: float | None = None
    oxy_acid_ml: float | None = None
    moisture_percent: float | None = None
    remarks: str | None = None


class WashingRunOut(WashingRunSave):
    id: int
    process_step_run_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WashingWasteOut(BaseModel):
    id: int
    washing_run_id: int
    waste_type: str
    quantity_kg: float
    remarks: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class WashingViewOut(BaseModel):
    washing_run: WashingRunOut | None
    waste: list[WashingWasteOut]


# ── Drying ───────────────────────────────────────────────────

class DryingRunSave(BaseModel):
    dryer_temperature_c: float | None = None
    time_in: datetime | None = None
    time_out: datetime | None = None
    moisture_in: float | None = None
    moisture_out: float | None = None
    crates_clean: YesNoNA | None = None
    insect_infestation: YesNoNA | None = None
    dryer_hygiene_clean: YesNoNA | None = None
    remarks: str | None = None


class DryingRunOut(DryingRunSave):
    id: int
    process_step_run_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DryingWasteOut(BaseModel):
    id: int
    drying_run_id: int
    waste_type: str
    quantity_kg: float
    remarks: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DryingViewOut(BaseModel):
    drying_run: DryingRunOut | None
    waste: list[DryingWasteOut]


# ── Sorting ──────────────────────────────────────────────────

class SortingOutputCreate(BaseModel):
    product_id: int
    quantity_kg: float = Field(..., gt=0)
    moisture_percent: float | None = None
    remarks: str | None = None


class SortingOutputUpdate(BaseModel):
    product_id: int | None = None
    quantity_kg: float | None = Field(None, gt=0)
    moisture_percent: float | None = None
    remarks: str | None = None


class SortingOutputOut(BaseModel):
    id: int
    process_step_run_id: int
    product_id: int
    quantity_kg: float
    moisture_percent: float | None
    remarks: str | None
    created_at: datetime
    updated_at: datetime
    product: ProductBrief | None = None

    model_config = {"from_attributes": True}


class SortingWasteCreate(BaseModel):
    sorting_run_id: int
    waste_type: str = Field(..., min_length=1, max_length=100)
    quantity_kg: float = Field(..., ge=0)


class SortingWasteOut(BaseModel):
    id: int
    sorting_run_id: int
    waste_type: str
    quantity_kg: float
    created_at: datetime

    model_config = {"from_attributes": True}


class SortingViewOut(BaseModel):
    outputs: list[SortingOutputOut]
    waste: list[SortingWasteOut]


class SortingBalanceOut(BaseModel):
    """Quantities spent in order: outputs, then reworks, then waste."""
    step_run_id: int
    available_qty: float
    output_kg: float
    rework_kg: float
    waste_kg: float
    remaining_after_outputs: float
    remaining_after_reworks: float
    remaining_after_waste: float


# ── Metal detection ──────────────────────────────────────────

class MetalDetectorSave(BaseModel):
    start_time: datetime
    end_time: datetime | None = None


class MetalDetectorOut(MetalDetectorSave):
    id: int
    process_step_run_id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RejectionCreate(BaseModel):
    rejection_time: datetime
    object_type: str = Field(..., min_length=1, max_length=100)
    weight: float | None = Field(None, ge=0)
    corrective_action: str | None = None


class RejectionOut(BaseModel):
    id: int
    session_id: int
    rejection_time: datetime
    object_type: str
    weight: float | None
    corrective_action: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MetalDetectorWasteOut(BaseModel):
    id: int
    process_step_run_id: int
    waste_type: str
    quantity_kg: float
    remarks: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MetalDetectionViewOut(BaseModel):
    session: MetalDetectorOut | None
    rejections: list[RejectionOut]
    waste: list[MetalDetectorWasteOut]
