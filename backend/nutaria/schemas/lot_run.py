"""Pydantic schemas for lot runs, production batches and rework."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from nutaria.models.process import LotRunStatus
from nutaria.schemas.quality import SignoffOut


# ── Nested summaries ─────────────────────────────────────────

class ProductBrief(BaseModel):
    id: int
    name: str
    sku: str | None = None

    model_config = {"from_attributes": True}


class UnitBrief(BaseModel):
    id: int
    name: str
    symbol: str | None = None

    model_config = {"from_attributes": True}


class SupplyBatchBrief(BaseModel):
    id: int
    lot_no: str
    current_qty: float
    process_status: str
    quality_status: str
    expiry_date: date | None = None
    product: ProductBrief | None = None
    unit: UnitBrief | None = None

    model_config = {"from_attributes": True}


class ProcessBrief(BaseModel):
    id: int
    code: str
    name: str
    description: str | None = None

    model_config = {"from_attributes": True}


# ── Lot run ──────────────────────────────────────────────────

class LotRunCreate(BaseModel):
    supply_batch_id: int
    # When the batch already has a run: return it instead of failing
    return_existing: bool = False


class LotRunOut(BaseModel):
    id: int
    supply_batch_id: int
    process_id: int
    status: LotRunStatus
    started_at: datetime | None
    completed_at: datetime | None
    is_rework: bool
    original_process_lot_run_id: int | None
    created_at: datetime
    updated_at: datetime

    supply_batch: SupplyBatchBrief | None = None
    process: ProcessBrief | None = None
    signoffs: list[SignoffOut] = []

    model_config = {"from_attributes": True}


class LotRunSummary(BaseModel):
    id: int
    supply_batch_id: int
    lot_no: str | None = None
    process_name: str | None = None
    status: LotRunStatus
    is_rework: bool
    started_at: datetime | None
    completed_at: datetime | None


class ProductionBatchOut(BaseModel):
    id: int
    batch_code: str
    process_lot_run_id: int
    product_id: int
    quantity: float
    unit: str | None
    expiry_date: date | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LotRunCompletionOut(BaseModel):
    lot_run: LotRunOut
    production_batch: ProductionBatchOut
    unresolved_non_conformances: int


# ── Rework ───────────────────────────────────────────────────

class ReworkCreate(BaseModel):
    quantity_kg: float = Field(..., gt=0)
    reason: str | None = None


class ReworkedLotOut(BaseModel):
    id: int
    original_supply_batch_id: int
    rework_supply_batch_id: int
    sorting_output_id: int | None
    process_step_run_id: int
    quantity_kg: float
    reason: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReworkOut(BaseModel):
    rework_batch_id: int
    rework_lot_run_id: int
    reworked_lot: ReworkedLotOut


# ── Batch step transitions ──────────────────────────────────

class BatchTransitionCreate(BaseModel):
    manufacturing_batch_id: int
    from_step: str | None = None
    to_step: str = Field(..., min_length=1, max_length=50)
    reason: str | None = None


class BatchTransitionOut(BaseModel):
    id: int
    manufacturing_batch_id: int
    from_step: str | None
    to_step: str
    reason: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Quantity tracking ────────────────────────────────────────

class WasteBreakdown(BaseModel):
    washing_waste: float = 0.0
    drying_waste: float = 0.0
    metal_rejections: float = 0.0
    metal_waste: float = 0.0
    # Reported only; spent inside the sorting step, not deducted here
    sorting_waste: float = 0.0
    packaging_waste: float = 0.0


class AvailableQuantityOut(BaseModel):
    lot_run_id: int
    up_to_step_run_id: int | None = None
    initial_qty: float
    total_waste: float
    available_qty: float
    breakdown: WasteBreakdown
