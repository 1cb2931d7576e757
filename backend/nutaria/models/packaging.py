"""Packaging step records.

A ProcessPackagingRun holds the QC checklist for one packaging step run.
Hanging off it:

- weight checks (numbered, ordered by `check_no`)
- photos of product / label / pallet
- waste
- metal-check attempts per sorting output (attempt_no 1, 2, ...; a FAIL
  attempt carries one or more foreign-object rejections)
- pack entries: a sorting output packed into fixed-size packs.  Allowed
  only when that output's latest metal check is PASS; the check result is
  copied onto the entry at pack time.
- storage allocations: packs from one entry placed into boxes, bags or
  shop packing.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nutaria.database import Base


class ProcessPackagingRun(Base):
    __tablename__ = "process_packaging_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )

    # ── Visual inspection ────────────────────────────────────
    visual_status: Mapped[str | None] = mapped_column(String(50))
    rework_destination: Mapped[str | None] = mapped_column(String(100))
    pest_status: Mapped[str | None] = mapped_column(String(50))
    foreign_object_status: Mapped[str | None] = mapped_column(String(50))
    mould_status: Mapped[str | None] = mapped_column(String(50))
    damaged_kernels_pct: Mapped[float | None] = mapped_column(Float)
    insect_damaged_kernels_pct: Mapped[float | None] = mapped_column(Float)

    # ── Materials ────────────────────────────────────────────
    nitrogen_used: Mapped[float | None] = mapped_column(Float)
    nitrogen_batch_number: Mapped[str | None] = mapped_column(String(100))
    primary_packaging_type: Mapped[str | None] = mapped_column(String(100))
    primary_packaging_batch: Mapped[str | None] = mapped_column(String(100))
    secondary_packaging: Mapped[str | None] = mapped_column(String(100))
    secondary_packaging_type: Mapped[str | None] = mapped_column(String(100))
    secondary_packaging_batch: Mapped[str | None] = mapped_column(String(100))

    # ── Label / pallet (Yes | No | NA) ───────────────────────
    label_correct: Mapped[str | None] = mapped_column(String(5))
    label_legible: Mapped[str | None] = mapped_column(String(5))
    pallet_integrity: Mapped[str | None] = mapped_column(String(5))
    allergen_swab_result: Mapped[str | None] = mapped_column(String(100))

    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessPackagingWeightCheck(Base):
    __tablename__ = "process_packaging_weight_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    check_no: Mapped[int] = mapped_column(Integer, nullable=False)
    weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessPackagingPhoto(Base):
    __tablename__ = "process_packaging_photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    # product | label | pallet
    photo_type: Mapped[str] = mapped_column(String(20), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessPackagingWaste(Base):
    __tablename__ = "process_packaging_waste"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    waste_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Metal checks ─────────────────────────────────────────────

class ProcessPackagingMetalCheck(Base):
    __tablename__ = "process_packaging_metal_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    sorting_output_id: Mapped[int] = mapped_column(
        ForeignKey("process_sorting_outputs.id"), nullable=False, index=True
    )
    attempt_no: Mapped[int] = mapped_column(Integer, nullable=False)
    # PASS | FAIL
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    checked_by: Mapped[str | None] = mapped_column(String(36))
    checked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessPackagingMetalCheckRejection(Base):
    __tablename__ = "process_packaging_metal_check_rejections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    metal_check_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_metal_checks.id"), nullable=False, index=True
    )
    object_type: Mapped[str] = mapped_column(String(100), nullable=False)
    weight_kg: Mapped[float] = mapped_column(Float, nullable=False)
    corrective_action: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Packing ──────────────────────────────────────────────────

class ProcessPackagingPackEntry(Base):
    __tablename__ = "process_packaging_pack_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    sorting_output_id: Mapped[int] = mapped_column(
        ForeignKey("process_sorting_outputs.id"), nullable=False
    )
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id"))
    pack_identifier: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    packing_type: Mapped[str | None] = mapped_column(String(50))
    pack_size_kg: Mapped[float | None] = mapped_column(Float)
    pack_count: Mapped[int | None] = mapped_column(Integer)
    remainder_kg: Mapped[float | None] = mapped_column(Float)

    # ── Metal check snapshot at pack time ────────────────────
    metal_check_status: Mapped[str | None] = mapped_column(String(10))
    metal_check_attempts: Mapped[int] = mapped_column(Integer, default=0)
    metal_check_last_id: Mapped[int | None] = mapped_column(Integer)
    metal_check_last_checked_at: Mapped[datetime | None] = mapped_column(DateTime)
    metal_check_last_checked_by: Mapped[str | None] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessPackagingStorageAllocation(Base):
    __tablename__ = "process_packaging_storage_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    packaging_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_runs.id"), nullable=False, index=True
    )
    pack_entry_id: Mapped[int] = mapped_column(
        ForeignKey("process_packaging_pack_entries.id"), nullable=False, index=True
    )
    # BOX | BAG | SHOP_PACKING
    storage_type: Mapped[str] = mapped_column(String(20), nullable=False)
    box_unit_code: Mapped[str | None] = mapped_column(String(50))
    units_count: Mapped[int] = mapped_column(Integer, nullable=False)
    packs_per_unit: Mapped[int] = mapped_column(Integer, nullable=False)
    total_packs: Mapped[int] = mapped_column(Integer, nullable=False)
    total_quantity_kg: Mapped[float] = mapped_column(Float, default=0.0)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
