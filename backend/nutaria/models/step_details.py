"""Step-specific run details: washing, drying, sorting, metal detection.

Each detail record hangs off one ProcessStepRun and moves through

    absent → draft (row inserted) → populated (fields filled in)

Completion is tracked on the step run itself, never here.  Child rows
(waste, rejections) can only be added once the parent record exists.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutaria.database import Base


# ── Washing ──────────────────────────────────────────────────

class ProcessWashingRun(Base):
    __tablename__ = "process_washing_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    washing_water_litres: Mapped[float | None] = mapped_column(Float)
    oxy_acid_ml: Mapped[float | None] = mapped_column(Float)
    moisture_percent: Mapped[float | None] = mapped_column(Float)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessWashingWaste(Base):
    __tablename__ = "process_washing_waste"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    washing_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_washing_runs.id"), nullable=False, index=True
    )
    waste_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Drying ───────────────────────────────────────────────────

class ProcessDryingRun(Base):
    __tablename__ = "process_drying_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    dryer_temperature_c: Mapped[float | None] = mapped_column(Float)
    time_in: Mapped[datetime | None] = mapped_column(DateTime)
    time_out: Mapped[datetime | None] = mapped_column(DateTime)
    moisture_in: Mapped[float | None] = mapped_column(Float)
    moisture_out: Mapped[float | None] = mapped_column(Float)
    # Yes | No | NA
    crates_clean: Mapped[str | None] = mapped_column(String(5))
    insect_infestation: Mapped[str | None] = mapped_column(String(5))
    dryer_hygiene_clean: Mapped[str | None] = mapped_column(String(5))
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessDryingWaste(Base):
    __tablename__ = "process_drying_waste"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    drying_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_drying_runs.id"), nullable=False, index=True
    )
    waste_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Sorting ──────────────────────────────────────────────────

class ProcessSortingOutput(Base):
    __tablename__ = "process_sorting_outputs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    moisture_percent: Mapped[float | None] = mapped_column(Float)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    product = relationship("Product")


class ProcessSortingWaste(Base):
    __tablename__ = "process_sorting_waste"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Keyed by the sorting output, not the step run
    sorting_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_sorting_outputs.id"), nullable=False, index=True
    )
    waste_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Metal detection ──────────────────────────────────────────

class ProcessMetalDetector(Base):
    __tablename__ = "process_metal_detector"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    end_time: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessForeignObjectRejection(Base):
    __tablename__ = "process_foreign_object_rejections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("process_metal_detector.id"), nullable=False, index=True
    )
    rejection_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    object_type: Mapped[str] = mapped_column(String(100), nullable=False)
    weight: Mapped[float | None] = mapped_column(Float)
    corrective_action: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessMetalDetectorWaste(Base):
    __tablename__ = "process_metal_detector_waste"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Keyed by step run; a detector session must still exist before adding
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    waste_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
