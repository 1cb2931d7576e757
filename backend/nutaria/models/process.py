"""Process definitions and their execution records.

A Process is an ordered list of ProcessSteps (by `seq`).  Executing a
process against one supply batch creates a ProcessLotRun plus one
ProcessStepRun per step:

    ProcessLotRun   IN_PROGRESS → COMPLETED
    ProcessStepRun  PENDING → IN_PROGRESS → COMPLETED
                            ↘ SKIPPED     ↘ FAILED → IN_PROGRESS

Allowed transitions live in `nutaria.services.transitions`.  A lot run
completes only once every step run is COMPLETED or SKIPPED; completion
creates a ProductionBatch.

Rework reprocesses leftover material: a new supply batch is cut from the
original, recorded in `reworked_lots`, and gets its own lot run flagged
`is_rework` that points back at the originating run.
"""

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, JSON, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutaria.database import Base


class LotRunStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class StepRunStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# ── Definitions ──────────────────────────────────────────────

class Process(Base):
    __tablename__ = "processes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # Products this process applies to, e.g. [3, 7]
    product_ids: Mapped[list | None] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProductProcess(Base):
    """Explicit product → process mapping; `is_default` wins over product_ids."""

    __tablename__ = "product_processes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    process_id: Mapped[int] = mapped_column(ForeignKey("processes.id"), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


class ProcessStepName(Base):
    __tablename__ = "process_step_names"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class ProcessStep(Base):
    __tablename__ = "process_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_id: Mapped[int] = mapped_column(ForeignKey("processes.id"), nullable=False, index=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    step_name_id: Mapped[int | None] = mapped_column(ForeignKey("process_step_names.id"))
    # WASH | DRY | SORT | METAL | PACK | ...
    step_code: Mapped[str | None] = mapped_column(String(50))
    description: Mapped[str | None] = mapped_column(Text)
    requires_qc: Mapped[bool] = mapped_column(Boolean, default=False)
    can_be_skipped: Mapped[bool] = mapped_column(Boolean, default=False)
    default_location_id: Mapped[int | None] = mapped_column(ForeignKey("warehouses.id"))
    estimated_duration: Mapped[int | None] = mapped_column(Integer)  # minutes

    step_name = relationship("ProcessStepName")


# ── Execution ────────────────────────────────────────────────

class ProcessLotRun(Base):
    __tablename__ = "process_lot_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supply_batch_id: Mapped[int] = mapped_column(
        ForeignKey("supply_batches.id"), nullable=False, index=True
    )
    process_id: Mapped[int] = mapped_column(ForeignKey("processes.id"), nullable=False)

    # IN_PROGRESS | COMPLETED
    status: Mapped[str] = mapped_column(String(30), default="IN_PROGRESS", index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Rework ───────────────────────────────────────────────
    is_rework: Mapped[bool] = mapped_column(Boolean, default=False)
    original_process_lot_run_id: Mapped[int | None] = mapped_column(
        ForeignKey("process_lot_runs.id")
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    supply_batch = relationship("SupplyBatch")
    process = relationship("Process")
    signoffs = relationship(
        "ProcessSignoff", order_by="ProcessSignoff.signed_at",
    )


class ProcessStepRun(Base):
    __tablename__ = "process_step_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_lot_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_lot_runs.id"), nullable=False, index=True
    )
    process_step_id: Mapped[int] = mapped_column(ForeignKey("process_steps.id"), nullable=False)

    # PENDING | IN_PROGRESS | COMPLETED | FAILED | SKIPPED
    status: Mapped[str] = mapped_column(String(30), default="PENDING")
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    performed_by: Mapped[str | None] = mapped_column(String(36))
    location_id: Mapped[int | None] = mapped_column(ForeignKey("warehouses.id"))

    # ── Skip audit ───────────────────────────────────────────
    skipped_at: Mapped[datetime | None] = mapped_column(DateTime)
    skipped_by: Mapped[str | None] = mapped_column(String(36))

    process_step = relationship("ProcessStep")
    location = relationship("Warehouse")


class ProductionBatch(Base):
    __tablename__ = "production_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # PROD-YYYYMMDD-NNN
    batch_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    process_lot_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_lot_runs.id"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[str | None] = mapped_column(String(20))
    expiry_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Audit trail ──────────────────────────────────────────────

class ReworkedLot(Base):
    __tablename__ = "reworked_lots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    original_supply_batch_id: Mapped[int] = mapped_column(
        ForeignKey("supply_batches.id"), nullable=False
    )
    rework_supply_batch_id: Mapped[int] = mapped_column(
        ForeignKey("supply_batches.id"), nullable=False
    )
    sorting_output_id: Mapped[int | None] = mapped_column(
        ForeignKey("process_sorting_outputs.id")
    )
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    quantity_kg: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class BatchStepTransition(Base):
    __tablename__ = "batch_step_transitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    manufacturing_batch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    from_step: Mapped[str | None] = mapped_column(String(50))
    to_step: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
