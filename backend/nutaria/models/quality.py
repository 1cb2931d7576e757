"""Quality records attached to step runs and lot runs.

- ProcessMeasurement: append-only readings per step run (newest first).
- ProcessNonConformance: one-way lifecycle, unresolved → resolved.
- ProcessSignoff: role-scoped approvals per lot run.  There is no
  uniqueness constraint on (lot run, role, signed_by); the duplicate
  check happens in the service before the insert.
- ProcessStepQualityCheck: at most one scored QC evaluation per step run,
  with one item per quality parameter.  Scores run 1 (reject) to 3
  (good); 4 means not applicable.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from nutaria.database import Base


class ProcessMeasurement(Base):
    __tablename__ = "process_measurements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    # moisture_in | moisture_out | weight | temp
    metric: Mapped[str] = mapped_column(String(30), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessNonConformance(Base):
    __tablename__ = "process_non_conformances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), nullable=False, index=True
    )
    nc_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # LOW | MEDIUM | HIGH | CRITICAL
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    corrective_action: Mapped[str | None] = mapped_column(Text)

    resolved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessSignoff(Base):
    __tablename__ = "process_signoffs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_lot_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_lot_runs.id"), nullable=False, index=True
    )
    # operator | supervisor | qa
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    signed_by: Mapped[str] = mapped_column(String(36), nullable=False)
    signed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ── Step QC checks ───────────────────────────────────────────

class QualityParameter(Base):
    __tablename__ = "quality_parameters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    specification: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ProcessStepQualityParameter(Base):
    """Parameters a process step template is checked against."""
    __tablename__ = "process_step_quality_parameters"
    __table_args__ = (
        UniqueConstraint("process_step_id", "quality_parameter_id", name="uq_step_quality_parameter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_id: Mapped[int] = mapped_column(
        ForeignKey("process_steps.id"), nullable=False, index=True
    )
    quality_parameter_id: Mapped[int] = mapped_column(
        ForeignKey("quality_parameters.id"), nullable=False
    )


class ProcessStepQualityCheck(Base):
    __tablename__ = "process_step_quality_checks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    process_step_run_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_runs.id"), unique=True, nullable=False
    )
    # PASS | FAIL | PENDING
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    # Average of the scored items, N/A excluded; null when nothing was scored
    overall_score: Mapped[float | None] = mapped_column(Float)
    remarks: Mapped[str | None] = mapped_column(Text)
    evaluated_by: Mapped[str | None] = mapped_column(String(36))
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ProcessStepQualityCheckItem(Base):
    __tablename__ = "process_step_quality_check_items"
    __table_args__ = (
        UniqueConstraint("quality_check_id", "parameter_id", name="uq_quality_check_parameter"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quality_check_id: Mapped[int] = mapped_column(
        ForeignKey("process_step_quality_checks.id"), nullable=False, index=True
    )
    parameter_id: Mapped[int] = mapped_column(
        ForeignKey("quality_parameters.id"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    results: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
