"""Daily operations records.

DailyCheck: one row per checklist item per day.  Rows for today are
seeded from the fixed template in `nutaria.services.daily_checks` the
first time the checklist is read.

MetalDetectorHourlyCheck: one test-piece reading per hour (08:00 to
17:00) per day.  Saving the same hour again overwrites it.
"""

from datetime import date, datetime, time

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from nutaria.database import Base


class DailyCheck(Base):
    __tablename__ = "daily_checks"
    __table_args__ = (
        UniqueConstraint("check_date", "item_key", name="uq_daily_check_item"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    check_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # Template category title: Equipment | Facility | Documentation
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    item_key: Mapped[str] = mapped_column(String(50), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)

    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_by: Mapped[str | None] = mapped_column(String(36))


class MetalDetectorHourlyCheck(Base):
    __tablename__ = "metal_detector_hourly_checks"
    __table_args__ = (
        UniqueConstraint("check_date", "check_hour", name="uq_metal_detector_check_hour"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    check_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_hour: Mapped[time] = mapped_column(Time, nullable=False)
    # Test piece detected: Yes | No
    fe_1_5mm: Mapped[str] = mapped_column(String(3), nullable=False)
    non_fe_1_5mm: Mapped[str] = mapped_column(String(3), nullable=False)
    ss_1_5mm: Mapped[str] = mapped_column(String(3), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text)
    corrective_action: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str | None] = mapped_column(String(36))
    checked_by: Mapped[str | None] = mapped_column(String(36))
    checked_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
