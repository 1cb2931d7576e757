"""Catalog reference data: products, units of measure, and warehouses.

These rows are maintained from the settings pages and are only read by
the process-execution services (joined into lot runs, step runs and the
dashboard inventory view).
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutaria.database import Base


class Unit(Base):
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str | None] = mapped_column(String(20))


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), index=True)

    # ── Stock thresholds ─────────────────────────────────────
    reorder_point: Mapped[float | None] = mapped_column(Float)
    safety_stock: Mapped[float | None] = mapped_column(Float)
    target_stock: Mapped[float | None] = mapped_column(Float)
    base_unit_id: Mapped[int | None] = mapped_column(ForeignKey("units.id"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    base_unit = relationship("Unit")


class Warehouse(Base):
    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
