"""Supply-side records: suppliers, customers, supply batches, shipments.

A SupplyBatch is one received lot of raw material.  It is the input of a
ProcessLotRun; its `process_status` follows the run:

    UNPROCESSED → PROCESSING → PROCESSED

`stock_levels` holds inventory snapshots.  Every quantity column is
optional; the dashboard reads it (or any configured source table) through
the inventory adapter rather than through these attributes.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nutaria.database import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_halal_certified: Mapped[bool] = mapped_column(Boolean, default=False)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class SupplyBatch(Base):
    __tablename__ = "supply_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lot_no: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id"))
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    unit_id: Mapped[int | None] = mapped_column(ForeignKey("units.id"))

    # ── Quantities ───────────────────────────────────────────
    received_qty: Mapped[float | None] = mapped_column(Float)
    accepted_qty: Mapped[float | None] = mapped_column(Float)
    rejected_qty: Mapped[float] = mapped_column(Float, default=0.0)
    current_qty: Mapped[float] = mapped_column(Float, default=0.0)

    # ── Status ───────────────────────────────────────────────
    # UNPROCESSED | PROCESSING | PROCESSED
    process_status: Mapped[str] = mapped_column(String(30), default="UNPROCESSED", index=True)
    # PENDING | PASSED | FAILED
    quality_status: Mapped[str] = mapped_column(String(30), default="PENDING")

    expiry_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    product = relationship("Product")
    unit = relationship("Unit")


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"))
    # PENDING | READY | SHIPPED | CANCELLED
    doc_status: Mapped[str] = mapped_column(String(30), default="PENDING", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class StockLevel(Base):
    __tablename__ = "stock_levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int | None] = mapped_column(ForeignKey("products.id"), index=True)
    warehouse_id: Mapped[int | None] = mapped_column(ForeignKey("warehouses.id"))
    unit_id: Mapped[int | None] = mapped_column(ForeignKey("units.id"))

    # ── Quantities ───────────────────────────────────────────
    on_hand: Mapped[float | None] = mapped_column(Float)
    allocated: Mapped[float | None] = mapped_column(Float)
    quality_hold: Mapped[float | None] = mapped_column(Float)
    in_transit: Mapped[float | None] = mapped_column(Float)
    available: Mapped[float | None] = mapped_column(Float)
    reorder_point: Mapped[float | None] = mapped_column(Float)
    safety_stock: Mapped[float | None] = mapped_column(Float)

    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
