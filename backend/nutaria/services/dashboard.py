"""Dashboard stats and the inventory adapter.

Inventory can come from different tables whose columns were named by
different people (`on_hand`, `qty_on_hand`, `current_qty`, ...).  Every
source row goes through `normalise_inventory_rows`, which resolves each
canonical field from the first alias present in `INVENTORY_ALIASES`.
Adding a source with new column names means extending that table, not
the code.

Sources are tried in order (configured ones first, then `stock_levels`
and `supply_batches`); the first that returns rows wins.  A failing
source or stat query adds a labelled message to `errors` and the rest of
the dashboard still loads.
"""

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Mapping

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.config import settings
from nutaria.models.catalog import Product, Unit, Warehouse
from nutaria.models.supply import Shipment, Supplier
from nutaria.schemas.dashboard import DashboardOut, DashboardStats, InventoryRow

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY_SOURCES = ("stock_levels", "supply_batches")
OPEN_SHIPMENT_STATUSES = ("PENDING", "READY")
INVENTORY_ROW_LIMIT = 200
RECENT_STOCK_LIMIT = 5

INVENTORY_ALIASES: dict[str, tuple[str, ...]] = {
    "product_id": ("product_id", "productId", "item_id", "product_id_fk"),
    "warehouse_id": ("warehouse_id", "warehouseId", "location_id", "locationId", "site_id"),
    "unit_id": ("unit_id", "unitId", "base_unit_id", "baseUnitId"),
    "on_hand": (
        "on_hand", "qty_on_hand", "quantity_on_hand", "onhand_qty", "quantity",
        "qty", "current_qty", "qty_available", "quantity_available",
        "available_qty", "available",
    ),
    "allocated": (
        "allocated", "qty_allocated", "quantity_allocated", "reserved_qty",
        "qty_reserved", "reserved", "allocated_qty",
    ),
    "quality_hold": (
        "quality_hold", "qty_quality_hold", "quantity_quality_hold",
        "quality_holds", "on_quality_hold", "quarantine_qty",
    ),
    "in_transit": (
        "in_transit", "qty_in_transit", "quantity_in_transit", "transit_qty",
        "pending_qty", "in_transit_qty",
    ),
    "available": ("available", "qty_available", "available_qty"),
    "reorder_point": ("reorder_point", "minimum_qty", "min_qty"),
    "safety_stock": ("safety_stock", "safety_qty"),
    "last_updated": (
        "last_updated", "updated_at", "last_counted_at", "counted_at",
        "verified_at", "created_at", "recorded_at", "timestamp",
    ),
    "unit": ("unit", "unit_name", "unit_symbol", "uom"),
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ── Adapter ──────────────────────────────────────────────────

def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def coalesce_number(*values: Any) -> float | None:
    """First value that reads as a finite number."""
    for value in values:
        number = _number(value)
        if number is not None:
            return number
    return None


def _first(row: Mapping[str, Any], field: str) -> Any:
    for key in INVENTORY_ALIASES[field]:
        if row.get(key) is not None:
            return row[key]
    return None


def _first_number(row: Mapping[str, Any], field: str, *fallbacks: Any) -> float | None:
    return coalesce_number(*(row.get(k) for k in INVENTORY_ALIASES[field]), *fallbacks)


def _id(value: Any) -> int | None:
    number = _number(value)
    return int(number) if number is not None else None


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _last_updated(row: Mapping[str, Any]) -> datetime | None:
    for key in INVENTORY_ALIASES["last_updated"]:
        parsed = _timestamp(row.get(key))
        if parsed is not None:
            return parsed
    return None


def normalise_inventory_rows(
    rows: list[Mapping[str, Any]],
    products: Mapping[int, Product],
    warehouses: Mapping[int, Warehouse],
    units: Mapping[int, Unit],
) -> list[InventoryRow]:
    out = []
    for index, row in enumerate(rows):
        product_id = _id(_first(row, "product_id"))
        warehouse_id = _id(_first(row, "warehouse_id"))
        product = products.get(product_id) if product_id is not None else None
        warehouse = warehouses.get(warehouse_id) if warehouse_id is not None else None

        unit_id = _id(_first(row, "unit_id"))
        if unit_id is None and product is not None:
            unit_id = product.base_unit_id
        unit_record = units.get(unit_id) if unit_id is not None else None

        on_hand = _first_number(row, "on_hand")
        allocated = _first_number(row, "allocated") or 0.0
        quality_hold = _first_number(row, "quality_hold") or 0.0
        explicit_available = _first_number(row, "available")
        effective_on_hand = on_hand if on_hand is not None else (explicit_available or 0.0)

        if explicit_available is not None:
            available = explicit_available
        else:
            available = max(effective_on_hand - allocated - quality_hold, 0.0)

        unit_label = _first(row, "unit")
        if unit_label is None and unit_record is not None:
            unit_label = unit_record.symbol or unit_record.name

        row_id = row.get("id")
        out.append(InventoryRow(
            id=str(row_id) if row_id is not None
            else f"{product_id or 'product'}-{warehouse_id or 'warehouse'}-{index}",
            product_id=product_id,
            product_name=row.get("product_name") or (product.name if product else "Unknown product"),
            product_sku=row.get("product_sku") or (product.sku if product and product.sku else ""),
            warehouse_name=row.get("warehouse_name") or (warehouse.name if warehouse else "—"),
            unit=str(unit_label or ""),
            available=available,
            on_hand=effective_on_hand,
            allocated=allocated,
            in_transit=_first_number(row, "in_transit") or 0.0,
            reorder_point=_first_number(
                row, "reorder_point", product.reorder_point if product else None
            ),
            safety_stock=_first_number(
                row, "safety_stock", product.safety_stock if product else None
            ),
            quality_hold=quality_hold,
            last_updated=_last_updated(row),
        ))
    return out


def low_stock_threshold(
    row: InventoryRow, product: Product | None, default: float | None = None
) -> float:
    """Row reorder point → row safety stock → product reorder point → product safety stock → default."""
    threshold = coalesce_number(
        row.reorder_point,
        row.safety_stock,
        product.reorder_point if product else None,
        product.safety_stock if product else None,
    )
    if threshold is None:
        threshold = settings.dashboard_low_stock_threshold if default is None else default
    return threshold


def count_low_stock(rows: list[InventoryRow], products: Mapping[int, Product]) -> int:
    return sum(
        1 for row in rows
        if row.available < low_stock_threshold(row, products.get(row.product_id))
    )


# ── Queries ──────────────────────────────────────────────────

def inventory_sources() -> list[str]:
    configured = [s.strip() for s in settings.inventory_sources.split(",") if s.strip()]
    sources = []
    for table in [*configured, *DEFAULT_INVENTORY_SOURCES]:
        if table not in sources:
            sources.append(table)
    return sources


async def _fetch_source(db: AsyncSession, table: str) -> list[dict]:
    if not _IDENTIFIER.match(table):
        raise ValueError(f"invalid table name {table!r}")
    async with db.begin_nested():
        result = await db.execute(
            text(f'SELECT * FROM "{table}" LIMIT :limit'), {"limit": INVENTORY_ROW_LIMIT}
        )
        return [dict(r) for r in result.mappings().all()]


async def fetch_inventory_rows(
    db: AsyncSession,
    products: Mapping[int, Product],
    warehouses: Mapping[int, Warehouse],
    units: Mapping[int, Unit],
) -> tuple[list[InventoryRow], list[str]]:
    errors: list[str] = []
    for table in inventory_sources():
        try:
            rows = await _fetch_source(db, table)
        except (SQLAlchemyError, ValueError) as e:
            logger.warning("Inventory source %s failed: %s", table, e)
            errors.append(f"{table} inventory: {e}")
            continue
        if rows:
            return normalise_inventory_rows(rows, products, warehouses, units), errors
    return [], errors


async def _safe_all(db: AsyncSession, stmt, label: str, errors: list[str]) -> list:
    try:
        async with db.begin_nested():
            return list((await db.execute(stmt)).scalars().all())
    except SQLAlchemyError as e:
        logger.warning("Dashboard query %r failed: %s", label, e)
        errors.append(f"{label}: {e}")
        return []


async def _safe_count(db: AsyncSession, stmt, label: str, errors: list[str]) -> int:
    try:
        async with db.begin_nested():
            return (await db.execute(stmt)).scalar() or 0
    except SQLAlchemyError as e:
        logger.warning("Dashboard query %r failed: %s", label, e)
        errors.append(f"{label}: {e}")
        return 0


async def get_dashboard(db: AsyncSession) -> DashboardOut:
    errors: list[str] = []

    products = await _safe_all(db, select(Product), "products", errors)
    halal = await _safe_count(
        db,
        select(func.count(Supplier.id)).where(Supplier.is_halal_certified.is_(True)),
        "halal suppliers", errors,
    )
    open_shipments = await _safe_count(
        db,
        select(func.count(Shipment.id)).where(Shipment.doc_status.in_(OPEN_SHIPMENT_STATUSES)),
        "open shipments", errors,
    )
    warehouses = await _safe_all(db, select(Warehouse), "warehouses", errors)
    units = await _safe_all(db, select(Unit), "units", errors)

    product_map = {p.id: p for p in products}
    rows, inventory_errors = await fetch_inventory_rows(
        db, product_map, {w.id: w for w in warehouses}, {u.id: u for u in units},
    )
    errors.extend(inventory_errors)

    recent = sorted(
        rows,
        key=lambda r: r.last_updated.timestamp() if r.last_updated else 0,
        reverse=True,
    )[:RECENT_STOCK_LIMIT]

    return DashboardOut(
        stats=DashboardStats(
            total_products=len(products),
            low_stock_count=count_low_stock(rows, product_map),
            open_shipments=open_shipments,
            halal_suppliers=halal,
        ),
        recent_stock=recent,
        errors=errors,
    )
