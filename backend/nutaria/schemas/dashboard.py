from datetime import datetime

from pydantic import BaseModel


class InventoryRow(BaseModel):
    """One inventory row, whatever source table it was read from."""
    id: str
    product_id: int | None
    product_name: str
    product_sku: str
    warehouse_name: str
    unit: str
    available: float
    on_hand: float
    allocated: float
    in_transit: float
    reorder_point: float | None
    safety_stock: float | None
    quality_hold: float
    last_updated: datetime | None


class DashboardStats(BaseModel):
    total_products: int = 0
    low_stock_count: int = 0
    open_shipments: int = 0
    halal_suppliers: int = 0


class DashboardOut(BaseModel):
    stats: DashboardStats
    recent_stock: list[InventoryRow]
    # Labelled messages for the parts that failed to load
    errors: list[str]
