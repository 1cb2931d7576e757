"""Tests for the dashboard stats and the inventory adapter."""

from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.config import settings
from nutaria.models.catalog import Product, Unit, Warehouse
from nutaria.models.supply import Shipment, StockLevel, Supplier
from nutaria.services import dashboard
from nutaria.services.dashboard import (
    count_low_stock,
    inventory_sources,
    low_stock_threshold,
    normalise_inventory_rows,
)

PRODUCTS = {1: Product(id=1, name="Cashew W320", sku="CSH-W320", base_unit_id=3)}
WAREHOUSES = {2: Warehouse(id=2, name="Main Store")}
UNITS = {3: Unit(id=3, name="Kilogram", symbol="kg")}


def _normalise(*rows):
    return normalise_inventory_rows(list(rows), PRODUCTS, WAREHOUSES, UNITS)


@pytest.mark.unit
class TestNormaliseInventoryRows:

    def test_available_derived_from_quantities(self):
        [row] = _normalise(
            {"product_id": 1, "warehouse_id": 2, "on_hand": 80, "allocated": 10, "quality_hold": 0}
        )

        assert row.available == 70
        assert row.on_hand == 80
        assert row.id == "1-2-0"
        assert row.product_name == "Cashew W320"
        assert row.product_sku == "CSH-W320"
        assert row.warehouse_name == "Main Store"
        assert row.unit == "kg"

    def test_aliased_columns(self):
        [row] = _normalise({
            "id": 9,
            "productId": "1",
            "location_id": 2,
            "qty_on_hand": "50",
            "reserved_qty": 5,
            "quarantine_qty": 5,
            "transit_qty": 12,
            "uom": "bags",
            "updated_at": "2026-03-01T08:00:00",
        })

        assert row.id == "9"
        assert row.product_id == 1
        assert row.available == 40
        assert row.allocated == 5
        assert row.quality_hold == 5
        assert row.in_transit == 12
        assert row.unit == "bags"
        assert row.last_updated == datetime(2026, 3, 1, 8, 0)

    def test_explicit_available_wins(self):
        [row] = _normalise({"product_id": 1, "on_hand": 80, "allocated": 10, "available": 75})

        assert row.available == 75

    def test_available_never_negative(self):
        [row] = _normalise({"product_id": 1, "on_hand": 5, "allocated": 10})

        assert row.available == 0

    def test_unknown_references(self):
        rows = _normalise({"on_hand": "n/a"}, {"product_id": 42, "warehouse_id": 7, "qty": 3})

        assert rows[0].id == "product-warehouse-0"
        assert rows[0].product_name == "Unknown product"
        assert rows[0].warehouse_name == "—"
        assert rows[0].product_sku == ""
        assert rows[0].on_hand == 0
        assert rows[1].id == "42-7-1"
        assert rows[1].unit == ""

    def test_product_thresholds_copied_when_row_has_none(self):
        products = {1: Product(id=1, name="Almond", reorder_point=20, safety_stock=8)}
        [row] = normalise_inventory_rows([{"product_id": 1, "on_hand": 1}], products, {}, {})

        assert row.reorder_point == 20
        assert row.safety_stock == 8


@pytest.mark.unit
class TestLowStock:

    def _row(self, **fields):
        return _normalise({"product_id": 1, "on_hand": 10, **fields})[0]

    def test_threshold_order(self):
        product = Product(id=1, name="Almond", reorder_point=20, safety_stock=8)

        assert low_stock_threshold(self._row(reorder_point=5, safety_stock=3), product) == 5
        assert low_stock_threshold(self._row(safety_stock=3), product) == 3
        assert low_stock_threshold(self._row(), product) == 20
        assert low_stock_threshold(self._row(), Product(id=1, name="A", safety_stock=8)) == 8
        assert low_stock_threshold(self._row(), None, default=7) == 7
        assert low_stock_threshold(self._row(), None) == settings.dashboard_low_stock_threshold

    def test_count(self):
        rows = _normalise(
            {"product_id": 1, "on_hand": 80, "allocated": 10},
            {"product_id": 1, "on_hand": 500},
            {"product_id": 1, "on_hand": 4, "reorder_point": 5},
        )

        assert count_low_stock(rows, PRODUCTS) == 2


@pytest.mark.unit
class TestInventorySources:

    def test_defaults(self, monkeypatch):
        monkeypatch.setattr(settings, "inventory_sources", "")

        assert inventory_sources() == ["stock_levels", "supply_batches"]

    def test_configured_first_without_duplicates(self, monkeypatch):
        monkeypatch.setattr(settings, "inventory_sources", " inventory_v2 , stock_levels,inventory_v2")

        assert inventory_sources() == ["inventory_v2", "stock_levels", "supply_batches"]


@pytest.mark.api
@pytest.mark.asyncio
class TestDashboardEndpoint:

    async def _stock(self, db: AsyncSession, seeded):
        db.add_all([
            StockLevel(
                product_id=seeded.product_id, warehouse_id=seeded.warehouse_id,
                unit_id=seeded.unit_id, on_hand=80, allocated=10, quality_hold=0,
                last_updated=datetime(2026, 3, 1, 8, 0),
            ),
            StockLevel(
                product_id=seeded.product_id, warehouse_id=seeded.warehouse_id,
                on_hand=500, last_updated=datetime(2026, 3, 2, 8, 0),
            ),
            Supplier(name="Halal Nuts Co", is_halal_certified=True),
            Supplier(name="Other Nuts", is_halal_certified=False),
            Shipment(doc_status="PENDING"),
            Shipment(doc_status="READY"),
            Shipment(doc_status="SHIPPED"),
        ])
        await db.commit()

    async def test_stats_and_recent_stock(
        self, client: AsyncClient, auth_headers: dict, seeded, db_session: AsyncSession
    ):
        await self._stock(db_session, seeded)

        response = await client.get("/api/dashboard/", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["stats"] == {
            "total_products": 1,
            "low_stock_count": 1,
            "open_shipments": 2,
            "halal_suppliers": 1,
        }
        assert [r["on_hand"] for r in data["recent_stock"]] == [500, 80]
        assert data["recent_stock"][1]["available"] == 70
        assert data["recent_stock"][1]["unit"] == "kg"
        assert data["errors"] == []

    async def test_falls_back_to_supply_batches(
        self, client: AsyncClient, auth_headers: dict, seeded
    ):
        response = await client.get("/api/dashboard/", headers=auth_headers)

        [row] = response.json()["recent_stock"]
        assert row["product_name"] == "Cashew W320"
        assert row["available"] == 100
        assert response.json()["stats"]["low_stock_count"] == 0

    async def test_failing_sources_are_reported(
        self, client: AsyncClient, auth_headers: dict, seeded, db_session: AsyncSession,
        monkeypatch,
    ):
        await self._stock(db_session, seeded)
        monkeypatch.setattr(settings, "inventory_sources", "bad-name,missing_table")

        response = await client.get("/api/dashboard/", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert len(data["recent_stock"]) == 2
        assert data["errors"][0] == "bad-name inventory: invalid table name 'bad-name'"
        assert data["errors"][1].startswith("missing_table inventory:")

    async def test_all_sources_empty(
        self, db_session: AsyncSession, monkeypatch
    ):
        monkeypatch.setattr(dashboard, "DEFAULT_INVENTORY_SOURCES", ("stock_levels",))

        result = await dashboard.get_dashboard(db_session)

        assert result.recent_stock == []
        assert result.stats.total_products == 0
        assert result.errors == []

    async def test_viewer_can_read(self, client: AsyncClient, viewer_headers: dict):
        response = await client.get("/api/dashboard/", headers=viewer_headers)

        assert response.status_code == 200
