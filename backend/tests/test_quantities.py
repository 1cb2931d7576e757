"""Tests for quantity tracking and the sorting caps built on it."""

from datetime import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.middleware.exceptions import ResourceNotFoundError
from nutaria.models.step_details import ProcessSortingOutput, ProcessSortingWaste
from nutaria.schemas.packaging import PackagingRunSave, PackagingWasteCreate
from nutaria.schemas.step_details import (
    MetalDetectorSave,
    RejectionCreate,
    SortingOutputCreate,
    SortingWasteCreate,
    WashingRunSave,
    WasteCreate,
)
from nutaria.services import packaging, quantities, step_details


async def _washing_waste(db: AsyncSession, lot_run, quantity_kg: float):
    wash_id = lot_run.step_runs["WASH"]
    await step_details.save_washing_run(db, wash_id, WashingRunSave(washing_water_litres=40))
    await step_details.add_washing_waste(
        db, wash_id, WasteCreate(waste_type="rinse", quantity_kg=quantity_kg)
    )


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar()


@pytest.mark.unit
@pytest.mark.asyncio
class TestAvailableQuantity:

    async def test_no_waste(self, db_session: AsyncSession, lot_run):
        result = await quantities.calculate_available_quantity(db_session, lot_run.id)

        assert result.initial_qty == 100
        assert result.total_waste == 0
        assert result.available_qty == 100

    async def test_breakdown_across_steps(self, db_session: AsyncSession, lot_run):
        await _washing_waste(db_session, lot_run, 5)

        sort_id = lot_run.step_runs["SORT"]
        view = await step_details.add_sorting_output(
            db_session, sort_id,
            SortingOutputCreate(product_id=lot_run.seeded.product_id, quantity_kg=10),
        )
        await step_details.add_sorting_waste(
            db_session, sort_id,
            SortingWasteCreate(sorting_run_id=view.outputs[0].id, waste_type="broken", quantity_kg=3),
        )

        metal_id = lot_run.step_runs["METAL"]
        await step_details.save_metal_detector_session(
            db_session, metal_id, MetalDetectorSave(start_time=datetime(2026, 1, 5, 8, 0))
        )
        await step_details.add_rejection(
            db_session, metal_id,
            RejectionCreate(rejection_time=datetime(2026, 1, 5, 9, 0), object_type="wire", weight=2),
        )
        await step_details.add_metal_detector_waste(
            db_session, metal_id, WasteCreate(waste_type="rejects", quantity_kg=1)
        )

        pack_id = lot_run.step_runs["PACK"]
        await packaging.save_packaging_run(db_session, pack_id, PackagingRunSave())
        await packaging.add_packaging_waste(
            db_session, pack_id, PackagingWasteCreate(waste_type="torn pouches", quantity_kg=0.5)
        )

        result = await quantities.calculate_available_quantity(db_session, lot_run.id)

        assert result.breakdown.washing_waste == 5
        assert result.breakdown.metal_rejections == 2
        assert result.breakdown.metal_waste == 1
        assert result.breakdown.packaging_waste == 0.5
        # Reported but not deducted
        assert result.breakdown.sorting_waste == 3
        assert result.total_waste == 8.5
        assert result.available_qty == 91.5

    async def test_stops_at_given_step(self, db_session: AsyncSession, lot_run):
        await _washing_waste(db_session, lot_run, 5)
        metal_id = lot_run.step_runs["METAL"]
        await step_details.save_metal_detector_session(
            db_session, metal_id, MetalDetectorSave(start_time=datetime(2026, 1, 5, 8, 0))
        )
        await step_details.add_metal_detector_waste(
            db_session, metal_id, WasteCreate(waste_type="rejects", quantity_kg=4)
        )

        at_sort = await quantities.calculate_available_quantity(
            db_session, lot_run.id, lot_run.step_runs["SORT"]
        )
        at_metal = await quantities.calculate_available_quantity(
            db_session, lot_run.id, metal_id
        )

        assert at_sort.available_qty == 95
        assert at_sort.breakdown.metal_waste == 0
        assert at_metal.available_qty == 91

    async def test_never_negative(self, db_session: AsyncSession, lot_run):
        await _washing_waste(db_session, lot_run, 150)

        result = await quantities.calculate_available_quantity(db_session, lot_run.id)

        assert result.total_waste == 150
        assert result.available_qty == 0

    async def test_unknown_lot_run(self, db_session: AsyncSession, seeded):
        with pytest.raises(ResourceNotFoundError):
            await quantities.calculate_available_quantity(db_session, 9999)


@pytest.mark.api
@pytest.mark.asyncio
class TestSortingCaps:

    async def test_output_over_batch_rejected(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        response = await client.post(
            f"/api/step-runs/{lot_run.step_runs['SORT']}/sorting/outputs",
            json={"product_id": lot_run.seeded.product_id, "quantity_kg": 500},
            headers=auth_headers,
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "SORTING_EXCEEDS_AVAILABLE"
        assert "Available: 100.00 kg, Attempted: 500.00 kg" in error["message"]
        assert await _count(db_session, ProcessSortingOutput) == 0

    async def test_washing_waste_lowers_cap(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        await _washing_waste(db_session, lot_run, 5)
        await db_session.commit()
        url = f"/api/step-runs/{lot_run.step_runs['SORT']}/sorting/outputs"
        product_id = lot_run.seeded.product_id

        full = await client.post(
            url, json={"product_id": product_id, "quantity_kg": 95}, headers=auth_headers
        )
        over = await client.post(
            url, json={"product_id": product_id, "quantity_kg": 1}, headers=auth_headers
        )

        assert full.status_code == 200
        assert over.status_code == 422
        assert "Attempted: 96.00 kg" in over.json()["error"]["message"]

    async def test_update_counts_other_outputs(
        self, client: AsyncClient, auth_headers: dict, lot_run
    ):
        sort_id = lot_run.step_runs["SORT"]
        product_id = lot_run.seeded.product_id
        await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": product_id, "quantity_kg": 60}, headers=auth_headers,
        )
        created = await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": product_id, "quantity_kg": 30}, headers=auth_headers,
        )
        output_id = max(o["id"] for o in created.json()["outputs"])
        url = f"/api/step-runs/{sort_id}/sorting/outputs/{output_id}"

        too_much = await client.patch(url, json={"quantity_kg": 41}, headers=auth_headers)
        exact = await client.patch(url, json={"quantity_kg": 40}, headers=auth_headers)
        remarks_only = await client.patch(url, json={"remarks": "re-graded"}, headers=auth_headers)

        assert too_much.status_code == 422
        assert too_much.json()["error"]["code"] == "SORTING_EXCEEDS_AVAILABLE"
        assert exact.status_code == 200
        assert remarks_only.status_code == 200

    async def test_waste_capped_after_outputs_and_reworks(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        sort_id = lot_run.step_runs["SORT"]
        created = await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": lot_run.seeded.product_id, "quantity_kg": 60},
            headers=auth_headers,
        )
        output_id = created.json()["outputs"][0]["id"]
        rework = await client.post(
            f"/api/step-runs/{sort_id}/rework", json={"quantity_kg": 30}, headers=auth_headers
        )
        assert rework.status_code == 201

        over = await client.post(
            f"/api/step-runs/{sort_id}/sorting/waste",
            json={"sorting_run_id": output_id, "waste_type": "broken", "quantity_kg": 11},
            headers=auth_headers,
        )
        fits = await client.post(
            f"/api/step-runs/{sort_id}/sorting/waste",
            json={"sorting_run_id": output_id, "waste_type": "broken", "quantity_kg": 10},
            headers=auth_headers,
        )

        assert over.status_code == 422
        error = over.json()["error"]
        assert error["code"] == "SORTING_WASTE_EXCEEDS_REMAINING"
        assert "Remaining: 10.00 kg, Attempted: 11.00 kg" in error["message"]
        assert fits.status_code == 200
        assert await _count(db_session, ProcessSortingWaste) == 1

    async def test_output_for_unknown_step_run(self, client: AsyncClient, auth_headers: dict, seeded):
        response = await client.post(
            "/api/step-runs/9999/sorting/outputs",
            json={"product_id": seeded.product_id, "quantity_kg": 1},
            headers=auth_headers,
        )

        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestQuantityEndpoints:

    async def test_sorting_balance(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        await _washing_waste(db_session, lot_run, 5)
        sort_id = lot_run.step_runs["SORT"]
        view = await step_details.add_sorting_output(
            db_session, sort_id,
            SortingOutputCreate(product_id=lot_run.seeded.product_id, quantity_kg=60),
        )
        await step_details.add_sorting_waste(
            db_session, sort_id,
            SortingWasteCreate(sorting_run_id=view.outputs[0].id, waste_type="broken", quantity_kg=2),
        )
        await db_session.commit()

        response = await client.get(f"/api/step-runs/{sort_id}/sorting/balance", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "step_run_id": sort_id,
            "available_qty": 95.0,
            "output_kg": 60.0,
            "rework_kg": 0.0,
            "waste_kg": 2.0,
            "remaining_after_outputs": 35.0,
            "remaining_after_reworks": 35.0,
            "remaining_after_waste": 33.0,
        }

    async def test_available_quantity(
        self, client: AsyncClient, viewer_headers: dict, lot_run, db_session: AsyncSession
    ):
        await _washing_waste(db_session, lot_run, 5)
        await db_session.commit()

        response = await client.get(
            f"/api/lot-runs/{lot_run.id}/available-quantity",
            params={"up_to_step_run_id": lot_run.step_runs["SORT"]},
            headers=viewer_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["up_to_step_run_id"] == lot_run.step_runs["SORT"]
        assert data["available_qty"] == 95
        assert data["breakdown"]["washing_waste"] == 5

    async def test_available_quantity_unknown_lot_run(
        self, client: AsyncClient, auth_headers: dict, seeded
    ):
        response = await client.get("/api/lot-runs/9999/available-quantity", headers=auth_headers)

        assert response.status_code == 404
