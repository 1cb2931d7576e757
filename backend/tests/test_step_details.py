"""Tests for washing, drying, sorting and metal detection detail records."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.models.process import ProcessLotRun, ProcessStepRun
from nutaria.models.step_details import (
    ProcessForeignObjectRejection,
    ProcessMetalDetector,
    ProcessMetalDetectorWaste,
    ProcessSortingWaste,
    ProcessWashingRun,
    ProcessWashingWaste,
)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar()


@pytest.mark.api
@pytest.mark.asyncio
class TestWashing:

    async def test_save_then_add_waste(
        self, client: AsyncClient, auth_headers: dict, seeded, db_session: AsyncSession
    ):
        db_session.add(ProcessLotRun(
            id=42, supply_batch_id=seeded.batch_id, process_id=seeded.process_id,
        ))
        await db_session.flush()
        db_session.add(ProcessStepRun(
            id=7, process_lot_run_id=42, process_step_id=seeded.step_ids["WASH"],
        ))
        await db_session.commit()

        empty = await client.get("/api/step-runs/7/washing", headers=auth_headers)
        assert empty.status_code == 200
        assert empty.json() == {"washing_run": None, "waste": []}

        saved = await client.put(
            "/api/step-runs/7/washing", json={"washing_water_litres": 50}, headers=auth_headers
        )
        assert saved.status_code == 200
        washing_run = saved.json()["washing_run"]
        assert washing_run["process_step_run_id"] == 7
        assert washing_run["washing_water_litres"] == 50

        added = await client.post(
            "/api/step-runs/7/washing/waste",
            json={"waste_type": "rinse", "quantity_kg": 2},
            headers=auth_headers,
        )
        assert added.status_code == 200
        waste = added.json()["waste"]
        assert len(waste) == 1
        assert waste[0]["washing_run_id"] == washing_run["id"]
        assert waste[0]["waste_type"] == "rinse"

    async def test_waste_before_run_is_refused(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        wash_id = lot_run.step_runs["WASH"]
        response = await client.post(
            f"/api/step-runs/{wash_id}/washing/waste",
            json={"waste_type": "rinse", "quantity_kg": 2},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == {
            "code": "PRECONDITION_FAILED",
            "message": "Washing run must be created before adding waste",
        }
        assert await _count(db_session, ProcessWashingRun) == 0
        assert await _count(db_session, ProcessWashingWaste) == 0

    async def test_save_updates_latest_run(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        wash_id = lot_run.step_runs["WASH"]
        await client.put(
            f"/api/step-runs/{wash_id}/washing",
            json={"washing_water_litres": 50, "remarks": "first fill"},
            headers=auth_headers,
        )
        response = await client.put(
            f"/api/step-runs/{wash_id}/washing",
            json={"oxy_acid_ml": 12.5},
            headers=auth_headers,
        )

        run = response.json()["washing_run"]
        assert run["washing_water_litres"] == 50
        assert run["oxy_acid_ml"] == 12.5
        assert run["remarks"] == "first fill"
        assert await _count(db_session, ProcessWashingRun) == 1

    async def test_delete_waste(self, client: AsyncClient, auth_headers: dict, lot_run):
        wash_id = lot_run.step_runs["WASH"]
        await client.put(f"/api/step-runs/{wash_id}/washing", json={}, headers=auth_headers)
        added = await client.post(
            f"/api/step-runs/{wash_id}/washing/waste",
            json={"waste_type": "stones", "quantity_kg": 1.5},
            headers=auth_headers,
        )
        waste_id = added.json()["waste"][0]["id"]

        deleted = await client.delete(
            f"/api/step-runs/{wash_id}/washing/waste/{waste_id}", headers=auth_headers
        )
        assert deleted.status_code == 200
        assert deleted.json()["waste"] == []

        again = await client.delete(
            f"/api/step-runs/{wash_id}/washing/waste/{waste_id}", headers=auth_headers
        )
        assert again.status_code == 404

    async def test_save_for_unknown_step_run(self, client: AsyncClient, auth_headers: dict, seeded):
        response = await client.put(
            "/api/step-runs/9999/washing", json={"washing_water_litres": 1}, headers=auth_headers
        )

        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestDrying:

    async def test_run_and_waste(self, client: AsyncClient, auth_headers: dict, lot_run):
        step_id = lot_run.step_runs["WASH"]

        before = await client.post(
            f"/api/step-runs/{step_id}/drying/waste",
            json={"waste_type": "burnt", "quantity_kg": 1},
            headers=auth_headers,
        )
        assert before.status_code == 422
        assert before.json()["error"]["message"] == "Drying run must be created before adding waste"

        saved = await client.put(
            f"/api/step-runs/{step_id}/drying",
            json={
                "dryer_temperature_c": 65,
                "moisture_in": 12.0,
                "moisture_out": 5.5,
                "crates_clean": "Yes",
            },
            headers=auth_headers,
        )
        assert saved.status_code == 200
        assert saved.json()["drying_run"]["crates_clean"] == "Yes"

        added = await client.post(
            f"/api/step-runs/{step_id}/drying/waste",
            json={"waste_type": "burnt", "quantity_kg": 1},
            headers=auth_headers,
        )
        assert added.status_code == 200
        assert added.json()["waste"][0]["drying_run_id"] == saved.json()["drying_run"]["id"]

    async def test_invalid_checklist_value(self, client: AsyncClient, auth_headers: dict, lot_run):
        response = await client.put(
            f"/api/step-runs/{lot_run.step_runs['WASH']}/drying",
            json={"crates_clean": "Maybe"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.api
@pytest.mark.asyncio
class TestSorting:

    async def test_outputs_and_waste(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        sort_id = lot_run.step_runs["SORT"]
        product_id = lot_run.seeded.product_id

        empty = await client.get(f"/api/step-runs/{sort_id}/sorting", headers=auth_headers)
        assert empty.json() == {"outputs": [], "waste": []}

        first = await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": product_id, "quantity_kg": 40},
            headers=auth_headers,
        )
        second = await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": product_id, "quantity_kg": 20, "moisture_percent": 4.8},
            headers=auth_headers,
        )
        outputs = second.json()["outputs"]
        assert first.status_code == 200
        assert [o["quantity_kg"] for o in outputs] == [20, 40]
        assert outputs[0]["product"]["name"] == "Cashew W320"

        output_id = outputs[1]["id"]
        with_waste = await client.post(
            f"/api/step-runs/{sort_id}/sorting/waste",
            json={"sorting_run_id": output_id, "waste_type": "broken", "quantity_kg": 3},
            headers=auth_headers,
        )
        assert with_waste.status_code == 200
        assert with_waste.json()["waste"][0]["sorting_run_id"] == output_id

        deleted = await client.delete(
            f"/api/step-runs/{sort_id}/sorting/outputs/{output_id}", headers=auth_headers
        )
        assert deleted.status_code == 200
        assert len(deleted.json()["outputs"]) == 1
        assert deleted.json()["waste"] == []
        assert await _count(db_session, ProcessSortingWaste) == 0

    async def test_update_output(self, client: AsyncClient, auth_headers: dict, lot_run):
        sort_id = lot_run.step_runs["SORT"]
        created = await client.post(
            f"/api/step-runs/{sort_id}/sorting/outputs",
            json={"product_id": lot_run.seeded.product_id, "quantity_kg": 40, "remarks": "grade A"},
            headers=auth_headers,
        )
        output_id = created.json()["outputs"][0]["id"]

        updated = await client.patch(
            f"/api/step-runs/{sort_id}/sorting/outputs/{output_id}",
            json={"quantity_kg": 38.5},
            headers=auth_headers,
        )

        output = updated.json()["outputs"][0]
        assert output["quantity_kg"] == 38.5
        assert output["remarks"] == "grade A"

    async def test_waste_for_missing_output(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        response = await client.post(
            f"/api/step-runs/{lot_run.step_runs['SORT']}/sorting/waste",
            json={"sorting_run_id": 9999, "waste_type": "broken", "quantity_kg": 3},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "PRECONDITION_FAILED"
        assert await _count(db_session, ProcessSortingWaste) == 0


@pytest.mark.api
@pytest.mark.asyncio
class TestMetalDetection:

    async def test_empty_lookup(self, client: AsyncClient, auth_headers: dict, lot_run):
        response = await client.get(
            f"/api/step-runs/{lot_run.step_runs['METAL']}/metal-detection", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {"session": None, "rejections": [], "waste": []}

    async def test_rejection_before_session_is_refused(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        metal_id = lot_run.step_runs["METAL"]
        response = await client.post(
            f"/api/step-runs/{metal_id}/metal-detection/rejections",
            json={"rejection_time": "2026-03-01T10:00:00", "object_type": "Fe", "weight": 0.2},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["message"] == (
            "Metal detection session must be created before adding rejections"
        )
        assert await _count(db_session, ProcessMetalDetector) == 0
        assert await _count(db_session, ProcessForeignObjectRejection) == 0

    async def test_waste_before_session_is_refused(
        self, client: AsyncClient, auth_headers: dict, lot_run, db_session: AsyncSession
    ):
        response = await client.post(
            f"/api/step-runs/{lot_run.step_runs['METAL']}/metal-detection/waste",
            json={"waste_type": "contaminated", "quantity_kg": 0.5},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert await _count(db_session, ProcessMetalDetectorWaste) == 0

    async def test_session_rejections_and_waste(
        self, client: AsyncClient, auth_headers: dict, lot_run
    ):
        metal_id = lot_run.step_runs["METAL"]
        base = f"/api/step-runs/{metal_id}/metal-detection"

        saved = await client.put(
            base, json={"start_time": "2026-03-01T09:00:00"}, headers=auth_headers
        )
        assert saved.status_code == 200
        session_id = saved.json()["session"]["id"]

        await client.post(
            f"{base}/rejections",
            json={"rejection_time": "2026-03-01T09:30:00", "object_type": "Fe", "weight": 0.2},
            headers=auth_headers,
        )
        view = (await client.post(
            f"{base}/rejections",
            json={"rejection_time": "2026-03-01T10:15:00", "object_type": "SS", "weight": 0.1},
            headers=auth_headers,
        )).json()
        assert [r["object_type"] for r in view["rejections"]] == ["SS", "Fe"]
        assert all(r["session_id"] == session_id for r in view["rejections"])

        view = (await client.post(
            f"{base}/waste",
            json={"waste_type": "contaminated", "quantity_kg": 0.5},
            headers=auth_headers,
        )).json()
        assert view["waste"][0]["process_step_run_id"] == metal_id

        ended = await client.put(
            base,
            json={"start_time": "2026-03-01T09:00:00", "end_time": "2026-03-01T11:00:00"},
            headers=auth_headers,
        )
        assert ended.json()["session"]["id"] == session_id
        assert ended.json()["session"]["end_time"] == "2026-03-01T11:00:00"
        assert len(ended.json()["rejections"]) == 2

        rejection_id = view["rejections"][0]["id"]
        after_delete = await client.delete(
            f"{base}/rejections/{rejection_id}", headers=auth_headers
        )
        assert [r["object_type"] for r in after_delete.json()["rejections"]] == ["Fe"]
