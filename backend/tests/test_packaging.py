"""Tests for the packaging step: QC run, metal checks, pack entries, storage."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.models.packaging import (
    ProcessPackagingMetalCheck,
    ProcessPackagingPackEntry,
    ProcessPackagingStorageAllocation,
)
from nutaria.schemas.packaging import MetalCheckOut, MetalCheckRejectionOut
from nutaria.schemas.step_details import SortingOutputCreate
from nutaria.services import step_details
from nutaria.services.packaging import failed_rejected_weight, latest_metal_check


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar()


@pytest.fixture
def packaging_url(lot_run) -> str:
    return f"/api/step-runs/{lot_run.step_runs['PACK']}/packaging"


async def _sorting_output(db: AsyncSession, lot_run, quantity_kg: float = 50.0) -> int:
    view = await step_details.add_sorting_output(
        db, lot_run.step_runs["SORT"],
        SortingOutputCreate(product_id=lot_run.seeded.product_id, quantity_kg=quantity_kg),
    )
    await db.commit()
    return view.outputs[0].id


async def _passed_output(client: AsyncClient, headers: dict, url: str, output_id: int):
    """Packaging run plus a FAIL then PASS metal check for `output_id`."""
    await client.put(url, json={"visual_status": "OK"}, headers=headers)
    await client.post(
        f"{url}/metal-checks",
        json={
            "sorting_output_id": output_id,
            "status": "FAIL",
            "rejections": [{"object_type": " Fe ", "weight_kg": 0.3}],
        },
        headers=headers,
    )
    return await client.post(
        f"{url}/metal-checks",
        json={"sorting_output_id": output_id, "status": "PASS"},
        headers=headers,
    )


@pytest.mark.api
@pytest.mark.asyncio
class TestPackagingRun:

    async def test_empty_view(self, client: AsyncClient, auth_headers: dict, packaging_url):
        response = await client.get(packaging_url, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["packaging_run"] is None
        assert data["weight_checks"] == []
        assert data["pack_entries"] == []
        assert data["metal_checks"] == {}

    async def test_children_need_a_run(
        self, client: AsyncClient, auth_headers: dict, packaging_url
    ):
        response = await client.post(
            f"{packaging_url}/weight-checks", json={"check_no": 1, "weight_kg": 1.02},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["message"] == (
            "Packaging run must be created before adding weight checks"
        )

    async def test_run_weight_checks_photos_waste(
        self, client: AsyncClient, auth_headers: dict, packaging_url
    ):
        saved = await client.put(
            packaging_url,
            json={"visual_status": "OK", "damaged_kernels_pct": 1.5, "label_correct": "Yes"},
            headers=auth_headers,
        )
        assert saved.status_code == 200
        assert saved.json()["packaging_run"]["damaged_kernels_pct"] == 1.5

        await client.post(
            f"{packaging_url}/weight-checks", json={"check_no": 2, "weight_kg": 0.98},
            headers=auth_headers,
        )
        view = (await client.post(
            f"{packaging_url}/weight-checks", json={"check_no": 1, "weight_kg": 1.02},
            headers=auth_headers,
        )).json()
        assert [w["check_no"] for w in view["weight_checks"]] == [1, 2]

        check_id = view["weight_checks"][0]["id"]
        view = (await client.patch(
            f"{packaging_url}/weight-checks/{check_id}", json={"weight_kg": 1.01},
            headers=auth_headers,
        )).json()
        assert view["weight_checks"][0]["weight_kg"] == 1.01

        view = (await client.post(
            f"{packaging_url}/photos",
            json={"photo_type": "label", "file_path": "packaging/label-1.jpg"},
            headers=auth_headers,
        )).json()
        assert view["photos"][0]["photo_type"] == "label"

        view = (await client.post(
            f"{packaging_url}/waste", json={"waste_type": "torn pouches", "quantity_kg": 0.2},
            headers=auth_headers,
        )).json()
        waste_id = view["waste"][0]["id"]

        response = await client.delete(f"{packaging_url}/waste/{waste_id}", headers=auth_headers)
        assert response.json()["waste"] == []

    async def test_percentage_out_of_range(
        self, client: AsyncClient, auth_headers: dict, packaging_url
    ):
        response = await client.put(
            packaging_url, json={"damaged_kernels_pct": 120}, headers=auth_headers
        )

        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestMetalChecks:

    async def test_fail_requires_rejections(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        output_id = await _sorting_output(db_session, lot_run)
        await client.put(packaging_url, json={}, headers=auth_headers)

        response = await client.post(
            f"{packaging_url}/metal-checks",
            json={"sorting_output_id": output_id, "status": "FAIL"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "REJECTION_REQUIRED"
        assert await _count(db_session, ProcessPackagingMetalCheck) == 0

    async def test_attempts_are_numbered(
        self, client: AsyncClient, auth_headers: dict, admin_user, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        output_id = await _sorting_output(db_session, lot_run)

        response = await _passed_output(client, auth_headers, packaging_url, output_id)

        assert response.status_code == 200
        data = response.json()
        attempts = data["metal_checks"][str(output_id)]
        assert [(a["attempt_no"], a["status"]) for a in attempts] == [(1, "FAIL"), (2, "PASS")]
        assert attempts[0]["rejections"][0]["object_type"] == "Fe"
        assert attempts[0]["checked_by"] == admin_user.id
        assert attempts[1]["rejections"] == []
        assert data["failed_rejected_weight_kg"][str(output_id)] == pytest.approx(0.3)

    async def test_unknown_sorting_output(
        self, client: AsyncClient, auth_headers: dict, packaging_url
    ):
        await client.put(packaging_url, json={}, headers=auth_headers)

        response = await client.post(
            f"{packaging_url}/metal-checks",
            json={"sorting_output_id": 9999, "status": "PASS"},
            headers=auth_headers,
        )

        assert response.status_code == 404


@pytest.mark.unit
class TestMetalCheckHelpers:

    def _check(self, attempt_no, status, weights=()):
        return MetalCheckOut(
            id=attempt_no,
            packaging_run_id=1,
            sorting_output_id=1,
            attempt_no=attempt_no,
            status=status,
            remarks=None,
            checked_by=None,
            checked_at="2026-03-01T10:00:00",
            rejections=[
                MetalCheckRejectionOut(
                    id=i, metal_check_id=attempt_no, object_type="Fe", weight_kg=w,
                    corrective_action=None, created_by=None, created_at="2026-03-01T10:00:00",
                )
                for i, w in enumerate(weights)
            ],
        )

    def test_failed_rejected_weight_ignores_passes(self):
        checks = [
            self._check(1, "FAIL", (0.2, 0.1)),
            self._check(2, "FAIL", (0.5,)),
            self._check(3, "PASS"),
        ]

        assert failed_rejected_weight(checks) == pytest.approx(0.8)

    def test_latest_metal_check(self):
        checks = [self._check(2, "PASS"), self._check(1, "FAIL", (0.2,))]

        assert latest_metal_check(checks).attempt_no == 2
        assert latest_metal_check([]) is None


@pytest.mark.api
@pytest.mark.asyncio
class TestPackEntries:

    async def test_requires_passing_metal_check(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        output_id = await _sorting_output(db_session, lot_run)
        await client.put(packaging_url, json={}, headers=auth_headers)

        response = await client.post(
            f"{packaging_url}/pack-entries",
            json={"sorting_output_id": output_id, "pack_identifier": "P-1", "quantity_kg": 10},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["message"] == (
            "Metal detection must pass before packing this sorted output."
        )
        assert await _count(db_session, ProcessPackagingPackEntry) == 0

    async def test_pack_entry_snapshots_metal_check(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        output_id = await _sorting_output(db_session, lot_run)
        passed = await _passed_output(client, auth_headers, packaging_url, output_id)
        last_check = passed.json()["metal_checks"][str(output_id)][-1]

        response = await client.post(
            f"{packaging_url}/pack-entries",
            json={
                "sorting_output_id": output_id,
                "pack_identifier": "P-1",
                "quantity_kg": 25,
                "packing_type": "pouch",
                "pack_size_kg": 2,
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        entry = response.json()["pack_entries"][0]
        assert entry["pack_count"] == 12
        assert entry["remainder_kg"] == pytest.approx(1.0)
        assert entry["product_id"] == lot_run.seeded.product_id
        assert entry["metal_check_status"] == "PASS"
        assert entry["metal_check_attempts"] == 2
        assert entry["metal_check_last_id"] == last_check["id"]

    async def test_quantity_limited_to_remaining_wip(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        output_id = await _sorting_output(db_session, lot_run, quantity_kg=50)
        await _passed_output(client, auth_headers, packaging_url, output_id)
        await client.post(
            f"{packaging_url}/pack-entries",
            json={"sorting_output_id": output_id, "pack_identifier": "P-1", "quantity_kg": 25},
            headers=auth_headers,
        )

        response = await client.post(
            f"{packaging_url}/pack-entries",
            json={"sorting_output_id": output_id, "pack_identifier": "P-2", "quantity_kg": 30},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["message"] == (
            "Quantity cannot exceed remaining 25.00 kg for this WIP"
        )


@pytest.mark.api
@pytest.mark.asyncio
class TestStorageAllocations:

    async def _entry(self, client, headers, url, db, lot_run) -> int:
        output_id = await _sorting_output(db, lot_run)
        await _passed_output(client, headers, url, output_id)
        view = (await client.post(
            f"{url}/pack-entries",
            json={
                "sorting_output_id": output_id,
                "pack_identifier": "P-1",
                "quantity_kg": 24,
                "pack_size_kg": 2,
            },
            headers=headers,
        )).json()
        return view["pack_entries"][0]["id"]

    async def test_allocate_within_pack_count(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        entry_id = await self._entry(client, auth_headers, packaging_url, db_session, lot_run)

        response = await client.post(
            f"{packaging_url}/storage-allocations",
            json={
                "pack_entry_id": entry_id,
                "storage_type": "BOX",
                "box_unit_code": "BX-01",
                "units_count": 3,
                "packs_per_unit": 4,
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        allocation = response.json()["storage_allocations"][0]
        assert allocation["total_packs"] == 12
        assert allocation["total_quantity_kg"] == 24
        assert allocation["box_unit_code"] == "BX-01"

        over = await client.post(
            f"{packaging_url}/storage-allocations",
            json={"pack_entry_id": entry_id, "storage_type": "BAG", "units_count": 1, "packs_per_unit": 1},
            headers=auth_headers,
        )
        assert over.status_code == 422
        assert over.json()["error"]["message"] == "Cannot allocate 1 packs; only 0 unallocated"

    async def test_unit_code_dropped_for_bags(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        entry_id = await self._entry(client, auth_headers, packaging_url, db_session, lot_run)

        response = await client.post(
            f"{packaging_url}/storage-allocations",
            json={
                "pack_entry_id": entry_id,
                "storage_type": "BAG",
                "box_unit_code": "BX-99",
                "units_count": 2,
                "packs_per_unit": 5,
            },
            headers=auth_headers,
        )

        assert response.json()["storage_allocations"][0]["box_unit_code"] is None

    async def test_deleting_entry_removes_allocations(
        self, client: AsyncClient, auth_headers: dict, lot_run, packaging_url,
        db_session: AsyncSession,
    ):
        entry_id = await self._entry(client, auth_headers, packaging_url, db_session, lot_run)
        await client.post(
            f"{packaging_url}/storage-allocations",
            json={"pack_entry_id": entry_id, "storage_type": "SHOP_PACKING", "units_count": 1, "packs_per_unit": 6},
            headers=auth_headers,
        )

        response = await client.delete(
            f"{packaging_url}/pack-entries/{entry_id}", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["pack_entries"] == []
        assert response.json()["storage_allocations"] == []
        assert await _count(db_session, ProcessPackagingStorageAllocation) == 0
