"""Tests for the daily facility checklist and hourly metal detector checks."""

from datetime import date, time

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.models.daily_check import DailyCheck, MetalDetectorHourlyCheck
from nutaria.schemas.daily_check import MetalDetectorCheckSave
from nutaria.services import daily_checks


def _item(checklist: dict, key: str) -> dict:
    return next(
        item
        for category in checklist["categories"]
        for item in category["items"]
        if item["item_key"] == key
    )


@pytest.mark.asyncio
class TestSeeding:

    async def test_first_read_seeds_template(self, db_session: AsyncSession):
        day = date(2026, 3, 1)

        assert await daily_checks.seed_day(db_session, day) == 9
        assert await daily_checks.seed_day(db_session, day) == 0

        count = (await db_session.execute(
            select(func.count(DailyCheck.id)).where(DailyCheck.check_date == day)
        )).scalar()
        assert count == 9

    async def test_days_are_independent(self, db_session: AsyncSession, admin_user):
        await daily_checks.toggle_item(db_session, "dryer", admin_user, day=date(2026, 3, 1))

        next_day = await daily_checks.get_checklist(db_session, date(2026, 3, 2))

        assert next_day.completed == 0
        assert next_day.total == 9


@pytest.mark.api
@pytest.mark.asyncio
class TestDailyCheckEndpoints:

    async def test_checklist_layout(self, client: AsyncClient, auth_headers: dict):
        response = await client.get("/api/daily-checks/", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["check_date"] == date.today().isoformat()
        assert [c["id"] for c in data["categories"]] == ["equipment", "facility", "documentation"]
        assert [i["item_key"] for i in data["categories"][0]["items"]] == [
            "dryer", "roaster", "packaging",
        ]
        assert (data["total"], data["completed"], data["remaining"]) == (9, 0, 9)

    async def test_toggle_on_and_off(
        self, client: AsyncClient, auth_headers: dict, admin_user
    ):
        on = await client.post("/api/daily-checks/floor/toggle", headers=auth_headers)

        assert on.status_code == 200
        item = _item(on.json(), "floor")
        assert item["completed"] is True
        assert item["completed_by"] == admin_user.id
        assert item["completed_at"] is not None
        assert on.json()["remaining"] == 8

        off = await client.post("/api/daily-checks/floor/toggle", headers=auth_headers)

        item = _item(off.json(), "floor")
        assert item["completed"] is False
        assert item["completed_by"] is None
        assert item["completed_at"] is None

    async def test_note(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            "/api/daily-checks/qc/note", json={"note": "Signed by shift lead"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert _item(response.json(), "qc")["note"] == "Signed by shift lead"

    async def test_reset(self, client: AsyncClient, auth_headers: dict):
        await client.post("/api/daily-checks/dryer/toggle", headers=auth_headers)
        await client.post("/api/daily-checks/logs/toggle", headers=auth_headers)

        response = await client.post("/api/daily-checks/reset", headers=auth_headers)

        data = response.json()
        assert data["completed"] == 0
        assert _item(data, "dryer")["completed_by"] is None

    async def test_unknown_item(self, client: AsyncClient, auth_headers: dict):
        response = await client.post("/api/daily-checks/coffee/toggle", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Checklist item not found: coffee"

    async def test_viewer_is_read_only(self, client: AsyncClient, viewer_headers: dict):
        assert (await client.get("/api/daily-checks/", headers=viewer_headers)).status_code == 200

        response = await client.post("/api/daily-checks/dryer/toggle", headers=viewer_headers)
        assert response.status_code == 403


def _reading(hour: int, passed: bool = True, **extra) -> dict:
    answer = "Yes" if passed else "No"
    return {
        "check_date": "2026-03-01",
        "check_hour": f"{hour:02d}:00",
        "fe_1_5mm": answer,
        "non_fe_1_5mm": "Yes",
        "ss_1_5mm": "Yes",
        **extra,
    }


@pytest.mark.asyncio
class TestMetalDetectorHourlyChecks:

    async def test_listed_in_hour_order(self, db_session: AsyncSession, admin_user):
        for hour in (10, 8):
            await daily_checks.save_metal_detector_check(
                db_session, MetalDetectorCheckSave(**_reading(hour)), admin_user
            )

        day = await daily_checks.list_metal_detector_checks(db_session, date(2026, 3, 1))

        assert [c.check_hour for c in day.checks] == [time(8), time(10)]
        assert all(c.checked_by == admin_user.id for c in day.checks)
        assert all(c.checked_at is not None for c in day.checks)
        assert time(8) not in day.missing_hours
        assert len(day.missing_hours) == 8
        assert day.missing_hours[0] == time(9)

    async def test_same_hour_is_overwritten(
        self, db_session: AsyncSession, admin_user, qa_user
    ):
        await daily_checks.save_metal_detector_check(
            db_session, MetalDetectorCheckSave(**_reading(9)), admin_user
        )
        await daily_checks.save_metal_detector_check(
            db_session,
            MetalDetectorCheckSave(**_reading(9, passed=False, corrective_action="Line stopped, recalibrated")),
            qa_user,
        )

        rows = (await db_session.execute(select(MetalDetectorHourlyCheck))).scalars().all()
        assert len(rows) == 1
        assert rows[0].fe_1_5mm == "No"
        assert rows[0].corrective_action == "Line stopped, recalibrated"
        assert rows[0].created_by == admin_user.id
        assert rows[0].checked_by == qa_user.id

    async def test_other_days_not_listed(self, db_session: AsyncSession, admin_user):
        await daily_checks.save_metal_detector_check(
            db_session, MetalDetectorCheckSave(**_reading(8)), admin_user
        )

        day = await daily_checks.list_metal_detector_checks(db_session, date(2026, 3, 2))

        assert day.checks == []
        assert len(day.missing_hours) == 10


@pytest.mark.unit
class TestMetalDetectorCheckSave:

    @pytest.mark.parametrize("hour", ["07:00", "18:00", "09:30"])
    def test_hour_outside_shift_rejected(self, hour):
        with pytest.raises(ValueError):
            MetalDetectorCheckSave(**{**_reading(8), "check_hour": hour})

    def test_blank_remarks_become_null(self):
        body = MetalDetectorCheckSave(**_reading(17, remarks="   "))

        assert body.remarks is None
        assert body.check_hour == time(17)


@pytest.mark.api
@pytest.mark.asyncio
class TestMetalDetectorEndpoints:

    async def test_save_then_list(self, client: AsyncClient, auth_headers: dict):
        saved = await client.put(
            "/api/daily-checks/metal-detector", json=_reading(8, remarks="ok"), headers=auth_headers
        )
        listed = await client.get(
            "/api/daily-checks/metal-detector",
            params={"check_date": "2026-03-01"},
            headers=auth_headers,
        )

        assert saved.status_code == 200
        assert listed.json()["check_date"] == "2026-03-01"
        assert [c["check_hour"] for c in listed.json()["checks"]] == ["08:00:00"]
        assert listed.json()["checks"][0]["remarks"] == "ok"
        assert "08:00:00" not in listed.json()["missing_hours"]

    async def test_invalid_answer(self, client: AsyncClient, auth_headers: dict):
        response = await client.put(
            "/api/daily-checks/metal-detector",
            json={**_reading(8), "ss_1_5mm": "Maybe"},
            headers=auth_headers,
        )

        assert response.status_code == 422

    async def test_viewer_is_read_only(self, client: AsyncClient, viewer_headers: dict):
        listed = await client.get("/api/daily-checks/metal-detector", headers=viewer_headers)
        saved = await client.put(
            "/api/daily-checks/metal-detector", json=_reading(8), headers=viewer_headers
        )

        assert listed.status_code == 200
        assert saved.status_code == 403
