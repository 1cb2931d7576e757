"""Pytest configuration and fixtures for Nutaria tests.

Provides an in-memory SQLite database, a fake Redis, users with tokens,
and a seeded process (WASH → SORT → METAL → PACK) with one supply batch.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

from types import SimpleNamespace
from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nutaria.auth.jwt import create_access_token
from nutaria.auth.password import hash_password
from nutaria.auth.permissions import resolve_permissions
from nutaria.database import Base, get_db
from nutaria.main import app
from nutaria.models import *  # noqa: F401,F403
from nutaria.models.catalog import Product, Unit, Warehouse
from nutaria.models.process import Process, ProcessStep, ProcessStepName, ProcessStepRun
from nutaria.models.supply import SupplyBatch
from nutaria.models.user import UserProfile, UserRole
from nutaria.utils import redis_pool

TEST_PASSWORD = "testpassword123"

PROCESS_STEPS = (
    # (seq, code, name, can_be_skipped)
    (1, "WASH", "Washing", False),
    (2, "SORT", "Sorting", False),
    (3, "METAL", "Metal Detection", True),
    (4, "PACK", "Packaging", False),
)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLite savepoints nest inside an explicit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis_client(monkeypatch):
    """Fake Redis installed as the shared client."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    monkeypatch.setattr(redis_pool, "_redis_client", client)

    yield client

    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(db_session, redis_client) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session.

    Each request runs in a savepoint: committed when the handler
    returns, rolled back when it raises.
    """

    async def override_get_db():
        async with db_session.begin_nested():
            yield db_session
        await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Users and tokens ─────────────────────────────────────────────

async def make_user(db: AsyncSession, role: UserRole, email: str, full_name: str) -> UserProfile:
    user = UserProfile(
        email=email,
        full_name=full_name,
        hashed_password=hash_password(TEST_PASSWORD),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


def token_for(user: UserProfile) -> str:
    return create_access_token(
        user_id=user.id,
        role=user.role.value,
        permissions=resolve_permissions(user.role.value, user.custom_permissions),
    )


def headers_for(user: UserProfile) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> UserProfile:
    return await make_user(db_session, UserRole.ADMIN, "admin@example.com", "Ada Admin")


@pytest_asyncio.fixture
async def qa_user(db_session: AsyncSession) -> UserProfile:
    return await make_user(db_session, UserRole.QA, "qa@example.com", "Quinn Quality")


@pytest_asyncio.fixture
async def viewer_user(db_session: AsyncSession) -> UserProfile:
    return await make_user(db_session, UserRole.VIEWER, "viewer@example.com", "Vic Viewer")


@pytest.fixture
def auth_headers(admin_user: UserProfile) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def qa_headers(qa_user: UserProfile) -> dict:
    return headers_for(qa_user)


@pytest.fixture
def viewer_headers(viewer_user: UserProfile) -> dict:
    return headers_for(viewer_user)


# ── Seed data ────────────────────────────────────────────────────

async def seed_process(db: AsyncSession, current_qty: float = 100.0) -> SimpleNamespace:
    """Catalog rows, a four-step process, and one UNPROCESSED supply batch."""
    unit = Unit(name="Kilogram", symbol="kg")
    warehouse = Warehouse(name="Main Store")
    db.add_all([unit, warehouse])
    await db.flush()

    product = Product(name="Cashew W320", sku="CSH-W320", base_unit_id=unit.id)
    db.add(product)
    await db.flush()

    process = Process(code="CASHEW-STD", name="Cashew standard", product_ids=[product.id])
    db.add(process)
    await db.flush()

    step_ids = {}
    for seq, code, name, can_skip in PROCESS_STEPS:
        step_name = ProcessStepName(code=code, name=name)
        db.add(step_name)
        await db.flush()
        step = ProcessStep(
            process_id=process.id,
            seq=seq,
            step_name_id=step_name.id,
            step_code=code,
            can_be_skipped=can_skip,
        )
        db.add(step)
        await db.flush()
        step_ids[code] = step.id

    batch = SupplyBatch(
        lot_no="LOT-0001",
        product_id=product.id,
        unit_id=unit.id,
        received_qty=current_qty,
        accepted_qty=current_qty,
        current_qty=current_qty,
        quality_status="PASSED",
    )
    db.add(batch)
    await db.commit()

    return SimpleNamespace(
        unit_id=unit.id,
        warehouse_id=warehouse.id,
        product_id=product.id,
        process_id=process.id,
        step_ids=step_ids,
        batch_id=batch.id,
    )


async def step_runs_by_code(db: AsyncSession, lot_run_id: int) -> dict[str, int]:
    rows = (await db.execute(
        select(ProcessStep.step_code, ProcessStepRun.id)
        .join(ProcessStep, ProcessStep.id == ProcessStepRun.process_step_id)
        .where(ProcessStepRun.process_lot_run_id == lot_run_id)
    )).all()
    return {code: run_id for code, run_id in rows}


@pytest_asyncio.fixture
async def seeded(db_session: AsyncSession) -> SimpleNamespace:
    return await seed_process(db_session)


@pytest_asyncio.fixture
async def lot_run(db_session: AsyncSession, seeded: SimpleNamespace) -> SimpleNamespace:
    """A started lot run; `step_runs` maps step code → step run id."""
    from nutaria.services.lot_runs import create_lot_run

    out = await create_lot_run(db_session, seeded.batch_id)
    await db_session.commit()
    return SimpleNamespace(
        id=out.id,
        seeded=seeded,
        step_runs=await step_runs_by_code(db_session, out.id),
    )


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
