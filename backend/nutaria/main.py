import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nutaria.config import settings
from nutaria.database import dispose_engine
from nutaria.middleware.exceptions import register_exception_handlers
from nutaria.routers import (
    auth, daily_checks, dashboard, health, lot_runs, packaging, quality,
    step_details, step_runs, timer,
)
from nutaria.utils.redis_pool import close_redis

logger = logging.getLogger("nutaria.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Redis and the DB pool open lazily on first use; both close here."""
    logger.info("Nutaria API starting (%s)", settings.environment)
    try:
        yield
    finally:
        await close_redis()
        await dispose_engine()
        logger.info("Nutaria API stopped")


app = FastAPI(
    title="Nutaria",
    description="Process execution backend for food processing operations",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])

app.include_router(lot_runs.router, prefix="/api/lot-runs", tags=["lot-runs"])
app.include_router(step_runs.router, prefix="/api/step-runs", tags=["step-runs"])
app.include_router(step_details.router, prefix="/api/step-runs", tags=["step-details"])
app.include_router(packaging.router, prefix="/api/step-runs", tags=["packaging"])
app.include_router(quality.router, prefix="/api", tags=["quality"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["dashboard"])
app.include_router(timer.router, prefix="/api/metal-detector-timer", tags=["timer"])
app.include_router(daily_checks.router, prefix="/api/daily-checks", tags=["daily-checks"])
