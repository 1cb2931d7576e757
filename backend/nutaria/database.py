"""Database engine, session factory, and declarative base.

All process-execution tables live in one schema and share a single
`Base`. Routers get a request-scoped session from `get_db()`, which
commits when the handler returns and rolls back if it raises.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from nutaria.config import settings

_engine_kwargs = {"echo": settings.debug}
if not settings.database_url.startswith("sqlite"):
    _engine_kwargs.update(pool_size=20, max_overflow=10)

engine = create_async_engine(settings.database_url, **_engine_kwargs)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base class for every Nutaria table."""
    pass


async def get_db() -> AsyncSession:
    """Yield a session for one request."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Release pooled connections (called from the app lifespan)."""
    await engine.dispose()
