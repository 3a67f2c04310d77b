"""Async engine for the central directory store."""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from contribhub.config.settings import get_settings
from contribhub.models.database import CENTRAL_TABLES, TENANT_TABLES

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection


def _engine_options(url: str) -> dict[str, object]:
    # SQLite uses a static/null pool; pool sizing is rejected there.
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True, "pool_recycle": 3600}


@lru_cache
def get_engine() -> AsyncEngine:
    """Return a cached async engine for the central store (singleton per process)."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        **_engine_options(settings.database_url),
    )


async def create_central_tables(conn: AsyncConnection) -> None:
    await conn.run_sync(SQLModel.metadata.create_all, tables=CENTRAL_TABLES)


async def create_tenant_tables(conn: AsyncConnection) -> None:
    await conn.run_sync(SQLModel.metadata.create_all, tables=TENANT_TABLES)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the central directory tables (idempotent)."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await create_central_tables(conn)
