"""Key/value settings stored inside each organization's own database."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from contribhub.models.database import TenantSetting, _utc_now
from contribhub.storage.database import create_tenant_tables

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from contribhub.models.domain import OrganizationRecord
    from contribhub.tenancy.pool import TenantConnection

logger = structlog.get_logger(__name__)


class TenantSettingsRepository:
    """Reads and writes ``tenant_settings`` through a tenant's engine."""

    def __init__(self, engine: AsyncEngine, slug: str = "") -> None:
        self._engine = engine
        self._slug = slug

    @classmethod
    def for_tenant(
        cls, org: OrganizationRecord, connection: TenantConnection
    ) -> TenantSettingsRepository:
        """Feature factory: bind to the active tenant's connection."""
        return cls(connection.handle, slug=org.slug)

    async def initialize(self, defaults: dict[str, str]) -> None:
        """Create the tenant tables and write any missing default keys."""
        async with self._engine.begin() as conn:
            await create_tenant_tables(conn)
        async with AsyncSession(self._engine) as session:
            existing = {row.key for row in (await session.execute(select(TenantSetting))).scalars()}
            for key, value in defaults.items():
                if key not in existing:
                    session.add(TenantSetting(key=key, value=value))
            await session.commit()
        logger.info("tenant_database_initialized", slug=self._slug, keys=sorted(defaults))

    async def get_all(self) -> dict[str, str]:
        async with AsyncSession(self._engine) as session:
            rows = (await session.execute(select(TenantSetting))).scalars().all()
        return {row.key: row.value for row in rows}

    async def set(self, key: str, value: str) -> None:
        async with AsyncSession(self._engine) as session:
            row = await session.get(TenantSetting, key)
            if row is None:
                row = TenantSetting(key=key, value=value)
            else:
                row.value = value
                row.updated_at = _utc_now()
            session.add(row)
            await session.commit()
            logger.debug("tenant_setting_saved", slug=self._slug, key=key)
