"""Per-tenant connection provisioning."""

from __future__ import annotations

from typing import Any, Protocol

import structlog
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from contribhub.exceptions import ConfigError, TransientIOError
from contribhub.models.domain import TenantConnectionConfig

logger = structlog.get_logger(__name__)


class ConnectionProvisioner(Protocol):
    """Turns an opaque tenant config into a live handle and back."""

    async def provision(self, slug: str, config: dict[str, Any]) -> Any: ...

    async def dispose(self, handle: Any) -> None: ...


def parse_connection_config(slug: str, config: dict[str, Any] | None) -> TenantConnectionConfig:
    """Validate a tenant's connection config, raising ConfigError on any problem."""
    if not config:
        raise ConfigError(f"No connection config found for organization: {slug}", slug=slug)
    try:
        return TenantConnectionConfig.model_validate(config)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        msg = f"Invalid connection config for organization {slug}: {fields}"
        raise ConfigError(msg, slug=slug) from exc


class SQLAlchemyProvisioner:
    """Provisions one async SQLAlchemy engine per tenant database."""

    def __init__(self, ping: bool = True) -> None:
        self._ping = ping

    async def provision(self, slug: str, config: dict[str, Any]) -> AsyncEngine:
        parsed = parse_connection_config(slug, config)
        options: dict[str, Any] = {"echo": parsed.echo}
        if not parsed.database_url.startswith("sqlite"):
            options.update(pool_size=parsed.pool_size, max_overflow=parsed.max_overflow)

        try:
            engine = create_async_engine(parsed.database_url, **options)
        except (ArgumentError, NoSuchModuleError) as exc:
            msg = f"Unusable database_url for organization {slug}: {exc}"
            raise ConfigError(msg, slug=slug) from exc

        if self._ping and parsed.ping:
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (DBAPIError, OSError) as exc:
                await engine.dispose()
                logger.warning("tenant_ping_failed", slug=slug, error=str(exc))
                raise TransientIOError(f"Tenant database unreachable: {slug}") from exc

        logger.info("tenant_engine_created", slug=slug, dialect=engine.dialect.name)
        return engine

    async def dispose(self, handle: AsyncEngine) -> None:
        await handle.dispose()
