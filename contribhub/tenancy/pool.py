"""Registry of live per-tenant connections, one per slug."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from contribhub.exceptions import ConfigError

if TYPE_CHECKING:
    from contribhub.models.domain import OrganizationRecord
    from contribhub.tenancy.provisioner import ConnectionProvisioner

logger = structlog.get_logger(__name__)


@dataclass(eq=False)
class TenantConnection:
    """A live handle to one organization's database.

    Owned by the pool; everyone else holds a borrowed reference that goes
    stale once the pool releases it.
    """

    slug: str
    handle: Any
    opened_at: float = field(default_factory=time.monotonic)


class TenantConnectionPool:
    """Caches one live connection per tenant slug.

    ``acquire`` is idempotent per slug; ``release`` is idempotent and never
    raises on teardown failure since the connection is abandoned anyway.
    """

    def __init__(self, provisioner: ConnectionProvisioner) -> None:
        self._provisioner = provisioner
        self._connections: dict[str, TenantConnection] = {}

    async def acquire(self, org: OrganizationRecord) -> TenantConnection:
        existing = self._connections.get(org.slug)
        if existing is not None:
            return existing

        if not org.connection_config:
            msg = f"No connection config found for organization: {org.slug}"
            raise ConfigError(msg, slug=org.slug)

        handle = await self._provisioner.provision(org.slug, org.connection_config)
        # A concurrent acquire for the same slug may have finished first.
        raced = self._connections.get(org.slug)
        if raced is not None:
            await self._dispose(org.slug, handle)
            return raced

        connection = TenantConnection(slug=org.slug, handle=handle)
        self._connections[org.slug] = connection
        logger.info("tenant_connection_opened", slug=org.slug)
        return connection

    async def release(self, slug: str) -> None:
        connection = self._connections.pop(slug, None)
        if connection is None:
            return
        await self._dispose(slug, connection.handle)
        logger.info("tenant_connection_released", slug=slug)

    async def release_all(self) -> None:
        for slug in list(self._connections):
            await self.release(slug)

    async def _dispose(self, slug: str, handle: Any) -> None:
        try:
            await self._provisioner.dispose(handle)
        except Exception as exc:
            logger.warning("tenant_connection_dispose_failed", slug=slug, error=str(exc))

    def get(self, slug: str) -> TenantConnection | None:
        return self._connections.get(slug)

    def active_slugs(self) -> list[str]:
        return list(self._connections)

    def __contains__(self, slug: object) -> bool:
        return slug in self._connections

    def __len__(self) -> int:
        return len(self._connections)
