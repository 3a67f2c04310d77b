"""Tenant context manager: the single owner of "current organization" state."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from contribhub.tenancy.events import TenantEvent, TenantEventBus
from contribhub.types import TenantEventType

if TYPE_CHECKING:
    from contribhub.models.domain import OrganizationRecord
    from contribhub.storage.repositories.organizations import CentralDirectory
    from contribhub.tenancy.pool import TenantConnection, TenantConnectionPool

logger = structlog.get_logger(__name__)


class TenantContextManager:
    """Loads, activates and clears the session's current organization.

    ``activate`` and ``clear_current_org`` share one lock, so a switch is
    never interleaved with another: the outgoing tenant is always released
    before the incoming one is announced.
    """

    def __init__(
        self,
        directory: CentralDirectory,
        pool: TenantConnectionPool,
        events: TenantEventBus | None = None,
    ) -> None:
        self._directory = directory
        self._pool = pool
        self.events = events or TenantEventBus()
        self._lock = asyncio.Lock()
        self._current_org: OrganizationRecord | None = None
        self._current_connection: TenantConnection | None = None
        self._pending_org: OrganizationRecord | None = None
        self._generation = 0
        self._activations_in_flight = 0

    async def load_organization(self, slug: str) -> OrganizationRecord:
        """Fetch the record for ``slug``; errors propagate unchanged."""
        org = await self._directory.get_organization(slug)
        self._pending_org = org
        logger.debug("organization_loaded", slug=slug)
        return org

    async def activate(self, org: OrganizationRecord) -> TenantConnection:
        self._activations_in_flight += 1
        try:
            return await self._activate(org)
        finally:
            self._activations_in_flight -= 1

    async def _activate(self, org: OrganizationRecord) -> TenantConnection:
        async with self._lock:
            previous = self._current_org
            if previous is not None and previous.slug != org.slug:
                self._current_org = None
                self._current_connection = None
                await self._pool.release(previous.slug)
                logger.info("tenant_switched_out", slug=previous.slug, next_slug=org.slug)

            try:
                connection = await self._pool.acquire(org)
            except Exception:
                if previous is not None and previous.slug != org.slug:
                    await self.events.publish(TenantEvent(type=TenantEventType.CLEARED))
                raise

            self._current_org = org
            self._current_connection = connection
            if self._pending_org is not None and self._pending_org.slug == org.slug:
                self._pending_org = None
            logger.info("tenant_activated", slug=org.slug)
            await self.events.publish(
                TenantEvent(type=TenantEventType.READY, slug=org.slug, org=org.public_view())
            )
            return connection

    async def clear_current_org(self) -> None:
        """Release the current organization; a no-op when none is active."""
        async with self._lock:
            current = self._current_org
            if current is None:
                return
            self._current_org = None
            self._current_connection = None
            await self._pool.release(current.slug)
            logger.info("tenant_cleared", slug=current.slug)
            await self.events.publish(TenantEvent(type=TenantEventType.CLEARED))

    def get_current_org(self) -> OrganizationRecord | None:
        return self._current_org

    def get_current_connection(self) -> TenantConnection | None:
        return self._current_connection

    @property
    def pending_org(self) -> OrganizationRecord | None:
        return self._pending_org

    @property
    def is_switching(self) -> bool:
        return self._lock.locked()

    @property
    def activations_in_flight(self) -> int:
        """Calls to ``activate`` that are running or waiting for the lock."""
        return self._activations_in_flight

    def begin_navigation(self) -> int:
        """Start a navigation and return its generation number."""
        self._generation += 1
        return self._generation

    def is_current_navigation(self, generation: int) -> bool:
        return generation == self._generation
