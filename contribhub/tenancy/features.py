"""Capability-gated feature modules built only once a tenant is ready.

Feature factories receive the active organization and its connection as
arguments; nothing reads tenant state from globals. Instances live until the
tenant is switched out or cleared, at which point ``close()`` is awaited if
the feature defines one.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from contribhub.types import TenantEventType

if TYPE_CHECKING:
    from contribhub.models.domain import OrganizationRecord
    from contribhub.tenancy.context import TenantContextManager
    from contribhub.tenancy.events import TenantEvent
    from contribhub.tenancy.pool import TenantConnection

logger = structlog.get_logger(__name__)

FeatureFactory = Callable[["OrganizationRecord", "TenantConnection"], Any]


class FeatureNotReadyError(LookupError):
    """Raised when a feature is requested before any tenant is ready."""


class FeatureRegistry:
    def __init__(self, context: TenantContextManager) -> None:
        self._context = context
        self._factories: dict[str, FeatureFactory] = {}
        self._instances: dict[str, Any] = {}
        self._slug: str | None = None
        self._unsubscribe = context.events.subscribe(self._on_event)

    def register(self, name: str, factory: FeatureFactory) -> None:
        if name in self._factories:
            msg = f"Feature already registered: {name}"
            raise ValueError(msg)
        self._factories[name] = factory

    @property
    def names(self) -> list[str]:
        return list(self._factories)

    @property
    def slug(self) -> str | None:
        return self._slug

    def get(self, name: str) -> Any:
        """Return the built feature for the current tenant."""
        if name not in self._factories:
            raise KeyError(name)
        if name not in self._instances:
            raise FeatureNotReadyError(f"Feature {name!r} is waiting for a tenant")
        return self._instances[name]

    async def _on_event(self, event: TenantEvent) -> None:
        if event.type == TenantEventType.READY:
            if event.slug == self._slug and self._instances:
                return
            await self._teardown()
            self._build()
        elif event.type == TenantEventType.CLEARED:
            await self._teardown()

    def _build(self) -> None:
        org = self._context.get_current_org()
        connection = self._context.get_current_connection()
        if org is None or connection is None:
            return
        for name, factory in self._factories.items():
            self._instances[name] = factory(org, connection)
        self._slug = org.slug
        logger.info("tenant_features_built", slug=org.slug, features=list(self._instances))

    async def _teardown(self) -> None:
        for name, instance in self._instances.items():
            close = getattr(instance, "close", None)
            if close is None:
                continue
            try:
                result = close()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("tenant_feature_close_failed", feature=name, error=str(exc))
        if self._instances:
            logger.info("tenant_features_closed", slug=self._slug)
        self._instances.clear()
        self._slug = None

    async def close(self) -> None:
        self._unsubscribe()
        await self._teardown()
