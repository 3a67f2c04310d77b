"""Route resolver: navigation location -> active tenant."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, unquote, urlsplit

import structlog

from contribhub.exceptions import (
    AccessError,
    ConfigError,
    NotFoundError,
    TransientIOError,
)
from contribhub.tenancy.events import TenantEvent
from contribhub.types import NavigationState, TenantEventType

if TYPE_CHECKING:
    from contribhub.models.domain import OrganizationRecord
    from contribhub.tenancy.context import TenantContextManager
    from contribhub.tenancy.pool import TenantConnection

logger = structlog.get_logger(__name__)

_ORG_PATH = re.compile(r"/organizations/([^/?#]+)")

MSG_NO_TENANT = "No organization selected"
MSG_NOT_FOUND = "Organization not found"
MSG_MISCONFIGURED = "Organization is not configured correctly. Contact your administrator."
MSG_TRANSIENT = "Temporary problem loading the organization. Please try again."
MSG_UNEXPECTED = "Failed to load organization"


@dataclass
class NavigationResult:
    """Outcome of resolving one navigation."""

    state: NavigationState
    slug: str | None = None
    org: OrganizationRecord | None = None
    connection: TenantConnection | None = None
    error: Exception | None = None
    message: str = ""
    redirect_to: str | None = None
    trail: list[NavigationState] = field(default_factory=lambda: [NavigationState.IDLE])

    def advance(self, state: NavigationState) -> None:
        self.state = state
        self.trail.append(state)

    @property
    def succeeded(self) -> bool:
        return self.state == NavigationState.CONNECTION_ACTIVE


def extract_slug(location: str) -> str | None:
    """Pull a tenant slug from ``/organizations/{slug}/...`` or ``?slug=``.

    Accepts a bare path, a path with query string, or a full URL.
    """
    parts = urlsplit(location)
    match = _ORG_PATH.search(parts.path)
    if match:
        slug = unquote(match.group(1)).strip()
        if slug:
            return slug

    values = parse_qs(parts.query).get("slug", [])
    for value in values:
        if value.strip():
            return value.strip()
    return None


class RouteResolver:
    """Drives the context manager from navigation events.

    The first layer allowed to turn tenant errors into user-facing messages.
    There is no retry: a failed resolution needs a fresh navigation.
    """

    def __init__(
        self,
        context: TenantContextManager,
        login_path: str = "/login",
        directory_path: str = "/organizations",
    ) -> None:
        self._context = context
        self._login_path = login_path
        self._directory_path = directory_path

    async def resolve_route(self, location: str) -> NavigationResult:
        result = NavigationResult(state=NavigationState.IDLE)
        generation = self._context.begin_navigation()

        slug = extract_slug(location)
        if slug is None:
            result.advance(NavigationState.FAILED)
            result.message = MSG_NO_TENANT
            result.redirect_to = self._login_path
            logger.info("navigation_without_tenant", location=location)
            return result

        result.slug = slug
        result.advance(NavigationState.SLUG_EXTRACTED)

        try:
            org = await self._context.load_organization(slug)
            if not self._context.is_current_navigation(generation):
                result.advance(NavigationState.SUPERSEDED)
                logger.info("navigation_superseded", slug=slug)
                return result
            result.org = org
            result.advance(NavigationState.ORG_LOADED)

            connection = await self._context.activate(org)
        except Exception as exc:
            await self._fail(result, exc)
            return result

        if not self._context.is_current_navigation(generation):
            await self._discard_stale(org)
            result.advance(NavigationState.SUPERSEDED)
            logger.info("navigation_superseded", slug=slug, after="activate")
            return result

        result.connection = connection
        result.advance(NavigationState.CONNECTION_ACTIVE)
        return result

    async def _discard_stale(self, org: OrganizationRecord) -> None:
        # A newer navigation that is still switching will replace the tenant
        # itself; one that already settled without activating leaves ours behind.
        if self._context.activations_in_flight:
            return
        current = self._context.get_current_org()
        if current is not None and current.slug == org.slug:
            await self._context.clear_current_org()

    async def _fail(self, result: NavigationResult, exc: Exception) -> None:
        result.error = exc
        if isinstance(exc, (NotFoundError, AccessError)):
            # Denied reads look the same as missing orgs to the user.
            result.message = MSG_NOT_FOUND
            result.redirect_to = self._directory_path
            logger.info("organization_unavailable", slug=result.slug, reason=type(exc).__name__)
        elif isinstance(exc, ConfigError):
            result.message = MSG_MISCONFIGURED
            logger.error("organization_misconfigured", slug=result.slug, error=str(exc))
        elif isinstance(exc, TransientIOError):
            result.message = MSG_TRANSIENT
            logger.warning("organization_load_transient_failure", slug=result.slug, error=str(exc))
        else:
            result.message = MSG_UNEXPECTED
            logger.exception("organization_load_failed", slug=result.slug, error=str(exc))

        result.advance(NavigationState.FAILED)
        await self._context.events.publish(
            TenantEvent(type=TenantEventType.ERROR, slug=result.slug, message=result.message)
        )
