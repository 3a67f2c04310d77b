"""Unit tests for slug extraction and route resolution."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from contribhub.exceptions import AccessError, ConfigError, NotFoundError, TransientIOError
from contribhub.tenancy.context import TenantContextManager
from contribhub.tenancy.events import TenantEvent, TenantEventBus
from contribhub.tenancy.pool import TenantConnectionPool
from contribhub.tenancy.resolver import (
    MSG_MISCONFIGURED,
    MSG_NO_TENANT,
    MSG_NOT_FOUND,
    MSG_TRANSIENT,
    MSG_UNEXPECTED,
    RouteResolver,
    extract_slug,
)
from contribhub.types import NavigationState, TenantEventType


@pytest.mark.unit
class TestExtractSlug:
    @pytest.mark.parametrize(
        ("location", "expected"),
        [
            ("/organizations/acme", "acme"),
            ("/organizations/acme/", "acme"),
            ("/organizations/acme/dashboard", "acme"),
            ("/app/organizations/acme/reports?tab=1", "acme"),
            ("https://contrib.example.com/organizations/acme/budget#top", "acme"),
            ("/organizations/st%20marys/", "st marys"),
            ("/dashboard?slug=beta", "beta"),
            ("/organizations/?slug=beta", "beta"),
            ("https://contrib.example.com/index.html?x=1&slug=beta", "beta"),
        ],
    )
    def test_extracts(self, location: str, expected: str) -> None:
        assert extract_slug(location) == expected

    def test_path_wins_over_query(self) -> None:
        assert extract_slug("/organizations/acme?slug=beta") == "acme"

    @pytest.mark.parametrize(
        "location", ["/", "", "/dashboard", "/organizations", "/organizations/", "/x?slug="]
    )
    def test_none_when_absent(self, location: str) -> None:
        assert extract_slug(location) is None


@pytest.mark.unit
class TestRouteResolver:
    @pytest.fixture()
    def events(self) -> TenantEventBus:
        return TenantEventBus()

    @pytest.fixture()
    def pool(self, provisioner: Any) -> TenantConnectionPool:
        return TenantConnectionPool(provisioner)

    @pytest.fixture()
    def context(
        self, directory: Any, pool: TenantConnectionPool, events: TenantEventBus
    ) -> TenantContextManager:
        return TenantContextManager(directory, pool, events)

    @pytest.fixture()
    def resolver(self, context: TenantContextManager) -> RouteResolver:
        return RouteResolver(context, login_path="/login", directory_path="/organizations")

    @pytest.fixture()
    def received(self, events: TenantEventBus) -> list[TenantEvent]:
        seen: list[TenantEvent] = []
        events.subscribe(seen.append)
        return seen

    async def test_resolves_to_active_connection(
        self, resolver: RouteResolver, context: TenantContextManager
    ) -> None:
        result = await resolver.resolve_route("/organizations/acme/dashboard")
        assert result.state == NavigationState.CONNECTION_ACTIVE
        assert result.succeeded is True
        assert result.trail == [
            NavigationState.IDLE,
            NavigationState.SLUG_EXTRACTED,
            NavigationState.ORG_LOADED,
            NavigationState.CONNECTION_ACTIVE,
        ]
        assert context.get_current_org().slug == "acme"  # type: ignore[union-attr]
        assert result.connection is context.get_current_connection()

    async def test_unknown_slug_fails_with_not_found(
        self, resolver: RouteResolver, context: TenantContextManager, received: list[TenantEvent]
    ) -> None:
        result = await resolver.resolve_route("/organizations/ghost")
        assert result.state == NavigationState.FAILED
        assert isinstance(result.error, NotFoundError)
        assert result.message == MSG_NOT_FOUND
        assert result.redirect_to == "/organizations"
        assert result.trail == [
            NavigationState.IDLE,
            NavigationState.SLUG_EXTRACTED,
            NavigationState.FAILED,
        ]
        assert context.get_current_org() is None
        assert received[-1].type == TenantEventType.ERROR
        assert received[-1].message == MSG_NOT_FOUND

    async def test_no_slug_redirects_to_login(
        self, resolver: RouteResolver, received: list[TenantEvent]
    ) -> None:
        result = await resolver.resolve_route("/dashboard")
        assert result.state == NavigationState.FAILED
        assert result.trail == [NavigationState.IDLE, NavigationState.FAILED]
        assert result.error is None
        assert result.message == MSG_NO_TENANT
        assert result.redirect_to == "/login"
        assert received == []

    async def test_access_error_looks_like_not_found(
        self, pool: TenantConnectionPool, events: TenantEventBus
    ) -> None:
        class _DenyingDirectory:
            async def get_organization(self, slug: str) -> Any:
                raise AccessError("permission denied", slug=slug)

        context = TenantContextManager(_DenyingDirectory(), pool, events)  # type: ignore[arg-type]
        result = await RouteResolver(context).resolve_route("/organizations/secret")
        assert result.state == NavigationState.FAILED
        assert isinstance(result.error, AccessError)
        assert result.message == MSG_NOT_FOUND
        assert "secret" not in result.message

    async def test_missing_config_is_operator_facing(self, resolver: RouteResolver) -> None:
        result = await resolver.resolve_route("/organizations/broken")
        assert result.state == NavigationState.FAILED
        assert NavigationState.ORG_LOADED in result.trail
        assert isinstance(result.error, ConfigError)
        assert result.message == MSG_MISCONFIGURED
        assert result.redirect_to is None

    async def test_transient_failure_is_not_retried(
        self, resolver: RouteResolver, provisioner: Any
    ) -> None:
        provisioner.provision_errors["acme"] = TransientIOError("timeout")
        result = await resolver.resolve_route("/organizations/acme")
        assert result.state == NavigationState.FAILED
        assert isinstance(result.error, TransientIOError)
        assert result.message == MSG_TRANSIENT
        assert provisioner.attempts == ["acme"]

    async def test_query_parameter_fallback(
        self, resolver: RouteResolver, context: TenantContextManager
    ) -> None:
        result = await resolver.resolve_route("/index.html?slug=beta")
        assert result.succeeded
        assert context.get_current_org().slug == "beta"  # type: ignore[union-attr]

    async def test_navigating_between_orgs(
        self, resolver: RouteResolver, pool: TenantConnectionPool
    ) -> None:
        await resolver.resolve_route("/organizations/acme")
        await resolver.resolve_route("/organizations/beta/reports")
        assert pool.active_slugs() == ["beta"]

    async def test_superseded_navigation_is_ignored(
        self, pool: TenantConnectionPool, events: TenantEventBus, directory: Any
    ) -> None:
        release_acme = asyncio.Event()

        class _SlowDirectory:
            async def get_organization(self, slug: str) -> Any:
                if slug == "acme":
                    await release_acme.wait()
                return await directory.get_organization(slug)

        context = TenantContextManager(_SlowDirectory(), pool, events)  # type: ignore[arg-type]
        resolver = RouteResolver(context)

        stale = asyncio.create_task(resolver.resolve_route("/organizations/acme"))
        await asyncio.sleep(0)
        fresh = await resolver.resolve_route("/organizations/beta")
        release_acme.set()
        stale_result = await stale

        assert fresh.state == NavigationState.CONNECTION_ACTIVE
        assert stale_result.state == NavigationState.SUPERSEDED
        assert context.get_current_org().slug == "beta"  # type: ignore[union-attr]
        assert pool.active_slugs() == ["beta"]

    async def test_navigation_overtaken_during_activation_is_discarded(
        self,
        resolver: RouteResolver,
        context: TenantContextManager,
        pool: TenantConnectionPool,
        provisioner: Any,
    ) -> None:
        provisioner.gates["acme"] = asyncio.Event()
        stale = asyncio.create_task(resolver.resolve_route("/organizations/acme"))
        while "acme" not in provisioner.attempts:
            await asyncio.sleep(0)

        fresh = await resolver.resolve_route("/dashboard")
        provisioner.gates["acme"].set()
        stale_result = await stale

        assert fresh.state == NavigationState.FAILED
        assert stale_result.state == NavigationState.SUPERSEDED
        assert stale_result.connection is None
        assert context.get_current_org() is None
        assert len(pool) == 0
        assert provisioner.count("dispose", "acme") == 1

    async def test_overtaken_activation_leaves_newer_switch_alone(
        self,
        resolver: RouteResolver,
        context: TenantContextManager,
        pool: TenantConnectionPool,
        provisioner: Any,
    ) -> None:
        provisioner.gates["acme"] = asyncio.Event()
        stale = asyncio.create_task(resolver.resolve_route("/organizations/acme"))
        while "acme" not in provisioner.attempts:
            await asyncio.sleep(0)
        fresh = asyncio.create_task(resolver.resolve_route("/organizations/beta"))
        while context.activations_in_flight < 2:
            await asyncio.sleep(0)

        provisioner.gates["acme"].set()
        stale_result, fresh_result = await asyncio.gather(stale, fresh)

        assert stale_result.state == NavigationState.SUPERSEDED
        assert fresh_result.state == NavigationState.CONNECTION_ACTIVE
        assert context.get_current_org().slug == "beta"  # type: ignore[union-attr]
        assert pool.active_slugs() == ["beta"]

    async def test_unexpected_error_becomes_failed_navigation(
        self, resolver: RouteResolver, provisioner: Any, received: list[TenantEvent]
    ) -> None:
        provisioner.provision_errors["acme"] = RuntimeError("driver exploded")
        result = await resolver.resolve_route("/organizations/acme")
        assert result.state == NavigationState.FAILED
        assert isinstance(result.error, RuntimeError)
        assert result.message == MSG_UNEXPECTED
        assert received[-1].type == TenantEventType.ERROR
        assert received[-1].message == MSG_UNEXPECTED
