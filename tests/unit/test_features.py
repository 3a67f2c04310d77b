"""Unit tests for FeatureRegistry."""

from __future__ import annotations

from typing import Any

import pytest

from contribhub.tenancy.context import TenantContextManager
from contribhub.tenancy.features import FeatureNotReadyError, FeatureRegistry
from contribhub.tenancy.pool import TenantConnectionPool


class _ContributionsFeature:
    instances: list[_ContributionsFeature] = []

    def __init__(self, org: Any, connection: Any) -> None:
        self.slug = org.slug
        self.connection = connection
        self.closed = False
        _ContributionsFeature.instances.append(self)

    async def close(self) -> None:
        self.closed = True


@pytest.mark.unit
class TestFeatureRegistry:
    @pytest.fixture(autouse=True)
    def _reset(self) -> None:
        _ContributionsFeature.instances = []

    @pytest.fixture()
    def context(self, directory: Any, provisioner: Any) -> TenantContextManager:
        return TenantContextManager(directory, TenantConnectionPool(provisioner))

    @pytest.fixture()
    def registry(self, context: TenantContextManager) -> FeatureRegistry:
        registry = FeatureRegistry(context)
        registry.register("contributions", _ContributionsFeature)
        return registry

    async def test_not_built_before_tenant_ready(self, registry: FeatureRegistry) -> None:
        with pytest.raises(FeatureNotReadyError):
            registry.get("contributions")
        assert _ContributionsFeature.instances == []

    async def test_unknown_feature(self, registry: FeatureRegistry) -> None:
        with pytest.raises(KeyError):
            registry.get("reports")

    async def test_duplicate_registration(self, registry: FeatureRegistry) -> None:
        with pytest.raises(ValueError, match="already registered"):
            registry.register("contributions", _ContributionsFeature)

    async def test_built_with_active_connection(
        self, registry: FeatureRegistry, context: TenantContextManager
    ) -> None:
        connection = await context.activate(await context.load_organization("acme"))
        feature = registry.get("contributions")
        assert feature.slug == "acme"
        assert feature.connection is connection
        assert registry.slug == "acme"

    async def test_reactivation_keeps_instances(
        self, registry: FeatureRegistry, context: TenantContextManager
    ) -> None:
        acme = await context.load_organization("acme")
        await context.activate(acme)
        await context.activate(acme)
        assert len(_ContributionsFeature.instances) == 1

    async def test_switch_rebuilds_and_closes_old(
        self, registry: FeatureRegistry, context: TenantContextManager
    ) -> None:
        await context.activate(await context.load_organization("acme"))
        old = registry.get("contributions")
        await context.activate(await context.load_organization("beta"))
        new = registry.get("contributions")
        assert old.closed is True
        assert new.slug == "beta"
        assert new is not old

    async def test_clear_tears_down(
        self, registry: FeatureRegistry, context: TenantContextManager
    ) -> None:
        await context.activate(await context.load_organization("acme"))
        feature = registry.get("contributions")
        await context.clear_current_org()
        assert feature.closed is True
        assert registry.slug is None
        with pytest.raises(FeatureNotReadyError):
            registry.get("contributions")

    async def test_close_unsubscribes(
        self, registry: FeatureRegistry, context: TenantContextManager
    ) -> None:
        await registry.close()
        await context.activate(await context.load_organization("acme"))
        assert _ContributionsFeature.instances == []
