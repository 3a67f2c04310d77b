"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from contribhub.models.domain import MembershipRecord, OrganizationRecord
from contribhub.storage.database import init_db
from contribhub.storage.repositories.organizations import InMemoryCentralDirectory
from contribhub.tenancy.provisioner import parse_connection_config
from contribhub.web.app import create_app


class FakeHandle:
    def __init__(self, slug: str) -> None:
        self.slug = slug
        self.closed = False


class FakeProvisioner:
    """Records provision/dispose calls into a shared, ordered log."""

    def __init__(self) -> None:
        self.log: list[tuple[str, str | None]] = []
        self.attempts: list[str] = []
        self.handles: list[FakeHandle] = []
        self.provision_errors: dict[str, Exception] = {}
        self.dispose_error: Exception | None = None
        # slug -> event that must be set before provisioning may finish
        self.gates: dict[str, asyncio.Event] = {}

    async def provision(self, slug: str, config: dict[str, Any]) -> FakeHandle:
        self.attempts.append(slug)
        parse_connection_config(slug, config)
        await asyncio.sleep(0)
        if slug in self.gates:
            await self.gates[slug].wait()
        if slug in self.provision_errors:
            raise self.provision_errors[slug]
        handle = FakeHandle(slug)
        self.handles.append(handle)
        self.log.append(("provision", slug))
        return handle

    async def dispose(self, handle: FakeHandle) -> None:
        await asyncio.sleep(0)
        self.log.append(("dispose", handle.slug))
        handle.closed = True
        if self.dispose_error is not None:
            raise self.dispose_error

    def count(self, action: str, slug: str) -> int:
        return self.log.count((action, slug))


def make_org(slug: str, name: str | None = None, **extra: Any) -> OrganizationRecord:
    config = extra.pop("connection_config", {"database_url": f"sqlite+aiosqlite:///{slug}.db"})
    return OrganizationRecord(
        slug=slug, name=name or slug.title(), connection_config=config, **extra
    )


@pytest.fixture()
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture()
def directory() -> InMemoryCentralDirectory:
    """Directory with two usable orgs, one without config, and a stale membership."""
    return InMemoryCentralDirectory(
        organizations=[
            make_org("acme", "Acme Choir"),
            make_org("beta", "Beta Fellowship"),
            make_org("broken", "Broken Org", connection_config=None),
        ],
        memberships=[
            MembershipRecord(user_id="u1", slug="acme", email="u1@example.com"),
            MembershipRecord(user_id="u1", slug="beta", email="u1@example.com"),
            MembershipRecord(user_id="u1", slug="gone", email="u1@example.com"),
        ],
    )


@pytest.fixture()
def app(directory: InMemoryCentralDirectory, provisioner: FakeProvisioner):
    """Create a fresh app instance wired to the fake provisioner."""
    return create_app(directory=directory, provisioner=provisioner)


@pytest.fixture()
async def client(app):
    """Client pinned to one tenant session, like a single browser tab."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-Session-ID": "tab-main"}
    ) as ac:
        yield ac


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with the central directory tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def org_factory():
    return make_org
