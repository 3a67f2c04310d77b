"""Central directory of organizations and user memberships.

Two interchangeable backends:

* ``InMemoryCentralDirectory`` for dev/testing without a database.
* ``DatabaseCentralDirectory`` backed by SQLModel tables on an async engine.

Neither caches: every call reads the backing store.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from contribhub.exceptions import (
    AccessError,
    NotFoundError,
    OrganizationExistsError,
    TransientIOError,
)
from contribhub.models.database import Organization, OrganizationMembership, _utc_now
from contribhub.models.domain import MembershipRecord, OrganizationRecord
from contribhub.types import MemberRole, OrganizationStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "connection_config", "status"})


class CentralDirectory(Protocol):
    async def get_organization(self, slug: str) -> OrganizationRecord: ...

    async def list_organizations_for_user(self, user_id: str) -> list[OrganizationRecord]: ...

    async def list_all_organizations(self) -> list[OrganizationRecord]: ...

    async def create_organization(self, record: OrganizationRecord) -> OrganizationRecord: ...

    async def update_organization(
        self, slug: str, updates: dict[str, Any]
    ) -> OrganizationRecord: ...

    async def delete_organization(self, slug: str) -> None: ...

    async def grant_membership(
        self, user_id: str, slug: str, email: str = "", role: MemberRole = MemberRole.VIEWER
    ) -> MembershipRecord: ...

    async def update_membership_role(
        self, user_id: str, slug: str, role: MemberRole
    ) -> MembershipRecord: ...

    async def revoke_membership(self, user_id: str, slug: str) -> bool: ...

    async def list_members(self, slug: str) -> list[MembershipRecord]: ...


def _not_found(slug: str) -> NotFoundError:
    return NotFoundError(f"Organization not found: {slug}", slug=slug)


class InMemoryCentralDirectory:
    """In-memory directory store. Replaced by ``DatabaseCentralDirectory`` in production."""

    def __init__(
        self,
        organizations: list[OrganizationRecord] | None = None,
        memberships: list[MembershipRecord] | None = None,
    ) -> None:
        self._organizations: dict[str, OrganizationRecord] = {
            org.slug: org for org in organizations or []
        }
        # user_id -> slug -> membership
        self._memberships: dict[str, dict[str, MembershipRecord]] = {}
        for membership in memberships or []:
            self._memberships.setdefault(membership.user_id, {})[membership.slug] = membership

    async def get_organization(self, slug: str) -> OrganizationRecord:
        org = self._organizations.get(slug)
        if org is None:
            raise _not_found(slug)
        return org

    async def list_organizations_for_user(self, user_id: str) -> list[OrganizationRecord]:
        organizations = []
        for slug in self._memberships.get(user_id, {}):
            try:
                organizations.append(await self.get_organization(slug))
            except NotFoundError:
                logger.warning("stale_membership_skipped", user_id=user_id, slug=slug)
        return organizations

    async def list_all_organizations(self) -> list[OrganizationRecord]:
        return list(self._organizations.values())

    async def create_organization(self, record: OrganizationRecord) -> OrganizationRecord:
        if record.slug in self._organizations:
            msg = f"Organization slug already exists: {record.slug}"
            raise OrganizationExistsError(msg)
        now = _utc_now()
        record = record.model_copy(
            update={"created_at": record.created_at or now, "updated_at": now}
        )
        self._organizations[record.slug] = record
        logger.info("organization_created", slug=record.slug)
        return record

    async def update_organization(self, slug: str, updates: dict[str, Any]) -> OrganizationRecord:
        current = await self.get_organization(slug)
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
        changes["updated_at"] = _utc_now()
        updated = OrganizationRecord.model_validate({**current.model_dump(), **changes})
        self._organizations[slug] = updated
        logger.info("organization_updated", slug=slug, fields=sorted(changes))
        return updated

    async def delete_organization(self, slug: str) -> None:
        if self._organizations.pop(slug, None) is None:
            raise _not_found(slug)
        for user_memberships in self._memberships.values():
            user_memberships.pop(slug, None)
        logger.info("organization_deleted", slug=slug)

    async def grant_membership(
        self, user_id: str, slug: str, email: str = "", role: MemberRole = MemberRole.VIEWER
    ) -> MembershipRecord:
        await self.get_organization(slug)
        membership = MembershipRecord(user_id=user_id, slug=slug, email=email, role=role)
        self._memberships.setdefault(user_id, {})[slug] = membership
        logger.info("membership_granted", user_id=user_id, slug=slug, role=str(role))
        return membership

    async def update_membership_role(
        self, user_id: str, slug: str, role: MemberRole
    ) -> MembershipRecord:
        current = self._memberships.get(user_id, {}).get(slug)
        if current is None:
            raise NotFoundError(f"Membership not found: {user_id} in {slug}", slug=slug)
        updated = current.model_copy(update={"role": role})
        self._memberships[user_id][slug] = updated
        return updated

    async def revoke_membership(self, user_id: str, slug: str) -> bool:
        removed = self._memberships.get(user_id, {}).pop(slug, None)
        if removed is not None:
            logger.info("membership_revoked", user_id=user_id, slug=slug)
        return removed is not None

    async def list_members(self, slug: str) -> list[MembershipRecord]:
        await self.get_organization(slug)
        return [
            memberships[slug] for memberships in self._memberships.values() if slug in memberships
        ]


def _is_permission_denied(exc: DBAPIError) -> bool:
    code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    return code == "42501" or "permission denied" in str(exc.orig).lower()


@contextmanager
def _store_errors(operation: str, slug: str | None = None) -> Iterator[None]:
    """Translate driver errors into the directory's error taxonomy."""
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        if _is_permission_denied(exc):
            raise AccessError(f"Permission denied during {operation}", slug=slug) from exc
        if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
            logger.warning("central_store_unavailable", operation=operation, error=str(exc))
            raise TransientIOError(f"Central store unavailable during {operation}") from exc
        raise


def _to_record(row: Organization) -> OrganizationRecord:
    return OrganizationRecord(
        slug=row.slug,
        name=row.name,
        connection_config=row.connection_config,
        status=OrganizationStatus(row.status),
        id=row.id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_membership(row: OrganizationMembership) -> MembershipRecord:
    return MembershipRecord(
        user_id=row.user_id, slug=row.org_slug, email=row.email, role=MemberRole(row.role)
    )


class DatabaseCentralDirectory:
    """SQL-backed directory store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _fetch(self, session: AsyncSession, slug: str) -> Organization:
        row = await session.get(Organization, slug)
        if row is None:
            raise _not_found(slug)
        return row

    async def get_organization(self, slug: str) -> OrganizationRecord:
        with _store_errors("get_organization", slug):
            async with AsyncSession(self._engine) as session:
                return _to_record(await self._fetch(session, slug))

    async def list_organizations_for_user(self, user_id: str) -> list[OrganizationRecord]:
        with _store_errors("list_organizations_for_user"):
            async with AsyncSession(self._engine) as session:
                stmt = select(OrganizationMembership.org_slug).where(
                    col(OrganizationMembership.user_id) == user_id
                )
                slugs = list((await session.execute(stmt)).scalars().all())

        organizations = []
        for slug in slugs:
            try:
                organizations.append(await self.get_organization(slug))
            except NotFoundError:
                logger.warning("stale_membership_skipped", user_id=user_id, slug=slug)
        return organizations

    async def list_all_organizations(self) -> list[OrganizationRecord]:
        with _store_errors("list_all_organizations"):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(select(Organization))
                return [_to_record(row) for row in result.scalars().all()]

    async def create_organization(self, record: OrganizationRecord) -> OrganizationRecord:
        with _store_errors("create_organization", record.slug):
            async with AsyncSession(self._engine) as session:
                if await session.get(Organization, record.slug) is not None:
                    msg = f"Organization slug already exists: {record.slug}"
                    raise OrganizationExistsError(msg)
                row = Organization(
                    slug=record.slug,
                    name=record.name,
                    connection_config=record.connection_config,
                    status=str(record.status),
                )
                if record.id:
                    row.id = record.id
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError as exc:
                    msg = f"Organization slug already exists: {record.slug}"
                    raise OrganizationExistsError(msg) from exc
                await session.refresh(row)
                logger.info("organization_created", slug=row.slug)
                return _to_record(row)

    async def update_organization(self, slug: str, updates: dict[str, Any]) -> OrganizationRecord:
        with _store_errors("update_organization", slug):
            async with AsyncSession(self._engine) as session:
                row = await self._fetch(session, slug)
                changed = []
                for key, value in updates.items():
                    if key not in UPDATABLE_FIELDS:
                        continue
                    setattr(row, key, str(value) if key == "status" else value)
                    changed.append(key)
                row.updated_at = _utc_now()
                session.add(row)
                await session.commit()
                await session.refresh(row)
                logger.info("organization_updated", slug=slug, fields=sorted(changed))
                return _to_record(row)

    async def delete_organization(self, slug: str) -> None:
        with _store_errors("delete_organization", slug):
            async with AsyncSession(self._engine) as session:
                row = await self._fetch(session, slug)
                await session.execute(
                    delete(OrganizationMembership).where(
                        col(OrganizationMembership.org_slug) == slug
                    )
                )
                await session.delete(row)
                await session.commit()
                logger.info("organization_deleted", slug=slug)

    async def _membership_row(
        self, session: AsyncSession, user_id: str, slug: str
    ) -> OrganizationMembership | None:
        stmt = select(OrganizationMembership).where(
            col(OrganizationMembership.user_id) == user_id,
            col(OrganizationMembership.org_slug) == slug,
        )
        return (await session.execute(stmt)).scalars().first()

    async def grant_membership(
        self, user_id: str, slug: str, email: str = "", role: MemberRole = MemberRole.VIEWER
    ) -> MembershipRecord:
        with _store_errors("grant_membership", slug):
            async with AsyncSession(self._engine) as session:
                await self._fetch(session, slug)
                row = await self._membership_row(session, user_id, slug)
                if row is None:
                    row = OrganizationMembership(user_id=user_id, org_slug=slug)
                row.email = email
                row.role = str(role)
                session.add(row)
                await session.commit()
                await session.refresh(row)
                logger.info("membership_granted", user_id=user_id, slug=slug, role=str(role))
                return _to_membership(row)

    async def update_membership_role(
        self, user_id: str, slug: str, role: MemberRole
    ) -> MembershipRecord:
        with _store_errors("update_membership_role", slug):
            async with AsyncSession(self._engine) as session:
                row = await self._membership_row(session, user_id, slug)
                if row is None:
                    raise NotFoundError(f"Membership not found: {user_id} in {slug}", slug=slug)
                row.role = str(role)
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _to_membership(row)

    async def revoke_membership(self, user_id: str, slug: str) -> bool:
        with _store_errors("revoke_membership", slug):
            async with AsyncSession(self._engine) as session:
                row = await self._membership_row(session, user_id, slug)
                if row is None:
                    return False
                await session.delete(row)
                await session.commit()
                logger.info("membership_revoked", user_id=user_id, slug=slug)
                return True

    async def list_members(self, slug: str) -> list[MembershipRecord]:
        with _store_errors("list_members", slug):
            async with AsyncSession(self._engine) as session:
                await self._fetch(session, slug)
                stmt = select(OrganizationMembership).where(
                    col(OrganizationMembership.org_slug) == slug
                )
                result = await session.execute(stmt)
                return [_to_membership(row) for row in result.scalars().all()]
