"""Organization administration: creation, updates, status and memberships."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from contribhub.exceptions import (
    InvalidOrganizationError,
    NotFoundError,
    OrganizationExistsError,
)
from contribhub.models.domain import OrganizationRecord
from contribhub.storage.repositories.organizations import UPDATABLE_FIELDS
from contribhub.storage.repositories.tenant_settings import TenantSettingsRepository
from contribhub.tenancy.provisioner import parse_connection_config
from contribhub.types import MemberRole, OrganizationStatus
from contribhub.utils.slug import generate_slug, is_valid_slug

if TYPE_CHECKING:
    from contribhub.config.settings import Settings
    from contribhub.models.domain import MembershipRecord
    from contribhub.storage.repositories.organizations import CentralDirectory
    from contribhub.tenancy.provisioner import ConnectionProvisioner

logger = structlog.get_logger(__name__)

STATUS_DELETED = "deleted"


class OrganizationAdminService:
    """Super-admin operations against the central directory."""

    def __init__(
        self,
        directory: CentralDirectory,
        provisioner: ConnectionProvisioner,
        settings: Settings,
    ) -> None:
        self._directory = directory
        self._provisioner = provisioner
        self._settings = settings

    async def create_organization(
        self,
        name: str,
        connection_config: dict[str, Any],
        slug: str | None = None,
        seed_database: bool = True,
    ) -> OrganizationRecord:
        """Register a new organization and prepare its tenant database.

        The slug is derived from ``name`` unless given. The connection config
        is validated before anything is written; the tenant database is
        seeded before the directory record exists, so a half-created org is
        never resolvable.
        """
        name = name.strip()
        if not name:
            raise InvalidOrganizationError("Organization name is required")
        slug = slug or generate_slug(name)
        if not is_valid_slug(slug):
            raise InvalidOrganizationError(f"Invalid organization slug: {slug!r}")
        parse_connection_config(slug, connection_config)

        try:
            await self._directory.get_organization(slug)
        except NotFoundError:
            pass
        else:
            raise OrganizationExistsError(f"Organization slug already exists: {slug}")

        if seed_database:
            await self.initialize_tenant_database(slug, name, connection_config)

        record = OrganizationRecord(
            slug=slug,
            name=name,
            connection_config=connection_config,
            status=OrganizationStatus.ACTIVE,
        )
        created = await self._directory.create_organization(record)
        logger.info("organization_registered", slug=slug)
        return created

    async def initialize_tenant_database(
        self, slug: str, name: str, connection_config: dict[str, Any]
    ) -> None:
        """Create the tenant tables and default settings with a throwaway connection."""
        handle = await self._provisioner.provision(slug, connection_config)
        try:
            repo = TenantSettingsRepository(handle, slug=slug)
            await repo.initialize(
                {
                    "organization_name": name,
                    "fiscal_year_start": self._settings.default_fiscal_year_start,
                    "currency": self._settings.default_tenant_currency,
                }
            )
        finally:
            await self._provisioner.dispose(handle)

    async def update_organization(self, slug: str, updates: dict[str, Any]) -> OrganizationRecord:
        if "slug" in updates and updates["slug"] != slug:
            raise InvalidOrganizationError("Organization slug cannot be changed")
        unknown = set(updates) - UPDATABLE_FIELDS - {"slug"}
        if unknown:
            raise InvalidOrganizationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        if "name" in updates and not str(updates["name"]).strip():
            raise InvalidOrganizationError("Organization name is required")
        if "connection_config" in updates:
            parse_connection_config(slug, updates["connection_config"])
        if "status" in updates:
            updates = {**updates, "status": self._parse_status(updates["status"])}
        return await self._directory.update_organization(
            slug, {k: v for k, v in updates.items() if k != "slug"}
        )

    async def update_status(self, slug: str, status: str) -> OrganizationRecord | None:
        """Set an organization's status; ``"deleted"`` removes it entirely."""
        if status == STATUS_DELETED:
            await self._directory.delete_organization(slug)
            logger.info("organization_removed", slug=slug)
            return None
        return await self._directory.update_organization(
            slug, {"status": self._parse_status(status)}
        )

    async def get(self, slug: str) -> OrganizationRecord:
        return await self._directory.get_organization(slug)

    async def list_all(self) -> list[OrganizationRecord]:
        return await self._directory.list_all_organizations()

    async def list_for_user(self, user_id: str) -> list[OrganizationRecord]:
        """Organizations a user may access, sorted by display name."""
        organizations = await self._directory.list_organizations_for_user(user_id)
        return sorted(organizations, key=lambda org: org.name.lower())

    async def add_member(
        self, slug: str, user_id: str, email: str, role: MemberRole = MemberRole.VIEWER
    ) -> MembershipRecord:
        return await self._directory.grant_membership(user_id, slug, email=email, role=role)

    async def update_member_role(
        self, slug: str, user_id: str, role: MemberRole
    ) -> MembershipRecord:
        return await self._directory.update_membership_role(user_id, slug, role)

    async def remove_member(self, slug: str, user_id: str) -> bool:
        return await self._directory.revoke_membership(user_id, slug)

    async def list_members(self, slug: str) -> list[MembershipRecord]:
        return await self._directory.list_members(slug)

    @staticmethod
    def _parse_status(status: Any) -> OrganizationStatus:
        try:
            return OrganizationStatus(status)
        except ValueError as exc:
            raise InvalidOrganizationError(f"Unknown organization status: {status!r}") from exc
