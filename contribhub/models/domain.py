"""Inter-module data contracts (not persisted directly)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from contribhub.types import MemberRole, OrganizationStatus


class OrganizationRecord(BaseModel):
    """Tenant metadata as held by the central directory."""

    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    connection_config: dict[str, Any] | None = None  # opaque, backend-specific
    status: OrganizationStatus = OrganizationStatus.ACTIVE
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def public_view(self) -> dict[str, Any]:
        """Serialize without the connection credentials."""
        return self.model_dump(exclude={"connection_config"}, mode="json")


class MembershipRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    slug: str
    email: str = ""
    role: MemberRole = MemberRole.VIEWER


class TenantConnectionConfig(BaseModel):
    """Connection config accepted by the SQLAlchemy provisioner."""

    model_config = ConfigDict(extra="ignore")

    database_url: str = Field(min_length=1)
    echo: bool = False
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    ping: bool = True
