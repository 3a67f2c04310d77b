"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_org_id() -> str:
    return f"org_{uuid.uuid4().hex[:16]}"


# ---------------------------------------------------------------------------
# Central directory models
# ---------------------------------------------------------------------------


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    slug: str = Field(primary_key=True)
    id: str = Field(default_factory=_new_org_id, unique=True)
    name: str
    connection_config: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    status: str = Field(default="active")  # active | disabled
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class OrganizationMembership(SQLModel, table=True):
    __tablename__ = "organization_memberships"
    __table_args__ = (UniqueConstraint("user_id", "org_slug"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    org_slug: str = Field(foreign_key="organizations.slug", index=True)
    email: str = ""
    role: str = Field(default="viewer")  # admin | editor | viewer
    created_at: datetime = Field(default_factory=_utc_now)


CENTRAL_TABLES = [Organization.__table__, OrganizationMembership.__table__]


# ---------------------------------------------------------------------------
# Tenant database models (created inside each organization's own database)
# ---------------------------------------------------------------------------


class TenantSetting(SQLModel, table=True):
    __tablename__ = "tenant_settings"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=_utc_now)


TENANT_TABLES = [TenantSetting.__table__]
