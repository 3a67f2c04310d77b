"""Organization directory and membership API routes."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field

from contribhub.admin.service import OrganizationAdminService
from contribhub.types import MemberRole
from contribhub.web.dependencies import get_admin_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["organizations"])


class CreateOrganizationRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    connection_config: dict[str, Any]
    slug: str | None = None


class UpdateOrganizationRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    connection_config: dict[str, Any] | None = None
    slug: str | None = None


class StatusRequest(BaseModel):
    status: str  # active | disabled | deleted


class MemberRequest(BaseModel):
    email: str = ""
    role: MemberRole = MemberRole.VIEWER


class RoleRequest(BaseModel):
    role: MemberRole


@router.get("/organizations")
async def list_organizations(
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> list[dict[str, Any]]:
    return [org.public_view() for org in await admin.list_all()]


@router.post("/organizations", status_code=201)
async def create_organization(
    body: CreateOrganizationRequest,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    org = await admin.create_organization(
        name=body.name, connection_config=body.connection_config, slug=body.slug
    )
    return org.public_view()


@router.get("/organizations/{slug}")
async def get_organization(
    slug: str,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    org = await admin.get(slug)
    return org.public_view()


@router.patch("/organizations/{slug}")
async def update_organization(
    slug: str,
    body: UpdateOrganizationRequest,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    org = await admin.update_organization(slug, body.model_dump(exclude_none=True))
    return org.public_view()


@router.put("/organizations/{slug}/status", response_model=None)
async def update_organization_status(
    slug: str,
    body: StatusRequest,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> Response | dict[str, Any]:
    org = await admin.update_status(slug, body.status)
    if org is None:
        return Response(status_code=204)
    return org.public_view()


@router.get("/organizations/{slug}/members")
async def list_members(
    slug: str,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in await admin.list_members(slug)]


@router.put("/organizations/{slug}/members/{user_id}")
async def add_member(
    slug: str,
    user_id: str,
    body: MemberRequest,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    membership = await admin.add_member(slug, user_id, email=body.email, role=body.role)
    return membership.model_dump(mode="json")


@router.patch("/organizations/{slug}/members/{user_id}")
async def update_member_role(
    slug: str,
    user_id: str,
    body: RoleRequest,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> dict[str, Any]:
    membership = await admin.update_member_role(slug, user_id, body.role)
    return membership.model_dump(mode="json")


@router.delete("/organizations/{slug}/members/{user_id}")
async def remove_member(
    slug: str,
    user_id: str,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> Response:
    await admin.remove_member(slug, user_id)
    return Response(status_code=204)


@router.get("/users/{user_id}/organizations")
async def list_user_organizations(
    user_id: str,
    admin: OrganizationAdminService = Depends(get_admin_service),
) -> list[dict[str, Any]]:
    return [org.public_view() for org in await admin.list_for_user(user_id)]
