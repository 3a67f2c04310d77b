"""FastAPI dependency injection and shared state."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi import Depends, Header, Request, Response

from contribhub.config.settings import SESSION_HEADER, Settings, get_settings
from contribhub.storage.repositories.organizations import (
    DatabaseCentralDirectory,
    InMemoryCentralDirectory,
)

if TYPE_CHECKING:
    from contribhub.admin.service import OrganizationAdminService
    from contribhub.storage.repositories.organizations import CentralDirectory
    from contribhub.tenancy.session import SessionRegistry, TenantSession

logger = structlog.get_logger(__name__)


def create_directory(settings: Settings | None = None) -> CentralDirectory:
    """Create the appropriate central directory based on settings."""
    settings = settings or get_settings()
    if settings.use_database:
        from contribhub.storage.database import get_engine

        return DatabaseCentralDirectory(get_engine())
    logger.info("central_directory_in_memory")
    return InMemoryCentralDirectory()


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_admin_service(request: Request) -> OrganizationAdminService:
    return request.app.state.admin


def get_session_id(x_session_id: str | None = Header(default=None)) -> str | None:
    """The caller's ``X-Session-ID``, or None when absent or blank."""
    return (x_session_id or "").strip() or None


async def get_tenant_session(
    request: Request,
    response: Response,
    session_id: str | None = Depends(get_session_id),
) -> TenantSession:
    """Resolve the caller's tenant session.

    Callers without an id get a fresh session; its id is returned in the
    ``X-Session-ID`` response header and must be sent back on later requests.
    """
    if session_id is None:
        session_id = uuid.uuid4().hex
        logger.info("tenant_session_issued", session_id=session_id)
    response.headers[SESSION_HEADER] = session_id
    structlog.contextvars.bind_contextvars(session_id=session_id)
    return get_registry(request).get_or_create(session_id)
