"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contribhub.admin.service import OrganizationAdminService
from contribhub.config.logging import setup_logging
from contribhub.config.settings import SESSION_HEADER, get_settings
from contribhub.exceptions import (
    AccessError,
    ConfigError,
    ContribHubError,
    InvalidOrganizationError,
    NotFoundError,
    OrganizationExistsError,
    TransientIOError,
)
from contribhub.tenancy.provisioner import SQLAlchemyProvisioner
from contribhub.tenancy.session import SessionRegistry
from contribhub.web.dependencies import create_directory, get_registry
from contribhub.web.health import VERSION, check_health
from contribhub.web.middleware import RequestIDMiddleware
from contribhub.web.routes.organizations import router as organizations_router
from contribhub.web.routes.tenant import router as tenant_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from contribhub.storage.repositories.organizations import CentralDirectory
    from contribhub.tenancy.provisioner import ConnectionProvisioner

logger = structlog.get_logger(__name__)

# Access errors are reported as 404 so callers cannot tell the org exists.
_STATUS_BY_ERROR: list[tuple[type[ContribHubError], int, str]] = [
    (NotFoundError, 404, ""),
    (AccessError, 404, "Organization not found"),
    (OrganizationExistsError, 409, ""),
    (InvalidOrganizationError, 422, ""),
    (ConfigError, 422, ""),
    (TransientIOError, 503, "Service temporarily unavailable"),
]


def _error_response(exc: ContribHubError) -> JSONResponse:
    for error_type, status_code, public_detail in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            detail = public_detail or str(exc)
            return JSONResponse(status_code=status_code, content={"detail": detail})
    logger.error("unhandled_contribhub_error", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


def create_app(
    directory: CentralDirectory | None = None,
    provisioner: ConnectionProvisioner | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    if directory is None:
        directory = create_directory(settings)
    if provisioner is None:
        provisioner = SQLAlchemyProvisioner(ping=settings.tenant_ping_on_connect)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.use_database:
            from contribhub.storage.database import init_db

            await init_db()
        yield
        await app.state.sessions.close_all()
        logger.info("app_shutdown")

    app = FastAPI(
        title="ContribHub",
        description="Multi-tenant contribution management",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.sessions = SessionRegistry(directory, provisioner, settings)
    app.state.admin = OrganizationAdminService(directory, provisioner, settings)

    @app.exception_handler(ContribHubError)
    async def contribhub_error_handler(request: Request, exc: ContribHubError) -> JSONResponse:
        logger.info(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(exc)

    # Middleware order: last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", SESSION_HEADER],
        expose_headers=["X-Request-ID", SESSION_HEADER],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health_check(
        sessions: SessionRegistry = Depends(get_registry),
    ) -> dict[str, object]:
        return await check_health(sessions)

    app.include_router(organizations_router)
    app.include_router(tenant_router)

    logger.info("app_created", directory=type(directory).__name__)
    return app
