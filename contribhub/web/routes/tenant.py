"""Tenant context API routes: resolve, inspect, clear and stream events."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from contribhub.config.settings import SESSION_HEADER
from contribhub.tenancy.features import FeatureNotReadyError
from contribhub.tenancy.session import SessionRegistry, TenantSession
from contribhub.web.dependencies import get_registry, get_session_id, get_tenant_session

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from contribhub.tenancy.events import TenantEvent

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tenant", tags=["tenant"])

_HEARTBEAT_INTERVAL = 15.0  # seconds


class ResolveRequest(BaseModel):
    location: str = Field(min_length=1, max_length=2048)


class SettingUpdate(BaseModel):
    value: str


def _current_view(session: TenantSession) -> dict[str, Any]:
    org = session.context.get_current_org()
    return {
        "session_id": session.session_id,
        "org": org.public_view() if org else None,
        "slug": org.slug if org else None,
        "connections": session.pool.active_slugs(),
    }


@router.post("/resolve")
async def resolve_route(
    body: ResolveRequest,
    session: TenantSession = Depends(get_tenant_session),
) -> dict[str, Any]:
    result = await session.resolver.resolve_route(body.location)
    return {
        "state": str(result.state),
        "slug": result.slug,
        "org": result.org.public_view() if result.org and result.succeeded else None,
        "message": result.message,
        "redirect_to": result.redirect_to,
        "error": type(result.error).__name__ if result.error else None,
        "trail": [str(state) for state in result.trail],
    }


@router.get("/current")
async def get_current(
    session: TenantSession = Depends(get_tenant_session),
) -> dict[str, Any]:
    return _current_view(session)


@router.delete("/current", status_code=204)
async def clear_current(
    session: TenantSession = Depends(get_tenant_session),
) -> None:
    await session.context.clear_current_org()


@router.delete("/session", status_code=204)
async def end_session(
    session_id: str | None = Depends(get_session_id),
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    """Tear down the caller's session and release its tenant connection."""
    if session_id is None or not await registry.end(session_id):
        raise HTTPException(status_code=404, detail="Unknown session")


@router.get("/settings")
async def get_tenant_settings(
    session: TenantSession = Depends(get_tenant_session),
) -> dict[str, str]:
    try:
        repo = session.features.get("settings")
    except FeatureNotReadyError as exc:
        raise HTTPException(status_code=409, detail="No organization is active") from exc
    return await repo.get_all()


@router.put("/settings/{key}")
async def put_tenant_setting(
    key: str,
    body: SettingUpdate,
    session: TenantSession = Depends(get_tenant_session),
) -> dict[str, str]:
    try:
        repo = session.features.get("settings")
    except FeatureNotReadyError as exc:
        raise HTTPException(status_code=409, detail="No organization is active") from exc
    await repo.set(key, body.value)
    return await repo.get_all()


@router.get("/events")
async def tenant_event_stream(
    request: Request,
    session: TenantSession = Depends(get_tenant_session),
) -> StreamingResponse:
    """Stream tenant lifecycle events as Server-Sent Events."""

    async def event_generator() -> AsyncGenerator[str, None]:
        q = session.events.open_stream()
        logger.info("sse_client_connected", session_id=session.session_id)

        try:
            # Late subscribers still learn which tenant is active.
            org = session.context.get_current_org()
            if org is not None:
                yield f"event: connected\ndata: {json.dumps({'slug': org.slug})}\n\n"

            while True:
                if await request.is_disconnected():
                    break

                try:
                    event: TenantEvent | None = await asyncio.wait_for(
                        q.get(), timeout=_HEARTBEAT_INTERVAL
                    )
                except TimeoutError:
                    yield ": heartbeat\n\n"
                    continue

                if event is None:
                    break
                yield event.to_sse()
        finally:
            session.events.close_stream(q)
            logger.info("sse_stream_closed", session_id=session.session_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
            SESSION_HEADER: session.session_id,
        },
    )
