"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from contribhub.config.settings import get_settings

if TYPE_CHECKING:
    from contribhub.tenancy.session import SessionRegistry

logger = structlog.get_logger(__name__)

VERSION = "0.1.0"


async def check_health(sessions: SessionRegistry) -> dict[str, object]:
    """Return application health status with a central store check."""
    settings = get_settings()
    result: dict[str, object] = {
        "status": "healthy",
        "version": VERSION,
        "directory": "database" if settings.use_database else "memory",
        "sessions": len(sessions),
    }

    if not settings.use_database:
        return result

    try:
        from sqlalchemy import text

        from contribhub.storage.database import get_engine

        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        result["status"] = "degraded"
        result["database"] = "unavailable"
    else:
        result["database"] = "connected"

    return result
