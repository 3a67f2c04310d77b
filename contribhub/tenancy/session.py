"""Top-level owner of one browsing session's tenant state."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from contribhub.storage.repositories.tenant_settings import TenantSettingsRepository
from contribhub.tenancy.context import TenantContextManager
from contribhub.tenancy.events import TenantEventBus
from contribhub.tenancy.features import FeatureRegistry
from contribhub.tenancy.pool import TenantConnectionPool
from contribhub.tenancy.resolver import RouteResolver

if TYPE_CHECKING:
    from contribhub.config.settings import Settings
    from contribhub.storage.repositories.organizations import CentralDirectory
    from contribhub.tenancy.provisioner import ConnectionProvisioner

logger = structlog.get_logger(__name__)


class TenantSession:
    """Wires directory, pool, context, resolver and features for one session."""

    def __init__(
        self,
        session_id: str,
        directory: CentralDirectory,
        provisioner: ConnectionProvisioner,
        login_path: str = "/login",
        directory_path: str = "/organizations",
    ) -> None:
        self.session_id = session_id
        self.pool = TenantConnectionPool(provisioner)
        self.events = TenantEventBus()
        self.context = TenantContextManager(directory, self.pool, self.events)
        self.resolver = RouteResolver(
            self.context, login_path=login_path, directory_path=directory_path
        )
        self.features = FeatureRegistry(self.context)
        self.features.register("settings", TenantSettingsRepository.for_tenant)

    async def close(self) -> None:
        """Clear the context and release every pooled connection."""
        await self.context.clear_current_org()
        await self.features.close()
        await self.pool.release_all()
        self.events.shutdown_streams()
        logger.info("tenant_session_closed", session_id=self.session_id)


class SessionRegistry:
    """Maps client session ids to their ``TenantSession``."""

    def __init__(
        self,
        directory: CentralDirectory,
        provisioner: ConnectionProvisioner,
        settings: Settings,
    ) -> None:
        self.directory = directory
        self._provisioner = provisioner
        self._settings = settings
        self._sessions: dict[str, TenantSession] = {}

    def get_or_create(self, session_id: str) -> TenantSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = TenantSession(
                session_id,
                self.directory,
                self._provisioner,
                login_path=self._settings.login_path,
                directory_path=self._settings.directory_path,
            )
            self._sessions[session_id] = session
            logger.info("tenant_session_created", session_id=session_id)
        return session

    async def end(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.end(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
