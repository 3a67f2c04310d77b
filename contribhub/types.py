"""Enums and type aliases for ContribHub."""

from enum import StrEnum


class OrganizationStatus(StrEnum):
    ACTIVE = "active"
    DISABLED = "disabled"


class MemberRole(StrEnum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class TenantEventType(StrEnum):
    READY = "tenant:ready"
    CLEARED = "tenant:cleared"
    ERROR = "tenant:error"


class NavigationState(StrEnum):
    IDLE = "idle"
    SLUG_EXTRACTED = "slug_extracted"
    ORG_LOADED = "org_loaded"
    CONNECTION_ACTIVE = "connection_active"
    FAILED = "failed"
    SUPERSEDED = "superseded"
