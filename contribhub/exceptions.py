"""Exception hierarchy for ContribHub."""


class ContribHubError(Exception):
    """Base exception for all ContribHub errors."""


class NotFoundError(ContribHubError):
    """Raised when an organization or membership has no record."""

    def __init__(self, message: str, slug: str | None = None) -> None:
        super().__init__(message)
        self.slug = slug


class AccessError(ContribHubError):
    """Raised when the central store denies read or write permission."""

    def __init__(self, message: str, slug: str | None = None) -> None:
        super().__init__(message)
        self.slug = slug


class ConfigError(ContribHubError):
    """Raised when configuration is invalid.

    Covers both application settings and a tenant's missing or malformed
    connection config.
    """

    def __init__(self, message: str, slug: str | None = None) -> None:
        super().__init__(message)
        self.slug = slug


class TransientIOError(ContribHubError):
    """Raised when the backing store or a tenant database is temporarily unreachable."""


class OrganizationExistsError(ContribHubError):
    """Raised when creating an organization whose slug is already taken."""


class InvalidOrganizationError(ContribHubError):
    """Raised when organization input fails validation."""
