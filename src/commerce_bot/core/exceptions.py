"""
Errors raised by credential resolution and the installation lifecycle.

Callers map these onto user-facing replies: a ``NotFoundError`` becomes a guided
setup message, an ``AuthError`` asks a tenant admin to re-authorize, and a
``TransientError`` means the whole command may be retried.
"""


class CommerceBotError(Exception):
    """Base class for all commerce-bot errors."""

    def __init__(self, message: str, tenant_id: str | None = None) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id


class NotFoundError(CommerceBotError):
    """No installation or commerce credentials exist for the tenant."""


class AuthError(CommerceBotError):
    """Credentials were rejected or the refresh token was revoked."""

    def __init__(
        self, message: str, tenant_id: str | None = None, error_code: str | None = None
    ) -> None:
        super().__init__(message, tenant_id)
        self.error_code = error_code


class TransientError(CommerceBotError):
    """The store or the authorization server is unreachable."""


class DuplicateInstallationError(CommerceBotError):
    """An installation record already exists for the tenant."""


def status_code_for(error: CommerceBotError) -> int:
    """HTTP status used when an error reaches an API endpoint."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, DuplicateInstallationError):
        return 409
    if isinstance(error, TransientError):
        return 503
    return 500
