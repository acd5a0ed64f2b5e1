"""Domain-specific exceptions for the controle API.

These exceptions provide a clean separation between service-layer errors
and HTTP responses, avoiding string matching in routers.
"""

from typing import Any


class ControleAPIError(Exception):
    """Base exception for all controle API errors."""

    def __init__(self, message: str = "An error occurred", details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# =============================================================================
# External Service Errors (502)
# =============================================================================


class ExternalServiceError(ControleAPIError):
    """Base class for failures reported by the hosted backend."""

    pass


class DataStoreError(ExternalServiceError):
    """Raised when a table operation on the data store fails."""

    def __init__(self, message: str, table: str | None = None, status_code: int | None = None) -> None:
        details: dict[str, Any] = {}
        if table:
            details["table"] = table
        if status_code is not None:
            details["status_code"] = status_code
        self.table = table
        self.status_code = status_code
        super().__init__(message, details)


class IdentityProviderError(ExternalServiceError):
    """Raised when an identity-admin call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        details = {"status_code": status_code} if status_code is not None else {}
        super().__init__(message, details)


# =============================================================================
# Backup Errors
# =============================================================================


class BackupError(ControleAPIError):
    """Base class for backup and restore errors."""

    pass


class BackupReadError(BackupError):
    """Raised when a table cannot be read during export."""

    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f'Error reading table "{table}": {reason}', {"table": table})


class BackupWriteError(BackupError):
    """Raised when a fail-fast delete or chunked upsert fails during restore."""

    def __init__(self, table: str, reason: str, chunk: int | None = None) -> None:
        self.table = table
        self.reason = reason
        self.chunk = chunk
        details: dict[str, Any] = {"table": table}
        if chunk is None:
            message = f'Error clearing table "{table}": {reason}'
        else:
            message = f'Error inserting into table "{table}" (batch {chunk}): {reason}'
            details["chunk"] = chunk
        super().__init__(message, details)


class BackupValidationError(BackupError):
    """Raised when an untrusted snapshot document is rejected."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class BackupRestoreError(BackupError):
    """Raised when a restore aborts on the critical tier."""

    pass


# =============================================================================
# User Provisioning Errors
# =============================================================================


class ProvisioningError(ControleAPIError):
    """Raised when a single user cannot be created."""

    pass


class UserAlreadyExistsError(ProvisioningError):
    """Raised when the email exists in the identity provider but cannot be resolved."""

    def __init__(self, email: str | None = None) -> None:
        message = "Email already exists in the identity provider, but the account could not be located"
        details = {"email": email} if email else {}
        super().__init__(message, details)


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ControleAPIError):
    """Base class for request validation errors."""

    pass


# =============================================================================
# Authorization Errors (401/403)
# =============================================================================


class AuthenticationError(ControleAPIError):
    """Raised when the bearer token is missing or invalid."""

    pass


class AuthorizationError(ControleAPIError):
    """Raised when the caller is authenticated but not a manager."""

    pass
