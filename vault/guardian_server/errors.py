"""
Error types for the Guardian sync server.

This module defines the exception taxonomy shared by the storage core
and the HTTP layer:
- GuardianError: Base exception
- NotFoundError: Unknown tenant, store or record
- ConflictError: Duplicate tenant identity or storage location
- UnauthorizedError / ForbiddenError: Authentication collaborator's domain
- StorageError: SQLite I/O or engine-level failure
- ValidationError: Malformed input batch or document

Invariants:
    - All errors inherit from GuardianError
    - StorageError never carries engine internals to clients; the HTTP
      layer logs the message and returns a generic body
    - Partial batch application is never reported, only all or nothing
"""

from __future__ import annotations

from typing import Any


class GuardianError(Exception):
    """Base exception for all Guardian errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GUARDIAN_ERROR"
        self.details = details or {}


class NotFoundError(GuardianError):
    """Requested entity does not exist."""

    def __init__(self, message: str, code: str = "NOT_FOUND", **details: Any) -> None:
        super().__init__(message, code=code, details=details)


class TenantNotFoundError(NotFoundError):
    """Tenant is not present in the catalog."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(
            f"Tenant not found: {tenant_id}",
            code="TENANT_NOT_FOUND",
            tenant_id=tenant_id,
        )
        self.tenant_id = tenant_id


class StoreNotFoundError(NotFoundError):
    """Tenant store file does not exist on disk."""

    def __init__(self, location: str) -> None:
        super().__init__(
            f"Tenant store not found: {location}",
            code="STORE_NOT_FOUND",
            location=location,
        )
        self.location = location


class ConflictError(GuardianError):
    """Tenant identity or storage location already taken.

    Raised when:
    - A tenant id (human-chosen handle) is provisioned twice
    - A generated storage location collides with an existing one
    """

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, code="CONFLICT", details=details)


class UnauthorizedError(GuardianError):
    """Caller could not be authenticated."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, code="UNAUTHORIZED")


class ForbiddenError(GuardianError):
    """Caller is authenticated but not allowed to perform the operation."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message, code="FORBIDDEN")


class StorageError(GuardianError):
    """SQLite or filesystem failure.

    Raised when:
    - A transaction cannot begin or commit
    - A statement violates a constraint inside a batch
    - A store file cannot be opened
    """

    def __init__(self, message: str, location: str | None = None) -> None:
        super().__init__(message, code="STORAGE_ERROR", details={"location": location})
        self.location = location


class ValidationError(GuardianError):
    """Input failed validation."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details={"errors": errors or []})
        self.errors = errors or []
