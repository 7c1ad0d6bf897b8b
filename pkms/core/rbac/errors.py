"""Exceptions raised by the authorization core."""

from typing import Any, Optional


class AuthzError(Exception):
    """Base class for authorization core errors."""


class InvalidArgumentError(AuthzError):
    """Raised when an argument fails validation."""

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid argument: {field} must not be empty")
        self.field = field


class ReferentialError(AuthzError):
    """Raised when an operation would violate a catalog constraint."""

    def __init__(self, message: str, entity: str, identifier: Any = None):
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class NotFoundError(ReferentialError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} {identifier} not found", entity, identifier)


class ConflictError(ReferentialError):
    """Raised when a uniqueness constraint would be broken."""


class ProtectedEntityError(ReferentialError):
    """Raised when an entity cannot be changed in its current state."""


class PersistenceError(AuthzError):
    """Raised when the policy store cannot read or write durable storage."""
