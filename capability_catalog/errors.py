"""
Persistence errors raised by every backend.

Validation and existence errors are raised before any side effect.
`DatabaseError` / `FileSystemError` may follow a partially completed write;
callers should re-check existence before retrying.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Base class for catalog persistence failures."""

    template = "Persistence error: {}"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(self.template.format(detail))


class InvalidModeError(PersistenceError):
    template = "Invalid persistence mode: {}"


class AlreadyExistsError(PersistenceError):
    template = "'{}' already exists"


class OrganizationExistsError(AlreadyExistsError):
    template = "Organization '{}' already exists"


class CapabilityExistsError(AlreadyExistsError):
    template = "Capability '{}' already exists"


class NotFoundError(PersistenceError):
    template = "'{}' not found"


class OrganizationNotFoundError(NotFoundError):
    template = "Organization '{}' not found"


class CapabilityNotFoundError(NotFoundError):
    template = "Capability '{}' not found"


class ValidationError(PersistenceError):
    template = "Validation error: {}"


class DatabaseError(PersistenceError):
    template = "Database error: {}"


class FileSystemError(PersistenceError):
    template = "File system error: {}"


class PermissionDeniedError(PersistenceError):
    template = "Permission denied: {}"


class OperationNotSupportedError(PersistenceError):
    template = "Operation not supported: {}"
