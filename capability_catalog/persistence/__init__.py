"""Persistence — mode selector, backends, factory and error taxonomy."""

from capability_catalog.errors import (
    AlreadyExistsError,
    CapabilityExistsError,
    CapabilityNotFoundError,
    DatabaseError,
    FileSystemError,
    InvalidModeError,
    NotFoundError,
    OperationNotSupportedError,
    OrganizationExistsError,
    OrganizationNotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.darwin_layer import DarwinPersistenceLayer
from capability_catalog.persistence.factory import create_persistence_layer, parse_mode
from capability_catalog.persistence.local_layer import LocalPersistenceLayer
from capability_catalog.persistence.mode import DarwinMode, LocalMode, PersistenceMode, RemoteMode
from capability_catalog.persistence.remote_layer import RemotePersistenceLayer
from capability_catalog.persistence.sqlite_client import SQLiteClient

__all__ = [
    "PersistenceLayer",
    "LocalPersistenceLayer",
    "DarwinPersistenceLayer",
    "RemotePersistenceLayer",
    "SQLiteClient",
    "PersistenceMode",
    "LocalMode",
    "RemoteMode",
    "DarwinMode",
    "create_persistence_layer",
    "parse_mode",
    "PersistenceError",
    "InvalidModeError",
    "AlreadyExistsError",
    "OrganizationExistsError",
    "CapabilityExistsError",
    "NotFoundError",
    "OrganizationNotFoundError",
    "CapabilityNotFoundError",
    "ValidationError",
    "DatabaseError",
    "FileSystemError",
    "PermissionDeniedError",
    "OperationNotSupportedError",
]
