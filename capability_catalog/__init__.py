"""
Capability Catalog — organizations and capabilities over interchangeable
persistence backends (Local, Remote snapshot, Darwin-native), with derived
JSON cache projections.
"""

from capability_catalog.config import Settings, get_settings
from capability_catalog.persistence import (
    DarwinMode,
    DarwinPersistenceLayer,
    LocalMode,
    LocalPersistenceLayer,
    PersistenceLayer,
    RemoteMode,
    RemotePersistenceLayer,
    create_persistence_layer,
)
from capability_catalog.services.catalog_service import CatalogService

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "PersistenceLayer",
    "LocalPersistenceLayer",
    "DarwinPersistenceLayer",
    "RemotePersistenceLayer",
    "LocalMode",
    "RemoteMode",
    "DarwinMode",
    "create_persistence_layer",
    "CatalogService",
]
