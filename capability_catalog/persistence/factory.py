"""
Persistence factory — validate a mode and build the matching backend.

Usage:
    layer = create_persistence_layer(LocalMode(), settings)
    layer = create_persistence_layer({"kind": "remote", "capabilities_store_path": "~/capabilities-store"})
"""

from __future__ import annotations

import logging
from typing import Any, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from capability_catalog.config import Settings, get_settings
from capability_catalog.errors import InvalidModeError, ValidationError
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.darwin_layer import DarwinPersistenceLayer
from capability_catalog.persistence.local_layer import LocalPersistenceLayer
from capability_catalog.persistence.mode import DarwinMode, LocalMode, PersistenceMode, RemoteMode
from capability_catalog.persistence.remote_layer import RemotePersistenceLayer

logger = logging.getLogger(__name__)

_mode_adapter: TypeAdapter = TypeAdapter(PersistenceMode)


def parse_mode(value: Union[LocalMode, RemoteMode, DarwinMode, dict[str, Any]]) -> PersistenceMode:
    """Accept a mode instance or its dict form ({"kind": ...})."""
    if isinstance(value, (LocalMode, RemoteMode, DarwinMode)):
        return value
    try:
        return _mode_adapter.validate_python(value)
    except PydanticValidationError as e:
        raise InvalidModeError(str(value)) from e


def create_persistence_layer(
    mode: Union[LocalMode, RemoteMode, DarwinMode, dict[str, Any]],
    settings: Settings | None = None,
) -> PersistenceLayer:
    """
    Validate `mode` against the filesystem and construct its backend.

    Warnings are logged; any error raises ValidationError before a backend
    is built.
    """
    settings = settings or get_settings()
    mode = parse_mode(mode)

    result = mode.check(settings)
    for warning in result.warnings:
        logger.warning(warning)
    if not result.is_valid:
        raise ValidationError(", ".join(result.errors))

    if isinstance(mode, LocalMode):
        layer: PersistenceLayer = LocalPersistenceLayer(settings)
    elif isinstance(mode, RemoteMode):
        layer = RemotePersistenceLayer(mode.capabilities_store_path, settings)
    elif isinstance(mode, DarwinMode):
        layer = DarwinPersistenceLayer(settings)
    else:
        raise InvalidModeError(repr(mode))

    logger.info(f"Persistence layer ready: {mode.description}")
    return layer
