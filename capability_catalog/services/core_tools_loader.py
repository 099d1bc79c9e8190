"""
Core Tools Loader — seeds the built-in Darwin AI tool catalog.

Two organizations (darwin-ai, darwin-ai-core) and the file system,
execution, planning and information tools are read from
seed_data/core_tools.json and created through a CatalogService.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from capability_catalog.errors import FileSystemError
from capability_catalog.models.schemas import Capability, Organization
from capability_catalog.services.catalog_service import CatalogService

logger = logging.getLogger(__name__)

# Default path to seed data (relative to this file)
_DATA_DIR = Path(__file__).parent / "seed_data"
CORE_TOOLS_FILE = "core_tools.json"


def _load_json(filename: str) -> Any:
    """Read a JSON file from the seed_data directory."""
    path = _DATA_DIR / filename
    if not path.exists():
        raise FileSystemError(f"Seed file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_core_tools() -> tuple[list[Organization], list[Capability]]:
    """Parse the seed file into organizations and capabilities."""
    data = _load_json(CORE_TOOLS_FILE)
    organizations = [Organization.model_validate(o) for o in data.get("organizations", [])]
    capabilities = [Capability.model_validate(c) for c in data.get("capabilities", [])]
    return organizations, capabilities


def seed_core_tools(service: CatalogService, overwrite: bool = False) -> list[Capability]:
    """
    Create the core organizations and tools.

    Without `overwrite`, records that already exist are left untouched and
    skipped. Returns the capabilities that were written.
    """
    organizations, capabilities = load_core_tools()

    for org in organizations:
        if not overwrite and service.has_organization(org.id):
            logger.info(f"Organization {org.id} already present, skipping")
            continue
        service.add_organization(org, overwrite=overwrite)

    created: list[Capability] = []
    for cap in capabilities:
        if not overwrite and service.has_capability(cap.name, cap.organization):
            logger.debug(f"Core tool {cap.name} already present, skipping")
            continue
        created.append(service.add_capability(cap, overwrite=overwrite))

    logger.info(f"Seeded {len(created)} core tools into {service.mode_description}")
    return created
