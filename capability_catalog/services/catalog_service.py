"""
Catalog Service — high-level facade over one persistence backend.
Delegates to the backend and logs every mutation with the active mode.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from capability_catalog.config import Settings, get_settings
from capability_catalog.models.schemas import Capability, Organization, ValidationResult
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.factory import create_persistence_layer
from capability_catalog.persistence.mode import DarwinMode, LocalMode, RemoteMode

logger = logging.getLogger(__name__)


class CatalogService:
    """Orchestrates organization and capability management on one backend."""

    def __init__(
        self,
        layer: PersistenceLayer | None = None,
        mode: Union[LocalMode, RemoteMode, DarwinMode, dict[str, Any], None] = None,
        settings: Settings | None = None,
    ):
        if layer is None:
            layer = create_persistence_layer(mode or LocalMode(), settings or get_settings())
        self.layer = layer

    @property
    def mode_description(self) -> str:
        return self.layer.mode.description

    # ── Organizations ────────────────────────────────────

    def add_organization(self, organization: Organization, overwrite: bool = False) -> Organization:
        self.layer.create_organization(organization, overwrite=overwrite)
        logger.info(f"[{self.mode_description}] Organization saved: {organization.id}")
        return organization

    def organizations(self) -> list[Organization]:
        return self.layer.list_organizations()

    def remove_organization(self, organization_id: str) -> None:
        self.layer.remove_organization(organization_id)
        logger.info(f"[{self.mode_description}] Organization removed: {organization_id}")

    def has_organization(self, organization_id: str) -> bool:
        return self.layer.organization_exists(organization_id)

    # ── Capabilities ─────────────────────────────────────

    def add_capability(self, capability: Capability, overwrite: bool = False) -> Capability:
        self.layer.create_capability(capability, overwrite=overwrite)
        logger.info(
            f"[{self.mode_description}] Capability saved: {capability.organization}/{capability.name}"
        )
        return capability

    def capabilities(
        self, organization_id: str, include_children: bool | None = None
    ) -> list[Capability]:
        return self.layer.list_capabilities(organization_id, include_children=include_children)

    def remove_capability(self, capability_name: str, organization_id: str) -> None:
        self.layer.remove_capability(capability_name, organization_id)
        logger.info(
            f"[{self.mode_description}] Capability removed: {organization_id}/{capability_name}"
        )

    def has_capability(self, capability_name: str, organization_id: str) -> bool:
        return self.layer.capability_exists(capability_name, organization_id)

    # ── Validation ───────────────────────────────────────

    def validate_organization(self, organization: Organization) -> ValidationResult:
        return self.layer.validate_organization(organization)

    def validate_capability(self, capability: Capability) -> ValidationResult:
        return self.layer.validate_capability(capability)

    def close(self) -> None:
        self.layer.close()
