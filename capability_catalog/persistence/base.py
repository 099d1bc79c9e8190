"""
Persistence contract every backend satisfies.

Design:
  - Mutations validate, then check existence, then write; nothing is
    written before all checks pass.
  - Writes are relational first, file tree second, with no undo between
    the two.
  - Existence checks never raise.
  - Capability listing scope (direct vs. direct + declared children) is an
    explicit argument; `None` selects the backend's default.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from capability_catalog.config import Settings, get_settings
from capability_catalog.errors import OperationNotSupportedError, ValidationError
from capability_catalog.models.schemas import Capability, Organization, ValidationResult
from capability_catalog.persistence.mode import PersistenceMode
from capability_catalog.services.file_service import ORG_FILE
from capability_catalog.utils.naming import is_valid_identifier

if TYPE_CHECKING:
    from capability_catalog.models.cache import (
        CapabilityMetadataCache,
        CapabilitySearchIndex,
        InstalledCapabilitiesCache,
        OrganizationsCache,
    )
    from capability_catalog.services.cache_service import CacheManager

logger = logging.getLogger(__name__)

# file names living beside capability directories in an organization folder
RESERVED_NAMES = {ORG_FILE}


class PersistenceLayer(ABC):
    """Uniform create/list/remove/exists contract over the catalog."""

    mode: PersistenceMode
    default_include_children: bool = False

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.cache_manager: Optional["CacheManager"] = None

    # ── Contract ─────────────────────────────────────────

    @abstractmethod
    def create_organization(self, organization: Organization, overwrite: bool = False) -> None:
        ...

    @abstractmethod
    def create_capability(self, capability: Capability, overwrite: bool = False) -> None:
        ...

    @abstractmethod
    def list_organizations(self) -> list[Organization]:
        ...

    @abstractmethod
    def list_capabilities(
        self, organization_id: str, include_children: bool | None = None
    ) -> list[Capability]:
        ...

    @abstractmethod
    def remove_organization(self, organization_id: str) -> None:
        ...

    @abstractmethod
    def remove_capability(self, capability_name: str, organization_id: str) -> None:
        ...

    @abstractmethod
    def organization_exists(self, organization_id: str) -> bool:
        ...

    @abstractmethod
    def capability_exists(self, capability_name: str, organization_id: str) -> bool:
        ...

    def close(self) -> None:
        """Release backend resources. Backends with connections override."""

    # ── Validation ───────────────────────────────────────

    def validate_organization(self, organization: Organization) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        if not organization.id:
            errors.append("Organization ID is required")
        elif not is_valid_identifier(organization.id):
            errors.append(
                "Organization ID can only contain alphanumeric characters, hyphens, and underscores"
            )
        if not organization.name:
            errors.append("Organization name is required")
        if not organization.description:
            errors.append("Organization description is required")
        if organization.children and organization.id in organization.children:
            errors.append("Organization cannot list itself as a child")

        if organization.logo and (organization.png_logo or organization.svg_logo):
            warnings.append(
                "Both legacy 'logo' and new 'pngLogo'/'svgLogo' fields are present. "
                "Consider using only 'pngLogo' and 'svgLogo'"
            )

        return ValidationResult.from_messages(errors, warnings)

    def validate_capability(self, capability: Capability) -> ValidationResult:
        errors: list[str] = []

        if not capability.name:
            errors.append("Capability name is required")
        elif "/" in capability.name or "\\" in capability.name or capability.name in (".", ".."):
            errors.append("Capability name cannot contain path separators")
        elif capability.name.lower() in RESERVED_NAMES:
            errors.append(f"Capability name '{capability.name}' is reserved")
        if not capability.description:
            errors.append("Capability description is required")
        if not capability.organization:
            errors.append("Capability organization is required")
        elif not is_valid_identifier(capability.organization):
            errors.append(
                "Capability organization can only contain alphanumeric characters, hyphens, and underscores"
            )
        if not capability.entry_point:
            errors.append("Capability entry_point is required")

        for index, param in enumerate(capability.inputs):
            if not param.name:
                errors.append(f"Parameter {index} name is required")
            if not param.type:
                errors.append(f"Parameter {index} type is required")
            if not param.description:
                errors.append(f"Parameter {index} description is required")

        return ValidationResult.from_messages(errors)

    def _require_valid_organization(self, organization: Organization) -> None:
        result = self.validate_organization(organization)
        for warning in result.warnings:
            logger.warning(warning)
        if not result.is_valid:
            raise ValidationError(", ".join(result.errors))

    def _require_valid_capability(self, capability: Capability) -> None:
        result = self.validate_capability(capability)
        for warning in result.warnings:
            logger.warning(warning)
        if not result.is_valid:
            raise ValidationError(", ".join(result.errors))

    def _resolve_scope(self, include_children: bool | None) -> bool:
        return self.default_include_children if include_children is None else include_children

    # ── Cache management ─────────────────────────────────

    def _cache(self) -> "CacheManager":
        if self.cache_manager is None:
            raise OperationNotSupportedError(f"{type(self).__name__} has no cache manager")
        return self.cache_manager

    def _refresh(self, *projections: str) -> None:
        """Regenerate the named projections after a mutation."""
        if self.cache_manager is None:
            return
        refreshers = {
            "installed": self.cache_manager.refresh_installed_cache,
            "search": self.cache_manager.refresh_search_index,
            "organizations": self.cache_manager.refresh_organizations_cache,
            "metadata": self.cache_manager.refresh_metadata_cache,
        }
        for name in projections:
            refreshers[name]()

    def refresh_caches(self) -> None:
        self._cache().refresh_all_caches()

    def clear_caches(self) -> None:
        self._cache().clear_all_caches()

    def load_installed_capabilities_from_cache(self) -> Optional["InstalledCapabilitiesCache"]:
        return self._cache().load_installed_capabilities()

    def load_search_index_from_cache(self) -> Optional["CapabilitySearchIndex"]:
        return self._cache().load_search_index()

    def load_organizations_from_cache(self) -> Optional["OrganizationsCache"]:
        return self._cache().load_organizations()

    def load_metadata_from_cache(self) -> Optional["CapabilityMetadataCache"]:
        return self._cache().load_metadata_cache()
