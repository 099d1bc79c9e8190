"""
Cache Manager — derived JSON projections of the active backend.

Four documents live in the cache directory:
  installed.json      installed capabilities
  search_index.json   per-capability search terms
  organizations.json  organizations with capability counts
  metadata.json       statistics + organizations, groups, capabilities

Every refresh fully re-derives its document from the backend. Staleness is
the caller's concern: `is_cache_valid()` answers it, nothing here expires
automatically.

Item ids come from capability names alone; two organizations may hold an
item with the same id, told apart by the `organization` field.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from capability_catalog.errors import FileSystemError, PersistenceError
from capability_catalog.models.cache import (
    CacheDocument,
    CacheStatistics,
    CachedCapabilityMetadata,
    CachedGroup,
    CachedOrganization,
    CapabilityMetadataCache,
    CapabilitySearchIndex,
    InstalledCapabilitiesCache,
    InstalledCapabilityItem,
    OrganizationsCache,
    SearchIndexItem,
)
from capability_catalog.models.schemas import Capability, Organization
from capability_catalog.utils.naming import cache_item_id, search_terms

if TYPE_CHECKING:
    from capability_catalog.persistence.base import PersistenceLayer

logger = logging.getLogger(__name__)

DocT = TypeVar("DocT", bound=CacheDocument)

INSTALLED_FILE = "installed.json"
SEARCH_INDEX_FILE = "search_index.json"
ORGANIZATIONS_FILE = "organizations.json"
METADATA_FILE = "metadata.json"


class CacheManager:
    """Builds, persists, loads and clears the four cache documents."""

    def __init__(self, cache_directory: Path, persistence_layer: "PersistenceLayer"):
        self.cache_directory = Path(cache_directory)
        self.persistence_layer = persistence_layer
        self.settings = persistence_layer.settings
        self.version = self.settings.cache_schema_version

        self.installed_cache_file = self.cache_directory / INSTALLED_FILE
        self.search_index_file = self.cache_directory / SEARCH_INDEX_FILE
        self.organizations_cache_file = self.cache_directory / ORGANIZATIONS_FILE
        self.metadata_cache_file = self.cache_directory / METADATA_FILE

        try:
            self.cache_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create cache directory {self.cache_directory}: {e}")

    @property
    def cache_files(self) -> list[Path]:
        return [
            self.installed_cache_file,
            self.search_index_file,
            self.organizations_cache_file,
            self.metadata_cache_file,
        ]

    # ── Generation ───────────────────────────────────────

    def refresh_installed_cache(self) -> InstalledCapabilitiesCache:
        capabilities = self._all_capabilities()
        document = InstalledCapabilitiesCache(
            version=self.version,
            count=len(capabilities),
            capabilities=[
                InstalledCapabilityItem(
                    id=cache_item_id(cap.name),
                    name=cap.name,
                    organization=cap.organization,
                    group=cap.group,
                    description=cap.description,
                    type=cap.type,
                    entry_point=cap.entry_point,
                )
                for cap in capabilities
            ],
        )
        self._save(document, self.installed_cache_file)
        return document

    def refresh_search_index(self) -> CapabilitySearchIndex:
        capabilities = self._all_capabilities()
        document = CapabilitySearchIndex(
            version=self.version,
            total_capabilities=len(capabilities),
            index=[
                SearchIndexItem(
                    id=cache_item_id(cap.name),
                    name=cap.name,
                    description=cap.description,
                    organization=cap.organization,
                    group=cap.group,
                    type=cap.type,
                    entry_point=cap.entry_point,
                    search_terms=self._search_terms(cap),
                )
                for cap in capabilities
            ],
        )
        self._save(document, self.search_index_file)
        return document

    def refresh_organizations_cache(self) -> OrganizationsCache:
        organizations = self.persistence_layer.list_organizations()
        cached = [self._cached_organization(org) for org in organizations]
        document = OrganizationsCache(
            version=self.version,
            count=len(cached),
            organizations=cached,
        )
        self._save(document, self.organizations_cache_file)
        return document

    def refresh_metadata_cache(self) -> CapabilityMetadataCache:
        capabilities = self._all_capabilities()
        organizations = self.persistence_layer.list_organizations()
        groups = self._groups(capabilities)

        document = CapabilityMetadataCache(
            version=self.version,
            statistics=CacheStatistics(
                total_capabilities=len(capabilities),
                total_organizations=len(organizations),
                total_groups=len(groups),
                # every capability returned by a backend listing is installed
                installed_capabilities=len(capabilities),
            ),
            organizations=[self._cached_organization(org) for org in organizations],
            groups=groups,
            capabilities=[
                CachedCapabilityMetadata(
                    id=cache_item_id(cap.name),
                    name=cap.name,
                    organization=cap.organization,
                    group=cap.group,
                    description=cap.description,
                    type=cap.type,
                    is_installed=True,
                )
                for cap in capabilities
            ],
        )
        self._save(document, self.metadata_cache_file)
        return document

    def refresh_all_caches(self) -> None:
        """Regenerate all four documents, one after another."""
        self.refresh_installed_cache()
        self.refresh_search_index()
        self.refresh_organizations_cache()
        self.refresh_metadata_cache()
        logger.info("All caches refreshed")

    # ── Loading ──────────────────────────────────────────

    def load_installed_capabilities(self) -> Optional[InstalledCapabilitiesCache]:
        return self._load(self.installed_cache_file, InstalledCapabilitiesCache)

    def load_search_index(self) -> Optional[CapabilitySearchIndex]:
        return self._load(self.search_index_file, CapabilitySearchIndex)

    def load_organizations(self) -> Optional[OrganizationsCache]:
        return self._load(self.organizations_cache_file, OrganizationsCache)

    def load_metadata_cache(self) -> Optional[CapabilityMetadataCache]:
        return self._load(self.metadata_cache_file, CapabilityMetadataCache)

    # ── Validity / clearing ──────────────────────────────

    def is_cache_valid(self, file: Path | str, max_age: float | None = None) -> bool:
        """True when the file exists and was written less than `max_age` seconds ago."""
        path = Path(file)
        if not path.is_absolute() and path.parent == Path("."):
            path = self.cache_directory / path
        if max_age is None:
            max_age = self.settings.cache_max_age_seconds

        try:
            modified = path.stat().st_mtime
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error checking cache validity for {path}: {e}")
            return False
        return (time.time() - modified) < max_age

    def clear_all_caches(self) -> None:
        """Best-effort delete of every cache file."""
        for path in self.cache_files:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete cache file {path}: {e}")
        logger.info("All caches cleared")

    # ── Helpers ──────────────────────────────────────────

    def _save(self, document: CacheDocument, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(document.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        except OSError as e:
            raise FileSystemError(f"Failed to write cache {path.name}: {e}") from e
        logger.debug(f"Cache saved: {path.name}")

    def _load(self, path: Path, model_cls: type[DocT]) -> Optional[DocT]:
        if not path.exists():
            return None
        try:
            return model_cls.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise FileSystemError(f"Failed to read cache {path.name}: {e}") from e
        except PydanticValidationError as e:
            raise FileSystemError(f"Corrupt cache {path.name}: {e}") from e

    def _all_capabilities(self) -> list[Capability]:
        """Every capability, gathered organization by organization (direct scope only)."""
        capabilities: list[Capability] = []
        for org in self.persistence_layer.list_organizations():
            capabilities.extend(
                self.persistence_layer.list_capabilities(org.id, include_children=False)
            )
        return capabilities

    def _capability_count(self, organization_id: str) -> int:
        try:
            return len(self.persistence_layer.list_capabilities(organization_id, include_children=False))
        except PersistenceError as e:
            logger.error(f"Error counting capabilities for {organization_id}: {e}")
            return 0

    def _cached_organization(self, org: Organization) -> CachedOrganization:
        return CachedOrganization(
            id=org.id,
            name=org.name,
            description=org.description,
            logo_url=org.primary_logo,
            is_local_only="local" in org.types and "remote" not in org.types,
            capability_count=self._capability_count(org.id),
        )

    @staticmethod
    def _groups(capabilities: list[Capability]) -> list[CachedGroup]:
        """Groups are any capability group distinct from its organization."""
        groups: dict[tuple[str, str], CachedGroup] = {}
        for cap in capabilities:
            if not cap.group or cap.group == cap.organization:
                continue
            key = (cap.organization, cap.group)
            if key not in groups:
                groups[key] = CachedGroup(
                    id=cap.group,
                    organization_id=cap.organization,
                    name=cap.group,
                )
            groups[key].capability_count += 1
        return list(groups.values())

    @staticmethod
    def _search_terms(cap: Capability) -> list[str]:
        return search_terms(
            cap.name,
            cap.description,
            [cap.organization],
            [cap.group or ""],
            [cap.type],
            [param.name for param in cap.inputs],
        )
