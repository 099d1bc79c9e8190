"""
Cache documents written by the cache manager.
Each document carries `generated` and `version`; keys are camelCase on disk.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CacheDocument(CacheModel):
    generated: datetime = Field(default_factory=_utcnow)
    version: str = "1.0.0"


# ── installed.json ───────────────────────────────────────


class InstalledCapabilityItem(CacheModel):
    id: str
    name: str
    organization: str
    group: Optional[str] = None
    description: str = ""
    type: str
    entry_point: Optional[str] = None
    categories: list[str] = []
    tags: list[str] = []


class InstalledCapabilitiesCache(CacheDocument):
    count: int = 0
    capabilities: list[InstalledCapabilityItem] = []


# ── search_index.json ────────────────────────────────────


class SearchIndexItem(CacheModel):
    id: str
    name: str
    description: str = ""
    organization: str
    group: Optional[str] = None
    type: str = ""
    entry_point: Optional[str] = None
    categories: list[str] = []
    tags: list[str] = []
    search_terms: list[str] = []


class CapabilitySearchIndex(CacheDocument):
    total_capabilities: int = 0
    index: list[SearchIndexItem] = []


# ── organizations.json ───────────────────────────────────


class CachedOrganization(CacheModel):
    id: str
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    is_local_only: bool = False
    capability_count: int = 0


class OrganizationsCache(CacheDocument):
    count: int = 0
    organizations: list[CachedOrganization] = []


# ── metadata.json ────────────────────────────────────────


class CachedGroup(CacheModel):
    id: str
    organization_id: str
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    capability_count: int = 0


class CachedCapabilityMetadata(CacheModel):
    id: str
    name: str
    organization: str
    group: Optional[str] = None
    description: str = ""
    type: str
    is_installed: bool = True
    last_updated: datetime = Field(default_factory=_utcnow)
    categories: list[str] = []
    tags: list[str] = []


class CacheStatistics(CacheModel):
    total_capabilities: int = 0
    total_organizations: int = 0
    total_groups: int = 0
    installed_capabilities: int = 0


class CapabilityMetadataCache(CacheDocument):
    statistics: CacheStatistics = Field(default_factory=CacheStatistics)
    organizations: list[CachedOrganization] = []
    groups: list[CachedGroup] = []
    capabilities: list[CachedCapabilityMetadata] = []
