"""
Darwin-native persistence layer.

Writes the host application's exact schema into <store_root>/installed.db
so capabilities are visible to it without conversion:

  - capability id is "<organization>.<name>"
  - capability directories are kebab-cased ("Read File" → read-file)
  - inputs / outputs / auth_type live in columns, installed_at marks install
  - installation_metadata['last_updated'] is bumped on every write
"""

from __future__ import annotations

import json
import logging
import time
from typing import Optional

from capability_catalog.config import Settings
from capability_catalog.errors import (
    CapabilityExistsError,
    CapabilityNotFoundError,
    FileSystemError,
    OrganizationExistsError,
    OrganizationNotFoundError,
    PersistenceError,
    ValidationError,
)
from capability_catalog.models.enums import CapabilityType
from capability_catalog.models.schemas import (
    Capability,
    CapabilityOutput,
    Organization,
    Parameter,
)
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.local_layer import (
    ORGANIZATIONS_TABLE,
    decode_json_column,
    parse_auth_type,
)
from capability_catalog.persistence.mode import DarwinMode
from capability_catalog.persistence.sqlite_client import SQLiteClient
from capability_catalog.services.cache_service import CacheManager
from capability_catalog.services.file_service import FileService
from capability_catalog.utils.naming import is_valid_identifier, kebab_case

logger = logging.getLogger(__name__)

SCHEMA = ORGANIZATIONS_TABLE + """
CREATE TABLE IF NOT EXISTS capabilities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    type TEXT,
    organization_id TEXT NOT NULL,
    entry_point TEXT,
    inputs TEXT,
    outputs TEXT,
    auth_type TEXT,
    installed_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    path TEXT NOT NULL,
    FOREIGN KEY (organization_id) REFERENCES organizations(id)
);

CREATE TABLE IF NOT EXISTS installation_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_capabilities_org ON capabilities(organization_id);
"""

FUNCTION_STUB = """//
//  {entry_point}.swift
//  {name}
//

import Foundation

/// {description}
class {entry_point}: Capability {{

    override func execute(inputs: [String: Any]) async throws -> [String: Any] {{
        return ["result": "Not implemented"]
    }}
}}
"""

CORE_TOOL_MARKER = """This capability is built directly into Darwin AI.
Entry Point: {entry_point}
Implementation: /darwinAI/Services/CoreTools/Capabilities/{entry_point}.swift
"""

CORE_TOOL_STUB = """#!/usr/bin/swift
//
//  Core Tool: {name}
//  Entry Point: {entry_point}
//
//  This is a built-in core capability of Darwin AI.
//  The actual implementation is compiled into the Darwin AI application.
//

import Foundation

print("{{")
print("  \\"error\\": \\"This is a built-in core tool that runs inside Darwin AI.\\",")
print("  \\"type\\": \\"core\\",")
print("  \\"name\\": \\"{name}\\",")
print("  \\"entry_point\\": \\"{entry_point}\\"")
print("}}")
"""


def darwin_capability_id(organization_id: str, capability_name: str) -> str:
    return f"{organization_id}.{capability_name}"


class DarwinPersistenceLayer(PersistenceLayer):
    """Writable backend speaking the host application's schema."""

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.mode = DarwinMode()

        self.store_directory = self.settings.store_path
        self.repository_directory = self.store_directory / "repository"
        self.cache_directory = self.store_directory / "cache"
        self.database_path = self.store_directory / "installed.db"

        try:
            self.store_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileSystemError(f"Cannot create {self.store_directory}: {e}") from e
        self.files = FileService(self.repository_directory)

        self.db = SQLiteClient(self.database_path, journal_mode=self.settings.sqlite_journal_mode)
        self.db.connect()
        self.db.executescript(SCHEMA)

        self.cache_manager = CacheManager(self.cache_directory, self)
        logger.info(f"DarwinPersistenceLayer initialized at: {self.database_path}")

    def close(self) -> None:
        self.db.close()

    # ── Organizations ────────────────────────────────────

    def create_organization(self, organization: Organization, overwrite: bool = False) -> None:
        self._require_valid_organization(organization)
        if not overwrite and self.organization_exists(organization.id):
            raise OrganizationExistsError(organization.id)

        org_dir = self.files.organization_dir(organization.id)
        metadata = {
            "types": organization.types,
            "tags": organization.tags or [],
            "children": organization.children or [],
            "path": str(org_dir),
            "pngLogo": organization.png_logo,
            "svgLogo": organization.svg_logo,
        }
        now = int(time.time())
        insert = (
            "INSERT INTO organizations "
            "(id, name, description, logo_url, is_installed, is_local_only, created_at, updated_at, metadata_json) "
            "VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?)"
        )
        if overwrite:
            insert += (
                " ON CONFLICT(id) DO UPDATE SET name = excluded.name, description = excluded.description,"
                " logo_url = excluded.logo_url, is_installed = 1, is_local_only = excluded.is_local_only,"
                " updated_at = excluded.updated_at, metadata_json = excluded.metadata_json"
            )

        with self.db.transaction():
            self.db.execute(
                insert,
                (
                    organization.id,
                    organization.name,
                    organization.description,
                    organization.logo,
                    int(organization.is_local_only),
                    now,
                    now,
                    json.dumps(metadata),
                ),
            )
            self._touch_last_updated()

        self.files.write_organization(organization.id, organization.to_store_format())
        logger.info(f"Created organization: {organization.id}")

        self._refresh("organizations", "metadata")

    def create_group(self, organization_id: str, group_id: str, group: Organization) -> None:
        """Write a group directory with an org.json that names its parent."""
        if not is_valid_identifier(group_id):
            raise ValidationError(
                "Group ID can only contain alphanumeric characters, hyphens, and underscores"
            )
        self._require_valid_organization(group)
        if not self.organization_exists(organization_id):
            raise OrganizationNotFoundError(organization_id)

        document = {k: v for k, v in group.to_store_format().items() if v is not None}
        document["parent"] = organization_id
        self.files.write_json(
            self.files.capability_dir(organization_id, group_id) / "org.json", document
        )
        logger.info(f"Created group: {group_id} in organization: {organization_id}")

    def list_organizations(self) -> list[Organization]:
        rows = self.db.fetch_all(
            "SELECT * FROM organizations WHERE is_installed = 1 ORDER BY name ASC"
        )
        organizations = []
        for row in rows:
            metadata = decode_json_column(row["metadata_json"], {})
            organizations.append(
                Organization(
                    id=row["id"],
                    name=row["name"],
                    description=row["description"] or "",
                    logo=row["logo_url"],
                    png_logo=metadata.get("pngLogo"),
                    svg_logo=metadata.get("svgLogo"),
                    types=metadata.get("types") or ["local"],
                    children=metadata.get("children") or None,
                    tags=metadata.get("tags") or None,
                    is_installed=bool(row["is_installed"]),
                    is_local_only=bool(row["is_local_only"]),
                )
            )
        return organizations

    def remove_organization(self, organization_id: str) -> None:
        if not self.organization_exists(organization_id):
            raise OrganizationNotFoundError(organization_id)

        with self.db.transaction():
            self.db.execute("DELETE FROM capabilities WHERE organization_id = ?", (organization_id,))
            self.db.execute("DELETE FROM organizations WHERE id = ?", (organization_id,))
            self._touch_last_updated()

        self.files.remove_organization(organization_id)
        logger.info(f"Removed organization: {organization_id}")

        self._refresh("installed", "search", "organizations", "metadata")

    def organization_exists(self, organization_id: str) -> bool:
        try:
            row = self.db.fetch_one("SELECT id FROM organizations WHERE id = ?", (organization_id,))
        except PersistenceError as e:
            logger.debug(f"organization_exists({organization_id}) failed: {e}")
            return False
        return row is not None

    # ── Capabilities ─────────────────────────────────────

    def create_capability(self, capability: Capability, overwrite: bool = False) -> None:
        self._require_valid_capability(capability)
        if not self.organization_exists(capability.organization):
            raise OrganizationNotFoundError(capability.organization)
        if not overwrite and self.capability_exists(capability.name, capability.organization):
            raise CapabilityExistsError(capability.name)
        clash = self._directory_owner(capability.name, capability.organization)
        if clash is not None:
            raise CapabilityExistsError(f"{clash} (directory {kebab_case(capability.name)})")

        capability_id = darwin_capability_id(capability.organization, capability.name)
        cap_dir = self.files.capability_dir(capability.organization, kebab_case(capability.name))

        insert = (
            "INSERT INTO capabilities (id, name, description, type, organization_id, entry_point,"
            " inputs, outputs, auth_type, installed_at, path)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP, ?)"
        )
        if overwrite:
            insert += (
                " ON CONFLICT(id) DO UPDATE SET description = excluded.description, type = excluded.type,"
                " entry_point = excluded.entry_point, inputs = excluded.inputs, outputs = excluded.outputs,"
                " auth_type = excluded.auth_type, installed_at = CURRENT_TIMESTAMP, path = excluded.path"
            )

        with self.db.transaction():
            self.db.execute(
                insert,
                (
                    capability_id,
                    capability.name,
                    capability.description,
                    capability.type,
                    capability.organization,
                    capability.entry_point,
                    json.dumps([p.model_dump(by_alias=True) for p in capability.inputs]),
                    capability.output.model_dump_json(),
                    capability.auth_type.value,
                    str(cap_dir),
                ),
            )
            self._touch_last_updated()

        self.files.write_json(cap_dir / "capability.json", capability.to_native_format())
        self._write_support_files(capability, cap_dir)
        logger.info(f"Created capability: {capability.name} in organization: {capability.organization}")

        self._refresh("installed", "search", "organizations", "metadata")

    def _write_support_files(self, capability: Capability, cap_dir) -> None:
        if capability.type == CapabilityType.FUNCTION.value:
            self.files.write_text(
                cap_dir / "main.swift",
                FUNCTION_STUB.format(
                    entry_point=capability.entry_point,
                    name=capability.name,
                    description=capability.description,
                ),
            )
        elif capability.type == CapabilityType.CORE.value:
            self.files.write_text(
                cap_dir / "BUILT_IN_CORE_TOOL",
                CORE_TOOL_MARKER.format(entry_point=capability.entry_point or "N/A"),
            )
            self.files.write_text(
                cap_dir / "main.swift",
                CORE_TOOL_STUB.format(name=capability.name, entry_point=capability.entry_point or "N/A"),
                executable=True,
            )

    def list_capabilities(
        self, organization_id: str, include_children: bool | None = None
    ) -> list[Capability]:
        organization_ids = [organization_id]
        if self._resolve_scope(include_children):
            organization_ids.extend(self._children_of(organization_id))

        placeholders = ", ".join("?" for _ in organization_ids)
        rows = self.db.fetch_all(
            "SELECT * FROM capabilities"
            f" WHERE organization_id IN ({placeholders}) AND installed_at IS NOT NULL"
            " ORDER BY name ASC",
            organization_ids,
        )
        return [self._row_to_capability(row) for row in rows]

    def list_installed_capabilities(self) -> list[Capability]:
        rows = self.db.fetch_all(
            "SELECT * FROM capabilities WHERE installed_at IS NOT NULL"
            " ORDER BY organization_id, name"
        )
        return [self._row_to_capability(row) for row in rows]

    def remove_capability(self, capability_name: str, organization_id: str) -> None:
        with self.db.transaction():
            cursor = self.db.execute(
                "DELETE FROM capabilities WHERE name = ? AND organization_id = ?",
                (capability_name, organization_id),
            )
            if cursor.rowcount == 0:
                raise CapabilityNotFoundError(capability_name)
            self._touch_last_updated()

        self.files.remove_capability(organization_id, kebab_case(capability_name))
        logger.info(f"Removed capability: {capability_name} from organization: {organization_id}")

        self._refresh("installed", "search", "organizations", "metadata")

    def capability_exists(self, capability_name: str, organization_id: str) -> bool:
        try:
            row = self.db.fetch_one(
                "SELECT name FROM capabilities WHERE name = ? AND organization_id = ?",
                (capability_name, organization_id),
            )
        except PersistenceError as e:
            logger.debug(f"capability_exists({capability_name}, {organization_id}) failed: {e}")
            return False
        return row is not None

    # ── Helpers ──────────────────────────────────────────

    def _children_of(self, organization_id: str) -> list[str]:
        metadata = self.db.fetch_scalar(
            "SELECT metadata_json FROM organizations WHERE id = ?", (organization_id,)
        )
        children = decode_json_column(metadata, {}).get("children") or []
        return [child for child in children if child != organization_id]

    def _directory_owner(self, capability_name: str, organization_id: str) -> Optional[str]:
        """Another capability in the organization that maps to the same directory."""
        directory = kebab_case(capability_name)
        rows = self.db.fetch_all(
            "SELECT name FROM capabilities WHERE organization_id = ? AND name != ?",
            (organization_id, capability_name),
        )
        for row in rows:
            if kebab_case(row["name"]) == directory:
                return row["name"]
        return None

    def _touch_last_updated(self) -> None:
        self.db.execute(
            "INSERT INTO installation_metadata (key, value, updated_at)"
            " VALUES ('last_updated', CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
            " ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at"
        )

    def last_updated(self) -> Optional[str]:
        return self.db.fetch_scalar(
            "SELECT value FROM installation_metadata WHERE key = 'last_updated'"
        )

    @staticmethod
    def _row_to_capability(row) -> Capability:
        inputs = decode_json_column(row["inputs"], [])
        output = decode_json_column(row["outputs"], None)
        return Capability(
            id=row["id"],
            type=row["type"] or CapabilityType.LOCAL.value,
            name=row["name"],
            description=row["description"] or "",
            entry_point=row["entry_point"] or "",
            organization=row["organization_id"],
            inputs=[Parameter.model_validate(item) for item in inputs],
            output=CapabilityOutput.model_validate(output) if output else CapabilityOutput(),
            auth_type=parse_auth_type(row["auth_type"]),
        )
