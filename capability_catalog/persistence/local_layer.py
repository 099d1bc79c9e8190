"""
Local persistence layer — writable store at <store_root>.

  installed.db   organizations, capabilities, capability_parameters,
                 installations, capability_usage (cascade on delete)
  repository/    <org>/org.json and <org>/<capability>/capability.json
  cache/         projections maintained by the CacheManager

The relational store is authoritative: it is written first, and the
repository tree can be regenerated from it with `rebuild_repository()`.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from capability_catalog.config import Settings
from capability_catalog.errors import (
    CapabilityExistsError,
    CapabilityNotFoundError,
    FileSystemError,
    OrganizationExistsError,
    OrganizationNotFoundError,
    PersistenceError,
)
from capability_catalog.models.enums import AuthenticationType
from capability_catalog.models.schemas import (
    Capability,
    CapabilityOutput,
    InstallationRecord,
    Organization,
    Parameter,
    UsageRecord,
)
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.mode import LocalMode
from capability_catalog.persistence.sqlite_client import SQLiteClient
from capability_catalog.services.cache_service import CacheManager
from capability_catalog.services.file_service import FileService

logger = logging.getLogger(__name__)

ORGANIZATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    logo_url TEXT,
    is_installed INTEGER NOT NULL DEFAULT 0,
    is_local_only INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    metadata_json TEXT
);
"""

SCHEMA = ORGANIZATIONS_TABLE + """
CREATE TABLE IF NOT EXISTS capabilities (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    organization_id TEXT NOT NULL,
    description TEXT,
    type TEXT NOT NULL,
    entry_point TEXT,
    path TEXT NOT NULL,
    inputs TEXT,
    outputs TEXT,
    auth_type TEXT,
    installed_at TEXT,
    FOREIGN KEY (organization_id) REFERENCES organizations(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS capability_parameters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    capability_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    required INTEGER NOT NULL,
    description TEXT,
    default_value TEXT,
    FOREIGN KEY (capability_id) REFERENCES capabilities(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS installations (
    capability_id TEXT PRIMARY KEY NOT NULL,
    installed_at INTEGER NOT NULL,
    installation_source TEXT,
    installation_metadata TEXT,
    FOREIGN KEY (capability_id) REFERENCES capabilities(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS capability_usage (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    capability_id TEXT NOT NULL,
    executed_at INTEGER NOT NULL,
    execution_time_ms INTEGER,
    success INTEGER,
    error_message TEXT,
    parameters_json TEXT,
    FOREIGN KEY (capability_id) REFERENCES capabilities(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_capabilities_org ON capabilities(organization_id);
CREATE INDEX IF NOT EXISTS idx_capabilities_type ON capabilities(type);
CREATE INDEX IF NOT EXISTS idx_usage_capability_time ON capability_usage(capability_id, executed_at);
CREATE INDEX IF NOT EXISTS idx_parameters_capability ON capability_parameters(capability_id);
"""


def decode_json_column(text: Optional[str], default: Any) -> Any:
    if not text:
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring malformed JSON column value: {text[:80]!r}")
        return default


def parse_auth_type(value: Optional[str]) -> AuthenticationType:
    try:
        return AuthenticationType(value or AuthenticationType.NONE.value)
    except ValueError:
        return AuthenticationType.NONE


class LocalPersistenceLayer(PersistenceLayer):
    """Writable local backend with a mirrored repository tree."""

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.mode = LocalMode()

        self.store_directory = self.settings.store_path
        self.repository_directory = self.store_directory / "repository"
        self.cache_directory = self.store_directory / "cache"
        self.config_directory = self.settings.config_path
        self.database_path = self.store_directory / "installed.db"

        self._create_directory_structure()
        self.files = FileService(self.repository_directory)

        self.db = SQLiteClient(self.database_path, journal_mode=self.settings.sqlite_journal_mode)
        self.db.connect()
        self.db.executescript(SCHEMA)

        self.cache_manager = CacheManager(self.cache_directory, self)
        logger.info(f"LocalPersistenceLayer initialized at: {self.database_path}")

    def _create_directory_structure(self) -> None:
        for directory in (
            self.store_directory,
            self.repository_directory,
            self.cache_directory,
            self.config_directory,
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FileSystemError(f"Cannot create {directory}: {e}") from e

    def close(self) -> None:
        self.db.close()

    # ── Organizations ────────────────────────────────────

    def create_organization(self, organization: Organization, overwrite: bool = False) -> None:
        self._require_valid_organization(organization)
        if not overwrite and self.organization_exists(organization.id):
            raise OrganizationExistsError(organization.id)

        now = int(time.time())
        values = (
            organization.id,
            organization.name,
            organization.description,
            organization.primary_logo,
            int(organization.is_installed),
            int(organization.is_local_only),
            now,
            now,
            organization.model_dump_json(by_alias=True),
        )
        insert = (
            "INSERT INTO organizations "
            "(id, name, description, logo_url, is_installed, is_local_only, created_at, updated_at, metadata_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        if overwrite:
            insert += (
                " ON CONFLICT(id) DO UPDATE SET name = excluded.name, description = excluded.description,"
                " logo_url = excluded.logo_url, is_installed = excluded.is_installed,"
                " is_local_only = excluded.is_local_only, updated_at = excluded.updated_at,"
                " metadata_json = excluded.metadata_json"
            )

        with self.db.transaction():
            self.db.execute(insert, values)

        self.files.write_organization(organization.id, organization.to_store_format())
        logger.info(f"Created organization: {organization.id}")

        self._refresh("organizations", "metadata")

    def list_organizations(self) -> list[Organization]:
        rows = self.db.fetch_all(
            "SELECT * FROM organizations WHERE is_installed = 1 ORDER BY name ASC"
        )
        return [self._row_to_organization(row) for row in rows]

    def remove_organization(self, organization_id: str) -> None:
        if not self.organization_exists(organization_id):
            raise OrganizationNotFoundError(organization_id)

        with self.db.transaction():
            # older stores created capabilities without ON DELETE CASCADE
            self.db.execute("DELETE FROM capabilities WHERE organization_id = ?", (organization_id,))
            self.db.execute("DELETE FROM organizations WHERE id = ?", (organization_id,))

        self.files.remove_organization(organization_id)
        logger.info(f"Removed organization: {organization_id}")

        self._refresh("installed", "search", "organizations", "metadata")

    def organization_exists(self, organization_id: str) -> bool:
        try:
            row = self.db.fetch_one(
                "SELECT 1 FROM organizations WHERE id = ? LIMIT 1", (organization_id,)
            )
        except PersistenceError as e:
            logger.debug(f"organization_exists({organization_id}) failed: {e}")
            return False
        return row is not None

    def _children_of(self, organization_id: str) -> list[str]:
        metadata = self.db.fetch_scalar(
            "SELECT metadata_json FROM organizations WHERE id = ?", (organization_id,)
        )
        children = decode_json_column(metadata, {}).get("children") or []
        return [child for child in children if child != organization_id]

    @staticmethod
    def _row_to_organization(row) -> Organization:
        metadata = decode_json_column(row["metadata_json"], {})
        is_local_only = bool(row["is_local_only"])
        return Organization(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            logo=row["logo_url"],
            types=["local"] if is_local_only else ["local", "remote"],
            children=metadata.get("children"),
            tags=metadata.get("tags"),
            is_installed=bool(row["is_installed"]),
            is_local_only=is_local_only,
        )

    # ── Capabilities ─────────────────────────────────────

    def create_capability(self, capability: Capability, overwrite: bool = False) -> None:
        self._require_valid_capability(capability)
        if not self.organization_exists(capability.organization):
            raise OrganizationNotFoundError(capability.organization)

        existing_id = self._capability_id(capability.name, capability.organization)
        if existing_id and not overwrite:
            raise CapabilityExistsError(capability.name)

        capability_id = existing_id or str(uuid.uuid4())
        relative_path = f"{capability.organization}/{capability.name}"
        inputs_json = json.dumps([p.model_dump(by_alias=True) for p in capability.inputs])
        outputs_json = capability.output.model_dump_json()

        with self.db.transaction():
            if existing_id:
                self.db.execute(
                    "UPDATE capabilities SET description = ?, type = ?, entry_point = ?, path = ?,"
                    " inputs = ?, outputs = ?, auth_type = ?, installed_at = CURRENT_TIMESTAMP"
                    " WHERE id = ?",
                    (
                        capability.description,
                        capability.type,
                        capability.entry_point,
                        relative_path,
                        inputs_json,
                        outputs_json,
                        capability.auth_type.value,
                        capability_id,
                    ),
                )
                self.db.execute(
                    "DELETE FROM capability_parameters WHERE capability_id = ?", (capability_id,)
                )
            else:
                self.db.execute(
                    "INSERT INTO capabilities (id, name, organization_id, description, type, entry_point,"
                    " path, inputs, outputs, auth_type, installed_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)",
                    (
                        capability_id,
                        capability.name,
                        capability.organization,
                        capability.description,
                        capability.type,
                        capability.entry_point,
                        relative_path,
                        inputs_json,
                        outputs_json,
                        capability.auth_type.value,
                    ),
                )

            for param in capability.inputs:
                self.db.execute(
                    "INSERT INTO capability_parameters"
                    " (capability_id, name, type, required, description, default_value)"
                    " VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        capability_id,
                        param.name,
                        param.type,
                        int(param.required),
                        param.description,
                        param.default_value,
                    ),
                )

            self.db.execute(
                "INSERT INTO installations (capability_id, installed_at, installation_source)"
                " VALUES (?, ?, ?)"
                " ON CONFLICT(capability_id) DO UPDATE SET installed_at = excluded.installed_at,"
                " installation_source = excluded.installation_source",
                (capability_id, int(time.time()), self.settings.install_source),
            )

        self.files.write_capability(capability.organization, capability.name, capability.to_store_format())
        logger.info(f"Created capability: {capability.name} in organization: {capability.organization}")

        self._refresh("installed", "search", "organizations", "metadata")

    def list_capabilities(
        self, organization_id: str, include_children: bool | None = None
    ) -> list[Capability]:
        organization_ids = [organization_id]
        if self._resolve_scope(include_children):
            organization_ids.extend(self._children_of(organization_id))

        placeholders = ", ".join("?" for _ in organization_ids)
        rows = self.db.fetch_all(
            "SELECT c.* FROM capabilities c"
            " JOIN installations i ON c.id = i.capability_id"
            f" WHERE c.organization_id IN ({placeholders})"
            " ORDER BY c.name ASC",
            organization_ids,
        )
        return [self._row_to_capability(row) for row in rows]

    def list_installed_capabilities(self) -> list[Capability]:
        rows = self.db.fetch_all(
            "SELECT c.* FROM capabilities c"
            " JOIN installations i ON c.id = i.capability_id"
            " ORDER BY c.organization_id, c.name"
        )
        return [self._row_to_capability(row) for row in rows]

    def remove_capability(self, capability_name: str, organization_id: str) -> None:
        capability_id = self._capability_id(capability_name, organization_id)
        if capability_id is None:
            raise CapabilityNotFoundError(capability_name)

        with self.db.transaction():
            self.db.execute("DELETE FROM capabilities WHERE id = ?", (capability_id,))

        self.files.remove_capability(organization_id, capability_name)
        logger.info(f"Removed capability: {capability_name} from organization: {organization_id}")

        self._refresh("installed", "search", "organizations", "metadata")

    def capability_exists(self, capability_name: str, organization_id: str) -> bool:
        try:
            return self._capability_id(capability_name, organization_id) is not None
        except PersistenceError as e:
            logger.debug(f"capability_exists({capability_name}, {organization_id}) failed: {e}")
            return False

    def _capability_id(self, capability_name: str, organization_id: str) -> Optional[str]:
        return self.db.fetch_scalar(
            "SELECT id FROM capabilities WHERE organization_id = ? AND name = ? LIMIT 1",
            (organization_id, capability_name),
        )

    def _parameters_for(self, capability_id: str) -> list[Parameter]:
        rows = self.db.fetch_all(
            "SELECT * FROM capability_parameters WHERE capability_id = ? ORDER BY id",
            (capability_id,),
        )
        return [
            Parameter(
                name=row["name"],
                type=row["type"],
                required=bool(row["required"]),
                description=row["description"] or "",
                default_value=row["default_value"],
            )
            for row in rows
        ]

    def _row_to_capability(self, row) -> Capability:
        output = decode_json_column(row["outputs"], None)
        return Capability(
            id=row["id"],
            type=row["type"],
            name=row["name"],
            description=row["description"] or "",
            entry_point=row["entry_point"] or "",
            organization=row["organization_id"],
            inputs=self._parameters_for(row["id"]),
            output=CapabilityOutput.model_validate(output) if output else CapabilityOutput(),
            auth_type=parse_auth_type(row["auth_type"]),
        )

    # ── Installations & usage ────────────────────────────

    def get_installation(self, capability_id: str) -> Optional[InstallationRecord]:
        row = self.db.fetch_one(
            "SELECT * FROM installations WHERE capability_id = ?", (capability_id,)
        )
        if row is None:
            return None
        return InstallationRecord(
            capability_id=row["capability_id"],
            installed_at=row["installed_at"],
            source=row["installation_source"],
            metadata=row["installation_metadata"],
        )

    def record_usage(self, record: UsageRecord) -> UsageRecord:
        """Append one execution to the usage log and return it with its id."""
        with self.db.transaction():
            cursor = self.db.execute(
                "INSERT INTO capability_usage"
                " (capability_id, executed_at, execution_time_ms, success, error_message, parameters_json)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.capability_id,
                    record.executed_at,
                    record.execution_time_ms,
                    None if record.success is None else int(record.success),
                    record.error_message,
                    record.parameters_json,
                ),
            )
        return record.model_copy(update={"id": cursor.lastrowid})

    def list_usage(self, capability_id: str, limit: int | None = None) -> list[UsageRecord]:
        """Usage entries for one capability, newest first."""
        sql = "SELECT * FROM capability_usage WHERE capability_id = ? ORDER BY executed_at DESC, id DESC"
        params: list[Any] = [capability_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [
            UsageRecord(
                id=row["id"],
                capability_id=row["capability_id"],
                executed_at=row["executed_at"],
                execution_time_ms=row["execution_time_ms"],
                success=None if row["success"] is None else bool(row["success"]),
                error_message=row["error_message"],
                parameters_json=row["parameters_json"],
            )
            for row in self.db.fetch_all(sql, params)
        ]

    # ── Repository tree ──────────────────────────────────

    def rebuild_repository(self) -> int:
        """Rewrite every org.json / capability.json from the relational store."""
        written = 0
        for row in self.db.fetch_all("SELECT * FROM organizations WHERE is_installed = 1"):
            stored = decode_json_column(row["metadata_json"], None)
            organization = (
                Organization.model_validate(stored) if stored else self._row_to_organization(row)
            )
            self.files.write_organization(organization.id, organization.to_store_format())
            written += 1
            for capability in self.list_capabilities(organization.id, include_children=False):
                self.files.write_capability(
                    capability.organization, capability.name, capability.to_store_format()
                )
                written += 1
        logger.info(f"Rebuilt repository tree at {self.repository_directory} ({written} files)")
        return written

    @property
    def repository_path(self) -> Path:
        return self.repository_directory
