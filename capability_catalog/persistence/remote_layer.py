"""
Remote persistence layer — read-only view of the published capabilities store.

The catalog is downloaded as a base64-encoded SQLite snapshot from the
download-changes endpoint and cached at:

  <capabilities-store>/cache/apps/app-store/capabilities.sqlite

A snapshot younger than `settings.snapshot_max_age_hours` is reused instead
of downloading again. Every mutation raises OperationNotSupportedError.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from capability_catalog.config import Settings
from capability_catalog.errors import (
    DatabaseError,
    FileSystemError,
    OperationNotSupportedError,
    PersistenceError,
)
from capability_catalog.models.schemas import (
    AuthInfo,
    Capability,
    CapabilityOutput,
    Organization,
    Parameter,
)
from capability_catalog.persistence.base import PersistenceLayer
from capability_catalog.persistence.local_layer import decode_json_column, parse_auth_type
from capability_catalog.persistence.mode import RemoteMode
from capability_catalog.persistence.sqlite_client import SQLiteClient
from capability_catalog.services.cache_service import CacheManager

logger = logging.getLogger(__name__)

READ_ONLY_MESSAGE = "Remote persistence layer is read-only"

ORGANIZATION_COLUMNS = "id, name, description, logo, path, url, parent_id, children, tags, created_at"
CAPABILITY_COLUMNS = (
    "id, name, title, description, logo, organization_id, group_id, group_name, items, api_schema,"
    " auth_flow, examples, relationships, path, url, tags, categories, entry_point, type, created_at"
)


class RemotePersistenceLayer(PersistenceLayer):
    """Read-only backend over a downloaded catalog snapshot."""

    default_include_children = True

    def __init__(self, capabilities_store_path: str | Path, settings: Settings | None = None):
        super().__init__(settings)
        self.capabilities_store_path = Path(capabilities_store_path).expanduser()
        self.mode = RemoteMode(capabilities_store_path=str(capabilities_store_path))

        self.cache_directory = self.capabilities_store_path / "cache"
        self.snapshot_path = self.cache_directory / "apps" / "app-store" / "capabilities.sqlite"
        self.db = SQLiteClient(self.snapshot_path, read_only=True)

        self.cache_manager = CacheManager(self.cache_directory, self)
        logger.info(f"RemotePersistenceLayer initialized with cache at: {self.cache_directory}")

    # ── Connection ───────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self.db.is_connected

    async def connect_to_database(self) -> None:
        """Fetch (or reuse) the snapshot and open it read-only."""
        if self.is_connected:
            return

        if not self._snapshot_is_fresh():
            await asyncio.to_thread(self._download_snapshot)

        self.db.connect()
        logger.info(f"RemotePersistenceLayer connected to database at: {self.snapshot_path}")

    def disconnect(self) -> None:
        self.db.close()

    def close(self) -> None:
        self.disconnect()

    def stats(self) -> dict[str, Any]:
        """Query timing over the rolling window kept by the SQLite client."""
        return self.db.stats()

    def _snapshot_is_fresh(self) -> bool:
        try:
            modified = self.snapshot_path.stat().st_mtime
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FileSystemError(f"Cannot stat snapshot {self.snapshot_path}: {e}") from e

        age_hours = (time.time() - modified) / 3600
        if age_hours < self.settings.snapshot_max_age_hours:
            logger.info(
                f"Using existing SQLite database at: {self.snapshot_path} "
                f"(modified {age_hours:.1f} hours ago)"
            )
            return True
        return False

    def _download_snapshot(self) -> Path:
        """POST to the download-changes endpoint and write the decoded snapshot."""
        logger.info("Downloading SQLite database via download-changes API...")

        headers = {"Content-Type": "application/json"}
        if self.settings.license_key:
            headers["x-license-key"] = self.settings.license_key

        try:
            response = requests.post(
                self.settings.remote_endpoint,
                json={"repository": self.settings.remote_repository},
                headers=headers,
            )
        except requests.RequestException as e:
            raise DatabaseError(f"Download-changes request failed: {e}") from e

        if response.status_code != 200:
            raise DatabaseError(f"Download-changes API returned status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise DatabaseError(f"Download-changes response is not JSON: {e}") from e

        encoded = payload.get("database") if isinstance(payload, dict) else None
        if not isinstance(encoded, str):
            raise DatabaseError("No database field found in download-changes response")

        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DatabaseError(f"Failed to decode base64 database data: {e}") from e

        self._replace_snapshot(data)

        logger.info(f"Downloaded SQLite database: {len(data)} bytes to: {self.snapshot_path}")
        return self.snapshot_path

    def _replace_snapshot(self, data: bytes) -> None:
        """Write to a sibling temp file, then rename over the snapshot."""
        directory = self.snapshot_path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=directory, prefix=".capabilities-", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.snapshot_path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise FileSystemError(f"Failed to write snapshot {self.snapshot_path}: {e}") from e

    # ── Mutations (unsupported) ──────────────────────────

    def create_organization(self, organization: Organization, overwrite: bool = False) -> None:
        raise OperationNotSupportedError(READ_ONLY_MESSAGE)

    def create_capability(self, capability: Capability, overwrite: bool = False) -> None:
        raise OperationNotSupportedError(READ_ONLY_MESSAGE)

    def remove_organization(self, organization_id: str) -> None:
        raise OperationNotSupportedError(READ_ONLY_MESSAGE)

    def remove_capability(self, capability_name: str, organization_id: str) -> None:
        raise OperationNotSupportedError(READ_ONLY_MESSAGE)

    # ── Queries ──────────────────────────────────────────

    def list_organizations(self) -> list[Organization]:
        rows = self.db.fetch_all(
            f"SELECT {ORGANIZATION_COLUMNS} FROM organizations ORDER BY name ASC"
        )
        return [
            Organization(
                id=row["id"],
                name=row["name"],
                description=row["description"] or "",
                logo=row["logo"],
                types=["nested"] if row["parent_id"] else ["root"],
                children=decode_json_column(row["children"], None) or None,
                tags=decode_json_column(row["tags"], None) or None,
            )
            for row in rows
        ]

    def list_capabilities(
        self, organization_id: str, include_children: bool | None = None
    ) -> list[Capability]:
        organization_ids = [organization_id]
        if self._resolve_scope(include_children):
            children = self.db.fetch_scalar(
                "SELECT children FROM organizations WHERE id = ? LIMIT 1", (organization_id,)
            )
            organization_ids.extend(
                child for child in decode_json_column(children, []) if child != organization_id
            )

        placeholders = ", ".join("?" for _ in organization_ids)
        rows = self.db.fetch_all(
            f"SELECT {CAPABILITY_COLUMNS} FROM capabilities"
            f" WHERE organization_id IN ({placeholders})"
            " ORDER BY name ASC",
            organization_ids,
        )
        return [self._row_to_capability(row) for row in rows]

    def organization_exists(self, organization_id: str) -> bool:
        try:
            count = self.db.fetch_scalar(
                "SELECT COUNT(*) FROM organizations WHERE id = ? LIMIT 1", (organization_id,)
            )
        except PersistenceError as e:
            logger.debug(f"organization_exists({organization_id}) failed: {e}")
            return False
        return bool(count)

    def capability_exists(self, capability_name: str, organization_id: str) -> bool:
        try:
            count = self.db.fetch_scalar(
                "SELECT COUNT(*) FROM capabilities WHERE name = ? AND organization_id = ? LIMIT 1",
                (capability_name, organization_id),
            )
        except PersistenceError as e:
            logger.debug(f"capability_exists({capability_name}, {organization_id}) failed: {e}")
            return False
        return bool(count)

    # ── Row mapping ──────────────────────────────────────

    def _row_to_capability(self, row) -> Capability:
        schema = decode_json_column(row["api_schema"], None)
        if not isinstance(schema, dict):
            schema = {}

        auth = _parse_auth(schema.get("auth"))
        return Capability(
            id=row["id"],
            type=row["type"] or "remote",
            name=row["name"],
            description=row["description"] or "",
            entry_point=row["entry_point"] or schema.get("entryPoint") or "",
            organization=row["organization_id"],
            group=row["group_id"] or row["group_name"],
            inputs=_parse_inputs(schema.get("inputs")),
            output=_parse_output(schema.get("output")),
            auth_type=parse_auth_type(auth.type if auth else None),
            auth=auth,
        )


def _parse_inputs(raw: Any) -> list[Parameter]:
    """
    api_schema inputs come either as a parameter list or as a JSON-schema
    object ({"properties": {...}, "required": [...]}).
    """
    if isinstance(raw, list):
        items = [item for item in raw if isinstance(item, dict)]
    elif isinstance(raw, dict) and isinstance(raw.get("properties"), dict):
        required = set(raw.get("required") or [])
        items = [
            {**(prop if isinstance(prop, dict) else {}), "name": name, "required": name in required}
            for name, prop in raw["properties"].items()
        ]
    else:
        return []

    params = []
    for item in items:
        try:
            params.append(Parameter.model_validate(_with_default_value(item)))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed api_schema input {item.get('name')!r}: {e}")
    return params


def _with_default_value(item: dict[str, Any]) -> dict[str, Any]:
    """Carry JSON-schema `default` into `defaultValue`, stringified."""
    keys = ("defaultValue", "default_value", "default")
    value = next((item[k] for k in keys if item.get(k) is not None), None)
    item = {k: v for k, v in item.items() if k not in keys}
    if value is not None:
        item["defaultValue"] = value if isinstance(value, str) else json.dumps(value)
    return item


def _parse_output(raw: Any) -> CapabilityOutput:
    if not isinstance(raw, dict):
        return CapabilityOutput(type="string", description="Capability output")
    return CapabilityOutput(
        type=raw.get("type") or "string",
        description=raw.get("description"),
    )


def _parse_auth(raw: Any) -> Optional[AuthInfo]:
    if not isinstance(raw, dict) or not raw.get("type"):
        return None
    try:
        return AuthInfo.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring malformed api_schema auth block: {e}")
        return None
