"""
File Service — the per-organization / per-capability repository tree.

Layout:
  <repository>/<organizationId>/org.json
  <repository>/<organizationId>/<capabilityDir>/capability.json (+ stubs)
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from capability_catalog.errors import FileSystemError, PermissionDeniedError

logger = logging.getLogger(__name__)

ORG_FILE = "org.json"
CAPABILITY_FILE = "capability.json"


class FileService:
    """Reads and writes the repository tree under one root directory."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionDeniedError(str(self.base_path)) from e
        except OSError as e:
            raise FileSystemError(f"Cannot create repository directory {self.base_path}: {e}") from e

    def organization_dir(self, organization_id: str) -> Path:
        return self.base_path / organization_id

    def capability_dir(self, organization_id: str, dir_name: str) -> Path:
        return self.base_path / organization_id / dir_name

    # ── Writes ───────────────────────────────────────────

    def write_json(self, path: Path, document: dict[str, Any]) -> Path:
        """Write a JSON document, creating parent directories."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except PermissionError as e:
            raise PermissionDeniedError(str(path)) from e
        except (OSError, TypeError) as e:
            raise FileSystemError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {path}")
        return path

    def write_text(self, path: Path, content: str, executable: bool = False) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            if executable:
                path.chmod(0o755)
        except PermissionError as e:
            raise PermissionDeniedError(str(path)) from e
        except OSError as e:
            raise FileSystemError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {path}")
        return path

    def write_organization(self, organization_id: str, document: dict[str, Any]) -> Path:
        return self.write_json(self.organization_dir(organization_id) / ORG_FILE, document)

    def write_capability(self, organization_id: str, dir_name: str, document: dict[str, Any]) -> Path:
        return self.write_json(self.capability_dir(organization_id, dir_name) / CAPABILITY_FILE, document)

    # ── Removal ──────────────────────────────────────────

    def remove_tree(self, path: Path) -> bool:
        """Delete a directory subtree. Returns False when it was absent."""
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except PermissionError as e:
            raise PermissionDeniedError(str(path)) from e
        except OSError as e:
            raise FileSystemError(f"Failed to remove {path}: {e}") from e
        logger.info(f"Removed {path}")
        return True

    def remove_organization(self, organization_id: str) -> bool:
        return self.remove_tree(self.organization_dir(organization_id))

    def remove_capability(self, organization_id: str, dir_name: str) -> bool:
        return self.remove_tree(self.capability_dir(organization_id, dir_name))

    # ── Reads ────────────────────────────────────────────

    def list_files(self, prefix: str = "") -> list[str]:
        """List files under a prefix, relative to the repository root."""
        base = self.base_path / prefix
        if base.exists():
            return sorted(
                str(p.relative_to(self.base_path))
                for p in base.rglob("*")
                if p.is_file()
            )
        return []
