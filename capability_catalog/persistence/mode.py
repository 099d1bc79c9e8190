"""
Persistence mode — where organizations and capabilities are stored.

A closed set of variants, each carrying its own validation:

  LocalMode   → <store_root>/installed.db + <store_root>/repository/
  RemoteMode  → read-only snapshot cached under a capabilities-store checkout
  DarwinMode  → <store_root>/installed.db using the host application's schema

The factory dispatches on the variant once, at construction.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from capability_catalog.config import Settings
from capability_catalog.models.schemas import ValidationResult


def _check_store_directory(store_dir: Path, errors: list[str]) -> None:
    """Create the store directory when missing and require write access."""
    if not store_dir.exists():
        try:
            store_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Cannot create store directory: {e}")
            return

    if not os.access(store_dir, os.W_OK):
        errors.append(f"No write permission to store directory: {store_dir}")


class _Mode(BaseModel):
    model_config = ConfigDict(frozen=True)


class LocalMode(_Mode):
    """Writable local store (relational rows + per-capability file tree)."""
    kind: Literal["local"] = "local"

    def check(self, settings: Settings) -> ValidationResult:
        errors: list[str] = []
        _check_store_directory(settings.store_path, errors)
        return ValidationResult.from_messages(errors)

    @property
    def description(self) -> str:
        return "Local (~/.darwin/store/)"


class RemoteMode(_Mode):
    """Read-only snapshot attached to a capabilities-store checkout."""
    kind: Literal["remote"] = "remote"
    capabilities_store_path: str

    def check(self, settings: Settings) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        path = self.capabilities_store_path

        if not path:
            errors.append("Remote persistence requires explicit capabilities-store path")
            return ValidationResult.from_messages(errors, warnings)

        root = Path(path).expanduser()
        if not root.exists():
            errors.append(f"Capabilities-store path does not exist: {path}")
            return ValidationResult.from_messages(errors, warnings)

        if not root.is_dir():
            errors.append(f"Capabilities-store path is not a directory: {path}")
            return ValidationResult.from_messages(errors, warnings)

        src_dir = root / "src"
        if not src_dir.exists():
            errors.append(
                f"Path is not a valid capabilities-store repository (missing src/ directory): {path}"
            )
        elif not os.access(src_dir, os.W_OK):
            errors.append(f"No write permission to capabilities-store src directory: {src_dir}")

        if not (root / "package.json").exists():
            warnings.append(
                f"Path may not be a capabilities-store repository (missing package.json): {path}"
            )
        if not (root / "schema").exists():
            warnings.append(
                f"Path may not be a capabilities-store repository (missing schema/ directory): {path}"
            )
        if not (root / ".git").exists():
            warnings.append(
                "Capabilities-store path is not a git repository. "
                "You'll need to manually commit and push changes."
            )

        return ValidationResult.from_messages(errors, warnings)

    @property
    def description(self) -> str:
        return f"Remote ({self.capabilities_store_path})"


class DarwinMode(_Mode):
    """Writable store using the host application's exact schema."""
    kind: Literal["darwin"] = "darwin"

    def check(self, settings: Settings) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        store_dir = settings.store_path
        _check_store_directory(store_dir, errors)

        db_path = store_dir / "installed.db"
        if not db_path.exists():
            warnings.append(f"Darwin AI database does not exist yet at: {db_path}")

        return ValidationResult.from_messages(errors, warnings)

    @property
    def description(self) -> str:
        return "Darwin AI Native (~/.darwin/store/installed.db)"


PersistenceMode = Annotated[
    Union[LocalMode, RemoteMode, DarwinMode],
    Field(discriminator="kind"),
]
