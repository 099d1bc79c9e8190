"""
Catalog entities shared by every backend and the cache manager.
Aliases follow the JSON spelling the host application reads from disk.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import AuthenticationType


def _now() -> int:
    return int(time.time())


class CatalogModel(BaseModel):
    """Base: accept both field names and on-disk aliases."""
    model_config = ConfigDict(populate_by_name=True)


# ── Organizations ────────────────────────────────────────


class Organization(CatalogModel):
    """A namespace owning capabilities and child organizations."""
    id: str
    name: str
    description: str = ""
    logo: Optional[str] = None
    png_logo: Optional[str] = Field(default=None, alias="pngLogo")
    svg_logo: Optional[str] = Field(default=None, alias="svgLogo")
    types: list[str] = Field(default_factory=lambda: ["local"])
    children: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    is_installed: bool = True
    is_local_only: bool = False

    @property
    def primary_logo(self) -> Optional[str]:
        return self.logo or self.png_logo or self.svg_logo

    def to_store_format(self) -> dict[str, Any]:
        """The `org.json` document written into the repository tree."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "logo": self.logo,
            "pngLogo": self.png_logo,
            "svgLogo": self.svg_logo,
            "types": self.types,
            "children": self.children,
            "tags": self.tags,
        }


# ── Capabilities ─────────────────────────────────────────


class Parameter(CatalogModel):
    name: str
    type: str = "string"  # string | integer | boolean | array | object
    required: bool = False
    default_value: Optional[str] = Field(default=None, alias="defaultValue")
    description: str = ""
    context: Optional[list[str]] = None


class OutputProperty(CatalogModel):
    type: str
    description: Optional[str] = None


class CapabilityOutput(CatalogModel):
    type: str = "string"
    description: Optional[str] = None
    properties: Optional[dict[str, OutputProperty]] = None


class CapabilityHeader(CatalogModel):
    key: str
    value: str


class AuthInfo(CatalogModel):
    type: str
    auth_url: Optional[str] = None
    token_url: Optional[str] = None
    client_id: Optional[str] = None
    scopes: Optional[list[str]] = None
    env_variable: Optional[str] = None


class Capability(CatalogModel):
    """A named, typed unit of functionality owned by an organization."""
    id: Optional[str] = None  # assigned by the backend
    type: str
    name: str
    description: str = ""
    entry_point: str = ""
    organization: str
    group: Optional[str] = None
    inputs: list[Parameter] = []
    output: CapabilityOutput = Field(default_factory=CapabilityOutput)
    base_url: Optional[str] = None
    auth_type: AuthenticationType = AuthenticationType.NONE
    headers: Optional[list[CapabilityHeader]] = None
    auth: Optional[AuthInfo] = None

    @model_validator(mode="after")
    def _default_group(self) -> "Capability":
        if not self.group:
            self.group = self.organization
        return self

    def to_native_format(self) -> dict[str, Any]:
        """Full host JSON form (Darwin `capability.json`)."""
        return self.model_dump(by_alias=True, exclude={"id"}, mode="json")

    def to_store_format(self) -> dict[str, Any]:
        """Capabilities-store `capability.json` form."""
        return {
            "name": self.name,
            "description": self.description,
            "organization": self.organization,
            "type": self.type,
            "entry_point": self.entry_point,
            "inputs": [
                {
                    "name": p.name,
                    "type": p.type,
                    "required": p.required,
                    "description": p.description,
                    "default": p.default_value,
                }
                for p in self.inputs
            ],
            "output": {"type": self.output.type, "description": self.output.description},
            "auth": self.auth.model_dump(mode="json") if self.auth else None,
        }


# ── Installation & usage ─────────────────────────────────


class InstallationRecord(CatalogModel):
    capability_id: str
    installed_at: int = Field(default_factory=_now)
    source: Optional[str] = None
    metadata: Optional[str] = None


class UsageRecord(CatalogModel):
    """One execution of a capability. Never updated after insert."""
    id: Optional[int] = None
    capability_id: str
    executed_at: int = Field(default_factory=_now)
    execution_time_ms: Optional[int] = None
    success: Optional[bool] = None
    error_message: Optional[str] = None
    parameters_json: Optional[str] = None


# ── Validation ───────────────────────────────────────────


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []

    @classmethod
    def from_messages(cls, errors: list[str], warnings: list[str] | None = None) -> "ValidationResult":
        return cls(is_valid=not errors, errors=errors, warnings=warnings or [])
