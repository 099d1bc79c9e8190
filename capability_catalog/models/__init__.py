"""Models — catalog entities, enums and cache documents."""

from capability_catalog.models.enums import AuthenticationType, CapabilityType
from capability_catalog.models.schemas import (
    AuthInfo,
    Capability,
    CapabilityHeader,
    CapabilityOutput,
    InstallationRecord,
    Organization,
    OutputProperty,
    Parameter,
    UsageRecord,
    ValidationResult,
)

__all__ = [
    "AuthenticationType",
    "CapabilityType",
    "AuthInfo",
    "Capability",
    "CapabilityHeader",
    "CapabilityOutput",
    "InstallationRecord",
    "Organization",
    "OutputProperty",
    "Parameter",
    "UsageRecord",
    "ValidationResult",
]
